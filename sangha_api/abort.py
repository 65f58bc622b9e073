"""Cancellation handle passed with a request."""

from __future__ import annotations

import asyncio


class AbortSignal:
    """One-shot cancellation flag that requests can await.

    Usage::

        signal = AbortSignal()
        task = asyncio.create_task(client.get_posts(options=RequestOptions(signal=signal)))
        signal.abort("user navigated away")
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self, reason: str | None = None) -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()
