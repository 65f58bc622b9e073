"""Shared fixtures: an in-process fake platform API served over httpx.MockTransport."""

from __future__ import annotations

import inspect
from typing import Any, Callable

import httpx
import pytest

from sangha_api.config import ApiClientsConfig, ServiceConfig

BASE_URL = "http://test/api"
TIMESTAMP = "2024-01-01T00:00:00+00:00"

Responder = Callable[[httpx.Request], Any]


def envelope(data: Any, **extra: Any) -> dict[str, Any]:
    return {"data": data, "success": True, "timestamp": TIMESTAMP, **extra}


def page_envelope(
    items: list, page: int = 1, limit: int = 20, total: int | None = None, **extra: Any
) -> dict[str, Any]:
    total = len(items) if total is None else total
    return envelope(
        items,
        total=total,
        page=page,
        limit=limit,
        hasNext=page * limit < total,
        hasPrev=page > 1,
        **extra,
    )


class FakeServer:
    """Routes requests by method and path to canned replies and records every request.

    Paths are given without the ``/api`` prefix of the base URL. A route with
    several replies answers them in turn and then repeats the last one.
    Unknown routes answer 404.
    """

    envelope = staticmethod(envelope)
    page_envelope = staticmethod(page_envelope)

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Responder]] = {}
        self.requests: list[httpx.Request] = []

    # ── Route registration ────────────────────────────────────────────

    def on(self, method: str, path: str, *responders: Responder) -> None:
        self.routes[(method.upper(), "/api" + path)] = list(responders)

    def ok(self, method: str, path: str, data: Any = None, **extra: Any) -> None:
        self.on(method, path, self.reply(200, envelope(data, **extra)))

    def page(self, method: str, path: str, items: list, **paging: Any) -> None:
        self.on(method, path, self.reply(200, page_envelope(items, **paging)))

    def fail(self, method: str, path: str, status: int, body: Any = None, headers: dict | None = None) -> None:
        self.on(method, path, self.reply(status, body, headers))

    @staticmethod
    def reply(status: int = 200, body: Any = None, headers: dict | None = None) -> Responder:
        def respond(request: httpx.Request) -> httpx.Response:
            if body is None:
                return httpx.Response(status, headers=headers)
            return httpx.Response(status, json=body, headers=headers)

        return respond

    # ── Transport ─────────────────────────────────────────────────────

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        replies = self.routes.get((request.method, request.url.path))
        if not replies:
            return httpx.Response(404, json={"message": f"No route for {request.method} {request.url.path}"})
        responder = replies.pop(0) if len(replies) > 1 else replies[0]
        result = responder(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # ── Inspection ────────────────────────────────────────────────────

    def calls(self, method: str | None = None, path: str | None = None) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if (method is None or r.method == method.upper())
            and (path is None or r.url.path == "/api" + path)
        ]

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def server() -> FakeServer:
    """Create an empty fake API server."""
    return FakeServer()


@pytest.fixture
def config() -> ServiceConfig:
    """Service config with instant retries and short timeouts."""
    return ServiceConfig(
        base_url=BASE_URL,
        timeout=1.0,
        retries=3,
        retry_delay=0.0,
        retry_jitter=0.0,
        probe_timeout=0.5,
    )


@pytest.fixture
def clients_config() -> ApiClientsConfig:
    """Factory config with instant retries and short timeouts."""
    return ApiClientsConfig(
        base_url=BASE_URL,
        timeout=1.0,
        retries=3,
        retry_delay=0.0,
        retry_jitter=0.0,
        environment="test",
        probe_timeout=0.5,
    )
