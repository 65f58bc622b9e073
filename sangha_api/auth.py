"""Bearer token storage shared by API clients."""

from __future__ import annotations

import logging

logger = logging.getLogger("sangha_api.auth")


class TokenStore:
    """Holds the current bearer token.

    A client built on its own gets a private store. Clients built by
    :class:`~sangha_api.factory.ApiClientFactory` all receive the factory's
    store, so one ``set()`` is seen by every service.
    """

    def __init__(self, token: str | None = None):
        self._token = token or None

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def is_set(self) -> bool:
        return bool(self._token)

    def set(self, token: str) -> None:
        self._token = token or None
        logger.debug("Auth token %s", "set" if self._token else "cleared")

    def clear(self) -> None:
        self._token = None
        logger.debug("Auth token cleared")

    def authorization_header(self) -> dict[str, str]:
        """Return the ``Authorization`` header for the current token, if any."""
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}
