"""
In-memory response cache with per-entry TTL.

Uses cachetools.TLRUCache so every entry carries its own expiry and the map
stays bounded: expired entries are dropped first, then the least recently
used one.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from cachetools import TLRUCache

from sangha_api.models import ApiResponse

logger = logging.getLogger("sangha_api.cache")


def _normalize(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _normalize(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


def fingerprint(
    method: str,
    path: str,
    params: Mapping[str, Any] | None = None,
    body: Any = None,
    namespace: str = "",
) -> str:
    """Build the cache key for a request.

    Key order in ``params``/``body`` does not matter and ``None`` values are
    ignored, so logically identical requests share one key.
    """
    query = json.dumps(_normalize(params or {}), sort_keys=True, default=str)
    payload = "" if body is None else json.dumps(_normalize(body), sort_keys=True, default=str)
    return f"{namespace}|{method.upper()}|{path}|{query}|{payload}"


@dataclass
class CacheEntry:
    key: str
    value: ApiResponse
    ttl: float
    expires_at: float
    size_hint: int = 0


@dataclass
class CacheStats:
    size: int = 0
    max_size: int = 0
    hits: int = 0
    misses: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


def _entry_expiry(_key: str, entry: CacheEntry, now: float) -> float:
    return now + entry.ttl


class ResponseCache:
    """Bounded TTL cache of successful responses.

    Example:
        cache = ResponseCache(max_size=100, namespace="content")
        cache.set(key, response, ttl=30.0)
        cache.get(key)  # a copy of response, or None
    """

    def __init__(
        self,
        max_size: int = 100,
        namespace: str = "",
        timer: Callable[[], float] = time.monotonic,
    ):
        self.namespace = namespace
        self.max_size = max_size
        self._timer = timer
        self._entries: TLRUCache[str, CacheEntry] = TLRUCache(
            maxsize=max_size, ttu=_entry_expiry, timer=timer
        )
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> ApiResponse | None:
        """Return a copy of the cached response, or None on miss/expiry."""
        try:
            entry = self._entries[key]
        except KeyError:
            self._misses += 1
            self._entries.expire()
            return None
        self._hits += 1
        return entry.value.model_copy(deep=True)

    def set(self, key: str, value: ApiResponse, ttl: float) -> None:
        """Store ``value`` for ``ttl`` seconds. ``ttl <= 0`` stores nothing."""
        if ttl <= 0:
            return
        stored = value.model_copy(deep=True, update={"cached": False})
        entry = CacheEntry(
            key=key,
            value=stored,
            ttl=ttl,
            expires_at=self._timer() + ttl,
            size_hint=len(stored.model_dump_json()),
        )
        self._entries[key] = entry
        logger.debug("Cached %s for %.1fs (%d/%d)", key, ttl, len(self._entries), self.max_size)

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        self._entries.expire()
        count = len(self._entries)
        self._entries.clear()
        return count

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self),
            max_size=self.max_size,
            hits=self._hits,
            misses=self._misses,
        )

    def __len__(self) -> int:
        self._entries.expire()
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
