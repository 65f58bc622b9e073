"""API client configuration -- layered: explicit args > env vars > defaults.

All durations are seconds.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable

import httpx

if TYPE_CHECKING:
    from sangha_api.abort import AbortSignal
    from sangha_api.errors import ApiError

CLIENT_VERSION = "1.0.0"
SERVICE_NAMES = ("content", "community", "analytics", "admin", "search")

# Transport hooks. Request and response hooks are httpx event hooks and must be
# coroutines; a request hook may modify the outgoing request in place. Error
# hooks see every ApiError before it is raised and may return a replacement.
RequestHook = Callable[[httpx.Request], Awaitable[None]]
ResponseHook = Callable[[httpx.Response], Awaitable[None]]
ErrorHook = Callable[["ApiError"], Any]


def _env(key: str, *fallback_keys: str, default: str = "") -> str:
    """Look up a config value: SANGHA_API_* env var > fallback env vars > default."""
    for name in (key, *fallback_keys):
        val = os.environ.get(name)
        if val:
            return val
    return default


def _env_bool(key: str, default: bool) -> bool:
    return _env(key, default="true" if default else "false").lower() in ("true", "1", "yes")


@dataclass
class CacheSettings:
    enabled: bool = True
    ttl: float = 300.0
    max_size: int = 100


@dataclass
class RateLimitSettings:
    enabled: bool = False
    max_requests: int = 100
    window: float = 60.0


@dataclass
class ServiceConfig:
    """Configuration for a single service client and its transport."""

    base_url: str = field(
        default_factory=lambda: _env("SANGHA_API_BASE_URL", default="http://localhost:8080/api")
    )
    timeout: float = field(
        default_factory=lambda: float(_env("SANGHA_API_TIMEOUT", default="10.0"))
    )
    retries: int = field(
        default_factory=lambda: int(_env("SANGHA_API_RETRIES", default="3"))
    )
    retry_delay: float = field(
        default_factory=lambda: float(_env("SANGHA_API_RETRY_DELAY", default="1.0"))
    )
    retry_jitter: float = field(
        default_factory=lambda: float(_env("SANGHA_API_RETRY_JITTER", default="0.5"))
    )
    max_retry_delay: float = 30.0
    default_headers: dict[str, str] = field(default_factory=dict)
    cache: CacheSettings = field(default_factory=CacheSettings)
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    health_path: str = "/health"
    probe_timeout: float = field(
        default_factory=lambda: float(_env("SANGHA_API_PROBE_TIMEOUT", default="2.0"))
    )
    request_hooks: list[RequestHook] = field(default_factory=list)
    response_hooks: list[ResponseHook] = field(default_factory=list)
    error_hooks: list[ErrorHook] = field(default_factory=list)


@dataclass
class ApiClientsConfig:
    """Factory-level configuration shared by every service client."""

    base_url: str = field(
        default_factory=lambda: _env("SANGHA_API_BASE_URL", default="http://localhost:8080/api")
    )
    timeout: float = field(
        default_factory=lambda: float(_env("SANGHA_API_TIMEOUT", default="10.0"))
    )
    retries: int = field(
        default_factory=lambda: int(_env("SANGHA_API_RETRIES", default="3"))
    )
    retry_delay: float = field(
        default_factory=lambda: float(_env("SANGHA_API_RETRY_DELAY", default="1.0"))
    )
    retry_jitter: float = field(
        default_factory=lambda: float(_env("SANGHA_API_RETRY_JITTER", default="0.5"))
    )
    enable_cache: bool = field(
        default_factory=lambda: _env_bool("SANGHA_API_ENABLE_CACHE", True)
    )
    enable_rate_limit: bool = field(
        default_factory=lambda: _env_bool("SANGHA_API_ENABLE_RATE_LIMIT", False)
    )
    default_headers: dict[str, str] = field(default_factory=dict)
    environment: str = field(
        default_factory=lambda: _env("SANGHA_API_ENVIRONMENT", default="development")
    )
    probe_timeout: float = field(
        default_factory=lambda: float(_env("SANGHA_API_PROBE_TIMEOUT", default="2.0"))
    )
    health_check_interval: float = field(
        default_factory=lambda: float(_env("SANGHA_API_HEALTH_INTERVAL", default="30.0"))
    )
    request_hooks: list[RequestHook] = field(default_factory=list)
    response_hooks: list[ResponseHook] = field(default_factory=list)
    error_hooks: list[ErrorHook] = field(default_factory=list)

    # Logging (used by the CLI)
    log_level: str = field(
        default_factory=lambda: _env("SANGHA_API_LOG_LEVEL", default="INFO")
    )
    log_format: str = field(
        default_factory=lambda: _env("SANGHA_API_LOG_FORMAT", default="text")
    )
    log_file: str | None = field(
        default_factory=lambda: os.environ.get("SANGHA_API_LOG_FILE")
    )

    def headers(self) -> dict[str, str]:
        """Headers every client sends, before per-service and per-call ones."""
        return {
            "X-Client-Version": CLIENT_VERSION,
            "X-Platform": "python",
            "X-Environment": self.environment,
            **self.default_headers,
        }

    def service_config(
        self,
        *,
        cache_ttl: float = 300.0,
        cache_max_size: int = 100,
        rate_limit_max_requests: int = 100,
    ) -> ServiceConfig:
        """Derive one service's configuration from the shared settings."""
        return ServiceConfig(
            base_url=self.base_url,
            timeout=self.timeout,
            retries=self.retries,
            retry_delay=self.retry_delay,
            retry_jitter=self.retry_jitter,
            default_headers=self.headers(),
            cache=CacheSettings(enabled=self.enable_cache, ttl=cache_ttl, max_size=cache_max_size),
            rate_limit=RateLimitSettings(
                enabled=self.enable_rate_limit,
                max_requests=rate_limit_max_requests,
            ),
            probe_timeout=self.probe_timeout,
            request_hooks=list(self.request_hooks),
            response_hooks=list(self.response_hooks),
            error_hooks=list(self.error_hooks),
        )

    def summary(self) -> dict[str, Any]:
        return {
            "base_url": self.base_url,
            "timeout": self.timeout,
            "retries": self.retries,
            "retry_delay": self.retry_delay,
            "enable_cache": self.enable_cache,
            "enable_rate_limit": self.enable_rate_limit,
            "environment": self.environment,
            "probe_timeout": self.probe_timeout,
            "health_check_interval": self.health_check_interval,
            "default_headers": dict(self.default_headers),
        }


@dataclass(frozen=True)
class RequestOptions:
    """Per-call overrides accepted by every request helper.

    Attributes:
        cache: TTL in seconds. ``0`` disables caching for this call, ``None``
            uses the client default (GET only).
        timeout: Per-attempt timeout; ``None`` uses the client default.
        retries: Retry count; ``None`` uses the client default.
        signal: Cancellation handle.
        headers: Merged over the client's default headers.
        authenticate: Attach the bearer token when one is set.
    """

    cache: float | None = None
    timeout: float | None = None
    retries: int | None = None
    signal: AbortSignal | None = None
    headers: Mapping[str, str] | None = None
    authenticate: bool = True

    def merge(self, **overrides: Any) -> RequestOptions:
        """Return a copy with ``overrides`` applied where they are not None."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


DEFAULT_OPTIONS = RequestOptions()


@dataclass(frozen=True)
class RequestConfig:
    """One HTTP request as handed to :class:`~sangha_api.client.http.HttpClient`."""

    method: str
    path: str
    params: Mapping[str, Any] | None = None
    body: Any = None
    files: Mapping[str, Any] | None = None
    form: Mapping[str, Any] | None = None
    options: RequestOptions = DEFAULT_OPTIONS
