"""Low-level async HTTP transport with caching, rate limiting and retry."""
from __future__ import annotations
import asyncio
import inspect
import logging
from collections.abc import Awaitable, Mapping
from dataclasses import asdict, dataclass
from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from typing import Any, Callable

import httpx
from pydantic import ValidationError

from sangha_api.abort import AbortSignal
from sangha_api.auth import TokenStore
from sangha_api.cache import CacheStats, ResponseCache, fingerprint
from sangha_api.config import CLIENT_VERSION, ErrorHook, RequestConfig, RequestHook, ResponseHook, ServiceConfig
from sangha_api.errors import ApiError, ErrorCode, http_error_code
from sangha_api.models import ApiResponse
from sangha_api.rate_limit import RateLimiter
from sangha_api.retry import RetryPolicy

logger = logging.getLogger("sangha_api.http")

CACHEABLE_METHODS = frozenset({"GET", "HEAD"})


@dataclass
class RequestCounters:
    requests: int = 0
    network_attempts: int = 0
    cache_hits: int = 0
    retries: int = 0
    failures: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def clean_params(params: Mapping[str, Any] | None) -> dict[str, str] | None:
    """Render query params the way the server expects them.

    ``None`` values are dropped, sequences become comma-joined strings and
    booleans are lower-cased. The input mapping is left untouched.
    """
    if not params:
        return None
    cleaned: dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            cleaned[key] = "true" if value else "false"
        elif isinstance(value, (list, tuple, set, frozenset)):
            cleaned[key] = ",".join(str(v) for v in value)
        else:
            cleaned[key] = str(value)
    return cleaned or None


def parse_retry_after(value: str | None) -> float | None:
    """Parse a ``Retry-After`` header (delta-seconds or HTTP-date)."""
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)


async def _log_response(response: httpx.Response) -> None:
    request = response.request
    logger.debug("%s %s -> %d", request.method, request.url.path, response.status_code)


def _is_envelope(payload: Any) -> bool:
    return isinstance(payload, dict) and "data" in payload and "success" in payload


class HttpClient:
    """Async HTTP transport for one service.

    Every call goes: abort check, headers, cache lookup, rate limiter, then
    attempts with retry. Only :class:`ApiError` escapes ``request()``.
    """

    def __init__(
        self,
        config: ServiceConfig,
        *,
        service: str = "",
        tokens: TokenStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        cache: ResponseCache | None = None,
        rate_limiter: RateLimiter | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.service = service
        self.tokens = tokens if tokens is not None else TokenStore()
        self.cache = cache or ResponseCache(max_size=config.cache.max_size, namespace=service)
        self.rate_limiter = rate_limiter or RateLimiter(
            max_requests=config.rate_limit.max_requests,
            window=config.rate_limit.window,
            enabled=config.rate_limit.enabled,
        )
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=config.retries,
            base_delay=config.retry_delay,
            jitter=config.retry_jitter,
            max_delay=config.max_retry_delay,
        )
        self.counters = RequestCounters()
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                transport=self._transport,
                event_hooks=self._event_hooks(),
            )
        return self._client

    # ── Hooks ─────────────────────────────────────────────────────────

    def _event_hooks(self) -> dict[str, list]:
        return {
            "request": list(self.config.request_hooks),
            "response": [_log_response, *self.config.response_hooks],
        }

    def _refresh_hooks(self) -> None:
        if self._client is not None and not self._client.is_closed:
            self._client.event_hooks = self._event_hooks()

    def add_request_hook(self, hook: RequestHook) -> None:
        self.config.request_hooks.append(hook)
        self._refresh_hooks()

    def add_response_hook(self, hook: ResponseHook) -> None:
        self.config.response_hooks.append(hook)
        self._refresh_hooks()

    def add_error_hook(self, hook: ErrorHook) -> None:
        self.config.error_hooks.append(hook)

    async def _on_error(self, error: ApiError) -> ApiError:
        """Run the error hooks; a hook returning an ApiError replaces the error."""
        for hook in self.config.error_hooks:
            result = hook(error)
            if inspect.isawaitable(result):
                result = await result
            if isinstance(result, ApiError):
                error = result
        return error

    # ── Request pipeline ──────────────────────────────────────────────

    async def request(self, config: RequestConfig) -> ApiResponse:
        """Perform one logical request. Raises :class:`ApiError`."""
        self.counters.requests += 1
        try:
            return await self._execute(config)
        except ApiError as exc:
            self.counters.failures += 1
            error = await self._on_error(exc)
            if error is exc:
                raise
            raise error from exc

    async def _execute(self, config: RequestConfig) -> ApiResponse:
        options = config.options
        signal = options.signal
        method = config.method.upper()
        if signal is not None and signal.aborted:
            raise self._cancelled(method, config.path, signal)

        headers = self._build_headers(config)
        params = clean_params(config.params)

        ttl = self._cache_ttl(method, config)
        key = fingerprint(method, config.path, params, config.body, self.service) if ttl > 0 else None
        if key is not None:
            hit = self.cache.get(key)
            if hit is not None:
                self.counters.cache_hits += 1
                hit.cached = True
                logger.debug("Cache hit %s %s", method, config.path)
                return hit

        await self._guard(self.rate_limiter.acquire(), signal, None, method, config.path)

        policy = self.retry_policy
        if options.retries is not None:
            policy = policy.with_max_retries(options.retries)
        timeout = options.timeout if options.timeout is not None else self.config.timeout

        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self._attempt(method, config, params, headers, timeout, attempt)
                break
            except ApiError as exc:
                if exc.code == ErrorCode.CANCELLED.value or not policy.should_retry(exc, attempt):
                    if attempt > 1:
                        logger.error(
                            "%s %s failed after %d attempts: %s", method, config.path, attempt, exc.code
                        )
                    raise
                delay = policy.delay(attempt, exc)
                self.counters.retries += 1
                logger.warning(
                    "Retry %d/%d for %s %s after %.2fs: %s",
                    attempt,
                    policy.max_retries,
                    method,
                    config.path,
                    delay,
                    exc.code,
                )
                await self._guard(self._sleep(delay), signal, None, method, config.path)

        if signal is not None and signal.aborted:
            raise self._cancelled(method, config.path, signal)
        if key is not None:
            self.cache.set(key, response, ttl)
        return response

    async def _attempt(
        self,
        method: str,
        config: RequestConfig,
        params: dict[str, str] | None,
        headers: dict[str, str],
        timeout: float,
        attempt: int,
    ) -> ApiResponse:
        client = await self._ensure_client()
        self.counters.network_attempts += 1
        logger.debug("%s %s (attempt %d)", method, config.path, attempt)

        kwargs: dict[str, Any] = {"params": params, "headers": headers, "timeout": timeout}
        if config.files:
            kwargs["files"] = dict(config.files)
            if config.form:
                kwargs["data"] = {k: str(v) for k, v in config.form.items()}
        elif config.body is not None:
            kwargs["json"] = config.body

        try:
            resp = await self._guard(
                client.request(method, config.path, **kwargs),
                config.options.signal,
                timeout,
                method,
                config.path,
            )
        except httpx.TimeoutException as exc:
            raise ApiError(
                ErrorCode.TIMEOUT,
                f"Request timed out after {timeout:.1f}s",
                details=self._details(method, config.path),
            ) from exc
        except httpx.TransportError as exc:
            raise ApiError(
                ErrorCode.NETWORK_ERROR,
                f"Network error: {exc}",
                details=self._details(method, config.path),
            ) from exc
        return self._parse(resp, method, config.path)

    async def _guard(
        self,
        awaitable: Awaitable[Any],
        signal: AbortSignal | None,
        timeout: float | None,
        method: str,
        path: str,
    ) -> Any:
        """Await ``awaitable`` unless the signal fires or ``timeout`` passes first."""
        if signal is None and timeout is None:
            return await awaitable
        task = asyncio.ensure_future(awaitable)
        waiters: set[asyncio.Future] = {task}
        abort_waiter: asyncio.Future | None = None
        if signal is not None:
            abort_waiter = asyncio.ensure_future(signal.wait())
            waiters.add(abort_waiter)
        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if abort_waiter is not None:
                abort_waiter.cancel()
        if task in done:
            return task.result()
        task.cancel()
        if signal is not None and signal.aborted:
            raise self._cancelled(method, path, signal)
        raise ApiError(
            ErrorCode.TIMEOUT,
            f"Request timed out after {timeout:.1f}s",
            details=self._details(method, path),
        )

    # ── Helpers ───────────────────────────────────────────────────────

    def _build_headers(self, config: RequestConfig) -> dict[str, str]:
        options = config.options
        headers = {
            "Accept": "application/json",
            "X-Service": self.service,
            "X-Client-Version": CLIENT_VERSION,
        }
        headers.update(self.config.default_headers)
        if config.body is not None and not config.files:
            headers["Content-Type"] = "application/json"
        if options.authenticate:
            headers.update(self.tokens.authorization_header())
        if options.headers:
            headers.update(options.headers)
        return headers

    def _cache_ttl(self, method: str, config: RequestConfig) -> float:
        if not self.config.cache.enabled or method not in CACHEABLE_METHODS or config.files:
            return 0.0
        if config.options.cache is None:
            return self.config.cache.ttl
        return max(float(config.options.cache), 0.0)

    def _details(self, method: str, path: str, **extra: Any) -> dict[str, Any]:
        return {"service": self.service, "method": method, "path": path, **extra}

    def _cancelled(self, method: str, path: str, signal: AbortSignal) -> ApiError:
        message = "Request was cancelled"
        if signal.reason:
            message = f"{message}: {signal.reason}"
        return ApiError(ErrorCode.CANCELLED, message, details=self._details(method, path))

    def _parse(self, resp: httpx.Response, method: str, path: str) -> ApiResponse:
        if resp.status_code >= 400:
            raise self._http_error(resp, method, path)
        if resp.status_code == 204 or not resp.content:
            return ApiResponse(data=None)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise ApiError(
                ErrorCode.PARSE_ERROR,
                "Response body is not valid JSON",
                details=self._details(method, path, status=resp.status_code),
                status=resp.status_code,
            ) from exc
        if not _is_envelope(payload):
            return ApiResponse(data=payload)
        try:
            return ApiResponse.model_validate(payload)
        except ValidationError as exc:
            raise ApiError(
                ErrorCode.PARSE_ERROR,
                "Response envelope is malformed",
                details=self._details(method, path, errors=exc.error_count()),
                status=resp.status_code,
            ) from exc

    def _http_error(self, resp: httpx.Response, method: str, path: str) -> ApiError:
        status = resp.status_code
        message = resp.reason_phrase or f"HTTP {status}"
        details = self._details(method, path, status=status)
        try:
            body = resp.json() if resp.content else None
        except ValueError:
            body = None
        if isinstance(body, dict):
            error_body = body.get("error") if isinstance(body.get("error"), dict) else body
            if isinstance(error_body.get("message"), str) and error_body["message"]:
                message = error_body["message"]
            if isinstance(error_body.get("code"), str):
                details["server_code"] = error_body["code"]
            if error_body.get("details"):
                details["server_details"] = error_body["details"]
        return ApiError(
            http_error_code(status),
            message,
            details=details,
            status=status,
            retry_after=parse_retry_after(resp.headers.get("Retry-After")),
        )

    # ── Maintenance ───────────────────────────────────────────────────

    def clear_cache(self) -> int:
        cleared = self.cache.clear()
        logger.debug("Cleared %d cached responses for %s", cleared, self.service or "client")
        return cleared

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def reset_rate_limits(self) -> None:
        self.rate_limiter.reset()

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
