"""Per-service base client: path prefixing, validation, pagination and health."""
from __future__ import annotations
import logging
import time
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import TypeAdapter, ValidationError

from sangha_api.auth import TokenStore
from sangha_api.config import DEFAULT_OPTIONS, RequestConfig, RequestOptions, ServiceConfig
from sangha_api.errors import ApiError, ErrorCode, validation_error
from sangha_api.models import ApiResponse, ClientState, ClientStats, ClientStatus, PaginatedResponse
from sangha_api.client.http import HttpClient

logger = logging.getLogger("sangha_api.base")

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100
MB = 1024 * 1024


def _page_value(name: str, value: Any, default: int, low: int, high: int | None = None) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise validation_error(f"{name} must be an integer", field=name, value=repr(value))
    value = max(value, low)
    if high is not None:
        value = min(value, high)
    return value


def parse_date(value: Any, field: str) -> datetime:
    """Parse an ISO-8601 date, raising ``VALIDATION_ERROR`` on bad input."""
    if not isinstance(value, str) or not value.strip():
        raise validation_error(f"{field} is required", field=field)
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as exc:
        raise validation_error("Invalid date format", field=field, value=value) from exc


def check_date_order(start: Any, end: Any) -> None:
    """Require ``end`` to fall strictly after ``start``."""
    start_at = parse_date(start, "start_date")
    end_at = parse_date(end, "end_date")
    try:
        ordered = end_at > start_at
    except TypeError as exc:
        raise validation_error("Dates must both carry a timezone or neither", field="end_date") from exc
    if not ordered:
        raise validation_error("End date must be after start date", field="end_date")


def normalize_paging(
    params: Mapping[str, Any] | None,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> dict[str, Any]:
    """Copy ``params`` with ``page`` >= 1 and ``limit`` clamped to 1..max_limit."""
    query = {k: v for k, v in (params or {}).items() if v is not None}
    query["page"] = _page_value("page", query.get("page"), DEFAULT_PAGE, 1)
    query["limit"] = _page_value("limit", query.get("limit"), default_limit, 1, max_limit)
    return query


class BaseApiClient:
    """Base class for the service clients.

    Subclasses set ``service_name``; every path they pass is prefixed with
    ``/<service_name>``. Each instance owns its :class:`HttpClient` and so its
    own cache namespace, while the :class:`TokenStore` may be shared.
    """

    service_name: str = ""

    def __init__(
        self,
        config: ServiceConfig | None = None,
        *,
        tokens: TokenStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not self.service_name:
            raise TypeError(f"{type(self).__name__} must define service_name")
        self.state = ClientState.UNINITIALIZED
        self.config = config or ServiceConfig()
        self.tokens = tokens if tokens is not None else TokenStore()
        self.http = HttpClient(
            self.config,
            service=self.service_name,
            tokens=self.tokens,
            transport=transport,
        )
        self.last_status: ClientStatus | None = None
        self.state = ClientState.READY
        logger.debug("Initialized %s client at %s", self.service_name, self.config.base_url)

    def _path(self, path: str) -> str:
        return f"/{self.service_name}{path}"

    # ── Request helpers ───────────────────────────────────────────────

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        files: Mapping[str, Any] | None = None,
        form: Mapping[str, Any] | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        request = RequestConfig(
            method=method,
            path=self._path(path),
            params=params,
            body=body,
            files=files,
            form=form,
            options=options or DEFAULT_OPTIONS,
        )
        try:
            return await self.http.request(request)
        except ApiError as exc:
            raise exc.with_details(service=self.service_name, endpoint=path) from exc

    def _coerce(self, response: ApiResponse, model: Any) -> ApiResponse:
        if model is None:
            return response
        try:
            data = TypeAdapter(model).validate_python(response.data)
        except ValidationError as exc:
            raise ApiError(
                ErrorCode.PARSE_ERROR,
                f"Unexpected {self.service_name} response shape",
                details={"service": self.service_name, "errors": exc.error_count()},
            ) from exc
        return response.model_copy(update={"data": data})

    async def _get(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        options: RequestOptions | None = None,
        *,
        model: Any = None,
    ) -> ApiResponse:
        response = await self._send("GET", path, params=params, options=options)
        return self._coerce(response, model)

    async def _post(
        self,
        path: str,
        body: Any = None,
        options: RequestOptions | None = None,
        *,
        model: Any = None,
    ) -> ApiResponse:
        response = await self._send("POST", path, body=body, options=options)
        return self._coerce(response, model)

    async def _put(
        self,
        path: str,
        body: Any = None,
        options: RequestOptions | None = None,
        *,
        model: Any = None,
    ) -> ApiResponse:
        response = await self._send("PUT", path, body=body, options=options)
        return self._coerce(response, model)

    async def _patch(
        self,
        path: str,
        body: Any = None,
        options: RequestOptions | None = None,
        *,
        model: Any = None,
    ) -> ApiResponse:
        response = await self._send("PATCH", path, body=body, options=options)
        return self._coerce(response, model)

    async def _delete(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        options: RequestOptions | None = None,
        *,
        model: Any = None,
    ) -> ApiResponse:
        response = await self._send("DELETE", path, params=params, options=options)
        return self._coerce(response, model)

    async def fetch(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        """GET any path below this service's prefix, for operator tooling.

        Application code should prefer the typed service methods.
        """
        if not isinstance(path, str) or not path.strip():
            raise validation_error("path is required", field="path")
        path = path.strip()
        if not path.startswith("/"):
            path = f"/{path}"
        return await self._get(path, params or None, options)

    async def _get_paginated(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        options: RequestOptions | None = None,
        *,
        model: Any = None,
    ) -> PaginatedResponse:
        """GET a paginated list and check its metadata.

        Raises ``PARSE_ERROR`` when ``has_next``/``has_prev`` disagree with
        ``page``, ``limit`` and ``total`` instead of patching them up.
        """
        query = normalize_paging(params)
        response = await self._send("GET", path, params=query, options=options)
        envelope = PaginatedResponse[model] if model is not None else PaginatedResponse
        return self._paginate(response, envelope, path)

    def _paginate(self, response: ApiResponse, envelope: type[PaginatedResponse], path: str) -> Any:
        try:
            page = envelope.model_validate(response.model_dump(by_alias=True))
        except ValidationError as exc:
            raise ApiError(
                ErrorCode.PARSE_ERROR,
                "Paginated response is malformed",
                details={"service": self.service_name, "endpoint": path, "reason": "invalid_envelope"},
            ) from exc
        if not page.is_consistent():
            raise ApiError(
                ErrorCode.PARSE_ERROR,
                "Pagination metadata is inconsistent",
                details={
                    "service": self.service_name,
                    "endpoint": path,
                    "reason": "pagination_mismatch",
                    "page": page.page,
                    "limit": page.limit,
                    "total": page.total,
                    "has_next": page.has_next,
                    "has_prev": page.has_prev,
                },
            )
        page.cached = response.cached
        return page

    async def _upload(
        self,
        path: str,
        filename: str,
        content: bytes,
        mime_type: str,
        *,
        form: Mapping[str, Any] | None = None,
        options: RequestOptions | None = None,
        model: Any = None,
    ) -> ApiResponse:
        """POST ``content`` as multipart ``file`` with optional extra form fields."""
        fields = None
        if form:
            fields = {k: v for k, v in form.items() if v is not None}
        response = await self._send(
            "POST",
            path,
            files={"file": (filename, content, mime_type)},
            form=fields,
            options=(options or DEFAULT_OPTIONS).merge(cache=0),
        )
        return self._coerce(response, model)

    @staticmethod
    def _cached(ttl: float, options: RequestOptions | None = None) -> RequestOptions:
        """Use ``ttl`` unless the caller picked a cache setting."""
        options = options or DEFAULT_OPTIONS
        if options.cache is not None:
            return options
        return options.merge(cache=ttl)

    # ── Local validation ──────────────────────────────────────────────

    @staticmethod
    def _require_text(value: Any, field: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise validation_error(f"{field} is required", field=field)
        return value.strip()

    @staticmethod
    def _require_id(value: Any, field: str = "id") -> str:
        """Validate an identifier and quote it for use as a path segment."""
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            raise validation_error(f"{field} is required", field=field)
        text = str(value).strip()
        if not text:
            raise validation_error(f"{field} is required", field=field)
        return quote(text, safe="")

    @staticmethod
    def _require_choice(value: Any, choices: Iterable[str], field: str) -> str:
        allowed = tuple(choices)
        if value not in allowed:
            raise validation_error(
                f"{field} must be one of: {', '.join(allowed)}",
                field=field,
                value=value,
            )
        return value

    @staticmethod
    def _require_items(values: Any, field: str) -> list:
        if not isinstance(values, (list, tuple)) or not values:
            raise validation_error(f"{field} must be a non-empty list", field=field)
        return list(values)

    @staticmethod
    def _require_file(
        content: Any,
        mime_type: str,
        *,
        max_bytes: int,
        allowed_types: Iterable[str] | None = None,
    ) -> None:
        if not isinstance(content, (bytes, bytearray)) or not content:
            raise validation_error("File is required", field="file")
        if len(content) > max_bytes:
            raise validation_error(
                f"File size must be less than {max_bytes // MB}MB",
                field="file",
                size=len(content),
                max_bytes=max_bytes,
            )
        if allowed_types is not None and mime_type not in tuple(allowed_types):
            raise validation_error("File type not supported", field="file", mime_type=mime_type)

    @staticmethod
    def _clean_updates(updates: Mapping[str, Any]) -> dict[str, Any]:
        """Drop empty values, trim strings and drop blank entries from string lists."""
        cleaned: dict[str, Any] = {}
        for key, value in updates.items():
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            if isinstance(value, str):
                cleaned[key] = value.strip()
            elif isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
                cleaned[key] = [v.strip() for v in value if v.strip()]
            else:
                cleaned[key] = value
        return cleaned

    # ── Auth ──────────────────────────────────────────────────────────

    def set_auth_token(self, token: str) -> None:
        self.tokens.set(token)

    def clear_auth_token(self) -> None:
        self.tokens.clear()

    def is_authenticated(self) -> bool:
        return self.tokens.is_set

    # ── Maintenance and health ────────────────────────────────────────

    def clear_cache(self) -> int:
        return self.http.clear_cache()

    def reset_rate_limits(self) -> None:
        self.http.reset_rate_limits()

    def get_stats(self) -> ClientStats:
        cache = self.http.cache_stats()
        return ClientStats(
            service=self.service_name,
            state=self.state,
            authenticated=self.is_authenticated(),
            cache_size=cache.size,
            cache_max_size=cache.max_size,
            cache_hit_rate=cache.hit_rate,
            requests=self.http.counters.as_dict(),
        )

    async def health_check(self, timeout: float | None = None) -> ClientStatus:
        """Probe ``/<service><health_path>`` once, uncached and unauthenticated."""
        timeout = timeout if timeout is not None else self.config.probe_timeout
        options = RequestOptions(cache=0, retries=0, timeout=timeout, authenticate=False)
        started = time.perf_counter()
        try:
            await self.http.request(
                RequestConfig(method="GET", path=self._path(self.config.health_path), options=options)
            )
        except ApiError as exc:
            self.state = ClientState.DEGRADED
            status = ClientStatus(
                name=self.service_name,
                healthy=False,
                latency_ms=int((time.perf_counter() - started) * 1000),
                error=exc.message,
                state=self.state,
            )
            logger.warning("Health check failed for %s: %s %s", self.service_name, exc.code, exc.message)
        else:
            self.state = ClientState.READY
            status = ClientStatus(
                name=self.service_name,
                healthy=True,
                latency_ms=int((time.perf_counter() - started) * 1000),
                state=self.state,
            )
        self.last_status = status
        return status

    async def close(self):
        await self.http.close()
