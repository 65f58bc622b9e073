"""Error taxonomy for the API clients.

Every failure that leaves the transport boundary is an :class:`ApiError`.
Callers branch on ``error.code`` (or the predicates below), never on the
underlying ``httpx`` exception type.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PARSE_ERROR = "PARSE_ERROR"


NETWORK_CODES = frozenset({ErrorCode.NETWORK_ERROR.value, ErrorCode.TIMEOUT.value})
AUTH_CODES = frozenset({
    ErrorCode.UNAUTHORIZED.value,
    ErrorCode.FORBIDDEN.value,
    "HTTP_401",
    "HTTP_403",
})


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def http_error_code(status: int) -> str:
    """Map an HTTP status to its error code (401/403 get named codes)."""
    if status == 401:
        return ErrorCode.UNAUTHORIZED.value
    if status == 403:
        return ErrorCode.FORBIDDEN.value
    return f"HTTP_{status}"


class ApiError(Exception):
    """Normalized API failure.

    Attributes:
        code: Error code from the closed taxonomy (``ErrorCode`` values or
            ``HTTP_<status>``).
        message: Human-readable description.
        timestamp: ISO-8601 time the error was created.
        details: Optional structured context (service, path, status, ...).
        status: HTTP status when the server answered, else ``None``.
        retry_after: Seconds hinted by a ``Retry-After`` header, if any.
    """

    def __init__(
        self,
        code: str | ErrorCode,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        status: int | None = None,
        retry_after: float | None = None,
        timestamp: str | None = None,
    ):
        super().__init__(message)
        self.code = code.value if isinstance(code, ErrorCode) else code
        self.message = message
        self.details = details
        self.status = status
        self.retry_after = retry_after
        self.timestamp = timestamp or _now()

    def __repr__(self) -> str:
        return f"ApiError(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict[str, Any]:
        """Return the error envelope surfaced to callers."""
        data: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        if self.details:
            data["details"] = self.details
        return data

    def with_details(self, **extra: Any) -> ApiError:
        """Return a copy with ``extra`` merged into ``details``."""
        merged = {**(self.details or {}), **extra}
        return ApiError(
            self.code,
            self.message,
            details=merged,
            status=self.status,
            retry_after=self.retry_after,
            timestamp=self.timestamp,
        )


def validation_error(message: str, **details: Any) -> ApiError:
    """Build a local, pre-network validation failure."""
    return ApiError(ErrorCode.VALIDATION_ERROR, message, details=details or None)


def is_api_error(error: object) -> bool:
    return isinstance(error, ApiError)


def is_network_error(error: object) -> bool:
    """True for connectivity failures (``NETWORK_ERROR``, ``TIMEOUT``)."""
    return isinstance(error, ApiError) and error.code in NETWORK_CODES


def is_auth_error(error: object) -> bool:
    """True when the caller should re-authenticate."""
    return isinstance(error, ApiError) and error.code in AUTH_CODES


def is_client_error(error: object) -> bool:
    """True for 4xx rejections, including the named 401/403 codes."""
    if not isinstance(error, ApiError):
        return False
    return error.code.startswith("HTTP_4") or error.code in AUTH_CODES


def is_retryable(error: object) -> bool:
    """True when repeating the same request may succeed.

    429, 5xx, network failures and timeouts qualify. Cancellation, local
    validation, parse failures and every other 4xx do not.
    """
    if not isinstance(error, ApiError):
        return False
    if error.code in NETWORK_CODES or error.code == "HTTP_429":
        return True
    return error.code.startswith("HTTP_5")


def get_error_message(error: object) -> str:
    """Extract a user-facing message from any error."""
    if isinstance(error, ApiError):
        return error.message
    if isinstance(error, Exception):
        return str(error)
    return "An unexpected error occurred"
