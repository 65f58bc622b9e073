"""Async API client layer for the community platform's backend services."""

__version__ = "1.0.0"

from sangha_api.abort import AbortSignal
from sangha_api.auth import TokenStore
from sangha_api.cache import CacheStats, ResponseCache, fingerprint
from sangha_api.client import (
    AdminServiceClient,
    AnalyticsServiceClient,
    BaseApiClient,
    CommunityServiceClient,
    ContentServiceClient,
    HttpClient,
    SearchServiceClient,
)
from sangha_api.config import ApiClientsConfig, RequestConfig, RequestOptions, ServiceConfig
from sangha_api.errors import (
    ApiError,
    ErrorCode,
    get_error_message,
    is_api_error,
    is_auth_error,
    is_network_error,
    is_retryable,
)
from sangha_api.factory import ApiClientFactory, get_api_client_factory
from sangha_api.models import (
    ApiResponse,
    BatchResult,
    ClientState,
    ClientStatus,
    PaginatedResponse,
    SearchQuery,
    SearchResponse,
    SystemHealth,
)
from sangha_api.rate_limit import RateLimiter
from sangha_api.retry import RetryPolicy, retry_api_call

__all__ = [
    "AbortSignal",
    "AdminServiceClient",
    "AnalyticsServiceClient",
    "ApiClientFactory",
    "ApiClientsConfig",
    "ApiError",
    "ApiResponse",
    "BaseApiClient",
    "BatchResult",
    "CacheStats",
    "ClientState",
    "ClientStatus",
    "CommunityServiceClient",
    "ContentServiceClient",
    "ErrorCode",
    "HttpClient",
    "PaginatedResponse",
    "RateLimiter",
    "RequestConfig",
    "RequestOptions",
    "ResponseCache",
    "RetryPolicy",
    "SearchQuery",
    "SearchResponse",
    "SearchServiceClient",
    "ServiceConfig",
    "SystemHealth",
    "TokenStore",
    "fingerprint",
    "get_api_client_factory",
    "get_error_message",
    "is_api_error",
    "is_auth_error",
    "is_network_error",
    "is_retryable",
    "retry_api_call",
]
