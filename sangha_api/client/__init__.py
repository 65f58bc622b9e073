from sangha_api.client.admin import AdminServiceClient
from sangha_api.client.analytics import AnalyticsServiceClient
from sangha_api.client.base import BaseApiClient
from sangha_api.client.community import CommunityServiceClient
from sangha_api.client.content import ContentServiceClient
from sangha_api.client.http import HttpClient, RequestCounters
from sangha_api.client.search import SearchServiceClient

__all__ = [
    "AdminServiceClient",
    "AnalyticsServiceClient",
    "BaseApiClient",
    "CommunityServiceClient",
    "ContentServiceClient",
    "HttpClient",
    "RequestCounters",
    "SearchServiceClient",
]
