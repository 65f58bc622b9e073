"""Search service client: full-text search, suggestions, recommendations and index admin."""
from __future__ import annotations
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from sangha_api.client.base import MAX_LIMIT, BaseApiClient
from sangha_api.config import RequestOptions
from sangha_api.errors import validation_error
from sangha_api.models import ApiResponse, SearchFilters, SearchQuery, SearchResponse, SearchResult

SEARCH_TYPES = ("all", "posts", "users", "groups", "events")
SEARCH_SORTS = ("relevance", "date", "popularity")
AUTOCOMPLETE_FIELDS = ("tags", "categories", "locations", "skills")
SIMILAR_TYPES = ("post", "user", "group", "event")
INTERACTION_ACTIONS = ("search", "click", "view", "share", "bookmark")
INDEX_TYPES = ("posts", "users", "groups", "events", "all")

MIN_SUGGEST_LENGTH = 2
SHORT_QUERY_LENGTH = 10


def _clamp(value: int | None, default: int, high: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise validation_error("limit must be an integer", field="limit", value=repr(value))
    return min(high, max(1, value))


def filter_params(filters: SearchFilters | None) -> dict[str, Any]:
    """Flatten search filters into query parameters."""
    if filters is None or filters.is_empty():
        return {}
    params: dict[str, Any] = {
        "filter_category": filters.category or None,
        "filter_tags": filters.tags or None,
        "filter_author": filters.author,
        "filter_group": filters.group,
    }
    if filters.date_range:
        params["date_from"] = filters.date_range.get("from")
        params["date_to"] = filters.date_range.get("to")
    if filters.location:
        params["lat"] = filters.location.get("lat")
        params["lng"] = filters.location.get("lng")
        params["radius"] = filters.location.get("radius")
    return params


def build_query(data: Mapping[str, Any]) -> SearchQuery:
    """Validate a query mapping, raising ``VALIDATION_ERROR`` on a bad shape."""
    try:
        return SearchQuery.model_validate(dict(data))
    except ValidationError as exc:
        first = exc.errors()[0]
        raise validation_error(
            "Invalid search query",
            field=".".join(str(part) for part in first["loc"]),
            errors=exc.error_count(),
        ) from exc


def query_ttl(query: SearchQuery) -> float:
    """Filtered queries go stale fastest; short untyped ones the slowest."""
    if query.filters is not None and not query.filters.is_empty():
        return 30.0
    if len(query.q) < SHORT_QUERY_LENGTH and query.type == "all":
        return 300.0
    return 60.0


class SearchServiceClient(BaseApiClient):
    service_name = "search"

    # ── Search ────────────────────────────────────────────────────────

    def normalize_query(self, query: SearchQuery | Mapping[str, Any]) -> SearchQuery:
        """Validate and fill defaults. Raises ``VALIDATION_ERROR`` on a blank query."""
        if not isinstance(query, SearchQuery):
            if not isinstance(query, Mapping):
                raise validation_error("Search query is required", field="q")
            query = build_query(query)
        q = self._require_text(query.q, "q")
        kind = self._require_choice(query.type or "all", SEARCH_TYPES, "type")
        sort = self._require_choice(query.sort or "relevance", SEARCH_SORTS, "sort")
        page = query.page if query.page is not None else 1
        if isinstance(page, bool) or not isinstance(page, int):
            raise validation_error("page must be an integer", field="page")
        return query.model_copy(
            update={
                "q": q,
                "type": kind,
                "sort": sort,
                "page": max(1, page),
                "limit": _clamp(query.limit, 20, MAX_LIMIT),
            }
        )

    async def search(
        self,
        query: SearchQuery | Mapping[str, Any],
        options: RequestOptions | None = None,
    ) -> SearchResponse:
        """Run a search over ``GET /search``.

        A blank ``q`` fails locally without touching the network. Filters are
        flattened into query parameters so identical searches share a cache
        entry.
        """
        normalized = self.normalize_query(query)
        params = {
            "q": normalized.q,
            "type": normalized.type,
            "sort": normalized.sort,
            "page": normalized.page,
            "limit": normalized.limit,
            **filter_params(normalized.filters),
        }
        response = await self._send(
            "GET", "/search", params=params, options=self._cached(query_ttl(normalized), options)
        )
        result = self._paginate(response, SearchResponse, "/search")
        if result.query is None:
            result.query = normalized
        return result

    async def search_posts(
        self,
        q: str,
        *,
        category: str | None = None,
        tags: list[str] | None = None,
        author_id: str | None = None,
        date_range: dict[str, str] | None = None,
        sort: str = "relevance",
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> SearchResponse:
        filters = {
            "category": [category] if category else None,
            "tags": tags,
            "author": author_id,
            "date_range": date_range,
        }
        query = build_query({"q": q, "type": "posts", "filters": filters, "sort": sort, "page": page, "limit": limit})
        return await self.search(query, options)

    async def search_users(
        self,
        q: str,
        *,
        location: dict[str, float] | None = None,
        sort: str = "relevance",
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> SearchResponse:
        filters = {"location": location}
        query = build_query({"q": q, "type": "users", "filters": filters, "sort": sort, "page": page, "limit": limit})
        return await self.search(query, options)

    async def search_groups(
        self,
        q: str,
        *,
        category: str | None = None,
        location: dict[str, float] | None = None,
        sort: str = "relevance",
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> SearchResponse:
        filters = {"category": [category] if category else None, "location": location}
        query = build_query({"q": q, "type": "groups", "filters": filters, "sort": sort, "page": page, "limit": limit})
        return await self.search(query, options)

    async def search_events(
        self,
        q: str,
        *,
        date_range: dict[str, str] | None = None,
        location: dict[str, float] | None = None,
        tags: list[str] | None = None,
        sort: str = "relevance",
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> SearchResponse:
        filters = {"date_range": date_range, "location": location, "tags": tags}
        query = build_query({"q": q, "type": "events", "filters": filters, "sort": sort, "page": page, "limit": limit})
        return await self.search(query, options)

    # ── Suggestions ───────────────────────────────────────────────────

    async def get_suggestions(
        self,
        q: str,
        *,
        type: str | None = None,
        limit: int | None = None,
        include_recent: bool | None = None,
        include_popular: bool | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        """Query suggestions. Inputs under two characters answer locally with nothing."""
        text = q.strip() if isinstance(q, str) else ""
        if len(text) < MIN_SUGGEST_LENGTH:
            return ApiResponse(data={"query": q or "", "suggestions": [], "recent": [], "popular": []})
        params = {
            "q": text,
            "type": type,
            "limit": limit,
            "includeRecent": include_recent,
            "includePopular": include_popular,
        }
        return await self._get("/suggestions", params, self._cached(30.0, options))

    async def get_auto_complete(
        self,
        field: str,
        q: str,
        limit: int = 10,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        self._require_choice(field, AUTOCOMPLETE_FIELDS, "field")
        text = q.strip() if isinstance(q, str) else ""
        if len(text) < MIN_SUGGEST_LENGTH:
            return ApiResponse(data=[])
        params = {"q": text, "limit": _clamp(limit, 10, 50)}
        return await self._get(f"/autocomplete/{field}", params, self._cached(60.0, options))

    # ── Advanced ──────────────────────────────────────────────────────

    async def faceted_search(
        self,
        q: str,
        *,
        type: str = "all",
        facets: list[str] | None = None,
        filters: dict[str, list[str]] | None = None,
        sort: str = "relevance",
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        body: dict[str, Any] = {
            "q": self._require_text(q, "q"),
            "type": self._require_choice(type, SEARCH_TYPES, "type"),
            "facets": ",".join(facets) if facets else None,
            "sort": self._require_choice(sort, SEARCH_SORTS, "sort"),
            "page": max(1, page or 1),
            "limit": _clamp(limit, 20, MAX_LIMIT),
        }
        for key, values in (filters or {}).items():
            if values:
                body[f"filter_{key}"] = ",".join(values)
        return await self._post("/faceted", body, options)

    async def find_similar(
        self,
        item_id: str,
        item_type: str,
        *,
        limit: int | None = None,
        threshold: float = 0.5,
        include_metadata: bool = False,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        item_id = self._require_id(item_id, "item_id")
        self._require_choice(item_type, SIMILAR_TYPES, "item_type")
        params = {"limit": _clamp(limit, 10, 50), "threshold": threshold, "includeMetadata": include_metadata}
        return await self._get(
            f"/similar/{item_type}/{item_id}", params, self._cached(300.0, options), model=list[SearchResult]
        )

    async def get_trending(
        self,
        *,
        type: str = "all",
        timeframe: str = "24h",
        category: str | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        params = {"type": type, "timeframe": timeframe, "category": category, "limit": _clamp(limit, 20, MAX_LIMIT)}
        return await self._get("/trending", params, self._cached(300.0, options))

    # ── Recommendations ───────────────────────────────────────────────

    async def get_recommendations(
        self,
        *,
        types: list[str] | None = None,
        categories: list[str] | None = None,
        limit: int | None = None,
        diversify: bool = True,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        params = {
            "types": types,
            "limit": _clamp(limit, 10, 50),
            "categories": categories,
            "diversify": diversify,
        }
        return await self._get("/recommendations", params, self._cached(600.0, options))

    async def get_recommendations_by_interests(
        self,
        interests: list[str],
        *,
        type: str = "all",
        limit: int | None = None,
        exclude_viewed: bool = True,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        interests = [i.strip() for i in self._require_items(interests, "interests") if isinstance(i, str) and i.strip()]
        if not interests:
            raise validation_error("At least one interest is required", field="interests")
        body = {
            "interests": interests,
            "type": self._require_choice(type, SEARCH_TYPES, "type"),
            "limit": _clamp(limit, 10, 50),
            "excludeViewed": exclude_viewed,
        }
        return await self._post("/recommendations/interests", body, options)

    async def get_collaborative_recommendations(
        self,
        *,
        type: str = "posts",
        algorithm: str = "user_based",
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        params = {"type": type, "limit": _clamp(limit, 10, 50), "algorithm": algorithm}
        return await self._get("/recommendations/collaborative", params, self._cached(600.0, options))

    # ── Analytics and index ───────────────────────────────────────────

    async def record_search_interaction(self, interaction: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        body = dict(interaction)
        body["query"] = self._require_text(interaction.get("query"), "query")
        if interaction.get("action") is not None:
            self._require_choice(interaction["action"], INTERACTION_ACTIONS, "action")
        return await self._post("/analytics/interaction", body, options)

    async def get_search_analytics(
        self,
        *,
        start_date: str | None = None,
        end_date: str | None = None,
        granularity: str | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        params = {"startDate": start_date, "endDate": end_date, "granularity": granularity}
        return await self._get("/analytics/search", params, self._cached(300.0, options))

    async def rebuild_index(self, type: str = "all", options: RequestOptions | None = None) -> ApiResponse:
        self._require_choice(type, INDEX_TYPES, "type")
        return await self._post("/admin/index/rebuild", {"type": type}, options)

    async def get_index_stats(self, options: RequestOptions | None = None) -> ApiResponse:
        return await self._get("/admin/index/stats", None, self._cached(60.0, options))

    # ── Local ─────────────────────────────────────────────────────────

    def clear_user_search_cache(self) -> int:
        """Forget every cached search result for this client."""
        return self.clear_cache()

    def get_search_performance_metrics(self) -> dict[str, Any]:
        stats = self.http.cache_stats()
        return {
            "cache": {"size": stats.size, "max_size": stats.max_size, "hit_rate": stats.hit_rate},
            "requests": self.http.counters.as_dict(),
        }
