"""Tests for the search service client."""

from __future__ import annotations

import json

import pytest
import pytest_asyncio

from sangha_api.client.search import SearchServiceClient, filter_params, query_ttl
from sangha_api.errors import ApiError
from sangha_api.models import SearchFilters, SearchQuery, SearchResponse, SearchResult

HIT = {"id": "p1", "type": "post", "title": "Python tips", "score": 0.9}


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client(config, server):
    """Search client wired to the fake server."""
    c = SearchServiceClient(config, transport=server.transport())
    yield c
    await c.close()


def body(request) -> dict:
    return json.loads(request.content)


# ── Module helpers ────────────────────────────────────────────────────────


class TestFilterParams:
    def test_empty(self):
        assert filter_params(None) == {}
        assert filter_params(SearchFilters()) == {}

    def test_flattening(self):
        filters = SearchFilters(
            category=["tech"],
            tags=["py", "web"],
            author="u1",
            date_range={"from": "2024-01-01", "to": "2024-02-01"},
            location={"lat": 52.5, "lng": 13.4, "radius": 10},
        )
        params = filter_params(filters)
        assert params["filter_category"] == ["tech"]
        assert params["filter_tags"] == ["py", "web"]
        assert params["filter_author"] == "u1"
        assert params["date_from"] == "2024-01-01"
        assert params["radius"] == 10


class TestQueryTtl:
    def test_filtered_queries_are_short_lived(self):
        assert query_ttl(SearchQuery(q="python", filters=SearchFilters(tags=["x"]))) == 30.0

    def test_short_broad_queries_live_longest(self):
        assert query_ttl(SearchQuery(q="python", type="all")) == 300.0

    def test_everything_else(self):
        assert query_ttl(SearchQuery(q="python", type="posts")) == 60.0
        assert query_ttl(SearchQuery(q="a much longer query", type="all")) == 60.0


# ── Search ────────────────────────────────────────────────────────────────


class TestSearch:
    @pytest.mark.asyncio
    async def test_blank_query_fails_without_network(self, client, server):
        for q in ("", "   "):
            with pytest.raises(ApiError) as exc_info:
                await client.search({"q": q})
            assert exc_info.value.code == "VALIDATION_ERROR"
        assert server.requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "query,field",
        [
            ({"q": None}, "q"),
            ({"q": 5}, "q"),
            ({"q": "x", "filters": {"category": "books"}}, "filters.category"),
            ({"q": "x", "filters": "books"}, "filters"),
        ],
    )
    async def test_malformed_query_is_validation_error(self, client, server, query, field):
        with pytest.raises(ApiError) as exc_info:
            await client.search(query)
        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.details["field"] == field
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_typed_helper_rejects_bad_filters(self, client, server):
        with pytest.raises(ApiError) as exc_info:
            await client.search_events("meetup", tags="python")
        assert exc_info.value.code == "VALIDATION_ERROR"
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_search_defaults(self, client, server):
        server.page("GET", "/search/search", [HIT], took=12.5, suggestions=["python tutorial"])
        result = await client.search({"q": " python "})
        assert isinstance(result, SearchResponse)
        assert isinstance(result.data[0], SearchResult)
        assert result.took == 12.5
        assert result.suggestions == ["python tutorial"]
        assert result.query.q == "python"
        params = server.last.url.params
        assert params["q"] == "python"
        assert params["type"] == "all"
        assert params["sort"] == "relevance"
        assert params["page"] == "1"
        assert params["limit"] == "20"

    @pytest.mark.asyncio
    async def test_limit_is_clamped(self, client, server):
        server.page("GET", "/search/search", [], limit=100)
        await client.search(SearchQuery(q="python", limit=1000))
        assert server.last.url.params["limit"] == "100"

    @pytest.mark.asyncio
    async def test_unknown_type_or_sort(self, client, server):
        with pytest.raises(ApiError):
            await client.search({"q": "x", "type": "videos"})
        with pytest.raises(ApiError):
            await client.search({"q": "x", "sort": "random"})
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_identical_searches_share_cache(self, client, server):
        server.page("GET", "/search/search", [HIT])
        await client.search({"q": "python"})
        again = await client.search(SearchQuery(q="python", type="all", sort="relevance", page=1, limit=20))
        assert again.cached is True
        assert len(server.requests) == 1

    @pytest.mark.asyncio
    async def test_search_posts_filters(self, client, server):
        server.page("GET", "/search/search", [HIT])
        await client.search_posts("python", category="tech", tags=["a", "b"], author_id="u1")
        params = server.last.url.params
        assert params["type"] == "posts"
        assert params["filter_category"] == "tech"
        assert params["filter_tags"] == "a,b"
        assert params["filter_author"] == "u1"

    @pytest.mark.asyncio
    async def test_search_users_location(self, client, server):
        server.page("GET", "/search/search", [{"id": "u1", "type": "user"}])
        result = await client.search_users("ada", location={"lat": 1.5, "lng": 2.5, "radius": 5})
        assert result.data[0].type == "user"
        assert server.last.url.params["lat"] == "1.5"

    @pytest.mark.asyncio
    async def test_inconsistent_pagination_is_parse_error(self, client, server):
        payload = server.page_envelope([HIT], page=1, limit=20, total=1)
        payload["hasPrev"] = True
        server.on("GET", "/search/search", server.reply(200, payload))
        with pytest.raises(ApiError) as exc_info:
            await client.search({"q": "python"})
        assert exc_info.value.details["reason"] == "pagination_mismatch"


# ── Suggestions ───────────────────────────────────────────────────────────


class TestSuggestions:
    @pytest.mark.asyncio
    async def test_short_input_answers_locally(self, client, server):
        response = await client.get_suggestions("p")
        assert response.data["suggestions"] == []
        assert (await client.get_auto_complete("tags", " a ")).data == []
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_suggestions(self, client, server):
        server.ok("GET", "/search/suggestions", {"query": "py", "suggestions": ["python"]})
        response = await client.get_suggestions("py", include_recent=True)
        assert response.data["suggestions"] == ["python"]
        assert server.last.url.params["includeRecent"] == "true"

    @pytest.mark.asyncio
    async def test_autocomplete_field(self, client, server):
        server.ok("GET", "/search/autocomplete/tags", ["python", "pyramid"])
        await client.get_auto_complete("tags", "py", limit=500)
        assert server.last.url.params["limit"] == "50"
        with pytest.raises(ApiError):
            await client.get_auto_complete("colors", "py")


# ── Advanced and recommendations ──────────────────────────────────────────


class TestAdvanced:
    @pytest.mark.asyncio
    async def test_faceted_search(self, client, server):
        server.ok("POST", "/search/faceted", {"results": [], "facets": {}})
        await client.faceted_search("python", facets=["category", "tags"], filters={"category": ["tech"]})
        sent = body(server.last)
        assert sent["facets"] == "category,tags"
        assert sent["filter_category"] == "tech"
        assert sent["page"] == 1

    @pytest.mark.asyncio
    async def test_similar_items(self, client, server):
        server.ok("GET", "/search/similar/post/p1", [HIT])
        response = await client.find_similar("p1", "post", limit=5)
        assert response.data[0].id == "p1"
        with pytest.raises(ApiError):
            await client.find_similar("p1", "planet")

    @pytest.mark.asyncio
    async def test_interest_recommendations(self, client, server):
        server.ok("POST", "/search/recommendations/interests", [])
        await client.get_recommendations_by_interests([" hiking ", "", "books"])
        assert body(server.last)["interests"] == ["hiking", "books"]
        with pytest.raises(ApiError):
            await client.get_recommendations_by_interests(["  "])
        assert len(server.requests) == 1

    @pytest.mark.asyncio
    async def test_record_interaction(self, client, server):
        server.ok("POST", "/search/analytics/interaction")
        await client.record_search_interaction({"query": "python", "action": "click", "resultId": "p1"})
        with pytest.raises(ApiError):
            await client.record_search_interaction({"query": "python", "action": "hover"})
        assert len(server.requests) == 1

    @pytest.mark.asyncio
    async def test_rebuild_index(self, client, server):
        server.ok("POST", "/search/admin/index/rebuild", {"jobId": "j1"})
        await client.rebuild_index("posts")
        with pytest.raises(ApiError):
            await client.rebuild_index("comments")


class TestLocalCache:
    @pytest.mark.asyncio
    async def test_clear_user_search_cache(self, client, server):
        server.page("GET", "/search/search", [HIT])
        await client.search({"q": "python"})
        assert client.clear_user_search_cache() == 1
        await client.search({"q": "python"})
        assert len(server.requests) == 2

    @pytest.mark.asyncio
    async def test_performance_metrics(self, client, server):
        server.page("GET", "/search/search", [HIT])
        await client.search({"q": "python"})
        await client.search({"q": "python"})
        metrics = client.get_search_performance_metrics()
        assert metrics["cache"]["size"] == 1
        assert metrics["cache"]["hit_rate"] == pytest.approx(0.5)
        assert metrics["requests"]["network_attempts"] == 1
