"""Tests for BaseApiClient: prefixes, validation helpers, pagination and health."""

from __future__ import annotations

import asyncio

import httpx
import pytest
import pytest_asyncio

from sangha_api.auth import TokenStore
from sangha_api.client.base import BaseApiClient, check_date_order, normalize_paging
from sangha_api.config import RequestOptions
from sangha_api.errors import ApiError
from sangha_api.models import ClientState, Post


class NotesClient(BaseApiClient):
    service_name = "notes"

    async def list_notes(self, page=None, limit=None):
        return await self._get_paginated("/notes", {"page": page, "limit": limit}, model=Post)

    async def get_note(self, note_id):
        note_id = self._require_id(note_id, "note_id")
        return await self._get(f"/notes/{note_id}", model=Post)


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client(config, server):
    """A minimal service client wired to the fake server."""
    c = NotesClient(config, transport=server.transport())
    yield c
    await c.close()


# ── Construction ──────────────────────────────────────────────────────────


class TestConstruction:
    def test_requires_service_name(self):
        class Nameless(BaseApiClient):
            pass

        with pytest.raises(TypeError):
            Nameless()

    def test_starts_ready(self, config):
        client = NotesClient(config)
        assert client.state == ClientState.READY
        assert client.last_status is None
        assert client.http.service == "notes"

    def test_shared_token_store(self, config):
        tokens = TokenStore()
        a = NotesClient(config, tokens=tokens)
        b = NotesClient(config, tokens=tokens)
        a.set_auth_token("abc")
        assert b.is_authenticated()
        b.clear_auth_token()
        assert not a.is_authenticated()


# ── Module helpers ────────────────────────────────────────────────────────


class TestPaging:
    def test_defaults(self):
        assert normalize_paging(None) == {"page": 1, "limit": 20}

    def test_clamping(self):
        assert normalize_paging({"page": 0, "limit": 500}) == {"page": 1, "limit": 100}
        assert normalize_paging({"page": -3, "limit": 0}) == {"page": 1, "limit": 1}

    def test_other_params_kept(self):
        assert normalize_paging({"sort": "latest", "tags": None}) == {"sort": "latest", "page": 1, "limit": 20}

    @pytest.mark.parametrize("value", ["2", 1.5, True])
    def test_non_integer_rejected(self, value):
        with pytest.raises(ApiError) as exc_info:
            normalize_paging({"page": value})
        assert exc_info.value.code == "VALIDATION_ERROR"


class TestDateOrder:
    def test_ordered(self):
        check_date_order("2024-05-01T10:00:00Z", "2024-05-01T12:00:00Z")

    @pytest.mark.parametrize(
        "start,end",
        [
            ("2024-05-01T12:00:00Z", "2024-05-01T10:00:00Z"),
            ("2024-05-01T12:00:00Z", "2024-05-01T12:00:00Z"),
            ("not a date", "2024-05-01T12:00:00Z"),
            ("2024-05-01T10:00:00", "2024-05-01T12:00:00Z"),
            (None, "2024-05-01T12:00:00Z"),
        ],
    )
    def test_rejected(self, start, end):
        with pytest.raises(ApiError) as exc_info:
            check_date_order(start, end)
        assert exc_info.value.code == "VALIDATION_ERROR"


class TestValidators:
    def test_require_id_quotes_segment(self):
        assert BaseApiClient._require_id("a/b c") == "a%2Fb%20c"
        assert BaseApiClient._require_id(42) == "42"

    @pytest.mark.parametrize("value", ["", "   ", None, True, 1.5])
    def test_require_id_rejects(self, value):
        with pytest.raises(ApiError):
            BaseApiClient._require_id(value)

    def test_clean_updates(self):
        cleaned = BaseApiClient._clean_updates(
            {"title": "  Hi ", "bio": "", "tags": [" a ", " "], "count": 0, "gone": None}
        )
        assert cleaned == {"title": "Hi", "tags": ["a"], "count": 0}

    def test_require_file(self):
        with pytest.raises(ApiError):
            BaseApiClient._require_file(b"", "image/png", max_bytes=10)
        with pytest.raises(ApiError) as too_big:
            BaseApiClient._require_file(b"x" * 11, "image/png", max_bytes=10)
        assert too_big.value.details["size"] == 11
        with pytest.raises(ApiError):
            BaseApiClient._require_file(b"x", "text/plain", max_bytes=10, allowed_types=("image/png",))
        BaseApiClient._require_file(b"x", "image/png", max_bytes=10, allowed_types=("image/png",))


# ── Requests ──────────────────────────────────────────────────────────────


class TestRequests:
    @pytest.mark.asyncio
    async def test_paths_are_prefixed(self, client, server):
        server.ok("GET", "/notes/notes/n 1", {"id": "n 1", "title": "Hello"})
        response = await client.get_note("n 1")
        assert isinstance(response.data, Post)
        assert response.data.title == "Hello"
        assert server.last.url.raw_path == b"/api/notes/notes/n%201"

    @pytest.mark.asyncio
    async def test_errors_carry_service_and_endpoint(self, client, server):
        server.fail("GET", "/notes/notes/x", 404)
        with pytest.raises(ApiError) as exc_info:
            await client.get_note("x")
        details = exc_info.value.details
        assert details["service"] == "notes"
        assert details["endpoint"] == "/notes/x"
        assert details["status"] == 404

    @pytest.mark.asyncio
    async def test_unexpected_shape_is_parse_error(self, client, server):
        server.ok("GET", "/notes/notes/x", ["not", "a", "post"])
        with pytest.raises(ApiError) as exc_info:
            await client.get_note("x")
        assert exc_info.value.code == "PARSE_ERROR"


class TestFetch:
    @pytest.mark.asyncio
    async def test_fetch_prefixes_and_passes_params(self, client, server):
        server.ok("GET", "/notes/archive", [])
        response = await client.fetch("archive", {"year": "2024"})
        assert response.data == []
        assert server.last.url.params["year"] == "2024"

    @pytest.mark.asyncio
    async def test_fetch_honours_options(self, client, server):
        server.ok("GET", "/notes/archive", [])
        await client.fetch("/archive", options=RequestOptions(cache=0))
        await client.fetch("/archive", options=RequestOptions(cache=0))
        assert len(server.requests) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["", "   ", None])
    async def test_fetch_requires_path(self, client, server, path):
        with pytest.raises(ApiError) as exc_info:
            await client.fetch(path)
        assert exc_info.value.code == "VALIDATION_ERROR"
        assert server.requests == []


class TestPagination:
    @pytest.mark.asyncio
    async def test_flat_metadata(self, client, server):
        server.page("GET", "/notes/notes", [{"id": "1"}, {"id": "2"}], page=1, limit=2, total=5)
        result = await client.list_notes(limit=2)
        assert [p.id for p in result.data] == ["1", "2"]
        assert result.has_next is True
        assert result.has_prev is False
        assert server.last.url.params["page"] == "1"
        assert server.last.url.params["limit"] == "2"

    @pytest.mark.asyncio
    async def test_nested_metadata(self, client, server):
        body = {
            "data": [{"id": "3"}],
            "success": True,
            "pagination": {"total": 3, "page": 3, "limit": 1, "hasNext": False, "hasPrev": True, "totalPages": 3},
        }
        server.on("GET", "/notes/notes", server.reply(200, body))
        result = await client.list_notes(page=3, limit=1)
        assert result.page == 3
        assert result.total_pages == 3
        assert result.has_prev is True

    @pytest.mark.asyncio
    async def test_inconsistent_flags_raise(self, client, server):
        body = server.page_envelope([{"id": "1"}], page=1, limit=20, total=1)
        body["hasNext"] = True
        server.on("GET", "/notes/notes", server.reply(200, body))
        with pytest.raises(ApiError) as exc_info:
            await client.list_notes()
        err = exc_info.value
        assert err.code == "PARSE_ERROR"
        assert err.details["reason"] == "pagination_mismatch"

    @pytest.mark.asyncio
    async def test_missing_metadata_raise(self, client, server):
        server.ok("GET", "/notes/notes", [{"id": "1"}])
        with pytest.raises(ApiError) as exc_info:
            await client.list_notes()
        assert exc_info.value.details["reason"] == "invalid_envelope"

    @pytest.mark.asyncio
    async def test_cached_flag_survives(self, client, server):
        server.page("GET", "/notes/notes", [{"id": "1"}])
        await client.list_notes()
        again = await client.list_notes()
        assert again.cached is True
        assert len(server.requests) == 1


# ── Health and stats ──────────────────────────────────────────────────────


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthy(self, client, server):
        server.ok("GET", "/notes/health", {"status": "ok"})
        client.set_auth_token("tok")
        status = await client.health_check()
        assert status.healthy is True
        assert status.name == "notes"
        assert status.error is None
        assert client.state == ClientState.READY
        assert client.last_status is status
        assert "Authorization" not in server.last.headers

    @pytest.mark.asyncio
    async def test_unhealthy_then_recovers(self, client, server):
        server.on("GET", "/notes/health", server.reply(503), server.reply(200, server.envelope({"status": "ok"})))
        down = await client.health_check()
        assert down.healthy is False
        assert down.state == ClientState.DEGRADED
        assert client.state == ClientState.DEGRADED
        assert len(server.requests) == 1
        up = await client.health_check()
        assert up.healthy is True
        assert client.state == ClientState.READY

    @pytest.mark.asyncio
    async def test_probe_is_never_cached(self, client, server):
        server.ok("GET", "/notes/health", {"status": "ok"})
        await client.health_check()
        await client.health_check()
        assert len(server.requests) == 2

    @pytest.mark.asyncio
    async def test_hanging_probe_is_bounded(self, client, server):
        async def hang(request):
            await asyncio.sleep(10)
            return httpx.Response(200)

        server.on("GET", "/notes/health", hang)
        status = await asyncio.wait_for(client.health_check(timeout=0.05), 2.0)
        assert status.healthy is False
        assert "timed out" in status.error


class TestStats:
    @pytest.mark.asyncio
    async def test_counts_requests_and_cache(self, client, server):
        server.ok("GET", "/notes/notes/1", {"id": "1"})
        await client.get_note("1")
        await client.get_note("1")
        stats = client.get_stats()
        assert stats.service == "notes"
        assert stats.cache_size == 1
        assert stats.cache_hit_rate == pytest.approx(0.5)
        assert stats.requests["requests"] == 2
        assert stats.requests["network_attempts"] == 1
        assert stats.requests["cache_hits"] == 1

    @pytest.mark.asyncio
    async def test_clear_cache(self, client, server):
        server.ok("GET", "/notes/notes/1", {"id": "1"})
        await client.get_note("1")
        assert client.clear_cache() == 1
        await client._get("/notes/1", None, RequestOptions(cache=0))
        assert len(server.requests) == 2
