"""Tests for the python -m sangha_api command-line interface."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest
import pytest_asyncio

from sangha_api import __main__ as cli
from sangha_api.config import SERVICE_NAMES, ApiClientsConfig
from sangha_api.factory import ApiClientFactory


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def factory(clients_config, server):
    """Factory wired to the fake server."""
    f = ApiClientFactory(clients_config, transport=server.transport())
    yield f
    await f.aclose()


@pytest.fixture
def parser():
    return cli.build_parser()


# ── Argument parsing ──────────────────────────────────────────────────────


class TestParser:
    def test_command_is_required(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args([])

    def test_get_arguments(self, parser):
        args = parser.parse_args(["get", "content", "/posts", "--param", "page=2", "--param", "tag=py"])
        assert args.command == "get"
        assert args.service == "content"
        assert args.param == ["page=2", "tag=py"]

    def test_unknown_service_rejected(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args(["get", "billing", "/x"])

    def test_overrides(self, parser):
        args = parser.parse_args(
            ["--base-url", "http://api.example.org", "--timeout", "3", "--environment", "staging", "-v",
             "health", "--probe-timeout", "0.5"]
        )
        config = cli.apply_cli_overrides(ApiClientsConfig(), args)
        assert config.base_url == "http://api.example.org"
        assert config.timeout == 3.0
        assert config.environment == "staging"
        assert config.probe_timeout == 0.5
        assert config.log_level == "DEBUG"

    def test_no_overrides_keeps_config(self, parser, clients_config):
        args = parser.parse_args(["stats"])
        config = cli.apply_cli_overrides(clients_config, args)
        assert config.base_url == clients_config.base_url
        assert config.probe_timeout == 0.5


class TestParseParams:
    def test_pairs(self):
        assert cli.parse_params(["a=1", "b=x=y", "c="]) == {"a": "1", "b": "x=y", "c": ""}

    @pytest.mark.parametrize("pair", ["novalue", "=1"])
    def test_malformed(self, pair):
        with pytest.raises(ValueError, match="KEY=VALUE"):
            cli.parse_params([pair])


# ── Commands ──────────────────────────────────────────────────────────────


class TestHealthCommand:
    @pytest.mark.asyncio
    async def test_all_healthy(self, factory, server, capsys):
        for name in SERVICE_NAMES:
            server.ok("GET", f"/{name}/health")
        assert await cli.run_health(factory) == 0
        out = capsys.readouterr().out
        assert "overall: healthy (5/5 healthy)" in out

    @pytest.mark.asyncio
    async def test_failure_sets_exit_code(self, factory, server, capsys):
        for name in SERVICE_NAMES:
            server.ok("GET", f"/{name}/health")
        server.fail("GET", "/admin/health", 500, {"message": "db down"})
        assert await cli.run_health(factory) == 1
        out = capsys.readouterr().out
        assert "FAIL admin" in out
        assert "db down" in out
        assert "overall: degraded (4/5 healthy)" in out


class TestGetCommand:
    @pytest.mark.asyncio
    async def test_prints_response(self, factory, server, capsys):
        server.ok("GET", "/content/users/u1", {"id": "u1"})
        assert await cli.run_get(factory, "content", "users/u1", {"fields": "id"}) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["data"] == {"id": "u1"}
        assert server.last.url.params["fields"] == "id"

    @pytest.mark.asyncio
    async def test_always_hits_network(self, factory, server, capsys):
        server.ok("GET", "/content/posts", [])
        await cli.run_get(factory, "content", "/posts", {})
        await cli.run_get(factory, "content", "/posts", {})
        assert len(server.requests) == 2

    @pytest.mark.asyncio
    async def test_error_is_printed(self, factory, server, capsys):
        server.fail("GET", "/search/missing", 404, {"message": "Not found"})
        assert await cli.run_get(factory, "search", "/missing", {}) == 1
        out = json.loads(capsys.readouterr().out)
        assert out["code"] == "HTTP_404"
        assert out["message"] == "Not found"


class TestStatsCommand:
    @pytest.mark.asyncio
    async def test_prints_config_summary(self, parser, clients_config, capsys):
        args = parser.parse_args(["stats"])
        assert await cli.run(args, clients_config) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["environment"] == "test"
        assert sorted(out["services"]) == sorted(SERVICE_NAMES)


# ── main() ────────────────────────────────────────────────────────────────


class TestMain:
    @staticmethod
    def invoke(monkeypatch, argv, run):
        monkeypatch.setattr("sys.argv", ["sangha_api", *argv])
        with patch.object(cli, "run", run), patch.object(cli, "setup_logging"):
            with pytest.raises(SystemExit) as exc_info:
                cli.main()
        return exc_info.value.code

    def test_exit_code_from_command(self, monkeypatch):
        async def run(args, config):
            assert config.base_url == "http://elsewhere/api"
            return 1

        assert self.invoke(monkeypatch, ["--base-url", "http://elsewhere/api", "health"], run) == 1

    def test_bad_param_is_usage_error(self, monkeypatch):
        async def run(args, config):
            cli.parse_params(args.param)
            return 0

        assert self.invoke(monkeypatch, ["get", "content", "/x", "--param", "oops"], run) == 2

    def test_interrupt(self, monkeypatch):
        async def run(args, config):
            raise KeyboardInterrupt

        assert self.invoke(monkeypatch, ["stats"], run) == 130
