"""Tests for layered configuration and request options."""

from __future__ import annotations

import pytest

from sangha_api.abort import AbortSignal
from sangha_api.auth import TokenStore
from sangha_api.config import CLIENT_VERSION, ApiClientsConfig, RequestOptions, ServiceConfig


class TestEnvironment:
    def test_defaults(self, monkeypatch):
        for key in ("SANGHA_API_BASE_URL", "SANGHA_API_TIMEOUT", "SANGHA_API_RETRIES", "SANGHA_API_ENABLE_CACHE"):
            monkeypatch.delenv(key, raising=False)
        config = ApiClientsConfig()
        assert config.base_url == "http://localhost:8080/api"
        assert config.timeout == 10.0
        assert config.retries == 3
        assert config.enable_cache is True
        assert config.enable_rate_limit is False

    def test_env_overrides_defaults(self, monkeypatch):
        monkeypatch.setenv("SANGHA_API_BASE_URL", "https://api.example.org")
        monkeypatch.setenv("SANGHA_API_TIMEOUT", "2.5")
        monkeypatch.setenv("SANGHA_API_ENABLE_CACHE", "false")
        monkeypatch.setenv("SANGHA_API_HEALTH_INTERVAL", "5")
        config = ApiClientsConfig()
        assert config.base_url == "https://api.example.org"
        assert config.timeout == 2.5
        assert config.enable_cache is False
        assert config.health_check_interval == 5.0

    def test_explicit_args_win(self, monkeypatch):
        monkeypatch.setenv("SANGHA_API_BASE_URL", "https://api.example.org")
        assert ServiceConfig(base_url="http://other").base_url == "http://other"


class TestServiceConfig:
    def test_derived_from_shared_settings(self, clients_config):
        service = clients_config.service_config(cache_ttl=60.0, cache_max_size=50, rate_limit_max_requests=200)
        assert service.base_url == clients_config.base_url
        assert service.retries == 3
        assert service.cache.ttl == 60.0
        assert service.cache.max_size == 50
        assert service.rate_limit.max_requests == 200
        assert service.default_headers["X-Client-Version"] == CLIENT_VERSION
        assert service.default_headers["X-Environment"] == "test"

    def test_custom_headers_are_carried(self):
        config = ApiClientsConfig(default_headers={"X-Tenant": "t1"})
        assert config.headers()["X-Tenant"] == "t1"
        assert config.service_config().default_headers["X-Tenant"] == "t1"

    def test_hooks_are_copied_per_service(self, clients_config):
        async def trace(request):
            pass

        clients_config.request_hooks.append(trace)
        clients_config.error_hooks.append(print)
        first = clients_config.service_config()
        second = clients_config.service_config()
        assert first.request_hooks == [trace]
        assert first.error_hooks == [print]
        first.request_hooks.append(trace)
        assert second.request_hooks == [trace]
        assert clients_config.request_hooks == [trace]

    def test_summary(self, clients_config):
        summary = clients_config.summary()
        assert summary["base_url"] == "http://test/api"
        assert summary["environment"] == "test"
        assert "log_level" not in summary


class TestRequestOptions:
    def test_merge_ignores_none(self):
        opts = RequestOptions(cache=30.0)
        assert opts.merge(cache=None) is opts
        merged = opts.merge(timeout=5.0)
        assert merged.cache == 30.0
        assert merged.timeout == 5.0

    def test_frozen(self):
        with pytest.raises(AttributeError):
            RequestOptions().cache = 1.0

    def test_carries_signal(self):
        signal = AbortSignal()
        assert RequestOptions(signal=signal).merge(cache=0).signal is signal


class TestTokenStore:
    def test_header_follows_token(self):
        tokens = TokenStore()
        assert tokens.authorization_header() == {}
        tokens.set("abc")
        assert tokens.is_set
        assert tokens.authorization_header() == {"Authorization": "Bearer abc"}
        tokens.clear()
        assert tokens.token is None
        assert not tokens.is_set

    def test_empty_token_counts_as_unset(self):
        tokens = TokenStore("abc")
        tokens.set("")
        assert not tokens.is_set
