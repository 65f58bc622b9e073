"""Tests for retry classification, backoff and retry_api_call."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from sangha_api.errors import ApiError
from sangha_api.retry import RetryPolicy, retry_api_call


class TestRetryPolicy:
    def test_should_retry_respects_budget(self):
        policy = RetryPolicy(max_retries=2)
        err = ApiError("HTTP_503", "down")
        assert policy.should_retry(err, 1)
        assert policy.should_retry(err, 2)
        assert not policy.should_retry(err, 3)

    def test_non_retryable_errors(self):
        policy = RetryPolicy(max_retries=5)
        for code in ("HTTP_404", "VALIDATION_ERROR", "CANCELLED", "PARSE_ERROR"):
            assert not policy.should_retry(ApiError(code, "x"), 1)

    def test_exponential_delay_is_capped(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0)
        assert [policy.delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_is_added(self):
        policy = RetryPolicy(base_delay=1.0, jitter=0.5, rng=lambda: 1.0)
        assert policy.delay(1) == 1.5

    def test_retry_after_hint_wins(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=10.0)
        assert policy.delay(1, ApiError("HTTP_429", "x", retry_after=7.0)) == 7.0
        assert policy.delay(1, ApiError("HTTP_429", "x", retry_after=60.0)) == 10.0

    def test_with_max_retries(self):
        policy = RetryPolicy(max_retries=3, base_delay=2.0)
        assert policy.with_max_retries(3) is policy
        fewer = policy.with_max_retries(0)
        assert fewer.max_retries == 0
        assert fewer.base_delay == 2.0

    def test_negative_budget_means_no_retries(self):
        assert RetryPolicy(max_retries=-1).max_retries == 0


class TestRetryApiCall:
    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        func = AsyncMock(return_value="ok")
        assert await retry_api_call(func, 1, key="v") == "ok"
        func.assert_awaited_once_with(1, key="v")

    @pytest.mark.asyncio
    async def test_retries_retryable_api_errors(self):
        func = AsyncMock(side_effect=[ApiError("HTTP_503", "down"), ApiError("TIMEOUT", "slow"), "ok"])
        with patch("sangha_api.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await retry_api_call(func, max_retries=3, base_delay=1.0) == "ok"
        assert func.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_non_retryable_api_error_propagates(self):
        func = AsyncMock(side_effect=ApiError("HTTP_404", "missing"))
        with pytest.raises(ApiError) as exc_info:
            await retry_api_call(func, max_retries=3, base_delay=0)
        assert exc_info.value.code == "HTTP_404"
        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_transient_errors_exhaust_budget(self):
        func = AsyncMock(side_effect=ConnectionError("reset"))
        with patch("sangha_api.retry.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(ConnectionError):
                await retry_api_call(func, max_retries=2, base_delay=0)
        assert func.await_count == 3

    @pytest.mark.asyncio
    async def test_other_exceptions_propagate_immediately(self):
        func = AsyncMock(side_effect=KeyError("x"))
        with pytest.raises(KeyError):
            await retry_api_call(func, max_retries=3, base_delay=0)
        assert func.await_count == 1
