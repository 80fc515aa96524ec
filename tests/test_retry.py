"""Tests for formation_tracker.retry."""

from __future__ import annotations

import pytest

from formation_tracker.config import RetryConfig
from formation_tracker.retry import with_retry


@pytest.fixture
def config() -> RetryConfig:
    return RetryConfig(max_attempts=3, initial_wait_seconds=0.01, max_wait_seconds=0.1)


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_succeeds_first_try(self, config):
        call_count = 0

        @with_retry(config)
        async def fn():
            nonlocal call_count
            call_count += 1
            return "ok"

        assert await fn() == "ok"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, config):
        call_count = 0

        @with_retry(config)
        async def fn():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ConnectionError("transient")
            return "recovered"

        assert await fn() == "recovered"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_exhausts_retries_and_reraises(self, config):
        call_count = 0

        @with_retry(config)
        async def fn():
            nonlocal call_count
            call_count += 1
            raise ValueError("permanent")

        with pytest.raises(ValueError, match="permanent"):
            await fn()
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_custom_retryable_exceptions(self, config):
        call_count = 0

        @with_retry(config, retryable_exceptions=(ConnectionError,))
        async def fn():
            nonlocal call_count
            call_count += 1
            raise TypeError("not retryable")

        with pytest.raises(TypeError):
            await fn()
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_predicate_decides(self, config):
        calls: list[str] = []

        @with_retry(config, retry_when=lambda exc: "429" in str(exc))
        async def fn(message: str):
            calls.append(message)
            raise RuntimeError(message)

        with pytest.raises(RuntimeError):
            await fn("HTTP 429")
        assert len(calls) == 3

        calls.clear()
        with pytest.raises(RuntimeError):
            await fn("HTTP 401")
        assert len(calls) == 1
