"""
Unit tests for the shared retry helper.
"""

import pytest
from unittest.mock import AsyncMock, patch

from shared.retry import RetryConfig, RetryError, _calculate_delay, call_with_retry


class TestRetryConfig:
    """Test cases for RetryConfig."""

    def test_defaults(self):
        config = RetryConfig()

        assert config.max_attempts == 3
        assert config.base_delay == 0.0

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryConfig(max_attempts=0)


class TestCallWithRetry:
    """Test cases for call_with_retry."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        func = AsyncMock(return_value="ok")

        assert await call_with_retry(func, 1, key="v") == "ok"
        func.assert_awaited_once_with(1, key="v")

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        func = AsyncMock(side_effect=[KeyError("a"), KeyError("b"), "ok"])

        result = await call_with_retry(func, exceptions=(KeyError,), config=RetryConfig(max_attempts=3))

        assert result == "ok"
        assert func.await_count == 3

    @pytest.mark.asyncio
    async def test_exhaustion_raises_retry_error(self):
        last = KeyError("last")
        func = AsyncMock(side_effect=[KeyError("first"), KeyError("second"), last])

        with pytest.raises(RetryError) as exc_info:
            await call_with_retry(func, exceptions=(KeyError,), config=RetryConfig(max_attempts=3))

        assert exc_info.value.attempts == 3
        assert exc_info.value.last_exception is last
        assert exc_info.value.__cause__ is last

    @pytest.mark.asyncio
    async def test_unlisted_exception_propagates(self):
        func = AsyncMock(side_effect=ValueError("bad"))

        with pytest.raises(ValueError):
            await call_with_retry(func, exceptions=(KeyError,))

        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_sleeps_between_attempts(self):
        func = AsyncMock(side_effect=[KeyError("a"), "ok"])

        with patch("shared.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            await call_with_retry(func, exceptions=(KeyError,), config=RetryConfig(base_delay=0.5))

        sleep.assert_awaited_once_with(0.5)

    @pytest.mark.asyncio
    async def test_zero_delay_does_not_sleep(self):
        func = AsyncMock(side_effect=[KeyError("a"), "ok"])

        with patch("shared.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            await call_with_retry(func, exceptions=(KeyError,))

        sleep.assert_not_awaited()


class TestCalculateDelay:
    """Test cases for backoff calculation."""

    def test_fixed(self):
        config = RetryConfig(base_delay=1.0)
        assert [_calculate_delay(n, config) for n in (1, 2, 3)] == [1.0, 1.0, 1.0]

    def test_linear(self):
        config = RetryConfig(base_delay=1.0, backoff_strategy="linear")
        assert [_calculate_delay(n, config) for n in (1, 2, 3)] == [1.0, 2.0, 3.0]

    def test_exponential_is_capped(self):
        config = RetryConfig(base_delay=1.0, max_delay=3.0, backoff_strategy="exponential")
        assert [_calculate_delay(n, config) for n in (1, 2, 3)] == [1.0, 2.0, 3.0]

    def test_jitter_stays_within_ten_percent(self):
        config = RetryConfig(base_delay=1.0, jitter=True)
        for _ in range(20):
            assert 0.9 <= _calculate_delay(1, config) <= 1.1
