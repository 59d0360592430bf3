"""Tests for the retry combinator."""

import pytest
from unittest.mock import AsyncMock

from app.avatars.retry import RetryExhaustedError, exponential_backoff, with_retry


class TestExponentialBackoff:
    def test_delays_double(self):
        assert [exponential_backoff(i) for i in range(3)] == [1.0, 2.0, 4.0]


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_first_attempt_success_never_sleeps(self):
        fn = AsyncMock(return_value="ok")
        sleep = AsyncMock()

        result = await with_retry(fn, sleep=sleep)

        assert result == "ok"
        assert fn.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_succeeds_on_third_attempt_after_1s_and_2s(self):
        fn = AsyncMock(side_effect=[RuntimeError("a"), RuntimeError("b"), "ok"])
        sleep = AsyncMock()

        result = await with_retry(fn, max_attempts=3, sleep=sleep)

        assert result == "ok"
        assert fn.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhaustion_carries_last_error_message(self):
        fn = AsyncMock(side_effect=[RuntimeError("first"), RuntimeError("second"), RuntimeError("quota")])
        sleep = AsyncMock()

        with pytest.raises(RetryExhaustedError) as exc_info:
            await with_retry(fn, max_attempts=3, sleep=sleep, label="Transform")

        assert "quota" in str(exc_info.value)
        assert "after 3 attempts" in str(exc_info.value)
        assert exc_info.value.attempts == 3
        assert str(exc_info.value.last_error) == "quota"
        # No sleep after the final attempt
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_single_attempt(self):
        fn = AsyncMock(side_effect=ValueError("boom"))
        sleep = AsyncMock()

        with pytest.raises(RetryExhaustedError):
            await with_retry(fn, max_attempts=1, sleep=sleep)

        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            await with_retry(AsyncMock(), max_attempts=0)

    @pytest.mark.asyncio
    async def test_custom_backoff(self):
        fn = AsyncMock(side_effect=[RuntimeError("x"), "ok"])
        sleep = AsyncMock()

        await with_retry(fn, backoff=lambda attempt: 0.25, sleep=sleep)

        sleep.assert_awaited_once_with(0.25)
