"""
Unit tests for core/retry.py
"""

import asyncio
import logging

import pytest
from unittest.mock import AsyncMock

from core.retry import RetryConfig, RETRY_CONFIGS, get_retry_config, with_retry


class FlakyOperation:
    """Fails a fixed number of times, then returns a value"""

    def __init__(self, failures: int, result="done"):
        self.failures = failures
        self.result = result
        self.calls = 0
        self.errors = []

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            error = ConnectionError(f"attempt {self.calls} failed")
            self.errors.append(error)
            raise error
        return self.result


def no_jitter(max_attempts=3, initial=100, maximum=10000, multiplier=2):
    return RetryConfig(
        max_attempts=max_attempts,
        initial_delay_ms=initial,
        max_delay_ms=maximum,
        backoff_multiplier=multiplier,
    )


def slept_seconds(sleep: AsyncMock):
    return [call.args[0] for call in sleep.await_args_list]


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self):
        operation = FlakyOperation(failures=0)
        sleep = AsyncMock()

        assert await with_retry(operation, no_jitter(), sleep=sleep) == "done"
        assert operation.calls == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_succeeds_on_attempt_k(self):
        """Failing k-1 times then succeeding takes exactly k calls and k-1 delays."""
        operation = FlakyOperation(failures=2)
        sleep = AsyncMock()

        assert await with_retry(operation, no_jitter(max_attempts=5), sleep=sleep) == "done"
        assert operation.calls == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_always_failing_raises_last_error(self):
        """An operation that always fails is called max_attempts times."""
        operation = FlakyOperation(failures=100)
        sleep = AsyncMock()

        with pytest.raises(ConnectionError) as exc_info:
            await with_retry(operation, no_jitter(max_attempts=4), sleep=sleep)

        assert operation.calls == 4
        assert exc_info.value is operation.errors[-1]
        assert sleep.await_count == 3

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self):
        operation = FlakyOperation(failures=1)
        sleep = AsyncMock()

        with pytest.raises(ConnectionError):
            await with_retry(operation, no_jitter(max_attempts=1), sleep=sleep)
        assert operation.calls == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exponential_backoff_without_jitter(self):
        """Retry n waits initial * multiplier^(n-1)."""
        operation = FlakyOperation(failures=100)
        sleep = AsyncMock()

        with pytest.raises(ConnectionError):
            await with_retry(operation, no_jitter(max_attempts=5, initial=100, maximum=10000), sleep=sleep)

        assert slept_seconds(sleep) == pytest.approx([0.1, 0.2, 0.4, 0.8])

    @pytest.mark.asyncio
    async def test_backoff_capped_at_max_delay(self):
        operation = FlakyOperation(failures=100)
        sleep = AsyncMock()

        with pytest.raises(ConnectionError):
            await with_retry(operation, no_jitter(max_attempts=5, initial=1000, maximum=3000), sleep=sleep)

        assert slept_seconds(sleep) == pytest.approx([1.0, 2.0, 3.0, 3.0])

    @pytest.mark.asyncio
    async def test_jitter_added_and_capped(self):
        config = RetryConfig(
            max_attempts=3, initial_delay_ms=1000, max_delay_ms=2100,
            backoff_multiplier=2, jitter_factor=0.2,
        )
        operation = FlakyOperation(failures=100)
        sleep = AsyncMock()

        with pytest.raises(ConnectionError):
            await with_retry(operation, config, sleep=sleep, rng=lambda: 0.5)

        # 1000 + 1000*0.2*0.5, then min(2000 + 200, 2100)
        assert slept_seconds(sleep) == pytest.approx([1.1, 2.1])

    @pytest.mark.asyncio
    async def test_logs_each_retry(self, caplog):
        operation = FlakyOperation(failures=1)
        test_logger = logging.getLogger("tests.retry")

        with caplog.at_level(logging.WARNING, logger="tests.retry"):
            await with_retry(operation, no_jitter(), logger=test_logger, sleep=AsyncMock())

        assert "Attempt 1/3 failed: attempt 1 failed. Retrying in 100ms" in caplog.text

    @pytest.mark.asyncio
    async def test_cancellation_not_retried(self):
        calls = []

        async def operation():
            calls.append(1)
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await with_retry(operation, no_jitter(), sleep=AsyncMock())
        assert len(calls) == 1


class TestRetryConfig:
    def test_delay_formula(self):
        config = RetryConfig(
            max_attempts=5, initial_delay_ms=500, max_delay_ms=30000,
            backoff_multiplier=2, jitter_factor=0.3,
        )
        assert config.delay_ms(1) == 500
        assert config.delay_ms(3) == 2000
        assert config.delay_ms(1, sample=1.0) == pytest.approx(650)
        assert config.delay_ms(20) == 30000

    @pytest.mark.parametrize("kwargs", [
        {"max_attempts": 0},
        {"initial_delay_ms": -1},
        {"max_delay_ms": 50},
        {"backoff_multiplier": 0.5},
        {"jitter_factor": 1.5},
        {"jitter_factor": -0.1},
    ])
    def test_degenerate_configs_rejected(self, kwargs):
        values = dict(max_attempts=3, initial_delay_ms=100, max_delay_ms=1000, backoff_multiplier=2)
        values.update(kwargs)
        with pytest.raises(ValueError):
            RetryConfig(**values)


class TestPresets:
    def test_quick(self):
        config = get_retry_config("quick")
        assert (config.max_attempts, config.initial_delay_ms, config.max_delay_ms) == (3, 100, 1000)
        assert config.backoff_multiplier == 2
        assert config.jitter_factor == pytest.approx(0.1)

    def test_standard(self):
        config = get_retry_config("standard")
        assert (config.max_attempts, config.initial_delay_ms, config.max_delay_ms) == (3, 1000, 10000)
        assert config.jitter_factor == pytest.approx(0.2)

    def test_aggressive(self):
        config = get_retry_config("aggressive")
        assert (config.max_attempts, config.initial_delay_ms, config.max_delay_ms) == (5, 500, 30000)
        assert config.jitter_factor == pytest.approx(0.3)

    def test_unknown_preset(self):
        with pytest.raises(KeyError):
            get_retry_config("reckless")
        assert set(RETRY_CONFIGS) == {"quick", "standard", "aggressive"}
