"""
Retry with exponential backoff and jitter for async source operations
"""
import random
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from tenacity import AsyncRetrying, RetryCallState, RetryError, retry_if_exception_type, stop_after_attempt

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhaustedError(Exception):
    """All attempts were used without a failure to report"""


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int
    initial_delay_ms: int
    max_delay_ms: int
    backoff_multiplier: float
    jitter_factor: Optional[float] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay_ms < 0:
            raise ValueError(f"initial_delay_ms must be >= 0, got {self.initial_delay_ms}")
        if self.max_delay_ms < self.initial_delay_ms:
            raise ValueError(
                f"max_delay_ms ({self.max_delay_ms}) must be >= initial_delay_ms ({self.initial_delay_ms})"
            )
        if self.backoff_multiplier < 1:
            raise ValueError(f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}")
        if self.jitter_factor is not None and not 0 <= self.jitter_factor <= 1:
            raise ValueError(f"jitter_factor must be within [0, 1], got {self.jitter_factor}")

    def delay_ms(self, attempt: int, sample: float = 0.0) -> float:
        """
        Delay applied after failed attempt number `attempt` (1-based).

        The base grows without bound; only the applied delay is capped.
        `sample` is a uniform draw in [0, 1) used for jitter.
        """
        base = self.initial_delay_ms * self.backoff_multiplier ** (attempt - 1)
        jitter = base * self.jitter_factor * sample if self.jitter_factor else 0.0
        return min(base + jitter, self.max_delay_ms)


# Presets selected by callers; the executor itself is policy-agnostic
RETRY_CONFIGS: Dict[str, RetryConfig] = {
    # Transient errors
    "quick": RetryConfig(
        max_attempts=3, initial_delay_ms=100, max_delay_ms=1000, backoff_multiplier=2, jitter_factor=0.1
    ),
    # Ordinary API calls
    "standard": RetryConfig(
        max_attempts=3, initial_delay_ms=1000, max_delay_ms=10000, backoff_multiplier=2, jitter_factor=0.2
    ),
    # Eventual success matters more than latency
    "aggressive": RetryConfig(
        max_attempts=5, initial_delay_ms=500, max_delay_ms=30000, backoff_multiplier=2, jitter_factor=0.3
    ),
}


def get_retry_config(name: str) -> RetryConfig:
    """Look up a retry preset by name (KeyError if unknown)"""
    if name not in RETRY_CONFIGS:
        raise KeyError(f"Unknown retry preset: {name}")
    return RETRY_CONFIGS[name]


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig,
    logger: Optional[logging.Logger] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: Callable[[], float] = random.random,
) -> T:
    """
    Run an async operation up to config.max_attempts times.

    Returns the first successful result. When every attempt fails, the
    exception from the last attempt is re-raised unchanged. Only Exception
    subclasses are retried; cancellation propagates immediately.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        config: Backoff policy
        logger: Where retry warnings go (defaults to this module's logger)
        sleep: Awaitable sleep taking seconds
        rng: Uniform [0, 1) sample used for jitter
    """
    log = logger if logger is not None else logging.getLogger(__name__)

    def _wait(retry_state: RetryCallState) -> float:
        return config.delay_ms(retry_state.attempt_number, rng()) / 1000.0

    def _before_sleep(retry_state: RetryCallState):
        error = retry_state.outcome.exception()
        delay_ms = round(retry_state.next_action.sleep * 1000)
        log.warning(
            f"[retry] Attempt {retry_state.attempt_number}/{config.max_attempts} failed: {error}. "
            f"Retrying in {delay_ms}ms"
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=_wait,
        retry=retry_if_exception_type(Exception),
        before_sleep=_before_sleep,
        sleep=sleep,
        reraise=True,
    )

    try:
        return await retrying(operation)
    except RetryError as e:
        raise RetryExhaustedError("Max retry attempts reached") from e
