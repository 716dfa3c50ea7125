"""
Per-source rate limiting with a sliding window and a minimum request spacing
"""
import math
import time
import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RateLimitConfig:
    """Quota for one source: max_requests per window_ms, spaced by min_delay_ms"""
    max_requests: int
    window_ms: int
    min_delay_ms: Optional[int] = None

    def __post_init__(self):
        if self.max_requests < 1:
            raise ValueError(f"max_requests must be >= 1, got {self.max_requests}")
        if self.window_ms <= 0:
            raise ValueError(f"window_ms must be > 0, got {self.window_ms}")
        if self.min_delay_ms is not None and self.min_delay_ms < 0:
            raise ValueError(f"min_delay_ms must be >= 0, got {self.min_delay_ms}")


@dataclass(frozen=True)
class RequestRecord:
    """One recorded request (or batch of `count` requests)"""
    timestamp: float  # ms on the limiter's clock
    count: int = 1


class RateLimiter:
    """
    Sliding-window rate limiter keyed by source id.

    A request made at t counts against its source until t + window_ms.
    Records are pruned lazily whenever the log for a source is read.
    """

    def __init__(self, config: RateLimitConfig, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            config: Quota applied to every source tracked by this limiter
            clock: Returns the current time in seconds
        """
        self.config = config
        self._clock = clock
        self._requests: Dict[str, List[RequestRecord]] = {}
        # Never held across an await
        self._lock = threading.Lock()

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def _live_records(self, source_id: str) -> List[RequestRecord]:
        """Drop records older than the window and return what is left"""
        cutoff = self._now_ms() - self.config.window_ms
        with self._lock:
            records = self._requests.get(source_id)
            if records is None:
                return []
            live = [r for r in records if r.timestamp > cutoff]
            if live:
                self._requests[source_id] = live
            else:
                # Nothing left in the window: stop tracking the source
                del self._requests[source_id]
            return list(live)

    def can_make_request(self, source_id: str) -> bool:
        """True if the source still has quota left in the current window"""
        records = self._live_records(source_id)
        return sum(r.count for r in records) < self.config.max_requests

    def get_wait_time(self, source_id: str) -> int:
        """Milliseconds until the next request for this source is allowed"""
        records = self._live_records(source_id)
        if not records:
            return 0

        now = self._now_ms()
        total = sum(r.count for r in records)

        if total < self.config.max_requests:
            if self.config.min_delay_ms:
                last_request = max(r.timestamp for r in records)
                since_last = now - last_request
                if since_last < self.config.min_delay_ms:
                    return math.ceil(self.config.min_delay_ms - since_last)
            return 0

        # Quota exhausted: wait for the oldest record to leave the window
        oldest = min(r.timestamp for r in records)
        return max(0, math.ceil(oldest + self.config.window_ms - now))

    def record_request(self, source_id: str, count: int = 1):
        """Record `count` requests for a source at the current time"""
        if count < 1:
            raise ValueError(f"count must be >= 1, got {count}")
        record = RequestRecord(timestamp=self._now_ms(), count=count)
        with self._lock:
            self._requests.setdefault(source_id, []).append(record)

    async def wait_for_slot(self, source_id: str):
        """Sleep until a request for this source is allowed. Does not record one."""
        wait_ms = self.get_wait_time(source_id)
        if wait_ms > 0:
            logger.debug(f"[rate_limiter] Rate limiting {source_id}: waiting {wait_ms}ms")
            await asyncio.sleep(wait_ms / 1000.0)

    async def execute(self, source_id: str, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Wait for a slot, record the request, then run the operation.

        The permit is recorded before the operation starts and is kept even
        if the operation fails.
        """
        await self.wait_for_slot(source_id)
        self.record_request(source_id)
        return await operation()

    def get_request_count(self, source_id: str) -> int:
        """Requests counted against the source in the current window"""
        return sum(r.count for r in self._live_records(source_id))

    def tracked_sources(self) -> List[str]:
        """Source ids that currently have a request log"""
        with self._lock:
            return list(self._requests.keys())

    def reset(self, source_id: str):
        """Forget all requests for one source"""
        with self._lock:
            self._requests.pop(source_id, None)

    def reset_all(self):
        """Forget all requests for every source"""
        with self._lock:
            self._requests.clear()
