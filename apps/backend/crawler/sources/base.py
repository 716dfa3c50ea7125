"""
Base interface for job source adapters.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from crawler.rss_fetch import RssItem

logger = logging.getLogger(__name__)


@dataclass
class HealthCheckResult:
    healthy: bool
    message: Optional[str] = None
    last_checked: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    response_time_ms: Optional[int] = None


class DiscoveryResult:
    """Items pulled from one source in one cycle"""
    def __init__(
        self,
        items: List[RssItem],
        source: str,
        query_time_ms: int = 0,
        errors: Optional[List[str]] = None
    ):
        self.items = items
        self.source = source
        self.query_time_ms = query_time_ms
        self.errors = errors or []

    @property
    def total_found(self) -> int:
        return len(self.items)

    def is_success(self) -> bool:
        """No errors were recorded (an empty but healthy feed still succeeds)"""
        return not self.errors

    def __repr__(self):
        return (
            f"DiscoveryResult(source={self.source}, items={self.total_found}, "
            f"errors={len(self.errors)}, query_time_ms={self.query_time_ms})"
        )


class SourceAdapter(ABC):
    """
    Base class for job source adapters.

    Each adapter should:
    1. Pull the current listings from its source, politely and with retries
    2. Degrade to an empty result instead of raising when the source fails
    3. Report whether the source is reachable
    """

    def __init__(self, name: str, display_name: Optional[str] = None):
        """
        Args:
            name: Source id used for rate limiting and config lookup (e.g. 'remoteok')
            display_name: Human readable name (defaults to name)
        """
        self.name = name
        self.display_name = display_name or name
        self.logger = logging.getLogger(f"{__name__}.{name}")

    @abstractmethod
    async def discover(self) -> DiscoveryResult:
        """Fetch the source's current items"""
        pass

    @abstractmethod
    async def health_check(self) -> HealthCheckResult:
        """Check the source is reachable"""
        pass

    def __repr__(self):
        return f"<{self.__class__.__name__}(name={self.name})>"
