"""
Adapter for sources that publish an RSS feed.
"""
import time
from typing import Optional

from core.net import FetchError
from core.rate_limiter import RateLimiter
from core.retry import RetryConfig, RETRY_CONFIGS, with_retry
from core.source_limits import get_rate_limit_config
from crawler.rss_fetch import FeedDecoder, RssFeed, RssItem, strip_html

from .base import SourceAdapter, DiscoveryResult, HealthCheckResult


def plain_description(item: RssItem) -> str:
    """Item description (or content) as plain text"""
    return strip_html(item.description or item.content or '')


class FeedSourceAdapter(SourceAdapter):
    """
    Pulls one RSS feed: rate limit, then retry the fetch, then decode.

    The permit is taken once per discovery cycle, around the whole retried
    fetch, so retries of a single cycle share one unit of quota.
    """

    def __init__(
        self,
        name: str,
        feed_url: str,
        display_name: Optional[str] = None,
        limiter: Optional[RateLimiter] = None,
        retry_config: Optional[RetryConfig] = None,
        decoder: Optional[FeedDecoder] = None,
        timeout_ms: Optional[int] = None,
    ):
        super().__init__(name, display_name)
        self.feed_url = feed_url
        self.limiter = limiter or RateLimiter(get_rate_limit_config(name))
        self.retry_config = retry_config or RETRY_CONFIGS["standard"]
        self.decoder = decoder or FeedDecoder()
        self.timeout_ms = timeout_ms

    async def _fetch(self) -> RssFeed:
        return await self.decoder.parse_url(self.feed_url, timeout=self.timeout_ms)

    async def discover(self) -> DiscoveryResult:
        start_time = time.monotonic()
        errors = []
        items = []

        try:
            feed = await self.limiter.execute(
                self.name,
                lambda: with_retry(self._fetch, self.retry_config, logger=self.logger),
            )
            items = feed.items
        except FetchError as e:
            self.logger.error(f"[sources] {self.display_name} fetch failed: {e}")
            errors.append(str(e))

        query_time_ms = int((time.monotonic() - start_time) * 1000)
        self.logger.info(f"[sources] {self.display_name}: {len(items)} items in {query_time_ms}ms")
        return DiscoveryResult(items=items, source=self.name, query_time_ms=query_time_ms, errors=errors)

    async def health_check(self) -> HealthCheckResult:
        start_time = time.monotonic()
        try:
            response = await self.decoder.http_client.get(self.feed_url, timeout_ms=self.timeout_ms)
        except FetchError as e:
            return HealthCheckResult(
                healthy=False,
                message=str(e),
                response_time_ms=int((time.monotonic() - start_time) * 1000),
            )
        return HealthCheckResult(
            healthy=True,
            message=f"{self.display_name} feed available (HTTP {response.status_code})",
            response_time_ms=int((time.monotonic() - start_time) * 1000),
        )
