"""
HTTP client for job-source feeds: polite headers, bounded timeout, typed failures
"""
import os
import time
import asyncio
import logging
from typing import Optional, Dict

import httpx

logger = logging.getLogger(__name__)

DEFAULT_UA = "AidJobs Job Discovery Bot/1.0 (+https://aidjobs.app)"
DEFAULT_FEED_ACCEPT = "application/rss+xml, application/xml, text/xml, */*"
DEFAULT_TIMEOUT_MS = 30000


class FetchError(Exception):
    """Network-level failure while fetching a source"""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class FeedTimeoutError(FetchError):
    """The fetch did not complete within its timeout"""

    def __init__(self, url: str, timeout_ms: int):
        super().__init__(f"RSS feed timeout after {timeout_ms}ms: {url}", url=url)
        self.timeout_ms = timeout_ms


class FeedHTTPError(FetchError):
    """The server answered with a non-2xx status"""

    def __init__(self, url: str, status_code: int, reason: str):
        super().__init__(f"HTTP {status_code}: {reason}", url=url)
        self.status_code = status_code
        self.reason = reason


def default_timeout_ms() -> int:
    """Feed timeout from JOBSOURCE_FEED_TIMEOUT_MS, falling back to 30s"""
    raw = os.getenv("JOBSOURCE_FEED_TIMEOUT_MS")
    if not raw:
        return DEFAULT_TIMEOUT_MS
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"[net] Ignoring invalid JOBSOURCE_FEED_TIMEOUT_MS={raw!r}")
        return DEFAULT_TIMEOUT_MS
    return value if value > 0 else DEFAULT_TIMEOUT_MS


class HTTPClient:
    """Async GET with politeness headers and a hard overall timeout"""

    def __init__(
        self,
        user_agent: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.user_agent = user_agent or os.getenv("JOBSOURCE_CRAWLER_UA", DEFAULT_UA)
        # Injected clients are owned by the caller and never closed here
        self._client = client

    def _get_headers(
        self,
        accept: str = DEFAULT_FEED_ACCEPT,
        custom_headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, str]:
        """Build request headers with UA and Accept"""
        headers = {
            "User-Agent": self.user_agent,
            "Accept": accept,
        }
        if custom_headers:
            headers.update(custom_headers)
        return headers

    async def _send(self, url: str, headers: Dict[str, str], timeout_s: float) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url, headers=headers)
        async with httpx.AsyncClient(timeout=httpx.Timeout(timeout_s), follow_redirects=True) as client:
            return await client.get(url, headers=headers)

    async def get(
        self,
        url: str,
        timeout_ms: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
        accept: str = DEFAULT_FEED_ACCEPT,
    ) -> httpx.Response:
        """
        GET a URL, cancelling it once timeout_ms has elapsed.

        Raises:
            FeedTimeoutError: the request did not finish in time
            FeedHTTPError: the response status was not 2xx
            FetchError: any other transport failure
        """
        timeout_ms = timeout_ms or default_timeout_ms()
        timeout_s = timeout_ms / 1000.0
        request_headers = self._get_headers(accept=accept, custom_headers=headers)

        start_time = time.monotonic()
        try:
            response = await asyncio.wait_for(self._send(url, request_headers, timeout_s), timeout_s)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.error(f"[net] Timeout after {timeout_ms}ms fetching {url}")
            raise FeedTimeoutError(url, timeout_ms)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"[net] Transport error fetching {url}: {e}")
            raise FetchError(f"Request failed for {url}: {e}", url=url) from e

        elapsed_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(f"[net] GET {response.status_code} {url} ({len(response.content)} bytes, {elapsed_ms}ms)")

        if not response.is_success:
            raise FeedHTTPError(url, response.status_code, response.reason_phrase)

        return response
