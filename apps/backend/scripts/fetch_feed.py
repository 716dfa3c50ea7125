"""
Fetch one job feed through the rate limiter, retry policy and feed decoder.

Usage:
    python scripts/fetch_feed.py --url https://remoteok.com/remote-jobs.rss
    python scripts/fetch_feed.py --source remoteok --retry aggressive --limit 5
"""

import os
import sys
import json
import asyncio
import logging
import argparse

# Add backend to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(__file__), '..', '.env'))

from core.retry import RETRY_CONFIGS
from crawler.sources import FeedSourceAdapter, get_source_registry, plain_description

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_adapter(args) -> FeedSourceAdapter:
    retry_config = RETRY_CONFIGS[args.retry]
    if args.url:
        return FeedSourceAdapter(args.source, args.url, retry_config=retry_config, timeout_ms=args.timeout)

    adapter = get_source_registry().get(args.source)
    if adapter is None or not isinstance(adapter, FeedSourceAdapter):
        raise SystemExit(f"Unknown feed source: {args.source} (pass --url)")
    adapter.retry_config = retry_config
    adapter.timeout_ms = args.timeout
    return adapter


async def main():
    parser = argparse.ArgumentParser(description='Fetch and decode a job feed')
    parser.add_argument('--source', type=str, default='default', help='Source id (selects rate limits)')
    parser.add_argument('--url', type=str, help='Feed URL (defaults to the registered source URL)')
    parser.add_argument('--retry', choices=sorted(RETRY_CONFIGS), default='standard', help='Retry preset')
    parser.add_argument('--timeout', type=int, default=None, help='Timeout in ms')
    parser.add_argument('--limit', type=int, default=10, help='Max items to print')
    parser.add_argument('--json', action='store_true', help='Print items as JSON')
    args = parser.parse_args()

    adapter = build_adapter(args)
    result = await adapter.discover()

    if result.errors:
        for error in result.errors:
            logger.error(f"Source {result.source} failed: {error}")
        return 1

    items = result.items[:args.limit]
    if args.json:
        print(json.dumps([item.to_dict() for item in items], indent=2, ensure_ascii=False))
    else:
        for item in items:
            print(f"* {item.title}\n  {item.link}")
            description = plain_description(item)
            if description:
                print(f"  {description[:200]}")
    logger.info(f"{result.total_found} items from {result.source} in {result.query_time_ms}ms")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
