"""
Job source adapters.

An adapter owns one external job board: it rate limits its own requests,
retries transient failures and decodes the response into feed items.
"""

from .base import SourceAdapter, DiscoveryResult, HealthCheckResult
from .feed import FeedSourceAdapter, plain_description
from .registry import SourceRegistry, get_source_registry

__all__ = [
    'SourceAdapter',
    'DiscoveryResult',
    'HealthCheckResult',
    'FeedSourceAdapter',
    'plain_description',
    'SourceRegistry',
    'get_source_registry',
]
