"""
Registry of job source adapters.
"""
import asyncio
import logging
from typing import Dict, List, Optional

from .base import SourceAdapter, DiscoveryResult

logger = logging.getLogger(__name__)

# Global registry instance
_registry: Optional['SourceRegistry'] = None

REMOTEOK_RSS_URL = "https://remoteok.com/remote-jobs.rss"


class SourceRegistry:
    """Registry for job source adapters"""

    def __init__(self):
        self._sources: Dict[str, SourceAdapter] = {}

    def register(self, adapter: SourceAdapter):
        """Register an adapter, replacing any with the same name"""
        if adapter.name in self._sources:
            logger.warning(f"[sources] Source {adapter.name} already registered, replacing")

        self._sources[adapter.name] = adapter
        logger.info(f"[sources] Registered source: {adapter.name}")

    def get(self, name: str) -> Optional[SourceAdapter]:
        """Get adapter by name"""
        return self._sources.get(name)

    async def _discover_one(self, adapter: SourceAdapter) -> DiscoveryResult:
        try:
            return await adapter.discover()
        except Exception as e:
            logger.error(f"[sources] Source {adapter.name} discovery error: {e}", exc_info=True)
            return DiscoveryResult(items=[], source=adapter.name, errors=[f"Discovery error: {e}"])

    async def discover_all(self) -> Dict[str, DiscoveryResult]:
        """
        Run discovery on every registered source concurrently.

        A failing source yields an empty result with its error recorded;
        it never aborts the other sources.
        """
        adapters = list(self._sources.values())
        results = await asyncio.gather(*(self._discover_one(a) for a in adapters))
        total = sum(r.total_found for r in results)
        logger.info(f"[sources] Discovery finished: {total} items from {len(adapters)} sources")
        return {adapter.name: result for adapter, result in zip(adapters, results)}

    def list_sources(self) -> List[Dict]:
        """List all registered sources"""
        return [
            {
                'name': adapter.name,
                'display_name': adapter.display_name,
                'class': adapter.__class__.__name__
            }
            for adapter in self._sources.values()
        ]


def get_source_registry() -> SourceRegistry:
    """Get or create the global source registry"""
    global _registry
    if _registry is None:
        _registry = SourceRegistry()
        _register_builtin_sources(_registry)
    return _registry


def _register_builtin_sources(registry: SourceRegistry):
    """Register all built-in sources"""
    from .feed import FeedSourceAdapter
    registry.register(FeedSourceAdapter('remoteok', REMOTEOK_RSS_URL, display_name='RemoteOK'))
