"""
Per-source rate limit profiles.
Built-in presets, optionally overridden from config/sources.yaml.
"""
import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from core.rate_limiter import RateLimitConfig

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "default"

RATE_LIMIT_CONFIGS: Dict[str, RateLimitConfig] = {
    # In-house mock source, effectively unlimited
    "mock": RateLimitConfig(max_requests=1000, window_ms=60000, min_delay_ms=0),
    # Scraped through JobSpy, stay under detection thresholds
    "indeed": RateLimitConfig(max_requests=20, window_ms=60000, min_delay_ms=2000),
    # Algolia search index, generous
    "wttj": RateLimitConfig(max_requests=100, window_ms=60000, min_delay_ms=100),
    # Free public API
    "remoteok": RateLimitConfig(max_requests=30, window_ms=60000, min_delay_ms=1000),
    DEFAULT_SOURCE: RateLimitConfig(max_requests=60, window_ms=60000, min_delay_ms=500),
}

# Cache for loaded overrides
_overrides_cache: Optional[Dict[str, RateLimitConfig]] = None


class SourceLimitOverride(BaseModel):
    max_requests: int = Field(gt=0)
    window_ms: int = Field(gt=0)
    min_delay_ms: Optional[int] = Field(default=None, ge=0)


def _config_path() -> Path:
    env_path = os.getenv("JOBSOURCE_LIMITS_CONFIG")
    if env_path:
        return Path(env_path)
    return Path(__file__).parent.parent / 'config' / 'sources.yaml'


def load_source_overrides() -> Dict[str, RateLimitConfig]:
    """Load per-source overrides from YAML. Bad entries are logged and skipped."""
    global _overrides_cache

    if _overrides_cache is not None:
        return _overrides_cache

    config_path = _config_path()

    if not config_path.exists():
        logger.warning(f"[source_limits] Config file not found: {config_path}. Using presets.")
        _overrides_cache = {}
        return _overrides_cache

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"[source_limits] Error loading {config_path}: {e}")
        _overrides_cache = {}
        return _overrides_cache

    # Accept either a top-level 'sources' mapping or a bare mapping
    entries = raw.get('sources', raw) if isinstance(raw, dict) else {}
    if not isinstance(entries, dict):
        logger.error(f"[source_limits] Expected a mapping of sources in {config_path}")
        entries = {}

    overrides = {}
    for source, values in entries.items():
        try:
            parsed = SourceLimitOverride.model_validate(values)
        except ValidationError as e:
            logger.error(f"[source_limits] Invalid limits for {source}: {e}")
            continue
        overrides[str(source)] = RateLimitConfig(**parsed.model_dump())

    logger.info(f"[source_limits] Loaded {len(overrides)} source overrides from {config_path}")
    _overrides_cache = overrides
    return _overrides_cache


def clear_cache():
    """Forget loaded overrides so the next lookup re-reads the file"""
    global _overrides_cache
    _overrides_cache = None


def get_rate_limit_config(source: str) -> RateLimitConfig:
    """Limits for a source: override, then preset, then the default profile"""
    overrides = load_source_overrides()
    if source in overrides:
        return overrides[source]
    return RATE_LIMIT_CONFIGS.get(source, RATE_LIMIT_CONFIGS[DEFAULT_SOURCE])
