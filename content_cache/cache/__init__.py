"""Content caching package.

This package provides the cache key deriver and the cached-entry models:
- Deterministic fingerprints over normalized generation parameters
- TTL-bearing cache entries with a per owner/domain latest flag
"""

from content_cache.cache.keys import (
    fingerprint,
    generate_cache_key,
    normalize_keywords,
    normalize_parameters,
)
from content_cache.cache.models import (
    BlogArtifact,
    CacheEntry,
    CacheResult,
    CacheStats,
    EntrySummary,
    GenerationRequest,
)

__all__ = [
    "BlogArtifact",
    "CacheEntry",
    "CacheResult",
    "CacheStats",
    "EntrySummary",
    "GenerationRequest",
    "fingerprint",
    "generate_cache_key",
    "normalize_keywords",
    "normalize_parameters",
]
