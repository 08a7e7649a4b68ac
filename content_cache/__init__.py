"""Content cache module."""

from .cache import BlogArtifact, CacheEntry, CacheResult, GenerationRequest, generate_cache_key
from .storage import CacheStore, InMemoryCacheStore, SQLiteCacheStore, SQLiteConfig
from .cache.service import CacheService
from .config import CacheConfig
from .errors import ConfigurationError, GenerationError, InvalidParametersError, PersistenceError

__version__ = "1.0.0"

__all__ = [
    "BlogArtifact",
    "CacheConfig",
    "CacheEntry",
    "CacheResult",
    "CacheService",
    "CacheStore",
    "ConfigurationError",
    "GenerationError",
    "GenerationRequest",
    "InMemoryCacheStore",
    "InvalidParametersError",
    "PersistenceError",
    "SQLiteCacheStore",
    "SQLiteConfig",
    "generate_cache_key",
]
