"""
Storage module for cache entry persistence.
"""
from content_cache.storage.base import CacheStore
from content_cache.storage.memory_store import InMemoryCacheStore
from content_cache.storage.sqlite_store import SQLiteCacheStore, SQLiteConfig

__all__ = ["CacheStore", "InMemoryCacheStore", "SQLiteCacheStore", "SQLiteConfig"]
