"""Configuration management for content cache components."""

from .cache_config import CacheConfig

__all__ = ["CacheConfig"]
