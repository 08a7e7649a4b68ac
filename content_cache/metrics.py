"""Metrics collection for the content cache.

Cache hits, misses, store errors and generator calls are tracked with the
Prometheus client so the API process can expose them on a metrics port.
"""

import os
from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram


class CacheMetrics:
    """Metrics for content cache behavior.

    Tracks hits, misses, store errors, generations, invalidations and sweeps.
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        """Initialize cache metrics.

        Args:
            registry: Prometheus registry to use for metrics
        """
        # Check if metrics already exist in registry
        existing_metrics = [name for name in registry._names_to_collectors.keys()]

        def create_counter(name: str, help_text: str) -> Counter:
            if name not in existing_metrics:
                return Counter(name, help_text, registry=registry)
            return registry._names_to_collectors[name]

        def create_histogram(name: str, help_text: str, buckets) -> Histogram:
            if name not in existing_metrics:
                return Histogram(name, help_text, buckets=buckets, registry=registry)
            return registry._names_to_collectors[name]

        self.cache_hits = create_counter("content_cache_hits_total", "Number of cache hits")
        self.cache_misses = create_counter("content_cache_misses_total", "Number of cache misses")
        self.cache_errors = create_counter(
            "content_cache_errors_total", "Number of cache store operation errors"
        )
        self.generations = create_counter(
            "content_cache_generations_total", "Number of successful generator calls"
        )
        self.generation_failures = create_counter(
            "content_cache_generation_failures_total", "Number of failed generator calls"
        )
        self.invalidations = create_counter(
            "content_cache_invalidations_total", "Number of cache entries invalidated"
        )
        self.purged = create_counter(
            "content_cache_purged_total", "Number of expired cache entries purged"
        )
        self.generation_time = create_histogram(
            "content_cache_generation_seconds",
            "Time spent waiting for the generator",
            buckets=(1.0, 5.0, 15.0, 30.0, 60.0, 120.0),
        )


# Metrics registry management
_test_registry: Optional[CollectorRegistry] = None
_metrics: Optional[CacheMetrics] = None


def get_registry() -> CollectorRegistry:
    """Get the appropriate metrics registry.

    Returns:
        CollectorRegistry: Registry to use for metrics
    """
    global _test_registry
    if bool(os.getenv("PYTEST_CURRENT_TEST")):
        if _test_registry is None:
            _test_registry = CollectorRegistry()
        return _test_registry
    return REGISTRY


def get_metrics() -> CacheMetrics:
    """Get the cache metrics instance.

    Returns:
        CacheMetrics: Cache metrics instance
    """
    global _metrics
    if _metrics is None:
        _metrics = CacheMetrics(registry=get_registry())
    return _metrics


def start_metrics_server(port: int = 9090) -> None:
    """Start a Prometheus metrics server on the specified port.

    Args:
        port: Port number for metrics server
    """
    from prometheus_client import start_http_server

    start_http_server(port)


__all__ = ["CacheMetrics", "get_metrics", "get_registry", "start_metrics_server"]
