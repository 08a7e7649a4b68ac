import asyncio
from typing import List, Optional

import pytest
from prometheus_client import CollectorRegistry

from content_cache.cache.models import BlogArtifact, GenerationRequest
from content_cache.cache.service import CacheService
from content_cache.config import CacheConfig
from content_cache.metrics import CacheMetrics
from content_cache.storage import InMemoryCacheStore, SQLiteCacheStore, SQLiteConfig


class FakeGenerator:
    """Async generator double that records every request it receives."""

    def __init__(self, delay: float = 0.0, error: Optional[Exception] = None):
        self.delay = delay
        self.error = error
        self.calls: List[GenerationRequest] = []

    async def __call__(self, request: GenerationRequest) -> BlogArtifact:
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return BlogArtifact(
            title=f"{request.topic.title()} #{len(self.calls)}",
            excerpt="A short excerpt",
            content=f"<h2>{request.topic}</h2><p>{' '.join(request.keywords)}</p>",
            word_count=3,
            quality_score=70,
            quality_grade="Good",
        )


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep local CONTENT_CACHE_* settings out of the tests."""
    for name in ("CONTENT_CACHE_DB_PATH", "CONTENT_CACHE_GENERATION_TIMEOUT", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def registry():
    """Fresh Prometheus registry per test."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    return CacheMetrics(registry=registry)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Each service test runs once per store backend."""
    if request.param == "sqlite":
        return SQLiteCacheStore(SQLiteConfig(db_path=str(tmp_path / "cache.db")))
    return InMemoryCacheStore()


async def count_entries(store) -> int:
    """Count stored rows, expired ones included."""
    return len([summary async for summary in store.scan_all()])


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def config():
    return CacheConfig(generation_timeout=1.0)


@pytest.fixture
def service(store, generator, config, metrics):
    """Cache service over the parametrized store and a recording generator."""
    return CacheService(store, generator=generator, config=config, metrics=metrics)


@pytest.fixture
def seo_params():
    """Generation parameters in the camelCase shape the API receives."""
    return {
        "domain": "test.com",
        "topic": "SEO Tips",
        "keywords": ["seo", "tips"],
        "targetAudience": "marketers",
        "tone": "friendly",
        "wordCount": 800,
    }
