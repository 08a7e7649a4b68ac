"""Tests for the read-through cache service."""

from datetime import timedelta
from unittest.mock import AsyncMock, Mock

import pytest

from conftest import FakeGenerator, count_entries

from content_cache.cache.keys import generate_cache_key
from content_cache.cache.models import BlogArtifact, utcnow
from content_cache.cache.service import CacheService
from content_cache.config import CacheConfig
from content_cache.errors import GenerationError, InvalidParametersError, PersistenceError


def sample_value(registry, name):
    return registry.get_sample_value(name) or 0.0


@pytest.mark.asyncio
async def test_miss_generates_and_stores(service, generator, store, registry, seo_params):
    """Test a first request generates once and stores a 30 day entry."""
    before = utcnow()
    result = await service.get_or_generate(seo_params, owner_id="user-1")

    assert not result.cached
    assert result.persisted
    assert len(generator.calls) == 1
    assert await count_entries(store) == 1
    assert result.entry.is_latest
    assert result.entry.owner_id == "user-1"
    assert result.entry.domain == "test.com"
    assert result.artifact.title == "Seo Tips #1"
    expected = before + timedelta(days=30)
    assert abs((result.entry.expires_at - expected).total_seconds()) < 5
    assert sample_value(registry, "content_cache_misses_total") == 1
    assert sample_value(registry, "content_cache_generations_total") == 1


@pytest.mark.asyncio
async def test_hit_skips_generator(service, generator, registry, seo_params):
    """Test a repeated request is served from cache with the same entry."""
    first = await service.get_or_generate(seo_params, owner_id="user-1")
    second = await service.get_or_generate(seo_params, owner_id="user-1")

    assert second.cached
    assert second.entry.id == first.entry.id
    assert second.artifact == first.artifact
    assert len(generator.calls) == 1
    assert sample_value(registry, "content_cache_hits_total") == 1


@pytest.mark.asyncio
async def test_equivalent_shapes_hit(service, generator, seo_params):
    """Test loosely typed variants of the same request hit the cache."""
    await service.get_or_generate(seo_params)
    variant = {
        "domain": "TEST.com",
        "topic": "  seo tips ",
        "keywords": "tips, seo",
        "target_audience": "Marketers",
        "tone": "FRIENDLY",
        "wordCount": "800",
    }
    result = await service.get_or_generate(variant)

    assert result.cached
    assert len(generator.calls) == 1


@pytest.mark.asyncio
async def test_missing_domain_defaults(service):
    """Test requests without a domain are keyed under the default domain."""
    params = {"topic": "AI", "keywords": ["ml"]}
    assert service.generate_cache_key(params) == service.generate_cache_key({**params, "domain": "default"})
    result = await service.get_or_generate(params, owner_id="user-1")
    assert result.entry.domain == "default"


@pytest.mark.asyncio
async def test_request_without_domain_is_served_from_cache(service, generator, seo_params):
    """Test a domainless request hits on repeat and shares the module level key."""
    params = {key: value for key, value in seo_params.items() if key != "domain"}

    before = utcnow()
    first = await service.get_or_generate(params, owner_id="user-1")
    second = await service.get_or_generate(params, owner_id="user-1")

    assert second.cached
    assert second.entry.id == first.entry.id
    assert len(generator.calls) == 1
    expected = before + timedelta(days=30)
    assert abs((second.entry.expires_at - expected).total_seconds()) < 5
    assert generate_cache_key(params) == service.generate_cache_key(params) == first.entry.fingerprint
    latest = await service.get_latest_user_content("user-1", "default")
    assert latest.id == first.entry.id


@pytest.mark.asyncio
async def test_expiration_boundary(service, seo_params):
    """Test entries stop being served once their expiry passes."""
    artifact = BlogArtifact(title="Cached", content="<p>cached</p>")
    stored = await service.store_cached_content(seo_params, artifact)

    await service.store.update_by_id(stored.id, artifact, utcnow() + timedelta(seconds=30))
    assert await service.get_cached_content(seo_params) is not None

    await service.store.update_by_id(stored.id, artifact, utcnow() - timedelta(seconds=1))
    assert await service.get_cached_content(seo_params) is None


@pytest.mark.asyncio
async def test_expired_entry_is_regenerated(service, generator, store, seo_params):
    """Test a miss on an expired entry replaces it under the same fingerprint."""
    first = await service.get_or_generate(seo_params, owner_id="user-1")
    await store.update_by_id(first.entry.id, first.artifact, utcnow() - timedelta(seconds=1))

    second = await service.get_or_generate(seo_params, owner_id="user-1")

    assert not second.cached
    assert len(generator.calls) == 2
    assert await count_entries(store) == 1
    assert second.entry.id == first.entry.id
    assert second.entry.is_valid()


@pytest.mark.asyncio
async def test_latest_is_exclusive_per_owner_and_domain(service, store, seo_params):
    """Test only the newest artifact is flagged latest for an owner and domain."""
    older = await service.get_or_generate(seo_params, owner_id="user-1")
    newer = await service.get_or_generate({**seo_params, "topic": "Link Building"}, owner_id="user-1")
    other_domain = await service.get_or_generate(
        {**seo_params, "domain": "other.com"}, owner_id="user-1"
    )

    latest = await service.get_latest_user_content("user-1", "test.com")
    assert latest.id == newer.entry.id
    assert (await store.find_by_id(older.entry.id)).is_latest is False

    other = await service.get_latest_user_content("user-1", "Other.com")
    assert other.id == other_domain.entry.id
    assert (await store.find_by_id(other_domain.entry.id)).is_latest is True


@pytest.mark.asyncio
async def test_storing_latest_twice_keeps_one_latest(service, store, seo_params):
    """Test explicit latest stores demote the previous latest entry."""
    first = await service.store_cached_content(
        seo_params, BlogArtifact(title="First", content="<p>1</p>"), owner_id="user-1", is_latest=True
    )
    second = await service.store_cached_content(
        {**seo_params, "topic": "Second"},
        BlogArtifact(title="Second", content="<p>2</p>"),
        owner_id="user-1",
        is_latest=True,
    )

    assert first.is_latest and second.is_latest
    assert (await store.find_by_id(first.id)).is_latest is False
    assert (await store.find_by_id(second.id)).is_latest is True
    latest = await service.get_latest_user_content("user-1", "test.com")
    assert latest.id == second.id


@pytest.mark.asyncio
async def test_latest_without_owner(service, seo_params):
    """Test anonymous callers never have a latest entry."""
    await service.get_or_generate(seo_params)
    assert await service.get_latest_user_content(None, "test.com") is None
    assert await service.get_latest_user_content("user-2", "test.com") is None


@pytest.mark.asyncio
async def test_store_without_latest_flag(service, store, seo_params):
    """Test plain stores leave the current latest entry alone."""
    current = await service.get_or_generate(seo_params, owner_id="user-1")
    artifact = BlogArtifact(title="Side", content="<p>side</p>")
    side = await service.store_cached_content(
        {**seo_params, "topic": "Other"}, artifact, owner_id="user-1"
    )

    assert not side.is_latest
    latest = await service.get_latest_user_content("user-1", "test.com")
    assert latest.id == current.entry.id


@pytest.mark.asyncio
async def test_store_then_lookup_round_trip(service, seo_params):
    """Test a stored artifact comes back unchanged."""
    artifact = BlogArtifact(
        title="SEO Tips",
        excerpt="Tips",
        content="<h2>SEO</h2>",
        word_count=1,
        quality_score=80,
        quality_grade="Good",
        quality_analysis="ok",
    )
    stored = await service.store_cached_content(seo_params, artifact, owner_id="user-1")
    cached = await service.get_cached_content(seo_params)

    assert cached.id == stored.id
    assert cached.artifact == artifact
    assert cached.fingerprint == service.generate_cache_key(seo_params)


@pytest.mark.asyncio
async def test_invalidate_then_miss(service, generator, registry, seo_params):
    """Test invalidation forces the next request to regenerate."""
    await service.get_or_generate(seo_params)

    assert await service.invalidate_cache(seo_params)
    assert await service.get_cached_content(seo_params) is None

    result = await service.get_or_generate(seo_params)
    assert not result.cached
    assert len(generator.calls) == 2
    assert sample_value(registry, "content_cache_invalidations_total") == 1


@pytest.mark.asyncio
async def test_invalidate_missing_entry(service, seo_params):
    assert await service.invalidate_cache(seo_params)


@pytest.mark.asyncio
async def test_invalidate_domain_clears_articles_and_analyses(service, generator, registry, seo_params):
    """Test domain invalidation drops every artifact type cached for the domain."""
    await service.get_or_generate(seo_params, owner_id="user-1")
    await service.get_or_generate({**seo_params, "topic": "Link Building"}, owner_id="user-2")
    kept = await service.get_or_generate({**seo_params, "domain": "other.com"}, owner_id="user-1")
    fetcher = AsyncMock(return_value={"score": 72})
    analysis_params = {"domain": "Example.com", "url": "https://example.com/post"}
    await service.get_or_fetch({**analysis_params, "domain": "test.com"}, fetcher)
    await service.get_or_fetch(analysis_params, fetcher)

    assert await service.invalidate_domain(" Test.com ") == 3
    assert await service.invalidate_domain("example.com") == 1
    assert sample_value(registry, "content_cache_invalidations_total") == 4

    assert await service.get_cached_content(seo_params) is None
    assert await service.get_latest_user_content("user-1", "test.com") is None
    assert (await service.get_cached_content({**seo_params, "domain": "other.com"})).id == kept.entry.id

    refetched = await service.get_or_fetch(analysis_params, fetcher)
    assert not refetched.cached
    assert fetcher.await_count == 3
    regenerated = await service.get_or_generate(seo_params, owner_id="user-1")
    assert not regenerated.cached
    assert len(generator.calls) == 4


@pytest.mark.asyncio
async def test_invalidate_domain_for_one_owner(service, seo_params):
    mine = await service.get_or_generate(seo_params, owner_id="user-1")
    theirs = await service.get_or_generate({**seo_params, "topic": "Other"}, owner_id="user-2")

    assert await service.invalidate_domain("test.com", owner_id="user-2") == 1
    assert (await service.get_cached_content(seo_params)).id == mine.entry.id
    assert await service.get_cached_content({**seo_params, "topic": "Other"}) is None
    assert await service.store.find_by_id(theirs.entry.id) is None


@pytest.mark.asyncio
async def test_invalidate_domain_without_domain_targets_default(service):
    await service.get_or_generate({"topic": "AI", "keywords": ["ml"]})
    assert await service.invalidate_domain(None) == 1
    assert await service.invalidate_domain("") == 0


@pytest.mark.asyncio
async def test_update_existing_content_resets_expiry(service, seo_params):
    """Test updating an entry replaces its artifact and restarts its TTL."""
    artifact = BlogArtifact(title="Old", content="<p>old</p>")
    stored = await service.store_cached_content(seo_params, artifact)
    await service.store.update_by_id(stored.id, artifact, utcnow() + timedelta(days=1))

    updated = await service.update_existing_content(stored.id, BlogArtifact(title="New", content="<p>new</p>"))

    assert updated.id == stored.id
    assert updated.artifact.title == "New"
    assert updated.expires_at > utcnow() + timedelta(days=29)
    assert await service.update_existing_content("missing", artifact) is None


@pytest.mark.asyncio
async def test_invalid_parameters(service, generator):
    """Test requests without topic or keywords are rejected before generation."""
    with pytest.raises(InvalidParametersError):
        await service.get_or_generate({"keywords": ["seo"]})
    with pytest.raises(InvalidParametersError):
        await service.get_or_generate({"topic": "SEO", "keywords": " , "})
    with pytest.raises(InvalidParametersError):
        await service.get_or_generate({"topic": "   ", "keywords": ["seo"]})
    assert generator.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("keywords", [5, {"seo": 1}, b"seo", 3.5])
async def test_malformed_keywords_are_rejected(service, generator, keywords):
    """Test keywords that are neither a string nor a list fail validation."""
    with pytest.raises(InvalidParametersError, match="Keywords"):
        await service.get_or_generate({"topic": "SEO", "keywords": keywords})
    assert generator.calls == []


@pytest.mark.asyncio
async def test_non_mapping_parameters_are_rejected(service, generator):
    with pytest.raises(InvalidParametersError, match="must be an object"):
        await service.get_or_generate(["SEO", "seo"])
    with pytest.raises(InvalidParametersError):
        await service.regenerate("SEO Tips")
    assert generator.calls == []


@pytest.mark.asyncio
async def test_invalid_word_count_uses_default(service, generator):
    result = await service.get_or_generate({"topic": "SEO", "keywords": ["seo"], "wordCount": "lots"})
    assert result.entry.parameters["word_count"] == 500
    assert generator.calls[0].word_count == 500


@pytest.mark.asyncio
async def test_store_failure_degrades_to_generation(generator, metrics, registry, seo_params):
    """Test an unavailable store still serves a freshly generated artifact."""
    store = Mock()
    store.find_by_fingerprint = AsyncMock(side_effect=PersistenceError("database is locked"))
    store.replace_latest = AsyncMock(side_effect=PersistenceError("database is locked"))
    service = CacheService(store, generator=generator, metrics=metrics)

    result = await service.get_or_generate(seo_params, owner_id="user-1")

    assert not result.cached
    assert not result.persisted
    assert result.artifact.title == "Seo Tips #1"
    assert len(generator.calls) == 1
    assert sample_value(registry, "content_cache_errors_total") == 2


@pytest.mark.asyncio
async def test_store_failure_on_admin_operations(metrics, seo_params):
    """Test store failures on admin paths are reported, not raised."""
    store = Mock()
    store.delete_by_fingerprint = AsyncMock(side_effect=PersistenceError("down"))
    store.purge_expired = AsyncMock(side_effect=PersistenceError("down"))
    store.find_latest = AsyncMock(side_effect=PersistenceError("down"))
    store.delete_by_domain = AsyncMock(side_effect=PersistenceError("down"))
    service = CacheService(store, metrics=metrics)

    assert await service.invalidate_cache(seo_params) is False
    assert await service.cleanup_expired_cache() is None
    assert await service.get_latest_user_content("user-1", "test.com") is None
    assert await service.invalidate_domain("test.com") is None


@pytest.mark.asyncio
async def test_generation_timeout(store, metrics, registry, seo_params):
    """Test a slow generator fails the request and stores nothing."""
    service = CacheService(
        store,
        generator=FakeGenerator(delay=1.0),
        config=CacheConfig(generation_timeout=0.05),
        metrics=metrics,
    )

    with pytest.raises(GenerationError, match="timed out"):
        await service.get_or_generate(seo_params)

    assert await count_entries(store) == 0
    assert sample_value(registry, "content_cache_generation_failures_total") == 1


@pytest.mark.asyncio
async def test_generator_error_is_not_cached(store, metrics, seo_params):
    """Test generator failures propagate as GenerationError and are never cached."""
    generator = FakeGenerator(error=RuntimeError("model overloaded"))
    service = CacheService(store, generator=generator, metrics=metrics)

    with pytest.raises(GenerationError, match="model overloaded"):
        await service.get_or_generate(seo_params)
    assert await count_entries(store) == 0

    original = GenerationError("quota exceeded")
    generator.error = original
    with pytest.raises(GenerationError) as exc_info:
        await service.get_or_generate(seo_params)
    assert exc_info.value is original


@pytest.mark.asyncio
async def test_empty_artifact_is_rejected(store, metrics, registry, seo_params):
    """Test an empty artifact counts as a failed generation and is not stored."""
    generator = AsyncMock(return_value=BlogArtifact(title="Empty", content=""))
    service = CacheService(store, generator=generator, metrics=metrics)

    with pytest.raises(GenerationError):
        await service.get_or_generate(seo_params)
    assert await count_entries(store) == 0
    assert sample_value(registry, "content_cache_generations_total") == 0
    assert sample_value(registry, "content_cache_generation_failures_total") == 1


@pytest.mark.asyncio
async def test_no_generator_configured(store, metrics, seo_params):
    service = CacheService(store, metrics=metrics)
    with pytest.raises(GenerationError, match="No generator"):
        await service.get_or_generate(seo_params)


@pytest.mark.asyncio
async def test_regenerate_replaces_cached_artifact(service, generator, store, seo_params):
    """Test regeneration passes exclusions and replaces the cached artifact."""
    first = await service.get_or_generate(seo_params, owner_id="user-1")

    result = await service.regenerate(
        seo_params,
        owner_id="user-1",
        exclusions=[first.artifact.title, ""],
        exclude_content=first.artifact.content,
    )

    assert not result.cached
    assert len(generator.calls) == 2
    assert generator.calls[1].exclusions == [first.artifact.title]
    assert generator.calls[1].exclude_content == first.artifact.content
    assert result.artifact.title == "Seo Tips #2"
    assert await count_entries(store) == 1

    cached = await service.get_cached_content(seo_params)
    assert cached.artifact.title == "Seo Tips #2"
    latest = await service.get_latest_user_content("user-1", "test.com")
    assert latest.id == result.entry.id


@pytest.mark.asyncio
async def test_regenerate_updates_existing_entry(service, generator, seo_params):
    """Test regeneration updates the referenced entry in place."""
    existing = await service.get_or_generate({**seo_params, "topic": "Old Topic"}, owner_id="user-1")

    result = await service.regenerate(seo_params, owner_id="user-1", existing_entry_id=existing.entry.id)

    assert result.entry.id == existing.entry.id
    assert result.artifact.title == "Seo Tips #2"
    assert result.persisted


@pytest.mark.asyncio
async def test_regenerate_unknown_existing_entry_stores_latest(service, seo_params):
    result = await service.regenerate(seo_params, owner_id="user-1", existing_entry_id="gone")

    assert result.persisted
    assert result.entry.is_latest
    assert result.entry.id != "gone"


@pytest.mark.asyncio
async def test_get_or_fetch_uses_analysis_ttl(service):
    """Test fetched analyses are cached for seven days."""
    fetcher = AsyncMock(return_value={"score": 72, "issues": ["missing meta description"]})
    params = {"url": "https://Example.com/post", "keywords": ["seo"]}

    before = utcnow()
    first = await service.get_or_fetch(params, fetcher)
    second = await service.get_or_fetch(params, fetcher)

    assert not first.cached
    assert second.cached
    assert second.payload == {"issues": ["missing meta description"], "score": 72}
    fetcher.assert_awaited_once()
    expected = before + timedelta(days=7)
    assert abs((first.entry.expires_at - expected).total_seconds()) < 5


@pytest.mark.asyncio
async def test_get_or_fetch_custom_ttl(service):
    fetcher = AsyncMock(return_value={"score": 50})
    result = await service.get_or_fetch({"url": "https://example.com"}, fetcher, ttl=timedelta(hours=1))
    assert result.entry.expires_at < utcnow() + timedelta(hours=2)


@pytest.mark.asyncio
async def test_stats_and_cleanup(service, store, registry, seo_params):
    """Test statistics reflect expiry and cleanup removes only expired entries."""
    live = await service.get_or_generate(seo_params, owner_id="user-1")
    stale = await service.get_or_generate({**seo_params, "topic": "Old"}, owner_id="user-1")
    await store.update_by_id(stale.entry.id, stale.artifact, utcnow() - timedelta(seconds=1))

    stats = await service.get_cache_stats()
    assert (stats.total, stats.active, stats.expired) == (2, 1, 1)

    assert await service.cleanup_expired_cache() == 1
    assert sample_value(registry, "content_cache_purged_total") == 1

    stats = await service.get_cache_stats()
    assert (stats.total, stats.active, stats.expired) == (1, 1, 0)
    assert await service.get_cached_content(seo_params) is not None
    assert (await service.get_cached_content(seo_params)).id == live.entry.id


@pytest.mark.asyncio
async def test_stats_on_empty_store(service):
    stats = await service.get_cache_stats()
    assert (stats.total, stats.active, stats.expired) == (0, 0, 0)
    assert stats.last_cleanup is not None
