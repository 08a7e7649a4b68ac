"""Read-through cache service for generated content.

Requests move through key derivation, a fingerprint lookup and, on a miss,
a bounded generator call whose result is written back before it is
returned. Store failures never fail a request: reads degrade to a miss and
writes degrade to returning the unpersisted artifact. Generator failures
always propagate and are never cached.
"""

import asyncio
import json
import time
from datetime import timedelta
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Union

import structlog
from pydantic import ValidationError

from content_cache.cache.keys import (
    DEFAULT_DOMAIN,
    fingerprint,
    is_keyword_input,
    normalize_bag,
    normalize_keywords,
    normalize_parameters,
    normalize_text,
)
from content_cache.cache.models import (
    BlogArtifact,
    CacheEntry,
    CacheResult,
    CacheStats,
    GenerationRequest,
    utcnow,
)
from content_cache.config import CacheConfig
from content_cache.errors import GenerationError, InvalidParametersError, PersistenceError
from content_cache.metrics import CacheMetrics, get_metrics
from content_cache.storage.base import CacheStore

logger = structlog.get_logger(__name__)

Params = Union[GenerationRequest, Mapping[str, Any]]
BlogGenerator = Callable[[GenerationRequest], Awaitable[BlogArtifact]]


class CacheService:
    """Keyed, expiring, latest-wins cache in front of an expensive generator.

    Build one instance per process and hand it to request handlers.
    """

    def __init__(
        self,
        store: CacheStore,
        generator: Optional[BlogGenerator] = None,
        config: Optional[CacheConfig] = None,
        metrics: Optional[CacheMetrics] = None,
    ) -> None:
        """Initialize the cache service.

        Args:
            store: Persistence for cache entries
            generator: Async callable producing artifacts on a miss
            config: Cache configuration, defaults used when omitted
            metrics: Metrics holder, the process-wide one when omitted
        """
        self.store = store
        self.generator = generator
        self.config = config or CacheConfig()
        self.metrics = metrics or get_metrics()

    @property
    def content_ttl(self) -> timedelta:
        return timedelta(days=self.config.content_ttl_days)

    @property
    def analysis_ttl(self) -> timedelta:
        return timedelta(days=self.config.analysis_ttl_days)

    # Key derivation

    def validate_request(self, params: Params) -> GenerationRequest:
        """Reject requests without a topic or keywords before touching the store.

        Raises:
            InvalidParametersError: If required fields are missing or malformed
        """
        if isinstance(params, GenerationRequest):
            topic, keywords = params.topic, params.keywords
        elif isinstance(params, Mapping):
            topic, keywords = params.get("topic"), params.get("keywords")
        else:
            raise InvalidParametersError(
                "Generation parameters must be an object",
                details={"type": type(params).__name__},
            )
        if not is_keyword_input(keywords):
            raise InvalidParametersError(
                "Keywords must be a comma separated string or a list of strings",
                details={"keywords": type(keywords).__name__},
            )
        if not topic or not str(topic).strip() or not normalize_keywords(keywords):
            raise InvalidParametersError(
                "Topic and keywords are required",
                details={"topic": bool(topic), "keywords": bool(keywords)},
            )
        if isinstance(params, GenerationRequest):
            return params
        try:
            return GenerationRequest.model_validate(params)
        except ValidationError as e:
            raise InvalidParametersError("Invalid generation parameters", details={"errors": str(e)}) from e

    def _normalize(self, params: Params) -> dict:
        if isinstance(params, GenerationRequest):
            return normalize_parameters(params.cache_params())
        return normalize_parameters(params)

    def generate_cache_key(self, params: Params) -> str:
        """Return the fingerprint for a set of generation parameters."""
        return fingerprint(self._normalize(params))

    # Store access with failure absorption

    async def _lookup(self, key: str) -> Optional[CacheEntry]:
        try:
            entry = await self.store.find_by_fingerprint(key)
        except PersistenceError as e:
            self.metrics.cache_errors.inc()
            logger.warning("cache_lookup_failed", fingerprint=key, error=e.message)
            return None

        if entry is None:
            self.metrics.cache_misses.inc()
            logger.info("cache_miss", fingerprint=key)
            return None

        self.metrics.cache_hits.inc()
        logger.info("cache_hit", fingerprint=key, entry_id=entry.id)
        return entry

    def _build_entry(
        self,
        normalized: dict,
        artifact: BlogArtifact,
        owner_id: Optional[str],
        is_latest: bool,
        ttl: timedelta,
    ) -> CacheEntry:
        now = utcnow()
        return CacheEntry(
            owner_id=owner_id,
            domain=normalized.get("domain"),
            fingerprint=fingerprint(normalized),
            parameters=normalized,
            artifact=artifact,
            is_latest=is_latest,
            created_at=now,
            updated_at=now,
            expires_at=now + ttl,
        )

    async def _persist(self, entry: CacheEntry) -> Optional[CacheEntry]:
        try:
            if entry.is_latest:
                stored = await self.store.replace_latest(entry)
            else:
                stored = await self.store.upsert(entry)
        except PersistenceError as e:
            self.metrics.cache_errors.inc()
            logger.warning("cache_store_failed", fingerprint=entry.fingerprint, error=e.message)
            return None

        logger.info(
            "cache_stored",
            fingerprint=stored.fingerprint,
            entry_id=stored.id,
            is_latest=stored.is_latest,
            expires_at=stored.expires_at.isoformat() if stored.expires_at else None,
        )
        return stored

    # Cache operations

    async def get_cached_content(self, params: Params) -> Optional[CacheEntry]:
        """Return the valid entry for ``params`` or None."""
        return await self._lookup(self.generate_cache_key(params))

    async def get_latest_user_content(
        self, owner_id: Optional[str], domain: str
    ) -> Optional[CacheEntry]:
        """Return the entry currently flagged latest for an owner and domain.

        Fingerprints play no part here; anonymous owners never have a latest entry.
        """
        if not owner_id:
            logger.info("latest_lookup_skipped", reason="no owner")
            return None
        try:
            return await self.store.find_latest(owner_id, normalize_text(domain))
        except PersistenceError as e:
            self.metrics.cache_errors.inc()
            logger.warning("latest_lookup_failed", owner_id=owner_id, domain=domain, error=e.message)
            return None

    async def store_cached_content(
        self,
        params: Params,
        artifact: BlogArtifact,
        owner_id: Optional[str] = None,
        is_latest: bool = False,
    ) -> Optional[CacheEntry]:
        """Write an artifact under the fingerprint of ``params``.

        Returns:
            The stored entry, or None if the store was unavailable
        """
        entry = self._build_entry(self._normalize(params), artifact, owner_id, is_latest, self.content_ttl)
        return await self._persist(entry)

    async def update_existing_content(
        self, entry_id: str, artifact: BlogArtifact
    ) -> Optional[CacheEntry]:
        """Replace the artifact of an existing entry and restart its TTL."""
        try:
            updated = await self.store.update_by_id(entry_id, artifact, utcnow() + self.content_ttl)
        except PersistenceError as e:
            self.metrics.cache_errors.inc()
            logger.warning("cache_update_failed", entry_id=entry_id, error=e.message)
            return None
        if updated is None:
            logger.info("cache_update_missed", entry_id=entry_id)
        return updated

    async def invalidate_cache(self, params: Params) -> bool:
        """Delete the entry for ``params`` so the next lookup misses."""
        key = self.generate_cache_key(params)
        try:
            deleted = await self.store.delete_by_fingerprint(key)
        except PersistenceError as e:
            self.metrics.cache_errors.inc()
            logger.warning("cache_invalidate_failed", fingerprint=key, error=e.message)
            return False
        if deleted:
            self.metrics.invalidations.inc(deleted)
        logger.info("cache_invalidated", fingerprint=key, deleted=deleted)
        return True

    async def invalidate_domain(
        self, domain: Optional[str], owner_id: Optional[str] = None
    ) -> Optional[int]:
        """Delete every entry cached for a domain, optionally for one owner only.

        Covers blog artifacts and fetched analyses alike, so the next request
        for the domain regenerates or refetches.

        Returns:
            Number of deleted entries, or None if the store was unavailable
        """
        domain = normalize_text(domain) or DEFAULT_DOMAIN
        try:
            deleted = await self.store.delete_by_domain(domain, owner_id=owner_id)
        except PersistenceError as e:
            self.metrics.cache_errors.inc()
            logger.warning("domain_invalidate_failed", domain=domain, owner_id=owner_id, error=e.message)
            return None
        if deleted:
            self.metrics.invalidations.inc(deleted)
        logger.info("domain_invalidated", domain=domain, owner_id=owner_id, deleted=deleted)
        return deleted

    async def cleanup_expired_cache(self) -> Optional[int]:
        """Delete expired entries, returning how many were removed."""
        try:
            purged = await self.store.purge_expired()
        except PersistenceError as e:
            self.metrics.cache_errors.inc()
            logger.warning("cache_cleanup_failed", error=e.message)
            return None
        if purged:
            self.metrics.purged.inc(purged)
        logger.info("cache_cleanup_completed", purged=purged)
        return purged

    async def get_cache_stats(self) -> Optional[CacheStats]:
        """Count total, active and expired entries with a full scan."""
        now = utcnow()
        total = expired = 0
        try:
            async for summary in self.store.scan_all():
                total += 1
                if summary.expires_at is not None and summary.expires_at <= now:
                    expired += 1
        except PersistenceError as e:
            self.metrics.cache_errors.inc()
            logger.warning("cache_stats_failed", error=e.message)
            return None
        return CacheStats(total=total, active=total - expired, expired=expired, last_cleanup=now)

    # Generation

    async def _call_with_timeout(self, label: str, call: Callable[[], Awaitable[Any]]) -> Any:
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(call(), timeout=self.config.generation_timeout)
        except asyncio.TimeoutError as e:
            self.metrics.generation_failures.inc()
            logger.error("generation_timeout", label=label, timeout=self.config.generation_timeout)
            raise GenerationError(
                f"Generation timed out after {self.config.generation_timeout}s",
                details={"label": label},
            ) from e
        except GenerationError as e:
            self.metrics.generation_failures.inc()
            logger.error("generation_failed", label=label, error=e.message)
            raise
        except Exception as e:
            self.metrics.generation_failures.inc()
            logger.error("generation_failed", label=label, error=str(e))
            raise GenerationError(f"Generation failed: {e}", details={"label": label}) from e
        finally:
            self.metrics.generation_time.observe(time.perf_counter() - start)
        return result

    async def _generate(self, request: GenerationRequest) -> BlogArtifact:
        if self.generator is None:
            raise GenerationError("No generator configured")
        artifact = await self._call_with_timeout(request.topic, lambda: self.generator(request))
        if not isinstance(artifact, BlogArtifact) or not artifact.content:
            self.metrics.generation_failures.inc()
            raise GenerationError("Generator returned no content", details={"topic": request.topic})
        self.metrics.generations.inc()
        return artifact

    async def _store_result(
        self,
        request: GenerationRequest,
        artifact: BlogArtifact,
        owner_id: Optional[str],
        is_latest: bool,
    ) -> CacheResult:
        entry = self._build_entry(self._normalize(request), artifact, owner_id, is_latest, self.content_ttl)
        stored = await self._persist(entry)
        if stored is None:
            return CacheResult(entry=entry, cached=False, persisted=False)
        return CacheResult(entry=stored, cached=False, persisted=True)

    async def get_or_generate(
        self, params: Params, owner_id: Optional[str] = None, is_latest: bool = True
    ) -> CacheResult:
        """Serve ``params`` from cache, generating and storing it on a miss.

        Args:
            params: Generation parameters
            owner_id: Requesting principal, None for anonymous requests
            is_latest: Whether a fresh artifact becomes the owner's latest

        Raises:
            InvalidParametersError: If topic or keywords are missing
            GenerationError: If the generator fails or times out
        """
        request = self.validate_request(params)
        cached = await self._lookup(self.generate_cache_key(request))
        if cached is not None:
            return CacheResult(entry=cached, cached=True, persisted=True)

        artifact = await self._generate(request)
        return await self._store_result(request, artifact, owner_id, is_latest)

    async def regenerate(
        self,
        params: Params,
        owner_id: Optional[str] = None,
        exclusions: Optional[Iterable[str]] = None,
        exclude_content: Optional[str] = None,
        existing_entry_id: Optional[str] = None,
    ) -> CacheResult:
        """Drop the cached entry and generate a fresh artifact.

        Args:
            params: Generation parameters
            owner_id: Requesting principal
            exclusions: Previously seen titles the generator should avoid
            exclude_content: Existing content the generator should not repeat
            existing_entry_id: Entry to update in place instead of storing anew
        """
        request = self.validate_request(params)
        update = {}
        if exclusions is not None:
            update["exclusions"] = [title for title in exclusions if title]
        if exclude_content is not None:
            update["exclude_content"] = exclude_content
        if update:
            request = request.model_copy(update=update)

        await self.invalidate_cache(request)
        artifact = await self._generate(request)

        if existing_entry_id:
            updated = await self.update_existing_content(existing_entry_id, artifact)
            if updated is not None:
                return CacheResult(entry=updated, cached=False, persisted=True)

        return await self._store_result(request, artifact, owner_id, True)

    async def get_or_fetch(
        self,
        params: Mapping[str, Any],
        fetcher: Callable[[], Awaitable[Any]],
        ttl: Optional[timedelta] = None,
        owner_id: Optional[str] = None,
        label: str = "analysis",
    ) -> CacheResult:
        """Read-through cache for a JSON payload keyed by an arbitrary parameter bag.

        Used for fetched SEO analyses, which expire after ``analysis_ttl``
        unless another TTL is given. The payload is available as
        ``result.payload``.
        """
        normalized = normalize_bag(params)
        key = fingerprint(normalized)
        cached = await self._lookup(key)
        if cached is not None:
            return CacheResult(entry=cached, cached=True, persisted=True)

        payload = await self._call_with_timeout(label, fetcher)
        self.metrics.generations.inc()
        artifact = BlogArtifact(title=label, content=json.dumps(payload, sort_keys=True))
        entry = self._build_entry(normalized, artifact, owner_id, False, ttl or self.analysis_ttl)
        stored = await self._persist(entry)
        if stored is None:
            return CacheResult(entry=entry, cached=False, persisted=False)
        return CacheResult(entry=stored, cached=False, persisted=True)
