"""Data models for cached content."""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from content_cache.cache.keys import (
    DEFAULT_DOMAIN,
    DEFAULT_WORD_COUNT,
    coerce_flag,
    coerce_word_count,
    normalize_keywords,
)


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model accepting and emitting camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerationRequest(CamelModel):
    """Parameters for generating a blog artifact."""

    domain: str = DEFAULT_DOMAIN
    topic: str
    keywords: List[str]
    target_audience: Optional[str] = None
    tone: Optional[str] = None
    word_count: int = DEFAULT_WORD_COUNT
    include_images: bool = False
    seo_optimized: bool = False
    exclusions: List[str] = Field(default_factory=list)
    exclude_content: Optional[str] = None

    @field_validator("keywords", mode="before")
    @classmethod
    def split_keywords(cls, v):
        return normalize_keywords(v)

    @field_validator("domain", mode="before")
    @classmethod
    def default_domain(cls, v):
        return v or DEFAULT_DOMAIN

    @field_validator("word_count", mode="before")
    @classmethod
    def parse_word_count(cls, v):
        return coerce_word_count(v)

    @field_validator("include_images", "seo_optimized", mode="before")
    @classmethod
    def parse_flag(cls, v):
        return coerce_flag(v)

    def cache_params(self) -> Dict[str, Any]:
        """Return the fields that take part in the cache key."""
        return self.model_dump(exclude={"exclusions", "exclude_content"})


class BlogArtifact(CamelModel):
    """Generated content as returned by the generator."""

    title: str
    excerpt: str = ""
    content: str
    word_count: int = 0
    quality_score: Optional[int] = None
    quality_grade: Optional[str] = None
    quality_analysis: Optional[str] = None


class CacheEntry(CamelModel):
    """A cached artifact with its lookup metadata."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    owner_id: Optional[str] = None
    domain: Optional[str] = None
    fingerprint: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    artifact: BlogArtifact
    is_latest: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """Check whether the entry can still be served."""
        if self.expires_at is None:
            return True
        return self.expires_at > (now or utcnow())


class EntrySummary(CamelModel):
    """Lightweight row listing used for statistics."""

    id: str
    created_at: datetime
    expires_at: Optional[datetime] = None


class CacheStats(CamelModel):
    """Counts of cache entries at the time of the call."""

    total: int
    active: int
    expired: int
    last_cleanup: datetime


class CacheResult(CamelModel):
    """Outcome of a read-through request."""

    entry: CacheEntry
    cached: bool = False
    persisted: bool = True

    @property
    def artifact(self) -> BlogArtifact:
        return self.entry.artifact

    @property
    def payload(self) -> Any:
        """Decode a JSON payload stored by the generic fetch path."""
        return json.loads(self.entry.artifact.content)
