"""Cache store interface."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import AsyncIterator, Optional

from content_cache.cache.models import BlogArtifact, CacheEntry, EntrySummary


class CacheStore(ABC):
    """Persistence for cache entries.

    Lookups only ever return valid entries. Every failure of the underlying
    storage is raised as ``PersistenceError``.
    """

    @abstractmethod
    async def find_by_fingerprint(self, fingerprint: str) -> Optional[CacheEntry]:
        """Return the unexpired entry stored under ``fingerprint``."""

    @abstractmethod
    async def find_latest(self, owner_id: Optional[str], domain: str) -> Optional[CacheEntry]:
        """Return the unexpired entry flagged latest for the owner and domain."""

    @abstractmethod
    async def find_by_id(self, entry_id: str) -> Optional[CacheEntry]:
        """Return an entry by id regardless of expiry."""

    @abstractmethod
    async def upsert(self, entry: CacheEntry) -> CacheEntry:
        """Insert ``entry`` or replace the row sharing its fingerprint.

        The replaced row keeps its id and creation time.
        """

    @abstractmethod
    async def unset_latest(self, owner_id: Optional[str], domain: str) -> int:
        """Clear the latest flag on every row for the owner and domain."""

    @abstractmethod
    async def replace_latest(self, entry: CacheEntry) -> CacheEntry:
        """Unset the previous latest row and upsert ``entry`` as latest in one step."""

    @abstractmethod
    async def update_by_id(
        self, entry_id: str, artifact: BlogArtifact, expires_at: Optional[datetime]
    ) -> Optional[CacheEntry]:
        """Replace the artifact of an existing row, keeping id and fingerprint."""

    @abstractmethod
    async def delete_by_fingerprint(self, fingerprint: str) -> int:
        """Delete the row stored under ``fingerprint``."""

    @abstractmethod
    async def delete_by_domain(self, domain: str, owner_id: Optional[str] = None) -> int:
        """Delete every row for ``domain``, only the owner's rows when one is given."""

    @abstractmethod
    def scan_all(self) -> AsyncIterator[EntrySummary]:
        """Lazily list every row. Each call starts a fresh scan."""

    @abstractmethod
    async def purge_expired(self) -> int:
        """Delete every row whose expiry has passed."""

    async def close(self) -> None:
        """Release store resources."""
