"""In-process cache store.

Entries live in a dictionary keyed by fingerprint and every operation runs
under a reentrant lock. Useful for tests and single-process development;
nothing survives a restart.
"""

import threading
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional

from content_cache.cache.models import BlogArtifact, CacheEntry, EntrySummary, utcnow
from content_cache.storage.base import CacheStore


class InMemoryCacheStore(CacheStore):
    """Thread-safe dictionary-backed cache store."""

    def __init__(self) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    def _valid(self, entry: Optional[CacheEntry]) -> Optional[CacheEntry]:
        if entry is None or not entry.is_valid(utcnow()):
            return None
        return entry.model_copy(deep=True)

    async def find_by_fingerprint(self, fingerprint: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._valid(self._entries.get(fingerprint))

    async def find_latest(self, owner_id: Optional[str], domain: str) -> Optional[CacheEntry]:
        with self._lock:
            candidates = [
                entry
                for entry in self._entries.values()
                if entry.owner_id == owner_id and entry.domain == domain and entry.is_latest
            ]
            candidates.sort(key=lambda entry: entry.updated_at, reverse=True)
            for entry in candidates:
                valid = self._valid(entry)
                if valid is not None:
                    return valid
            return None

    async def find_by_id(self, entry_id: str) -> Optional[CacheEntry]:
        with self._lock:
            for entry in self._entries.values():
                if entry.id == entry_id:
                    return entry.model_copy(deep=True)
            return None

    def _upsert_locked(self, entry: CacheEntry) -> CacheEntry:
        existing = self._entries.get(entry.fingerprint)
        if existing is not None:
            entry = entry.model_copy(update={"id": existing.id, "created_at": existing.created_at})
        self._entries[entry.fingerprint] = entry.model_copy(deep=True)
        return entry.model_copy(deep=True)

    def _unset_latest_locked(self, owner_id: Optional[str], domain: str) -> int:
        changed = 0
        for fingerprint, entry in self._entries.items():
            if entry.owner_id == owner_id and entry.domain == domain and entry.is_latest:
                self._entries[fingerprint] = entry.model_copy(update={"is_latest": False})
                changed += 1
        return changed

    async def upsert(self, entry: CacheEntry) -> CacheEntry:
        with self._lock:
            return self._upsert_locked(entry)

    async def unset_latest(self, owner_id: Optional[str], domain: str) -> int:
        with self._lock:
            return self._unset_latest_locked(owner_id, domain)

    async def replace_latest(self, entry: CacheEntry) -> CacheEntry:
        with self._lock:
            self._unset_latest_locked(entry.owner_id, entry.domain)
            return self._upsert_locked(entry.model_copy(update={"is_latest": True}))

    async def update_by_id(
        self, entry_id: str, artifact: BlogArtifact, expires_at: Optional[datetime]
    ) -> Optional[CacheEntry]:
        with self._lock:
            for fingerprint, entry in self._entries.items():
                if entry.id == entry_id:
                    updated = entry.model_copy(
                        update={
                            "artifact": artifact.model_copy(deep=True),
                            "updated_at": utcnow(),
                            "expires_at": expires_at,
                        }
                    )
                    self._entries[fingerprint] = updated
                    return updated.model_copy(deep=True)
            return None

    async def delete_by_fingerprint(self, fingerprint: str) -> int:
        with self._lock:
            return 1 if self._entries.pop(fingerprint, None) is not None else 0

    async def delete_by_domain(self, domain: str, owner_id: Optional[str] = None) -> int:
        with self._lock:
            doomed = [
                fp
                for fp, entry in self._entries.items()
                if entry.domain == domain and (owner_id is None or entry.owner_id == owner_id)
            ]
            for fingerprint in doomed:
                del self._entries[fingerprint]
            return len(doomed)

    async def scan_all(self) -> AsyncIterator[EntrySummary]:
        with self._lock:
            snapshot: List[CacheEntry] = list(self._entries.values())
        for entry in snapshot:
            yield EntrySummary(id=entry.id, created_at=entry.created_at, expires_at=entry.expires_at)

    async def purge_expired(self) -> int:
        now = utcnow()
        with self._lock:
            expired = [fp for fp, entry in self._entries.items() if not entry.is_valid(now)]
            for fingerprint in expired:
                del self._entries[fingerprint]
            return len(expired)

    def __len__(self) -> int:
        """Get the number of stored entries, expired ones included."""
        return len(self._entries)
