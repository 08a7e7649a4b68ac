"""SQLite storage implementation for cache entries."""

import asyncio
import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, Iterator, List, Optional

import structlog
from pydantic import BaseModel

from content_cache.cache.keys import KEYWORD_DELIMITER
from content_cache.cache.models import BlogArtifact, CacheEntry, EntrySummary, utcnow
from content_cache.errors import PersistenceError
from content_cache.storage.base import CacheStore

logger = structlog.get_logger(__name__)

TABLE = "blog_content_cache"

# Fixed width so that lexical order in SQL matches chronological order
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def to_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


class SQLiteConfig(BaseModel):
    """Configuration for SQLite storage."""

    db_path: str
    scan_batch_size: int = 500
    timeout: float = 30.0


class SQLiteCacheStore(CacheStore):
    """SQLite storage implementation for cache entries.

    Blocking SQLite calls run in worker threads with one connection per
    operation, so the store can be shared by concurrent requests.
    """

    def __init__(self, config: SQLiteConfig):
        """Initialize SQLite storage.

        Args:
            config: SQLite configuration
        """
        self.config = config
        self.db_path = Path(config.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Initialize database
        try:
            with self._get_connection() as conn:
                with open(Path(__file__).parent / "schema.sql") as f:
                    conn.executescript(f.read())
        except sqlite3.Error as e:
            raise PersistenceError(
                f"Failed to initialize cache database: {e}",
                details={"db_path": str(self.db_path)},
            ) from e

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get SQLite connection with row factory, committing on success."""
        conn = sqlite3.connect(self.db_path, timeout=self.config.timeout)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    async def _run(self, operation: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as e:
            logger.error("cache_store_error", operation=operation, error=str(e))
            raise PersistenceError(
                f"Cache store {operation} failed: {e}", details={"operation": operation}
            ) from e

    @staticmethod
    def _to_record(entry: CacheEntry) -> Dict[str, Any]:
        params = entry.parameters
        keywords = params.get("keywords") or ""
        if isinstance(keywords, str):
            keywords = [k for k in keywords.split(KEYWORD_DELIMITER) if k]
        artifact = entry.artifact
        return {
            "id": entry.id,
            "owner_id": entry.owner_id,
            "domain": entry.domain,
            "topic": params.get("topic"),
            "keywords": json.dumps(list(keywords)),
            "target_audience": params.get("target_audience"),
            "tone": params.get("tone"),
            "word_count": params.get("word_count"),
            "include_images": int(bool(params.get("include_images"))),
            "seo_optimized": int(bool(params.get("seo_optimized"))),
            "parameters": json.dumps(params, sort_keys=True),
            "content_hash": entry.fingerprint,
            "title": artifact.title,
            "excerpt": artifact.excerpt,
            "content": artifact.content,
            "seo_score": artifact.quality_score,
            "seo_grade": artifact.quality_grade,
            "seo_analysis": artifact.quality_analysis,
            "word_count_actual": artifact.word_count,
            "is_latest": int(entry.is_latest),
            "expires_at": to_db_timestamp(entry.expires_at),
            "created_at": to_db_timestamp(entry.created_at),
            "updated_at": to_db_timestamp(entry.updated_at),
        }

    @staticmethod
    def _from_row(row: sqlite3.Row) -> CacheEntry:
        return CacheEntry(
            id=row["id"],
            owner_id=row["owner_id"],
            domain=row["domain"],
            fingerprint=row["content_hash"],
            parameters=json.loads(row["parameters"]),
            artifact=BlogArtifact(
                title=row["title"],
                excerpt=row["excerpt"] or "",
                content=row["content"],
                word_count=row["word_count_actual"] or 0,
                quality_score=row["seo_score"],
                quality_grade=row["seo_grade"],
                quality_analysis=row["seo_analysis"],
            ),
            is_latest=bool(row["is_latest"]),
            created_at=from_db_timestamp(row["created_at"]),
            updated_at=from_db_timestamp(row["updated_at"]),
            expires_at=from_db_timestamp(row["expires_at"]),
        )

    def _fetch_one(self, query: str, params: tuple) -> Optional[CacheEntry]:
        with self._get_connection() as conn:
            row = conn.execute(query, params).fetchone()
            return self._from_row(row) if row else None

    def _upsert_sync(self, conn: sqlite3.Connection, entry: CacheEntry) -> CacheEntry:
        record = self._to_record(entry)
        columns = list(record.keys())
        # id and created_at survive a conflict so the row keeps its identity
        updates = ", ".join(
            f"{column} = excluded.{column}"
            for column in columns
            if column not in ("id", "content_hash", "created_at")
        )
        column_list = ", ".join(columns)
        placeholders = ", ".join("?" for _ in columns)
        conn.execute(
            f"""
            INSERT INTO {TABLE} ({column_list})
            VALUES ({placeholders})
            ON CONFLICT(content_hash) DO UPDATE SET {updates}
            """,
            tuple(record[column] for column in columns),
        )
        row = conn.execute(
            f"SELECT * FROM {TABLE} WHERE content_hash = ?", (entry.fingerprint,)
        ).fetchone()
        return self._from_row(row)

    @staticmethod
    def _unset_latest_sync(conn: sqlite3.Connection, owner_id: Optional[str], domain: str) -> int:
        cursor = conn.execute(
            f"UPDATE {TABLE} SET is_latest = 0 WHERE owner_id IS ? AND domain IS ? AND is_latest = 1",
            (owner_id, domain),
        )
        return cursor.rowcount

    async def find_by_fingerprint(self, fingerprint: str) -> Optional[CacheEntry]:
        now = to_db_timestamp(utcnow())
        return await self._run(
            "find_by_fingerprint",
            self._fetch_one,
            f"""
            SELECT * FROM {TABLE}
            WHERE content_hash = ? AND (expires_at IS NULL OR expires_at > ?)
            """,
            (fingerprint, now),
        )

    async def find_latest(self, owner_id: Optional[str], domain: str) -> Optional[CacheEntry]:
        now = to_db_timestamp(utcnow())
        return await self._run(
            "find_latest",
            self._fetch_one,
            f"""
            SELECT * FROM {TABLE}
            WHERE owner_id IS ? AND domain IS ? AND is_latest = 1
              AND (expires_at IS NULL OR expires_at > ?)
            ORDER BY updated_at DESC
            LIMIT 1
            """,
            (owner_id, domain, now),
        )

    async def find_by_id(self, entry_id: str) -> Optional[CacheEntry]:
        return await self._run(
            "find_by_id", self._fetch_one, f"SELECT * FROM {TABLE} WHERE id = ?", (entry_id,)
        )

    async def upsert(self, entry: CacheEntry) -> CacheEntry:
        def _upsert() -> CacheEntry:
            with self._get_connection() as conn:
                return self._upsert_sync(conn, entry)

        return await self._run("upsert", _upsert)

    async def unset_latest(self, owner_id: Optional[str], domain: str) -> int:
        def _unset() -> int:
            with self._get_connection() as conn:
                return self._unset_latest_sync(conn, owner_id, domain)

        return await self._run("unset_latest", _unset)

    async def replace_latest(self, entry: CacheEntry) -> CacheEntry:
        entry = entry.model_copy(update={"is_latest": True})

        def _replace() -> CacheEntry:
            # Both statements share one transaction
            with self._get_connection() as conn:
                self._unset_latest_sync(conn, entry.owner_id, entry.domain)
                return self._upsert_sync(conn, entry)

        return await self._run("replace_latest", _replace)

    async def update_by_id(
        self, entry_id: str, artifact: BlogArtifact, expires_at: Optional[datetime]
    ) -> Optional[CacheEntry]:
        def _update() -> Optional[CacheEntry]:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    f"""
                    UPDATE {TABLE}
                    SET title = ?, excerpt = ?, content = ?, seo_score = ?, seo_grade = ?,
                        seo_analysis = ?, word_count_actual = ?, updated_at = ?, expires_at = ?
                    WHERE id = ?
                    """,
                    (
                        artifact.title,
                        artifact.excerpt,
                        artifact.content,
                        artifact.quality_score,
                        artifact.quality_grade,
                        artifact.quality_analysis,
                        artifact.word_count,
                        to_db_timestamp(utcnow()),
                        to_db_timestamp(expires_at),
                        entry_id,
                    ),
                )
                if cursor.rowcount == 0:
                    return None
                row = conn.execute(f"SELECT * FROM {TABLE} WHERE id = ?", (entry_id,)).fetchone()
                return self._from_row(row)

        return await self._run("update_by_id", _update)

    async def delete_by_fingerprint(self, fingerprint: str) -> int:
        def _delete() -> int:
            with self._get_connection() as conn:
                cursor = conn.execute(f"DELETE FROM {TABLE} WHERE content_hash = ?", (fingerprint,))
                return cursor.rowcount

        return await self._run("delete_by_fingerprint", _delete)

    async def delete_by_domain(self, domain: str, owner_id: Optional[str] = None) -> int:
        query = f"DELETE FROM {TABLE} WHERE domain IS ?"
        params: tuple = (domain,)
        if owner_id is not None:
            query += " AND owner_id IS ?"
            params += (owner_id,)

        def _delete() -> int:
            with self._get_connection() as conn:
                return conn.execute(query, params).rowcount

        return await self._run("delete_by_domain", _delete)

    def _scan_batch(self, after_rowid: int) -> List[sqlite3.Row]:
        with self._get_connection() as conn:
            return conn.execute(
                f"""
                SELECT rowid AS row_num, id, created_at, expires_at FROM {TABLE}
                WHERE rowid > ? ORDER BY rowid LIMIT ?
                """,
                (after_rowid, self.config.scan_batch_size),
            ).fetchall()

    async def scan_all(self) -> AsyncIterator[EntrySummary]:
        last_rowid = 0
        while True:
            rows = await self._run("scan_all", self._scan_batch, last_rowid)
            for row in rows:
                yield EntrySummary(
                    id=row["id"],
                    created_at=from_db_timestamp(row["created_at"]),
                    expires_at=from_db_timestamp(row["expires_at"]),
                )
            if len(rows) < self.config.scan_batch_size:
                return
            last_rowid = rows[-1]["row_num"]

    async def purge_expired(self) -> int:
        now = to_db_timestamp(utcnow())

        def _purge() -> int:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    f"DELETE FROM {TABLE} WHERE expires_at IS NOT NULL AND expires_at <= ?",
                    (now,),
                )
                return cursor.rowcount

        return await self._run("purge_expired", _purge)
