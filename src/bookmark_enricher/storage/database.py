"""SQLite storage for bookmarks, the enrichment queue, and cached metrics."""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Generator

from .base import RecordStore
from .models import BookmarkRecord, PlatformData, RawMetadata

SCHEMA_SQL = """
-- Bookmarks with enrichment fields
CREATE TABLE IF NOT EXISTS bookmarks (
    id TEXT PRIMARY KEY,
    url TEXT NOT NULL,
    title TEXT NOT NULL DEFAULT '',
    domain TEXT NOT NULL DEFAULT '',
    date_added TIMESTAMP,

    description TEXT,
    keywords TEXT NOT NULL DEFAULT '[]',
    category TEXT,
    is_alive INTEGER,
    last_checked TIMESTAMP,
    favicon_url TEXT,
    content_snippet TEXT,
    raw_metadata TEXT,
    enrichment_error TEXT,

    platform TEXT,
    creator TEXT,
    content_type TEXT,
    platform_data TEXT,

    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Pending enrichment work, at most one entry per bookmark
CREATE TABLE IF NOT EXISTS enrichment_queue (
    queue_id INTEGER PRIMARY KEY AUTOINCREMENT,
    bookmark_id TEXT UNIQUE NOT NULL,
    added_at TIMESTAMP NOT NULL,
    priority INTEGER NOT NULL DEFAULT 0
);

-- Cached aggregates
CREATE TABLE IF NOT EXISTS computed_metrics (
    key TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    computed_at REAL NOT NULL,
    valid_until REAL NOT NULL
);

-- Enrichment event log
CREATE TABLE IF NOT EXISTS events (
    event_id INTEGER PRIMARY KEY AUTOINCREMENT,
    bookmark_id TEXT NOT NULL,
    type TEXT NOT NULL,
    timestamp TIMESTAMP NOT NULL,
    metadata TEXT NOT NULL DEFAULT '{}'
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_bookmarks_domain ON bookmarks(domain);
CREATE INDEX IF NOT EXISTS idx_bookmarks_last_checked ON bookmarks(last_checked);
CREATE INDEX IF NOT EXISTS idx_bookmarks_is_alive ON bookmarks(is_alive);
CREATE INDEX IF NOT EXISTS idx_bookmarks_platform ON bookmarks(platform);
CREATE INDEX IF NOT EXISTS idx_queue_priority ON enrichment_queue(priority DESC, queue_id);
CREATE INDEX IF NOT EXISTS idx_events_bookmark ON events(bookmark_id, timestamp);
"""

HTTP_FILTER = "(url LIKE 'http://%' OR url LIKE 'https://%')"


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _to_tristate(value: bool | None) -> int | None:
    return None if value is None else int(value)


def _from_tristate(value: int | None) -> bool | None:
    return None if value is None else bool(value)


class Database(RecordStore):
    """SQLite database operations for bookmark storage."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._init_schema()

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self.connection() as conn:
            conn.executescript(SCHEMA_SQL)

    # ---- Record store ----

    def get(self, bookmark_id: str) -> BookmarkRecord | None:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM bookmarks WHERE id = ?", (bookmark_id,)
            ).fetchone()
            return self._row_to_bookmark(row) if row else None

    def upsert(self, record: BookmarkRecord) -> None:
        with self.connection() as conn:
            self._write(conn, record)

    def bulk_upsert(self, records: list[BookmarkRecord]) -> None:
        with self.connection() as conn:
            for record in records:
                self._write(conn, record)

    def query_all(self) -> list[BookmarkRecord]:
        with self.connection() as conn:
            rows = conn.execute("SELECT * FROM bookmarks ORDER BY date_added, id").fetchall()
            return [self._row_to_bookmark(row) for row in rows]

    def delete(self, bookmark_id: str) -> bool:
        """Delete a bookmark along with its queue entry."""
        with self.connection() as conn:
            conn.execute(
                "DELETE FROM enrichment_queue WHERE bookmark_id = ?", (bookmark_id,)
            )
            cursor = conn.execute("DELETE FROM bookmarks WHERE id = ?", (bookmark_id,))
            return cursor.rowcount > 0

    def _write(self, conn: sqlite3.Connection, record: BookmarkRecord) -> None:
        conn.execute(
            """
            INSERT INTO bookmarks (id, url, title, domain, date_added,
                                   description, keywords, category, is_alive,
                                   last_checked, favicon_url, content_snippet,
                                   raw_metadata, enrichment_error, platform,
                                   creator, content_type, platform_data)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                url = excluded.url,
                title = excluded.title,
                domain = excluded.domain,
                date_added = excluded.date_added,
                description = excluded.description,
                keywords = excluded.keywords,
                category = excluded.category,
                is_alive = excluded.is_alive,
                last_checked = excluded.last_checked,
                favicon_url = excluded.favicon_url,
                content_snippet = excluded.content_snippet,
                raw_metadata = excluded.raw_metadata,
                enrichment_error = excluded.enrichment_error,
                platform = excluded.platform,
                creator = excluded.creator,
                content_type = excluded.content_type,
                platform_data = excluded.platform_data,
                updated_at = datetime('now')
            """,
            (
                record.id,
                record.url,
                record.title,
                record.domain,
                _to_iso(record.date_added),
                record.description,
                json.dumps(record.keywords),
                record.category,
                _to_tristate(record.is_alive),
                _to_iso(record.last_checked),
                record.favicon_url,
                record.content_snippet,
                json.dumps(record.raw_metadata.to_dict()) if record.raw_metadata else None,
                record.enrichment_error,
                record.platform,
                record.creator,
                record.content_type,
                json.dumps(record.platform_data.to_dict()) if record.platform_data else None,
            ),
        )

    # ---- Enrichment selection ----

    def get_unchecked_http(self, limit: int) -> list[BookmarkRecord]:
        """Get HTTP(S) bookmarks that have never been checked."""
        with self.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM bookmarks
                WHERE last_checked IS NULL AND {HTTP_FILTER}
                ORDER BY date_added DESC, id
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
            return [self._row_to_bookmark(row) for row in rows]

    def get_for_reenrichment(self, limit: int) -> list[BookmarkRecord]:
        """Never-checked bookmarks first, then the least recently checked."""
        with self.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM bookmarks
                WHERE {HTTP_FILTER}
                ORDER BY last_checked IS NOT NULL, last_checked ASC, id
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
            return [self._row_to_bookmark(row) for row in rows]

    def get_dead_links(self) -> list[BookmarkRecord]:
        """Get bookmarks whose last liveness probe found them dead."""
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM bookmarks WHERE is_alive = 0 ORDER BY last_checked"
            ).fetchall()
            return [self._row_to_bookmark(row) for row in rows]

    def get_stats(self) -> dict:
        """Get enrichment coverage counts."""
        with self.connection() as conn:
            total = conn.execute("SELECT COUNT(*) FROM bookmarks").fetchone()[0]
            enriched = conn.execute(
                "SELECT COUNT(*) FROM bookmarks WHERE last_checked IS NOT NULL"
            ).fetchone()[0]
            dead = conn.execute(
                "SELECT COUNT(*) FROM bookmarks WHERE is_alive = 0"
            ).fetchone()[0]
            failed = conn.execute(
                "SELECT COUNT(*) FROM bookmarks WHERE enrichment_error IS NOT NULL"
            ).fetchone()[0]

            return {
                "total_bookmarks": total,
                "enriched": enriched,
                "pending": total - enriched,
                "dead": dead,
                "errors": failed,
            }

    # ---- Event log ----

    def log_event(
        self, bookmark_id: str, event_type: str, metadata: dict[str, Any] | None = None
    ) -> None:
        with self.connection() as conn:
            conn.execute(
                "INSERT INTO events (bookmark_id, type, timestamp, metadata) VALUES (?, ?, ?, ?)",
                (
                    bookmark_id,
                    event_type,
                    datetime.now().isoformat(),
                    json.dumps(metadata or {}),
                ),
            )

    def get_events(self, bookmark_id: str, limit: int = 50) -> list[dict[str, Any]]:
        """Get the most recent events for a bookmark, newest first."""
        with self.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM events
                WHERE bookmark_id = ?
                ORDER BY timestamp DESC, event_id DESC
                LIMIT ?
                """,
                (bookmark_id, limit),
            ).fetchall()
            return [
                {
                    "type": row["type"],
                    "timestamp": _from_iso(row["timestamp"]),
                    "metadata": json.loads(row["metadata"]),
                }
                for row in rows
            ]

    def _row_to_bookmark(self, row: sqlite3.Row) -> BookmarkRecord:
        """Convert database row to BookmarkRecord."""
        raw_metadata = row["raw_metadata"]
        platform_data = row["platform_data"]
        return BookmarkRecord(
            id=row["id"],
            url=row["url"],
            title=row["title"],
            domain=row["domain"],
            date_added=_from_iso(row["date_added"]),
            description=row["description"],
            keywords=json.loads(row["keywords"]),
            category=row["category"],
            is_alive=_from_tristate(row["is_alive"]),
            last_checked=_from_iso(row["last_checked"]),
            favicon_url=row["favicon_url"],
            content_snippet=row["content_snippet"],
            raw_metadata=RawMetadata.from_dict(json.loads(raw_metadata)) if raw_metadata else None,
            enrichment_error=row["enrichment_error"],
            platform=row["platform"],
            creator=row["creator"],
            content_type=row["content_type"],
            platform_data=(
                PlatformData.from_dict(json.loads(platform_data)) if platform_data else None
            ),
        )
