"""Durable, priority-ordered backlog of bookmarks awaiting enrichment."""

import logging
from datetime import datetime

from ..storage.database import Database
from ..storage.models import QueueItem

logger = logging.getLogger(__name__)

PRIORITY_NEW = 10
PRIORITY_CHANGED = 5
PRIORITY_BACKLOG = 0


class EnrichmentQueue:
    """Enrichment queue stored alongside the bookmarks.

    Enqueue is idempotent: a bookmark has at most one live entry.
    Higher priority is served first, ties in insertion order.
    """

    def __init__(self, db: Database):
        self.db = db

    def enqueue(self, bookmark_id: str, priority: int = PRIORITY_BACKLOG) -> bool:
        """Queue a bookmark. Returns False if it was already queued."""
        with self.db.connection() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO enrichment_queue (bookmark_id, added_at, priority)
                VALUES (?, ?, ?)
                """,
                (bookmark_id, datetime.now().isoformat(), priority),
            )
            return cursor.rowcount > 0

    def next_batch(self, n: int) -> list[QueueItem]:
        with self.db.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM enrichment_queue
                ORDER BY priority DESC, queue_id ASC
                LIMIT ?
                """,
                (n,),
            ).fetchall()
            return [
                QueueItem(
                    queue_id=row["queue_id"],
                    bookmark_id=row["bookmark_id"],
                    added_at=datetime.fromisoformat(row["added_at"]),
                    priority=row["priority"],
                )
                for row in rows
            ]

    def dequeue(self, queue_id: int) -> None:
        with self.db.connection() as conn:
            conn.execute("DELETE FROM enrichment_queue WHERE queue_id = ?", (queue_id,))

    def clear(self) -> None:
        with self.db.connection() as conn:
            conn.execute("DELETE FROM enrichment_queue")

    def size(self) -> int:
        with self.db.connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM enrichment_queue").fetchone()[0]
