"""TTL cache for computed aggregates, invalidated by mutation type."""

import json
import logging
import time
from typing import Any, Callable

from ..storage.database import Database
from ..storage.models import CachedMetric

logger = logging.getLogger(__name__)

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR

CACHE_DURATIONS: dict[str, int] = {
    "domainStats": HOUR,
    "activityTimeline": 6 * HOUR,
    "wordFrequency": DAY,
    "ageDistribution": 6 * HOUR,
    "categoryTrends": DAY,
    "expertiseAreas": DAY,
    "quickStats": 5 * MINUTE,
    "duplicates": DAY,
    "similarities": DAY,
    "insightsSummary": 5 * MINUTE,
}

# "enrich" never touches domain aggregates.
INVALIDATION_MAP: dict[str, tuple[str, ...]] = {
    "add": ("domainStats", "quickStats", "activityTimeline", "ageDistribution", "insightsSummary"),
    "delete": ("domainStats", "quickStats", "duplicates", "similarities", "insightsSummary"),
    "update": ("quickStats", "insightsSummary"),
    "enrich": ("categoryTrends", "expertiseAreas", "insightsSummary", "quickStats"),
    "all": tuple(CACHE_DURATIONS),
}


class MetricsCache:
    """Computed-metric store backed by the computed_metrics table.

    Expired entries are never returned; they are recomputed lazily on the
    next read. Two readers racing the same miss may both compute; compute
    functions must be pure aggregations over the record store.
    """

    def __init__(self, db: Database, clock: Callable[[], float] = time.time):
        self.db = db
        self.clock = clock

    def get_or_compute(
        self, key: str, compute_fn: Callable[[], Any], ttl: float | None = None
    ) -> Any:
        """
        Return the cached value for key, computing and storing it on a miss.

        Values are stored as JSON, so a miss returns the decoded stored form,
        the same value a later hit returns (tuples as lists, dict keys as str).

        Raises:
            TypeError: If the computed value is not JSON-serializable. Nothing
                is stored in that case.
        """
        if ttl is None:
            ttl = CACHE_DURATIONS.get(key, 5 * MINUTE)

        cached = self.get(key)
        if cached is not None and cached.is_valid(self.clock()):
            logger.debug(f"Cache hit for metric: {key}")
            return cached.data

        logger.debug(f"Cache miss for metric: {key}, computing...")
        value = compute_fn()
        try:
            data = json.loads(json.dumps(value))
        except TypeError as e:
            raise TypeError(f"Metric {key} is not JSON-serializable: {e}") from e
        now = self.clock()
        self.put(CachedMetric(key=key, data=data, computed_at=now, valid_until=now + ttl))
        return data

    def get(self, key: str) -> CachedMetric | None:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM computed_metrics WHERE key = ?", (key,)
            ).fetchone()
            if row is None:
                return None
            return CachedMetric(
                key=row["key"],
                data=json.loads(row["data"]),
                computed_at=row["computed_at"],
                valid_until=row["valid_until"],
            )

    def put(self, metric: CachedMetric) -> None:
        with self.db.connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO computed_metrics (key, data, computed_at, valid_until)
                VALUES (?, ?, ?, ?)
                """,
                (metric.key, json.dumps(metric.data), metric.computed_at, metric.valid_until),
            )

    def invalidate(self, change_type: str) -> list[str]:
        """Delete the metric keys affected by a change type. Returns the keys."""
        keys = list(INVALIDATION_MAP.get(change_type, ()))
        if not keys:
            logger.warning(f"Unknown change type for cache invalidation: {change_type}")
            return keys

        with self.db.connection() as conn:
            conn.executemany(
                "DELETE FROM computed_metrics WHERE key = ?", [(key,) for key in keys]
            )
        logger.info(f"Invalidated caches for change type: {change_type} {keys}")
        return keys

    def keys(self) -> list[str]:
        with self.db.connection() as conn:
            rows = conn.execute("SELECT key FROM computed_metrics ORDER BY key").fetchall()
            return [row["key"] for row in rows]
