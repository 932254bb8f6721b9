"""Aggregate statistics over the bookmark collection, served through the metrics cache."""

import re
from collections import Counter
from datetime import datetime, timedelta
from typing import Any

from ..storage.base import RecordStore
from ..storage.models import BookmarkRecord
from .cache import MetricsCache

STOP_WORDS = frozenset(
    """
    the a an and or but in on at to for of with by is are was were be been have has had
    do does did will would could should may might can about from up out
    """.split()
)

AGE_BUCKETS: list[tuple[str, timedelta | None]] = [
    ("Last 24 hours", timedelta(days=1)),
    ("Last week", timedelta(days=7)),
    ("Last month", timedelta(days=30)),
    ("Last 3 months", timedelta(days=90)),
    ("Last 6 months", timedelta(days=180)),
    ("Last year", timedelta(days=365)),
    ("Over 1 year", None),
]


def _percent(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


def _month_key(value: datetime) -> str:
    return f"{value.year}-{value.month:02d}"


def domain_stats(bookmarks: list[BookmarkRecord], top: int = 10) -> list[dict[str, Any]]:
    """Top domains by bookmark count, with the rest folded into "Others"."""
    counts = Counter(b.domain for b in bookmarks if b.domain)
    total = len(bookmarks)
    ranked = counts.most_common()
    distribution = [
        {"domain": domain, "count": count, "percentage": _percent(count, total)}
        for domain, count in ranked[:top]
    ]
    others = sum(count for _, count in ranked[top:])
    if others:
        distribution.append(
            {"domain": "Others", "count": others, "percentage": _percent(others, total)}
        )
    return distribution


def activity_timeline(bookmarks: list[BookmarkRecord]) -> list[list[Any]]:
    counts = Counter(_month_key(b.date_added) for b in bookmarks if b.date_added)
    return [[month, count] for month, count in sorted(counts.items())]


def age_distribution(bookmarks: list[BookmarkRecord], now: datetime) -> list[list[Any]]:
    groups = {label: 0 for label, _ in AGE_BUCKETS}
    for bookmark in bookmarks:
        if not bookmark.date_added:
            continue
        age = now - bookmark.date_added
        for label, limit in AGE_BUCKETS:
            if limit is None or age <= limit:
                groups[label] += 1
                break
    return [[label, count] for label, count in groups.items()]


def word_frequency(bookmarks: list[BookmarkRecord], top: int = 20) -> list[list[Any]]:
    counts: Counter[str] = Counter()
    for bookmark in bookmarks:
        words = re.sub(r"[^\w\s]", " ", bookmark.title.lower()).split()
        counts.update(w for w in words if len(w) > 2 and w not in STOP_WORDS)
    return [[word, count] for word, count in counts.most_common(top)]


def category_trends(bookmarks: list[BookmarkRecord], top: int = 5) -> dict[str, Any]:
    """Monthly counts for the most common categories."""
    trends: dict[str, Counter[str]] = {}
    totals: Counter[str] = Counter()
    for bookmark in bookmarks:
        if not bookmark.category or not bookmark.date_added:
            continue
        month = _month_key(bookmark.date_added)
        trends.setdefault(month, Counter())[bookmark.category] += 1
        totals[bookmark.category] += 1

    months = sorted(trends)
    return {
        "months": months,
        "datasets": [
            {"category": category, "data": [trends[m][category] for m in months]}
            for category, _ in totals.most_common(top)
        ],
    }


def expertise_areas(bookmarks: list[BookmarkRecord], top: int = 10) -> list[dict[str, Any]]:
    scores = Counter(b.category or "uncategorized" for b in bookmarks)
    total = sum(scores.values())
    return [
        {"area": area, "score": score, "percentage": _percent(score, total)}
        for area, score in scores.most_common(top)
    ]


def quick_stats(bookmarks: list[BookmarkRecord], now: datetime) -> dict[str, Any]:
    total = len(bookmarks)
    enriched = sum(1 for b in bookmarks if b.last_checked)
    dates = [b.date_added for b in bookmarks if b.date_added]
    return {
        "total": total,
        "enriched": enriched,
        "pending": total - enriched,
        "enrichedPercentage": round(_percent(enriched, total)),
        "uncategorized": sum(1 for b in bookmarks if not b.category),
        "deadLinks": sum(1 for b in bookmarks if b.is_alive is False),
        "failed": sum(1 for b in bookmarks if b.enrichment_error),
        "uniqueDomains": len({b.domain for b in bookmarks if b.domain}),
        "addedThisWeek": sum(1 for d in dates if now - d < timedelta(days=7)),
        "addedThisMonth": sum(1 for d in dates if now - d < timedelta(days=30)),
        "oldestBookmark": min(dates).isoformat() if dates else None,
        "newestBookmark": max(dates).isoformat() if dates else None,
    }


def insights_summary(bookmarks: list[BookmarkRecord], now: datetime) -> dict[str, Any]:
    total = len(bookmarks)
    categorized = sum(1 for b in bookmarks if b.category)
    enriched = sum(1 for b in bookmarks if b.description or b.keywords)
    categories = Counter(b.category for b in bookmarks if b.category)
    platforms = Counter(b.platform for b in bookmarks if b.platform)
    return {
        "totalBookmarks": total,
        "categorized": categorized,
        "categorizedPercentage": _percent(categorized, total),
        "enriched": enriched,
        "enrichedPercentage": _percent(enriched, total),
        "aliveChecked": sum(1 for b in bookmarks if b.is_alive is not None),
        "deadLinks": sum(1 for b in bookmarks if b.is_alive is False),
        "addedThisWeek": sum(
            1 for b in bookmarks if b.date_added and now - b.date_added < timedelta(days=7)
        ),
        "topCategories": [[c, n] for c, n in categories.most_common(5)],
        "topPlatforms": [[p, n] for p, n in platforms.most_common(5)],
        "uniqueDomains": len({b.domain for b in bookmarks if b.domain}),
    }


class Insights:
    """Cached views over the record store."""

    def __init__(self, store: RecordStore, cache: MetricsCache):
        self.store = store
        self.cache = cache

    def domain_stats(self) -> list[dict[str, Any]]:
        return self.cache.get_or_compute(
            "domainStats", lambda: domain_stats(self.store.query_all())
        )

    def activity_timeline(self) -> list[list[Any]]:
        return self.cache.get_or_compute(
            "activityTimeline", lambda: activity_timeline(self.store.query_all())
        )

    def age_distribution(self) -> list[list[Any]]:
        return self.cache.get_or_compute(
            "ageDistribution",
            lambda: age_distribution(self.store.query_all(), datetime.now()),
        )

    def word_frequency(self) -> list[list[Any]]:
        return self.cache.get_or_compute(
            "wordFrequency", lambda: word_frequency(self.store.query_all())
        )

    def category_trends(self) -> dict[str, Any]:
        return self.cache.get_or_compute(
            "categoryTrends", lambda: category_trends(self.store.query_all())
        )

    def expertise_areas(self) -> list[dict[str, Any]]:
        return self.cache.get_or_compute(
            "expertiseAreas", lambda: expertise_areas(self.store.query_all())
        )

    def quick_stats(self) -> dict[str, Any]:
        return self.cache.get_or_compute(
            "quickStats", lambda: quick_stats(self.store.query_all(), datetime.now())
        )

    def summary(self) -> dict[str, Any]:
        return self.cache.get_or_compute(
            "insightsSummary",
            lambda: insights_summary(self.store.query_all(), datetime.now()),
        )
