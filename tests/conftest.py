"""Shared fixtures for the test suite."""

from datetime import datetime

import pytest

from bookmark_enricher.config import Config
from bookmark_enricher.enrichment.queue import EnrichmentQueue
from bookmark_enricher.enrichment.worker import EnrichmentWorkerPool
from bookmark_enricher.extraction.parser import UrlPlatformParser
from bookmark_enricher.metrics.cache import MetricsCache
from bookmark_enricher.storage.database import Database
from bookmark_enricher.storage.models import BookmarkRecord, PageMetadata, RawMetadata


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFetcher:
    """Stands in for MetadataFetcher and records every call."""

    def __init__(self, alive=True, metadata: PageMetadata | None = None, error: Exception | None = None):
        self.alive = alive
        self.metadata = metadata or PageMetadata(
            description="A page", raw=RawMetadata(meta={"description": "A page"})
        )
        self.error = error
        self.alive_calls: list[str] = []
        self.fetch_calls: list[str] = []

    async def check_alive(self, url: str):
        self.alive_calls.append(url)
        if self.error is not None:
            raise self.error
        return self.alive

    async def fetch_metadata(self, url: str) -> PageMetadata:
        self.fetch_calls.append(url)
        return self.metadata


def make_bookmark(bookmark_id: str, url: str | None = None, **kwargs) -> BookmarkRecord:
    url = url or f"https://example.com/{bookmark_id}"
    kwargs.setdefault("title", f"Bookmark {bookmark_id}")
    kwargs.setdefault("domain", "example.com")
    kwargs.setdefault("date_added", datetime(2024, 1, 1))
    return BookmarkRecord(id=bookmark_id, url=url, **kwargs)


@pytest.fixture
def config(tmp_path):
    return Config(database_path=tmp_path / "bookmarks.db", concurrency=3, rate_limit_ms=0)


@pytest.fixture
def db(config):
    return Database(config.database_path)


@pytest.fixture
def queue(db):
    return EnrichmentQueue(db)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(db, clock):
    return MetricsCache(db, clock=clock)


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def pool(config, db, queue, fetcher, cache):
    return EnrichmentWorkerPool(config, db, queue, fetcher, UrlPlatformParser(), cache)
