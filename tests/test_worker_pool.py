"""Tests for the enrichment worker pool."""

import asyncio
from datetime import datetime, timedelta

import pytest

from bookmark_enricher.enrichment.worker import EnrichmentWorkerPool
from bookmark_enricher.extraction.parser import UrlPlatformParser
from bookmark_enricher.storage.models import (
    ItemStatus,
    PageMetadata,
    ProgressStatus,
    RawMetadata,
)
from conftest import FakeFetcher, make_bookmark


def make_pool(config, db, queue, cache, fetcher):
    return EnrichmentWorkerPool(config, db, queue, fetcher, UrlPlatformParser(), cache)


@pytest.mark.asyncio
async def test_alive_bookmark_is_enriched(pool, db, queue, fetcher):
    db.upsert(make_bookmark("a", url="https://example.org/a"))
    queue.enqueue("a")

    summary = await pool.run_batch(1, None, 1)

    assert summary.to_dict() == {"processed": 1, "success": 1, "failed": 0, "skipped": 0}
    record = db.get("a")
    assert record.description == "A page"
    assert record.is_alive is True
    assert record.last_checked is not None
    assert record.platform == "other"
    assert queue.size() == 0
    assert db.get_events("a")[0]["metadata"]["success"] is True


@pytest.mark.asyncio
async def test_dead_link_skips_metadata_fetch(config, db, queue, cache):
    fetcher = FakeFetcher(alive=False)
    pool = make_pool(config, db, queue, cache, fetcher)
    db.upsert(make_bookmark("a"))
    queue.enqueue("a")

    summary = await pool.run_batch(1, None, 1)

    assert summary.success == 1
    assert summary.failed == 0
    assert fetcher.alive_calls == ["https://example.com/a"]
    assert fetcher.fetch_calls == []
    record = db.get("a")
    assert record.is_alive is False
    assert record.description is None


@pytest.mark.asyncio
async def test_unknown_liveness_still_fetches_metadata(config, db, queue, cache):
    fetcher = FakeFetcher(alive=None)
    pool = make_pool(config, db, queue, cache, fetcher)
    db.upsert(make_bookmark("a"))

    result = await pool.enrich_one("a")

    assert result.status == ItemStatus.SUCCESS
    assert fetcher.fetch_calls == ["https://example.com/a"]
    assert db.get("a").is_alive is None


@pytest.mark.asyncio
async def test_fresh_bookmarks_are_skipped_without_network(pool, db, queue, fetcher):
    db.upsert(make_bookmark("fresh", last_checked=datetime.now() - timedelta(days=1)))
    db.upsert(make_bookmark("stale", last_checked=datetime.now() - timedelta(days=31)))
    queue.enqueue("fresh")
    queue.enqueue("stale")

    summary = await pool.run_batch(10)

    assert summary.to_dict() == {"processed": 2, "success": 1, "failed": 0, "skipped": 1}
    assert fetcher.alive_calls == ["https://example.com/stale"]
    assert queue.size() == 0


@pytest.mark.asyncio
async def test_zero_freshness_days_makes_everything_eligible(config, db, queue, cache, fetcher):
    config.freshness_days = 0
    pool = make_pool(config, db, queue, cache, fetcher)
    db.upsert(make_bookmark("a", last_checked=datetime.now()))
    queue.enqueue("a")

    summary = await pool.run_batch(1)

    assert summary.success == 1


@pytest.mark.asyncio
async def test_force_bypasses_freshness(pool, db, fetcher):
    db.upsert(make_bookmark("a", last_checked=datetime.now()))

    summary = await pool.run_batch(5, force=True)

    assert summary.success == 1
    assert fetcher.alive_calls == ["https://example.com/a"]


@pytest.mark.asyncio
async def test_force_selects_never_checked_first(pool, db):
    db.upsert(make_bookmark("old", last_checked=datetime(2020, 1, 1)))
    db.upsert(make_bookmark("older", last_checked=datetime(2019, 1, 1)))
    db.upsert(make_bookmark("never"))
    seen = []

    await pool.run_batch(3, lambda e: seen.append(e.bookmark_id), 1, force=True)

    assert seen[::2] == ["never", "older", "old"]


@pytest.mark.asyncio
async def test_failure_advances_last_checked_and_is_not_retried(config, db, queue, cache):
    fetcher = FakeFetcher(error=RuntimeError("boom"))
    pool = make_pool(config, db, queue, cache, fetcher)
    db.upsert(make_bookmark("a"))

    first = await pool.run_batch(5)
    second = await pool.run_batch(5)

    assert first.to_dict() == {"processed": 1, "success": 0, "failed": 1, "skipped": 0}
    assert second.processed == 0
    record = db.get("a")
    assert record.last_checked is not None
    assert record.enrichment_error == "boom"
    assert len(fetcher.alive_calls) == 1


@pytest.mark.asyncio
async def test_empty_queue_falls_back_to_unchecked_http(pool, db):
    db.upsert(make_bookmark("web"))
    db.upsert(make_bookmark("local", url="file:///tmp/notes.txt"))

    summary = await pool.run_batch(10)

    assert summary.processed == 1
    assert db.get("web").last_checked is not None


@pytest.mark.asyncio
async def test_non_http_and_missing_bookmarks(pool, db, queue):
    db.upsert(make_bookmark("local", url="chrome://settings"))
    queue.enqueue("local")
    queue.enqueue("ghost")

    summary = await pool.run_batch(10)

    assert summary.to_dict() == {"processed": 2, "success": 0, "failed": 1, "skipped": 1}
    assert queue.size() == 0


@pytest.mark.asyncio
async def test_concurrent_batch_processes_each_item_once(config, db, queue, cache):
    class SlowFetcher(FakeFetcher):
        async def check_alive(self, url):
            await asyncio.sleep(0.001)
            return await super().check_alive(url)

    fetcher = SlowFetcher()
    pool = make_pool(config, db, queue, cache, fetcher)
    ids = [f"b{i:02d}" for i in range(50)]
    db.bulk_upsert([make_bookmark(i) for i in ids])
    for i in ids:
        queue.enqueue(i)
    events = []

    summary = await pool.run_batch(50, events.append, 10)

    completed = [e.bookmark_id for e in events if e.status != ProgressStatus.PROCESSING]
    assert sorted(completed) == ids
    assert len(set(completed)) == 50
    assert summary.processed == summary.success + summary.failed + summary.skipped == 50
    assert sorted(fetcher.alive_calls) == sorted(f"https://example.com/{i}" for i in ids)
    assert max(e.completed for e in events) == 50


@pytest.mark.asyncio
async def test_conservation_with_mixed_outcomes(config, db, queue, cache):
    class MixedFetcher(FakeFetcher):
        async def check_alive(self, url):
            if url.endswith("/bad"):
                raise ValueError("bad url")
            return not url.endswith("/dead")

    pool = make_pool(config, db, queue, cache, MixedFetcher())
    db.upsert(make_bookmark("ok", url="https://example.com/ok"))
    db.upsert(make_bookmark("dead", url="https://example.com/dead"))
    db.upsert(make_bookmark("bad", url="https://example.com/bad"))
    db.upsert(make_bookmark("fresh", last_checked=datetime.now()))
    db.upsert(make_bookmark("ftp", url="ftp://example.com/file"))
    for bookmark_id in ("ok", "dead", "bad", "fresh", "ftp"):
        queue.enqueue(bookmark_id)

    summary = await pool.run_batch(10, None, 3)

    assert summary.to_dict() == {"processed": 5, "success": 2, "failed": 1, "skipped": 2}


@pytest.mark.asyncio
async def test_progress_callback_errors_do_not_abort_batch(pool, db):
    db.upsert(make_bookmark("a"))
    db.upsert(make_bookmark("b"))

    def explode(event):
        raise RuntimeError("listener failed")

    summary = await pool.run_batch(5, explode, 2)

    assert summary.success == 2


@pytest.mark.asyncio
async def test_batch_invalidates_enrich_metrics_only(pool, db, cache):
    cache.get_or_compute("quickStats", lambda: 1)
    cache.get_or_compute("domainStats", lambda: 2)
    db.upsert(make_bookmark("a"))

    await pool.run_batch(1)

    assert cache.keys() == ["domainStats"]


@pytest.mark.asyncio
async def test_disabled_enrichment_does_nothing(config, pool, db, fetcher):
    config.enrichment_enabled = False
    db.upsert(make_bookmark("a"))

    summary = await pool.run_batch(5)

    assert summary.processed == 0
    assert fetcher.alive_calls == []


@pytest.mark.asyncio
async def test_platform_data_is_merged(config, db, queue, cache):
    metadata = PageMetadata(
        description="Repo",
        raw=RawMetadata(open_graph={"og:description": "Repo"}),
    )
    pool = make_pool(config, db, queue, cache, FakeFetcher(metadata=metadata))
    db.upsert(make_bookmark("gh", url="https://github.com/owner/repo", title="Some repo"))

    result = await pool.enrich_one("gh")

    record = db.get("gh")
    assert result.category == "code"
    assert record.platform == "github"
    assert record.creator == "owner"
    assert record.content_type == "repo"
    assert record.platform_data.extra["repo_description"] == "Repo"


@pytest.mark.asyncio
async def test_recheck_dead_links(config, db, queue, cache):
    class RecheckFetcher(FakeFetcher):
        async def check_alive(self, url):
            return url.endswith("/back")

    pool = make_pool(config, db, queue, cache, RecheckFetcher())
    db.upsert(make_bookmark("back", url="https://example.com/back", is_alive=False,
                            last_checked=datetime.now()))
    db.upsert(make_bookmark("gone", url="https://example.com/gone", is_alive=False,
                            last_checked=datetime.now()))
    db.upsert(make_bookmark("fine", is_alive=True))

    stats = await pool.recheck_dead_links()

    assert stats == {"total": 2, "revived": 1, "still_dead": 1, "errors": 0}
    assert db.get("back").is_alive is True
