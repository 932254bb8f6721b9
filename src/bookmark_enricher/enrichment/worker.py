"""Concurrent enrichment of bookmarks: probe, fetch, categorize, merge, store."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from ..config import Config
from ..extraction.parser import UrlPlatformParser
from ..fetching.fetcher import MetadataFetcher
from ..metrics.cache import MetricsCache
from ..storage.database import Database
from ..storage.models import (
    BatchSummary,
    BookmarkRecord,
    ItemResult,
    ItemStatus,
    ProgressEvent,
    ProgressStatus,
)
from ..tagging.categorizer import categorize
from .merger import merge
from .queue import EnrichmentQueue

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], Any]


@dataclass
class WorkItem:
    bookmark_id: str
    queue_id: int | None = None


class EnrichmentWorkerPool:
    """
    Runs enrichment batches over a fixed pool of asyncio workers.

    Workers claim indices from one shared cursor. Claiming and counting
    happen without an intervening await, so on a single event loop no
    index is claimed twice and no count is lost.
    """

    def __init__(
        self,
        config: Config,
        db: Database,
        queue: EnrichmentQueue,
        fetcher: MetadataFetcher,
        parser: UrlPlatformParser,
        cache: MetricsCache,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.db = db
        self.queue = queue
        self.fetcher = fetcher
        self.parser = parser
        self.cache = cache
        self.clock = clock

    async def run_batch(
        self,
        batch_size: int | None = None,
        progress_callback: ProgressCallback | None = None,
        concurrency: int | None = None,
        force: bool = False,
    ) -> BatchSummary:
        """
        Enrich one batch of bookmarks.

        Args:
            batch_size: Maximum items to select (defaults to config)
            progress_callback: Called with a ProgressEvent before and after each item
            concurrency: Number of workers (defaults to config)
            force: Bypass the queue and the freshness window

        Returns:
            Counts where processed == success + failed + skipped
        """
        summary = BatchSummary()
        if not self.config.enrichment_enabled:
            logger.info("Enrichment is disabled, skipping batch")
            return summary

        batch_size = batch_size or self.config.batch_size
        concurrency = concurrency or self.config.concurrency
        items = self._select(batch_size, force)
        total = len(items)
        if not total:
            logger.info("No bookmarks to enrich")
            return summary

        workers = max(1, min(concurrency, total))
        logger.info(f"Enriching {total} bookmarks with {workers} workers (force={force})")

        cursor = 0
        pause = self.config.rate_limit_ms / 1000

        async def worker() -> None:
            nonlocal cursor
            while cursor < total:
                index = cursor
                cursor += 1
                await self._process(index, total, items[index], summary, progress_callback, force)
                if pause and cursor < total:
                    await asyncio.sleep(pause)

        await asyncio.gather(*(worker() for _ in range(workers)))

        if summary.success:
            self.cache.invalidate("enrich")

        logger.info(
            f"Batch complete: {summary.processed} processed, {summary.success} succeeded, "
            f"{summary.failed} failed, {summary.skipped} skipped"
        )
        return summary

    def _select(self, batch_size: int, force: bool) -> list[WorkItem]:
        if force:
            return [WorkItem(r.id) for r in self.db.get_for_reenrichment(batch_size)]

        queued = self.queue.next_batch(batch_size)
        if queued:
            return [WorkItem(q.bookmark_id, q.queue_id) for q in queued]

        return [WorkItem(r.id) for r in self.db.get_unchecked_http(batch_size)]

    async def _process(
        self,
        index: int,
        total: int,
        item: WorkItem,
        summary: BatchSummary,
        progress_callback: ProgressCallback | None,
        force: bool,
    ) -> None:
        """Process one item. Nothing raised here reaches the worker."""
        record = None
        error = None
        try:
            record = self.db.get(item.bookmark_id)
            self._emit(
                progress_callback,
                ProgressEvent(
                    index=index,
                    total=total,
                    completed=summary.processed,
                    bookmark_id=item.bookmark_id,
                    status=ProgressStatus.PROCESSING,
                    url=record.url if record else None,
                    title=record.title if record else None,
                ),
            )
            if record is None:
                result = ItemResult(item.bookmark_id, ItemStatus.FAILED, error="Bookmark not found")
            else:
                result = await self._enrich(record, force)
        except Exception as e:
            logger.exception(f"Unhandled error enriching bookmark {item.bookmark_id}")
            error = str(e)
            result = ItemResult(item.bookmark_id, ItemStatus.FAILED, error=error)

        if item.queue_id is not None:
            try:
                self.queue.dequeue(item.queue_id)
            except Exception as e:
                logger.error(f"Failed to dequeue {item.bookmark_id}: {e}")

        summary.processed += 1
        if result.status == ItemStatus.SUCCESS:
            summary.success += 1
            status = ProgressStatus.COMPLETED
        elif result.status == ItemStatus.SKIPPED:
            summary.skipped += 1
            status = ProgressStatus.COMPLETED
        else:
            summary.failed += 1
            status = ProgressStatus.ERROR if error else ProgressStatus.FAILED

        self._emit(
            progress_callback,
            ProgressEvent(
                index=index,
                total=total,
                completed=summary.processed,
                bookmark_id=item.bookmark_id,
                status=status,
                url=record.url if record else None,
                title=record.title if record else None,
                result=result,
                error=result.error,
            ),
        )

    def _emit(self, progress_callback: ProgressCallback | None, event: ProgressEvent) -> None:
        if progress_callback is None:
            return
        try:
            progress_callback(event)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    async def enrich_one(self, bookmark_id: str, force: bool = False) -> ItemResult:
        """Enrich a single bookmark outside of a batch."""
        record = self.db.get(bookmark_id)
        if record is None:
            logger.warning(f"Bookmark {bookmark_id} not found")
            return ItemResult(bookmark_id, ItemStatus.FAILED, error="Bookmark not found")

        result = await self._enrich(record, force)
        if result.status == ItemStatus.SUCCESS:
            self.cache.invalidate("enrich")
        return result

    def is_fresh(self, record: BookmarkRecord) -> bool:
        """True if the record was checked within the freshness window."""
        if not record.last_checked or self.config.freshness_days <= 0:
            return False
        return self.clock() - record.last_checked < timedelta(days=self.config.freshness_days)

    async def _enrich(self, record: BookmarkRecord, force: bool) -> ItemResult:
        if not record.is_http:
            logger.info(f"[SKIP] Non-HTTP bookmark: {record.url}")
            return ItemResult(record.id, ItemStatus.SKIPPED, reason="not_http")

        if not force and self.is_fresh(record):
            logger.info(f"[SKIP] Recently checked: {record.title or record.url}")
            return ItemResult(
                record.id, ItemStatus.SKIPPED, is_alive=record.is_alive, reason="fresh"
            )

        try:
            is_alive = await self.fetcher.check_alive(record.url)

            if is_alive is False:
                record.is_alive = False
                record.last_checked = self.clock()
                record.enrichment_error = None
                self.db.upsert(record)
                self.db.log_event(record.id, "enrichment", {"isAlive": False})
                logger.info(f"[DEAD] {record.url}")
                return ItemResult(record.id, ItemStatus.SUCCESS, is_alive=False, reason="dead_link")

            metadata = await self.fetcher.fetch_metadata(record.url)
            category = categorize(record, metadata)
            platform_data = merge(self.parser.parse(record.url), metadata)

            record.description = metadata.description or record.description
            record.keywords = metadata.keywords or record.keywords
            record.category = category or record.category
            record.favicon_url = metadata.favicon_url or record.favicon_url
            record.content_snippet = metadata.snippet or record.content_snippet
            record.raw_metadata = metadata.raw or record.raw_metadata
            if platform_data is not None:
                record.platform = platform_data.platform.value
                record.creator = platform_data.creator or record.creator
                record.content_type = platform_data.content_type or record.content_type
                record.platform_data = platform_data
            record.is_alive = is_alive
            record.last_checked = self.clock()
            record.enrichment_error = None

            self.db.upsert(record)
            self.db.log_event(
                record.id,
                "enrichment",
                {
                    "success": True,
                    "category": category,
                    "hasDescription": bool(metadata.description),
                },
            )
            logger.info(f"[OK] {record.title or record.url} ({category or 'uncategorized'})")
            return ItemResult(
                record.id,
                ItemStatus.SUCCESS,
                is_alive=is_alive,
                category=category,
                description=metadata.description,
                platform=record.platform,
            )

        except Exception as e:
            logger.error(f"[FAILED] {record.url}: {e}")
            record.last_checked = self.clock()
            record.enrichment_error = str(e)
            self.db.upsert(record)
            self.db.log_event(record.id, "enrichment", {"success": False, "error": str(e)})
            return ItemResult(record.id, ItemStatus.FAILED, error=str(e))

    async def recheck_dead_links(
        self, progress_callback: ProgressCallback | None = None
    ) -> dict[str, int]:
        """Force-enrich every bookmark last found dead."""
        dead = self.db.get_dead_links()
        stats = {"total": len(dead), "revived": 0, "still_dead": 0, "errors": 0}
        logger.info(f"Rechecking {len(dead)} dead links")

        for index, record in enumerate(dead):
            result = await self._enrich(record, force=True)
            if result.status == ItemStatus.FAILED:
                stats["errors"] += 1
                status = ProgressStatus.FAILED
            else:
                if result.is_alive is False:
                    stats["still_dead"] += 1
                else:
                    stats["revived"] += 1
                status = ProgressStatus.COMPLETED
            self._emit(
                progress_callback,
                ProgressEvent(
                    index=index,
                    total=len(dead),
                    completed=index + 1,
                    bookmark_id=record.id,
                    status=status,
                    url=record.url,
                    title=record.title,
                    result=result,
                    error=result.error,
                ),
            )

        if stats["revived"]:
            self.cache.invalidate("enrich")
        return stats
