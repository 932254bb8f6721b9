"""CLI entry point and application handle."""

import asyncio
import hashlib
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable
from urllib.parse import urlparse

import click

from .config import Config
from .enrichment.queue import PRIORITY_BACKLOG, PRIORITY_CHANGED, PRIORITY_NEW, EnrichmentQueue
from .enrichment.worker import EnrichmentWorkerPool, ProgressCallback
from .extraction.parser import UrlPlatformParser
from .fetching.fetcher import MetadataFetcher
from .metrics.cache import MetricsCache
from .metrics.insights import Insights
from .storage.database import Database
from .storage.models import BatchSummary, BookmarkRecord, ItemResult, ProgressEvent

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

NON_HTTP_DOMAINS = {
    "chrome": "chrome-internal",
    "chrome-extension": "chrome-internal",
    "file": "local-file",
    "javascript": "javascript-bookmarklet",
    "data": "data-uri",
    "mailto": "contact-link",
    "tel": "contact-link",
}


def extract_domain(url: str) -> str:
    """Hostname without a leading www., or a label for non-web schemes."""
    parsed = urlparse(url)
    if parsed.scheme in ("http", "https"):
        return (parsed.hostname or "").removeprefix("www.")
    return NON_HTTP_DOMAINS.get(parsed.scheme, "other-protocol")


def bookmark_id_for(url: str) -> str:
    return hashlib.md5(url.encode()).hexdigest()[:16]


def _parse_date_added(value: Any) -> datetime | None:
    """Accept ISO strings or browser-style epoch milliseconds."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000)
    return datetime.fromisoformat(str(value))


def flatten_bookmark_tree(nodes: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Collect URL-bearing nodes from a nested bookmark export, depth first."""
    entries = []
    for node in nodes:
        if node.get("url"):
            entries.append(node)
        entries.extend(flatten_bookmark_tree(node.get("children") or []))
    return entries


class BookmarkEnricher:
    """Application handle owning the store, queue, cache and worker pool.

    Build one per process and pass it around; nothing here is global.
    """

    def __init__(
        self,
        config: Config,
        fetcher: MetadataFetcher | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.db = Database(config.database_path)
        self.queue = EnrichmentQueue(self.db)
        self.cache = MetricsCache(self.db)
        self.parser = UrlPlatformParser()
        self.fetcher = fetcher or MetadataFetcher(
            probe_timeout_seconds=config.probe_timeout_seconds,
            fetch_timeout_seconds=config.fetch_timeout_seconds,
            max_content_length=config.max_content_length,
            user_agent=config.user_agent,
        )
        self.pool = EnrichmentWorkerPool(
            config, self.db, self.queue, self.fetcher, self.parser, self.cache, clock=clock
        )
        self.insights = Insights(self.db, self.cache)

    # ---- Enrichment ----

    async def run_enrichment_batch(
        self,
        batch_size: int | None = None,
        progress_callback: ProgressCallback | None = None,
        concurrency: int | None = None,
        force: bool = False,
    ) -> BatchSummary:
        return await self.pool.run_batch(batch_size, progress_callback, concurrency, force)

    async def enrich_one(self, bookmark_id: str, force: bool = False) -> ItemResult:
        return await self.pool.enrich_one(bookmark_id, force=force)

    async def recheck_dead_links(
        self, progress_callback: ProgressCallback | None = None
    ) -> dict[str, int]:
        return await self.pool.recheck_dead_links(progress_callback)

    def enqueue(self, bookmark_id: str, priority: int = PRIORITY_BACKLOG) -> bool:
        return self.queue.enqueue(bookmark_id, priority)

    def queue_unenriched(self) -> int:
        """Rebuild the queue from every HTTP(S) bookmark not yet enriched."""
        self.queue.clear()
        queued = 0
        for record in self.db.query_all():
            if record.is_http and not record.is_enriched:
                queued += self.queue.enqueue(record.id, PRIORITY_BACKLOG)
        logger.info(f"Queued {queued} unenriched bookmarks")
        return queued

    # ---- Metrics ----

    def get_cached_metric(
        self, key: str, compute_fn: Callable[[], Any], ttl: float | None = None
    ) -> Any:
        return self.cache.get_or_compute(key, compute_fn, ttl)

    def invalidate(self, change_type: str) -> list[str]:
        return self.cache.invalidate(change_type)

    # ---- Bookmark lifecycle ----

    def add_bookmark(
        self,
        url: str,
        title: str = "",
        bookmark_id: str | None = None,
        date_added: datetime | None = None,
    ) -> BookmarkRecord:
        record = BookmarkRecord(
            id=bookmark_id or bookmark_id_for(url),
            url=url,
            title=title,
            domain=extract_domain(url),
            date_added=date_added or datetime.now(),
        )
        self.import_bookmarks([record])
        return self.db.get(record.id) or record

    def import_bookmarks(self, records: list[BookmarkRecord]) -> dict[str, int]:
        """
        Insert or refresh bookmarks from a source tree.

        Existing records keep their enrichment fields; only url, title,
        domain and date_added are taken from the incoming record.
        """
        stats = {"imported": 0, "new": 0, "updated": 0, "queued": 0}
        merged = []
        requeue: list[tuple[str, int]] = []

        for incoming in records:
            existing = self.db.get(incoming.id)
            if existing is None:
                incoming.domain = incoming.domain or extract_domain(incoming.url)
                merged.append(incoming)
                stats["new"] += 1
                if incoming.is_http:
                    requeue.append((incoming.id, PRIORITY_NEW))
                continue

            url_changed = existing.url != incoming.url
            existing.url = incoming.url
            existing.title = incoming.title
            existing.domain = incoming.domain or extract_domain(incoming.url)
            existing.date_added = incoming.date_added or existing.date_added
            merged.append(existing)
            stats["updated"] += 1
            if url_changed and existing.is_http:
                requeue.append((existing.id, PRIORITY_CHANGED))

        self.db.bulk_upsert(merged)
        for bookmark_id, priority in requeue:
            stats["queued"] += self.queue.enqueue(bookmark_id, priority)
        stats["imported"] = len(merged)

        if stats["new"]:
            self.invalidate("add")
        if stats["updated"]:
            self.invalidate("update")
        logger.info(
            f"Imported {stats['imported']} bookmarks ({stats['new']} new, {stats['updated']} updated)"
        )
        return stats

    def import_file(self, path: str | Path) -> dict[str, int]:
        """Import a JSON bookmark export: a flat list or a nested tree with children."""
        with open(path) as f:
            data = json.load(f)
        nodes = data if isinstance(data, list) else [data]

        records = []
        for node in flatten_bookmark_tree(nodes):
            url = node["url"]
            records.append(
                BookmarkRecord(
                    id=str(node.get("id") or bookmark_id_for(url)),
                    url=url,
                    title=node.get("title") or "",
                    domain=extract_domain(url),
                    date_added=_parse_date_added(node.get("dateAdded") or node.get("date_added")),
                )
            )
        return self.import_bookmarks(records)

    def update_bookmark(
        self, bookmark_id: str, title: str | None = None, url: str | None = None
    ) -> BookmarkRecord | None:
        record = self.db.get(bookmark_id)
        if record is None:
            return None

        if title is not None:
            record.title = title
        url_changed = url is not None and url != record.url
        if url_changed:
            record.url = url
            record.domain = extract_domain(url)
        self.db.upsert(record)

        if url_changed and record.is_http:
            self.queue.enqueue(record.id, PRIORITY_CHANGED)
        self.invalidate("update")
        return record

    def delete_bookmark(self, bookmark_id: str) -> bool:
        deleted = self.db.delete(bookmark_id)
        if deleted:
            self.invalidate("delete")
        return deleted

    def backfill_platform_data(self) -> dict[str, Any]:
        """Parse platform facts for every bookmark whose stored facts differ. No network."""
        stats: dict[str, Any] = {"processed": 0, "updated": 0, "errors": 0, "platforms": {}}
        updates = []

        for record in self.db.query_all():
            stats["processed"] += 1
            try:
                platform_data = self.parser.parse(record.url)
            except Exception as e:
                stats["errors"] += 1
                logger.warning(f"Error parsing platform data for {record.id}: {e}")
                continue
            if platform_data is None:
                continue

            platform = platform_data.platform.value
            if (
                record.platform == platform
                and record.creator == platform_data.creator
                and record.content_type == platform_data.content_type
            ):
                continue

            record.platform = platform
            record.creator = platform_data.creator
            record.content_type = platform_data.content_type
            record.platform_data = platform_data
            updates.append(record)
            stats["platforms"][platform] = stats["platforms"].get(platform, 0) + 1

        if updates:
            self.db.bulk_upsert(updates)
            self.invalidate("enrich")
        stats["updated"] = len(updates)
        logger.info(f"Platform backfill complete: {stats}")
        return stats

    def status(self) -> dict[str, Any]:
        stats = self.db.get_stats()
        stats["queue_size"] = self.queue.size()
        stats["enrichment_enabled"] = self.config.enrichment_enabled
        return stats


def _echo_progress(event: ProgressEvent) -> None:
    if event.result is None:
        return
    click.echo(
        f"  [{event.completed}/{event.total}] {event.status.value}: "
        f"{(event.url or event.bookmark_id)[:60]}"
    )


@click.group()
def cli() -> None:
    """Bookmark Enricher - Probe, describe, and categorize saved bookmarks."""
    pass


@cli.command()
@click.argument("url")
@click.option("--config", "-c", default="config.yaml", help="Config file path")
@click.option("--title", "-t", default="", help="Bookmark title")
def add(url: str, config: str, title: str) -> None:
    """Add a bookmark and queue it for enrichment."""
    app = BookmarkEnricher(Config.from_yaml(config))
    record = app.add_bookmark(url, title=title)
    click.echo(f"Added {record.id}: {record.url}")


@cli.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--config", "-c", default="config.yaml", help="Config file path")
def import_(path: str, config: str) -> None:
    """Import bookmarks from a JSON export."""
    app = BookmarkEnricher(Config.from_yaml(config))
    stats = app.import_file(path)
    click.echo(
        f"Imported {stats['imported']} bookmarks "
        f"({stats['new']} new, {stats['updated']} updated, {stats['queued']} queued)"
    )


@cli.command()
@click.argument("bookmark_id")
@click.option("--config", "-c", default="config.yaml", help="Config file path")
def delete(bookmark_id: str, config: str) -> None:
    """Delete a bookmark."""
    app = BookmarkEnricher(Config.from_yaml(config))
    if app.delete_bookmark(bookmark_id):
        click.echo(f"Deleted {bookmark_id}")
    else:
        click.echo(f"Bookmark {bookmark_id} not found")


@cli.command()
@click.argument("bookmark_id")
@click.option("--config", "-c", default="config.yaml", help="Config file path")
@click.option("--priority", "-p", default=PRIORITY_BACKLOG, type=int, help="Queue priority")
def enqueue(bookmark_id: str, config: str, priority: int) -> None:
    """Queue a bookmark for enrichment."""
    app = BookmarkEnricher(Config.from_yaml(config))
    if app.enqueue(bookmark_id, priority):
        click.echo(f"Queued {bookmark_id} (priority {priority})")
    else:
        click.echo(f"{bookmark_id} is already queued")


@cli.command("queue-pending")
@click.option("--config", "-c", default="config.yaml", help="Config file path")
def queue_pending(config: str) -> None:
    """Rebuild the queue from all unenriched bookmarks."""
    app = BookmarkEnricher(Config.from_yaml(config))
    click.echo(f"Queued {app.queue_unenriched()} bookmarks")


@cli.command()
@click.option("--config", "-c", default="config.yaml", help="Config file path")
@click.option("--batch-size", "-n", default=None, type=int, help="Max bookmarks to process")
@click.option("--concurrency", "-j", default=None, type=int, help="Number of workers")
@click.option("--force", is_flag=True, help="Ignore the queue and the freshness window")
def enrich(config: str, batch_size: int | None, concurrency: int | None, force: bool) -> None:
    """Run one enrichment batch."""
    app = BookmarkEnricher(Config.from_yaml(config))
    summary = asyncio.run(
        app.run_enrichment_batch(batch_size, _echo_progress, concurrency, force=force)
    )
    click.echo(
        f"\nProcessed {summary.processed}: {summary.success} succeeded, "
        f"{summary.failed} failed, {summary.skipped} skipped"
    )


@cli.command("enrich-one")
@click.argument("bookmark_id")
@click.option("--config", "-c", default="config.yaml", help="Config file path")
@click.option("--force", is_flag=True, help="Ignore the freshness window")
def enrich_one(bookmark_id: str, config: str, force: bool) -> None:
    """Enrich a single bookmark."""
    app = BookmarkEnricher(Config.from_yaml(config))
    result = asyncio.run(app.enrich_one(bookmark_id, force=force))
    click.echo(f"{bookmark_id}: {result.status.value}")
    if result.error:
        click.echo(f"  Error: {result.error}")
    if result.category:
        click.echo(f"  Category: {result.category}")
    if result.description:
        click.echo(f"  Description: {result.description[:100]}")


@cli.command("recheck-dead")
@click.option("--config", "-c", default="config.yaml", help="Config file path")
def recheck_dead(config: str) -> None:
    """Re-probe bookmarks previously found dead."""
    app = BookmarkEnricher(Config.from_yaml(config))
    stats = asyncio.run(app.recheck_dead_links(_echo_progress))
    click.echo(
        f"Rechecked {stats['total']}: {stats['revived']} revived, "
        f"{stats['still_dead']} still dead, {stats['errors']} errors"
    )


@cli.command("backfill-platforms")
@click.option("--config", "-c", default="config.yaml", help="Config file path")
def backfill_platforms(config: str) -> None:
    """Parse platform facts from URLs for all bookmarks."""
    app = BookmarkEnricher(Config.from_yaml(config))
    stats = app.backfill_platform_data()
    click.echo(f"Processed {stats['processed']}, updated {stats['updated']}, errors {stats['errors']}")
    for platform, count in sorted(stats["platforms"].items()):
        click.echo(f"  {platform}: {count}")


@cli.command()
@click.option("--config", "-c", default="config.yaml", help="Config file path")
def status(config: str) -> None:
    """Show enrichment status."""
    app = BookmarkEnricher(Config.from_yaml(config))
    s = app.status()

    click.echo("Enrichment Status:")
    click.echo(f"  Enabled:      {s['enrichment_enabled']}")
    click.echo(f"  Total:        {s['total_bookmarks']}")
    click.echo(f"  Enriched:     {s['enriched']}")
    click.echo(f"  Pending:      {s['pending']}")
    click.echo(f"  Dead links:   {s['dead']}")
    click.echo(f"  Errors:       {s['errors']}")
    click.echo(f"  Queue size:   {s['queue_size']}")


@cli.command()
@click.option("--config", "-c", default="config.yaml", help="Config file path")
def stats(config: str) -> None:
    """Show cached collection statistics."""
    app = BookmarkEnricher(Config.from_yaml(config))
    quick = app.insights.quick_stats()
    summary = app.insights.summary()

    click.echo("Collection Statistics:")
    click.echo(f"  Total bookmarks:  {quick['total']}")
    click.echo(f"  Enriched:         {quick['enriched']} ({quick['enrichedPercentage']}%)")
    click.echo(f"  Uncategorized:    {quick['uncategorized']}")
    click.echo(f"  Dead links:       {quick['deadLinks']}")
    click.echo(f"  Unique domains:   {quick['uniqueDomains']}")
    click.echo(f"  Added this week:  {quick['addedThisWeek']}")

    if summary["topCategories"]:
        click.echo("\nTop categories:")
        for category, count in summary["topCategories"]:
            click.echo(f"  {category}: {count}")

    domains = app.insights.domain_stats()
    if domains:
        click.echo("\nTop domains:")
        for entry in domains[:10]:
            click.echo(f"  {entry['domain']}: {entry['count']} ({entry['percentage']}%)")


if __name__ == "__main__":
    cli()
