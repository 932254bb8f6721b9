"""Async liveness probe and page-metadata fetcher."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from urllib.parse import urljoin

import aiohttp

from ..extraction.scanner import HtmlMetaScanner
from ..storage.models import MAX_KEYWORDS, FetchStatus, PageMetadata
from .content import ContentExtractor

logger = logging.getLogger(__name__)

# HEAD statuses treated as a definite answer without a GET fallback
DEAD_STATUSES = {404, 410}


@dataclass
class FetchResult:
    """Result of a metadata fetch. metadata is empty unless status is SUCCESS."""

    status: FetchStatus
    metadata: PageMetadata = field(default_factory=PageMetadata)
    error: str | None = None
    content_type: str | None = None
    fetched_at: datetime = field(default_factory=datetime.now)


class MetadataFetcher:
    """Probe bookmarked URLs and pull metadata out of their HTML.

    Every request opens its own session and carries its own timeout, so a
    slow host only ever stalls the worker that claimed it.
    """

    def __init__(
        self,
        probe_timeout_seconds: float = 5,
        fetch_timeout_seconds: float = 5,
        max_content_length: int = 1_000_000,
        user_agent: str = "BookmarkEnricher/1.0",
    ):
        self.probe_timeout = aiohttp.ClientTimeout(total=probe_timeout_seconds)
        self.fetch_timeout = aiohttp.ClientTimeout(total=fetch_timeout_seconds)
        self.max_content_length = max_content_length
        self.user_agent = user_agent
        self.scanner = HtmlMetaScanner(max_length=max_content_length)
        self.content_extractor = ContentExtractor()

    async def check_alive(self, url: str) -> bool | None:
        """
        Probe a URL.

        Returns:
            True if HEAD answers 2xx/3xx, False if HEAD answers 404/410 or
            both HEAD and the fallback GET fail at the network layer, None
            when the GET completes but liveness could not be confirmed.
        """
        try:
            status = await self._probe_head(url)
        except (asyncio.TimeoutError, aiohttp.ClientError) as e:
            logger.debug(f"HEAD failed for {url}: {e!r}, falling back to GET")
        else:
            if 200 <= status < 400:
                return True
            if status in DEAD_STATUSES:
                logger.info(f"Dead link ({status}): {url}")
                return False
            # Any other HEAD status (403, 405, 5xx) is not taken as dead. The
            # GET fallback decides, so such a link ends up None, never False.
            logger.debug(f"HEAD {url} returned {status}, falling back to GET")

        try:
            await self._probe_get(url)
        except asyncio.TimeoutError:
            logger.info(f"Timeout checking {url}")
            return None
        except aiohttp.ClientError as e:
            logger.info(f"Dead link: {url} ({e})")
            return False
        return None

    async def _probe_head(self, url: str) -> int:
        async with aiohttp.ClientSession(timeout=self.probe_timeout) as session:
            async with session.head(
                url, headers={"User-Agent": self.user_agent}, allow_redirects=True
            ) as response:
                return response.status

    async def _probe_get(self, url: str) -> int:
        """GET without reading the body. Only reaching the host matters."""
        async with aiohttp.ClientSession(timeout=self.probe_timeout) as session:
            async with session.get(
                url, headers={"User-Agent": self.user_agent}, allow_redirects=True
            ) as response:
                return response.status

    async def fetch(self, url: str) -> FetchResult:
        """Fetch a page and extract its metadata. Never raises."""
        try:
            async with aiohttp.ClientSession(timeout=self.fetch_timeout) as session:
                headers = {"User-Agent": self.user_agent}
                async with session.get(
                    url, headers=headers, allow_redirects=True
                ) as response:
                    if not response.ok:
                        return FetchResult(
                            status=FetchStatus.FAILED, error=f"HTTP {response.status}"
                        )

                    content_type = response.headers.get("content-type", "")
                    if content_type and "html" not in content_type.lower():
                        return FetchResult(
                            status=FetchStatus.SKIPPED,
                            error=f"Non-HTML content: {content_type}",
                            content_type=content_type,
                        )

                    content = await response.text(errors="replace")
                    if len(content) > self.max_content_length:
                        content = content[: self.max_content_length]

                    return FetchResult(
                        status=FetchStatus.SUCCESS,
                        metadata=self.extract_metadata(content, str(response.url)),
                        content_type=content_type,
                    )

        except asyncio.TimeoutError:
            logger.info(f"Timeout fetching metadata for {url}")
            return FetchResult(status=FetchStatus.TIMEOUT, error="Request timed out")
        except aiohttp.ClientError as e:
            logger.info(f"Error fetching metadata for {url}: {e}")
            return FetchResult(status=FetchStatus.FAILED, error=str(e))
        except Exception as e:
            logger.warning(f"Unexpected error fetching metadata for {url}: {e}")
            return FetchResult(status=FetchStatus.FAILED, error=f"Unexpected: {e}")

    async def fetch_metadata(self, url: str) -> PageMetadata:
        result = await self.fetch(url)
        return result.metadata

    def extract_metadata(self, content: str, base_url: str) -> PageMetadata:
        """Derive user-facing fields from raw HTML."""
        content = content[: self.max_content_length]
        raw = self.scanner.scan(content)

        description = (
            raw.open_graph.get("og:description")
            or raw.meta.get("description")
            or raw.twitter_card.get("twitter:description")
        )

        keywords = [k.strip() for k in raw.meta.get("keywords", "").split(",")]
        keywords = [k for k in keywords if k][:MAX_KEYWORDS]

        icon = self.scanner.find_link(content, "icon", "shortcut icon")
        favicon_url = urljoin(base_url, icon or "/favicon.ico")

        return PageMetadata(
            description=description or None,
            keywords=keywords,
            favicon_url=favicon_url,
            snippet=self.content_extractor.extract(content),
            raw=raw,
        )
