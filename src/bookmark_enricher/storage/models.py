"""Data models for bookmark enrichment."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

MAX_KEYWORDS = 10
MAX_PLATFORM_EXTRAS = 16


class FetchStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"
    SKIPPED = "skipped"


class ItemStatus(Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class ProgressStatus(Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"


class Platform(Enum):
    YOUTUBE = "youtube"
    GITHUB = "github"
    MEDIUM = "medium"
    DEVTO = "devto"
    SUBSTACK = "substack"
    TWITTER = "twitter"
    REDDIT = "reddit"
    STACKOVERFLOW = "stackoverflow"
    NPM = "npm"
    OTHER = "other"


@dataclass
class PlatformData:
    """Structural facts about a URL, tagged by platform.

    Platform-specific values live in ``extra``, which is capped at
    MAX_PLATFORM_EXTRAS entries.
    """

    platform: Platform
    content_type: Optional[str] = None
    creator: Optional[str] = None
    identifier: Optional[str] = None
    subtype: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def set_extra(self, key: str, value: Any) -> bool:
        """Store an extra value unless the key is present or the table is full."""
        if value is None or value == "" or key in self.extra:
            return False
        if len(self.extra) >= MAX_PLATFORM_EXTRAS:
            return False
        self.extra[key] = value
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform": self.platform.value,
            "type": self.content_type,
            "creator": self.creator,
            "identifier": self.identifier,
            "subtype": self.subtype,
            "extra": dict(self.extra),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlatformData":
        try:
            platform = Platform(data.get("platform"))
        except ValueError:
            platform = Platform.OTHER
        extra = dict(list((data.get("extra") or {}).items())[:MAX_PLATFORM_EXTRAS])
        return cls(
            platform=platform,
            content_type=data.get("type"),
            creator=data.get("creator"),
            identifier=data.get("identifier"),
            subtype=data.get("subtype"),
            extra=extra,
        )


@dataclass
class RawMetadata:
    """Everything the HTML scan captured, bucketed by source."""

    meta: dict[str, str] = field(default_factory=dict)
    open_graph: dict[str, str] = field(default_factory=dict)
    twitter_card: dict[str, str] = field(default_factory=dict)
    json_ld: list[Any] = field(default_factory=list)
    other: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "meta": self.meta,
            "openGraph": self.open_graph,
            "twitterCard": self.twitter_card,
            "jsonLd": self.json_ld,
            "other": self.other,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RawMetadata":
        return cls(
            meta=dict(data.get("meta") or {}),
            open_graph=dict(data.get("openGraph") or {}),
            twitter_card=dict(data.get("twitterCard") or {}),
            json_ld=list(data.get("jsonLd") or []),
            other=dict(data.get("other") or {}),
        )


@dataclass
class PageMetadata:
    """Fields derived from a fetched page. Empty when the fetch failed."""

    description: Optional[str] = None
    keywords: list[str] = field(default_factory=list)
    favicon_url: Optional[str] = None
    snippet: Optional[str] = None
    raw: Optional[RawMetadata] = None

    @property
    def is_empty(self) -> bool:
        return self.raw is None


@dataclass
class BookmarkRecord:
    """A saved link plus everything enrichment learned about it."""

    id: str
    url: str
    title: str = ""
    domain: str = ""
    date_added: Optional[datetime] = None

    # Enrichment data
    description: Optional[str] = None
    keywords: list[str] = field(default_factory=list)
    category: Optional[str] = None
    is_alive: Optional[bool] = None
    last_checked: Optional[datetime] = None
    favicon_url: Optional[str] = None
    content_snippet: Optional[str] = None
    raw_metadata: Optional[RawMetadata] = None
    enrichment_error: Optional[str] = None

    # Platform facts
    platform: Optional[str] = None
    creator: Optional[str] = None
    content_type: Optional[str] = None
    platform_data: Optional[PlatformData] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_http(self) -> bool:
        return self.url.startswith("http://") or self.url.startswith("https://")

    @property
    def is_enriched(self) -> bool:
        return bool(self.last_checked or self.description or self.category)


@dataclass
class QueueItem:
    """A pending enrichment request."""

    queue_id: int
    bookmark_id: str
    added_at: datetime
    priority: int = 0


@dataclass
class CachedMetric:
    """A stored aggregate. Times are epoch seconds."""

    key: str
    data: Any
    computed_at: float
    valid_until: float

    def is_valid(self, now: float) -> bool:
        return self.valid_until > now


@dataclass
class ItemResult:
    """Outcome of enriching one bookmark."""

    bookmark_id: str
    status: ItemStatus
    is_alive: Optional[bool] = None
    category: Optional[str] = None
    description: Optional[str] = None
    platform: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class BatchSummary:
    """Counts for one batch run. processed == success + failed + skipped."""

    processed: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "success": self.success,
            "failed": self.failed,
            "skipped": self.skipped,
        }


@dataclass
class ProgressEvent:
    """Emitted before and after each item in a batch."""

    index: int
    total: int
    completed: int
    bookmark_id: str
    status: ProgressStatus
    url: Optional[str] = None
    title: Optional[str] = None
    result: Optional[ItemResult] = None
    error: Optional[str] = None
