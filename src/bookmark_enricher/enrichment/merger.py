"""Merge fetched page metadata into URL-derived platform data."""

import copy
import re
from typing import Any, Iterator

from ..storage.models import PageMetadata, Platform, PlatformData, RawMetadata

# JSON-LD @type -> (content type, subtype)
SCHEMA_TYPES: dict[str, tuple[str, str]] = {
    "TechArticle": ("tech-article", "technical"),
    "BlogPosting": ("blog-post", "blog"),
    "NewsArticle": ("news-article", "news"),
    "ScholarlyArticle": ("scholarly-article", "academic"),
    "VideoObject": ("video", "video-content"),
    "Course": ("course", "education"),
    "HowTo": ("tutorial", "how-to"),
    "FAQPage": ("faq", "reference"),
    "SoftwareApplication": ("software", "tool"),
    "APIReference": ("api-docs", "documentation"),
}

BLOG_PLATFORMS = {Platform.MEDIUM, Platform.DEVTO, Platform.SUBSTACK, Platform.OTHER}

ISO_DURATION = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")


def iter_schemas(json_ld: list[Any]) -> Iterator[dict[str, Any]]:
    """Yield JSON-LD objects, flattening top-level lists and @graph arrays."""
    for block in json_ld:
        items = block if isinstance(block, list) else [block]
        for item in items:
            if not isinstance(item, dict):
                continue
            yield item
            for nested in item.get("@graph") or []:
                if isinstance(nested, dict):
                    yield nested


def schema_types(schema: dict[str, Any]) -> list[str]:
    value = schema.get("@type")
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str)]
    return [value] if isinstance(value, str) else []


def schema_author(schema: dict[str, Any]) -> str | None:
    author = schema.get("author")
    if isinstance(author, list):
        author = author[0] if author else None
    if isinstance(author, dict):
        return author.get("name") or author.get("@id")
    if isinstance(author, str):
        return author or None
    return None


def parse_iso_duration(value: Any) -> int | None:
    """Convert an ISO 8601 duration such as PT1H2M30S to whole minutes, rounding seconds up."""
    if not isinstance(value, str):
        return None
    match = ISO_DURATION.search(value)
    if not match or not any(match.groups()):
        return None
    hours, minutes, seconds = (int(g or 0) for g in match.groups())
    return hours * 60 + minutes + -(-seconds // 60)


def _is_bare_handle(creator: str | None) -> bool:
    return bool(creator) and creator.startswith("@") and " " not in creator


def merge(platform_data: PlatformData | None, metadata: PageMetadata | None) -> PlatformData | None:
    """
    Fill absent platform fields from fetched metadata.

    Present values are never overwritten, with one exception: on YouTube a
    bare "@handle" creator is a placeholder and yields to a real author
    name. The input is not modified.
    """
    if platform_data is None or metadata is None or metadata.raw is None:
        return platform_data

    result = copy.deepcopy(platform_data)
    raw = metadata.raw
    schemas = list(iter_schemas(raw.json_ld))

    ld_author = next((a for a in map(schema_author, schemas) if a), None)
    ld_published = next(
        (s.get("datePublished") for s in schemas if s.get("datePublished")), None
    )

    if result.platform == Platform.YOUTUBE:
        _merge_youtube(result, raw, schemas, ld_author)
    elif result.platform == Platform.GITHUB:
        result.set_extra("repo_description", raw.open_graph.get("og:description"))
    elif result.platform in BLOG_PLATFORMS:
        if not result.creator:
            result.creator = (
                ld_author or raw.meta.get("article:author") or raw.meta.get("author") or None
            )
        result.set_extra("published_at", raw.meta.get("article:published_time") or ld_published)
        result.set_extra("site_name", raw.open_graph.get("og:site_name"))
    else:
        return result

    for schema in schemas:
        for schema_type in schema_types(schema):
            if schema_type not in SCHEMA_TYPES:
                continue
            content_type, subtype = SCHEMA_TYPES[schema_type]
            if not result.content_type:
                result.content_type = content_type
            if not result.subtype:
                result.subtype = subtype

    return result


def _merge_youtube(
    result: PlatformData, raw: RawMetadata, schemas: list[dict[str, Any]], ld_author: str | None
) -> None:
    author = ld_author or raw.meta.get("author")
    if author and (not result.creator or _is_bare_handle(result.creator)):
        if _is_bare_handle(result.creator):
            result.set_extra("handle", result.creator)
        result.creator = author

    result.set_extra("video_title", raw.open_graph.get("og:title"))
    result.set_extra("thumbnail", raw.open_graph.get("og:image"))
    for schema in schemas:
        if "VideoObject" not in schema_types(schema):
            continue
        result.set_extra("duration_minutes", parse_iso_duration(schema.get("duration")))
        result.set_extra("published_at", schema.get("uploadDate") or schema.get("datePublished"))
