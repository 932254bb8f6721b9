"""Lexical scan of raw HTML for page metadata.

This is a bounded, single-pass pattern scan, not a parser. It does not
track element nesting, so markup inside comments or unusual attribute
quoting can be misread. A misread only loses metadata; scanning never
raises on bad markup.
"""

import html
import json
import logging
import re

from ..storage.models import RawMetadata

logger = logging.getLogger(__name__)


class HtmlMetaScanner:
    """Collect meta tags, JSON-LD blocks, and a few page-level facts."""

    META_TAG = re.compile(r"<meta\s+([^>]*?)/?>", re.IGNORECASE)
    LINK_TAG = re.compile(r"<link\s+([^>]*?)/?>", re.IGNORECASE)
    ATTRIBUTE = re.compile(r"""([\w:-]+)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+))""")
    JSON_LD = re.compile(
        r"""<script[^>]*type\s*=\s*["']application/ld\+json["'][^>]*>(.*?)</script>""",
        re.IGNORECASE | re.DOTALL,
    )
    TITLE = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)
    HTML_LANG = re.compile(r"""<html[^>]*\slang\s*=\s*["']([^"']+)["']""", re.IGNORECASE)

    def __init__(self, max_length: int = 1_000_000):
        self.max_length = max_length

    def scan(self, content: str) -> RawMetadata:
        content = content[: self.max_length]
        raw = RawMetadata()

        for match in self.META_TAG.finditer(content):
            attrs = self.parse_attributes(match.group(1))
            name = attrs.get("name") or attrs.get("property")
            value = attrs.get("content")
            if not name or not value:
                continue
            if name.startswith("og:"):
                bucket = raw.open_graph
            elif name.startswith("twitter:"):
                bucket = raw.twitter_card
            else:
                bucket = raw.meta
            # First occurrence wins
            bucket.setdefault(name, value)

        for match in self.JSON_LD.finditer(content):
            try:
                raw.json_ld.append(json.loads(match.group(1)))
            except json.JSONDecodeError as e:
                logger.debug(f"Dropping malformed JSON-LD block: {e}")

        title = self.TITLE.search(content)
        if title:
            raw.other["title"] = html.unescape(title.group(1).strip())

        canonical = self.find_link(content, "canonical")
        if canonical:
            raw.other["canonical"] = canonical

        lang = self.HTML_LANG.search(content)
        if lang:
            raw.other["language"] = lang.group(1)

        if "author" in raw.meta:
            raw.other["author"] = raw.meta["author"]

        return raw

    def find_link(self, content: str, *rels: str) -> str | None:
        """Return the href of the first <link> whose rel is one of rels."""
        wanted = {rel.lower() for rel in rels}
        for match in self.LINK_TAG.finditer(content[: self.max_length]):
            attrs = self.parse_attributes(match.group(1))
            if attrs.get("rel", "").lower() in wanted and attrs.get("href"):
                return attrs["href"]
        return None

    def parse_attributes(self, text: str) -> dict[str, str]:
        """Parse tag attributes in any order. Names are lowercased, values unescaped."""
        attrs: dict[str, str] = {}
        for match in self.ATTRIBUTE.finditer(text):
            name = match.group(1).lower()
            value = next(v for v in match.groups()[1:] if v is not None)
            attrs.setdefault(name, html.unescape(value).strip())
        return attrs
