"""Rule-based bookmark categorization."""

from urllib.parse import urlparse

from ..storage.models import BookmarkRecord, PageMetadata


# Domain substrings, checked first
DOMAIN_RULES: dict[str, str] = {
    "github.com": "code",
    "gitlab.com": "code",
    "bitbucket.org": "code",
    "stackoverflow.com": "code",
    "stackexchange.com": "code",
    "youtube.com": "video",
    "vimeo.com": "video",
    "youtu.be": "video",
    "twitter.com": "social",
    "facebook.com": "social",
    "linkedin.com": "social",
    "instagram.com": "social",
    "reddit.com": "social",
    "medium.com": "blog",
    "dev.to": "blog",
    "hashnode.com": "blog",
    "substack.com": "blog",
    "wikipedia.org": "reference",
    "mdn.mozilla.org": "reference",
    "w3schools.com": "reference",
    "amazon.com": "shopping",
    "ebay.com": "shopping",
    "etsy.com": "shopping",
}

# URL path substrings
PATH_RULES: dict[str, str] = {
    "/docs": "documentation",
    "/documentation": "documentation",
    "/api": "api",
    "/reference": "reference",
    "/tutorial": "tutorial",
    "/guide": "tutorial",
    "/blog": "blog",
    "/article": "blog",
    "/video": "video",
    "/watch": "video",
}

# Keywords looked up in title + description, then in the page's keyword list
CONTENT_KEYWORDS: dict[str, str] = {
    "tutorial": "tutorial",
    "guide": "tutorial",
    "how to": "tutorial",
    "documentation": "documentation",
    "docs": "documentation",
    "api": "api",
    "reference": "reference",
    "blog": "blog",
    "article": "blog",
    "news": "news",
    "video": "video",
    "course": "education",
    "learning": "education",
    "tool": "tool",
    "app": "tool",
    "software": "tool",
}


def _match_substring(text: str, rules: dict[str, str]) -> str | None:
    for needle, category in rules.items():
        if needle in text:
            return category
    return None


def categorize(bookmark: BookmarkRecord, metadata: PageMetadata | None = None) -> str | None:
    """Pick a category for a bookmark, or None.

    Rules are tried in priority order and the first hit wins:
    domain, URL path, title + description keywords, page keywords.
    """
    metadata = metadata or PageMetadata()
    parsed = urlparse(bookmark.url)
    domain = (parsed.hostname or "").lower()
    path = parsed.path.lower()

    category = _match_substring(domain, DOMAIN_RULES)
    if category:
        return category

    category = _match_substring(path, PATH_RULES)
    if category:
        return category

    text = f"{bookmark.title or ''} {metadata.description or ''}".lower()
    category = _match_substring(text, CONTENT_KEYWORDS)
    if category:
        return category

    if metadata.keywords:
        category = _match_substring(" ".join(metadata.keywords).lower(), CONTENT_KEYWORDS)
        if category:
            return category

    return None
