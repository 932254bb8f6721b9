"""Tests for rule-based categorization."""

from bookmark_enricher.storage.models import PageMetadata
from bookmark_enricher.tagging.categorizer import categorize
from conftest import make_bookmark


def test_domain_rule_beats_title_keyword():
    bookmark = make_bookmark("1", url="https://github.com/x/y", title="my blog post")
    assert categorize(bookmark, PageMetadata()) == "code"


def test_path_rule_applies_when_domain_is_unknown():
    bookmark = make_bookmark("1", url="https://example.org/docs/start", title="Welcome")
    assert categorize(bookmark) == "documentation"


def test_description_keyword_matches():
    bookmark = make_bookmark("1", url="https://example.org/x", title="Welcome")
    metadata = PageMetadata(description="A step by step tutorial for beginners")
    assert categorize(bookmark, metadata) == "tutorial"


def test_page_keywords_are_checked_last():
    bookmark = make_bookmark("1", url="https://example.org/x", title="Welcome")
    metadata = PageMetadata(keywords=["Online Course", "python"])
    assert categorize(bookmark, metadata) == "education"


def test_no_match_leaves_category_unset():
    bookmark = make_bookmark("1", url="https://example.org/x", title="Welcome")
    assert categorize(bookmark, PageMetadata(description="Nothing here")) is None
