"""
Model Tests
===========

Content hashing, status lifecycle and category resolution.
"""

import pytest

from errors import InvalidStatusTransition
from models.classification import ClassificationRequest, ContentCategory, resolve_category
from models.content import ContentItem, ProcessingStatus, canonical_url, compute_content_hash, domain_of


# ============================================================================
# TEST: CONTENT HASH
# ============================================================================

class TestContentHash:
    """Deduplication key stability."""

    def test_hash_is_filled_on_creation(self):
        item = ContentItem(url="https://example.com/a", title="Title", raw_content="Body")
        assert len(item.content_hash) == 64
        assert item.content_hash == compute_content_hash("Title", "https://example.com/a", "Body")

    def test_hash_ignores_cosmetic_differences(self):
        a = compute_content_hash("Budget Deal!", "https://Example.com/a/#top", "Body  text")
        b = compute_content_hash("budget deal", "https://example.com/a", "Body text")
        assert a == b

    def test_hash_changes_with_body(self):
        assert compute_content_hash("T", "https://x.com", "one") != compute_content_hash("T", "https://x.com", "two")

    def test_canonical_url_keeps_query(self):
        assert canonical_url("HTTPS://X.com/path/?id=1#frag") == "https://x.com/path?id=1"

    def test_domain_strips_www(self):
        assert domain_of("https://www.politico.com/news") == "politico.com"

    def test_word_count(self):
        assert ContentItem(url="https://x.com", title="T", raw_content="one two  three").word_count == 3


# ============================================================================
# TEST: STATUS LIFECYCLE
# ============================================================================

class TestStatusLifecycle:
    """Transitions only move forward."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (ProcessingStatus.PENDING, ProcessingStatus.PROCESSING),
            (ProcessingStatus.PROCESSING, ProcessingStatus.PROCESSING),
            (ProcessingStatus.PROCESSING, ProcessingStatus.COMPLETED),
            (ProcessingStatus.PROCESSING, ProcessingStatus.FAILED),
            (ProcessingStatus.PROCESSING, ProcessingStatus.MANUAL_REVIEW),
            (ProcessingStatus.FAILED, ProcessingStatus.PROCESSING),
        ],
    )
    def test_allowed(self, current, target):
        item = ContentItem(url="https://x.com", title="T", status=current)
        assert item.transition(target).status == target

    @pytest.mark.parametrize(
        "current,target",
        [
            (ProcessingStatus.PENDING, ProcessingStatus.COMPLETED),
            (ProcessingStatus.PROCESSING, ProcessingStatus.PENDING),
            (ProcessingStatus.COMPLETED, ProcessingStatus.PENDING),
            (ProcessingStatus.COMPLETED, ProcessingStatus.PROCESSING),
            (ProcessingStatus.MANUAL_REVIEW, ProcessingStatus.PENDING),
            (ProcessingStatus.FAILED, ProcessingStatus.PENDING),
        ],
    )
    def test_rejected(self, current, target):
        item = ContentItem(url="https://x.com", title="T", status=current)
        with pytest.raises(InvalidStatusTransition):
            item.transition(target)

    def test_transition_returns_copy(self):
        item = ContentItem(url="https://x.com", title="T")
        moved = item.transition(ProcessingStatus.PROCESSING)
        assert item.status == ProcessingStatus.PENDING
        assert moved.status == ProcessingStatus.PROCESSING


# ============================================================================
# TEST: CATEGORIES
# ============================================================================

class TestCategories:
    """Raw provider labels resolved against the known set."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("US_Politics_News", ContentCategory.US_POLITICS_NEWS),
            ("us_politics_news", ContentCategory.US_POLITICS_NEWS),
            ("US Politics", ContentCategory.US_POLITICS_NEWS),
            ("Tech", ContentCategory.TECHNOLOGY),
            ("'Business'", ContentCategory.BUSINESS),
            (ContentCategory.SPORTS, ContentCategory.SPORTS),
        ],
    )
    def test_resolve(self, raw, expected):
        assert resolve_category(raw) == expected

    @pytest.mark.parametrize("raw", ["Astrology", "", None])
    def test_unknown(self, raw):
        assert resolve_category(raw) is None

    def test_request_prompt_lists_hints(self):
        prompt = ClassificationRequest(title="T", truncated_body="B", hints=["h1", "h2"]).to_prompt()
        assert "Title: T" in prompt
        assert "- h1" in prompt
        assert prompt.endswith("- h2")
