"""Captured content model.

A ContentItem is created when a capture client submits a page. The pipeline
owns it while it is being classified and analyzed; afterwards it belongs to
storage.

Deduplication Strategy:
    Items are deduplicated with a SHA-256 hash of:
    - Normalized title (lowercase, NFKC normalized, punctuation removed)
    - Canonical URL (scheme/host lowercased, fragment and trailing slash dropped)
    - Normalized body text (whitespace collapsed)

    Re-capturing the same page yields the same hash, so the second capture is
    treated as a no-op instead of a second item.

Status Lifecycle:
    pending -> processing -> {completed, failed, manual_review}

    processing -> processing is allowed so an interrupted attempt can be
    re-entered, and failed -> processing is allowed for an explicit retry.
"""

from datetime import datetime, timezone
from enum import Enum
from hashlib import sha256
from urllib.parse import urlsplit, urlunsplit
import re
import unicodedata

from pydantic import BaseModel, Field

from errors import InvalidStatusTransition


class ProcessingStatus(str, Enum):
    """Processing state of a captured item."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    MANUAL_REVIEW = "manual_review"


_ALLOWED_TRANSITIONS: dict[ProcessingStatus, frozenset[ProcessingStatus]] = {
    ProcessingStatus.PENDING: frozenset({ProcessingStatus.PROCESSING}),
    ProcessingStatus.PROCESSING: frozenset({
        ProcessingStatus.PROCESSING,
        ProcessingStatus.COMPLETED,
        ProcessingStatus.FAILED,
        ProcessingStatus.MANUAL_REVIEW,
    }),
    ProcessingStatus.FAILED: frozenset({ProcessingStatus.PROCESSING}),
    ProcessingStatus.COMPLETED: frozenset(),
    ProcessingStatus.MANUAL_REVIEW: frozenset(),
}


def _normalize_text(text: str) -> str:
    normalized = unicodedata.normalize("NFKC", text.lower())
    normalized = re.sub(r"[^\w\s]", "", normalized)
    return re.sub(r"\s+", " ", normalized).strip()


def canonical_url(url: str) -> str:
    """Lowercase scheme and host, drop the fragment and any trailing slash."""
    parts = urlsplit(url.strip())
    path = parts.path.rstrip("/") or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def compute_content_hash(title: str, url: str, raw_content: str = "") -> str:
    """Build the 64-char SHA-256 dedup key for a capture."""
    body = re.sub(r"\s+", " ", raw_content or "").strip()
    payload = f"{_normalize_text(title)}|{canonical_url(url)}|{body}"
    return sha256(payload.encode("utf-8")).hexdigest()


def domain_of(url: str) -> str:
    """Return the host of a URL without a leading 'www.'."""
    host = urlsplit(url.strip()).netloc.lower()
    return host[4:] if host.startswith("www.") else host


class ContentItem(BaseModel):
    """A captured piece of content.

    Attributes:
        id: Storage identifier (None until stored)
        url: Page URL
        title: Page title
        raw_content: Extracted text, immutable once captured
        source_domain: Host of the URL
        captured_at: When the capture client saw the page (UTC)
        content_hash: SHA-256 dedup key
        category: Assigned category name (None until classified)
        status: Processing status
        confidence: Classifier confidence (0-1)
        manual_override: True when a human fixed the category
        processed_at: When classification last finished
    """

    id: int | None = None
    url: str = Field(description="Page URL")
    title: str = Field(description="Page title")
    raw_content: str = Field(default="", description="Extracted page text")
    source_domain: str = Field(default="", description="Host of the URL")
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    content_hash: str = Field(default="", description="SHA-256 dedup key")
    category: str | None = None
    status: ProcessingStatus = ProcessingStatus.PENDING
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    manual_override: bool = False
    processed_at: datetime | None = None

    def model_post_init(self, __context) -> None:
        if not self.content_hash:
            self.content_hash = compute_content_hash(self.title, self.url, self.raw_content)
        if not self.source_domain:
            self.source_domain = domain_of(self.url)

    @property
    def word_count(self) -> int:
        return len(self.raw_content.split())

    def can_transition(self, target: ProcessingStatus) -> bool:
        return target in _ALLOWED_TRANSITIONS[self.status]

    def transition(self, target: ProcessingStatus) -> "ContentItem":
        """Return a copy in the target status, enforcing monotonicity.

        Raises:
            InvalidStatusTransition: If the change would move the status backwards
        """
        if not self.can_transition(target):
            raise InvalidStatusTransition(self.id, self.status.value, target.value)
        return self.model_copy(update={"status": target})

    def __str__(self) -> str:
        """Human-readable representation for logging."""
        return f"ContentItem({self.id}, {self.status.value}, '{self.title[:50]}')"
