"""Classification models.

This module defines the content categories and the two classification
shapes used by the pipeline:

    CategoryResult: what a provider returns (category label + confidence)
    ClassificationResult: what the classifier records for one attempt

Category Design:
    US_Politics_News is the flagged category: items classified into it with
    enough confidence receive political analysis and can appear in the digest.
    Every other category receives basic processing only. GENERAL is the
    fallback for content that fits nothing else.

    Providers answer with free text labels, so raw labels are normalized
    through an alias table before validation. A label that cannot be
    resolved is a schema failure, not a silent fallback.
"""

import logging
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from models.content import ProcessingStatus

logger = logging.getLogger(__name__)


class ContentCategory(str, Enum):
    """Known content categories."""

    US_POLITICS_NEWS = "US_Politics_News"  # Flagged: receives political analysis
    TECHNOLOGY = "Technology"
    BUSINESS = "Business"
    SCIENCE = "Science"
    ENTERTAINMENT = "Entertainment"
    SPORTS = "Sports"
    LIFESTYLE = "Lifestyle"
    GENERAL = "General"                    # Fallback


# Map common label variants from LLM output to supported categories.
_CATEGORY_ALIASES: dict[str, ContentCategory] = {
    "politics": ContentCategory.US_POLITICS_NEWS,
    "political": ContentCategory.US_POLITICS_NEWS,
    "us_politics": ContentCategory.US_POLITICS_NEWS,
    "us_politics_news": ContentCategory.US_POLITICS_NEWS,
    "political_news": ContentCategory.US_POLITICS_NEWS,
    "government": ContentCategory.US_POLITICS_NEWS,
    "elections": ContentCategory.US_POLITICS_NEWS,
    "tech": ContentCategory.TECHNOLOGY,
    "technology": ContentCategory.TECHNOLOGY,
    "software": ContentCategory.TECHNOLOGY,
    "ai": ContentCategory.TECHNOLOGY,
    "business": ContentCategory.BUSINESS,
    "finance": ContentCategory.BUSINESS,
    "economy": ContentCategory.BUSINESS,
    "markets": ContentCategory.BUSINESS,
    "science": ContentCategory.SCIENCE,
    "research": ContentCategory.SCIENCE,
    "health": ContentCategory.LIFESTYLE,
    "lifestyle": ContentCategory.LIFESTYLE,
    "travel": ContentCategory.LIFESTYLE,
    "entertainment": ContentCategory.ENTERTAINMENT,
    "movies": ContentCategory.ENTERTAINMENT,
    "sports": ContentCategory.SPORTS,
    "general": ContentCategory.GENERAL,
    "other": ContentCategory.GENERAL,
}


def resolve_category(value: str | ContentCategory | None) -> ContentCategory | None:
    """Resolve a raw label to a known category, or None if it is unknown."""
    if isinstance(value, ContentCategory):
        return value
    if value is None:
        return None
    raw = str(value).strip().strip("`\"'.").strip()
    if not raw:
        return None
    for category in ContentCategory:
        if category.value.lower() == raw.lower():
            return category
    normalized = raw.lower().replace(" ", "_").replace("-", "_").replace(".", "")
    return _CATEGORY_ALIASES.get(normalized)


class ClassificationRequest(BaseModel):
    """Bounded text sent to a provider for classification."""

    title: str
    truncated_body: str = ""
    hints: list[str] = Field(default_factory=list)

    def to_prompt(self) -> str:
        """Render the request as the user message for the provider."""
        lines = [f"Title: {self.title}", "", "Content:", self.truncated_body or "(no text captured)"]
        if self.hints:
            lines.extend(["", "Hints:"])
            lines.extend(f"- {hint}" for hint in self.hints)
        return "\n".join(lines)


class CategoryResult(BaseModel):
    """Provider response for a classification request.

    The category stays a plain string here; the classifier decides whether
    it resolves to a known category.
    """

    category: str = Field(description="Category name exactly as listed in the prompt")
    confidence: float = Field(ge=0.0, le=1.0, description="Classification confidence (0-1)")

    @field_validator("category", mode="before")
    @classmethod
    def _strip_category(cls, value):
        return str(value).strip() if value is not None else value


class ClassificationResult(BaseModel):
    """One classification attempt as recorded in the append-only log.

    Attributes:
        content_id: Classified item
        category: Resolved category (None when every provider failed)
        confidence: Final confidence (0.0 when every provider failed)
        provider: Provider that produced the answer ('none' on failure)
        raw_response: Provider payload or failure report, kept for audit
        status: Status the item was moved to by this attempt
        classified_at: When the attempt finished (UTC)
    """

    content_id: int | None = None
    category: ContentCategory | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    provider: str = "none"
    raw_response: str = ""
    status: ProcessingStatus = ProcessingStatus.COMPLETED
    classified_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def needs_review(self) -> bool:
        return self.status == ProcessingStatus.MANUAL_REVIEW

    @property
    def failed(self) -> bool:
        return self.status == ProcessingStatus.FAILED

    def __str__(self) -> str:
        """Human-readable representation for logging."""
        category = self.category.value if self.category else "-"
        return f"Classification({self.status.value}, {category}, {self.confidence:.2f}, {self.provider})"
