"""Lightweight summary for non-flagged content.

Completed items outside the flagged category get an extractive summary,
keywords and a reading-time estimate computed locally, with no provider call.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

GENERAL_PROCESSOR_VERSION = "1.0"


class GeneralSummary(BaseModel):
    """Stored summary for one non-flagged item (one row per content_id)."""

    content_id: int
    summary: str = ""
    keywords: list[str] = Field(default_factory=list)
    word_count: int = Field(default=0, ge=0)
    reading_time_minutes: int = Field(default=0, ge=0)
    content_type: str = "article"
    processor_version: str = GENERAL_PROCESSOR_VERSION
    processed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
