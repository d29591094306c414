"""Political analysis models.

Model Hierarchy:
    AnalysisRequest: Bounded text sent to a provider
    AnalysisResult: Structured provider output (validated score ranges)
    PoliticalAnalysis: What is stored per item (one row per content_id)

AnalysisResult is the contract providers must satisfy. Scores outside their
ranges fail validation, which the provider layer reports as a malformed
response so the fallback manager can move on to the next provider.

PoliticalAnalysis adds what the analyzer derives locally: the normalized bias
label, typed loaded-language phrases and the language intensity label.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

SCHEMA_VERSION = 1

# |bias_score| at or below this counts as center.
CENTER_BAND = 0.2


class BiasLabel(str, Enum):
    """Political lean derived from the bias score."""

    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"

    @classmethod
    def from_score(cls, score: float) -> "BiasLabel":
        if score < -CENTER_BAND:
            return cls.LEFT
        if score > CENTER_BAND:
            return cls.RIGHT
        return cls.CENTER


class AnalysisRequest(BaseModel):
    """Bounded text sent to a provider for political analysis."""

    title: str
    full_body: str = ""
    source_domain: str = ""

    def to_prompt(self) -> str:
        """Render the request as the user message for the provider."""
        return (
            f"Title: {self.title}\n"
            f"Source: {self.source_domain or 'unknown'}\n\n"
            f"Article:\n{self.full_body or '(no text captured)'}"
        )


class AnalysisResult(BaseModel):
    """Structured analysis returned by a provider."""

    bias_score: float = Field(ge=-1.0, le=1.0, description="-1.0 (left) to +1.0 (right), 0 is neutral")
    bias_confidence: float = Field(ge=0.0, le=1.0, description="Confidence in the bias score (0-1)")
    bias_label: str | None = Field(default=None, description="left, center or right")
    quality_score: int = Field(ge=1, le=10, description="Journalistic quality (1-10)")
    credibility_score: float = Field(ge=1.0, le=10.0, description="Source credibility (1.0-10.0)")
    loaded_language: list[str] = Field(
        default_factory=list,
        description="Emotionally charged or manipulative phrases quoted from the text",
    )
    executive_summary: str = Field(description="2-3 sentence summary, at most 100 words")
    detailed_summary: str = Field(default="", description="Neutral summary, at most 300 words")
    key_points: list[str] = Field(default_factory=list, description="Up to 10 key points")
    implications: str = Field(default="", description="Political or policy implications")


class LoadedPhrase(BaseModel):
    """A loaded-language phrase found in an article.

    Attributes:
        phrase: Phrase as it appears in the text
        category: Pattern family (e.g. 'political_labels'), 'provider' if only the model flagged it
        weight: Pattern weight (0-1)
        context: Surrounding text window
        occurrences: How many times the phrase appears
    """

    phrase: str
    category: str = "provider"
    weight: float = Field(default=0.5, ge=0.0, le=1.0)
    context: str = ""
    occurrences: int = 1


class PoliticalAnalysis(BaseModel):
    """Stored analysis for one flagged item."""

    content_id: int
    bias_score: float = Field(ge=-1.0, le=1.0)
    bias_confidence: float = Field(ge=0.0, le=1.0)
    bias_label: BiasLabel
    quality_score: int = Field(ge=1, le=10)
    credibility_score: float = Field(ge=1.0, le=10.0)
    loaded_language: list[LoadedPhrase] = Field(default_factory=list)
    language_intensity: str = "minimal"
    language_score: float = 0.0
    executive_summary: str = ""
    detailed_summary: str = ""
    key_points: list[str] = Field(default_factory=list)
    implications: str = ""
    model_used: str = ""
    schema_version: int = SCHEMA_VERSION
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self) -> str:
        """Human-readable representation for logging."""
        return (
            f"PoliticalAnalysis({self.content_id}, {self.bias_label.value}, "
            f"q={self.quality_score}, cred={self.credibility_score:.1f})"
        )
