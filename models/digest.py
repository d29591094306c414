"""Digest models.

Model Hierarchy:
    AnalyzedItem: Read-only snapshot of one flagged item used by clustering
    TopicCluster: Group of related items produced by clustering, ranked later
    ClusterSummary: Persisted view of a cluster inside a digest
    DigestDocument: Assembled digest (ordered sections + counts)
    DigestRecord: Stored digest for one date
"""

from datetime import date, datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from models.analysis import SCHEMA_VERSION, PoliticalAnalysis
from models.content import ContentItem


class AnalyzedItem(BaseModel):
    """A flagged item with its analysis and embedding vector."""

    model_config = ConfigDict(frozen=True)

    item: ContentItem
    analysis: PoliticalAnalysis
    embedding: tuple[float, ...] = ()

    @property
    def id(self) -> int:
        return self.item.id


class TopicCluster(BaseModel):
    """Related items grouped by embedding similarity.

    Attributes:
        cluster_id: Position in first-member order (0-based)
        member_ids: Member content ids, ascending
        centroid: Mean of member vectors, unit-normalized
        label: Short human label
        representative_id: Item used to describe the cluster
        importance: Set by the ranking engine
    """

    cluster_id: int
    member_ids: list[int]
    centroid: list[float] = Field(default_factory=list)
    label: str = ""
    representative_id: int
    importance: float = 0.0

    @property
    def size(self) -> int:
        return len(self.member_ids)


class DigestMember(BaseModel):
    """Reference to one item inside a digest section."""

    content_id: int
    title: str
    url: str
    source_domain: str = ""
    quality_score: int
    bias_label: str
    importance: float = 0.0


class ClusterSummary(BaseModel):
    """One digest section: a cluster, its label and its members."""

    cluster_id: int
    label: str
    summary: str = ""
    representative_id: int
    importance: float
    members: list[DigestMember] = Field(default_factory=list)

    @property
    def member_ids(self) -> list[int]:
        return [m.content_id for m in self.members]


class DigestDocument(BaseModel):
    """Assembled digest before it is stored."""

    digest_date: date
    window_start: datetime
    window_end: datetime
    content_items_count: int = 0
    political_items_count: int = 0
    sections: list[ClusterSummary] = Field(default_factory=list)
    markdown: str = ""


class DigestRecord(BaseModel):
    """Stored digest for one date.

    delivered_at is only written by the delivery step.
    """

    id: int | None = None
    digest_date: date
    window_start: datetime
    window_end: datetime
    content_items_count: int = 0
    political_items_count: int = 0
    clusters: list[ClusterSummary] = Field(default_factory=list)
    digest_markdown: str = ""
    generation_duration: float = 0.0
    schema_version: int = SCHEMA_VERSION
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    delivered_at: datetime | None = None

    @classmethod
    def from_document(cls, document: DigestDocument, generation_duration: float) -> "DigestRecord":
        return cls(
            digest_date=document.digest_date,
            window_start=document.window_start,
            window_end=document.window_end,
            content_items_count=document.content_items_count,
            political_items_count=document.political_items_count,
            clusters=document.sections,
            digest_markdown=document.markdown,
            generation_duration=generation_duration,
        )

    def __str__(self) -> str:
        """Human-readable representation for logging."""
        return (
            f"DigestRecord({self.digest_date}, items={self.content_items_count}, "
            f"political={self.political_items_count}, clusters={len(self.clusters)})"
        )
