"""Pydantic models for the Dailies classification and digest pipeline.

This package contains all data models used throughout the pipeline:

ContentItem:
    Captured page with title, raw text, URL and processing status.
    Includes the SHA-256 content hash used for deduplication.

ContentCategory / ClassificationResult:
    Category enum and the recorded outcome of one classification attempt.

PoliticalAnalysis:
    Bias, quality, credibility, loaded language and summaries for flagged items.

TopicCluster / DigestRecord:
    Clustering output and the stored daily digest.

GeneralSummary:
    Extractive summary, keywords and reading time for non-flagged items.

Example:
    >>> from models import ContentItem, ProcessingStatus
    >>> item = ContentItem(url="https://example.com/a", title="...", raw_content="...")
    >>> item = item.transition(ProcessingStatus.PROCESSING)
"""

from models.content import ContentItem, ProcessingStatus, compute_content_hash
from models.classification import (
    CategoryResult,
    ClassificationRequest,
    ClassificationResult,
    ContentCategory,
    resolve_category,
)
from models.analysis import (
    AnalysisRequest,
    AnalysisResult,
    BiasLabel,
    LoadedPhrase,
    PoliticalAnalysis,
    SCHEMA_VERSION,
)
from models.digest import (
    AnalyzedItem,
    ClusterSummary,
    DigestDocument,
    DigestMember,
    DigestRecord,
    TopicCluster,
)
from models.general import GeneralSummary

__all__ = [
    "ContentItem",
    "ProcessingStatus",
    "compute_content_hash",
    "CategoryResult",
    "ClassificationRequest",
    "ClassificationResult",
    "ContentCategory",
    "resolve_category",
    "AnalysisRequest",
    "AnalysisResult",
    "BiasLabel",
    "LoadedPhrase",
    "PoliticalAnalysis",
    "SCHEMA_VERSION",
    "AnalyzedItem",
    "ClusterSummary",
    "DigestDocument",
    "DigestMember",
    "DigestRecord",
    "TopicCluster",
    "GeneralSummary",
]
