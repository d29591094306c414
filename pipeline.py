"""Item pipeline orchestration.

This module coordinates the per-item workflow:

Pipeline Flow:
    1. CAPTURE: Store the item (deduplicated by content hash)
    2. CLASSIFY: Category + confidence through the provider fallback chain
    3. ROUTE: Low confidence -> manual_review; provider exhaustion -> failed
    4. ANALYZE: Political analysis for accepted flagged items only
    5. EMBED: Store the embedding vector used by digest clustering
    6. SUMMARIZE: Extractive summary for accepted non-flagged items

Completed items still missing their follow-up step (an analysis that
exhausted every provider, or a manual override into another category) are
picked up again by the next run, skipping classification.

Items are independent: a batch runs them concurrently under a semaphore, and
one item's provider backoff never holds up another. Classification always
finishes before analysis for the same item.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from typing import Any

from agents.classifier import Classifier
from agents.general_processor import GeneralProcessor
from agents.political_analyzer import PoliticalAnalyzer
from config import Config
from database import Database
from embeddings import Embedder, embedding_text
from errors import AllProvidersFailed, DuplicateContent
from models.analysis import PoliticalAnalysis
from models.classification import ClassificationResult
from models.content import ContentItem, ProcessingStatus
from models.general import GeneralSummary
from observability.logging import clear_context, item_context, set_run_context
from observability.tracing import setup_tracing, trace_operation
from providers.client import Provider, build_providers
from providers.fallback import FallbackManager, FallbackPolicy, SleepFunc

logger = logging.getLogger(__name__)


@dataclass
class PipelineStats:
    """Statistics from a single processing run.

    Attributes:
        processed: Items that went through classification
        flagged: Items accepted into the flagged category
        manual_review: Items routed to manual review
        failed: Items whose providers were all exhausted
        analyzed: Political analyses stored
        embedded: Embeddings stored
        summarized: General summaries stored
        resumed: Already classified items picked up for their follow-up step
        errors: Unexpected errors at any stage
        duration: Total run time in seconds
    """

    processed: int = 0
    flagged: int = 0
    manual_review: int = 0
    failed: int = 0
    analyzed: int = 0
    embedded: int = 0
    summarized: int = 0
    resumed: int = 0
    errors: int = 0
    duration: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        d = asdict(self)
        d["duration"] = round(d["duration"], 2)
        return d


@dataclass
class ItemOutcome:
    """What happened to one item in a processing run."""

    item: ContentItem
    classification: ClassificationResult | None = None
    analysis: PoliticalAnalysis | None = None
    summary: GeneralSummary | None = None
    embedded: bool = False
    resumed: bool = False
    error: str | None = None


class ContentPipeline:
    """Classification and analysis pipeline for captured content.

    Components:
        - Database: SQLite storage for items, the classification log and analyses
        - FallbackManager: provider retry and failover shared by both agents
        - Classifier: category assignment
        - PoliticalAnalyzer: analysis for flagged items
        - GeneralProcessor: extractive summaries for everything else

    Example:
        >>> pipeline = ContentPipeline(config)
        >>> item, created = pipeline.capture(ContentItem(url="https://...", title="..."))
        >>> outcome = await pipeline.process(item)
    """

    def __init__(
        self,
        config: Config,
        db: Database | None = None,
        providers: dict[str, Provider] | None = None,
        embedder: Embedder | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """Initialize pipeline with all components.

        Args:
            config: Application configuration
            db: Store to use (opened from config.db_path if omitted)
            providers: Provider clients by name (built from config if omitted)
            embedder: Embedding model; when omitted, vectors are computed at digest time
            sleep: Backoff sleep, injectable for tests
        """
        self.config = config
        self._owns_db = db is None
        self.db = db or Database(config.db_path)
        if providers is None:
            providers = build_providers(config)
        self.manager = FallbackManager(providers, FallbackPolicy.from_config(config), sleep=sleep)
        self.classifier = Classifier(self.manager, self.db, config)
        self.analyzer = PoliticalAnalyzer(self.manager, self.db, config)
        self.general = GeneralProcessor(self.db, config)
        self.embedder = embedder

        if config.enable_logfire:
            setup_tracing(enabled=True, service_name="dailies", token=config.logfire_token)

    def capture(self, item: ContentItem) -> tuple[ContentItem, bool]:
        """Store a captured item.

        Returns:
            (stored item, created). A duplicate returns the existing item and False.
        """
        try:
            stored = self.db.add_content(item)
        except DuplicateContent as e:
            logger.info("Duplicate capture ignored | hash=%s existing_id=%d", e.content_hash[:12], e.existing_id)
            return self.db.get_content(e.existing_id), False
        logger.info("Captured | id=%d domain=%s title=%s", stored.id, stored.source_domain, stored.title[:60])
        return stored, True

    async def _embed(self, item: ContentItem, analysis: PoliticalAnalysis) -> bool:
        if self.embedder is None:
            return False
        text = embedding_text(item.title, analysis.executive_summary)
        try:
            vectors = await asyncio.to_thread(self.embedder.encode_batch, [text])
            self.db.save_embedding(item.id, vectors[0])
            return True
        except Exception as e:
            # Missing vectors are filled in at digest time
            logger.warning("Embedding failed | id=%s error=%s", item.id, e)
            return False

    async def process(self, item: ContentItem) -> ItemOutcome:
        """Classify one item, then analyze or summarize it by category.

        Items already completed (an earlier run whose analysis exhausted
        every provider, or a manual override) skip classification and go
        straight to the step their current category needs. Provider
        exhaustion during analysis is recorded on the outcome; the item keeps
        its completed classification and is picked up again next run.
        """
        outcome = ItemOutcome(item=item)
        with item_context(item.id), trace_operation("process_item", {"content_id": item.id}) as span:
            if item.status == ProcessingStatus.COMPLETED:
                outcome.resumed = True
                category = item.category
            else:
                outcome.classification = await self.classifier.classify(item)
                span["status"] = outcome.classification.status.value
                if outcome.classification.status != ProcessingStatus.COMPLETED:
                    return outcome
                category = outcome.classification.category.value if outcome.classification.category else None

            if category is None:
                return outcome
            if category != self.config.flagged_category:
                outcome.summary = self.general.process(item)
                return outcome

            try:
                outcome.analysis = await self.analyzer.analyze(item)
            except AllProvidersFailed as e:
                outcome.error = str(e)
                logger.error("Analysis failed | id=%s providers=%s", item.id, ",".join(e.providers_tried))
                return outcome

            outcome.embedded = await self._embed(item, outcome.analysis)
        return outcome

    async def process_batch(self, items: list[ContentItem], max_concurrent: int | None = None) -> PipelineStats:
        """Process items concurrently.

        Args:
            items: Stored items to process
            max_concurrent: Concurrency bound (defaults to MAX_WORKERS)

        Returns:
            PipelineStats for the batch
        """
        start = time.time()
        stats = PipelineStats()
        semaphore = asyncio.Semaphore(max_concurrent or self.config.max_workers)

        async def process_one(item: ContentItem) -> ItemOutcome:
            async with semaphore:
                return await self.process(item)

        results = await asyncio.gather(*(process_one(i) for i in items), return_exceptions=True)

        for item, result in zip(items, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                stats.errors += 1
                logger.error("Item processing error | id=%s: %s", item.id, result, exc_info=result)
                continue

            if result.resumed:
                stats.resumed += 1
            else:
                stats.processed += 1
            status = result.classification.status if result.classification else None
            if status == ProcessingStatus.MANUAL_REVIEW:
                stats.manual_review += 1
            elif status == ProcessingStatus.FAILED:
                stats.failed += 1
            if result.analysis is not None:
                stats.flagged += 1
                stats.analyzed += 1
            elif result.error:
                stats.flagged += 1
                stats.errors += 1
            if result.embedded:
                stats.embedded += 1
            if result.summary is not None:
                stats.summarized += 1

        stats.duration = time.time() - start
        return stats

    def _work_queue(self, limit: int | None) -> tuple[list[ContentItem], list[ContentItem]]:
        """Pending items first, then completed items missing their follow-up step."""
        pending = self.db.pending_items(limit)
        remaining = None if limit is None else limit - len(pending)
        followups: list[ContentItem] = []
        for query in (self.db.unanalyzed_flagged, self.db.unsummarized_general):
            if remaining is not None and remaining <= 0:
                break
            found = query(self.config.flagged_category, remaining)
            followups.extend(found)
            if remaining is not None:
                remaining -= len(found)
        return pending, followups

    async def run_once(self, limit: int | None = None) -> PipelineStats:
        """Process every pending item (and items left in processing).

        Completed items still waiting for an analysis or a general summary
        are resumed in the same run.

        Args:
            limit: Maximum items to process (None = all)

        Returns:
            PipelineStats with counts from each stage
        """
        run_id = uuid.uuid4().hex[:8]
        set_run_context(run_id)
        try:
            pending, followups = self._work_queue(limit)
            logger.info("Processing started | pending=%d resumed=%d", len(pending), len(followups))
            if not pending and not followups:
                return PipelineStats()

            stats = await self.process_batch(pending + followups)
            logger.info(
                "Processing complete | processed=%d resumed=%d flagged=%d analyzed=%d summarized=%d "
                "review=%d failed=%d errors=%d duration=%.1fs",
                stats.processed,
                stats.resumed,
                stats.flagged,
                stats.analyzed,
                stats.summarized,
                stats.manual_review,
                stats.failed,
                stats.errors,
                stats.duration,
            )
            return stats
        except asyncio.CancelledError:
            logger.warning("Processing cancelled | run_id=%s", run_id)
            raise
        finally:
            clear_context()

    def close(self) -> None:
        """Clean up resources."""
        if self._owns_db:
            self.db.close()
