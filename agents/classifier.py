"""Classifier for captured content.

This module implements the Classifier, which assigns each captured item to
one category using the provider fallback chain.

Design Philosophy:
    - Bounded input: title + truncated body + domain/keyword hints
    - Trust threshold: low-confidence answers are recorded but routed to
      manual review, never into political analysis
    - No self-retry: when every provider fails the item is marked failed and
      left for an external retry
    - Concurrent: batch classification with semaphore-controlled parallelism

Every attempt is appended to the classification log, and the item row is
updated with the decided status, category and confidence.
"""

import asyncio
import json
import logging

from config import Config
from database import Database
from errors import AllProvidersFailed, ProviderMalformedResponse
from models.classification import (
    CategoryResult,
    ClassificationRequest,
    ClassificationResult,
    ContentCategory,
    resolve_category,
)
from models.content import ContentItem, ProcessingStatus
from providers.fallback import FallbackManager

logger = logging.getLogger(__name__)


# === Matcher Hints ===
# Domain and keyword matchers add evidence to the prompt. They never decide
# the category on their own.

DOMAIN_HINTS: dict[str, ContentCategory] = {
    "politico.com": ContentCategory.US_POLITICS_NEWS,
    "thehill.com": ContentCategory.US_POLITICS_NEWS,
    "rollcall.com": ContentCategory.US_POLITICS_NEWS,
    "realclearpolitics.com": ContentCategory.US_POLITICS_NEWS,
    "fivethirtyeight.com": ContentCategory.US_POLITICS_NEWS,
    "c-span.org": ContentCategory.US_POLITICS_NEWS,
    "whitehouse.gov": ContentCategory.US_POLITICS_NEWS,
    "congress.gov": ContentCategory.US_POLITICS_NEWS,
    "techcrunch.com": ContentCategory.TECHNOLOGY,
    "arstechnica.com": ContentCategory.TECHNOLOGY,
    "theverge.com": ContentCategory.TECHNOLOGY,
    "wired.com": ContentCategory.TECHNOLOGY,
    "github.com": ContentCategory.TECHNOLOGY,
    "bloomberg.com": ContentCategory.BUSINESS,
    "wsj.com": ContentCategory.BUSINESS,
    "ft.com": ContentCategory.BUSINESS,
    "nature.com": ContentCategory.SCIENCE,
    "science.org": ContentCategory.SCIENCE,
    "espn.com": ContentCategory.SPORTS,
    "variety.com": ContentCategory.ENTERTAINMENT,
}

KEYWORD_HINTS: dict[str, ContentCategory] = {
    "congress": ContentCategory.US_POLITICS_NEWS,
    "senate": ContentCategory.US_POLITICS_NEWS,
    "white house": ContentCategory.US_POLITICS_NEWS,
    "supreme court": ContentCategory.US_POLITICS_NEWS,
    "election": ContentCategory.US_POLITICS_NEWS,
    "democrat": ContentCategory.US_POLITICS_NEWS,
    "republican": ContentCategory.US_POLITICS_NEWS,
    "governor": ContentCategory.US_POLITICS_NEWS,
    "artificial intelligence": ContentCategory.TECHNOLOGY,
    "software": ContentCategory.TECHNOLOGY,
    "earnings": ContentCategory.BUSINESS,
    "stock market": ContentCategory.BUSINESS,
    "clinical trial": ContentCategory.SCIENCE,
}


def build_hints(item: ContentItem) -> list[str]:
    """Collect matcher hints for an item, domain hints first."""
    hints = []
    domain = item.source_domain.lower()
    for pattern, category in DOMAIN_HINTS.items():
        if domain == pattern or domain.endswith("." + pattern):
            hints.append(f"Content from {pattern} is typically {category.value}")

    text = f"{item.title} {item.raw_content}".lower()
    for keyword, category in KEYWORD_HINTS.items():
        if keyword in text:
            hints.append(f"Keyword '{keyword}' suggests {category.value}")
    return hints


def _validate_category(result: CategoryResult) -> None:
    """Reject answers outside the known category set or confidence range."""
    if resolve_category(result.category) is None:
        raise ProviderMalformedResponse(f"Unknown category '{result.category}'")
    if not 0.0 <= result.confidence <= 1.0:
        raise ProviderMalformedResponse(f"Confidence out of range: {result.confidence}")


class Classifier:
    """Assigns categories to captured items.

    Example:
        >>> classifier = Classifier(manager, db, config)
        >>> result = await classifier.classify(item)
        >>> result.status
        <ProcessingStatus.COMPLETED: 'completed'>
    """

    def __init__(self, manager: FallbackManager, db: Database, config: Config):
        """Initialize the classifier.

        Args:
            manager: Provider fallback manager
            db: Store for item status and the classification log
            config: Threshold and truncation settings
        """
        self.manager = manager
        self.db = db
        self.config = config

    def build_request(self, item: ContentItem) -> ClassificationRequest:
        return ClassificationRequest(
            title=item.title,
            truncated_body=item.raw_content[: self.config.classify_max_chars],
            hints=build_hints(item),
        )

    async def classify(self, item: ContentItem) -> ClassificationResult:
        """Classify a single stored item.

        Args:
            item: Item to classify (must have an id)

        Returns:
            The recorded classification attempt

        Raises:
            InvalidStatusTransition: If the item is already completed or in review
        """
        if item.manual_override:
            logger.info("Skipping manual override | id=%s category=%s", item.id, item.category)
            return ClassificationResult(
                content_id=item.id,
                category=resolve_category(item.category),
                confidence=item.confidence if item.confidence is not None else 1.0,
                provider="manual",
                status=item.status,
            )

        self.db.transition_status(item.id, ProcessingStatus.PROCESSING)

        try:
            outcome = await self.manager.execute(
                "classify", self.build_request(item), validate=_validate_category
            )
        except AllProvidersFailed as e:
            result = ClassificationResult(
                content_id=item.id,
                provider="none",
                raw_response=json.dumps({
                    "error": str(e),
                    "providers_tried": e.providers_tried,
                }),
                status=ProcessingStatus.FAILED,
            )
            self.db.update_classification(item.id, ProcessingStatus.FAILED, None, None, commit=False)
            self.db.append_classification(result)
            logger.error("Classification failed | id=%s providers=%s", item.id, ",".join(e.providers_tried))
            return result

        category = resolve_category(outcome.result.category)
        confidence = outcome.result.confidence
        if confidence < self.config.confidence_threshold:
            status = ProcessingStatus.MANUAL_REVIEW
        else:
            status = ProcessingStatus.COMPLETED

        result = ClassificationResult(
            content_id=item.id,
            category=category,
            confidence=confidence,
            provider=outcome.provider,
            raw_response=outcome.result.model_dump_json(),
            status=status,
        )
        self.db.update_classification(
            item.id, status, category.value, confidence, processed_at=result.classified_at, commit=False
        )
        self.db.append_classification(result)

        logger.info(
            "Classified | id=%s category=%s confidence=%.2f status=%s provider=%s attempts=%d",
            item.id,
            category.value,
            confidence,
            status.value,
            outcome.provider,
            outcome.attempts,
        )
        return result

    async def classify_batch(
        self,
        items: list[ContentItem],
        max_concurrent: int = 5,
    ) -> list[tuple[ContentItem, ClassificationResult]]:
        """Classify multiple items concurrently.

        Items that raise (for example an invalid status transition) are
        logged and left out of the output.

        Args:
            items: Items to classify
            max_concurrent: Max concurrent provider calls

        Returns:
            List of (item, classification) tuples
        """
        total = len(items)
        completed = 0
        semaphore = asyncio.Semaphore(max_concurrent)

        logger.info("Batch classification started | total=%d max_concurrent=%d", total, max_concurrent)

        async def classify_one(item: ContentItem) -> tuple[ContentItem, ClassificationResult]:
            nonlocal completed
            async with semaphore:
                result = await self.classify(item)
                completed += 1
                if completed % 10 == 0 or completed == total:
                    logger.info("Classification progress: %d/%d (%.0f%%)", completed, total, completed / total * 100)
                return item, result

        results = await asyncio.gather(*(classify_one(i) for i in items), return_exceptions=True)

        output = []
        errors = 0
        for item, result in zip(items, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                errors += 1
                logger.error("Batch classification error | id=%s: %s", item.id, result, exc_info=result)
            else:
                output.append(result)

        logger.info("Batch classification complete | total=%d errors=%d", total, errors)
        return output
