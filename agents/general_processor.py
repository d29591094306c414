"""General processing for non-flagged content.

Completed items outside the flagged category get a cheap local summary
instead of a provider analysis:

    - keywords: most frequent non-stop-words (term frequency)
    - summary: first sentence plus the later sentence richest in keywords
    - reading time: words / 250, at least one minute

No provider is called, so this step cannot fail over or exhaust retries.
"""

import logging
import math
import re
from collections import Counter

from config import Config
from database import Database
from errors import SummaryNotPermitted
from models.content import ContentItem, ProcessingStatus
from models.general import GeneralSummary

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 250
MAX_KEYWORDS = 10
KEYWORD_CANDIDATES = 15
SUMMARY_MAX_CHARS = 300
FALLBACK_SUMMARY_CHARS = 200

STOP_WORDS = frozenset("""
    the a an and or but in on at to for of with by from as is was are were be been being
    have has had do does did will would could should may might must can this that these
    those i you he she it we they me him her us them my your his its our their mine yours
    hers ours theirs
""".split())

_PUNCTUATION = re.compile(r"[^\w\s]")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> list[str]:
    """Top terms by frequency; ties keep first-seen order.

    Among the top candidates, a term seen once must be longer than four
    characters to count.
    """
    words = [w for w in _PUNCTUATION.sub(" ", text.lower()).split() if len(w) > 2 and w not in STOP_WORDS]
    if not words:
        return []
    ranked = Counter(words).most_common(KEYWORD_CANDIDATES)
    return [word for word, count in ranked if count > 1 or len(word) > 4][:limit]


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def extractive_summary(text: str) -> str:
    """One or two sentences taken from the text."""
    text = " ".join(text.split())
    if not text:
        return ""
    sentences = [s.strip() for s in _SENTENCE_SPLIT.split(text)]
    sentences = [s for s in sentences if 20 < len(s) < 200]
    if not sentences:
        return _truncate(text, FALLBACK_SUMMARY_CHARS)

    first = sentences[0]
    keywords = extract_keywords(text)[:5]
    best, best_score = (sentences[1] if len(sentences) > 1 else ""), 0
    for sentence in sentences[1:10]:
        lowered = sentence.lower()
        score = sum(1 for keyword in keywords if keyword in lowered)
        if score > best_score:
            best, best_score = sentence, score

    summary = f"{first}. {best}." if best and best != first else f"{first}."
    if len(summary) > SUMMARY_MAX_CHARS:
        summary = summary[: SUMMARY_MAX_CHARS - 3] + "..."
    return summary


def reading_time_minutes(word_count: int) -> int:
    if word_count <= 0:
        return 0
    return max(1, math.ceil(word_count / WORDS_PER_MINUTE))


class GeneralProcessor:
    """Extractive summaries for completed non-flagged items.

    Example:
        >>> processor = GeneralProcessor(db, config)
        >>> summary = processor.process(item)
    """

    def __init__(self, db: Database, config: Config):
        self.db = db
        self.config = config

    def summarize(self, item: ContentItem) -> GeneralSummary:
        """Build a summary without storing it."""
        word_count = len(item.raw_content.split())
        return GeneralSummary(
            content_id=item.id,
            summary=extractive_summary(item.raw_content),
            keywords=extract_keywords(f"{item.title} {item.raw_content}"),
            word_count=word_count,
            reading_time_minutes=reading_time_minutes(word_count),
        )

    def process(self, item: ContentItem) -> GeneralSummary:
        """Summarize a completed non-flagged item and store the result.

        Raises:
            SummaryNotPermitted: If the item is missing, not completed, or flagged
        """
        current = self.db.get_content(item.id) if item.id is not None else None
        if current is None:
            raise SummaryNotPermitted(f"Content item {item.id} is not stored")
        if current.status != ProcessingStatus.COMPLETED:
            raise SummaryNotPermitted(f"Content item {current.id} is {current.status.value}, not completed")
        if current.category == self.config.flagged_category:
            raise SummaryNotPermitted(f"Content item {current.id} is flagged content")

        summary = self.summarize(current)
        self.db.upsert_general_summary(summary)
        logger.info(
            "Summarized | id=%s category=%s words=%d reading=%dmin keywords=%s",
            current.id,
            current.category,
            summary.word_count,
            summary.reading_time_minutes,
            ",".join(summary.keywords[:5]),
        )
        return summary
