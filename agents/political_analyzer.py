"""Political analyzer for flagged content.

Runs only for items classified into the flagged category with status
completed. Produces one PoliticalAnalysis per item:

    1. Provider analysis (bias, quality, credibility, summaries) via fallback
    2. Score range validation; out-of-range scores fail over to the next provider
    3. Local post-processing:
       - summaries clamped to word limits, key points capped
       - bias label derived from the score
       - loaded-language phrases from a weighted pattern table merged with
         the provider's phrases
    4. Upsert keyed by content_id (a second analysis overwrites the first)
"""

import logging
import re
from dataclasses import dataclass

from pydantic import ValidationError

from config import Config
from database import Database
from errors import AnalysisNotPermitted, ProviderMalformedResponse
from models.analysis import AnalysisRequest, AnalysisResult, BiasLabel, LoadedPhrase, PoliticalAnalysis
from models.content import ContentItem, ProcessingStatus
from providers.fallback import FallbackManager

logger = logging.getLogger(__name__)

EXECUTIVE_SUMMARY_MAX_WORDS = 100
DETAILED_SUMMARY_MAX_WORDS = 300
MAX_KEY_POINTS = 10
CONTEXT_CHARS = 50


@dataclass(frozen=True)
class LanguagePattern:
    pattern: re.Pattern
    weight: float
    category: str


def _words(*terms: str) -> re.Pattern:
    return re.compile(r"\b(" + "|".join(terms) + r")\b", re.IGNORECASE)


LOADED_LANGUAGE_PATTERNS: tuple[LanguagePattern, ...] = (
    # Highly charged political terms
    LanguagePattern(_words("radical", "extremist", "terrorist", "fascist", "communist", "socialist"), 0.9, "political_labels"),
    LanguagePattern(_words("destroy", "demolish", "annihilate", "obliterate", "devastate"), 0.8, "destructive_verbs"),
    LanguagePattern(_words("fake news", "propaganda", "brainwash", "indoctrinate"), 0.8, "media_attacks"),
    # Emotional manipulation
    LanguagePattern(_words("outrageous", "shocking", "devastating", "catastrophic", "alarming"), 0.7, "emotional_intensifiers"),
    LanguagePattern(_words("betrayal", "conspiracy", "scandal", "corruption", "cover-up"), 0.8, "accusatory_terms"),
    # Us vs them
    LanguagePattern(_words("real Americans", "patriots", "traitors", "enemies of the people"), 0.9, "divisive_identity"),
    LanguagePattern(_words("they want to", "they're trying to", "their agenda"), 0.6, "othering_language"),
    # Hyperbole
    LanguagePattern(_words("always", "never", "every single", "completely", "totally", "absolutely"), 0.5, "absolutes"),
    LanguagePattern(_words("disaster", "crisis", "emergency", "urgent", "critical"), 0.6, "crisis_language"),
)


def extract_context(text: str, start: int, end: int, context_chars: int = CONTEXT_CHARS) -> str:
    return text[max(0, start - context_chars):min(len(text), end + context_chars)].strip()


def detect_loaded_language(text: str) -> list[LoadedPhrase]:
    """Find loaded-language phrases, one entry per distinct phrase.

    Phrases are returned in order of first appearance; repeated matches
    increase `occurrences`.
    """
    found: dict[str, tuple[int, LoadedPhrase]] = {}
    for lp in LOADED_LANGUAGE_PATTERNS:
        for match in lp.pattern.finditer(text):
            key = match.group(0).lower()
            if key in found:
                position, phrase = found[key]
                found[key] = (position, phrase.model_copy(update={"occurrences": phrase.occurrences + 1}))
                continue
            found[key] = (match.start(), LoadedPhrase(
                phrase=match.group(0),
                category=lp.category,
                weight=lp.weight,
                context=extract_context(text, match.start(), match.end()),
            ))
    return [phrase for _, phrase in sorted(found.values(), key=lambda entry: entry[0])]


def merge_loaded_language(detected: list[LoadedPhrase], provider_phrases: list[str], text: str) -> list[LoadedPhrase]:
    """Append provider phrases the pattern table missed (case-insensitive dedup)."""
    merged = list(detected)
    seen = {p.phrase.lower() for p in detected}
    lowered = text.lower()
    for raw in provider_phrases:
        phrase = raw.strip()
        key = phrase.lower()
        if not phrase or key in seen:
            continue
        seen.add(key)
        index = lowered.find(key)
        merged.append(LoadedPhrase(
            phrase=phrase,
            category="provider",
            weight=0.5,
            context=extract_context(text, index, index + len(phrase)) if index >= 0 else "",
            occurrences=max(1, lowered.count(key)),
        ))
    return merged


def loaded_language_score(phrases: list[LoadedPhrase], text: str) -> float:
    """Weighted phrase density, 0-1 (weights per 100 words)."""
    total_weight = sum(p.weight * p.occurrences for p in phrases)
    word_count = len(text.split())
    return min(1.0, total_weight / max(word_count / 100, 1))


def intensity_label(score: float) -> str:
    if score >= 0.8:
        return "very_high"
    if score >= 0.6:
        return "high"
    if score >= 0.4:
        return "medium"
    if score >= 0.2:
        return "low"
    return "minimal"


def clamp_words(text: str, max_words: int) -> tuple[str, bool]:
    """Cut text to at most max_words words. Returns (text, was_clamped)."""
    words = text.split()
    if len(words) <= max_words:
        return text.strip(), False
    return " ".join(words[:max_words]), True


def _validate_scores(result: AnalysisResult) -> None:
    """Re-validate score ranges; providers may hand back unvalidated objects."""
    try:
        AnalysisResult.model_validate(result.model_dump())
    except ValidationError as e:
        raise ProviderMalformedResponse(f"Analysis scores out of range: {e.error_count()} errors") from e


class PoliticalAnalyzer:
    """Structured analysis for accepted flagged content.

    Example:
        >>> analyzer = PoliticalAnalyzer(manager, db, config)
        >>> analysis = await analyzer.analyze(item)
        >>> analysis.bias_label, analysis.quality_score
    """

    def __init__(self, manager: FallbackManager, db: Database, config: Config):
        self.manager = manager
        self.db = db
        self.config = config

    def _check_permitted(self, item: ContentItem) -> ContentItem:
        current = self.db.get_content(item.id) if item.id is not None else None
        if current is None:
            raise AnalysisNotPermitted(f"Content item {item.id} is not stored")
        if current.category != self.config.flagged_category:
            raise AnalysisNotPermitted(
                f"Content item {current.id} is '{current.category}', not {self.config.flagged_category}"
            )
        if current.status != ProcessingStatus.COMPLETED:
            raise AnalysisNotPermitted(
                f"Content item {current.id} is {current.status.value}, analysis needs completed"
            )
        return current

    def build_request(self, item: ContentItem) -> AnalysisRequest:
        return AnalysisRequest(
            title=item.title,
            full_body=item.raw_content[: self.config.analyze_max_chars],
            source_domain=item.source_domain,
        )

    async def analyze(self, item: ContentItem) -> PoliticalAnalysis:
        """Analyze one flagged item and store the result.

        Raises:
            AnalysisNotPermitted: If the item is not completed flagged content
            AllProvidersFailed: If no provider returned a valid analysis
        """
        item = self._check_permitted(item)
        outcome = await self.manager.execute("analyze", self.build_request(item), validate=_validate_scores)
        analysis = self._build_analysis(item, outcome.result, outcome.model or outcome.provider)
        self.db.upsert_analysis(analysis)
        logger.info(
            "Analyzed | id=%s bias=%s(%.2f) quality=%d credibility=%.1f loaded=%d intensity=%s provider=%s",
            item.id,
            analysis.bias_label.value,
            analysis.bias_score,
            analysis.quality_score,
            analysis.credibility_score,
            len(analysis.loaded_language),
            analysis.language_intensity,
            outcome.provider,
        )
        return analysis

    def _build_analysis(self, item: ContentItem, result: AnalysisResult, model: str) -> PoliticalAnalysis:
        label = BiasLabel.from_score(result.bias_score)
        if result.bias_label and result.bias_label.strip().lower() != label.value:
            logger.debug(
                "Bias label normalized | id=%s given=%s score=%.2f label=%s",
                item.id, result.bias_label, result.bias_score, label.value,
            )

        executive, clamped = clamp_words(result.executive_summary, EXECUTIVE_SUMMARY_MAX_WORDS)
        if clamped:
            logger.warning("Executive summary clamped | id=%s max_words=%d", item.id, EXECUTIVE_SUMMARY_MAX_WORDS)
        detailed, clamped = clamp_words(result.detailed_summary, DETAILED_SUMMARY_MAX_WORDS)
        if clamped:
            logger.warning("Detailed summary clamped | id=%s max_words=%d", item.id, DETAILED_SUMMARY_MAX_WORDS)
        if not executive:
            logger.warning("Empty executive summary | id=%s", item.id)

        key_points = [p.strip() for p in result.key_points if p.strip()]
        if len(key_points) > MAX_KEY_POINTS:
            logger.debug("Key points capped | id=%s count=%d", item.id, len(key_points))
            key_points = key_points[:MAX_KEY_POINTS]

        text = f"{item.title}\n{item.raw_content}"
        phrases = merge_loaded_language(detect_loaded_language(text), result.loaded_language, text)
        score = loaded_language_score(phrases, text)

        return PoliticalAnalysis(
            content_id=item.id,
            bias_score=result.bias_score,
            bias_confidence=result.bias_confidence,
            bias_label=label,
            quality_score=result.quality_score,
            credibility_score=result.credibility_score,
            loaded_language=phrases,
            language_intensity=intensity_label(score),
            language_score=score,
            executive_summary=executive,
            detailed_summary=detailed,
            key_points=key_points,
            implications=result.implications.strip(),
            model_used=model,
        )
