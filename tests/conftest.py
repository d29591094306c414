"""
Pytest configuration for Dailies tests.

Provides scripted fake providers (implementing the Provider protocol), a
temp-path SQLite database per test, a deterministic embedder and a sleep
recorder so backoff never waits.
"""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from config import Config
from database import Database
from errors import ProviderUnavailable
from models.analysis import AnalysisResult, BiasLabel, PoliticalAnalysis
from models.classification import CategoryResult
from models.content import ContentItem, ProcessingStatus
from models.digest import AnalyzedItem


def pytest_configure(config):
    """Configure pytest with asyncio marker."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test."
    )


# ============================================================================
# FAKES
# ============================================================================

class FakeProvider:
    """Provider that replays scripted responses.

    Each script entry is returned (or raised, if it is an exception) on one
    call; the last entry repeats once the script runs out. An entry may also
    be a callable taking the request.
    """

    def __init__(self, name: str, classify=None, analyze=None, model: str | None = None):
        self.name = name
        self.model = model or f"{name}:test-model"
        self._scripts = {"classify": list(classify or []), "analyze": list(analyze or [])}
        self.calls = {"classify": 0, "analyze": 0}
        self.requests = {"classify": [], "analyze": []}

    def _next(self, operation: str, request):
        self.calls[operation] += 1
        self.requests[operation].append(request)
        script = self._scripts[operation]
        if not script:
            raise ProviderUnavailable("no scripted response", self.name)
        entry = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(entry, BaseException):
            raise entry
        if callable(entry):
            return entry(request)
        return entry

    async def classify(self, request):
        return self._next("classify", request)

    async def analyze(self, request):
        return self._next("analyze", request)


class FakeEmbedder:
    """Maps texts to fixed vectors by keyword; unknown texts get a hashed vector."""

    def __init__(self, vectors: dict[str, list[float]] | None = None, dim: int = 4):
        self.vectors = vectors or {}
        self.dim = dim
        self.calls = 0

    def encode_batch(self, texts: list[str], batch_size: int = 32) -> np.ndarray:
        self.calls += 1
        rows = []
        for text in texts:
            for key, vector in self.vectors.items():
                if key in text:
                    rows.append(vector)
                    break
            else:
                seed = sum(ord(c) for c in text)
                rows.append([float((seed >> i) % 7 + 1) for i in range(self.dim)])
        return np.asarray(rows, dtype=np.float32)


class SleepRecorder:
    """Replacement for asyncio.sleep that records delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def store_classified(db: Database, item: ContentItem, category_name: str = "US_Politics_News",
                     confidence: float = 0.9) -> ContentItem:
    """Store an item as already classified (completed) without going through providers."""
    stored = db.add_content(item)
    db.transition_status(stored.id, ProcessingStatus.PROCESSING)
    return db.update_classification(stored.id, ProcessingStatus.COMPLETED, category_name, confidence)


def analyzed(
    item_id: int,
    embedding,
    quality: int = 7,
    summary: str = "Lawmakers debated the budget. A vote is expected.",
    captured_at: datetime | None = None,
    words: int = 600,
    credibility: float = 8.0,
) -> AnalyzedItem:
    """Snapshot entry for clustering, ranking and assembly tests."""
    item = ContentItem(
        id=item_id,
        url=f"https://news.example.com/{item_id}",
        title=f"Item {item_id}",
        raw_content=" ".join(["word"] * words),
        captured_at=captured_at or datetime(2024, 5, 1, 6, 0, tzinfo=timezone.utc),
        category="US_Politics_News",
        status=ProcessingStatus.COMPLETED,
    )
    analysis = PoliticalAnalysis(
        content_id=item_id,
        bias_score=0.0,
        bias_confidence=0.8,
        bias_label=BiasLabel.CENTER,
        quality_score=quality,
        credibility_score=credibility,
        executive_summary=summary,
    )
    return AnalyzedItem(item=item, analysis=analysis, embedding=tuple(float(x) for x in embedding))


def category(name: str, confidence: float = 0.9) -> CategoryResult:
    return CategoryResult(category=name, confidence=confidence)


def analysis_result(**overrides) -> AnalysisResult:
    values = {
        "bias_score": 0.0,
        "bias_confidence": 0.8,
        "quality_score": 7,
        "credibility_score": 8.0,
        "executive_summary": "Congress passed a budget bill. It now goes to the president.",
        "detailed_summary": "The House and Senate agreed on spending levels.",
        "key_points": ["Budget passed", "Vote was close"],
        "implications": "Funding continues through the fiscal year.",
    }
    values.update(overrides)
    return AnalysisResult(**values)


def malformed_analysis(**overrides) -> AnalysisResult:
    """An AnalysisResult that skipped validation, as a misbehaving provider might return."""
    values = analysis_result().model_dump()
    values.update(overrides)
    return AnalysisResult.model_construct(**values)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def config(tmp_path) -> Config:
    """Config with fast retries and temp paths."""
    return Config(
        gemini_api_key="test-key",
        primary_provider="gemini",
        fallback_order=["openai", "anthropic"],
        max_retries_per_provider=3,
        base_backoff_ms=100,
        provider_timeout_seconds=5.0,
        db_path=tmp_path / "dailies.db",
        log_dir=tmp_path / "log",
        reports_dir=tmp_path / "reports",
    )


@pytest.fixture
def db(config):
    database = Database(config.db_path)
    yield database
    database.close()


@pytest.fixture
def no_sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 5, 1, 6, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_item(now):
    """Factory for unsaved content items with distinct hashes."""
    counter = {"n": 0}

    def _make(
        title: str | None = None,
        raw_content: str = "The Senate voted on the bill today after a long debate.",
        url: str | None = None,
        captured_at: datetime | None = None,
        **kwargs,
    ) -> ContentItem:
        counter["n"] += 1
        n = counter["n"]
        return ContentItem(
            url=url or f"https://www.example.com/story/{n}",
            title=title or f"Story number {n}",
            raw_content=raw_content,
            captured_at=captured_at or now - timedelta(hours=1),
            **kwargs,
        )

    return _make
