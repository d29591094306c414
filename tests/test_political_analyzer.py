"""
Political Analyzer Tests
========================

1. Analysis runs only for completed flagged items
2. Out-of-range scores from a provider fail over to the next provider
3. Re-analysis overwrites the stored analysis (one row per item)
4. Local post-processing: bias label, summary clamps, loaded language
"""

import pytest

from agents.political_analyzer import (
    EXECUTIVE_SUMMARY_MAX_WORDS,
    MAX_KEY_POINTS,
    PoliticalAnalyzer,
    clamp_words,
    detect_loaded_language,
    intensity_label,
    loaded_language_score,
    merge_loaded_language,
)
from errors import AllProvidersFailed, AnalysisNotPermitted, ProviderUnavailable
from models.analysis import BiasLabel
from models.content import ProcessingStatus
from providers.fallback import FallbackManager, FallbackPolicy

from tests.conftest import FakeProvider, analysis_result, malformed_analysis, store_classified


@pytest.fixture
def make_analyzer(config, db, no_sleep):
    def _make(*providers):
        manager = FallbackManager(
            {p.name: p for p in providers},
            FallbackPolicy.from_config(config),
            sleep=no_sleep,
        )
        return PoliticalAnalyzer(manager, db, config)

    return _make


# ============================================================================
# TEST: ELIGIBILITY
# ============================================================================

class TestEligibility:
    """Only accepted flagged content is analyzed."""

    @pytest.mark.asyncio
    async def test_other_category_is_refused(self, db, make_analyzer, make_item):
        item = store_classified(db, make_item(), category_name="Technology")
        provider = FakeProvider("gemini", analyze=[analysis_result()])

        with pytest.raises(AnalysisNotPermitted):
            await make_analyzer(provider).analyze(item)

        assert provider.calls["analyze"] == 0

    @pytest.mark.asyncio
    async def test_manual_review_is_refused(self, db, make_analyzer, make_item):
        stored = db.add_content(make_item())
        db.transition_status(stored.id, ProcessingStatus.PROCESSING)
        item = db.update_classification(stored.id, ProcessingStatus.MANUAL_REVIEW, "US_Politics_News", 0.5)

        with pytest.raises(AnalysisNotPermitted):
            await make_analyzer(FakeProvider("gemini", analyze=[analysis_result()])).analyze(item)

    @pytest.mark.asyncio
    async def test_unstored_item_is_refused(self, make_analyzer, make_item):
        with pytest.raises(AnalysisNotPermitted):
            await make_analyzer().analyze(make_item())


# ============================================================================
# TEST: PROVIDER VALIDATION
# ============================================================================

class TestScoreValidation:
    """Scores outside their ranges never reach storage."""

    @pytest.mark.asyncio
    async def test_out_of_range_quality_fails_over(self, db, make_analyzer, make_item):
        item = store_classified(db, make_item())
        primary = FakeProvider("gemini", analyze=[malformed_analysis(quality_score=11)])
        fallback = FakeProvider("openai", analyze=[analysis_result(quality_score=6)])

        analysis = await make_analyzer(primary, fallback).analyze(item)

        assert analysis.quality_score == 6
        assert analysis.model_used == "openai:test-model"
        assert primary.calls["analyze"] == 1

    @pytest.mark.asyncio
    async def test_out_of_range_bias_fails_over(self, db, make_analyzer, make_item):
        item = store_classified(db, make_item())
        primary = FakeProvider("gemini", analyze=[malformed_analysis(bias_score=1.7)])
        fallback = FakeProvider("openai", analyze=[analysis_result(bias_score=0.5)])

        analysis = await make_analyzer(primary, fallback).analyze(item)

        assert analysis.bias_score == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_all_providers_failing_stores_nothing(self, db, make_analyzer, make_item):
        item = store_classified(db, make_item())
        analyzer = make_analyzer(FakeProvider("gemini", analyze=[ProviderUnavailable("down")]))

        with pytest.raises(AllProvidersFailed):
            await analyzer.analyze(item)

        assert db.get_analysis(item.id) is None
        assert db.get_content(item.id).status == ProcessingStatus.COMPLETED


# ============================================================================
# TEST: IDEMPOTENT STORAGE
# ============================================================================

class TestUpsert:
    """A second analysis replaces the first."""

    @pytest.mark.asyncio
    async def test_reanalysis_overwrites(self, db, make_analyzer, make_item):
        item = store_classified(db, make_item())

        await make_analyzer(FakeProvider("gemini", analyze=[analysis_result(quality_score=4)])).analyze(item)
        await make_analyzer(FakeProvider("gemini", analyze=[analysis_result(quality_score=9)])).analyze(item)

        assert db.count_analyses(item.id) == 1
        assert db.get_analysis(item.id).quality_score == 9

    @pytest.mark.asyncio
    async def test_stored_analysis_round_trips(self, db, make_analyzer, make_item):
        item = store_classified(db, make_item(raw_content="A radical plan and a shocking scandal."))
        analysis = await make_analyzer(
            FakeProvider("gemini", analyze=[analysis_result(bias_score=-0.6, loaded_language=["plan"])])
        ).analyze(item)

        stored = db.get_analysis(item.id)

        assert stored.bias_label == BiasLabel.LEFT
        assert [p.phrase for p in stored.loaded_language] == [p.phrase for p in analysis.loaded_language]
        assert stored.key_points == analysis.key_points


# ============================================================================
# TEST: POST-PROCESSING
# ============================================================================

class TestPostProcessing:
    """Derived fields computed locally."""

    @pytest.mark.parametrize(
        "score,label",
        [(-1.0, BiasLabel.LEFT), (-0.21, BiasLabel.LEFT), (-0.2, BiasLabel.CENTER), (0.0, BiasLabel.CENTER),
         (0.2, BiasLabel.CENTER), (0.21, BiasLabel.RIGHT), (1.0, BiasLabel.RIGHT)],
    )
    def test_bias_label_from_score(self, score, label):
        assert BiasLabel.from_score(score) == label

    @pytest.mark.asyncio
    async def test_label_follows_score_not_provider(self, db, make_analyzer, make_item):
        item = store_classified(db, make_item())
        analysis = await make_analyzer(
            FakeProvider("gemini", analyze=[analysis_result(bias_score=0.8, bias_label="left")])
        ).analyze(item)

        assert analysis.bias_label == BiasLabel.RIGHT

    @pytest.mark.asyncio
    async def test_summaries_and_key_points_are_bounded(self, db, make_analyzer, make_item):
        item = store_classified(db, make_item())
        long_summary = " ".join(["word"] * 150)
        points = [f"point {n}" for n in range(15)]
        analysis = await make_analyzer(
            FakeProvider("gemini", analyze=[analysis_result(executive_summary=long_summary, key_points=points)])
        ).analyze(item)

        assert len(analysis.executive_summary.split()) == EXECUTIVE_SUMMARY_MAX_WORDS
        assert len(analysis.key_points) == MAX_KEY_POINTS

    def test_clamp_words_leaves_short_text(self):
        assert clamp_words("  two words ", 5) == ("two words", False)


class TestLoadedLanguage:
    """Pattern-table detection merged with provider phrases."""

    def test_detects_and_counts(self):
        text = "A radical idea. Another radical move, truly shocking."
        phrases = detect_loaded_language(text)

        assert [p.phrase.lower() for p in phrases] == ["radical", "shocking"]
        assert phrases[0].occurrences == 2
        assert phrases[0].category == "political_labels"
        assert phrases[1].weight == pytest.approx(0.7)

    def test_multiword_pattern(self):
        phrases = detect_loaded_language("They called it fake news again.")
        assert phrases[0].phrase.lower() == "fake news"
        assert phrases[0].category == "media_attacks"

    def test_merge_skips_known_phrases(self):
        text = "A radical plan called a power grab."
        merged = merge_loaded_language(detect_loaded_language(text), ["Radical", "power grab"], text)

        assert [p.phrase for p in merged] == ["radical", "power grab"]
        assert merged[1].category == "provider"
        assert merged[1].weight == pytest.approx(0.5)
        assert "power grab" in merged[1].context

    def test_score_is_density_capped_at_one(self):
        text = " ".join(["radical"] * 5)
        assert loaded_language_score(detect_loaded_language(text), text) == pytest.approx(1.0)

    def test_score_scales_with_length(self):
        text = "radical " + " ".join(["calm"] * 899)
        # 0.9 weight over 9 hundred-word blocks
        assert loaded_language_score(detect_loaded_language(text), text) == pytest.approx(0.1)

    @pytest.mark.parametrize(
        "score,label",
        [(0.9, "very_high"), (0.6, "high"), (0.45, "medium"), (0.2, "low"), (0.05, "minimal")],
    )
    def test_intensity_label(self, score, label):
        assert intensity_label(score) == label
