"""
Importance Ranking Tests
========================

1. Importance grows with quality, all else equal
2. Freshness decays against the window end, not the wall clock
3. Ranking order is total (importance, recency, identifier)
"""

import math
from datetime import datetime, timedelta, timezone

import pytest

from models.digest import TopicCluster
from ranking import ImportanceRanker

from tests.conftest import analyzed


REFERENCE = datetime(2024, 5, 1, 7, 0, tzinfo=timezone.utc)


def cluster_of(cluster_id, members, representative=None):
    return TopicCluster(
        cluster_id=cluster_id,
        member_ids=[m.id for m in members],
        centroid=[1.0, 0.0],
        label=f"Cluster {cluster_id}",
        representative_id=representative if representative is not None else members[0].id,
    )


# ============================================================================
# TEST: ITEM SCORES
# ============================================================================

class TestItemImportance:
    """Quality, freshness and engagement."""

    def test_monotonic_in_quality(self):
        ranker = ImportanceRanker()
        scores = [
            ranker.item_importance(analyzed(q, [1, 0], quality=q, captured_at=REFERENCE), REFERENCE)
            for q in range(1, 11)
        ]
        assert scores == sorted(scores)
        assert len(set(scores)) == len(scores)

    def test_freshness_half_life(self):
        ranker = ImportanceRanker(half_life_hours=24)
        assert ranker.freshness(REFERENCE, REFERENCE) == pytest.approx(1.0)
        assert ranker.freshness(REFERENCE - timedelta(hours=24), REFERENCE) == pytest.approx(math.exp(-1))

    def test_future_capture_is_not_boosted(self):
        ranker = ImportanceRanker()
        assert ranker.freshness(REFERENCE + timedelta(hours=2), REFERENCE) == pytest.approx(1.0)

    def test_engagement(self):
        ranker = ImportanceRanker(engagement_target_words=600)
        assert ranker.engagement(10.0, 600) == pytest.approx(1.0)
        assert ranker.engagement(5.0, 300) == pytest.approx(0.5)
        assert ranker.engagement(10.0, 6000) == pytest.approx(1.0)

    def test_full_formula(self):
        ranker = ImportanceRanker()
        member = analyzed(1, [1, 0], quality=8, captured_at=REFERENCE, words=600, credibility=10.0)
        assert ranker.item_importance(member, REFERENCE) == pytest.approx(0.8)


# ============================================================================
# TEST: CLUSTER SCORES
# ============================================================================

class TestClusterImportance:
    """Aggregate blended with the best member."""

    def test_mean_blend(self):
        assert ImportanceRanker(aggregation="mean").cluster_importance([0.8, 0.2]) == pytest.approx(0.65)

    def test_max_aggregation(self):
        assert ImportanceRanker(aggregation="max").cluster_importance([0.8, 0.2]) == pytest.approx(0.8)

    def test_empty(self):
        assert ImportanceRanker().cluster_importance([]) == 0.0


# ============================================================================
# TEST: ORDERING
# ============================================================================

class TestRankClusters:
    """Total order over clusters."""

    def test_higher_importance_first(self):
        weak = [analyzed(1, [1, 0], quality=3, captured_at=REFERENCE)]
        strong = [analyzed(2, [0, 1], quality=9, captured_at=REFERENCE)]
        items = {m.id: m for m in weak + strong}

        ranked = ImportanceRanker().rank_clusters([cluster_of(0, weak), cluster_of(1, strong)], items, REFERENCE)

        assert [c.cluster_id for c in ranked] == [1, 0]
        assert ranked[0].importance > ranked[1].importance > 0

    def test_tie_goes_to_most_recent_capture(self):
        # Captures after the reference both score full freshness, so importance ties
        older = [analyzed(1, [1, 0], captured_at=REFERENCE + timedelta(hours=1))]
        newer = [analyzed(2, [0, 1], captured_at=REFERENCE + timedelta(hours=3))]
        items = {m.id: m for m in older + newer}

        ranked = ImportanceRanker().rank_clusters([cluster_of(0, older), cluster_of(1, newer)], items, REFERENCE)

        assert ranked[0].importance == ranked[1].importance

        assert [c.cluster_id for c in ranked] == [1, 0]

    def test_full_tie_uses_lexical_identifier(self):
        a = [analyzed(9, [1, 0], captured_at=REFERENCE)]
        b = [analyzed(10, [0, 1], captured_at=REFERENCE)]
        items = {m.id: m for m in a + b}

        ranked = ImportanceRanker().rank_clusters([cluster_of(0, a), cluster_of(1, b)], items, REFERENCE)

        # "10" sorts before "9"
        assert [c.representative_id for c in ranked] == [10, 9]

    def test_rank_does_not_mutate_input(self):
        members = [analyzed(1, [1, 0], captured_at=REFERENCE)]
        original = cluster_of(0, members)

        ImportanceRanker().rank_clusters([original], {1: members[0]}, REFERENCE)

        assert original.importance == 0.0

    def test_rank_items_best_first(self):
        members = [
            analyzed(1, [1, 0], quality=4, captured_at=REFERENCE),
            analyzed(2, [1, 0], quality=9, captured_at=REFERENCE),
        ]
        ranked = ImportanceRanker().rank_items(members, REFERENCE)
        assert [m.id for m, _ in ranked] == [2, 1]
