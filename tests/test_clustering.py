"""
Topic Clustering Tests
======================

1. Same snapshot -> same clusters, regardless of input order
2. Noise points become singleton clusters (no item is dropped)
3. Epsilon moves toward the target cluster-count band
4. Representative and label selection
"""

import math
import random

import numpy as np
import pytest

from clustering import (
    LABEL_MAX_WORDS,
    TopicClusteringEngine,
    cosine_distance_matrix,
    dbscan,
    first_sentence_label,
    group_labels,
    NOISE,
)

from tests.conftest import analyzed


def unit(*values):
    v = np.asarray(values, dtype=np.float64)
    return v / np.linalg.norm(v)


# Two tight pairs and one outlier
GROUPED = {
    1: unit(1, 0, 0),
    2: unit(0.99, 0.1, 0),
    3: unit(0, 1, 0),
    4: unit(0.1, 0.99, 0),
    5: unit(0, 0, 1),
}


# ============================================================================
# TEST: DBSCAN PRIMITIVES
# ============================================================================

class TestDbscan:
    """Core algorithm over a distance matrix."""

    def test_distance_matrix(self):
        distances = cosine_distance_matrix(np.array([[1.0, 0.0], [0.0, 1.0], [-1.0, 0.0]]))
        assert distances[0, 0] == pytest.approx(0.0)
        assert distances[0, 1] == pytest.approx(1.0)
        assert distances[0, 2] == pytest.approx(2.0)

    def test_noise_points(self):
        distances = cosine_distance_matrix(np.eye(3))
        assert dbscan(distances, 0.35, 2) == [NOISE, NOISE, NOISE]

    def test_labels_follow_row_order(self):
        distances = cosine_distance_matrix(np.array([GROUPED[i] for i in sorted(GROUPED)]))
        assert dbscan(distances, 0.35, 2) == [0, 0, 1, 1, NOISE]

    def test_distances_never_negative(self):
        v = unit(0.3, 0.7, 0.2)
        assert cosine_distance_matrix(np.array([v, v, v])).min() >= 0.0

    def test_groups_with_singletons(self):
        assert group_labels([0, NOISE, 0, 1, 1]) == [[0, 2], [1], [3, 4]]


# ============================================================================
# TEST: CLUSTERING ENGINE
# ============================================================================

class TestClusteringEngine:
    """Membership, determinism and the cluster-count band."""

    def test_pairs_and_outlier(self):
        engine = TopicClusteringEngine(epsilon=0.35, min_points=2, target_min=3, target_max=5)
        items = [analyzed(i, v) for i, v in GROUPED.items()]

        clusters = engine.cluster(items)

        assert [c.member_ids for c in clusters] == [[1, 2], [3, 4], [5]]
        assert [c.cluster_id for c in clusters] == [0, 1, 2]

    def test_input_order_does_not_matter(self):
        engine = TopicClusteringEngine()
        items = [analyzed(i, v, quality=i) for i, v in GROUPED.items()]
        shuffled = list(items)
        random.Random(7).shuffle(shuffled)

        first = engine.cluster(items)
        second = engine.cluster(shuffled)

        assert [(c.member_ids, c.label, c.representative_id) for c in first] == \
               [(c.member_ids, c.label, c.representative_id) for c in second]

    def test_every_item_lands_in_exactly_one_cluster(self):
        engine = TopicClusteringEngine()
        items = [analyzed(i, v) for i, v in GROUPED.items()]

        members = [m for c in engine.cluster(items) for m in c.member_ids]

        assert sorted(members) == sorted(GROUPED)

    def test_all_singletons_stop_adjusting(self):
        engine = TopicClusteringEngine(epsilon=0.35, target_min=3, target_max=5)

        groups, epsilon = engine.assign(np.eye(2))

        assert groups == [[0], [1]]
        assert epsilon == pytest.approx(0.35)

    def test_too_many_clusters_raises_epsilon(self):
        partner = [0.62, math.sqrt(1 - 0.62 ** 2)]  # cosine distance 0.38
        vectors = np.array([
            [1, 0, 0, 0],
            [*partner, 0, 0],
            [0, 0, 1, 0],
            [0, 0, *partner],
        ])
        engine = TopicClusteringEngine(epsilon=0.35, target_min=1, target_max=2, epsilon_step=0.05)

        groups, epsilon = engine.assign(vectors)

        assert groups == [[0, 1], [2, 3]]
        assert epsilon == pytest.approx(0.40)

    def test_too_few_clusters_lowers_epsilon(self):
        partner = [0.68, math.sqrt(1 - 0.68 ** 2)]  # cosine distance 0.32
        vectors = np.array([[1, 0], partner])
        engine = TopicClusteringEngine(epsilon=0.35, target_min=2, target_max=5, epsilon_step=0.05)

        groups, epsilon = engine.assign(vectors)

        assert groups == [[0], [1]]
        assert epsilon == pytest.approx(0.30)

    def test_adjustments_are_bounded(self):
        engine = TopicClusteringEngine(epsilon=0.35, target_min=1, target_max=1, max_adjustments=2)

        groups, epsilon = engine.assign(np.eye(3))

        assert len(groups) == 3
        assert epsilon == pytest.approx(0.45)

    def test_empty_snapshot(self):
        assert TopicClusteringEngine().cluster([]) == []

    def test_centroid_is_unit_length(self):
        clusters = TopicClusteringEngine().cluster([analyzed(i, v) for i, v in GROUPED.items()])
        for cluster in clusters:
            assert np.linalg.norm(cluster.centroid) == pytest.approx(1.0)


# ============================================================================
# TEST: REPRESENTATIVE AND LABEL
# ============================================================================

class TestRepresentative:
    """How a cluster is described."""

    def test_highest_quality_represents(self):
        items = [
            analyzed(1, GROUPED[1], quality=5, summary="Minor update."),
            analyzed(2, GROUPED[2], quality=9, summary="Senate passes the budget. More later."),
        ]

        cluster = TopicClusteringEngine().cluster(items)[0]

        assert cluster.representative_id == 2
        assert cluster.label == "Senate passes the budget."

    def test_quality_tie_prefers_longer_summary_then_lower_id(self):
        items = [
            analyzed(3, GROUPED[1], quality=8, summary="Short."),
            analyzed(4, GROUPED[2], quality=8, summary="A much longer summary."),
            analyzed(5, GROUPED[2], quality=8, summary="A much longer summary."),
        ]

        assert TopicClusteringEngine().cluster(items)[0].representative_id == 4

    def test_label_is_capped(self):
        summary = " ".join(f"w{n}" for n in range(30)) + "."
        assert len(first_sentence_label(summary, "fallback").split()) == LABEL_MAX_WORDS

    def test_empty_summary_uses_title(self):
        assert first_sentence_label("  ", "Item 7") == "Item 7"
