"""Topic clustering for digest generation.

Groups analyzed items by embedding similarity with DBSCAN over cosine
distance (1 - cosine similarity):

    - Core point: at least `min_points` items (itself included) within `epsilon`
    - Border points join the cluster of the core point that reaches them
    - Noise points become singleton clusters, so no item is dropped

The number of clusters is softly bounded to [target_min, target_max]. When
the count falls outside the band, epsilon is moved by `epsilon_step` (up
when there are too many clusters, down when there are too few) for at most
`max_adjustments` rounds, stopping as soon as the count is in band. If the
band is never reached the last result is used.

Determinism:
    Items are sorted by id, DBSCAN labels are stable for a fixed row order and
    cluster ids follow the position of each cluster's first member. The same
    vectors and settings always give the same membership and labels.
"""

import logging
import re
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from sklearn.cluster import DBSCAN

from config import Config
from models.digest import AnalyzedItem, TopicCluster

logger = logging.getLogger(__name__)

NOISE = -1
EPSILON_MIN = 0.01
EPSILON_MAX = 1.99
LABEL_MAX_WORDS = 12

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


def unit_vectors(vectors: np.ndarray) -> np.ndarray:
    """Scale rows to unit length; zero rows stay zero."""
    vectors = np.asarray(vectors, dtype=np.float64)
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return vectors / norms


def cosine_distance_matrix(vectors: np.ndarray) -> np.ndarray:
    """Pairwise 1 - cosine similarity, in [0, 2]."""
    unit = unit_vectors(vectors)
    similarity = np.clip(unit @ unit.T, -1.0, 1.0)
    # sklearn rejects negative precomputed distances from rounding
    return np.clip(1.0 - similarity, 0.0, 2.0)


def dbscan(distances: np.ndarray, epsilon: float, min_points: int) -> list[int]:
    """DBSCAN over a precomputed cosine distance matrix.

    Returns:
        One label per row: a cluster number, or NOISE
    """
    model = DBSCAN(eps=epsilon, min_samples=min_points, metric="precomputed")
    return [int(label) for label in model.fit_predict(distances)]


def group_labels(labels: list[int]) -> list[list[int]]:
    """Turn labels into index groups; noise points become singletons.

    Groups are ordered by their first (lowest) index.
    """
    groups: dict[int, list[int]] = {}
    singletons: list[list[int]] = []
    for index, label in enumerate(labels):
        if label == NOISE:
            singletons.append([index])
        else:
            groups.setdefault(label, []).append(index)
    return sorted([*groups.values(), *singletons], key=lambda members: members[0])


def first_sentence_label(summary: str, fallback: str) -> str:
    """First sentence of a summary, at most LABEL_MAX_WORDS words."""
    text = summary.strip()
    if not text:
        return fallback.strip()
    sentence = _SENTENCE_END.split(text, maxsplit=1)[0]
    words = sentence.split()
    if len(words) > LABEL_MAX_WORDS:
        return " ".join(words[:LABEL_MAX_WORDS])
    return sentence or fallback.strip()


def pick_representative(members: Sequence[AnalyzedItem]) -> AnalyzedItem:
    """Highest quality, then longest executive summary, then lowest id."""
    return min(
        members,
        key=lambda m: (-m.analysis.quality_score, -len(m.analysis.executive_summary), m.id),
    )


@dataclass
class TopicClusteringEngine:
    """DBSCAN topic clustering with a soft cluster-count band.

    Example:
        >>> engine = TopicClusteringEngine.from_config(config)
        >>> clusters = engine.cluster(items)
    """

    epsilon: float = 0.35
    min_points: int = 2
    target_min: int = 3
    target_max: int = 5
    max_adjustments: int = 4
    epsilon_step: float = 0.05

    @classmethod
    def from_config(cls, config: Config) -> "TopicClusteringEngine":
        return cls(
            epsilon=config.cluster_epsilon,
            min_points=config.cluster_min_points,
            target_min=config.cluster_target_min,
            target_max=config.cluster_target_max,
            max_adjustments=config.cluster_max_adjustments,
            epsilon_step=config.cluster_epsilon_step,
        )

    def _in_band(self, count: int) -> bool:
        return self.target_min <= count <= self.target_max

    def assign(self, vectors: np.ndarray) -> tuple[list[list[int]], float]:
        """Cluster row vectors, adjusting epsilon toward the target band.

        Returns:
            (index groups ordered by first member, epsilon used)
        """
        n = vectors.shape[0]
        if n == 0:
            return [], self.epsilon

        distances = cosine_distance_matrix(vectors)
        epsilon = min(max(self.epsilon, EPSILON_MIN), EPSILON_MAX)
        groups = group_labels(dbscan(distances, epsilon, self.min_points))

        for round_number in range(1, self.max_adjustments + 1):
            count = len(groups)
            if self._in_band(count):
                break
            if count < self.target_min:
                if count == n:
                    break  # already all singletons
                epsilon = max(EPSILON_MIN, epsilon - self.epsilon_step)
            else:
                epsilon = min(EPSILON_MAX, epsilon + self.epsilon_step)
            groups = group_labels(dbscan(distances, epsilon, self.min_points))
            logger.debug(
                "Epsilon adjusted | round=%d epsilon=%.3f clusters=%d->%d",
                round_number, epsilon, count, len(groups),
            )

        return groups, epsilon

    def cluster(self, items: Sequence[AnalyzedItem]) -> list[TopicCluster]:
        """Cluster analyzed items.

        Args:
            items: Snapshot of analyzed items (any order; sorted by id here)

        Returns:
            Clusters ordered by first member id, importance left at 0
        """
        ordered = sorted(items, key=lambda m: m.id)
        if not ordered:
            return []

        dim = max(len(m.embedding) for m in ordered)
        vectors = np.zeros((len(ordered), max(dim, 1)), dtype=np.float64)
        for row, member in enumerate(ordered):
            if member.embedding:
                vectors[row, : len(member.embedding)] = member.embedding

        groups, epsilon = self.assign(vectors)
        unit = unit_vectors(vectors)

        clusters = []
        for cluster_id, indexes in enumerate(groups):
            members = [ordered[i] for i in indexes]
            centroid = unit[indexes].mean(axis=0)
            norm = np.linalg.norm(centroid)
            if norm > 0:
                centroid = centroid / norm
            representative = pick_representative(members)
            clusters.append(TopicCluster(
                cluster_id=cluster_id,
                member_ids=[m.id for m in members],
                centroid=[float(x) for x in centroid],
                label=first_sentence_label(representative.analysis.executive_summary, representative.item.title),
                representative_id=representative.id,
            ))

        logger.info(
            "Clustering complete | items=%d clusters=%d epsilon=%.3f sizes=%s",
            len(ordered),
            len(clusters),
            epsilon,
            [c.size for c in clusters],
        )
        return clusters
