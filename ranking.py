"""Importance ranking for digest clusters.

Per-item importance:

    importance = (quality_score / 10) * freshness * engagement

    freshness  = exp(-age_hours / half_life_hours)
                 age is measured against the digest window end, not the wall
                 clock, so re-running a digest gives the same numbers
    engagement = 0.6 * (credibility_score / 10) + 0.4 * min(1, words / target_words)

Cluster importance blends the member aggregate (mean or max) with the best
member so one strong item can lift an otherwise weak cluster:

    cluster = (1 - peak_weight) * aggregate + peak_weight * max(member)

Ordering is total: importance desc, most recent capture desc, then lexical
order of the identifier.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Sequence

from config import Config
from models.digest import AnalyzedItem, TopicCluster

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


@dataclass
class ImportanceRanker:
    """Scores items and orders clusters.

    Example:
        >>> ranker = ImportanceRanker.from_config(config)
        >>> ranked = ranker.rank_clusters(clusters, items_by_id, window_end)
    """

    half_life_hours: float = 24.0
    engagement_target_words: int = 600
    aggregation: str = "mean"
    peak_weight: float = 0.5

    @classmethod
    def from_config(cls, config: Config) -> "ImportanceRanker":
        return cls(
            half_life_hours=config.freshness_half_life_hours,
            aggregation=config.cluster_aggregation,
        )

    def freshness(self, captured_at: datetime, reference: datetime) -> float:
        age_hours = (_aware(reference) - _aware(captured_at)).total_seconds() / 3600
        return math.exp(-max(0.0, age_hours) / self.half_life_hours)

    def engagement(self, credibility_score: float, word_count: int) -> float:
        length_factor = min(1.0, word_count / self.engagement_target_words)
        value = 0.6 * (credibility_score / 10) + 0.4 * length_factor
        return min(1.0, max(0.0, value))

    def item_importance(self, member: AnalyzedItem, reference: datetime) -> float:
        quality = member.analysis.quality_score / 10
        return (
            quality
            * self.freshness(member.item.captured_at, reference)
            * self.engagement(member.analysis.credibility_score, member.item.word_count)
        )

    def cluster_importance(self, scores: Sequence[float]) -> float:
        if not scores:
            return 0.0
        peak = max(scores)
        aggregate = peak if self.aggregation == "max" else sum(scores) / len(scores)
        return (1 - self.peak_weight) * aggregate + self.peak_weight * peak

    def rank_items(self, members: Sequence[AnalyzedItem], reference: datetime) -> list[tuple[AnalyzedItem, float]]:
        """Items with their importance, best first."""
        scored = [(m, self.item_importance(m, reference)) for m in members]
        return sorted(
            scored,
            key=lambda pair: (-pair[1], -_aware(pair[0].item.captured_at).timestamp(), str(pair[0].id)),
        )

    def rank_clusters(
        self,
        clusters: Sequence[TopicCluster],
        items_by_id: Mapping[int, AnalyzedItem],
        reference: datetime,
    ) -> list[TopicCluster]:
        """Score clusters and return copies in rank order.

        Ties on importance go to the cluster with the most recent capture,
        then to the lexically smaller representative id.
        """
        scored = []
        for cluster in clusters:
            members = [items_by_id[i] for i in cluster.member_ids]
            importance = self.cluster_importance([self.item_importance(m, reference) for m in members])
            latest = max(_aware(m.item.captured_at).timestamp() for m in members)
            scored.append((cluster.model_copy(update={"importance": importance}), latest))

        scored.sort(key=lambda pair: (-pair[0].importance, -pair[1], str(pair[0].representative_id)))
        ranked = [cluster for cluster, _ in scored]
        logger.debug(
            "Clusters ranked | order=%s",
            [(c.cluster_id, round(c.importance, 4)) for c in ranked],
        )
        return ranked
