"""Digest assembly.

Turns ranked clusters into a DigestDocument and its markdown rendering.
Assembly is a pure function of its inputs: no I/O, no clock reads.

Selection:
    Clusters are taken in rank order up to `max_clusters`. A cluster whose
    centroid cosine similarity to an already chosen cluster is at or above
    `diversity_threshold` belongs to that topic group and is deferred.
    Deferred clusters fill the remaining slots, in rank order, only when
    there are fewer distinct groups than `max_clusters`.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Mapping, Sequence

import numpy as np

from config import Config
from models.digest import AnalyzedItem, ClusterSummary, DigestDocument, DigestMember, TopicCluster
from ranking import ImportanceRanker

logger = logging.getLogger(__name__)


def centroid_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.size == 0 or vb.size == 0 or va.shape != vb.shape:
        return 0.0
    na, nb = np.linalg.norm(va), np.linalg.norm(vb)
    if na == 0 or nb == 0:
        return 0.0
    return float(np.dot(va, vb) / (na * nb))


def select_diverse(
    ranked: Sequence[TopicCluster],
    max_clusters: int,
    diversity_threshold: float,
) -> list[TopicCluster]:
    """Pick up to max_clusters clusters, one per topic group first.

    Returns:
        Selected clusters in rank order
    """
    chosen: list[int] = []
    deferred: list[int] = []
    for index, cluster in enumerate(ranked):
        if len(chosen) >= max_clusters:
            break
        if any(
            centroid_similarity(cluster.centroid, ranked[c].centroid) >= diversity_threshold
            for c in chosen
        ):
            deferred.append(index)
        else:
            chosen.append(index)

    if len(chosen) < max_clusters and deferred:
        fill = deferred[: max_clusters - len(chosen)]
        chosen.extend(fill)
        logger.debug("Deferred clusters used | count=%d deferred=%d", len(fill), len(deferred))

    return [ranked[i] for i in sorted(chosen)]


def render_digest_markdown(document: DigestDocument) -> str:
    """Render a DigestDocument into a human-readable markdown file."""
    window = (
        f"{document.window_start.strftime('%Y-%m-%d %H:%M')} to "
        f"{document.window_end.strftime('%Y-%m-%d %H:%M')} UTC"
    )
    lines = [
        f"# Daily Digest ({document.digest_date.isoformat()})",
        "",
        f"**Window:** {window}",
        f"**Items captured:** {document.content_items_count}",
        f"**Political items:** {document.political_items_count}",
    ]

    if not document.sections:
        lines.extend(["", "No political content was analyzed in this window."])
        return "\n".join(lines)

    for position, section in enumerate(document.sections, 1):
        lines.extend(["", f"## {position}. {section.label}", ""])
        if section.summary:
            lines.extend([section.summary, ""])
        for member in section.members:
            line = f"- [{member.title}]({member.url})"
            details = [f"quality {member.quality_score}/10", f"bias {member.bias_label}"]
            if member.source_domain:
                details.insert(0, member.source_domain)
            line += f" ({', '.join(details)})"
            lines.append(line)

    return "\n".join(lines)


@dataclass
class DigestAssembler:
    """Builds the digest document from ranked clusters.

    Example:
        >>> assembler = DigestAssembler.from_config(config)
        >>> document = assembler.assemble(day, start, end, ranked, items_by_id, total)
    """

    max_clusters: int = 5
    diversity_threshold: float = 0.85
    ranker: ImportanceRanker = field(default_factory=ImportanceRanker)

    @classmethod
    def from_config(cls, config: Config, ranker: ImportanceRanker | None = None) -> "DigestAssembler":
        return cls(
            max_clusters=config.digest_max_clusters,
            diversity_threshold=config.diversity_threshold,
            ranker=ranker or ImportanceRanker.from_config(config),
        )

    def _section(
        self,
        cluster: TopicCluster,
        items_by_id: Mapping[int, AnalyzedItem],
        reference: datetime,
    ) -> ClusterSummary:
        members = [items_by_id[i] for i in cluster.member_ids]
        representative = items_by_id[cluster.representative_id]
        return ClusterSummary(
            cluster_id=cluster.cluster_id,
            label=cluster.label,
            summary=representative.analysis.executive_summary,
            representative_id=cluster.representative_id,
            importance=cluster.importance,
            members=[
                DigestMember(
                    content_id=m.id,
                    title=m.item.title,
                    url=m.item.url,
                    source_domain=m.item.source_domain,
                    quality_score=m.analysis.quality_score,
                    bias_label=m.analysis.bias_label.value,
                    importance=score,
                )
                for m, score in self.ranker.rank_items(members, reference)
            ],
        )

    def assemble(
        self,
        digest_date: date,
        window_start: datetime,
        window_end: datetime,
        ranked: Sequence[TopicCluster],
        items_by_id: Mapping[int, AnalyzedItem],
        content_items_count: int,
    ) -> DigestDocument:
        """Select clusters and build the document.

        Args:
            digest_date: Date the digest is for
            window_start: Start of the content window (inclusive)
            window_end: End of the content window (exclusive)
            ranked: Clusters in rank order
            items_by_id: Analyzed items referenced by the clusters
            content_items_count: All items captured in the window

        Returns:
            DigestDocument with sections and markdown
        """
        selected = select_diverse(ranked, self.max_clusters, self.diversity_threshold)
        sections = [self._section(c, items_by_id, window_end) for c in selected]
        document = DigestDocument(
            digest_date=digest_date,
            window_start=window_start,
            window_end=window_end,
            content_items_count=content_items_count,
            political_items_count=sum(len(s.members) for s in sections),
            sections=sections,
        )
        document.markdown = render_digest_markdown(document)
        return document
