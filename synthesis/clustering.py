"""Single-pass grouping of raw items that report the same story."""

from __future__ import annotations

from typing import List, Sequence

from ingestion.models.domain import RawNewsItem

from .similarity import similarity

CLUSTER_THRESHOLD = 0.3

Cluster = List[RawNewsItem]


def _cluster_text(item: RawNewsItem) -> str:
    return f"{item.title} {item.summary}"


def group_similar(items: Sequence[RawNewsItem], threshold: float = CLUSTER_THRESHOLD) -> List[Cluster]:
    """Group items in input order.

    Each cluster is seeded by the first unassigned item and collects every
    later unassigned item whose similarity to the seed exceeds ``threshold``.
    Members are compared with the seed only, so two members of one cluster
    may be dissimilar to each other. Output depends on input order.
    """
    clusters: List[Cluster] = []
    assigned = [False] * len(items)

    for i, seed in enumerate(items):
        if assigned[i]:
            continue
        assigned[i] = True
        cluster: Cluster = [seed]
        seed_text = _cluster_text(seed)

        for j in range(i + 1, len(items)):
            if assigned[j]:
                continue
            if similarity(seed_text, _cluster_text(items[j])) > threshold:
                cluster.append(items[j])
                assigned[j] = True

        clusters.append(cluster)

    return clusters
