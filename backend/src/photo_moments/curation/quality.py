"""Descriptive cluster quality metrics.

The metrics explain a ranked cluster to downstream consumers and let them
filter weak moments. They never change membership or ranking order.
"""

from typing import List, Optional
import logging

import numpy as np

from ..photo import Cluster, ClusterQualityMetrics, SalientRegion
from ..similarity import compute_similarity, mean_pairwise_similarity, pairwise_similarity
from .ranking import quality_factor

logger = logging.getLogger(__name__)

NEUTRAL_METRIC = 0.5

# (max duration in seconds, min member count, coherence)
TEMPORAL_COHERENCE_TIERS = (
    (60.0, 3, 1.0),
    (300.0, 2, 0.8),
    (3600.0, 0, 0.6),
)
LOOSE_TEMPORAL_COHERENCE = 0.3


def temporal_coherence(cluster: Cluster) -> float:
    """Tiered coherence from the cluster's duration and member count."""
    duration = cluster.duration
    for max_duration, min_members, coherence in TEMPORAL_COHERENCE_TIERS:
        if duration <= max_duration and cluster.size >= min_members:
            return coherence
    return LOOSE_TEMPORAL_COHERENCE


def region_set_overlap(regions1: List[SalientRegion], regions2: List[SalientRegion]) -> float:
    """Symmetric best-match IoU between two sets of salient regions.

    Each region is matched with its best-overlapping counterpart in the other
    set; the result is the mean of those best matches taken from both sides.

    Returns:
        Overlap between 0 and 1 (two empty sets are identical, one empty set shares nothing)
    """
    if not regions1 and not regions2:
        return 1.0
    if not regions1 or not regions2:
        return 0.0

    best1 = [max(r.overlap_iou(other) for other in regions2) for r in regions1]
    best2 = [max(r.overlap_iou(other) for other in regions1) for r in regions2]
    return float((sum(best1) + sum(best2)) / (len(best1) + len(best2)))


class ClusterQualityEngine:
    """Computes ClusterQualityMetrics for ranked clusters.

    Usage:
        engine = ClusterQualityEngine()
        metrics = engine.annotate(cluster)
    """

    def __init__(self, metric: str = 'euclidean'):
        self.metric = metric

    def compute(self, cluster: Cluster) -> ClusterQualityMetrics:
        """Compute the six descriptive metrics for a cluster.

        Args:
            cluster: Non-empty cluster, ideally ranked

        Returns:
            ClusterQualityMetrics with every value in [0, 1]

        Raises:
            ValueError: If the cluster is empty
        """
        if not cluster.members:
            raise ValueError("Cannot compute quality metrics for empty cluster")

        representativeness = self.representativeness(cluster)

        return ClusterQualityMetrics(
            diversity=self.diversity(cluster),
            representativeness=representativeness,
            temporal_coherence=temporal_coherence(cluster),
            visual_coherence=representativeness,
            aesthetic_consistency=self.aesthetic_consistency(cluster),
            saliency_alignment=self.saliency_alignment(cluster)
        )

    def annotate(self, cluster: Cluster) -> ClusterQualityMetrics:
        """Compute metrics and store them on the cluster."""
        cluster.quality_metrics = self.compute(cluster)
        logger.debug(f"Quality metrics for {cluster.id}: {cluster.quality_metrics.to_dict()}")
        return cluster.quality_metrics

    def diversity(self, cluster: Cluster) -> float:
        """1 - average pairwise similarity over members with fingerprints."""
        if cluster.size < 2:
            return NEUTRAL_METRIC

        fingerprints = [p.fingerprint for p in cluster.members]
        indices = [i for i, fp in enumerate(fingerprints) if fp is not None]
        if len(indices) < 2:
            return NEUTRAL_METRIC

        matrix = pairwise_similarity(fingerprints, metric=self.metric)
        mean_similarity = mean_pairwise_similarity(matrix, indices)
        if mean_similarity is None:
            return NEUTRAL_METRIC
        return float(min(1.0, max(0.0, 1.0 - mean_similarity)))

    def representativeness(self, cluster: Cluster) -> float:
        """Average similarity of member fingerprints to the representative fingerprint."""
        reference = cluster.representative_fingerprint
        if reference is None:
            return NEUTRAL_METRIC

        similarities = [
            compute_similarity(p.fingerprint, reference, metric=self.metric)
            for p in cluster.members
            if p.fingerprint is not None
        ]
        if not similarities:
            return NEUTRAL_METRIC
        return float(np.mean(similarities))

    def aesthetic_consistency(self, cluster: Cluster) -> float:
        """1 - min(1, 2 x standard deviation of member quality scores)."""
        qualities = [q for q in (quality_factor(p) for p in cluster.members) if q is not None]
        if len(qualities) < 2:
            return 1.0
        return float(1.0 - min(1.0, 2.0 * np.std(qualities)))

    def saliency_alignment(self, cluster: Cluster) -> float:
        """Average salient-region overlap over pairs of members with saliency data."""
        region_sets = [
            p.quality_scores.salient_regions
            for p in cluster.members
            if p.quality_scores is not None and p.quality_scores.has_saliency
        ]
        if len(region_sets) < 2:
            return NEUTRAL_METRIC

        overlaps = [
            region_set_overlap(region_sets[i], region_sets[j])
            for i in range(len(region_sets))
            for j in range(i + 1, len(region_sets))
        ]
        return float(np.mean(overlaps))


def average_metric(clusters: List[Cluster], name: str) -> Optional[float]:
    """Mean of one quality metric over annotated clusters, None if none are annotated."""
    values = [
        getattr(c.quality_metrics, name)
        for c in clusters
        if c.quality_metrics is not None
    ]
    if not values:
        return None
    return float(np.mean(values))
