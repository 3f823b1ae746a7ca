"""Moment curation pipeline.

This module provides the MomentCurator class, which runs the engines in
order: feature provider -> clustering -> ranking -> cluster quality ->
optional sub-clustering.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence
import logging
import time

from tqdm import tqdm

from .criteria import ClusteringCriteria, RankingWeights
from .curation import (
    ClusterQualityEngine,
    ClusteringEngine,
    RankingEngine,
    SubClusterEngine,
)
from .curation.quality import average_metric
from .diagnostics import FINGERPRINT_MALFORMED, FINGERPRINT_UNAVAILABLE, DiagnosticSink
from .features import FeatureProvider
from .photo import Cluster, Photo

logger = logging.getLogger(__name__)


@dataclass
class CurationStats:
    """Statistics from a curation run.

    Attributes:
        total_photos: Photos in the run
        total_clusters: Clusters produced
        singleton_clusters: Clusters with a single photo
        important_moments: Clusters with three or more photos
        sub_clusters: Sub-clusters found (0 unless sub-clustering ran)
        fingerprint_failures: Photos clustered without a usable fingerprint
        warnings: Warning-level diagnostic descriptions
        average_confidence: Mean ranking confidence over clusters
        average_diversity: Mean diversity over clusters
        clustering_time: Seconds spent clustering
        ranking_time: Seconds spent ranking and annotating
        processing_time: Total seconds for the run
    """
    total_photos: int = 0
    total_clusters: int = 0
    singleton_clusters: int = 0
    important_moments: int = 0
    sub_clusters: int = 0
    fingerprint_failures: int = 0
    warnings: List[str] = field(default_factory=list)
    average_confidence: float = 0.0
    average_diversity: float = 0.0
    clustering_time: float = 0.0
    ranking_time: float = 0.0
    processing_time: float = 0.0

    @property
    def average_cluster_size(self) -> float:
        """Average photos per cluster."""
        return self.total_photos / self.total_clusters if self.total_clusters > 0 else 0.0

    @property
    def photos_per_second(self) -> float:
        """Processing speed in photos/second."""
        return self.total_photos / self.processing_time if self.processing_time > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            'total_photos': self.total_photos,
            'total_clusters': self.total_clusters,
            'singleton_clusters': self.singleton_clusters,
            'important_moments': self.important_moments,
            'sub_clusters': self.sub_clusters,
            'fingerprint_failures': self.fingerprint_failures,
            'warnings': len(self.warnings),
            'average_cluster_size': self.average_cluster_size,
            'average_confidence': self.average_confidence,
            'average_diversity': self.average_diversity,
            'clustering_time': self.clustering_time,
            'ranking_time': self.ranking_time,
            'processing_time': self.processing_time,
            'photos_per_second': self.photos_per_second,
        }

    def __repr__(self) -> str:
        return (
            f"CurationStats(photos={self.total_photos}, "
            f"clusters={self.total_clusters}, "
            f"important={self.important_moments}, "
            f"warnings={len(self.warnings)}, "
            f"time={self.processing_time:.2f}s)"
        )


class MomentCurator:
    """Runs the full clustering and ranking pipeline over a photo set.

    Features:
    - Greedy moment clustering with bounded-retry feature analysis
    - Six-factor ranking and representative selection
    - Descriptive cluster quality metrics
    - Optional near-duplicate and pose-group pass
    - Progress tracking with tqdm

    Usage:
        curator = MomentCurator(criteria=ClusteringCriteria(max_cluster_size=10))
        clusters = curator.curate(photos)
        print(curator.get_stats())
    """

    def __init__(
        self,
        criteria: Optional[ClusteringCriteria] = None,
        weights: Optional[RankingWeights] = None,
        feature_provider: Optional[FeatureProvider] = None,
        sink: Optional[DiagnosticSink] = None,
        show_progress: bool = True
    ):
        """Initialize the curator.

        Args:
            criteria: Clustering thresholds (default: ClusteringCriteria())
            weights: Ranking factor weights (default: RankingWeights())
            feature_provider: Source of missing fingerprints and quality scores
            sink: Receiver of decision events (default: forward to logging)
            show_progress: Show a tqdm progress bar while clustering
        """
        self.criteria = criteria or ClusteringCriteria()
        self.weights = weights or RankingWeights()
        self.show_progress = show_progress

        metric = self.criteria.similarity_metric
        self.clustering = ClusteringEngine(self.criteria, feature_provider=feature_provider, sink=sink)
        self.ranking = RankingEngine(self.weights, metric=metric, sink=sink)
        self.quality = ClusterQualityEngine(metric=metric)
        self.sub_clustering = SubClusterEngine(self.criteria, sink=sink)

        self._stats = CurationStats()

        logger.info(
            f"MomentCurator initialized: threshold={self.criteria.visual_similarity_threshold}, "
            f"sub_clustering={self.criteria.enable_sub_clustering}"
        )

    def curate(
        self,
        photos: Sequence[Photo],
        progress_callback: Optional[Callable[[int, int], None]] = None,
        cancel_event: Optional[Any] = None
    ) -> List[Cluster]:
        """Cluster, rank and annotate photos.

        Args:
            photos: Photos to curate
            progress_callback: Called with (completed, total) after each photo
            cancel_event: Object with is_set(), checked between photos and batches

        Returns:
            Fully annotated clusters in creation order

        Raises:
            CurationCancelled: If cancel_event is set during clustering
        """
        start_time = time.time()
        self._stats = CurationStats(total_photos=len(photos))

        with tqdm(
            total=len(photos),
            desc="Clustering photos",
            unit="photo",
            disable=not self.show_progress
        ) as pbar:
            def on_progress(completed: int, total: int):
                pbar.update(1)
                if progress_callback:
                    progress_callback(completed, total)

            clusters = self.clustering.cluster(
                photos,
                progress_callback=on_progress,
                cancel_event=cancel_event
            )

        clustered_time = time.time()
        self._stats.clustering_time = clustered_time - start_time

        for cluster in clusters:
            self.ranking.rank(cluster)
            self.quality.annotate(cluster)

        if self.criteria.enable_sub_clustering:
            self.sub_clustering.partition_all(clusters)

        self._stats.ranking_time = time.time() - clustered_time
        self._stats.processing_time = time.time() - start_time
        self._update_stats(clusters)

        logger.info(
            f"Curation complete: {self._stats.total_clusters} moments from "
            f"{self._stats.total_photos} photos in {self._stats.processing_time:.2f}s"
        )
        return clusters

    def _update_stats(self, clusters: List[Cluster]):
        stats = self._stats
        stats.total_clusters = len(clusters)
        stats.singleton_clusters = len([c for c in clusters if c.size == 1])
        stats.important_moments = len([c for c in clusters if c.is_important_moment])
        stats.sub_clusters = sum(len(c.sub_clusters) for c in clusters)

        warnings = self.clustering.warnings
        stats.warnings = [event.describe() for event in warnings]
        stats.fingerprint_failures = len([
            e for e in warnings if e.kind in (FINGERPRINT_UNAVAILABLE, FINGERPRINT_MALFORMED)
        ])

        if clusters:
            stats.average_confidence = sum(c.ranking_confidence for c in clusters) / len(clusters)
            stats.average_diversity = average_metric(clusters, 'diversity') or 0.0

    def get_stats(self) -> CurationStats:
        """Get statistics from the last run."""
        return self._stats
