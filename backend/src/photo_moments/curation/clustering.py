"""Incremental moment clustering.

Photos are streamed in timestamp order. Each photo is compared against the
existing clusters in creation order and joins the first compatible one that
still has room; otherwise it starts a new cluster. This is a greedy,
order-dependent assignment, not a globally optimal partition.
"""

from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Any
import logging

import numpy as np

from ..compatibility import CompatibilityEvaluator, RuleBasedEvaluator
from ..criteria import ClusteringCriteria
from ..diagnostics import (
    ANALYSIS_FAILED,
    BURST_OVERRIDE,
    CLUSTER_CREATED,
    CLUSTER_FULL,
    FINGERPRINT_MALFORMED,
    FINGERPRINT_UNAVAILABLE,
    PHOTO_MATCHED,
    PHOTO_SPLIT,
    RUN_CANCELLED,
    DiagnosticEvent,
    DiagnosticSink,
    emit,
)
from ..features import FeatureProvider, fetch_features
from ..photo import Cluster, Photo
from ..similarity import is_valid_fingerprint

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class PhotoState(str, Enum):
    """Processing state of a photo during a clustering run."""
    UNPROCESSED = 'unprocessed'
    FINGERPRINT_PENDING = 'fingerprint_pending'
    EVALUATED = 'evaluated'
    ASSIGNED = 'assigned'


class CurationCancelled(Exception):
    """Raised when the caller's cancellation signal is set during a run.

    Attributes:
        completed: Photos processed before cancellation
        total: Photos in the run
    """

    def __init__(self, completed: int, total: int):
        super().__init__(f"Clustering cancelled after {completed}/{total} photos")
        self.completed = completed
        self.total = total


class ClusteringEngine:
    """Builds moment clusters from a stream of photos.

    Features:
    - Burst, visual, temporal, spatial and subject-count rules (pluggable evaluator)
    - Maximum cluster size, full clusters are skipped
    - Bounded-retry analysis through an optional feature provider
    - Batch processing with cooperative cancellation
    - Decision events sent to a diagnostic sink

    Usage:
        engine = ClusteringEngine(criteria=ClusteringCriteria(max_cluster_size=10))
        clusters = engine.cluster(photos, progress_callback=lambda done, total: None)
    """

    def __init__(
        self,
        criteria: Optional[ClusteringCriteria] = None,
        evaluator: Optional[CompatibilityEvaluator] = None,
        feature_provider: Optional[FeatureProvider] = None,
        sink: Optional[DiagnosticSink] = None
    ):
        """Initialize the clustering engine.

        Args:
            criteria: Clustering thresholds (default: ClusteringCriteria())
            evaluator: Membership strategy (default: RuleBasedEvaluator)
            feature_provider: Source of missing fingerprints and quality scores
            sink: Receiver of decision events (default: forward to logging)
        """
        self.criteria = criteria or ClusteringCriteria()
        self.evaluator = evaluator or RuleBasedEvaluator(self.criteria)
        self.feature_provider = feature_provider
        self.sink = sink

        self.photo_states: Dict[str, PhotoState] = {}
        self.warnings: List[DiagnosticEvent] = []
        self._cluster_counter = 0

    def cluster(
        self,
        photos: Sequence[Photo],
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[Any] = None
    ) -> List[Cluster]:
        """Group photos into moment clusters.

        Args:
            photos: Photos in any order; they are processed by ascending timestamp
            progress_callback: Called with (completed, total) after each photo
            cancel_event: Object with is_set() (e.g. threading.Event), checked
                between photos and batches

        Returns:
            Clusters in creation order

        Raises:
            CurationCancelled: If cancel_event is set before the run completes
        """
        self.photo_states = {photo.id: PhotoState.UNPROCESSED for photo in photos}
        self.warnings = []
        self._cluster_counter = 0

        if not photos:
            logger.info("No photos to cluster")
            return []

        sorted_photos = sorted(photos, key=lambda p: p.timestamp)
        total = len(sorted_photos)
        batch_size = self.criteria.batch_size
        clusters: List[Cluster] = []
        completed = 0

        logger.info(f"Clustering {total} photos in batches of {batch_size}")

        for batch_start in range(0, total, batch_size):
            self._check_cancelled(cancel_event, completed, total)
            batch = sorted_photos[batch_start:batch_start + batch_size]

            for photo in batch:
                self._check_cancelled(cancel_event, completed, total)

                self.prepare(photo)
                self.assign(photo, clusters)

                completed += 1
                if progress_callback:
                    progress_callback(completed, total)

            if self.feature_provider is not None:
                self.feature_provider.release_batch()

        logger.info(
            f"Created {len(clusters)} clusters from {total} photos "
            f"({len(self.warnings)} warnings)"
        )
        return clusters

    def prepare(self, photo: Photo) -> None:
        """Fetch missing analysis for a photo and flag unusable fingerprints."""
        self.photo_states[photo.id] = PhotoState.FINGERPRINT_PENDING

        if self.feature_provider is not None and not photo.is_analyzed:
            try:
                features = fetch_features(
                    self.feature_provider,
                    photo,
                    retries=self.criteria.fingerprint_retries,
                    backoff=self.criteria.retry_backoff
                )
                if features is not None:
                    photo.apply_features(features)
            except Exception as e:
                logger.error(f"Error analyzing {photo.id}: {e}")
                self._emit(ANALYSIS_FAILED, logging.WARNING, photo_id=photo.id, error=str(e))

        if photo.fingerprint is None:
            self._emit(
                FINGERPRINT_UNAVAILABLE,
                logging.WARNING,
                photo_id=photo.id,
                attempts=self.criteria.fingerprint_retries + 1
            )
        elif not is_valid_fingerprint(photo.fingerprint):
            self._emit(
                FINGERPRINT_MALFORMED,
                logging.WARNING,
                photo_id=photo.id,
                shape=tuple(np.shape(photo.fingerprint))
            )

        self.photo_states[photo.id] = PhotoState.EVALUATED

    def assign(self, photo: Photo, clusters: List[Cluster]) -> Cluster:
        """Place a photo into the first compatible cluster with room, or a new one.

        Args:
            photo: Photo to place
            clusters: Existing clusters in creation order (appended to if needed)

        Returns:
            The cluster the photo was added to
        """
        horizon = self.evaluator.horizon

        for cluster in clusters:
            if horizon is not None and cluster.time_range is not None:
                # Closed clusters can never match a later photo
                if (photo.timestamp - cluster.time_range[1]).total_seconds() > horizon:
                    continue

            decision = self.evaluator.evaluate(photo, cluster)

            if not decision:
                self._emit(
                    PHOTO_SPLIT,
                    photo_id=photo.id,
                    cluster_id=cluster.id,
                    reasons=decision.reasons,
                    visual_similarity=decision.visual_similarity,
                    time_gap=decision.time_gap,
                    distance=decision.distance
                )
                continue

            if cluster.size >= self.criteria.max_cluster_size:
                self._emit(CLUSTER_FULL, photo_id=photo.id, cluster_id=cluster.id, size=cluster.size)
                continue

            cluster.add(photo)
            self._maybe_refresh_representative(cluster)
            self._emit(
                BURST_OVERRIDE if decision.burst else PHOTO_MATCHED,
                photo_id=photo.id,
                cluster_id=cluster.id,
                visual_similarity=decision.visual_similarity,
                time_gap=decision.time_gap
            )
            self.photo_states[photo.id] = PhotoState.ASSIGNED
            return cluster

        new_cluster = Cluster(id=self._next_cluster_id())
        new_cluster.add(photo)
        clusters.append(new_cluster)
        self._emit(CLUSTER_CREATED, photo_id=photo.id, cluster_id=new_cluster.id)
        self.photo_states[photo.id] = PhotoState.ASSIGNED
        return new_cluster

    def _maybe_refresh_representative(self, cluster: Cluster):
        interval = self.criteria.representative_refresh_interval
        if interval <= 0 or cluster.size % interval != 0:
            return

        centroid = centroid_fingerprint(cluster)
        if centroid is not None:
            cluster.representative_fingerprint = centroid
            logger.debug(f"Refreshed representative fingerprint of {cluster.id} at size {cluster.size}")

    def _next_cluster_id(self) -> str:
        self._cluster_counter += 1
        return f"cluster-{self._cluster_counter:04d}"

    def _check_cancelled(self, cancel_event: Optional[Any], completed: int, total: int):
        if cancel_event is not None and cancel_event.is_set():
            self._emit(RUN_CANCELLED, logging.WARNING, completed=completed, total=total)
            raise CurationCancelled(completed, total)

    def _emit(self, kind: str, level: int = logging.DEBUG, **kwargs) -> DiagnosticEvent:
        event = emit(self.sink, kind, level, **kwargs)
        if event.is_warning:
            self.warnings.append(event)
        return event

    def __repr__(self) -> str:
        return (
            f"ClusteringEngine(threshold={self.criteria.visual_similarity_threshold}, "
            f"time_gap={self.criteria.time_gap_threshold}s, "
            f"max_size={self.criteria.max_cluster_size})"
        )


def centroid_fingerprint(cluster: Cluster) -> Optional[np.ndarray]:
    """Mean of the unit-normalized fingerprints matching the representative's dimension.

    Returns:
        Centroid vector, None if the cluster has no usable fingerprints
    """
    reference = cluster.representative_fingerprint
    vectors = [
        p.fingerprint for p in cluster.members
        if is_valid_fingerprint(p.fingerprint)
        and (reference is None or p.fingerprint.shape == reference.shape)
    ]
    if not vectors:
        return None

    X = np.stack(vectors).astype(np.float64)
    X = X / np.linalg.norm(X, axis=1, keepdims=True)
    centroid = X.mean(axis=0)

    if not np.linalg.norm(centroid) > 0:
        return None
    return centroid.astype(np.float32)


def compute_clustering_statistics(clusters: List[Cluster]) -> Dict[str, Any]:
    """Compute statistics about moment clusters.

    Args:
        clusters: Clusters, ranked or not

    Returns:
        Dictionary with statistics
    """
    if not clusters:
        return {
            'n_clusters': 0,
            'n_photos': 0,
            'avg_cluster_size': 0.0,
            'singleton_clusters': 0,
            'largest_cluster_size': 0,
            'important_moments': 0,
            'important_moments_percentage': 0.0,
            'confidence_distribution': {'high': 0, 'medium': 0, 'low': 0}
        }

    cluster_sizes = [c.size for c in clusters]
    ranked = [c for c in clusters if c.is_ranked]
    important = len([c for c in clusters if c.is_important_moment])

    return {
        'n_clusters': len(clusters),
        'n_photos': sum(cluster_sizes),
        'avg_cluster_size': sum(cluster_sizes) / len(cluster_sizes),
        'singleton_clusters': len([s for s in cluster_sizes if s == 1]),
        'largest_cluster_size': max(cluster_sizes),
        'important_moments': important,
        'important_moments_percentage': important / len(clusters) * 100,
        'confidence_distribution': {
            'high': len([c for c in ranked if c.ranking_confidence > 0.8]),
            'medium': len([c for c in ranked if 0.6 < c.ranking_confidence <= 0.8]),
            'low': len([c for c in ranked if c.ranking_confidence <= 0.6])
        }
    }


def clusters_with_min_photos(clusters: List[Cluster], min_photos: int) -> List[Cluster]:
    """Keep clusters with at least min_photos members."""
    return [c for c in clusters if c.size >= min_photos]


def filter_confident_clusters(clusters: List[Cluster], min_confidence: float) -> List[Cluster]:
    """Keep ranked clusters whose ranking confidence reaches min_confidence."""
    return [c for c in clusters if c.is_ranked and c.ranking_confidence >= min_confidence]
