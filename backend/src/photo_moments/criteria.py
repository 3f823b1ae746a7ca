"""Clustering criteria and ranking weights.

Both are validated on construction so a bad configuration fails the run
before any photo is processed.
"""

from dataclasses import dataclass, asdict
from numbers import Real
from typing import Dict, Any

SIMILARITY_METRICS = ('euclidean', 'cosine')


class ConfigurationError(ValueError):
    """Raised when clustering criteria or ranking weights are invalid."""
    pass


INT_FIELDS = ('max_cluster_size', 'batch_size', 'fingerprint_retries', 'representative_refresh_interval')
REAL_FIELDS = (
    'visual_similarity_threshold', 'time_gap_threshold', 'location_radius', 'burst_window',
    'retry_backoff', 'near_duplicate_threshold', 'pose_group_threshold', 'sub_cluster_pause'
)


def _check_types(config: Any, int_fields=(), real_fields=(), bool_fields=()):
    """Raise ConfigurationError for values of the wrong type. Booleans and NaN are not numbers here."""
    for name in int_fields:
        value = getattr(config, name)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"{name} must be an integer, got {value!r}")

    for name in real_fields:
        value = getattr(config, name)
        if isinstance(value, bool) or not isinstance(value, Real) or value != value:
            raise ConfigurationError(f"{name} must be a number, got {value!r}")

    for name in bool_fields:
        value = getattr(config, name)
        if not isinstance(value, bool):
            raise ConfigurationError(f"{name} must be true or false, got {value!r}")


@dataclass(frozen=True)
class ClusteringCriteria:
    """Configuration for grouping photos into moments.

    Attributes:
        visual_similarity_threshold: Minimum fingerprint similarity to the
            cluster's representative (0-1]
        time_gap_threshold: Maximum seconds since the cluster's most recent member
        location_radius: Maximum meters from the cluster's center location
        max_cluster_size: Maximum number of members per cluster
        burst_window: Seconds within which photos always share a cluster
        fingerprint_retries: Extra feature provider attempts after a failure
        retry_backoff: Seconds to wait between feature provider attempts
        batch_size: Photos analyzed per batch
        similarity_metric: 'euclidean' or 'cosine'
        representative_refresh_interval: Recompute the representative
            fingerprint every N additions (0 keeps the first member's)
        enable_sub_clustering: Run the sub-cluster post-pass
        near_duplicate_threshold: Similarity for near-duplicate sub-clusters
        pose_group_threshold: Similarity for pose-group sub-clusters
        sub_cluster_pause: Seconds to pause between group leaders in the
            sub-cluster pass (0 disables the rate limit)
    """
    visual_similarity_threshold: float = 0.50
    time_gap_threshold: float = 30.0
    location_radius: float = 50.0
    max_cluster_size: int = 20
    burst_window: float = 10.0
    fingerprint_retries: int = 2
    retry_backoff: float = 0.1
    batch_size: int = 5
    similarity_metric: str = 'euclidean'
    representative_refresh_interval: int = 0
    enable_sub_clustering: bool = False
    near_duplicate_threshold: float = 0.90
    pose_group_threshold: float = 0.85
    sub_cluster_pause: float = 0.0

    def __post_init__(self):
        """Reject mistyped values and out-of-range settings."""
        _check_types(self, INT_FIELDS, REAL_FIELDS, ('enable_sub_clustering',))

        for name in ('visual_similarity_threshold', 'near_duplicate_threshold', 'pose_group_threshold'):
            value = getattr(self, name)
            if not 0.0 < value <= 1.0:
                raise ConfigurationError(f"{name} must be in (0, 1], got {value}")

        for name in ('time_gap_threshold', 'location_radius', 'burst_window'):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")

        if self.max_cluster_size < 1:
            raise ConfigurationError(f"max_cluster_size must be >= 1, got {self.max_cluster_size}")

        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {self.batch_size}")

        if self.fingerprint_retries < 0:
            raise ConfigurationError(f"fingerprint_retries must be >= 0, got {self.fingerprint_retries}")

        if self.retry_backoff < 0 or self.sub_cluster_pause < 0:
            raise ConfigurationError("retry_backoff and sub_cluster_pause must be >= 0")

        if self.representative_refresh_interval < 0:
            raise ConfigurationError(
                f"representative_refresh_interval must be >= 0, got {self.representative_refresh_interval}"
            )

        if self.similarity_metric not in SIMILARITY_METRICS:
            raise ConfigurationError(
                f"Unknown similarity metric: {self.similarity_metric}. Use 'euclidean' or 'cosine'"
            )

        if self.near_duplicate_threshold < self.pose_group_threshold:
            raise ConfigurationError("near_duplicate_threshold must be >= pose_group_threshold")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RankingWeights:
    """Weights of the six ranking factors. Must sum to 1."""
    quality: float = 0.30
    cluster_relevance: float = 0.25
    uniqueness: float = 0.20
    temporal_optimality: float = 0.10
    saliency: float = 0.10
    aesthetic: float = 0.05

    def __post_init__(self):
        values = asdict(self)
        _check_types(self, real_fields=tuple(values))
        negative = [name for name, value in values.items() if value < 0]
        if negative:
            raise ConfigurationError(f"Ranking weights must be >= 0: {', '.join(negative)}")

        total = sum(values.values())
        if abs(total - 1.0) > 0.01:
            raise ConfigurationError(f"Ranking weights must sum to 1.0, got {total:.3f}")

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @property
    def description(self) -> str:
        if self.quality > 0.5:
            return "Prioritizing photo quality"
        if self.uniqueness > 0.4:
            return "Prioritizing distinct shots"
        return "Using balanced quality assessment"
