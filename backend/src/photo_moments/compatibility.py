"""Cluster membership rules.

A candidate photo joins a cluster when:
1. It was taken within the burst window of any member (overrides everything else), or
2. It passes all four predicates:
   - visual: similar enough to the cluster's representative fingerprint
   - temporal: close enough to the cluster's most recent member (rolling window)
   - spatial: close enough to the cluster's center location
   - subject count: face count compatible with at least one member

Missing data (no fingerprint after retries, no location, no face count) never
splits a cluster. The evaluator is an interface so other strategies can be
plugged into the clustering engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple
import logging

from .criteria import ClusteringCriteria
from .photo import Cluster, Photo
from .similarity import compute_similarity, great_circle_distance

logger = logging.getLogger(__name__)

# Split reasons
VISUAL_DIFFERENCE = 'visual_difference'
TIME_GAP = 'time_gap'
LOCATION_DISTANCE = 'location_distance'
FACE_COUNT_MISMATCH = 'face_count_mismatch'
NO_CLUSTER_FINGERPRINT = 'no_cluster_fingerprint'
EMPTY_CLUSTER = 'empty_cluster'


class FaceBand(str, Enum):
    """Face count ranges used by the subject-count rule."""
    NONE = 'none'        # 0 faces: landscapes, objects
    FEW = 'few'          # 1-2 faces: solo and couple shots
    MANY = 'many'        # 3+ faces: group shots, crowds
    UNKNOWN = 'unknown'  # face analysis missing


# (band, lowest count, highest count or None for unbounded)
FACE_BAND_RANGES: Tuple[Tuple[FaceBand, int, Optional[int]], ...] = (
    (FaceBand.NONE, 0, 0),
    (FaceBand.FEW, 1, 2),
    (FaceBand.MANY, 3, None),
)

# (candidate band, member band) -> compatible
SUBJECT_COUNT_TABLE: Dict[Tuple[FaceBand, FaceBand], bool] = {
    (FaceBand.NONE, FaceBand.NONE): True,
    (FaceBand.NONE, FaceBand.FEW): True,
    (FaceBand.NONE, FaceBand.MANY): True,
    (FaceBand.NONE, FaceBand.UNKNOWN): True,
    (FaceBand.FEW, FaceBand.NONE): True,
    (FaceBand.FEW, FaceBand.FEW): True,
    (FaceBand.FEW, FaceBand.MANY): False,
    (FaceBand.FEW, FaceBand.UNKNOWN): True,
    (FaceBand.MANY, FaceBand.NONE): True,
    (FaceBand.MANY, FaceBand.FEW): False,
    (FaceBand.MANY, FaceBand.MANY): True,
    (FaceBand.MANY, FaceBand.UNKNOWN): True,
    (FaceBand.UNKNOWN, FaceBand.NONE): True,
    (FaceBand.UNKNOWN, FaceBand.FEW): True,
    (FaceBand.UNKNOWN, FaceBand.MANY): True,
    (FaceBand.UNKNOWN, FaceBand.UNKNOWN): True,
}


def face_band(face_count: Optional[int]) -> FaceBand:
    """Map a face count to its band."""
    if face_count is None:
        return FaceBand.UNKNOWN

    for band, low, high in FACE_BAND_RANGES:
        if face_count >= low and (high is None or face_count <= high):
            return band

    raise ValueError(f"Face count must be >= 0, got {face_count}")


def subject_counts_compatible(candidate_count: Optional[int], member_count: Optional[int]) -> bool:
    """Look up the subject-count rule for a candidate and one member."""
    return SUBJECT_COUNT_TABLE[(face_band(candidate_count), face_band(member_count))]


@dataclass
class CompatibilityDecision:
    """Outcome of evaluating a photo against a cluster.

    Attributes:
        compatible: True if the photo may join the cluster
        burst: True if the burst override decided the match
        visual_similarity: Similarity to the representative (None if not computed)
        time_gap: Seconds to the most recent member (or nearest member for bursts)
        distance: Meters to the cluster's center location (None if not computed)
        reasons: Split reasons when not compatible
    """
    compatible: bool
    burst: bool = False
    visual_similarity: Optional[float] = None
    time_gap: Optional[float] = None
    distance: Optional[float] = None
    reasons: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.compatible


class CompatibilityEvaluator:
    """Decides whether a photo belongs to an existing cluster."""

    @property
    def horizon(self) -> Optional[float]:
        """Seconds after a cluster's latest member beyond which it can never match.

        None disables pruning of old clusters.
        """
        return None

    def evaluate(self, photo: Photo, cluster: Cluster) -> CompatibilityDecision:
        raise NotImplementedError


class RuleBasedEvaluator(CompatibilityEvaluator):
    """Burst override followed by the visual, temporal, spatial and subject-count rules."""

    def __init__(self, criteria: Optional[ClusteringCriteria] = None):
        self.criteria = criteria or ClusteringCriteria()

    @property
    def horizon(self) -> Optional[float]:
        # Past both windows neither the burst nor the temporal rule can pass
        return max(self.criteria.burst_window, self.criteria.time_gap_threshold)

    def evaluate(self, photo: Photo, cluster: Cluster) -> CompatibilityDecision:
        """Evaluate a candidate photo against a cluster.

        Args:
            photo: Candidate photo
            cluster: Existing cluster

        Returns:
            CompatibilityDecision with the match result and its evidence
        """
        if not cluster.members:
            return CompatibilityDecision(compatible=False, reasons=[EMPTY_CLUSTER])

        nearest_gap = min(
            abs((photo.timestamp - member.timestamp).total_seconds())
            for member in cluster.members
        )
        if nearest_gap <= self.criteria.burst_window:
            return CompatibilityDecision(compatible=True, burst=True, time_gap=nearest_gap)

        # A fingerprinted photo can't be compared against a cluster without one
        if cluster.representative_fingerprint is None and photo.fingerprint is not None:
            return CompatibilityDecision(compatible=False, reasons=[NO_CLUSTER_FINGERPRINT])

        reasons = []

        visual_similarity = None
        if photo.fingerprint is not None and cluster.representative_fingerprint is not None:
            visual_similarity = compute_similarity(
                photo.fingerprint,
                cluster.representative_fingerprint,
                metric=self.criteria.similarity_metric
            )
            if visual_similarity < self.criteria.visual_similarity_threshold:
                reasons.append(VISUAL_DIFFERENCE)

        most_recent = cluster.most_recent_member
        time_gap = abs((photo.timestamp - most_recent.timestamp).total_seconds())
        if time_gap > self.criteria.time_gap_threshold:
            reasons.append(TIME_GAP)

        distance = None
        if photo.location is not None and cluster.center_location is not None:
            distance = great_circle_distance(photo.location, cluster.center_location)
            if distance > self.criteria.location_radius:
                reasons.append(LOCATION_DISTANCE)

        if not any(subject_counts_compatible(photo.face_count, m.face_count) for m in cluster.members):
            reasons.append(FACE_COUNT_MISMATCH)

        return CompatibilityDecision(
            compatible=not reasons,
            visual_similarity=visual_similarity,
            time_gap=time_gap,
            distance=distance,
            reasons=reasons
        )
