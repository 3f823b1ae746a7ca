"""Photo and cluster data classes for the moment clustering system.

This module defines the core data structures passed between the clustering,
ranking and cluster quality engines: photos with their precomputed analysis,
the clusters built from them, and the derived per-photo and per-cluster scores.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple
import logging
import math

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Location:
    """Capture location in decimal degrees.

    Attributes:
        latitude: Latitude (-90 to 90)
        longitude: Longitude (-180 to 180)
    """
    latitude: float
    longitude: float

    def __post_init__(self):
        """Validate coordinate ranges."""
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"Latitude must be between -90 and 90, got {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"Longitude must be between -180 and 180, got {self.longitude}")

    def distance_to(self, other: 'Location') -> float:
        """Great-circle distance to another location in meters."""
        from .similarity import great_circle_distance
        return great_circle_distance(self, other)

    def to_dict(self) -> Dict[str, float]:
        return {'latitude': self.latitude, 'longitude': self.longitude}

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> 'Location':
        return cls(latitude=data['latitude'], longitude=data['longitude'])


def spherical_centroid(locations: List[Location]) -> Location:
    """Mean of locations taken on the unit sphere.

    Averaging degrees directly breaks across the antimeridian (179.9 and
    -179.9 would average to 0), so the mean is taken over 3-D unit vectors.

    Args:
        locations: Non-empty list of locations

    Returns:
        Centroid location (the first location if the vectors cancel out)
    """
    if len(locations) == 1:
        return locations[0]

    lat = np.radians([loc.latitude for loc in locations])
    lon = np.radians([loc.longitude for loc in locations])

    x = float(np.mean(np.cos(lat) * np.cos(lon)))
    y = float(np.mean(np.cos(lat) * np.sin(lon)))
    z = float(np.mean(np.sin(lat)))

    norm = math.sqrt(x * x + y * y + z * z)
    if norm < 1e-12:
        return locations[0]

    latitude = math.degrees(math.asin(max(-1.0, min(1.0, z / norm))))
    longitude = math.degrees(math.atan2(y, x))
    return Location(latitude=latitude, longitude=longitude)


@dataclass
class SalientRegion:
    """Visually important sub-area of a photo in normalized [0, 1] coordinates.

    Attributes:
        x1: Left x coordinate
        y1: Top y coordinate
        x2: Right x coordinate
        y2: Bottom y coordinate
    """
    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def to_dict(self) -> Dict[str, float]:
        return {'x1': self.x1, 'y1': self.y1, 'x2': self.x2, 'y2': self.y2}

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> 'SalientRegion':
        return cls(x1=data['x1'], y1=data['y1'], x2=data['x2'], y2=data['y2'])

    def overlap_iou(self, other: 'SalientRegion') -> float:
        """Calculate Intersection over Union (IoU) with another region.

        Args:
            other: Another SalientRegion

        Returns:
            IoU score between 0 and 1
        """
        x1_inter = max(self.x1, other.x1)
        y1_inter = max(self.y1, other.y1)
        x2_inter = min(self.x2, other.x2)
        y2_inter = min(self.y2, other.y2)

        if x2_inter < x1_inter or y2_inter < y1_inter:
            return 0.0

        intersection = (x2_inter - x1_inter) * (y2_inter - y1_inter)
        union = self.area + other.area - intersection

        return intersection / union if union > 0 else 0.0


@dataclass
class QualityScores:
    """Precomputed quality signals for a photo.

    Attributes:
        technical: General technical quality (0-1)
        face_qualities: Per-face quality scores (0-1), empty if no faces analyzed
        aesthetic: Aesthetic sub-score in its native range (-1 to 1)
        composition: Composition sub-score (0-1)
        is_utility: True for screenshots, document scans and similar photos
        salient_regions: Salient regions, None if saliency was not analyzed
    """
    technical: Optional[float] = None
    face_qualities: List[float] = field(default_factory=list)
    aesthetic: Optional[float] = None
    composition: Optional[float] = None
    is_utility: bool = False
    salient_regions: Optional[List[SalientRegion]] = None

    def __post_init__(self):
        """Validate score ranges."""
        for name in ('technical', 'composition'):
            value = getattr(self, name)
            if value is not None and not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1, got {value}")

        if self.aesthetic is not None and not -1.0 <= self.aesthetic <= 1.0:
            raise ValueError(f"aesthetic must be between -1 and 1, got {self.aesthetic}")

        for quality in self.face_qualities:
            if not 0.0 <= quality <= 1.0:
                raise ValueError(f"Face quality must be between 0 and 1, got {quality}")

    @property
    def face_quality(self) -> Optional[float]:
        """Average per-face quality, None if no faces were scored."""
        if not self.face_qualities:
            return None
        return float(np.mean(self.face_qualities))

    @property
    def has_saliency(self) -> bool:
        return self.salient_regions is not None


@dataclass
class PhotoFeatures:
    """Analysis results returned by a feature provider for one photo."""
    fingerprint: Optional[np.ndarray] = None
    face_count: Optional[int] = None
    quality_scores: Optional[QualityScores] = None


@dataclass
class Photo:
    """A photo with its capture metadata and analysis state.

    Analysis fields start empty and are written once by the feature provider.
    Later writes to an already populated field are ignored for the rest of
    the run.

    Attributes:
        id: Unique photo identifier
        timestamp: Capture time, the clustering key
        location: Capture location (optional)
        fingerprint: Visual fingerprint vector (optional until analyzed)
        face_count: Number of detected faces (optional until analyzed)
        quality_scores: Precomputed quality bundle (optional until analyzed)
    """
    id: str
    timestamp: datetime
    location: Optional[Location] = None
    fingerprint: Optional[np.ndarray] = None
    face_count: Optional[int] = None
    quality_scores: Optional[QualityScores] = None

    def __post_init__(self):
        """Validate data after initialization."""
        if self.fingerprint is not None and not isinstance(self.fingerprint, np.ndarray):
            raise TypeError(f"Fingerprint must be numpy array, got {type(self.fingerprint)}")

        if self.face_count is not None and self.face_count < 0:
            raise ValueError(f"Face count must be >= 0, got {self.face_count}")

    @property
    def has_fingerprint(self) -> bool:
        return self.fingerprint is not None

    @property
    def is_analyzed(self) -> bool:
        """Check if every analysis field has been populated."""
        return (
            self.fingerprint is not None
            and self.face_count is not None
            and self.quality_scores is not None
        )

    @property
    def has_faces(self) -> bool:
        return bool(self.face_count)

    @property
    def is_utility(self) -> bool:
        return self.quality_scores is not None and self.quality_scores.is_utility

    def apply_features(self, features: PhotoFeatures) -> None:
        """Populate analysis fields that are still empty.

        Args:
            features: Feature provider output for this photo
        """
        if features.fingerprint is not None:
            if self.fingerprint is None:
                self.fingerprint = np.asarray(features.fingerprint, dtype=np.float32)
            else:
                logger.debug(f"Photo {self.id} already has a fingerprint, keeping it")

        if features.face_count is not None and self.face_count is None:
            if features.face_count < 0:
                raise ValueError(f"Face count must be >= 0, got {features.face_count}")
            self.face_count = features.face_count

        if features.quality_scores is not None and self.quality_scores is None:
            self.quality_scores = features.quality_scores

    def __repr__(self) -> str:
        faces = f", faces={self.face_count}" if self.face_count is not None else ""
        return f"Photo(id={self.id!r}, timestamp={self.timestamp.isoformat()}{faces})"


class SelectionReason(str, Enum):
    """Why a photo was chosen as a cluster's representative."""
    ONLY_OPTION = 'only_option'
    HIGHEST_COMBINED_SCORE = 'highest_combined_score'
    UTILITY_SKIPPED = 'utility_skipped'
    QUALITY_DATA_MISSING = 'quality_data_missing'
    MANUAL_OVERRIDE = 'manual_override'


@dataclass
class PhotoRankingScore:
    """Per-photo ranking factors within a cluster.

    Attributes:
        photo: The scored photo
        quality_score: Own technical/face quality (0-1)
        cluster_relevance: Fit with the cluster's representative (0-1)
        uniqueness_score: Penalized for near-duplicates in the cluster (0-1)
        temporal_optimality: Position within the cluster's time span (0-1)
        saliency_score: Composition and salient region layout (0-1)
        aesthetic_score: Aesthetic appeal (0-1)
        combined_score: Weighted combination of the six factors (0-1)
        rank: Rank within the cluster (1-indexed)
    """
    photo: Photo
    quality_score: float
    cluster_relevance: float
    uniqueness_score: float
    temporal_optimality: float
    saliency_score: float
    aesthetic_score: float
    combined_score: float = 0.0
    rank: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'photo_id': self.photo.id,
            'rank': self.rank,
            'combined_score': self.combined_score,
            'quality_score': self.quality_score,
            'cluster_relevance': self.cluster_relevance,
            'uniqueness_score': self.uniqueness_score,
            'temporal_optimality': self.temporal_optimality,
            'saliency_score': self.saliency_score,
            'aesthetic_score': self.aesthetic_score,
        }

    def __repr__(self) -> str:
        return (
            f"PhotoRankingScore(photo={self.photo.id!r}, rank={self.rank}, "
            f"combined={self.combined_score:.3f})"
        )


@dataclass
class ClusterQualityMetrics:
    """Descriptive quality metrics for a ranked cluster, each in [0, 1]."""
    diversity: float
    representativeness: float
    temporal_coherence: float
    visual_coherence: float
    aesthetic_consistency: float
    saliency_alignment: float

    def to_dict(self) -> Dict[str, float]:
        return {
            'diversity': self.diversity,
            'representativeness': self.representativeness,
            'temporal_coherence': self.temporal_coherence,
            'visual_coherence': self.visual_coherence,
            'aesthetic_consistency': self.aesthetic_consistency,
            'saliency_alignment': self.saliency_alignment,
        }


@dataclass
class SubCluster:
    """A tighter group of photos inside a cluster.

    Attributes:
        kind: 'near_duplicate' or 'pose_group'
        leader: Highest-ranked photo of the group
        members: All photos of the group, leader first
    """
    kind: str
    leader: Photo
    members: List[Photo] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.members)


@dataclass
class Cluster:
    """A group of photos representing the same moment.

    Members keep arrival order. The representative fingerprint comes from the
    first member with a usable fingerprint and is not recomputed as the cluster grows,
    unless the clustering engine is configured to refresh it.

    Attributes:
        id: Cluster identifier
        members: Member photos in arrival order
        representative_fingerprint: Fingerprint members are compared against
        center_location: Centroid of member locations (None if no member is located)
        time_range: (earliest, latest) member timestamps
        ranked_members: Members sorted by descending combined score
        representative_photo: Highest-ranked member
        ranking_confidence: Confidence in the representative (0-1)
        ranking_scores: Per-member ranking factors in rank order
        selection_reason: Why the representative was chosen
        quality_metrics: Descriptive cluster metrics
        sub_clusters: Near-duplicate and pose groups (only when sub-clustering ran)
    """
    id: str
    members: List[Photo] = field(default_factory=list)
    representative_fingerprint: Optional[np.ndarray] = None
    center_location: Optional[Location] = None
    time_range: Optional[Tuple[datetime, datetime]] = None
    ranked_members: List[Photo] = field(default_factory=list)
    representative_photo: Optional[Photo] = None
    ranking_confidence: float = 0.0
    ranking_scores: List[PhotoRankingScore] = field(default_factory=list)
    selection_reason: Optional[SelectionReason] = None
    quality_metrics: Optional[ClusterQualityMetrics] = None
    sub_clusters: List[SubCluster] = field(default_factory=list)

    def add(self, photo: Photo) -> None:
        """Append a photo and update derived cluster state."""
        from .similarity import is_valid_fingerprint

        self.members.append(photo)

        if self.representative_fingerprint is None and is_valid_fingerprint(photo.fingerprint):
            self.representative_fingerprint = photo.fingerprint

        self._update_center_location()
        self._update_time_range()

    def _update_center_location(self):
        locations = [p.location for p in self.members if p.location is not None]
        if not locations:
            return

        self.center_location = spherical_centroid(locations)

    def _update_time_range(self):
        timestamps = [p.timestamp for p in self.members]
        self.time_range = (min(timestamps), max(timestamps))

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def is_ranked(self) -> bool:
        return self.representative_photo is not None

    @property
    def most_recent_member(self) -> Optional[Photo]:
        if not self.members:
            return None
        return max(self.members, key=lambda p: p.timestamp)

    @property
    def duration(self) -> float:
        """Time span between first and last member in seconds."""
        if self.time_range is None:
            return 0.0
        start, end = self.time_range
        return (end - start).total_seconds()

    @property
    def median_timestamp(self) -> Optional[datetime]:
        timestamps = sorted(p.timestamp for p in self.members)
        if not timestamps:
            return None
        return timestamps[len(timestamps) // 2]

    @property
    def average_face_count(self) -> Optional[float]:
        counts = [p.face_count for p in self.members if p.face_count is not None]
        if not counts:
            return None
        return sum(counts) / len(counts)

    @property
    def importance(self) -> float:
        """Importance of the moment based on how many shots were taken."""
        size = self.size
        if size <= 1:
            return 0.1
        if size == 2:
            return 0.3
        if size <= 5:
            return 0.6
        if size <= 10:
            return 0.8
        if size <= 20:
            return 0.9
        return 1.0

    @property
    def is_important_moment(self) -> bool:
        """Three or more shots indicate an intentionally captured moment."""
        return self.size >= 3

    def contains(self, photo: Photo) -> bool:
        return any(member.id == photo.id for member in self.members)

    def set_manual_representative(self, photo: Photo) -> None:
        """Override the ranked representative with a user choice.

        Raises:
            ValueError: If the photo is not a member of this cluster
        """
        if not self.contains(photo):
            raise ValueError(f"Photo {photo.id} is not a member of cluster {self.id}")

        self.representative_photo = photo
        self.selection_reason = SelectionReason.MANUAL_OVERRIDE
        logger.info(f"Manual representative for cluster {self.id}: {photo.id}")

    def clear_ranking(self) -> None:
        """Drop ranking results, including any manual override."""
        self.ranked_members = []
        self.representative_photo = None
        self.ranking_confidence = 0.0
        self.ranking_scores = []
        self.selection_reason = None
        self.quality_metrics = None
        self.sub_clusters = []

    def __repr__(self) -> str:
        rep = f", representative={self.representative_photo.id!r}" if self.representative_photo else ""
        return f"Cluster(id={self.id!r}, size={self.size}, duration={self.duration:.1f}s{rep})"
