"""Intra-cluster photo ranking.

Every member of a cluster is scored on six factors in [0, 1]:

- quality: the photo's own face or technical quality
- cluster relevance: visual fit with the representative and face-count consistency
- uniqueness: penalized for near-duplicates inside the cluster
- temporal optimality: first and last shots of a burst score lower
- saliency: salient region layout plus composition
- aesthetic: aesthetic sub-score plus a bonus for strong faces

The weighted sum orders the members; the top photo becomes the representative.
"""

from typing import List, Optional
import logging

import numpy as np

from ..criteria import RankingWeights
from ..diagnostics import REPRESENTATIVE_SELECTED, DiagnosticSink, emit
from ..photo import Cluster, Photo, PhotoRankingScore, SalientRegion, SelectionReason
from ..similarity import compute_similarity, pairwise_similarity

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 0.5

# Utility photos (screenshots, documents)
UTILITY_QUALITY_FACTOR = 0.1
UTILITY_AESTHETIC_SCORE = 0.1

# Uniqueness penalties per similar cluster member
HIGH_SIMILARITY = 0.8
HIGH_SIMILARITY_PENALTY = 0.3
MEDIUM_SIMILARITY = 0.6
MEDIUM_SIMILARITY_PENALTY = 0.1
SALIENT_REGION_BONUS = 0.02
MAX_SALIENT_REGION_BONUS = 0.1
DISTINCT_REGION_IOU = 0.5

RELEVANCE_VISUAL_WEIGHT = 0.7
RELEVANCE_FACE_WEIGHT = 0.3
FACE_COUNT_TOLERANCE = 3.0


def quality_factor(photo: Photo) -> Optional[float]:
    """Own quality of a photo: face quality when it has faces, else technical quality.

    Returns:
        Quality between 0 and 1, None if the photo has no quality data
    """
    scores = photo.quality_scores
    if scores is None:
        return None

    if photo.has_faces and scores.face_quality is not None:
        quality = scores.face_quality
    elif scores.technical is not None:
        quality = scores.technical
    elif scores.face_quality is not None:
        quality = scores.face_quality
    else:
        return None

    if scores.is_utility:
        quality *= UTILITY_QUALITY_FACTOR
    return float(quality)


def cluster_relevance(photo: Photo, cluster: Cluster, visual_similarity: Optional[float]) -> float:
    """Visual similarity to the representative (70%) plus face-count consistency (30%)."""
    visual = visual_similarity if visual_similarity is not None else NEUTRAL_SCORE

    average_faces = cluster.average_face_count
    if photo.face_count is not None and average_faces is not None:
        delta = abs(photo.face_count - average_faces)
        face_consistency = 1.0 - min(1.0, delta / FACE_COUNT_TOLERANCE)
    else:
        face_consistency = NEUTRAL_SCORE

    return RELEVANCE_VISUAL_WEIGHT * visual + RELEVANCE_FACE_WEIGHT * face_consistency


def count_distinct_regions(regions: List[SalientRegion]) -> int:
    """Count salient regions that don't substantially overlap an earlier one."""
    distinct: List[SalientRegion] = []
    for region in regions:
        if all(region.overlap_iou(kept) < DISTINCT_REGION_IOU for kept in distinct):
            distinct.append(region)
    return len(distinct)


def uniqueness_score(photo: Photo, similarities: np.ndarray, index: int) -> float:
    """Start at 1 and subtract for every other member that looks alike.

    Args:
        photo: Scored photo
        similarities: Pairwise similarity matrix of the cluster members
        index: Row of the photo in the matrix

    Returns:
        Uniqueness between 0 and 1
    """
    score = 1.0
    for j, similarity in enumerate(similarities[index]):
        if j == index:
            continue
        if similarity > HIGH_SIMILARITY:
            score -= HIGH_SIMILARITY_PENALTY
        elif similarity > MEDIUM_SIMILARITY:
            score -= MEDIUM_SIMILARITY_PENALTY

    scores = photo.quality_scores
    if scores is not None and scores.salient_regions:
        bonus = SALIENT_REGION_BONUS * count_distinct_regions(scores.salient_regions)
        score += min(MAX_SALIENT_REGION_BONUS, bonus)

    return float(min(1.0, max(0.0, score)))


def temporal_optimality(photo: Photo, cluster: Cluster) -> float:
    """Score a photo by its position within the cluster's time span.

    The middle 60% scores 1.0, the 10-20% bands next to either edge 0.7 and
    the outermost 10% at either edge 0.4.
    """
    duration = cluster.duration
    if cluster.time_range is None or duration <= 0:
        return 1.0

    start, _ = cluster.time_range
    position = (photo.timestamp - start).total_seconds() / duration

    if position < 0.1 or position > 0.9:
        return 0.4
    if position < 0.2 or position > 0.8:
        return 0.7
    return 1.0


def saliency_score(photo: Photo) -> float:
    """Baseline 0.5, +0.3 for 1-3 salient regions, +0.1 for more, + 0.2 x composition."""
    scores = photo.quality_scores
    if scores is None:
        return NEUTRAL_SCORE

    score = NEUTRAL_SCORE
    region_count = len(scores.salient_regions or [])
    if 1 <= region_count <= 3:
        score += 0.3
    elif region_count > 3:
        score += 0.1

    if scores.composition is not None:
        score += 0.2 * scores.composition

    return float(min(1.0, score))


def aesthetic_score(photo: Photo) -> float:
    """Aesthetic sub-score mapped from [-1, 1] to [0, 1], blended 80/20 with neutral.

    Utility photos get a fixed low score. Photos with faces get up to +0.2
    for strong average face quality.
    """
    scores = photo.quality_scores
    if scores is None:
        return NEUTRAL_SCORE

    if scores.is_utility:
        return UTILITY_AESTHETIC_SCORE

    if scores.aesthetic is not None:
        normalized = (scores.aesthetic + 1.0) / 2.0
        score = 0.8 * normalized + 0.2 * NEUTRAL_SCORE
    else:
        score = NEUTRAL_SCORE

    face_quality = scores.face_quality
    if photo.has_faces and face_quality is not None:
        score += 0.2 * min(1.0, max(0.0, (face_quality - 0.6) / 0.4))

    return float(min(1.0, score))


class RankingEngine:
    """Orders cluster members and selects the representative photo.

    Usage:
        engine = RankingEngine()
        engine.rank(cluster)
        print(cluster.representative_photo, cluster.ranking_confidence)
    """

    def __init__(
        self,
        weights: Optional[RankingWeights] = None,
        metric: str = 'euclidean',
        sink: Optional[DiagnosticSink] = None
    ):
        """Initialize the ranking engine.

        Args:
            weights: Factor weights (default: RankingWeights())
            metric: Fingerprint similarity metric
            sink: Receiver of decision events (default: forward to logging)
        """
        self.weights = weights or RankingWeights()
        self.metric = metric
        self.sink = sink

    def score_photos(self, cluster: Cluster) -> List[PhotoRankingScore]:
        """Compute the six factors and combined score for every member.

        Args:
            cluster: Cluster to score

        Returns:
            Scores in member (arrival) order, ranks not yet assigned
        """
        members = cluster.members
        similarities = pairwise_similarity([p.fingerprint for p in members], metric=self.metric)
        quality_missing = all(p.quality_scores is None for p in members)

        scores = []
        for index, photo in enumerate(members):
            visual = None
            if photo.fingerprint is not None and cluster.representative_fingerprint is not None:
                visual = compute_similarity(
                    photo.fingerprint,
                    cluster.representative_fingerprint,
                    metric=self.metric
                )

            quality = quality_factor(photo)
            score = PhotoRankingScore(
                photo=photo,
                quality_score=quality if quality is not None else NEUTRAL_SCORE,
                cluster_relevance=cluster_relevance(photo, cluster, visual),
                uniqueness_score=uniqueness_score(photo, similarities, index),
                temporal_optimality=temporal_optimality(photo, cluster),
                saliency_score=saliency_score(photo),
                aesthetic_score=aesthetic_score(photo)
            )
            score.combined_score = self._combine(score, quality_missing)
            scores.append(score)

        return scores

    def _combine(self, score: PhotoRankingScore, quality_missing: bool) -> float:
        w = self.weights

        if quality_missing:
            # No quality data anywhere in the cluster: rank on timing and layout only
            total = w.temporal_optimality + w.saliency
            if total <= 0:
                return NEUTRAL_SCORE
            combined = (
                w.temporal_optimality * score.temporal_optimality
                + w.saliency * score.saliency_score
            ) / total
        else:
            combined = (
                w.quality * score.quality_score
                + w.cluster_relevance * score.cluster_relevance
                + w.uniqueness * score.uniqueness_score
                + w.temporal_optimality * score.temporal_optimality
                + w.saliency * score.saliency_score
                + w.aesthetic * score.aesthetic_score
            )

        return float(min(1.0, max(0.0, combined)))

    def rank(self, cluster: Cluster) -> Cluster:
        """Rank a cluster's members and pick its representative.

        Sorting is stable, so equal scores keep arrival order. Utility photos
        are never chosen as representative while another member exists.

        Args:
            cluster: Cluster with all members known

        Returns:
            The same cluster with ranking fields populated

        Raises:
            ValueError: If the cluster is empty
        """
        if not cluster.members:
            raise ValueError("Cannot rank empty cluster")

        scores = self.score_photos(cluster)
        ranked = sorted(scores, key=lambda s: s.combined_score, reverse=True)
        for rank, score in enumerate(ranked, start=1):
            score.rank = rank

        quality_missing = all(p.quality_scores is None for p in cluster.members)
        best = ranked[0]

        if len(ranked) == 1:
            reason = SelectionReason.ONLY_OPTION
            own_quality = quality_factor(best.photo)
            confidence = own_quality if own_quality is not None else NEUTRAL_SCORE
        else:
            reason = (
                SelectionReason.QUALITY_DATA_MISSING if quality_missing
                else SelectionReason.HIGHEST_COMBINED_SCORE
            )
            if best.photo.is_utility:
                alternative = next((s for s in ranked if not s.photo.is_utility), None)
                if alternative is not None:
                    best = alternative
                    reason = SelectionReason.UTILITY_SKIPPED
            confidence = best.combined_score

        cluster.ranking_scores = ranked
        cluster.ranked_members = [s.photo for s in ranked]
        cluster.representative_photo = best.photo
        cluster.ranking_confidence = float(min(1.0, max(0.0, confidence)))
        cluster.selection_reason = reason

        emit(
            self.sink,
            REPRESENTATIVE_SELECTED,
            photo_id=best.photo.id,
            cluster_id=cluster.id,
            reason=reason.value,
            confidence=cluster.ranking_confidence,
            size=cluster.size
        )
        return cluster

    def rank_all(self, clusters: List[Cluster]) -> List[Cluster]:
        for cluster in clusters:
            self.rank(cluster)
        return clusters

    def recompute_representative(self, cluster: Cluster) -> Cluster:
        """Drop any manual override and rank the cluster again."""
        cluster.clear_ranking()
        return self.rank(cluster)
