"""Near-duplicate and pose-group detection inside a cluster.

This is an explicit post-pass over ranked clusters. It runs one leader at a
time with an optional pause between leaders, and the pipeline only calls it
when sub-clustering is enabled in the criteria.
"""

from typing import List, Optional, Sequence
import logging
import time

from ..criteria import ClusteringCriteria
from ..diagnostics import SUB_CLUSTERS_FOUND, DiagnosticSink, emit
from ..photo import Cluster, Photo, SubCluster
from ..similarity import compute_similarity

logger = logging.getLogger(__name__)

NEAR_DUPLICATE = 'near_duplicate'
POSE_GROUP = 'pose_group'

DEFAULT_SIMILAR_PHOTO_THRESHOLD = 0.70


def group_by_similarity(
    photos: Sequence[Photo],
    threshold: float,
    metric: str = 'euclidean',
    pause: float = 0.0
) -> List[List[Photo]]:
    """Group photos around leaders in the given order.

    The first ungrouped photo becomes a leader and collects every later
    ungrouped photo whose similarity to it reaches the threshold. Photos
    without a fingerprint are never grouped.

    Args:
        photos: Photos in priority order (leaders come first)
        threshold: Minimum similarity to the leader
        metric: Fingerprint similarity metric
        pause: Seconds to sleep between leaders

    Returns:
        Groups with at least two photos, leader first
    """
    remaining = [p for p in photos if p.fingerprint is not None]
    groups = []

    while remaining:
        leader = remaining.pop(0)
        group = [leader]
        rest = []

        for photo in remaining:
            if compute_similarity(leader.fingerprint, photo.fingerprint, metric=metric) >= threshold:
                group.append(photo)
            else:
                rest.append(photo)

        remaining = rest
        if len(group) >= 2:
            groups.append(group)

        if pause > 0 and remaining:
            time.sleep(pause)

    return groups


class SubClusterEngine:
    """Partitions a ranked cluster into near-duplicate and pose groups.

    Near-duplicates are grouped first; pose groups are then formed from the
    photos left over, with the higher-ranked photo leading each group.

    Usage:
        engine = SubClusterEngine(criteria)
        for sub in engine.partition(cluster):
            print(sub.kind, sub.leader.id, sub.size)
    """

    def __init__(
        self,
        criteria: Optional[ClusteringCriteria] = None,
        sink: Optional[DiagnosticSink] = None
    ):
        self.criteria = criteria or ClusteringCriteria()
        self.sink = sink

    def partition(self, cluster: Cluster) -> List[SubCluster]:
        """Find sub-clusters and store them on the cluster.

        Args:
            cluster: Cluster to partition (rank order is used when available)

        Returns:
            Sub-clusters with at least two members
        """
        criteria = self.criteria
        ordered = cluster.ranked_members if cluster.is_ranked else list(cluster.members)

        duplicates = group_by_similarity(
            ordered,
            criteria.near_duplicate_threshold,
            metric=criteria.similarity_metric,
            pause=criteria.sub_cluster_pause
        )
        grouped_ids = {p.id for group in duplicates for p in group}
        leftover = [p for p in ordered if p.id not in grouped_ids]

        poses = group_by_similarity(
            leftover,
            criteria.pose_group_threshold,
            metric=criteria.similarity_metric,
            pause=criteria.sub_cluster_pause
        )

        sub_clusters = [
            SubCluster(kind=NEAR_DUPLICATE, leader=group[0], members=group)
            for group in duplicates
        ] + [
            SubCluster(kind=POSE_GROUP, leader=group[0], members=group)
            for group in poses
        ]
        cluster.sub_clusters = sub_clusters

        emit(
            self.sink,
            SUB_CLUSTERS_FOUND,
            cluster_id=cluster.id,
            near_duplicates=len(duplicates),
            pose_groups=len(poses)
        )
        return sub_clusters

    def partition_all(self, clusters: List[Cluster]) -> List[Cluster]:
        logger.info(f"Sub-clustering {len(clusters)} clusters")
        for cluster in clusters:
            self.partition(cluster)
        return clusters


def find_similar_photos(
    clusters: List[Cluster],
    threshold: float = DEFAULT_SIMILAR_PHOTO_THRESHOLD,
    metric: str = 'euclidean'
) -> List[List[Photo]]:
    """Find groups of similar photos across clusters.

    Args:
        clusters: Clusters to search (rank order within each when available)
        threshold: Minimum similarity to a group's leader
        metric: Fingerprint similarity metric

    Returns:
        Groups of two or more photos, leader first
    """
    photos = []
    for cluster in clusters:
        photos.extend(cluster.ranked_members if cluster.is_ranked else cluster.members)

    groups = group_by_similarity(photos, threshold, metric=metric)
    logger.info(f"Found {len(groups)} similar photo groups among {len(photos)} photos")
    return groups
