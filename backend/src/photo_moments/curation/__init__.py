"""Curation module for photo moment clustering and ranking.

This module provides the engines that turn a photo stream into moments:
- ClusteringEngine for greedy, time-ordered moment clustering
- RankingEngine for ordering members and picking representatives
- ClusterQualityEngine for descriptive cluster metrics
- SubClusterEngine for near-duplicate and pose groups (opt-in)
- Result formatting and export utilities

Usage:
    from photo_moments.curation import ClusteringEngine, RankingEngine, ClusterQualityEngine

    clusters = ClusteringEngine(criteria).cluster(photos)
    ranking = RankingEngine()
    quality = ClusterQualityEngine()
    for cluster in clusters:
        ranking.rank(cluster)
        quality.annotate(cluster)
"""

from .clustering import (
    ClusteringEngine,
    CurationCancelled,
    PhotoState,
    centroid_fingerprint,
    compute_clustering_statistics,
    clusters_with_min_photos,
    filter_confident_clusters
)
from .ranking import (
    RankingEngine,
    quality_factor,
    cluster_relevance,
    uniqueness_score,
    temporal_optimality,
    saliency_score,
    aesthetic_score
)
from .quality import ClusterQualityEngine, temporal_coherence, region_set_overlap
from .subclusters import (
    SubClusterEngine,
    group_by_similarity,
    find_similar_photos,
    NEAR_DUPLICATE,
    POSE_GROUP
)
from .results import cluster_to_dict, format_clusters_simple, export_clusters_json

__all__ = [
    # Clustering
    'ClusteringEngine',
    'CurationCancelled',
    'PhotoState',
    'centroid_fingerprint',
    'compute_clustering_statistics',
    'clusters_with_min_photos',
    'filter_confident_clusters',

    # Ranking
    'RankingEngine',
    'quality_factor',
    'cluster_relevance',
    'uniqueness_score',
    'temporal_optimality',
    'saliency_score',
    'aesthetic_score',

    # Quality
    'ClusterQualityEngine',
    'temporal_coherence',
    'region_set_overlap',

    # Sub-clusters
    'SubClusterEngine',
    'group_by_similarity',
    'find_similar_photos',
    'NEAR_DUPLICATE',
    'POSE_GROUP',

    # Results
    'cluster_to_dict',
    'format_clusters_simple',
    'export_clusters_json',
]
