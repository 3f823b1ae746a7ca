"""Cluster result formatting and export utilities."""

from typing import List, Dict, Any, Optional
import json
from pathlib import Path

from ..photo import Cluster


def cluster_to_dict(cluster: Cluster, include_scores: bool = True) -> Dict[str, Any]:
    """Convert an annotated cluster to a JSON-serializable dictionary.

    Args:
        cluster: Cluster to convert
        include_scores: If True, include per-photo ranking factors

    Returns:
        Dictionary with membership, ranking and quality data
    """
    data = {
        'id': cluster.id,
        'size': cluster.size,
        'members': [p.id for p in cluster.members],
        'ranked_members': [p.id for p in cluster.ranked_members],
        'representative_photo': cluster.representative_photo.id if cluster.representative_photo else None,
        'ranking_confidence': round(cluster.ranking_confidence, 4),
        'selection_reason': cluster.selection_reason.value if cluster.selection_reason else None,
        'center_location': cluster.center_location.to_dict() if cluster.center_location else None,
        'time_range': [t.isoformat() for t in cluster.time_range] if cluster.time_range else None,
        'duration': cluster.duration,
        'importance': cluster.importance,
        'is_important_moment': cluster.is_important_moment,
        'quality_metrics': cluster.quality_metrics.to_dict() if cluster.quality_metrics else None,
    }

    if include_scores:
        data['ranking_scores'] = [score.to_dict() for score in cluster.ranking_scores]

    if cluster.sub_clusters:
        data['sub_clusters'] = [
            {
                'kind': sub.kind,
                'leader': sub.leader.id,
                'members': [p.id for p in sub.members]
            }
            for sub in cluster.sub_clusters
        ]

    return data


def format_clusters_simple(
    clusters: List[Cluster],
    max_clusters: Optional[int] = None
) -> List[Dict[str, Any]]:
    """Format clusters as one short summary line each.

    Args:
        clusters: Clusters to format
        max_clusters: Maximum clusters to include

    Returns:
        List of dictionaries with id, size, representative and confidence
    """
    formatted = []

    for cluster in clusters[:max_clusters] if max_clusters else clusters:
        formatted.append({
            'id': cluster.id,
            'size': cluster.size,
            'representative_photo': cluster.representative_photo.id if cluster.representative_photo else None,
            'ranking_confidence': round(cluster.ranking_confidence, 4),
        })

    return formatted


def export_clusters_json(
    clusters: List[Cluster],
    output_path: Path,
    format_style: str = 'detailed',
    statistics: Optional[Dict[str, Any]] = None
) -> None:
    """Export clusters to a JSON file.

    Args:
        clusters: Clusters to export
        output_path: Path to output JSON file
        format_style: 'detailed' or 'simple'
        statistics: Optional run statistics stored next to the clusters
    """
    if format_style == 'detailed':
        data = [cluster_to_dict(c) for c in clusters]
    elif format_style == 'simple':
        data = format_clusters_simple(clusters)
    else:
        raise ValueError(f"Unknown format style: {format_style}")

    payload: Dict[str, Any] = {'clusters': data}
    if statistics is not None:
        payload['statistics'] = statistics

    with open(output_path, 'w') as f:
        json.dump(payload, f, indent=2)
