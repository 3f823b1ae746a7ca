"""
Importable high-level operations for Photo Moments.

These functions wrap the curation pipeline into plain functions that can be
called directly from Python code or via the `photo-moments` CLI.

Print output is kept for CLI users.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from .config import criteria_from_config, get_config, weights_from_config
from .curation import (
    compute_clustering_statistics,
    export_clusters_json,
    filter_confident_clusters,
)
from .pipeline import MomentCurator
from .records import load_photo_records


def curate_photo_records(
    input_file: str,
    output_file: Optional[str] = None,
    *,
    config_path: Optional[str] = None,
    enable_sub_clustering: Optional[bool] = None,
    min_confidence: float = 0.0,
    format_style: str = "detailed",
    show_progress: bool = True,
) -> Dict[str, Any]:
    """Cluster and rank the photos in a JSON record file.

    Args:
        input_file: JSON file with analyzed photo records.
        output_file: Where to write the clusters (default: <input>.moments.json).
        config_path: Explicit config file (default: data home config.json).
        enable_sub_clustering: Override the configured sub-clustering flag.
        min_confidence: Drop clusters whose ranking confidence is lower.
        format_style: Output style ('detailed' or 'simple').
        show_progress: Show a progress bar while clustering.

    Returns:
        Dict with keys: photos (int), moments (int), exported (int), output (str or None).
    """
    input_path = Path(input_file)

    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}")
        return {"photos": 0, "moments": 0, "exported": 0, "output": None}

    output_path = Path(output_file) if output_file else input_path.with_suffix(".moments.json")

    print("Photo Moment Curation")
    print("=" * 50)

    # Step 1: Configuration
    config = get_config(Path(config_path) if config_path else None)
    if enable_sub_clustering is not None:
        config["clustering"]["enable_sub_clustering"] = enable_sub_clustering
    criteria = criteria_from_config(config)
    weights = weights_from_config(config)
    print(f"\nRanking: {weights.description}")

    # Step 2: Load photo records
    print(f"\nLoading photo records from: {input_path}")
    photos = load_photo_records(input_path)
    print(f"Loaded {len(photos)} photos")

    if not photos:
        print("\nNo photos to curate.")
        return {"photos": 0, "moments": 0, "exported": 0, "output": None}

    # Step 3: Cluster, rank and annotate
    print("\nClustering photos into moments...")
    curator = MomentCurator(criteria=criteria, weights=weights, show_progress=show_progress)
    clusters = curator.curate(photos)
    stats = curator.get_stats()

    print(f"\nCuration Results:")
    print(f"   Photos processed: {stats.total_photos}")
    print(f"   Moments found: {stats.total_clusters}")
    print(f"   Important moments: {stats.important_moments}")
    print(f"   Singletons: {stats.singleton_clusters}")
    print(f"   Fingerprint failures: {stats.fingerprint_failures}")
    if criteria.enable_sub_clustering:
        print(f"   Sub-clusters: {stats.sub_clusters}")
    print(f"   Processing time: {stats.processing_time:.2f}s")

    # Step 4: Filter and export
    exported = filter_confident_clusters(clusters, min_confidence) if min_confidence > 0 else clusters
    if len(exported) < len(clusters):
        print(f"\nSkipped {len(clusters) - len(exported)} moments below confidence {min_confidence:.2f}")

    statistics = compute_clustering_statistics(clusters)
    statistics["run"] = stats.to_dict()
    export_clusters_json(exported, output_path, format_style=format_style, statistics=statistics)

    print(f"\nDone! Exported {len(exported)} moments")
    print(f"Results saved to: {output_path}")

    return {
        "photos": stats.total_photos,
        "moments": stats.total_clusters,
        "exported": len(exported),
        "output": str(output_path),
    }
