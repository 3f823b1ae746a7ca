"""Similarity and distance utilities.

This module provides the similarity function used by every engine:
- Fingerprint similarity in [0, 1] derived from a normalized distance
- Pairwise similarity matrices for intra-cluster comparisons
- Great-circle distance between capture locations

Malformed fingerprints never raise here; they score 0 against everything so
a single bad photo cannot stop a clustering run.
"""

from typing import List, Optional, Sequence
import logging
import math

import numpy as np

from .photo import Location

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000.0


def is_valid_fingerprint(fingerprint: Optional[np.ndarray]) -> bool:
    """Check that a fingerprint is a finite, non-zero 1-D vector."""
    if fingerprint is None or not isinstance(fingerprint, np.ndarray):
        return False
    if fingerprint.ndim != 1 or fingerprint.shape[0] == 0:
        return False
    if not np.issubdtype(fingerprint.dtype, np.number):
        return False
    if not np.all(np.isfinite(fingerprint)):
        return False
    return bool(np.linalg.norm(fingerprint) > 0)


def normalized_distance(
    fingerprint1: np.ndarray,
    fingerprint2: np.ndarray,
    metric: str = 'euclidean'
) -> float:
    """Compute the distance between two fingerprints after L2 normalization.

    Args:
        fingerprint1: First fingerprint vector
        fingerprint2: Second fingerprint vector
        metric: 'euclidean' (0-2 on unit vectors) or 'cosine' (1 - cosine similarity)

    Returns:
        Distance, 0 for identical directions

    Raises:
        ValueError: If shapes differ, a vector is malformed or the metric is unknown
    """
    if not is_valid_fingerprint(fingerprint1) or not is_valid_fingerprint(fingerprint2):
        raise ValueError("Fingerprints must be finite, non-zero 1-D vectors")

    if fingerprint1.shape != fingerprint2.shape:
        raise ValueError(
            f"Fingerprint shapes don't match: {fingerprint1.shape} vs {fingerprint2.shape}"
        )

    a = fingerprint1.astype(np.float64) / np.linalg.norm(fingerprint1)
    b = fingerprint2.astype(np.float64) / np.linalg.norm(fingerprint2)

    if metric == 'euclidean':
        return float(np.linalg.norm(a - b))
    elif metric == 'cosine':
        return float(1.0 - np.dot(a, b))
    else:
        raise ValueError(f"Unknown metric: {metric}. Use 'euclidean' or 'cosine'")


def compute_similarity(
    fingerprint1: Optional[np.ndarray],
    fingerprint2: Optional[np.ndarray],
    metric: str = 'euclidean'
) -> float:
    """Similarity between two fingerprints as max(0, 1 - normalized distance).

    Symmetric and reflexive for valid vectors. Any failure to compute the
    distance (missing or malformed vector, dimension mismatch) yields 0.0.

    Args:
        fingerprint1: First fingerprint vector
        fingerprint2: Second fingerprint vector
        metric: 'euclidean' or 'cosine'

    Returns:
        Similarity score between 0 and 1 (1 = identical)
    """
    if fingerprint1 is None or fingerprint2 is None:
        return 0.0

    try:
        distance = normalized_distance(fingerprint1, fingerprint2, metric=metric)
    except ValueError as e:
        logger.debug(f"Similarity unavailable, scoring 0: {e}")
        return 0.0

    return float(min(1.0, max(0.0, 1.0 - distance)))


def pairwise_similarity(
    fingerprints: Sequence[Optional[np.ndarray]],
    metric: str = 'euclidean'
) -> np.ndarray:
    """Compute the pairwise similarity matrix for a list of fingerprints.

    Rows and columns of missing or malformed fingerprints are all zero.

    Args:
        fingerprints: Fingerprint vectors (entries may be None)
        metric: 'euclidean' or 'cosine'

    Returns:
        Symmetric matrix of shape (n, n) with values in [0, 1]
    """
    n = len(fingerprints)
    matrix = np.zeros((n, n), dtype=np.float64)
    if n == 0:
        return matrix

    valid = [i for i, fp in enumerate(fingerprints) if is_valid_fingerprint(fp)]
    dims = {fingerprints[i].shape[0] for i in valid}

    if valid and len(dims) == 1:
        X = np.stack([fingerprints[i] for i in valid]).astype(np.float64)
        X = X / np.linalg.norm(X, axis=1, keepdims=True)

        if metric == 'euclidean':
            sims = 1.0 - _pairwise_euclidean(X)
        elif metric == 'cosine':
            sims = np.dot(X, X.T)
        else:
            raise ValueError(f"Unknown metric: {metric}")

        sims = np.clip((sims + sims.T) / 2.0, 0.0, 1.0)
        np.fill_diagonal(sims, 1.0)
        matrix[np.ix_(valid, valid)] = sims
    else:
        # Mixed dimensions, compare pair by pair
        for i in range(n):
            for j in range(i, n):
                sim = compute_similarity(fingerprints[i], fingerprints[j], metric=metric)
                matrix[i, j] = sim
                matrix[j, i] = sim

    return matrix


def _pairwise_euclidean(X: np.ndarray) -> np.ndarray:
    """Compute pairwise Euclidean distances.

    Args:
        X: Array of shape (n_samples, n_features)

    Returns:
        Distance matrix of shape (n_samples, n_samples)
    """
    # Using the formula: ||a - b||^2 = ||a||^2 + ||b||^2 - 2*a·b
    xx = np.sum(X ** 2, axis=1)[:, np.newaxis]
    yy = xx.T
    xy = np.dot(X, X.T)
    return np.sqrt(np.maximum(xx + yy - 2 * xy, 0))


def mean_pairwise_similarity(matrix: np.ndarray, indices: Optional[List[int]] = None) -> Optional[float]:
    """Average of the upper triangle of a similarity matrix.

    Args:
        matrix: Pairwise similarity matrix
        indices: Restrict to these rows/columns (default: all)

    Returns:
        Mean similarity over all pairs, None if there are fewer than two entries
    """
    if indices is not None:
        matrix = matrix[np.ix_(indices, indices)]

    n = matrix.shape[0]
    if n < 2:
        return None

    upper = matrix[np.triu_indices(n, k=1)]
    return float(upper.mean())


def great_circle_distance(location1: Location, location2: Location) -> float:
    """Haversine distance between two locations in meters."""
    lat1 = math.radians(location1.latitude)
    lat2 = math.radians(location2.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(location2.longitude - location1.longitude)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c
