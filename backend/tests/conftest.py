"""Shared fixtures for photo moment tests."""

from datetime import datetime, timedelta
import itertools

import numpy as np
import pytest

from photo_moments.photo import Location, Photo, QualityScores

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0)


def axis_fingerprint(similarity: float, dim: int = 8, axis: int = 1) -> np.ndarray:
    """Unit vector whose euclidean similarity to the first basis vector is `similarity`."""
    theta = 2 * np.arcsin((1.0 - similarity) / 2)
    vector = np.zeros(dim, dtype=np.float32)
    vector[0] = np.cos(theta)
    vector[axis] = np.sin(theta)
    return vector


@pytest.fixture
def base_time():
    return BASE_TIME


@pytest.fixture
def fingerprint_at():
    """Factory for fingerprints at a given similarity to the first basis vector."""
    return axis_fingerprint


@pytest.fixture
def random_fingerprint():
    """Factory for random unit fingerprints (distinct seeds are unrelated)."""
    def _make(seed: int, dim: int = 128) -> np.ndarray:
        rng = np.random.RandomState(seed)
        vector = rng.randn(dim).astype(np.float32)
        return vector / np.linalg.norm(vector)
    return _make


@pytest.fixture
def make_photo():
    """Factory for photos taken `seconds` after a fixed base time."""
    counter = itertools.count(1)

    def _make(
        seconds: float = 0.0,
        fingerprint=None,
        face_count=None,
        location=None,
        quality=None,
        photo_id=None
    ) -> Photo:
        n = next(counter)
        if isinstance(location, tuple):
            location = Location(*location)
        if isinstance(quality, dict):
            quality = QualityScores(**quality)
        return Photo(
            id=photo_id or f"IMG_{n:04d}",
            timestamp=BASE_TIME + timedelta(seconds=seconds),
            location=location,
            fingerprint=fingerprint,
            face_count=face_count,
            quality_scores=quality
        )

    return _make
