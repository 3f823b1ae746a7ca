"""JSON photo records.

A record file holds already-analyzed photos:

    {
      "photos": [
        {
          "id": "IMG_0001",
          "timestamp": "2024-05-01T10:00:00",
          "location": {"latitude": 48.85, "longitude": 2.29},
          "fingerprint": [0.12, -0.40, ...],
          "face_count": 2,
          "quality": {
            "technical": 0.8,
            "face_qualities": [0.7, 0.9],
            "aesthetic": 0.3,
            "composition": 0.6,
            "is_utility": false,
            "salient_regions": [{"x1": 0.1, "y1": 0.2, "x2": 0.5, "y2": 0.7}]
          }
        }
      ]
    }

Every field except id and timestamp is optional. A bare list of photo
records is accepted too.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import json
import logging

import numpy as np

from .photo import Location, Photo, QualityScores, SalientRegion

logger = logging.getLogger(__name__)


def quality_from_dict(data: Dict[str, Any]) -> QualityScores:
    regions = data.get('salient_regions')
    return QualityScores(
        technical=data.get('technical'),
        face_qualities=list(data.get('face_qualities') or []),
        aesthetic=data.get('aesthetic'),
        composition=data.get('composition'),
        is_utility=bool(data.get('is_utility', False)),
        salient_regions=[SalientRegion.from_dict(r) for r in regions] if regions is not None else None
    )


def quality_to_dict(scores: QualityScores) -> Dict[str, Any]:
    return {
        'technical': scores.technical,
        'face_qualities': list(scores.face_qualities),
        'aesthetic': scores.aesthetic,
        'composition': scores.composition,
        'is_utility': scores.is_utility,
        'salient_regions': (
            [r.to_dict() for r in scores.salient_regions]
            if scores.salient_regions is not None else None
        ),
    }


def photo_from_dict(data: Dict[str, Any]) -> Photo:
    """Create a Photo from a JSON record.

    Args:
        data: Record with at least 'id' and an ISO 8601 'timestamp'

    Returns:
        Photo instance

    Raises:
        ValueError: If a required field is missing or a value is invalid
    """
    if 'id' not in data or 'timestamp' not in data:
        raise ValueError(f"Photo record needs 'id' and 'timestamp': {data!r}")

    timestamp = data['timestamp']
    if isinstance(timestamp, str):
        timestamp = datetime.fromisoformat(timestamp)

    location = Location.from_dict(data['location']) if data.get('location') else None

    fingerprint = data.get('fingerprint')
    if fingerprint is not None:
        fingerprint = np.asarray(fingerprint, dtype=np.float32)

    quality = data.get('quality')

    return Photo(
        id=str(data['id']),
        timestamp=timestamp,
        location=location,
        fingerprint=fingerprint,
        face_count=data.get('face_count'),
        quality_scores=quality_from_dict(quality) if quality is not None else None
    )


def photo_to_dict(photo: Photo, include_fingerprint: bool = True) -> Dict[str, Any]:
    """Convert a Photo back to its JSON record."""
    data: Dict[str, Any] = {
        'id': photo.id,
        'timestamp': photo.timestamp.isoformat(),
        'location': photo.location.to_dict() if photo.location else None,
        'face_count': photo.face_count,
        'quality': quality_to_dict(photo.quality_scores) if photo.quality_scores else None,
    }
    if include_fingerprint:
        data['fingerprint'] = photo.fingerprint.tolist() if photo.fingerprint is not None else None
    return data


def load_photo_records(path: Union[str, Path], limit: Optional[int] = None) -> List[Photo]:
    """Load photos from a JSON record file.

    Args:
        path: JSON file with a "photos" list (or a bare list)
        limit: Load at most this many records

    Returns:
        List of Photo objects in file order

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file structure or a record is invalid
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Photo records not found: {path}")

    with open(path, 'r') as f:
        data = json.load(f)

    records = data.get('photos') if isinstance(data, dict) else data
    if not isinstance(records, list):
        raise ValueError(f"Expected a list of photo records in {path}")

    if limit is not None:
        records = records[:limit]

    photos = []
    for i, record in enumerate(records):
        try:
            photos.append(photo_from_dict(record))
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid photo record #{i} in {path}: {e}") from e

    logger.info(f"Loaded {len(photos)} photo records from {path}")
    return photos


def save_photo_records(photos: List[Photo], path: Union[str, Path]) -> None:
    """Write photos to a JSON record file."""
    with open(path, 'w') as f:
        json.dump({'photos': [photo_to_dict(p) for p in photos]}, f, indent=2)
