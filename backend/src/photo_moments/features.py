"""Feature provider interface.

Fingerprint extraction and quality scoring happen outside this package. A
FeatureProvider hands the engine already-computed values for one photo at a
time; calls are serialized per photo so the underlying model runtime never
sees concurrent requests from the engine.
"""

from typing import Dict, Optional
import logging

from tenacity import (
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from .photo import Photo, PhotoFeatures

logger = logging.getLogger(__name__)


class FeatureUnavailable(Exception):
    """Raised by a provider when analysis for a photo transiently fails."""
    pass


class FeatureProvider:
    """Abstract source of fingerprints and quality signals.

    Subclasses implement analyze(). Returning None or raising
    FeatureUnavailable marks the analysis as unavailable for this attempt.
    """

    def analyze(self, photo: Photo) -> Optional[PhotoFeatures]:
        """Return fingerprint, face count and quality scores for a photo."""
        raise NotImplementedError

    def release_batch(self) -> None:
        """Free per-image buffers held since the previous batch."""
        pass


class StaticFeatureProvider(FeatureProvider):
    """Serves features computed ahead of time, keyed by photo id.

    Usage:
        provider = StaticFeatureProvider({'IMG_0001': PhotoFeatures(fingerprint=vec)})
        features = provider.analyze(photo)
    """

    def __init__(self, features: Optional[Dict[str, PhotoFeatures]] = None):
        self._features: Dict[str, PhotoFeatures] = dict(features or {})
        self.calls: Dict[str, int] = {}

    def add(self, photo_id: str, features: PhotoFeatures):
        self._features[photo_id] = features

    def analyze(self, photo: Photo) -> Optional[PhotoFeatures]:
        self.calls[photo.id] = self.calls.get(photo.id, 0) + 1
        return self._features.get(photo.id)

    def __len__(self) -> int:
        return len(self._features)


def _log_retry(retry_state):
    photo = retry_state.args[0] if retry_state.args else None
    photo_id = photo.id if isinstance(photo, Photo) else '?'
    logger.debug(f"Analysis unavailable for {photo_id}, attempt {retry_state.attempt_number} failed; retrying")


def fetch_features(
    provider: FeatureProvider,
    photo: Photo,
    retries: int = 2,
    backoff: float = 0.1
) -> Optional[PhotoFeatures]:
    """Ask a provider for a photo's features with bounded retries.

    Args:
        provider: Feature provider
        photo: Photo to analyze
        retries: Extra attempts after the first failure
        backoff: Seconds to wait between attempts

    Returns:
        PhotoFeatures, or None if every attempt was unavailable

    Raises:
        Exception: Anything other than FeatureUnavailable raised by the provider
    """
    retrying = Retrying(
        stop=stop_after_attempt(retries + 1),
        wait=wait_fixed(backoff),
        retry=(
            retry_if_exception_type(FeatureUnavailable)
            | retry_if_result(lambda result: result is None)
        ),
        before_sleep=_log_retry,
        retry_error_callback=lambda retry_state: None,
    )
    return retrying(provider.analyze, photo)
