"""Tests for the incremental moment clustering engine."""

import logging
import threading

import pytest
import numpy as np

from photo_moments.compatibility import FACE_COUNT_MISMATCH, TIME_GAP
from photo_moments.criteria import ClusteringCriteria
from photo_moments.curation.clustering import (
    ClusteringEngine,
    CurationCancelled,
    PhotoState,
    centroid_fingerprint,
    clusters_with_min_photos,
    compute_clustering_statistics,
    filter_confident_clusters,
)
from photo_moments.curation.ranking import RankingEngine
from photo_moments.diagnostics import (
    ANALYSIS_FAILED,
    BURST_OVERRIDE,
    CLUSTER_CREATED,
    CLUSTER_FULL,
    FINGERPRINT_MALFORMED,
    FINGERPRINT_UNAVAILABLE,
    PHOTO_SPLIT,
    CollectingSink,
)
from photo_moments.features import FeatureProvider, FeatureUnavailable, StaticFeatureProvider
from photo_moments.photo import PhotoFeatures, QualityScores


@pytest.fixture
def sink():
    return CollectingSink()


@pytest.fixture
def engine(sink):
    criteria = ClusteringCriteria(retry_backoff=0)
    return ClusteringEngine(criteria, sink=sink)


def sizes(clusters):
    return [c.size for c in clusters]


class TestBasicClustering:
    """Tests for cluster formation."""

    def test_empty_input(self, engine):
        assert engine.cluster([]) == []

    def test_single_photo(self, engine, make_photo, fingerprint_at):
        clusters = engine.cluster([make_photo(0, fingerprint=fingerprint_at(1.0))])
        assert sizes(clusters) == [1]
        assert clusters[0].id == 'cluster-0001'

    def test_time_gap_scenario(self, engine, sink, make_photo, fingerprint_at):
        """Photos at 0s, 5s and 40s with identical fingerprints form two clusters."""
        fp = fingerprint_at(1.0)
        p1, p2, p3 = make_photo(0, fingerprint=fp), make_photo(5, fingerprint=fp), make_photo(40, fingerprint=fp)

        clusters = engine.cluster([p1, p2, p3])

        assert [[p.id for p in c.members] for c in clusters] == [[p1.id, p2.id], [p3.id]]
        split = sink.for_photo(p3.id)[0]
        assert split.kind == PHOTO_SPLIT
        assert split.data['reasons'] == [TIME_GAP]
        assert split.data['time_gap'] == 35.0

    def test_face_count_scenario(self, engine, sink, make_photo, fingerprint_at):
        """Face counts [1, 1, 1, 5] on otherwise matching photos split off the group shot."""
        fp = fingerprint_at(1.0)
        photos = [
            make_photo(seconds, fingerprint=fp, face_count=count)
            for seconds, count in ((0, 1), (15, 1), (30, 1), (45, 5))
        ]

        clusters = engine.cluster(photos)

        assert sizes(clusters) == [3, 1]
        assert clusters[1].members[0] is photos[3]
        split = sink.of_kind(PHOTO_SPLIT)[0]
        assert split.photo_id == photos[3].id
        assert FACE_COUNT_MISMATCH in split.data['reasons']

    def test_burst_keeps_dissimilar_photos_together(self, engine, sink, make_photo, fingerprint_at):
        p1 = make_photo(0, fingerprint=fingerprint_at(1.0), face_count=1)
        p2 = make_photo(4, fingerprint=fingerprint_at(0.0, axis=2), face_count=8)

        clusters = engine.cluster([p1, p2])

        assert sizes(clusters) == [2]
        assert sink.of_kind(BURST_OVERRIDE)[0].photo_id == p2.id

    def test_input_order_does_not_matter(self, make_photo, fingerprint_at):
        fp = fingerprint_at(1.0)
        photos = [make_photo(s, fingerprint=fp) for s in (0, 5, 40, 45, 200)]

        forward = ClusteringEngine().cluster(photos)
        backward = ClusteringEngine().cluster(list(reversed(photos)))

        assert [[p.id for p in c.members] for c in forward] == [[p.id for p in c.members] for c in backward]

    def test_deterministic_ids(self, make_photo, fingerprint_at):
        fp = fingerprint_at(1.0)
        photos = [make_photo(s, fingerprint=fp) for s in (0, 100, 200)]
        engine = ClusteringEngine()

        first = [c.id for c in engine.cluster(photos)]
        second = [c.id for c in engine.cluster(photos[:])]

        assert first == second == ['cluster-0001', 'cluster-0002', 'cluster-0003']

    def test_joins_first_compatible_cluster(self, engine, make_photo, fingerprint_at):
        """A photo joins the earliest created cluster that accepts it."""
        a = fingerprint_at(1.0)
        b = fingerprint_at(0.0, axis=2)
        p1 = make_photo(0, fingerprint=a)
        p2 = make_photo(12, fingerprint=b)
        p3 = make_photo(24, fingerprint=a)

        clusters = engine.cluster([p1, p2, p3])

        assert [[p.id for p in c.members] for c in clusters] == [[p1.id, p3.id], [p2.id]]

    def test_photo_states(self, engine, make_photo, fingerprint_at):
        photos = [make_photo(s, fingerprint=fingerprint_at(1.0)) for s in (0, 50)]
        engine.cluster(photos)
        assert set(engine.photo_states.values()) == {PhotoState.ASSIGNED}

    def test_cluster_created_events(self, engine, sink, make_photo, fingerprint_at):
        photos = [make_photo(s, fingerprint=fingerprint_at(1.0)) for s in (0, 100)]
        clusters = engine.cluster(photos)

        created = sink.of_kind(CLUSTER_CREATED)
        assert [e.cluster_id for e in created] == [c.id for c in clusters]


class TestClusteringProperties:
    """Invariants that hold for any photo set."""

    @pytest.fixture
    def random_photos(self, make_photo, random_fingerprint):
        rng = np.random.RandomState(7)
        bases = [random_fingerprint(seed, dim=32) for seed in range(4)]
        photos = []
        seconds = 0.0
        for _ in range(80):
            seconds += float(rng.choice([2, 8, 15, 25, 60]))
            base = bases[rng.randint(len(bases))]
            noisy = base + rng.randn(32).astype(np.float32) * 0.05
            photos.append(make_photo(
                seconds,
                fingerprint=noisy.astype(np.float32),
                face_count=int(rng.choice([0, 1, 2, 4]))
            ))
        return photos

    @pytest.mark.parametrize('max_size', [1, 3, 20])
    def test_max_cluster_size(self, random_photos, max_size):
        criteria = ClusteringCriteria(max_cluster_size=max_size)
        clusters = ClusteringEngine(criteria).cluster(random_photos)
        assert all(c.size <= max_size for c in clusters)

    def test_every_photo_in_exactly_one_cluster(self, random_photos):
        clusters = ClusteringEngine().cluster(random_photos)
        ids = [p.id for c in clusters for p in c.members]
        assert sorted(ids) == sorted(p.id for p in random_photos)

    def test_threshold_one_gives_singletons(self, make_photo, random_fingerprint):
        """Outside the burst window, noisy copies of one shot never merge at threshold 1.0."""
        rng = np.random.RandomState(3)
        base = random_fingerprint(0, dim=32)
        photos = [
            make_photo(20 * i, fingerprint=(base + rng.randn(32) * 0.01).astype(np.float32))
            for i in range(10)
        ]

        criteria = ClusteringCriteria(visual_similarity_threshold=1.0)
        clusters = ClusteringEngine(criteria).cluster(photos)

        assert sizes(clusters) == [1] * 10

    def test_raising_threshold_never_merges(self, make_photo, fingerprint_at):
        photos = [
            make_photo(0, fingerprint=fingerprint_at(1.0)),
            make_photo(20, fingerprint=fingerprint_at(0.7)),
            make_photo(40, fingerprint=fingerprint_at(1.0)),
        ]
        loose = ClusteringEngine(ClusteringCriteria(visual_similarity_threshold=0.5, time_gap_threshold=60))
        strict = ClusteringEngine(ClusteringCriteria(visual_similarity_threshold=0.9, time_gap_threshold=60))

        assert len(loose.cluster(photos)) == 1
        assert len(strict.cluster(photos)) == 2


class TestMaxClusterSize:
    """Tests for full-cluster handling."""

    def test_full_cluster_falls_through(self, sink, make_photo, fingerprint_at):
        fp = fingerprint_at(1.0)
        photos = [make_photo(i, fingerprint=fp) for i in range(30)]
        engine = ClusteringEngine(ClusteringCriteria(max_cluster_size=20), sink=sink)

        clusters = engine.cluster(photos)

        assert sizes(clusters) == [20, 10]
        full = sink.of_kind(CLUSTER_FULL)
        assert len(full) == 10
        assert all(e.cluster_id == 'cluster-0001' for e in full)


class TestMissingData:
    """Tests for degraded analysis."""

    def test_missing_fingerprint_still_clustered(self, engine, sink, make_photo, fingerprint_at):
        p1 = make_photo(0, fingerprint=fingerprint_at(1.0))
        p2 = make_photo(20)

        clusters = engine.cluster([p1, p2])

        assert sizes(clusters) == [2]
        warnings = sink.of_kind(FINGERPRINT_UNAVAILABLE)
        assert [e.photo_id for e in warnings] == [p2.id]
        assert engine.warnings == warnings

    def test_malformed_fingerprint(self, engine, sink, make_photo, fingerprint_at):
        p1 = make_photo(0, fingerprint=fingerprint_at(1.0))
        bad = make_photo(20, fingerprint=np.array([np.nan] * 8, dtype=np.float32))

        clusters = engine.cluster([p1, bad])

        assert sizes(clusters) == [1, 1]
        assert sink.of_kind(FINGERPRINT_MALFORMED)[0].photo_id == bad.id
        assert clusters[1].representative_fingerprint is None

    def test_malformed_fingerprint_warns_once(self, caplog, make_photo, fingerprint_at):
        photos = [
            make_photo(0, fingerprint=fingerprint_at(1.0)),
            make_photo(12, fingerprint=fingerprint_at(0.0, axis=3)),
            make_photo(24, fingerprint=fingerprint_at(0.0, axis=5)),
            make_photo(36, fingerprint=np.array([np.nan] * 8, dtype=np.float32)),
        ]

        with caplog.at_level(logging.DEBUG, logger='photo_moments'):
            clusters = ClusteringEngine(ClusteringCriteria()).cluster(photos)

        assert sizes(clusters) == [1, 1, 1, 1]
        warnings = [r for r in caplog.records if r.levelno >= logging.WARNING]
        assert len(warnings) == 1
        assert FINGERPRINT_MALFORMED in warnings[0].getMessage()
        assert "Similarity unavailable" in caplog.text

    def test_malformed_fingerprint_joins_by_burst(self, engine, make_photo, fingerprint_at):
        p1 = make_photo(0, fingerprint=fingerprint_at(1.0))
        bad = make_photo(3, fingerprint=np.array([np.nan] * 8, dtype=np.float32))
        assert sizes(engine.cluster([p1, bad])) == [2]

    def test_fingerprinted_photo_cannot_join_cluster_without_fingerprint(self, engine, make_photo, fingerprint_at):
        p1 = make_photo(0)
        p2 = make_photo(20, fingerprint=fingerprint_at(1.0))
        assert sizes(engine.cluster([p1, p2])) == [1, 1]


class CountingProvider(StaticFeatureProvider):
    def __init__(self, features=None):
        super().__init__(features)
        self.releases = 0

    def release_batch(self):
        self.releases += 1


class FlakyProvider(FeatureProvider):
    """Fails a fixed number of times per photo before answering."""

    def __init__(self, features, failures):
        self.features = features
        self.failures = failures
        self.calls = {}

    def analyze(self, photo):
        self.calls[photo.id] = self.calls.get(photo.id, 0) + 1
        if self.calls[photo.id] <= self.failures:
            raise FeatureUnavailable(photo.id)
        return self.features


class BrokenProvider(FeatureProvider):
    def analyze(self, photo):
        raise RuntimeError("model crashed")


class TestFeatureProvider:
    """Tests for analysis through a feature provider."""

    def test_provider_fills_missing_features(self, make_photo, fingerprint_at):
        photos = [make_photo(0, photo_id='a'), make_photo(20, photo_id='b')]
        provider = CountingProvider({
            'a': PhotoFeatures(fingerprint=fingerprint_at(1.0), face_count=1, quality_scores=QualityScores(technical=0.5)),
            'b': PhotoFeatures(fingerprint=fingerprint_at(0.9), face_count=2, quality_scores=QualityScores(technical=0.7)),
        })
        engine = ClusteringEngine(ClusteringCriteria(retry_backoff=0), feature_provider=provider)

        clusters = engine.cluster(photos)

        assert sizes(clusters) == [2]
        assert photos[1].face_count == 2
        assert provider.calls == {'a': 1, 'b': 1}

    def test_analyzed_photos_skip_provider(self, make_photo, fingerprint_at):
        photo = make_photo(0, fingerprint=fingerprint_at(1.0), face_count=0, quality={'technical': 0.5})
        provider = CountingProvider()
        ClusteringEngine(feature_provider=provider).cluster([photo])
        assert provider.calls == {}

    def test_release_between_batches(self, make_photo, fingerprint_at):
        photos = [make_photo(s * 100, fingerprint=fingerprint_at(1.0)) for s in range(12)]
        provider = CountingProvider()
        engine = ClusteringEngine(ClusteringCriteria(batch_size=5, retry_backoff=0), feature_provider=provider)

        engine.cluster(photos)

        assert provider.releases == 3

    def test_transient_failures_are_retried(self, make_photo, fingerprint_at):
        photo = make_photo(0)
        provider = FlakyProvider(PhotoFeatures(fingerprint=fingerprint_at(1.0)), failures=2)
        engine = ClusteringEngine(ClusteringCriteria(fingerprint_retries=2, retry_backoff=0), feature_provider=provider)

        engine.cluster([photo])

        assert provider.calls[photo.id] == 3
        assert photo.fingerprint is not None
        assert engine.warnings == []

    def test_exhausted_retries_degrade(self, sink, make_photo, fingerprint_at):
        photo = make_photo(0)
        provider = FlakyProvider(PhotoFeatures(fingerprint=fingerprint_at(1.0)), failures=5)
        engine = ClusteringEngine(
            ClusteringCriteria(fingerprint_retries=1, retry_backoff=0),
            feature_provider=provider,
            sink=sink
        )

        clusters = engine.cluster([photo])

        assert sizes(clusters) == [1]
        assert provider.calls[photo.id] == 2
        event = sink.of_kind(FINGERPRINT_UNAVAILABLE)[0]
        assert event.data['attempts'] == 2

    def test_provider_errors_are_absorbed(self, sink, make_photo):
        photos = [make_photo(0), make_photo(5)]
        engine = ClusteringEngine(ClusteringCriteria(retry_backoff=0), feature_provider=BrokenProvider(), sink=sink)

        clusters = engine.cluster(photos)

        assert sizes(clusters) == [2]
        assert len(sink.of_kind(ANALYSIS_FAILED)) == 2


class TestProgressAndCancellation:
    """Tests for progress reporting and cooperative cancellation."""

    def test_progress_callback(self, engine, make_photo, fingerprint_at):
        calls = []
        photos = [make_photo(s, fingerprint=fingerprint_at(1.0)) for s in range(0, 70, 10)]

        engine.cluster(photos, progress_callback=lambda done, total: calls.append((done, total)))

        assert calls == [(i, 7) for i in range(1, 8)]

    def test_cancel_before_start(self, engine, make_photo):
        event = threading.Event()
        event.set()

        with pytest.raises(CurationCancelled) as exc_info:
            engine.cluster([make_photo(0), make_photo(1)], cancel_event=event)

        assert exc_info.value.completed == 0
        assert exc_info.value.total == 2

    def test_cancel_mid_run(self, engine, make_photo):
        event = threading.Event()

        def on_progress(done, total):
            if done == 3:
                event.set()

        photos = [make_photo(s) for s in range(10)]
        with pytest.raises(CurationCancelled) as exc_info:
            engine.cluster(photos, progress_callback=on_progress, cancel_event=event)

        assert exc_info.value.completed == 3


class TestRepresentativeRefresh:
    """Tests for the optional representative fingerprint refresh."""

    def test_fixed_by_default(self, engine, make_photo, fingerprint_at):
        first = fingerprint_at(1.0)
        clusters = engine.cluster([make_photo(0, fingerprint=first), make_photo(20, fingerprint=fingerprint_at(0.8))])
        np.testing.assert_array_equal(clusters[0].representative_fingerprint, first)

    def test_refresh_to_centroid(self, make_photo, fingerprint_at):
        a, b = fingerprint_at(1.0), fingerprint_at(0.8)
        engine = ClusteringEngine(ClusteringCriteria(representative_refresh_interval=2))

        clusters = engine.cluster([make_photo(0, fingerprint=a), make_photo(20, fingerprint=b)])

        expected = (a + b) / 2
        np.testing.assert_allclose(clusters[0].representative_fingerprint, expected, atol=1e-6)

    def test_centroid_without_fingerprints(self, make_photo):
        from photo_moments.photo import Cluster
        cluster = Cluster(id='c')
        cluster.add(make_photo(0))
        assert centroid_fingerprint(cluster) is None


class TestStatistics:
    """Tests for clustering statistics and filters."""

    def test_empty(self):
        stats = compute_clustering_statistics([])
        assert stats['n_clusters'] == 0
        assert stats['confidence_distribution'] == {'high': 0, 'medium': 0, 'low': 0}

    def test_statistics(self, make_photo, fingerprint_at):
        fp = fingerprint_at(1.0)
        photos = [make_photo(s, fingerprint=fp) for s in (0, 5, 9, 100, 300)]
        clusters = ClusteringEngine().cluster(photos)

        stats = compute_clustering_statistics(clusters)

        assert stats['n_clusters'] == 3
        assert stats['n_photos'] == 5
        assert stats['singleton_clusters'] == 2
        assert stats['largest_cluster_size'] == 3
        assert stats['important_moments'] == 1
        assert stats['important_moments_percentage'] == pytest.approx(100 / 3)
        assert stats['avg_cluster_size'] == pytest.approx(5 / 3)

    def test_filters(self, make_photo, fingerprint_at):
        fp = fingerprint_at(1.0)
        photos = [make_photo(s, fingerprint=fp, quality={'technical': q}) for s, q in ((0, 0.9), (5, 0.9), (100, 0.2))]
        clusters = ClusteringEngine().cluster(photos)
        RankingEngine().rank_all(clusters)

        assert clusters_with_min_photos(clusters, 2) == [clusters[0]]
        assert filter_confident_clusters(clusters, 0.5) == [clusters[0]]
        assert filter_confident_clusters(clusters, 0.0) == clusters
