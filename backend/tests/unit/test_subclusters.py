"""Tests for near-duplicate and pose-group detection."""

import pytest

from photo_moments.criteria import ClusteringCriteria
from photo_moments.curation import subclusters
from photo_moments.curation.ranking import RankingEngine
from photo_moments.curation.subclusters import (
    NEAR_DUPLICATE,
    POSE_GROUP,
    SubClusterEngine,
    find_similar_photos,
    group_by_similarity,
)
from photo_moments.diagnostics import SUB_CLUSTERS_FOUND, CollectingSink
from photo_moments.photo import Cluster


def make_cluster(cluster_id, *photos):
    cluster = Cluster(id=cluster_id)
    for photo in photos:
        cluster.add(photo)
    return cluster


class TestGroupBySimilarity:
    """Tests for leader-based grouping."""

    def test_groups_around_leader(self, make_photo, fingerprint_at):
        a = make_photo(0, fingerprint=fingerprint_at(1.0))
        b = make_photo(1, fingerprint=fingerprint_at(0.95))
        c = make_photo(2, fingerprint=fingerprint_at(0.0, axis=3))

        groups = group_by_similarity([a, b, c], threshold=0.9)

        assert groups == [[a, b]]

    def test_singletons_dropped(self, make_photo, fingerprint_at):
        photos = [make_photo(i, fingerprint=fingerprint_at(0.0, axis=i + 1)) for i in range(3)]
        assert group_by_similarity(photos, threshold=0.9) == []

    def test_missing_fingerprints_never_grouped(self, make_photo, fingerprint_at):
        a = make_photo(0, fingerprint=fingerprint_at(1.0))
        assert group_by_similarity([a, make_photo(1), make_photo(2)], threshold=0.5) == []

    def test_pause_between_leaders(self, monkeypatch, make_photo, fingerprint_at):
        pauses = []
        monkeypatch.setattr(subclusters.time, 'sleep', lambda seconds: pauses.append(seconds))
        photos = [make_photo(i, fingerprint=fingerprint_at(0.0, axis=i + 1)) for i in range(3)]

        group_by_similarity(photos, threshold=0.9, pause=0.25)

        assert pauses == [0.25, 0.25]

    def test_default_criteria_do_not_pause(self, monkeypatch, make_photo, fingerprint_at):
        pauses = []
        monkeypatch.setattr(subclusters.time, 'sleep', lambda seconds: pauses.append(seconds))
        photos = [make_photo(i, fingerprint=fingerprint_at(0.0, axis=i + 1)) for i in range(4)]

        SubClusterEngine().partition(make_cluster('c', *photos))

        assert ClusteringCriteria().sub_cluster_pause == 0.0
        assert pauses == []


class TestSubClusterEngine:
    """Tests for SubClusterEngine partitioning."""

    def test_near_duplicates_then_pose_groups(self, make_photo, fingerprint_at):
        dup1 = make_photo(0, fingerprint=fingerprint_at(1.0))
        dup2 = make_photo(1, fingerprint=fingerprint_at(1.0))
        pose1 = make_photo(2, fingerprint=fingerprint_at(1.0)[::-1].copy())
        pose2 = make_photo(3, fingerprint=fingerprint_at(0.87)[::-1].copy())
        cluster = make_cluster('c', dup1, dup2, pose1, pose2)

        subs = SubClusterEngine().partition(cluster)

        assert [(s.kind, [p.id for p in s.members]) for s in subs] == [
            (NEAR_DUPLICATE, [dup1.id, dup2.id]),
            (POSE_GROUP, [pose1.id, pose2.id]),
        ]
        assert cluster.sub_clusters == subs

    def test_leader_is_highest_ranked(self, make_photo, fingerprint_at):
        fp = fingerprint_at(1.0)
        weak = make_photo(0, fingerprint=fp, quality={'technical': 0.2})
        strong = make_photo(0, fingerprint=fp, quality={'technical': 0.9})
        cluster = make_cluster('c', weak, strong)
        RankingEngine().rank(cluster)

        subs = SubClusterEngine().partition(cluster)

        assert subs[0].leader is strong
        assert subs[0].size == 2

    def test_no_groups(self, make_photo, fingerprint_at):
        cluster = make_cluster('c', make_photo(0, fingerprint=fingerprint_at(1.0)))
        assert SubClusterEngine().partition(cluster) == []
        assert cluster.sub_clusters == []

    def test_custom_thresholds(self, make_photo, fingerprint_at):
        a = make_photo(0, fingerprint=fingerprint_at(1.0))
        b = make_photo(1, fingerprint=fingerprint_at(0.75))
        cluster = make_cluster('c', a, b)
        criteria = ClusteringCriteria(near_duplicate_threshold=0.95, pose_group_threshold=0.7)

        subs = SubClusterEngine(criteria).partition(cluster)

        assert [s.kind for s in subs] == [POSE_GROUP]

    def test_emits_event(self, make_photo, fingerprint_at):
        sink = CollectingSink()
        fp = fingerprint_at(1.0)
        cluster = make_cluster('c', make_photo(0, fingerprint=fp), make_photo(1, fingerprint=fp))

        SubClusterEngine(sink=sink).partition(cluster)

        event = sink.of_kind(SUB_CLUSTERS_FOUND)[0]
        assert event.cluster_id == 'c'
        assert event.data == {'near_duplicates': 1, 'pose_groups': 0}


class TestFindSimilarPhotos:
    """Tests for cross-cluster similar photo groups."""

    def test_across_clusters(self, make_photo, fingerprint_at):
        a = make_photo(0, fingerprint=fingerprint_at(1.0))
        b = make_photo(100, fingerprint=fingerprint_at(0.75))
        c = make_photo(200, fingerprint=fingerprint_at(0.0, axis=3))
        clusters = [make_cluster('c1', a), make_cluster('c2', b), make_cluster('c3', c)]

        groups = find_similar_photos(clusters)

        assert groups == [[a, b]]

    def test_threshold(self, make_photo, fingerprint_at):
        a = make_photo(0, fingerprint=fingerprint_at(1.0))
        b = make_photo(100, fingerprint=fingerprint_at(0.75))
        clusters = [make_cluster('c1', a), make_cluster('c2', b)]

        assert find_similar_photos(clusters, threshold=0.8) == []
