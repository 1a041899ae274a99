"""Tests for connected-component clustering."""
import pytest

from realm_graph.exceptions import ErrorCode, ValidationError
from realm_graph.models.schema import RelationshipType
from realm_graph.services.cluster_service import cluster_cohesion
from tests.conftest import OTHER_OWNER, OWNER, at, link, make_note


def test_cohesion():
    assert cluster_cohesion(0, 1) == 0.0
    assert cluster_cohesion(1, 2) == 0.5
    assert cluster_cohesion(2, 2) == 1.0
    assert cluster_cohesion(2, 3) == pytest.approx(1 / 3)


class TestFindClusters:
    @pytest.fixture
    def graph(self, store):
        """Two components: a <-> b (dense), c -> d -> e (sparse); f alone."""
        store.save(make_note("b", updated_at=at(6)))
        store.save(make_note("a", updated_at=at(5), relationships=[link("a", "b")]))
        b = store.find_note_by_id("b")
        b.relationships = [link("b", "a")]
        store.save(b)

        store.save(make_note("e", updated_at=at(4)))
        store.save(make_note("d", updated_at=at(3), relationships=[link("d", "e")]))
        store.save(make_note("c", updated_at=at(2), relationships=[link("c", "d")]))
        store.save(make_note("f", updated_at=at(1)))
        store.save(make_note("foreign", owner_id=OTHER_OWNER))

    def test_components_sorted_by_cohesion(self, cluster_service, graph):
        clusters = cluster_service.find_clusters(OWNER)
        assert [sorted(c.note_ids) for c in clusters] == [["a", "b"], ["c", "d", "e"]]
        assert clusters[0].cohesion == 1.0
        assert clusters[1].cohesion == pytest.approx(2 / 6)

    def test_min_size(self, cluster_service, graph):
        clusters = cluster_service.find_clusters(OWNER, min_size=3)
        assert [sorted(c.note_ids) for c in clusters] == [["c", "d", "e"]]

        singles = cluster_service.find_clusters(OWNER, min_size=1)
        assert sorted(c.note_ids[0] for c in singles if c.size == 1) == ["f"]
        assert singles[-1].cohesion == 0.0

    def test_direction_is_ignored(self, cluster_service, graph):
        # e only has an incoming edge but is still clustered with c and d
        clusters = cluster_service.find_clusters(OWNER, min_size=3)
        assert "e" in clusters[0].note_ids

    def test_parallel_edges_count_separately(self, cluster_service, store):
        store.save(make_note("y"))
        store.save(
            make_note(
                "x",
                relationships=[
                    link("x", "y"),
                    link("x", "y", RelationshipType.SUPPORTS),
                    link("x", "y", RelationshipType.EXPLAINS),
                ],
            )
        )
        clusters = cluster_service.find_clusters(OWNER)
        assert clusters[0].cohesion == 1.5

    def test_ties_keep_discovery_order(self, cluster_service, store):
        store.save(make_note("q", updated_at=at(1)))
        store.save(make_note("p", updated_at=at(2), relationships=[link("p", "q")]))
        store.save(make_note("n", updated_at=at(3)))
        store.save(make_note("m", updated_at=at(4), relationships=[link("m", "n")]))
        clusters = cluster_service.find_clusters(OWNER)
        assert [c.note_ids[0] for c in clusters] == ["m", "p"]

    def test_other_owner_not_included(self, cluster_service, graph):
        assert cluster_service.find_clusters(OTHER_OWNER) == []

    @pytest.mark.parametrize("min_size", [0, -2])
    def test_invalid_min_size(self, cluster_service, min_size):
        with pytest.raises(ValidationError) as exc_info:
            cluster_service.find_clusters(OWNER, min_size=min_size)
        assert exc_info.value.code == ErrorCode.INVALID_LIMIT
