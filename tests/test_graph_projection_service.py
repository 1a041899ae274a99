"""Tests for graph projection: node/edge styling, graphs, subgraphs and search."""
import datetime
import zlib

import pytest

from realm_graph.exceptions import AccessDeniedError, NoteNotFoundError
from realm_graph.models.schema import RelationshipType
from realm_graph.services.graph_projection_service import (
    DEFAULT_EDGE_COLOR,
    DEFAULT_NODE_COLOR,
    TAG_PALETTE,
    build_edge,
    build_node,
    edge_color,
    edge_width,
    node_color,
    node_size,
    tag_color,
)
from tests.conftest import FIXED_NOW, OTHER_OWNER, OWNER, at, link, make_note


def days_ago(days):
    return FIXED_NOW - datetime.timedelta(days=days)


class TestStyling:
    def test_tag_color_is_stable_crc32(self):
        expected = TAG_PALETTE[zlib.crc32("ai".encode("utf-8")) % len(TAG_PALETTE)]
        assert tag_color("ai") == expected
        assert tag_color("ai") == tag_color("ai")

    def test_tagged_note_uses_first_tag(self):
        note = make_note("a", tags=["physics", "ai"], created_at=days_ago(200))
        assert node_color(note, FIXED_NOW) == tag_color("physics")

    @pytest.mark.parametrize(
        "age_days, color",
        [
            (0, "#4CAF50"),
            (3, "#4CAF50"),
            (10, "#2196F3"),
            (45, "#FF9800"),
            (120, DEFAULT_NODE_COLOR),
        ],
    )
    def test_untagged_note_colored_by_age(self, age_days, color):
        note = make_note("a", created_at=days_ago(age_days))
        assert node_color(note, FIXED_NOW) == color

    def test_node_size(self):
        note = make_note("a", content="x" * 1000)
        assert node_size(note, 0) == 35
        assert node_size(note, 3) == 44
        big = make_note("b", content="x" * 10000)
        assert node_size(big, 10) == 30 + 20 + 15

    def test_edge_styling(self):
        assert edge_color(RelationshipType.SUPPORTS) == "#4CAF50"
        assert edge_color(RelationshipType.CONTRADICTS) == "#F44336"
        assert edge_color(None) == DEFAULT_EDGE_COLOR
        assert edge_width(0.0) == 1.0
        assert edge_width(0.5) == pytest.approx(2.5)
        assert edge_width(1.0) == 4.0

    def test_build_node_preview(self):
        note = make_note(
            "a",
            content="<p>" + "x" * 150 + "</p>",
            relationships=[link("a", "b")],
            created_at=days_ago(1),
        )
        node = build_node(note, FIXED_NOW)
        assert node.content == "x" * 100 + "..."
        assert node.connection_count == 1
        assert node.selected is False
        assert node.highlighted is False

    def test_build_edge(self):
        rel = link("a", "b", RelationshipType.EXPLAINS, context="why", strength=0.25)
        edge = build_edge(rel)
        assert (edge.source, edge.target, edge.type) == ("a", "b", RelationshipType.EXPLAINS)
        assert edge.context == "why"
        assert edge.color == "#00BCD4"
        assert edge.width == pytest.approx(1.75)


class TestProjectGraph:
    @pytest.fixture
    def graph(self, store):
        store.save(make_note("c", updated_at=at(1)))
        store.save(make_note("b", updated_at=at(2)))
        store.save(
            make_note(
                "a",
                updated_at=at(3),
                relationships=[link("a", "b"), link("a", "c", RelationshipType.SUPPORTS)],
            )
        )
        store.save(make_note("theirs", owner_id=OTHER_OWNER))

    def test_full_graph(self, projection_service, graph):
        data = projection_service.project_graph(OWNER)
        assert [n.id for n in data.nodes] == ["a", "b", "c"]
        assert {(e.source, e.target) for e in data.edges} == {("a", "b"), ("a", "c")}
        assert data.total_nodes == 3
        assert data.total_edges == 2
        assert data.center_node_id is None

    def test_truncation_drops_dangling_edges(self, projection_service, graph):
        data = projection_service.project_graph(OWNER, max_nodes=2)
        assert [n.id for n in data.nodes] == ["a", "b"]
        assert [(e.source, e.target) for e in data.edges] == [("a", "b")]

    @pytest.mark.parametrize("max_nodes", [None, 0, -1])
    def test_non_positive_limit_means_everything(self, projection_service, graph, max_nodes):
        assert projection_service.project_graph(OWNER, max_nodes=max_nodes).total_nodes == 3

    def test_empty_owner(self, projection_service, graph):
        data = projection_service.project_graph("nobody")
        assert data.nodes == []
        assert data.edges == []


class TestProjectSubgraph:
    @pytest.fixture
    def graph(self, store):
        """c -> a -> b -> d -> e, and an unrelated note z."""
        store.save(make_note("e"))
        store.save(make_note("d", relationships=[link("d", "e")]))
        store.save(make_note("b", relationships=[link("b", "d")]))
        store.save(make_note("a", relationships=[link("a", "b")]))
        store.save(make_note("c", relationships=[link("c", "a")]))
        store.save(make_note("z"))
        store.save(make_note("foreign", owner_id=OTHER_OWNER))

    def test_depth_one(self, projection_service, graph):
        data = projection_service.project_subgraph(OWNER, "a", depth=1)
        assert data.center_node_id == "a"
        assert data.node_ids() == {"a", "b", "c"}
        assert data.nodes[0].id == "a"
        assert [n.id for n in data.nodes if n.selected] == ["a"]
        assert {(e.source, e.target) for e in data.edges} == {("a", "b"), ("c", "a")}

    def test_depth_is_clamped(self, projection_service, graph):
        assert projection_service.project_subgraph(OWNER, "a", depth=0).node_ids() == {
            "a",
            "b",
            "c",
        }
        deep = projection_service.project_subgraph(OWNER, "a", depth=10)
        assert deep.node_ids() == {"a", "b", "c", "d", "e"}

    def test_default_depth(self, projection_service, graph):
        data = projection_service.project_subgraph(OWNER, "a", depth=None)
        assert data.node_ids() == {"a", "b", "c", "d"}

    def test_missing_center(self, projection_service, projection_cache, graph):
        with pytest.raises(NoteNotFoundError):
            projection_service.project_subgraph(OWNER, "missing")
        assert projection_cache.misses == 0

    def test_foreign_center(self, projection_service, projection_cache, graph):
        with pytest.raises(AccessDeniedError):
            projection_service.project_subgraph(OWNER, "foreign")
        assert projection_cache.misses == 0

    def test_cache_hit(self, projection_service, projection_cache, graph):
        first = projection_service.project_subgraph(OWNER, "a", depth=1)
        second = projection_service.project_subgraph(OWNER, "a", depth=1)
        assert second is first
        assert projection_cache.hits == 1
        assert projection_cache.misses == 1

    def test_relationship_change_invalidates(
        self, projection_service, projection_cache, relationship_service, graph
    ):
        projection_service.project_subgraph(OWNER, "a", depth=1)
        assert len(projection_cache) == 1

        relationship_service.create_relationship("b", "z", owner_id=OWNER)
        assert len(projection_cache) == 0

        data = projection_service.project_subgraph(OWNER, "a", depth=1)
        assert "z" not in data.node_ids()
        assert projection_cache.misses == 2

    def test_note_edit_invalidates(
        self, projection_service, projection_cache, note_service, graph
    ):
        projection_service.project_subgraph(OWNER, "a", depth=1)
        note_service.update_note("b", OWNER, title="Renamed")
        assert len(projection_cache) == 0

        data = projection_service.project_subgraph(OWNER, "a", depth=1)
        titles = {n.id: n.title for n in data.nodes}
        assert titles["b"] == "Renamed"

    def test_edit_outside_projection_keeps_cache(
        self, projection_service, projection_cache, note_service, graph
    ):
        projection_service.project_subgraph(OWNER, "a", depth=1)
        note_service.update_note("z", OWNER, content="elsewhere")
        assert len(projection_cache) == 1

    def test_unrelated_change_keeps_cache(
        self, projection_service, projection_cache, relationship_service, store, graph
    ):
        store.save(make_note("y"))
        projection_service.project_subgraph(OWNER, "a", depth=1)
        relationship_service.create_relationship("z", "y", owner_id=OWNER)
        assert len(projection_cache) == 1


class TestSearchNodes:
    @pytest.fixture
    def notes(self, store):
        store.save(make_note("theory", title="Graph theory", updated_at=at(1)))
        store.save(make_note("body", title="Notes", content="graph stuff", updated_at=at(3)))
        store.save(make_note("intro", title="graph intro", updated_at=at(2)))
        store.save(make_note("tagged", title="Misc", tags=["graphs"], updated_at=at(4)))
        store.save(make_note("other", title="Cooking", updated_at=at(5)))

    def test_title_matches_first_then_recency(self, projection_service, notes):
        results = projection_service.search_nodes(OWNER, "Graph")
        assert [n.id for n in results] == ["intro", "theory", "tagged", "body"]
        assert all(n.highlighted for n in results)

    def test_padding_is_part_of_the_query(self, projection_service, store):
        store.save(make_note("air", title="Airline routes"))
        store.save(make_note("ai", title="Notes on AI safety"))
        assert [n.id for n in projection_service.search_nodes(OWNER, "ai ")] == ["ai"]

    def test_blank_query(self, projection_service, notes):
        assert projection_service.search_nodes(OWNER, "") == []
        assert projection_service.search_nodes(OWNER, "   ") == []

    def test_other_owner_sees_nothing(self, projection_service, notes):
        assert projection_service.search_nodes(OTHER_OWNER, "graph") == []

    def test_result_limit(self, projection_service, store, test_config, monkeypatch):
        for i in range(5):
            store.save(make_note(f"n{i}", title=f"topic {i}"))
        monkeypatch.setattr(test_config, "search_result_limit", 3)
        assert len(projection_service.search_nodes(OWNER, "topic")) == 3
