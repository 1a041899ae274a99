"""Tests for relationship strength scoring."""
import pytest

from realm_graph.models.schema import RelationshipType
from realm_graph.services import scoring
from realm_graph.services.scoring import StrengthWeights
from tests.conftest import link, make_note

DEFAULT_WEIGHTS = StrengthWeights()


class TestSimilarityTerms:
    def test_jaccard(self):
        assert scoring.jaccard({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)
        assert scoring.jaccard([], []) == 0.0
        assert scoring.jaccard(["x"], ["x"]) == 1.0

    def test_content_similarity_ignores_markup_and_case(self):
        a = make_note("a", content="<p>Neural <b>Networks</b></p>")
        b = make_note("b", content="neural networks")
        assert scoring.content_similarity(a, b) == 1.0

    def test_content_similarity_across_paragraphs(self):
        a = make_note("a", content="<p>alpha</p><p>beta</p>")
        b = make_note("b", content="alpha beta")
        assert scoring.content_similarity(a, b) == 1.0

    def test_tag_similarity(self):
        a = make_note("a", tags=["ai", "ml"])
        b = make_note("b", tags=["ai"])
        assert scoring.tag_similarity(a, b) == 0.5

    def test_shared_connections(self):
        a = make_note("a", relationships=[link("a", "x"), link("a", "y")])
        b = make_note("b", relationships=[link("b", "y")])
        assert scoring.shared_connection_ratio(a, b) == 0.5
        assert scoring.shared_connection_ratio(make_note("c"), make_note("d")) == 0.0


class TestStrength:
    def test_weighted_sum(self):
        a = make_note("a", content="alpha beta", tags=["x"])
        b = make_note("b", content="alpha gamma", tags=["x"])
        # content 1/3 * 0.3 + tags 1.0 * 0.2 + shared 0
        assert scoring.strength(a, b, DEFAULT_WEIGHTS) == pytest.approx(0.3)

    def test_strength_is_symmetric(self):
        a = make_note(
            "a", content="graph theory basics", tags=["math", "graphs"],
            relationships=[link("a", "x")],
        )
        b = make_note(
            "b", content="graph coloring", tags=["graphs"],
            relationships=[link("b", "x"), link("b", "y")],
        )
        assert scoring.strength(a, b, DEFAULT_WEIGHTS) == scoring.strength(b, a, DEFAULT_WEIGHTS)

    def test_strength_is_clamped(self):
        heavy = StrengthWeights(content=1.0, tags=1.0, shared=1.0)
        a = make_note("a", content="same", tags=["t"])
        b = make_note("b", content="same", tags=["t"])
        assert scoring.strength(a, b, heavy) == 1.0

    def test_unrelated_notes_score_zero(self):
        a = make_note("a", content="pasta recipe", tags=["cooking"])
        b = make_note("b", content="neural networks", tags=["ai"])
        assert scoring.strength(a, b, DEFAULT_WEIGHTS) == 0.0

    def test_direct_link_bonus(self):
        a = make_note("a", content="alpha beta", tags=["x"])
        b = make_note("b", content="alpha gamma", tags=["x"])
        assert scoring.strength_with_bonus(a, b, DEFAULT_WEIGHTS) == pytest.approx(0.8)
        c = make_note("c", content="same", tags=["t"])
        d = make_note("d", content="same", tags=["t"])
        assert scoring.strength_with_bonus(c, d, DEFAULT_WEIGHTS) == 1.0

    def test_weights_from_config(self, test_config, monkeypatch):
        monkeypatch.setattr(test_config, "tag_weight", 0.4)
        weights = StrengthWeights.from_config()
        assert weights.tags == 0.4
        assert weights.content == 0.3
        assert weights.direct_link_bonus == 0.5


class TestSuggestedType:
    def test_related_when_tags_overlap_strongly(self):
        a = make_note("a", tags=["ai"])
        b = make_note("b", tags=["ai"])
        assert scoring.suggest_relationship_type(a, b) == RelationshipType.RELATED_TO

    def test_related_when_content_overlaps(self):
        a = make_note("a", content="one two three")
        b = make_note("b", content="one two four")
        assert scoring.suggest_relationship_type(a, b) == RelationshipType.RELATED_TO

    def test_references_otherwise(self):
        a = make_note("a", content="one two three four", tags=["a", "b"])
        b = make_note("b", content="one five six seven", tags=["a", "c"])
        assert scoring.suggest_relationship_type(a, b) == RelationshipType.REFERENCES
