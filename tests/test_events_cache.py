"""Tests for relationship events and the projection cache."""
import logging

from realm_graph.events import EventKind, EventPublisher, NoteEvent, RelationshipEvent
from realm_graph.models.schema import GraphData, GraphNode
from realm_graph.services.projection_cache import ProjectionCache
from tests.conftest import FIXED_NOW, OWNER, link
from tests.fakes import RecordingSubscriber


def graph_of(*ids):
    return GraphData(
        nodes=[
            GraphNode(id=i, title=i, created_at=FIXED_NOW, updated_at=FIXED_NOW)
            for i in ids
        ]
    )


def event(source, target, kind=EventKind.CREATED):
    return RelationshipEvent(kind=kind, relationship=link(source, target), owner_id=OWNER)


class TestEventPublisher:
    def test_event_note_ids(self):
        assert event("a", "b").note_ids == frozenset({"a", "b"})
        assert event("a", "b").timestamp.tzinfo is not None

    def test_fan_out_in_subscription_order(self):
        publisher = EventPublisher()
        calls = []
        publisher.subscribe(lambda e: calls.append(("first", e.kind)))
        publisher.subscribe(lambda e: calls.append(("second", e.kind)))
        publisher.publish(event("a", "b", EventKind.REMOVED))
        assert calls == [("first", EventKind.REMOVED), ("second", EventKind.REMOVED)]

    def test_unsubscribe(self):
        publisher = EventPublisher()
        recorder = RecordingSubscriber()
        publisher.subscribe(recorder)
        publisher.unsubscribe(recorder)
        publisher.unsubscribe(recorder)
        publisher.publish(event("a", "b"))
        assert recorder.events == []

    def test_failing_subscriber_is_isolated(self, caplog):
        publisher = EventPublisher()
        recorder = RecordingSubscriber()

        def broken(_event):
            raise RuntimeError("boom")

        publisher.subscribe(broken)
        publisher.subscribe(recorder)
        with caplog.at_level(logging.ERROR, logger="realm_graph.events"):
            publisher.publish(event("a", "b"))

        assert recorder.kinds == ["created"]
        assert "boom" in caplog.text


class TestProjectionCache:
    def test_get_put_and_stats(self):
        cache = ProjectionCache()
        assert cache.get(OWNER, "a", 2) is None
        data = graph_of("a", "b")
        cache.put(OWNER, "a", 2, data)
        assert cache.get(OWNER, "a", 2) is data
        assert cache.get(OWNER, "a", 1) is None
        assert cache.get("someone-else", "a", 2) is None
        assert (cache.hits, cache.misses) == (1, 3)

    def test_invalidate_by_center_or_member(self):
        cache = ProjectionCache()
        cache.put(OWNER, "a", 1, graph_of("a", "b"))
        cache.put(OWNER, "a", 2, graph_of("a", "b", "c"))
        cache.put(OWNER, "x", 1, graph_of("x"))

        assert cache.invalidate_note("c") == 1
        assert len(cache) == 2
        assert cache.invalidate_note("a") == 1
        assert cache.invalidate_note("missing") == 0
        assert len(cache) == 1

    def test_handle_event_checks_both_endpoints(self):
        cache = ProjectionCache()
        cache.put(OWNER, "a", 1, graph_of("a"))
        cache.put(OWNER, "x", 1, graph_of("x", "y"))
        cache.handle_event(event("q", "y", EventKind.REMOVED))
        assert cache.get(OWNER, "x", 1) is None
        assert cache.get(OWNER, "a", 1) is not None

    def test_handle_note_event(self):
        cache = ProjectionCache()
        cache.put(OWNER, "a", 1, graph_of("a", "b"))
        cache.put(OWNER, "x", 1, graph_of("x"))
        cache.handle_event(NoteEvent(note_id="b", owner_id=OWNER))
        assert cache.get(OWNER, "a", 1) is None
        assert cache.get(OWNER, "x", 1) is not None

    def test_clear(self):
        cache = ProjectionCache()
        cache.put(OWNER, "a", 1, graph_of("a"))
        cache.clear()
        assert len(cache) == 0
