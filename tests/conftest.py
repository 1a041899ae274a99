"""Common test fixtures for the Realm Graph engine."""

import datetime
from datetime import timezone

import pytest

from realm_graph.config import config
from realm_graph.events import EventPublisher
from realm_graph.models.db_models import init_db
from realm_graph.models.schema import Note, Relationship, RelationshipType
from realm_graph.services.cluster_service import ClusterService
from realm_graph.services.graph_projection_service import GraphProjectionService
from realm_graph.services.note_service import NoteService
from realm_graph.services.projection_cache import ProjectionCache
from realm_graph.services.relationship_service import RelationshipService
from realm_graph.storage.note_repository import NoteRepository
from tests.fakes import RecordingSubscriber

OWNER = "user-1"
OTHER_OWNER = "user-2"

# Fixed "now" for recency colouring
FIXED_NOW = datetime.datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


def at(day: int, hour: int = 0) -> datetime.datetime:
    """A UTC timestamp in January 2024, for deterministic store ordering."""
    return datetime.datetime(2024, 1, day, hour, 0, 0, tzinfo=timezone.utc)


def link(source_id: str, target_id: str, rel_type=RelationshipType.REFERENCES, **kwargs):
    return Relationship(
        source_id=source_id, target_id=target_id, relationship_type=rel_type, **kwargs
    )


def make_note(note_id: str, owner_id: str = OWNER, **kwargs) -> Note:
    kwargs.setdefault("title", f"Note {note_id}")
    return Note(id=note_id, owner_id=owner_id, **kwargs)


@pytest.fixture
def test_config(monkeypatch):
    """Pin engine settings to their defaults (auto-restored after the test)."""
    monkeypatch.setattr(config, "content_weight", 0.3)
    monkeypatch.setattr(config, "tag_weight", 0.2)
    monkeypatch.setattr(config, "shared_connection_weight", 0.5)
    monkeypatch.setattr(config, "direct_link_bonus", 0.5)
    monkeypatch.setattr(config, "suggestion_threshold", 0.2)
    monkeypatch.setattr(config, "max_write_retries", 3)
    monkeypatch.setattr(config, "write_retry_delay", 0.0)
    yield config


@pytest.fixture
def engine():
    """A fresh in-memory SQLite engine (StaticPool) per test."""
    engine = init_db(db_url="sqlite:///:memory:")
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return NoteRepository(engine=engine)


@pytest.fixture
def publisher():
    return EventPublisher()


@pytest.fixture
def recorder(publisher):
    subscriber = RecordingSubscriber()
    publisher.subscribe(subscriber)
    return subscriber


@pytest.fixture
def projection_cache(publisher):
    cache = ProjectionCache()
    publisher.subscribe(cache.handle_event)
    return cache


@pytest.fixture
def note_service(store, publisher, test_config):
    return NoteService(store=store, publisher=publisher)


@pytest.fixture
def relationship_service(store, publisher, test_config):
    return RelationshipService(store=store, publisher=publisher, write_retry_delay=0)


@pytest.fixture
def cluster_service(store, test_config):
    return ClusterService(store=store)


@pytest.fixture
def projection_service(store, projection_cache, test_config):
    return GraphProjectionService(
        store=store, cache=projection_cache, clock=lambda: FIXED_NOW
    )
