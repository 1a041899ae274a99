"""Graph change events and an in-process publisher."""

import datetime
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Union

from realm_graph.models.schema import Relationship, utc_now

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """What happened to a relationship or note."""

    CREATED = "created"
    REMOVED = "removed"
    NOTE_UPDATED = "note_updated"


@dataclass(frozen=True)
class RelationshipEvent:
    """Immutable record of a committed relationship mutation."""

    kind: EventKind
    relationship: Relationship
    owner_id: str
    timestamp: datetime.datetime = field(default_factory=utc_now)

    @property
    def subject_id(self) -> str:
        return self.relationship.id

    @property
    def note_ids(self) -> frozenset:
        return frozenset({self.relationship.source_id, self.relationship.target_id})


@dataclass(frozen=True)
class NoteEvent:
    """A committed change to a note's title, content or tags."""

    note_id: str
    owner_id: str
    kind: EventKind = EventKind.NOTE_UPDATED
    timestamp: datetime.datetime = field(default_factory=utc_now)

    @property
    def subject_id(self) -> str:
        return self.note_id

    @property
    def note_ids(self) -> frozenset:
        return frozenset({self.note_id})


GraphEvent = Union[RelationshipEvent, NoteEvent]
Subscriber = Callable[[GraphEvent], None]


class EventPublisher:
    """Synchronous fan-out of graph events to subscribers.

    Events are published after the write has committed, so a failing
    subscriber is logged and skipped rather than propagated.
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def publish(self, event: GraphEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        logger.debug(
            f"Publishing {event.kind.value} event for {event.subject_id} "
            f"to {len(subscribers)} subscriber(s)"
        )
        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.error(
                    f"Event subscriber {callback!r} failed for "
                    f"{event.kind.value} of {event.subject_id}: {e}",
                    exc_info=True,
                )
