"""Service layer for note lifecycle operations."""

import logging
from typing import Any, List, Optional

from pydantic import ValidationError as PydanticValidationError

from realm_graph.events import EventKind, EventPublisher, NoteEvent, RelationshipEvent
from realm_graph.exceptions import (
    AccessDeniedError,
    ErrorCode,
    NoteNotFoundError,
    ValidationError,
)
from realm_graph.models.schema import MAX_TITLE_LENGTH, Note, utc_now
from realm_graph.storage.base import GraphStore
from realm_graph.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)


def _validate_title(title: Optional[str]) -> str:
    if title is None or not title.strip():
        raise ValidationError(
            "Title is required", field="title", code=ErrorCode.NOTE_TITLE_REQUIRED
        )
    title = title.strip()
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(
            f"Title cannot exceed {MAX_TITLE_LENGTH} characters",
            field="title",
            value=title,
            code=ErrorCode.NOTE_TITLE_TOO_LONG,
        )
    return title


class NoteService:
    """Creates, updates and deletes notes for one owner at a time."""

    def __init__(
        self,
        store: Optional[GraphStore] = None,
        publisher: Optional[EventPublisher] = None,
        engine: Optional[Any] = None,
    ):
        """Initialize the service.

        Args:
            store: Backing graph store. A NoteRepository is created if None.
            publisher: Receives a NoteEvent for every update, and
                RelationshipRemoved events when deleting a note drops its
                relationships.
            engine: SQLAlchemy engine for the default NoteRepository.
        """
        if store is None:
            store = NoteRepository(engine=engine)
        self.store = store
        self.publisher = publisher or EventPublisher()

    def create_note(
        self,
        owner_id: str,
        title: str,
        content: str = "",
        tags: Optional[List[str]] = None,
    ) -> Note:
        """Create a new note.

        Args:
            owner_id: Owner of the note; fixed for its lifetime.
            title: Note title, 1-200 characters after trimming.
            content: Rich-text body.
            tags: Tag names; normalized to lower case and de-duplicated.

        Returns:
            The saved Note.
        """
        title = _validate_title(title)
        try:
            note = Note(owner_id=owner_id, title=title, content=content or "", tags=tags or [])
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid note: {e.errors()[0]['msg']}",
                code=ErrorCode.NOTE_VALIDATION_FAILED,
            ) from e

        created = self.store.save(note)
        logger.info(f"Created note {created.id} for owner {owner_id}")
        return created

    def get_note(self, note_id: str, owner_id: str) -> Note:
        note = self.store.find_note_by_id(note_id)
        if note is None:
            raise NoteNotFoundError(note_id)
        if note.owner_id != owner_id:
            raise AccessDeniedError(note_id, owner_id)
        return note

    def list_notes(self, owner_id: str) -> List[Note]:
        """All notes of the owner, most recently updated first."""
        return self.store.find_notes_by_owner(owner_id)

    def update_note(
        self,
        note_id: str,
        owner_id: str,
        title: Optional[str] = None,
        content: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Note:
        """Update title, content and/or tags. None leaves a field unchanged."""
        note = self.get_note(note_id, owner_id)

        if title is not None:
            note.title = _validate_title(title)
        if content is not None:
            note.content = content
        if tags is not None:
            note.tags = tags
        note.updated_at = utc_now()

        updated = self.store.save(note)
        self.publisher.publish(NoteEvent(note_id=note_id, owner_id=owner_id))
        logger.info(f"Updated note {note_id} for owner {owner_id}")
        return updated

    def delete_note(self, note_id: str, owner_id: str) -> None:
        """Delete a note together with every relationship touching it.

        Every dropped relationship, incoming or outgoing, is reported as a
        RelationshipRemoved event.
        """
        note = self.get_note(note_id, owner_id)

        # Detach from linking notes with versioned saves before the delete
        incoming = []
        for other in self.store.find_backlinks(note_id, owner_id):
            incoming.extend(r for r in other.relationships if r.target_id == note_id)
            other.relationships = [
                r for r in other.relationships if r.target_id != note_id
            ]
            self.store.save(other)

        self.store.delete(note)

        for relationship in incoming + list(note.relationships):
            self.publisher.publish(
                RelationshipEvent(
                    kind=EventKind.REMOVED, relationship=relationship, owner_id=owner_id
                )
            )
        logger.info(
            f"Deleted note {note_id} for owner {owner_id} "
            f"({len(incoming)} incoming relationship(s) removed)"
        )
