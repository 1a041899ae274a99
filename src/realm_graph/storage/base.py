"""Backing store interface for the Realm Graph engine."""
from abc import ABC, abstractmethod
from typing import List, Optional

from realm_graph.models.schema import Note


class GraphStore(ABC):
    """Node/edge storage and query primitives the engine depends on.

    Notes are stored as aggregates: a note and its outgoing relationships
    are always written together by ``save``.
    """

    @abstractmethod
    def find_note_by_id(self, note_id: str) -> Optional[Note]:
        """Return the note with this id, or None if it does not exist."""

    @abstractmethod
    def find_notes_by_owner(self, owner_id: str) -> List[Note]:
        """Return every note of an owner, most recently updated first."""

    @abstractmethod
    def find_notes_within_hops(
        self, start_id: str, owner_id: str, max_depth: int, limit: int
    ) -> List[Note]:
        """Return notes within ``max_depth`` undirected hops of a start note.

        The start note itself is excluded. Results are ordered by distance,
        then most recently updated first, and capped at ``limit``.
        """

    @abstractmethod
    def save(self, note: Note) -> Note:
        """Atomically upsert a note including its outgoing relationships.

        Raises:
            WriteConflictError: If the stored version differs from
                ``note.version`` (the note changed since it was read).
        """

    @abstractmethod
    def delete(self, note: Note) -> None:
        """Delete a note and every relationship that touches it."""

    def find_backlinks(self, note_id: str, owner_id: str) -> List[Note]:
        """Return the owner's notes holding a relationship that targets note_id.

        The default scans the owner's notes; stores with an index override it.
        """
        return [
            note
            for note in self.find_notes_by_owner(owner_id)
            if note.has_relationship(note_id)
        ]
