"""Storage layer for the Realm Graph engine."""

from realm_graph.storage.base import GraphStore
from realm_graph.storage.note_repository import NoteRepository

__all__ = [
    "GraphStore",
    "NoteRepository",
]
