"""SQLite-backed graph store for notes and their relationships."""

import logging
import threading
import weakref
from typing import Any, List, Optional

from sqlalchemy import delete, func, or_, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from realm_graph.exceptions import (
    ErrorCode,
    StorageError,
    WriteConflictError,
)
from realm_graph.models.db_models import (
    DBNote,
    DBNoteTag,
    DBRelationship,
    DBTag,
    get_session_factory,
    init_db,
)
from realm_graph.models.schema import (
    Note,
    Relationship,
    RelationshipType,
    ensure_timezone_aware,
)
from realm_graph.storage.base import GraphStore

logger = logging.getLogger(__name__)


class NoteRepository(GraphStore):
    """Graph store backed by SQLite through SQLAlchemy.

    A note row, its ordered tag links and its ordered outgoing relationships
    form one aggregate. ``save`` rewrites the whole aggregate in a single
    transaction and uses the ``version`` column for optimistic concurrency.
    """

    def __init__(self, engine: Optional[Any] = None):
        """Initialize the repository.

        Args:
            engine: Pre-configured SQLAlchemy engine. When None, init_db()
                    creates one from the global config.
        """
        self.engine = engine if engine is not None else init_db()
        self.session_factory = get_session_factory(self.engine)

        # Per-note locks serialize the version check and write of one note
        # (WeakValueDictionary so unused locks are garbage collected)
        self._note_locks: weakref.WeakValueDictionary[str, threading.RLock] = (
            weakref.WeakValueDictionary()
        )
        self._note_locks_lock = threading.Lock()

        logger.info(f"NoteRepository initialized: db_url={self.engine.url}")

    def _get_note_lock(self, note_id: str) -> threading.RLock:
        """Get or create a lock for a specific note.

        Args:
            note_id: The ID of the note to lock.

        Returns:
            A reentrant lock for the specified note.
        """
        with self._note_locks_lock:
            lock = self._note_locks.get(note_id)
            if lock is None:
                lock = threading.RLock()
                self._note_locks[note_id] = lock
            return lock

    @staticmethod
    def _note_query():
        """Select DBNote with tags and outgoing relationships eager-loaded."""
        return select(DBNote).options(
            selectinload(DBNote.tag_links).joinedload(DBNoteTag.tag),
            selectinload(DBNote.outgoing),
        )

    @staticmethod
    def _db_note_to_model(db_note: DBNote) -> Note:
        """Convert a SQLAlchemy DBNote to a domain Note."""
        relationships = [
            Relationship(
                id=rel.id,
                source_id=rel.source_id,
                target_id=rel.target_id,
                relationship_type=RelationshipType(rel.relationship_type),
                context=rel.context,
                strength=rel.strength,
                is_inferred=bool(rel.is_inferred),
                created_at=ensure_timezone_aware(rel.created_at),
                traversal_count=rel.traversal_count or 0,
                last_traversed_at=(
                    ensure_timezone_aware(rel.last_traversed_at)
                    if rel.last_traversed_at
                    else None
                ),
            )
            for rel in (db_note.outgoing or [])
        ]
        return Note(
            id=db_note.id,
            owner_id=db_note.owner_id,
            title=db_note.title,
            content=db_note.content or "",
            tags=[link.tag.name for link in (db_note.tag_links or [])],
            relationships=relationships,
            created_at=ensure_timezone_aware(db_note.created_at),
            updated_at=ensure_timezone_aware(db_note.updated_at),
            version=db_note.version or 0,
        )

    def _get_or_create_tag(self, session: Session, tag_name: str) -> DBTag:
        """Atomically get or create a tag to handle concurrent creation race.

        Uses INSERT OR IGNORE followed by SELECT to safely handle the case
        where two transactions try to create the same tag simultaneously.
        """
        session.execute(
            text("INSERT OR IGNORE INTO tags (name) VALUES (:name)"), {"name": tag_name}
        )
        return session.scalar(select(DBTag).where(DBTag.name == tag_name))

    # =========================================================================
    # GraphStore interface
    # =========================================================================

    def find_note_by_id(self, note_id: str) -> Optional[Note]:
        with self.session_factory() as session:
            db_note = session.scalar(self._note_query().where(DBNote.id == note_id))
            if db_note is None:
                return None
            return self._db_note_to_model(db_note)

    def find_notes_by_owner(self, owner_id: str) -> List[Note]:
        with self.session_factory() as session:
            db_notes = session.scalars(
                self._note_query()
                .where(DBNote.owner_id == owner_id)
                .order_by(DBNote.updated_at.desc(), DBNote.id.asc())
            ).all()
            return [self._db_note_to_model(n) for n in db_notes]

    def find_notes_within_hops(
        self, start_id: str, owner_id: str, max_depth: int, limit: int
    ) -> List[Note]:
        """Breadth-first expansion over relationships in both directions.

        Runs one query per hop, so cost is bounded by ``max_depth``.
        """
        if max_depth < 1 or limit < 1:
            return []

        with self.session_factory() as session:
            start_owner = session.scalar(
                select(DBNote.owner_id).where(DBNote.id == start_id)
            )
            if start_owner != owner_id:
                return []

            visited = {start_id}
            frontier = {start_id}
            ordered_ids: List[str] = []

            for _ in range(max_depth):
                if not frontier or len(ordered_ids) >= limit:
                    break
                edges = session.execute(
                    select(DBRelationship.source_id, DBRelationship.target_id).where(
                        or_(
                            DBRelationship.source_id.in_(frontier),
                            DBRelationship.target_id.in_(frontier),
                        )
                    )
                ).all()
                neighbours = set()
                for source_id, target_id in edges:
                    neighbours.add(source_id)
                    neighbours.add(target_id)
                neighbours -= visited
                if not neighbours:
                    break

                # Only the owner's notes count as reachable
                level = session.execute(
                    select(DBNote.id)
                    .where(DBNote.id.in_(neighbours), DBNote.owner_id == owner_id)
                    .order_by(DBNote.updated_at.desc(), DBNote.id.asc())
                ).scalars().all()
                visited.update(neighbours)
                ordered_ids.extend(level)
                frontier = set(level)

            ordered_ids = ordered_ids[:limit]

        return self.get_by_ids(ordered_ids)

    def save(self, note: Note) -> Note:
        """Upsert a note and its outgoing relationships in one transaction.

        Raises:
            WriteConflictError: If the stored version is not ``note.version``.
            StorageError: If the database write fails.
        """
        note_lock = self._get_note_lock(note.id)
        with note_lock:
            try:
                with self.session_factory() as session:
                    db_note = session.get(DBNote, note.id)

                    if db_note is None:
                        if note.version != 0:
                            # Note was deleted after the caller read it
                            raise WriteConflictError(note.id, note.version, None)
                        db_note = DBNote(
                            id=note.id,
                            owner_id=note.owner_id,
                            created_at=note.created_at,
                        )
                        session.add(db_note)
                    else:
                        if db_note.version != note.version:
                            raise WriteConflictError(
                                note.id, note.version, db_note.version
                            )
                        if db_note.owner_id != note.owner_id:
                            raise StorageError(
                                "Note owner cannot change",
                                operation="save",
                                note_id=note.id,
                                code=ErrorCode.STORAGE_WRITE_FAILED,
                            )

                    new_version = note.version + 1
                    db_note.title = note.title
                    db_note.content = note.content
                    db_note.updated_at = note.updated_at
                    db_note.version = new_version
                    session.flush()

                    # --- Tags and relationships: clear + rebuild -------------
                    session.execute(
                        delete(DBNoteTag).where(DBNoteTag.note_id == note.id)
                    )
                    session.execute(
                        delete(DBRelationship).where(DBRelationship.source_id == note.id)
                    )
                    for position, tag_name in enumerate(note.tags):
                        db_tag = self._get_or_create_tag(session, tag_name)
                        session.add(
                            DBNoteTag(note_id=note.id, tag_id=db_tag.id, position=position)
                        )
                    for position, rel in enumerate(note.relationships):
                        session.add(
                            DBRelationship(
                                id=rel.id,
                                source_id=rel.source_id,
                                target_id=rel.target_id,
                                relationship_type=rel.relationship_type.value,
                                context=rel.context,
                                strength=rel.strength,
                                is_inferred=rel.is_inferred,
                                created_at=rel.created_at,
                                traversal_count=rel.traversal_count,
                                last_traversed_at=rel.last_traversed_at,
                                position=position,
                            )
                        )
                    session.commit()
            except (WriteConflictError, StorageError):
                raise
            except SQLAlchemyError as e:
                logger.error(f"Failed to save note {note.id}: {e}")
                raise StorageError(
                    f"Failed to save note {note.id}",
                    operation="save",
                    note_id=note.id,
                    code=ErrorCode.STORAGE_WRITE_FAILED,
                    original_error=e,
                ) from e

        return note.model_copy(update={"version": new_version}, deep=True)

    def delete(self, note: Note) -> None:
        note_lock = self._get_note_lock(note.id)
        with note_lock:
            try:
                with self.session_factory() as session:
                    session.execute(
                        delete(DBRelationship).where(
                            or_(
                                DBRelationship.source_id == note.id,
                                DBRelationship.target_id == note.id,
                            )
                        )
                    )
                    session.execute(
                        delete(DBNoteTag).where(DBNoteTag.note_id == note.id)
                    )
                    session.execute(delete(DBNote).where(DBNote.id == note.id))
                    session.commit()
            except SQLAlchemyError as e:
                raise StorageError(
                    f"Failed to delete note {note.id}",
                    operation="delete",
                    note_id=note.id,
                    code=ErrorCode.STORAGE_DELETE_FAILED,
                    original_error=e,
                ) from e

    # =========================================================================
    # Additional queries
    # =========================================================================

    def get_by_ids(self, ids: List[str]) -> List[Note]:
        """Retrieve multiple notes by their IDs, preserving the given order."""
        if not ids:
            return []
        with self.session_factory() as session:
            db_notes = session.scalars(
                self._note_query().where(DBNote.id.in_(ids))
            ).all()
            by_id = {n.id: self._db_note_to_model(n) for n in db_notes}
        return [by_id[i] for i in ids if i in by_id]

    def find_backlinks(self, note_id: str, owner_id: str) -> List[Note]:
        """Notes of the owner holding a relationship that targets note_id."""
        with self.session_factory() as session:
            source_ids = session.scalars(
                select(DBRelationship.source_id)
                .join(DBNote, DBNote.id == DBRelationship.source_id)
                .where(
                    DBRelationship.target_id == note_id,
                    DBNote.owner_id == owner_id,
                )
                .distinct()
            ).all()
            if not source_ids:
                return []
            db_notes = session.scalars(
                self._note_query()
                .where(DBNote.id.in_(source_ids))
                .order_by(DBNote.updated_at.desc(), DBNote.id.asc())
            ).all()
            return [self._db_note_to_model(n) for n in db_notes]

    def count_notes(self, owner_id: Optional[str] = None) -> int:
        """Count notes, optionally for one owner."""
        with self.session_factory() as session:
            query = select(func.count()).select_from(DBNote)
            if owner_id is not None:
                query = query.where(DBNote.owner_id == owner_id)
            return session.scalar(query) or 0

