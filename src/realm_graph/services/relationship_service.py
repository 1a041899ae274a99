"""Service layer for typed relationships between notes.

Every relationship mutation is a read-modify-write of the source note
aggregate. The store rejects stale writes with WriteConflictError; the
service then re-reads, re-validates and retries with linear backoff.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

from realm_graph.config import config
from realm_graph.events import EventKind, EventPublisher, RelationshipEvent
from realm_graph.exceptions import (
    AccessDeniedError,
    ErrorCode,
    NoteNotFoundError,
    RelationshipNotFoundError,
    TransientStoreError,
    ValidationError,
    WriteConflictError,
)
from realm_graph.models.schema import (
    Note,
    Relationship,
    RelationshipAnalytics,
    RelationshipType,
    Suggestion,
    utc_now,
)
from realm_graph.services import scoring
from realm_graph.services.analytics import compute_relationship_analytics
from realm_graph.services.scoring import StrengthWeights
from realm_graph.services.traversal import any_edge, bounded_bfs, hierarchical_edge
from realm_graph.storage.base import GraphStore
from realm_graph.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RESULT_LIMIT = 100


def normalize_relationship_type(
    value: Optional[Union[str, RelationshipType]],
) -> RelationshipType:
    """Trim and lower-case a relationship type name.

    None means ``related_to``.

    Raises:
        ValidationError: If the name is not a known relationship type.
    """
    if value is None:
        return RelationshipType.RELATED_TO
    if isinstance(value, RelationshipType):
        return value
    normalized = str(value).strip().lower()
    try:
        return RelationshipType(normalized)
    except ValueError:
        valid = ", ".join(t.value for t in RelationshipType)
        raise ValidationError(
            f"Invalid relationship type: {value}. Valid types: {valid}",
            field="relationship_type",
            value=value,
            code=ErrorCode.INVALID_RELATIONSHIP_TYPE,
        )


def validate_range(
    value: int, field: str, low: int, high: int, code: ErrorCode
) -> int:
    """Reject integers outside [low, high]."""
    if value is None or value < low or value > high:
        raise ValidationError(
            f"{field} must be between {low} and {high}",
            field=field,
            value=value,
            code=code,
        )
    return value


class RelationshipService:
    """Creates, removes and analyzes relationships between one owner's notes."""

    def __init__(
        self,
        store: Optional[GraphStore] = None,
        publisher: Optional[EventPublisher] = None,
        weights: Optional[StrengthWeights] = None,
        max_write_retries: Optional[int] = None,
        write_retry_delay: Optional[float] = None,
        engine: Optional[Any] = None,
    ):
        """Initialize the service.

        Args:
            store: Backing graph store. A NoteRepository is created if None.
            publisher: Receives RelationshipCreated/Removed events.
            weights: Strength weights. Defaults to the configured weights.
            max_write_retries: Retries after a write conflict before giving up.
            write_retry_delay: Base delay in seconds for linear backoff.
            engine: SQLAlchemy engine for the default NoteRepository.
        """
        if store is None:
            store = NoteRepository(engine=engine)
        self.store = store
        self.publisher = publisher or EventPublisher()
        self.weights = weights or StrengthWeights.from_config()
        self.max_write_retries = (
            config.max_write_retries if max_write_retries is None else max_write_retries
        )
        self.write_retry_delay = (
            config.write_retry_delay if write_retry_delay is None else write_retry_delay
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _validate_note_access(self, note_id: str, owner_id: str) -> Note:
        note = self.store.find_note_by_id(note_id)
        if note is None:
            raise NoteNotFoundError(note_id)
        if note.owner_id != owner_id:
            raise AccessDeniedError(note_id, owner_id)
        return note

    def _owner_snapshot(self, owner_id: str) -> Dict[str, Note]:
        return {note.id: note for note in self.store.find_notes_by_owner(owner_id)}

    def _with_write_retry(
        self, operation: str, note_id: str, func: Callable[[], T]
    ) -> T:
        """Run one read-modify-write, retrying on write conflicts.

        Validation errors propagate immediately; only WriteConflictError is
        retried.
        """
        retries = self.max_write_retries
        last_error: Optional[WriteConflictError] = None
        for attempt in range(retries + 1):
            try:
                return func()
            except WriteConflictError as e:
                last_error = e
                if attempt < retries:
                    logger.warning(
                        f"Write conflict during {operation} on note {note_id}, "
                        f"retry {attempt + 1}/{retries}"
                    )
                    time.sleep(self.write_retry_delay * (attempt + 1))

        raise TransientStoreError(
            f"{operation} on note '{note_id}' still conflicted after "
            f"{retries + 1} attempts",
            note_id=note_id,
            attempts=retries + 1,
            original_error=last_error,
        )

    def _touch_note(self, note_id: str) -> None:
        """Refresh a note's update timestamp as its own atomic write."""

        def attempt() -> None:
            note = self.store.find_note_by_id(note_id)
            if note is None:
                return
            note.touch()
            self.store.save(note)

        self._with_write_retry("touch", note_id, attempt)

    def _publish(self, kind: EventKind, relationship: Relationship, owner_id: str) -> None:
        self.publisher.publish(
            RelationshipEvent(kind=kind, relationship=relationship, owner_id=owner_id)
        )

    # =========================================================================
    # Mutations
    # =========================================================================

    def create_relationship(
        self,
        source_id: str,
        target_id: str,
        relationship_type: Optional[Union[str, RelationshipType]] = None,
        context: Optional[str] = None,
        *,
        owner_id: str,
    ) -> Relationship:
        """Create a typed relationship from source to target.

        Args:
            source_id: ID of the note that will own the relationship.
            target_id: ID of the referenced note.
            relationship_type: Type name; trimmed and lower-cased. None means
                related_to.
            context: Optional free-text context.
            owner_id: Owner that both notes must belong to.

        Returns:
            The created Relationship.

        Raises:
            NoteNotFoundError: If either note does not exist.
            AccessDeniedError: If either note belongs to another owner.
            ValidationError: For self-loops, unknown types, duplicates and
                hierarchical cycles.
            TransientStoreError: If concurrent writers kept conflicting on the
                source note.
        """
        logger.debug(
            f"Creating relationship {source_id} -> {target_id} of type "
            f"'{relationship_type}' for owner {owner_id}"
        )

        def attempt() -> Relationship:
            source = self._validate_note_access(source_id, owner_id)
            target = self._validate_note_access(target_id, owner_id)

            if source_id == target_id:
                raise ValidationError(
                    "Cannot create relationship from note to itself",
                    field="target_id",
                    value=target_id,
                    code=ErrorCode.RELATIONSHIP_SELF_REFERENCE,
                )

            rel_type = normalize_relationship_type(relationship_type)

            if source.has_relationship(target_id, rel_type):
                raise ValidationError(
                    "Relationship already exists between these notes",
                    field="relationship_type",
                    value=rel_type.value,
                    code=ErrorCode.RELATIONSHIP_ALREADY_EXISTS,
                )

            if rel_type.is_hierarchical:
                notes_by_id = self._owner_snapshot(owner_id)
                notes_by_id[source.id] = source
                notes_by_id[target.id] = target
                path_back = bounded_bfs(
                    target_id,
                    source_id,
                    notes_by_id,
                    config.cycle_check_depth,
                    edge_filter=hierarchical_edge,
                )
                if path_back:
                    raise ValidationError(
                        "This relationship would create a circular dependency",
                        field="relationship_type",
                        value=rel_type.value,
                        code=ErrorCode.RELATIONSHIP_CYCLE,
                    )

            relationship = Relationship(
                source_id=source_id,
                target_id=target_id,
                relationship_type=rel_type,
                context=context,
                strength=scoring.strength_with_bonus(source, target, self.weights),
            )
            source.relationships = source.relationships + [relationship]
            source.updated_at = utc_now()
            self.store.save(source)
            return relationship

        relationship = self._with_write_retry("create_relationship", source_id, attempt)

        # The relationship is already committed at this point
        try:
            self._touch_note(target_id)
        except TransientStoreError as e:
            logger.warning(
                f"Relationship {relationship.id} created but touching target "
                f"{target_id} failed after {e.attempts} attempt(s)"
            )
        self._publish(EventKind.CREATED, relationship, owner_id)

        logger.info(
            f"Created relationship {source_id} -> {target_id} of type "
            f"'{relationship.relationship_type.value}' for owner {owner_id}"
        )
        return relationship

    def remove_relationship(
        self, source_id: str, relationship_id: str, owner_id: str
    ) -> None:
        """Remove a relationship from its source note.

        Raises:
            RelationshipNotFoundError: If the source note holds no relationship
                with this id (including when it was already removed).
        """
        logger.debug(
            f"Removing relationship {relationship_id} from note {source_id} "
            f"for owner {owner_id}"
        )

        def attempt() -> Relationship:
            source = self._validate_note_access(source_id, owner_id)
            relationship = source.get_relationship(relationship_id)
            if relationship is None:
                raise RelationshipNotFoundError(relationship_id, source_id)
            source.relationships = [
                r for r in source.relationships if r.id != relationship_id
            ]
            source.updated_at = utc_now()
            self.store.save(source)
            return relationship

        removed = self._with_write_retry("remove_relationship", source_id, attempt)
        self._publish(EventKind.REMOVED, removed, owner_id)

        logger.info(
            f"Removed relationship {relationship_id} from note {source_id} "
            f"for owner {owner_id}"
        )

    def record_traversal(
        self, source_id: str, relationship_id: str, owner_id: str
    ) -> Relationship:
        """Count one traversal of a relationship and stamp the time."""

        def attempt() -> Relationship:
            source = self._validate_note_access(source_id, owner_id)
            if source.get_relationship(relationship_id) is None:
                raise RelationshipNotFoundError(relationship_id, source_id)
            updated = None
            relationships = []
            for r in source.relationships:
                if r.id == relationship_id:
                    updated = r.with_traversal()
                    relationships.append(updated)
                else:
                    relationships.append(r)
            source.relationships = relationships
            self.store.save(source)
            return updated

        return self._with_write_retry("record_traversal", source_id, attempt)

    # =========================================================================
    # Queries
    # =========================================================================

    def find_shortest_path(
        self, start_id: str, end_id: str, owner_id: str, max_depth: int = 5
    ) -> List[Note]:
        """Shortest path over directed outgoing edges.

        Returns:
            Notes from start to end inclusive, ``[start]`` when both ids are
            equal, or an empty list when end is not reachable within
            ``max_depth`` edges.
        """
        validate_range(
            max_depth, "max_depth", 1, config.max_path_depth, ErrorCode.INVALID_DEPTH
        )
        logger.debug(
            f"Finding shortest path from note {start_id} to {end_id} "
            f"for owner {owner_id}"
        )
        start = self._validate_note_access(start_id, owner_id)
        self._validate_note_access(end_id, owner_id)

        if start_id == end_id:
            return [start]

        notes_by_id = self._owner_snapshot(owner_id)
        path = bounded_bfs(start_id, end_id, notes_by_id, max_depth, edge_filter=any_edge)
        return [notes_by_id[note_id] for note_id in path]

    def calculate_relationship_strength(
        self, source_id: str, target_id: str, owner_id: str
    ) -> float:
        """Strength between two notes, with the bonus if source links to target."""
        source = self._validate_note_access(source_id, owner_id)
        target = self._validate_note_access(target_id, owner_id)
        if source.has_relationship(target_id):
            return scoring.strength_with_bonus(source, target, self.weights)
        return scoring.strength(source, target, self.weights)

    def suggest_related_notes(
        self, note_id: str, owner_id: str, limit: int = 10
    ) -> List[Suggestion]:
        """Rank unlinked notes of the owner as link candidates.

        Candidates share no relationship with the note in either direction.
        Only candidates scoring above the suggestion threshold are returned,
        strongest first (ties by note id).
        """
        validate_range(limit, "limit", 1, MAX_RESULT_LIMIT, ErrorCode.INVALID_LIMIT)
        logger.debug(f"Finding suggested relationships for note {note_id} and owner {owner_id}")

        source = self._validate_note_access(note_id, owner_id)
        notes_by_id = self._owner_snapshot(owner_id)
        source = notes_by_id.get(note_id, source)

        linked = source.get_target_ids()
        linked.update(n.id for n in notes_by_id.values() if n.has_relationship(note_id))

        suggestions = []
        for candidate in notes_by_id.values():
            if candidate.id == note_id or candidate.id in linked:
                continue
            score = scoring.strength(source, candidate, self.weights)
            if score > config.suggestion_threshold:
                suggestions.append(
                    Suggestion(
                        note=candidate,
                        strength=score,
                        suggested_type=scoring.suggest_relationship_type(source, candidate),
                    )
                )

        suggestions.sort(key=lambda s: (-s.strength, s.note.id))
        return suggestions[:limit]

    def get_relationship_analytics(self, owner_id: str) -> RelationshipAnalytics:
        notes = self.store.find_notes_by_owner(owner_id)
        return compute_relationship_analytics(notes, hub_limit=config.hub_note_limit)

    def get_backlinks(self, note_id: str, owner_id: str) -> List[Note]:
        """Notes of the owner that link to this note."""
        self._validate_note_access(note_id, owner_id)
        return self.store.find_backlinks(note_id, owner_id)

    def find_related_notes(
        self, note_id: str, owner_id: str, depth: int = 2, limit: int = 20
    ) -> List[Note]:
        """Notes within ``depth`` undirected hops, nearest first."""
        validate_range(depth, "depth", 1, config.max_path_depth, ErrorCode.INVALID_DEPTH)
        validate_range(limit, "limit", 1, MAX_RESULT_LIMIT, ErrorCode.INVALID_LIMIT)
        self._validate_note_access(note_id, owner_id)
        return self.store.find_notes_within_hops(note_id, owner_id, depth, limit)

    def find_orphaned_notes(self, owner_id: str) -> List[Note]:
        """Notes with neither incoming nor outgoing relationships."""
        notes = self.store.find_notes_by_owner(owner_id)
        targeted = {r.target_id for n in notes for r in n.relationships}
        return [n for n in notes if not n.relationships and n.id not in targeted]
