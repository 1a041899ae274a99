"""Data models for the Realm Graph engine."""

import datetime
import os
import threading
from datetime import timezone
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

MAX_TITLE_LENGTH = 200


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current time with UTC timezone info attached.
    """
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite drops tzinfo on the way out, so every datetime read back from the
    database passes through here.

    Args:
        dt_value: A datetime that may or may not have timezone info.

    Returns:
        The same datetime with UTC timezone if it was naive, otherwise unchanged.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


# Thread-safe counter for uniqueness (seeded from PID for cross-process safety)
_id_lock = threading.Lock()
_last_now: Optional[datetime.datetime] = None
_counter = (os.getpid() * 7) % 1_000_000


def generate_id() -> str:
    """Generate a sortable timestamp-based ID with guaranteed uniqueness.

    Returns:
        A string in format "YYYYMMDDTHHMMSSsssssscccccc" where:
        - YYYYMMDD is the date
        - T is the ISO 8601 date/time separator
        - HHMMSS is the time (hours, minutes, seconds)
        - ssssss is the 6-digit microsecond component
        - cccccc is a 6-digit counter for same-microsecond uniqueness

    IDs generated later in the same process sort after earlier ones, which
    is what makes id-based tie-breaking follow creation order.
    """
    global _last_now, _counter

    with _id_lock:
        now = utc_now()

        if _last_now is not None and now <= _last_now:
            # Same microsecond (or clock went backwards): keep counting
            _counter += 1
            now = _last_now
        else:
            _last_now = now
            _counter = (os.getpid() * 7) % 1_000_000

        _counter %= 1_000_000

        date_time = now.strftime("%Y%m%dT%H%M%S")
        return f"{date_time}{now.microsecond:06d}{_counter:06d}"


class RelationshipType(str, Enum):
    """Semantic types of relationships between notes."""

    REFERENCES = "references"  # Source cites or points at target
    CONTRADICTS = "contradicts"  # Source disagrees with target
    SUPPORTS = "supports"  # Source backs up target
    EXPLAINS = "explains"  # Source explains target
    EXEMPLIFIES = "exemplifies"  # Source is an example of target
    GENERALIZES = "generalizes"  # Source is a generalization of target
    SPECIALIZES = "specializes"  # Source is a special case of target
    FOLLOWS_FROM = "follows_from"  # Source is derived from target
    PREREQUISITE = "prerequisite"  # Source must be understood before target
    RELATED_TO = "related_to"  # Loosely related

    @property
    def is_hierarchical(self) -> bool:
        """Whether edges of this type must stay acyclic."""
        return self in HIERARCHICAL_TYPES


HIERARCHICAL_TYPES = frozenset(
    {
        RelationshipType.PREREQUISITE,
        RelationshipType.FOLLOWS_FROM,
        RelationshipType.GENERALIZES,
        RelationshipType.SPECIALIZES,
    }
)


class Relationship(BaseModel):
    """A typed, directed edge owned by its source note."""

    id: str = Field(default_factory=generate_id, description="Unique ID of the relationship")
    source_id: str = Field(..., description="ID of the source note")
    target_id: str = Field(..., description="ID of the target note")
    relationship_type: RelationshipType = Field(
        default=RelationshipType.REFERENCES, description="Semantic type"
    )
    context: Optional[str] = Field(
        default=None, description="Optional free-text context for the link"
    )
    strength: float = Field(default=1.0, ge=0.0, le=1.0, description="Strength in [0, 1]")
    is_inferred: bool = Field(
        default=False, description="Whether the link was discovered rather than user-made"
    )
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the relationship was created (UTC)"
    )
    traversal_count: int = Field(default=0, ge=0, description="Times the link was followed")
    last_traversed_at: Optional[datetime.datetime] = Field(
        default=None, description="When the link was last followed (UTC)"
    )

    model_config = {
        "validate_assignment": True,
        "extra": "forbid",
        "frozen": True,  # Relationships are replaced, never mutated in place
    }

    @model_validator(mode="after")
    def _check_not_self_loop(self) -> "Relationship":
        if self.source_id == self.target_id:
            raise ValueError("A relationship cannot point at its own source note")
        return self

    def with_traversal(self) -> "Relationship":
        """Return a copy with the traversal counter bumped."""
        return self.model_copy(
            update={
                "traversal_count": self.traversal_count + 1,
                "last_traversed_at": utc_now(),
            }
        )

    @property
    def is_strong(self) -> bool:
        return self.strength >= 0.7

    @property
    def is_weak(self) -> bool:
        return self.strength < 0.3


def normalize_tags(tags: List[str]) -> List[str]:
    """Lower-case and trim tags, dropping blanks and duplicates (order kept)."""
    seen = set()
    result = []
    for tag in tags:
        if tag is None:
            continue
        normalized = str(tag).strip().lower()
        if normalized and normalized not in seen:
            seen.add(normalized)
            result.append(normalized)
    return result


class Note(BaseModel):
    """A user-owned content unit and graph node."""

    id: str = Field(default_factory=generate_id, description="Unique ID of the note")
    owner_id: str = Field(..., frozen=True, description="Owner of the note (immutable)")
    title: str = Field(..., description="Title of the note")
    content: str = Field(default="", description="Rich-text body, opaque to the engine")
    tags: List[str] = Field(default_factory=list, description="Normalized tags")
    relationships: List[Relationship] = Field(
        default_factory=list, description="Outgoing relationships, in insertion order"
    )
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was last updated (UTC)"
    )
    version: int = Field(default=0, ge=0, description="Optimistic concurrency version")

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("id", "owner_id")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        """Validate that identifiers are not blank."""
        if not v or not v.strip():
            raise ValueError("Identifier cannot be empty")
        return v

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate that the title is present and not too long."""
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty")
        if len(v) > MAX_TITLE_LENGTH:
            raise ValueError(f"Title cannot exceed {MAX_TITLE_LENGTH} characters")
        return v

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: List[str]) -> List[str]:
        return normalize_tags(v)

    def touch(self) -> None:
        """Refresh the update timestamp."""
        self.updated_at = utc_now()

    def add_tag(self, tag: str) -> None:
        """Add a tag to the note."""
        normalized = normalize_tags([tag])
        if normalized and normalized[0] not in self.tags:
            self.tags = self.tags + normalized
            self.touch()

    def remove_tag(self, tag: str) -> None:
        """Remove a tag from the note."""
        name = (tag or "").strip().lower()
        self.tags = [t for t in self.tags if t != name]
        self.touch()

    def get_relationship(self, relationship_id: str) -> Optional[Relationship]:
        """Find an outgoing relationship by id."""
        for relationship in self.relationships:
            if relationship.id == relationship_id:
                return relationship
        return None

    def has_relationship(
        self, target_id: str, relationship_type: Optional[RelationshipType] = None
    ) -> bool:
        """Check for an outgoing relationship to target (optionally of one type)."""
        return any(
            r.target_id == target_id
            and (relationship_type is None or r.relationship_type == relationship_type)
            for r in self.relationships
        )

    def get_target_ids(self) -> Set[str]:
        """Get all note IDs that this note links to."""
        return {r.target_id for r in self.relationships}

    @property
    def primary_tag(self) -> Optional[str]:
        return self.tags[0] if self.tags else None

    def matches(self, term: str) -> bool:
        """Case-insensitive substring match over title, content and tags."""
        if not term or not term.strip():
            return False
        term = term.lower()
        return (
            term in self.title.lower()
            or term in (self.content or "").lower()
            or any(term in tag for tag in self.tags)
        )


class Suggestion(BaseModel):
    """A candidate link computed for a source note."""

    note: Note
    strength: float = Field(..., ge=0.0, le=1.0)
    suggested_type: RelationshipType


class Cluster(BaseModel):
    """A connected component of notes under undirected reachability."""

    notes: List[Note] = Field(default_factory=list)
    # Parallel edges of different types each count, so this can exceed 1.0
    cohesion: float = Field(default=0.0, ge=0.0)

    @property
    def size(self) -> int:
        return len(self.notes)

    @property
    def note_ids(self) -> List[str]:
        return [n.id for n in self.notes]


class GraphNode(BaseModel):
    """A note rendered as a visual node."""

    id: str
    title: str
    content: str = ""
    tags: List[str] = Field(default_factory=list)
    created_at: datetime.datetime
    updated_at: datetime.datetime
    size: int = 30
    color: str = "#9E9E9E"
    connection_count: int = 0
    selected: bool = False
    highlighted: bool = False


class GraphEdge(BaseModel):
    """A relationship rendered as a visual edge."""

    id: str
    source: str
    target: str
    type: RelationshipType = RelationshipType.REFERENCES
    context: Optional[str] = None
    strength: float = 1.0
    color: str = "#999999"
    width: float = 1.0


class GraphData(BaseModel):
    """Nodes and edges ready for a graph renderer."""

    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)
    center_node_id: Optional[str] = None

    @computed_field
    @property
    def total_nodes(self) -> int:
        return len(self.nodes)

    @computed_field
    @property
    def total_edges(self) -> int:
        return len(self.edges)

    def node_ids(self) -> Set[str]:
        return {node.id for node in self.nodes}


class HubNote(BaseModel):
    """A note ranked by outgoing relationship count."""

    note_id: str
    title: str
    relationship_count: int


class RelationshipAnalytics(BaseModel):
    """Graph-wide statistics for one owner."""

    total_notes: int = 0
    total_relationships: int = 0
    average_relationships_per_note: float = 0.0
    hub_notes: List[HubNote] = Field(default_factory=list)
    relationship_type_distribution: Dict[str, int] = Field(default_factory=dict)
