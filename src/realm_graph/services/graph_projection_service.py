"""Projection of the note graph into render-ready nodes and edges."""

import datetime
import logging
import zlib
from typing import Any, Callable, Dict, Iterable, List, Optional

from realm_graph.config import config
from realm_graph.exceptions import AccessDeniedError, NoteNotFoundError
from realm_graph.models.schema import (
    GraphData,
    GraphEdge,
    GraphNode,
    Note,
    Relationship,
    RelationshipType,
    utc_now,
)
from realm_graph.services.projection_cache import ProjectionCache
from realm_graph.storage.base import GraphStore
from realm_graph.storage.note_repository import NoteRepository
from realm_graph.utils import truncate_preview

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]

BASE_NODE_SIZE = 30
MAX_CONTENT_BONUS = 20
MAX_CONNECTION_BONUS = 15
PREVIEW_LENGTH = 100

# Tag colors, picked by CRC-32 of the tag so they are stable across processes
TAG_PALETTE = (
    "#FF6B6B",  # Red
    "#4ECDC4",  # Teal
    "#45B7D1",  # Blue
    "#96CEB4",  # Green
    "#FFEAA7",  # Yellow
    "#DDA0DD",  # Purple
    "#FFA07A",  # Salmon
    "#87CEEB",  # Sky blue
    "#98FB98",  # Pale green
    "#F0E68C",  # Khaki
)

# (max days since creation, color), checked in order
RECENCY_COLORS = (
    (7, "#4CAF50"),
    (30, "#2196F3"),
    (90, "#FF9800"),
)
DEFAULT_NODE_COLOR = "#9E9E9E"

EDGE_COLORS: Dict[RelationshipType, str] = {
    RelationshipType.REFERENCES: "#999999",
    RelationshipType.SUPPORTS: "#4CAF50",
    RelationshipType.CONTRADICTS: "#F44336",
    RelationshipType.EXPLAINS: "#00BCD4",
    RelationshipType.EXEMPLIFIES: "#795548",
    RelationshipType.GENERALIZES: "#2196F3",
    RelationshipType.SPECIALIZES: "#3F51B5",
    RelationshipType.FOLLOWS_FROM: "#FF9800",
    RelationshipType.PREREQUISITE: "#E91E63",
    RelationshipType.RELATED_TO: "#9C27B0",
}
DEFAULT_EDGE_COLOR = "#999999"


def tag_color(tag: str) -> str:
    if not tag:
        return DEFAULT_NODE_COLOR
    return TAG_PALETTE[zlib.crc32(tag.encode("utf-8")) % len(TAG_PALETTE)]


def node_color(note: Note, now: datetime.datetime) -> str:
    """Color by first tag, or by whole days since creation for untagged notes."""
    if note.primary_tag:
        return tag_color(note.primary_tag)
    days = (now.date() - note.created_at.astimezone(datetime.timezone.utc).date()).days
    for max_days, color in RECENCY_COLORS:
        if days < max_days:
            return color
    return DEFAULT_NODE_COLOR


def node_size(note: Note, connection_count: int) -> int:
    content_bonus = min(MAX_CONTENT_BONUS, len(note.content or "") // 200)
    connection_bonus = min(MAX_CONNECTION_BONUS, connection_count * 3)
    return BASE_NODE_SIZE + content_bonus + connection_bonus


def edge_color(relationship_type: Optional[RelationshipType]) -> str:
    return EDGE_COLORS.get(relationship_type, DEFAULT_EDGE_COLOR)


def edge_width(strength: float) -> float:
    """Width between 1.0 and 4.0."""
    return 1.0 + strength * 3.0


def build_node(note: Note, now: datetime.datetime) -> GraphNode:
    # Only outgoing links count as connections
    connection_count = len(note.relationships)
    return GraphNode(
        id=note.id,
        title=note.title,
        content=truncate_preview(note.content, PREVIEW_LENGTH),
        tags=list(note.tags),
        created_at=note.created_at,
        updated_at=note.updated_at,
        size=node_size(note, connection_count),
        color=node_color(note, now),
        connection_count=connection_count,
    )


def build_edge(relationship: Relationship) -> GraphEdge:
    return GraphEdge(
        id=relationship.id,
        source=relationship.source_id,
        target=relationship.target_id,
        type=relationship.relationship_type,
        context=relationship.context,
        strength=relationship.strength,
        color=edge_color(relationship.relationship_type),
        width=edge_width(relationship.strength),
    )


class GraphProjectionService:
    """Builds GraphData for whole graphs, subgraphs and search results.

    Every call works on one snapshot of the store. ``clock`` supplies "now"
    for recency coloring.
    """

    def __init__(
        self,
        store: Optional[GraphStore] = None,
        cache: Optional[ProjectionCache] = None,
        clock: Optional[Clock] = None,
        engine: Optional[Any] = None,
    ):
        if store is None:
            store = NoteRepository(engine=engine)
        self.store = store
        self.cache = cache
        self.clock = clock or utc_now

    def _project(self, notes: Iterable[Note], center_id: Optional[str] = None) -> GraphData:
        now = self.clock()
        notes = list(notes)
        nodes = []
        for note in notes:
            node = build_node(note, now)
            if note.id == center_id:
                node.selected = True
            nodes.append(node)

        node_ids = {note.id for note in notes}
        edges = [
            build_edge(relationship)
            for note in notes
            for relationship in note.relationships
            if relationship.target_id in node_ids
        ]
        return GraphData(nodes=nodes, edges=edges, center_node_id=center_id)

    def project_graph(self, owner_id: str, max_nodes: Optional[int] = None) -> GraphData:
        """Project the owner's notes, truncated to the first ``max_nodes``.

        None or a non-positive ``max_nodes`` projects every note. Edges to
        notes left out by truncation are dropped.
        """
        logger.debug(f"Projecting graph for owner {owner_id} with max nodes {max_nodes}")
        notes = self.store.find_notes_by_owner(owner_id)
        if max_nodes is not None and max_nodes > 0:
            notes = notes[:max_nodes]

        data = self._project(notes)
        logger.debug(
            f"Generated graph data with {data.total_nodes} nodes and "
            f"{data.total_edges} edges"
        )
        return data

    def project_subgraph(
        self, owner_id: str, center_note_id: str, depth: Optional[int] = 2
    ) -> GraphData:
        """Project a note and its neighbourhood.

        ``depth`` is clamped to [1, max_subgraph_depth]; None means 2.

        Raises:
            NoteNotFoundError: If the center note does not exist.
            AccessDeniedError: If it belongs to another owner.
        """
        depth = 2 if depth is None else depth
        depth = max(1, min(depth, config.max_subgraph_depth))
        logger.debug(
            f"Projecting subgraph for owner {owner_id} centered on {center_note_id} "
            f"with depth {depth}"
        )

        center = self.store.find_note_by_id(center_note_id)
        if center is None:
            raise NoteNotFoundError(center_note_id)
        if center.owner_id != owner_id:
            raise AccessDeniedError(center_note_id, owner_id)

        if self.cache is not None:
            cached = self.cache.get(owner_id, center_note_id, depth)
            if cached is not None:
                return cached

        related = self.store.find_notes_within_hops(
            center_note_id, owner_id, depth, config.subgraph_node_limit
        )
        data = self._project([center] + related, center_id=center_note_id)

        if self.cache is not None:
            self.cache.put(owner_id, center_note_id, depth, data)
        return data

    def search_nodes(self, owner_id: str, query: str) -> List[GraphNode]:
        """Highlighted nodes whose title, content or tags contain the query.

        Title matches come first, then the most recently updated.
        """
        logger.debug(f"Searching nodes for owner {owner_id} with query '{query}'")
        if not query or not query.strip():
            return []

        # Padding is part of the substring; only a blank query is rejected
        term = query.lower()
        matches = [
            note for note in self.store.find_notes_by_owner(owner_id) if note.matches(term)
        ]
        # Two stable passes: recency first, then title matches to the front
        matches.sort(key=lambda n: n.updated_at, reverse=True)
        matches.sort(key=lambda n: term not in n.title.lower())

        now = self.clock()
        results = []
        for note in matches[: config.search_result_limit]:
            node = build_node(note, now)
            node.highlighted = True
            results.append(node)
        return results
