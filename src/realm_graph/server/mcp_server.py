"""MCP server exposing the Realm Graph engine as tools."""

import json
import logging
import uuid
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from realm_graph.config import config
from realm_graph.events import EventPublisher
from realm_graph.exceptions import RealmGraphError
from realm_graph.models.schema import Note
from realm_graph.observability import metrics, timed_operation
from realm_graph.services.cluster_service import ClusterService
from realm_graph.services.graph_projection_service import GraphProjectionService
from realm_graph.services.note_service import NoteService
from realm_graph.services.projection_cache import ProjectionCache
from realm_graph.services.relationship_service import RelationshipService
from realm_graph.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 1_000_000  # 1 MB


def _to_json(payload: Any) -> str:
    return json.dumps(payload, indent=2, default=str)


def _note_summary(note: Note) -> dict:
    return {
        "id": note.id,
        "title": note.title,
        "tags": list(note.tags),
        "updated_at": note.updated_at.isoformat(),
    }


def _parse_tags(tags: Optional[str]) -> List[str]:
    if not tags:
        return []
    return [t.strip() for t in tags.split(",") if t.strip()]


class RealmGraphMcpServer:
    """MCP server for the Realm Graph engine."""

    def __init__(self, engine=None):
        """Initialize the MCP server.

        Args:
            engine: Pre-configured SQLAlchemy engine shared by every service.
                    When None, the repository creates one from the config.
        """
        self.mcp = FastMCP(config.server_name)

        # One store, publisher and cache shared by all services
        self.store = NoteRepository(engine=engine)
        self.publisher = EventPublisher()
        self.projection_cache = ProjectionCache()
        self.publisher.subscribe(self.projection_cache.handle_event)

        self.note_service = NoteService(store=self.store, publisher=self.publisher)
        self.relationship_service = RelationshipService(
            store=self.store, publisher=self.publisher
        )
        self.cluster_service = ClusterService(store=self.store)
        self.projection_service = GraphProjectionService(
            store=self.store, cache=self.projection_cache
        )

        self.initialize()
        self._register_tools()

    def initialize(self) -> None:
        """Initialize services."""
        logger.info("Realm Graph MCP server initialized")

    def format_error_response(
        self, error: Exception, op: Optional[Dict[str, Any]] = None
    ) -> str:
        """Format an error response in a consistent way.

        Args:
            error: The exception that occurred
            op: The timed_operation record of the failing tool call, marked as
                failed so the call shows up in the tool metrics

        Returns:
            Formatted error message with appropriate level of detail
        """
        if op is not None:
            op["error"] = error

        # Generate a unique error ID for traceability in logs
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, RealmGraphError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return f"Error: {error.message}"
        elif isinstance(error, ValueError):
            # Log full detail but return generic ref to avoid leaking internals
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _register_tools(self) -> None:
        """Register MCP tools."""

        # Create a new note
        @self.mcp.tool(name="rg_create_note")
        def rg_create_note(
            owner_id: str, title: str, content: str = "", tags: Optional[str] = None
        ) -> str:
            """Create a new note.
            Args:
                owner_id: Owner of the note
                title: The title of the note (max 200 characters)
                content: Rich-text body of the note
                tags: Comma-separated list of tags (optional)
            """
            with timed_operation("rg_create_note", owner_id=owner_id, title=title[:30]) as op:
                try:
                    if len(content or "") > MAX_CONTENT_LENGTH:
                        raise ValueError(
                            f"Content exceeds maximum length of {MAX_CONTENT_LENGTH} characters"
                        )
                    note = self.note_service.create_note(
                        owner_id=owner_id,
                        title=title,
                        content=content,
                        tags=_parse_tags(tags),
                    )
                    op["note_id"] = note.id
                    return _to_json(_note_summary(note))
                except Exception as e:
                    return self.format_error_response(e, op)

        # Delete a note
        @self.mcp.tool(name="rg_delete_note")
        def rg_delete_note(owner_id: str, note_id: str) -> str:
            """Delete a note and every relationship touching it.
            Args:
                owner_id: Owner of the note
                note_id: ID of the note to delete
            """
            with timed_operation("rg_delete_note", owner_id=owner_id, note_id=note_id) as op:
                try:
                    self.note_service.delete_note(note_id, owner_id)
                    return _to_json({"deleted": note_id})
                except Exception as e:
                    return self.format_error_response(e, op)

        # Create a typed relationship
        @self.mcp.tool(name="rg_create_relationship")
        def rg_create_relationship(
            owner_id: str,
            source_id: str,
            target_id: str,
            relationship_type: Optional[str] = None,
            context: Optional[str] = None,
        ) -> str:
            """Create a typed, directed relationship between two notes.
            Args:
                owner_id: Owner of both notes
                source_id: ID of the source note
                target_id: ID of the target note
                relationship_type: One of references, contradicts, supports, explains,
                    exemplifies, generalizes, specializes, follows_from, prerequisite,
                    related_to (default related_to)
                context: Optional free-text context for the relationship
            """
            with timed_operation(
                "rg_create_relationship",
                owner_id=owner_id,
                source_id=source_id,
                target_id=target_id,
            ) as op:
                try:
                    relationship = self.relationship_service.create_relationship(
                        source_id,
                        target_id,
                        relationship_type,
                        context,
                        owner_id=owner_id,
                    )
                    op["relationship_id"] = relationship.id
                    return _to_json(relationship.model_dump(mode="json"))
                except Exception as e:
                    return self.format_error_response(e, op)

        # Remove a relationship
        @self.mcp.tool(name="rg_remove_relationship")
        def rg_remove_relationship(
            owner_id: str, source_id: str, relationship_id: str
        ) -> str:
            """Remove a relationship from its source note.
            Args:
                owner_id: Owner of the source note
                source_id: ID of the note holding the relationship
                relationship_id: ID of the relationship to remove
            """
            with timed_operation(
                "rg_remove_relationship", owner_id=owner_id, relationship_id=relationship_id
            ) as op:
                try:
                    self.relationship_service.remove_relationship(
                        source_id, relationship_id, owner_id
                    )
                    return _to_json({"removed": relationship_id})
                except Exception as e:
                    return self.format_error_response(e, op)

        # Shortest path between two notes
        @self.mcp.tool(name="rg_shortest_path")
        def rg_shortest_path(
            owner_id: str, start_id: str, end_id: str, max_depth: int = 5
        ) -> str:
            """Find the shortest path along outgoing relationships.
            Args:
                owner_id: Owner of both notes
                start_id: ID of the first note
                end_id: ID of the last note
                max_depth: Maximum number of hops (1-5)
            """
            with timed_operation(
                "rg_shortest_path", owner_id=owner_id, start_id=start_id, end_id=end_id
            ) as op:
                try:
                    path = self.relationship_service.find_shortest_path(
                        start_id, end_id, owner_id, max_depth
                    )
                    op["path_length"] = len(path)
                    return _to_json({"path": [_note_summary(n) for n in path]})
                except Exception as e:
                    return self.format_error_response(e, op)

        # Link suggestions
        @self.mcp.tool(name="rg_suggest_related")
        def rg_suggest_related(owner_id: str, note_id: str, limit: int = 10) -> str:
            """Suggest unlinked notes that look related to a note.
            Args:
                owner_id: Owner of the note
                note_id: ID of the note to find suggestions for
                limit: Maximum number of suggestions (1-100)
            """
            with timed_operation("rg_suggest_related", owner_id=owner_id, note_id=note_id) as op:
                try:
                    suggestions = self.relationship_service.suggest_related_notes(
                        note_id, owner_id, limit
                    )
                    op["result_count"] = len(suggestions)
                    return _to_json(
                        [
                            {
                                "note": _note_summary(s.note),
                                "strength": round(s.strength, 4),
                                "suggested_type": s.suggested_type.value,
                            }
                            for s in suggestions
                        ]
                    )
                except Exception as e:
                    return self.format_error_response(e, op)

        # Clusters
        @self.mcp.tool(name="rg_find_clusters")
        def rg_find_clusters(owner_id: str, min_size: int = 2) -> str:
            """Find groups of notes connected to each other.
            Args:
                owner_id: Owner whose notes are clustered
                min_size: Minimum number of notes per cluster (>= 1)
            """
            with timed_operation("rg_find_clusters", owner_id=owner_id) as op:
                try:
                    clusters = self.cluster_service.find_clusters(owner_id, min_size)
                    op["result_count"] = len(clusters)
                    return _to_json(
                        [
                            {
                                "size": c.size,
                                "cohesion": round(c.cohesion, 4),
                                "notes": [_note_summary(n) for n in c.notes],
                            }
                            for c in clusters
                        ]
                    )
                except Exception as e:
                    return self.format_error_response(e, op)

        # Whole-graph projection
        @self.mcp.tool(name="rg_graph")
        def rg_graph(owner_id: str, max_nodes: Optional[int] = None) -> str:
            """Get render-ready graph data for all of an owner's notes.
            Args:
                owner_id: Owner of the notes
                max_nodes: Project only the most recently updated N notes (optional)
            """
            with timed_operation("rg_graph", owner_id=owner_id) as op:
                try:
                    data = self.projection_service.project_graph(owner_id, max_nodes)
                    op["result_count"] = data.total_nodes
                    return _to_json(data.model_dump(mode="json"))
                except Exception as e:
                    return self.format_error_response(e, op)

        # Subgraph projection
        @self.mcp.tool(name="rg_subgraph")
        def rg_subgraph(owner_id: str, note_id: str, depth: int = 2) -> str:
            """Get graph data for a note and its neighbourhood.
            Args:
                owner_id: Owner of the note
                note_id: ID of the center note
                depth: Number of hops around the center (clamped to 1-3)
            """
            with timed_operation(
                "rg_subgraph", owner_id=owner_id, note_id=note_id, depth=depth
            ) as op:
                try:
                    data = self.projection_service.project_subgraph(owner_id, note_id, depth)
                    op["result_count"] = data.total_nodes
                    return _to_json(data.model_dump(mode="json"))
                except Exception as e:
                    return self.format_error_response(e, op)

        # Node search
        @self.mcp.tool(name="rg_search_nodes")
        def rg_search_nodes(owner_id: str, query: str) -> str:
            """Search notes by title, content and tags, returning highlighted nodes.
            Args:
                owner_id: Owner of the notes
                query: Case-insensitive search text
            """
            with timed_operation("rg_search_nodes", owner_id=owner_id, query=query[:30]) as op:
                try:
                    nodes = self.projection_service.search_nodes(owner_id, query)
                    op["result_count"] = len(nodes)
                    return _to_json([n.model_dump(mode="json") for n in nodes])
                except Exception as e:
                    return self.format_error_response(e, op)

        # Analytics
        @self.mcp.tool(name="rg_analytics")
        def rg_analytics(owner_id: str) -> str:
            """Get relationship statistics for an owner's graph.
            Args:
                owner_id: Owner of the notes
            """
            with timed_operation("rg_analytics", owner_id=owner_id) as op:
                try:
                    analytics = self.relationship_service.get_relationship_analytics(owner_id)
                    return _to_json(analytics.model_dump(mode="json"))
                except Exception as e:
                    return self.format_error_response(e, op)

        # Server status
        @self.mcp.tool(name="rg_status")
        def rg_status() -> str:
            """Get server metrics and cache statistics."""
            try:
                return _to_json(
                    {
                        "summary": metrics.get_summary(),
                        "total_notes": self.store.count_notes(),
                        "operations": metrics.get_metrics(),
                        "projection_cache": {
                            "entries": len(self.projection_cache),
                            "hits": self.projection_cache.hits,
                            "misses": self.projection_cache.misses,
                        },
                    }
                )
            except Exception as e:
                return self.format_error_response(e)

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
