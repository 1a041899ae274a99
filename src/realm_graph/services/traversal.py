"""Bounded breadth-first traversal shared by the graph algorithms.

Cycle detection and shortest path both call :func:`bounded_bfs` with a
different edge filter. Clustering walks an :class:`AdjacencyIndex`, which
unions outgoing and incoming edges so reachability is undirected without
storing back-references on the notes.
"""

from collections import deque
from typing import Callable, Dict, Iterable, List, Optional

from realm_graph.models.schema import Note, Relationship

EdgeFilter = Callable[[Relationship], bool]


def any_edge(relationship: Relationship) -> bool:
    return True


def hierarchical_edge(relationship: Relationship) -> bool:
    return relationship.relationship_type.is_hierarchical


def bounded_bfs(
    start_id: str,
    goal_id: str,
    notes_by_id: Dict[str, Note],
    max_depth: int,
    edge_filter: EdgeFilter = any_edge,
) -> List[str]:
    """Find a path of note ids from start to goal over outgoing edges.

    Only relationships accepted by ``edge_filter`` whose target is in
    ``notes_by_id`` are followed. Neighbours are visited in the insertion
    order of each note's outgoing list, so the first path discovered wins
    ties.

    Returns:
        The path including both endpoints, ``[start_id]`` when start equals
        goal, or an empty list when the goal is not reachable within
        ``max_depth`` edges.
    """
    if start_id == goal_id:
        return [start_id]
    if max_depth < 1 or start_id not in notes_by_id:
        return []

    parents: Dict[str, Optional[str]] = {start_id: None}
    queue = deque([(start_id, 0)])

    while queue:
        current_id, depth = queue.popleft()
        if depth >= max_depth:
            continue
        for relationship in notes_by_id[current_id].relationships:
            if not edge_filter(relationship):
                continue
            next_id = relationship.target_id
            if next_id in parents or next_id not in notes_by_id:
                continue
            parents[next_id] = current_id
            if next_id == goal_id:
                return _build_path(parents, goal_id)
            queue.append((next_id, depth + 1))

    return []


def _build_path(parents: Dict[str, Optional[str]], goal_id: str) -> List[str]:
    path = []
    node_id: Optional[str] = goal_id
    while node_id is not None:
        path.append(node_id)
        node_id = parents[node_id]
    path.reverse()
    return path


class AdjacencyIndex:
    """Undirected neighbour lists for a fixed set of notes.

    Built once per call from a snapshot. Edges whose target lies outside the
    snapshot are ignored. Neighbour order is outgoing edges first (insertion
    order), then incoming edges in snapshot order.
    """

    def __init__(self, notes: Iterable[Note]):
        self.notes_by_id: Dict[str, Note] = {}
        self._outgoing: Dict[str, List[str]] = {}
        self._incoming: Dict[str, List[str]] = {}

        for note in notes:
            self.notes_by_id[note.id] = note
            self._outgoing[note.id] = []
            self._incoming[note.id] = []

        for note in self.notes_by_id.values():
            for relationship in note.relationships:
                target_id = relationship.target_id
                if target_id not in self.notes_by_id:
                    continue
                self._outgoing[note.id].append(target_id)
                self._incoming[target_id].append(note.id)

    def neighbors(self, note_id: str) -> List[str]:
        seen = set()
        result = []
        for neighbor_id in self._outgoing.get(note_id, []) + self._incoming.get(note_id, []):
            if neighbor_id not in seen:
                seen.add(neighbor_id)
                result.append(neighbor_id)
        return result

    def component(self, start_id: str) -> List[str]:
        """Note ids reachable from start ignoring direction, in BFS order."""
        visited = {start_id}
        order = [start_id]
        queue = deque([start_id])
        while queue:
            current_id = queue.popleft()
            for neighbor_id in self.neighbors(current_id):
                if neighbor_id not in visited:
                    visited.add(neighbor_id)
                    order.append(neighbor_id)
                    queue.append(neighbor_id)
        return order

    def count_internal_edges(self, member_ids: Iterable[str]) -> int:
        """Directed edges with both endpoints inside the given set."""
        members = set(member_ids)
        return sum(
            1
            for note_id in members
            for target_id in self._outgoing.get(note_id, [])
            if target_id in members
        )
