"""Connected-component clustering of an owner's notes."""

import logging
from typing import Any, List, Optional

from realm_graph.exceptions import ErrorCode, ValidationError
from realm_graph.models.schema import Cluster
from realm_graph.services.traversal import AdjacencyIndex
from realm_graph.storage.base import GraphStore
from realm_graph.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)


def cluster_cohesion(internal_edges: int, size: int) -> float:
    """Internal directed edges over the n*(n-1) possible ones; 0.0 below 2."""
    if size < 2:
        return 0.0
    return internal_edges / (size * (size - 1))


class ClusterService:
    """Groups notes that are reachable from one another ignoring direction."""

    def __init__(self, store: Optional[GraphStore] = None, engine: Optional[Any] = None):
        if store is None:
            store = NoteRepository(engine=engine)
        self.store = store

    def find_clusters(self, owner_id: str, min_size: int = 2) -> List[Cluster]:
        """Find the connected components of the owner's graph.

        Notes are seeded in store order, members listed in BFS discovery
        order. Components smaller than ``min_size`` are dropped and the rest
        sorted by cohesion descending; ties keep discovery order.

        Raises:
            ValidationError: If min_size is below 1.
        """
        if min_size is None or min_size < 1:
            raise ValidationError(
                "min_size must be at least 1",
                field="min_size",
                value=min_size,
                code=ErrorCode.INVALID_LIMIT,
            )
        logger.debug(f"Finding note clusters for owner {owner_id} with min size {min_size}")

        notes = self.store.find_notes_by_owner(owner_id)
        index = AdjacencyIndex(notes)

        clusters = []
        visited = set()
        for note in notes:
            if note.id in visited:
                continue
            member_ids = index.component(note.id)
            visited.update(member_ids)
            if len(member_ids) < min_size:
                continue
            cohesion = cluster_cohesion(
                index.count_internal_edges(member_ids), len(member_ids)
            )
            clusters.append(
                Cluster(
                    notes=[index.notes_by_id[i] for i in member_ids],
                    cohesion=cohesion,
                )
            )

        # list.sort is stable
        clusters.sort(key=lambda c: c.cohesion, reverse=True)
        logger.debug(f"Found {len(clusters)} cluster(s) for owner {owner_id}")
        return clusters
