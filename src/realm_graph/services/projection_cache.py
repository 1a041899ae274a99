"""Cache of subgraph projections, invalidated by graph events."""

import logging
import threading
from typing import Dict, Optional, Tuple

from realm_graph.events import GraphEvent
from realm_graph.models.schema import GraphData

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str, int]


class ProjectionCache:
    """Holds projections keyed by (owner_id, center_note_id, depth).

    Any relationship event whose source or target appears in a cached
    projection drops that entry, and so does any edit to a member note.
    """

    def __init__(self):
        self._entries: Dict[CacheKey, GraphData] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, owner_id: str, center_id: str, depth: int) -> Optional[GraphData]:
        with self._lock:
            data = self._entries.get((owner_id, center_id, depth))
            if data is None:
                self.misses += 1
            else:
                self.hits += 1
            return data

    def put(self, owner_id: str, center_id: str, depth: int, data: GraphData) -> None:
        with self._lock:
            self._entries[(owner_id, center_id, depth)] = data

    def invalidate_note(self, note_id: str) -> int:
        """Drop every entry that includes the note. Returns entries dropped."""
        with self._lock:
            stale = [
                key
                for key, data in self._entries.items()
                if key[1] == note_id or note_id in data.node_ids()
            ]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def handle_event(self, event: GraphEvent) -> None:
        """Event subscriber: invalidate projections touching any affected note."""
        dropped = sum(self.invalidate_note(note_id) for note_id in event.note_ids)
        if dropped:
            logger.debug(
                f"Invalidated {dropped} cached projection(s) after "
                f"{event.kind.value} of {event.subject_id}"
            )
