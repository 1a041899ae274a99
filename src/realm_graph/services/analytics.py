"""Graph-wide relationship statistics."""

from collections import Counter
from typing import List

from realm_graph.models.schema import HubNote, Note, RelationshipAnalytics

DEFAULT_HUB_LIMIT = 10


def compute_relationship_analytics(
    notes: List[Note], hub_limit: int = DEFAULT_HUB_LIMIT
) -> RelationshipAnalytics:
    """Aggregate relationship counts over a snapshot of one owner's notes.

    Hub notes are ranked by outgoing relationship count, ties broken by note
    id ascending. Unlinked notes rank last but still
    fill empty slots.
    """
    total_notes = len(notes)
    total_relationships = sum(len(n.relationships) for n in notes)
    average = total_relationships / total_notes if total_notes else 0.0

    ranked = sorted(notes, key=lambda n: (-len(n.relationships), n.id))
    hub_notes = [
        HubNote(note_id=n.id, title=n.title, relationship_count=len(n.relationships))
        for n in ranked[:hub_limit]
    ]

    distribution = Counter(
        r.relationship_type.value for n in notes for r in n.relationships
    )

    return RelationshipAnalytics(
        total_notes=total_notes,
        total_relationships=total_relationships,
        average_relationships_per_note=average,
        hub_notes=hub_notes,
        relationship_type_distribution=dict(distribution),
    )
