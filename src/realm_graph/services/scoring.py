"""Relationship strength scoring between pairs of notes.

Strength combines three similarity terms, each in [0, 1]:

- content: Jaccard over lower-cased whitespace tokens of the markup-free body
- tags: Jaccard over the tag sets
- shared connections: Jaccard over the sets of outgoing target ids

The weighted sum is clamped to [0, 1]. Every term is symmetric, so
``strength(a, b) == strength(b, a)``.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from realm_graph.config import config
from realm_graph.models.schema import Note, RelationshipType
from realm_graph.utils import tokenize

# Thresholds above which a suggestion is typed related_to
RELATED_CONTENT_THRESHOLD = 0.3
RELATED_TAG_THRESHOLD = 0.5


@dataclass(frozen=True)
class StrengthWeights:
    """Weights for the three strength terms plus the explicit-link bonus."""

    content: float = 0.3
    tags: float = 0.2
    shared: float = 0.5
    direct_link_bonus: float = 0.5

    @classmethod
    def from_config(cls) -> "StrengthWeights":
        return cls(
            content=config.content_weight,
            tags=config.tag_weight,
            shared=config.shared_connection_weight,
            direct_link_bonus=config.direct_link_bonus,
        )


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def jaccard(a: Iterable, b: Iterable) -> float:
    """Jaccard index of two collections; 0.0 when both are empty."""
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def content_similarity(a: Note, b: Note) -> float:
    return jaccard(tokenize(a.content), tokenize(b.content))


def tag_similarity(a: Note, b: Note) -> float:
    return jaccard(a.tags, b.tags)


def shared_connection_ratio(a: Note, b: Note) -> float:
    """Overlap of the two notes' outgoing targets."""
    return jaccard(a.get_target_ids(), b.get_target_ids())


def strength(a: Note, b: Note, weights: Optional[StrengthWeights] = None) -> float:
    """Weighted similarity of two notes, clamped to [0, 1].

    The explicit-link bonus is not applied here; see
    :func:`strength_with_bonus`.
    """
    w = weights or StrengthWeights.from_config()
    score = (
        content_similarity(a, b) * w.content
        + tag_similarity(a, b) * w.tags
        + shared_connection_ratio(a, b) * w.shared
    )
    return clamp(score)


def strength_with_bonus(
    a: Note, b: Note, weights: Optional[StrengthWeights] = None
) -> float:
    """Strength of an explicit (user-created) link from a to b."""
    w = weights or StrengthWeights.from_config()
    return clamp(strength(a, b, w) + w.direct_link_bonus)


def suggest_relationship_type(a: Note, b: Note) -> RelationshipType:
    """Pick a type for a suggested link between two unlinked notes."""
    if (
        tag_similarity(a, b) > RELATED_TAG_THRESHOLD
        or content_similarity(a, b) > RELATED_CONTENT_THRESHOLD
    ):
        return RelationshipType.RELATED_TO
    return RelationshipType.REFERENCES
