"""Utility functions for the Realm Graph engine."""

import re

# Rich-text bodies arrive as HTML-ish markup from the editor
_MARKUP_PATTERN = re.compile(r"<[^>]*>")


def strip_markup(text: str) -> str:
    """Remove tag markup from rich-text content.

    Examples:
        "<p>Hello <b>world</b></p>" -> "Hello world"
        "plain text" -> "plain text"

    Args:
        text: Note body, possibly containing markup.

    Returns:
        The text with every ``<...>`` tag removed.
    """
    if not text:
        return ""
    return _MARKUP_PATTERN.sub("", text)


def truncate_preview(content: str, max_length: int = 100) -> str:
    """Build a short plain-text preview of note content.

    Content already within ``max_length`` is returned unchanged. Longer
    content has its markup stripped first and is cut with a trailing
    ellipsis only if it is still too long.
    """
    if not content or len(content) <= max_length:
        return content or ""

    plain = strip_markup(content).strip()
    if len(plain) <= max_length:
        return plain
    return plain[:max_length] + "..."


def tokenize(text: str) -> set:
    """Split markup-free, lower-cased text into a set of whitespace tokens.

    Each tag counts as a word break, so adjacent paragraphs stay separate.
    """
    return set(_MARKUP_PATTERN.sub(" ", text or "").lower().split())
