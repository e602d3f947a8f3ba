"""Substring matching over highlight text."""

from __future__ import annotations

from readmark.models.entities import Highlight


def matches(query: str, highlight: Highlight) -> bool:
    """Case-insensitive substring test against content and note."""
    if not query:
        return False
    needle = query.lower()
    if needle in highlight.content.lower():
        return True
    return bool(highlight.note) and needle in highlight.note.lower()


__all__ = ["matches"]
