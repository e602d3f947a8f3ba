"""Text processing helpers."""

from __future__ import annotations

import re


WHITESPACE_RE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Collapse whitespace and strip."""
    return WHITESPACE_RE.sub(" ", text).strip()


def truncate(text: str, limit: int = 80) -> str:
    """Shorten text for log lines, marking the cut with an ellipsis."""
    collapsed = normalize(text)
    if len(collapsed) <= limit:
        return collapsed
    return collapsed[: max(limit - 3, 0)] + "..."
