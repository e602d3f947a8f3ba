"""ID and token helpers."""

from __future__ import annotations

import secrets
import string
import uuid

_TOKEN_ALPHABET = string.ascii_letters + string.digits


def new_id(prefix: str | None = None) -> str:
    """Generate a random UUID4 string with optional prefix."""
    base = uuid.uuid4().hex
    return f"{prefix}_{base}" if prefix else base


def new_token(prefix: str, length: int = 32) -> str:
    """Generate a URL-safe secret token such as ``rdmk_AbC...``."""
    body = "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))
    return f"{prefix}_{body}"
