"""API key issuing and verification."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Sequence

from readmark.core.errors import AuthenticationError, AuthorizationError, ValidationError
from readmark.db.repository import HighlightRepository
from readmark.models.entities import ApiKey
from readmark.utils.hashing import sha256_text
from readmark.utils.ids import new_token
from readmark.utils.time import datetime_to_ms, utc_now

KEY_NAMESPACE = "rdmk"
PREFIX_LENGTH = 12
ALL_SCOPES: tuple[str, ...] = ("read", "write", "delete")


def generate_api_key() -> str:
    return new_token(KEY_NAMESPACE, 32)


def key_prefix(raw_key: str) -> str:
    """Displayable start of a key, e.g. ``rdmk_AbCdEfG``."""
    return raw_key[:PREFIX_LENGTH]


def hash_api_key(raw_key: str) -> str:
    return sha256_text(raw_key)


def extract_api_key(authorization: str | None) -> str:
    """Accept both ``Bearer <key>`` and a bare key."""
    if not authorization:
        raise AuthenticationError("Missing Authorization header")
    raw = authorization.strip()
    if raw.lower().startswith("bearer "):
        raw = raw[7:].strip()
    if not raw.startswith(f"{KEY_NAMESPACE}_"):
        raise AuthenticationError("Invalid API key format")
    return raw


def issue_api_key(
    repository: HighlightRepository,
    user_id: str,
    name: str,
    scopes: Sequence[str] = ("read",),
    expires_in_days: int | None = None,
) -> tuple[str, ApiKey]:
    """Create a key and return the raw secret, which is never stored."""
    unknown = set(scopes) - set(ALL_SCOPES)
    if unknown:
        raise ValidationError(f"Unknown scopes: {', '.join(sorted(unknown))}")
    if not scopes:
        raise ValidationError("At least one scope is required")
    raw_key = generate_api_key()
    expires_at = None
    if expires_in_days:
        expires_at = datetime_to_ms(utc_now() + timedelta(days=expires_in_days))
    record = repository.create_api_key(
        user_id=user_id,
        name=name,
        key_hash=hash_api_key(raw_key),
        key_prefix=key_prefix(raw_key),
        scopes=list(dict.fromkeys(scopes)),
        expires_at=expires_at,
    )
    return raw_key, record


def verify_api_key(
    repository: HighlightRepository,
    authorization: str | None,
    required_scope: str | None = None,
    now: datetime | None = None,
) -> ApiKey:
    raw_key = extract_api_key(authorization)
    record = repository.find_api_key(hash_api_key(raw_key))
    if record is None:
        raise AuthenticationError("Invalid API key")
    if record.expires_at is not None and record.expires_at < (now or utc_now()):
        raise AuthenticationError("API key has expired")
    if required_scope and required_scope not in record.scopes:
        raise AuthorizationError(f"API key does not have '{required_scope}' permission")
    repository.touch_api_key(record.id)
    return record


__all__ = [
    "ALL_SCOPES",
    "extract_api_key",
    "generate_api_key",
    "hash_api_key",
    "issue_api_key",
    "key_prefix",
    "verify_api_key",
]
