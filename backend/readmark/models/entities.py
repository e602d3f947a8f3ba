"""Internal dataclasses representing persisted entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

BookSource = Literal["MANUAL", "MILLIE", "RIDI", "KINDLE", "OTHER"]
ApiKeyScope = Literal["read", "write", "delete"]


@dataclass(slots=True)
class User:
    id: str
    email: str
    name: str
    created_at: datetime


@dataclass(slots=True)
class Book:
    id: str
    user_id: str
    title: str
    author: str | None
    isbn: str | None
    cover_image: str | None
    source: str
    source_id: str | None
    created_at: datetime
    updated_at: datetime
    highlight_count: int = 0


@dataclass(slots=True)
class BookRef:
    """Denormalised book fields carried on a highlight."""

    id: str
    title: str
    author: str | None


@dataclass(slots=True)
class TopicRef:
    """Topic attached to a highlight, with the link confidence."""

    id: str
    name: str
    color: str | None
    confidence: float | None = None


@dataclass(slots=True)
class Topic:
    id: str
    user_id: str
    name: str
    description: str | None
    color: str | None
    is_auto: bool
    created_at: datetime
    updated_at: datetime
    highlight_count: int = 0


@dataclass(slots=True)
class Highlight:
    id: str
    user_id: str
    book_id: str
    content: str
    note: str | None
    page_number: int | None
    chapter: str | None
    color: str | None
    summary: str | None
    embedding: list[float] | None
    embedding_model: str | None
    created_at: datetime
    updated_at: datetime
    book: BookRef | None = None
    topics: list[TopicRef] = field(default_factory=list)

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)


@dataclass(slots=True)
class SearchHistoryEntry:
    id: str
    user_id: str
    query: str
    response: str | None
    created_at: datetime


@dataclass(slots=True)
class ApiKey:
    id: str
    user_id: str
    name: str
    key_prefix: str
    scopes: list[str]
    last_used_at: datetime | None
    expires_at: datetime | None
    created_at: datetime


__all__ = [
    "ApiKey",
    "ApiKeyScope",
    "Book",
    "BookRef",
    "BookSource",
    "Highlight",
    "SearchHistoryEntry",
    "Topic",
    "TopicRef",
    "User",
]
