"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class ApiModel(BaseModel):
    """Accepts camelCase aliases and field names alike; reads dataclasses."""

    model_config = {"populate_by_name": True, "from_attributes": True}


# Shared shapes -------------------------------------------------------------


class BookRefResponse(ApiModel):
    id: str
    title: str
    author: str | None = None


class TopicRefResponse(ApiModel):
    id: str
    name: str
    color: str | None = None
    confidence: float | None = None


class HighlightResponse(ApiModel):
    id: str
    book_id: str
    content: str
    note: str | None = None
    page_number: int | None = None
    chapter: str | None = None
    color: str | None = None
    summary: str | None = None
    has_embedding: bool = False
    created_at: datetime
    updated_at: datetime
    book: BookRefResponse | None = None
    topics: list[TopicRefResponse] = Field(default_factory=list)


# Search ----------------------------------------------------------------------


class SearchRequest(ApiModel):
    query: str
    use_ai: bool = Field(default=True, alias="useAI")


class SearchData(ApiModel):
    highlights: list[HighlightResponse]
    ai_answer: str | None = Field(default=None, alias="aiAnswer")
    total_results: int = Field(alias="totalResults")
    lexical_only: bool = Field(default=False, alias="lexicalOnly")


class SearchResponse(ApiModel):
    data: SearchData


class Pagination(ApiModel):
    page: int
    limit: int
    total: int
    total_pages: int = Field(alias="totalPages")


class TextSearchResponse(ApiModel):
    query: str
    data: list[HighlightResponse]
    pagination: Pagination


# Books -----------------------------------------------------------------------


class BookCreateRequest(ApiModel):
    title: str = Field(min_length=1)
    author: str | None = None
    isbn: str | None = None
    cover_image: str | None = Field(default=None, alias="coverImage")
    source: Literal["MANUAL", "MILLIE", "RIDI", "KINDLE", "OTHER"] = "MANUAL"
    source_id: str | None = Field(default=None, alias="sourceId")


class BookUpdateRequest(ApiModel):
    title: str | None = Field(default=None, min_length=1)
    author: str | None = None
    isbn: str | None = None
    cover_image: str | None = Field(default=None, alias="coverImage")


class BookResponse(ApiModel):
    id: str
    title: str
    author: str | None = None
    isbn: str | None = None
    cover_image: str | None = None
    source: str
    source_id: str | None = None
    highlight_count: int = 0
    created_at: datetime
    updated_at: datetime


# Highlights --------------------------------------------------------------------


class HighlightCreateRequest(ApiModel):
    book_id: str = Field(min_length=1, alias="bookId")
    content: str = Field(min_length=1)
    note: str | None = None
    page_number: int | None = Field(default=None, gt=0, alias="pageNumber")
    chapter: str | None = None
    color: str | None = None


class HighlightUpdateRequest(ApiModel):
    content: str | None = Field(default=None, min_length=1)
    note: str | None = None
    page_number: int | None = Field(default=None, gt=0, alias="pageNumber")
    chapter: str | None = None
    color: str | None = None


class HighlightPage(ApiModel):
    data: list[HighlightResponse]
    total: int
    page: int
    page_size: int = Field(alias="pageSize")
    total_pages: int = Field(alias="totalPages")


# Topics ------------------------------------------------------------------------


class TopicCreateRequest(ApiModel):
    name: str = Field(min_length=1)
    description: str | None = None
    color: str | None = None


class TopicResponse(ApiModel):
    id: str
    name: str
    description: str | None = None
    color: str | None = None
    is_auto: bool = False
    highlight_count: int = 0
    created_at: datetime
    updated_at: datetime


class TopicLinkRequest(ApiModel):
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)


# Accounts and keys -------------------------------------------------------------


class RegisterRequest(ApiModel):
    name: str = Field(min_length=2)
    email: str = Field(pattern=EMAIL_PATTERN)


class UserResponse(ApiModel):
    id: str
    email: str
    name: str
    created_at: datetime


class ApiKeyCreateRequest(ApiModel):
    name: str = Field(min_length=1, max_length=100)
    scopes: list[Literal["read", "write", "delete"]] = Field(default_factory=lambda: ["read"])
    expires_in_days: int | None = Field(default=None, gt=0, alias="expiresInDays")


class ApiKeyResponse(ApiModel):
    id: str
    name: str
    key_prefix: str
    scopes: list[str]
    last_used_at: datetime | None = None
    expires_at: datetime | None = None
    created_at: datetime


class ApiKeyCreatedResponse(ApiModel):
    message: str
    key: str
    data: ApiKeyResponse


class RegisterResponse(ApiModel):
    user: UserResponse
    key: str
    api_key: ApiKeyResponse = Field(alias="apiKey")


class DashboardResponse(ApiModel):
    total_highlights: int = Field(alias="totalHighlights")
    total_books: int = Field(alias="totalBooks")
    total_topics: int = Field(alias="totalTopics")
    total_searches: int = Field(alias="totalSearches")
    recent_highlights: list[HighlightResponse] = Field(alias="recentHighlights")
    recent_books: list[BookResponse] = Field(alias="recentBooks")
    topics: list[TopicResponse]


class DeleteResponse(ApiModel):
    status: Literal["ok", "noop"]
    deleted: int


def to_payload(model: BaseModel) -> dict[str, Any]:
    """Fields explicitly sent by the client, keyed by field name."""
    return model.model_dump(exclude_unset=True, by_alias=False)


__all__ = [
    "ApiKeyCreateRequest",
    "ApiKeyCreatedResponse",
    "ApiKeyResponse",
    "BookCreateRequest",
    "BookResponse",
    "BookUpdateRequest",
    "DashboardResponse",
    "DeleteResponse",
    "HighlightCreateRequest",
    "HighlightPage",
    "HighlightResponse",
    "HighlightUpdateRequest",
    "Pagination",
    "RegisterRequest",
    "RegisterResponse",
    "SearchData",
    "SearchRequest",
    "SearchResponse",
    "TextSearchResponse",
    "TopicCreateRequest",
    "TopicLinkRequest",
    "TopicResponse",
    "UserResponse",
    "to_payload",
]
