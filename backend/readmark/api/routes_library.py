"""Book, highlight, topic and dashboard routes."""

from __future__ import annotations

import math

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from readmark.api.dependencies import (
    get_app_settings,
    get_embedding_provider,
    get_repository,
    require_scope,
)
from readmark.core.config import Settings
from readmark.db.repository import HighlightRepository
from readmark.ingest.embeddings import EmbeddingProvider
from readmark.ingest.enrich import embed_highlight
from readmark.models.dto import (
    BookCreateRequest,
    BookResponse,
    BookUpdateRequest,
    DashboardResponse,
    DeleteResponse,
    HighlightCreateRequest,
    HighlightPage,
    HighlightResponse,
    HighlightUpdateRequest,
    TopicCreateRequest,
    TopicLinkRequest,
    TopicResponse,
    to_payload,
)
from readmark.models.entities import ApiKey

router = APIRouter()


# Books -----------------------------------------------------------------------


@router.get("/books", response_model=list[BookResponse], summary="List books")
async def list_books(
    api_key: ApiKey = Depends(require_scope("read")),
    repository: HighlightRepository = Depends(get_repository),
) -> list[BookResponse]:
    return [BookResponse.model_validate(book) for book in repository.list_books(api_key.user_id)]


@router.post("/books", response_model=BookResponse, status_code=201, summary="Create a book")
async def create_book(
    request: BookCreateRequest,
    api_key: ApiKey = Depends(require_scope("write")),
    repository: HighlightRepository = Depends(get_repository),
) -> BookResponse:
    book = repository.create_book(api_key.user_id, **request.model_dump(by_alias=False))
    return BookResponse.model_validate(book)


@router.get("/books/{book_id}", response_model=BookResponse, summary="Get a book")
async def get_book(
    book_id: str,
    api_key: ApiKey = Depends(require_scope("read")),
    repository: HighlightRepository = Depends(get_repository),
) -> BookResponse:
    book = repository.get_book(api_key.user_id, book_id)
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found")
    return BookResponse.model_validate(book)


@router.patch("/books/{book_id}", response_model=BookResponse, summary="Update a book")
async def update_book(
    book_id: str,
    request: BookUpdateRequest,
    api_key: ApiKey = Depends(require_scope("write")),
    repository: HighlightRepository = Depends(get_repository),
) -> BookResponse:
    fields = to_payload(request)
    if fields.get("title", "") is None:
        fields.pop("title")
    book = repository.update_book(api_key.user_id, book_id, fields)
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found")
    return BookResponse.model_validate(book)


@router.delete("/books/{book_id}", response_model=DeleteResponse, summary="Delete a book and its highlights")
async def delete_book(
    book_id: str,
    api_key: ApiKey = Depends(require_scope("delete")),
    repository: HighlightRepository = Depends(get_repository),
) -> DeleteResponse:
    if not repository.delete_book(api_key.user_id, book_id):
        raise HTTPException(status_code=404, detail="Book not found")
    return DeleteResponse(status="ok", deleted=1)


# Highlights ------------------------------------------------------------------


@router.get("/highlights", response_model=HighlightPage, summary="List highlights")
async def list_highlights(
    book_id: str | None = Query(default=None, alias="bookId"),
    search: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100, alias="pageSize"),
    api_key: ApiKey = Depends(require_scope("read")),
    repository: HighlightRepository = Depends(get_repository),
) -> HighlightPage:
    highlights, total = repository.list_highlights(
        api_key.user_id, book_id=book_id, search=search, page=page, page_size=page_size
    )
    return HighlightPage(
        data=[HighlightResponse.model_validate(item) for item in highlights],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size),
    )


@router.post("/highlights", response_model=HighlightResponse, status_code=201, summary="Create a highlight")
async def create_highlight(
    request: HighlightCreateRequest,
    api_key: ApiKey = Depends(require_scope("write")),
    repository: HighlightRepository = Depends(get_repository),
    provider: EmbeddingProvider = Depends(get_embedding_provider),
    settings: Settings = Depends(get_app_settings),
) -> HighlightResponse:
    if repository.get_book(api_key.user_id, request.book_id) is None:
        raise HTTPException(status_code=404, detail="Book not found")
    embedding = await embed_highlight(provider, request.content, request.note, timeout=settings.embedding_timeout)
    highlight = repository.create_highlight(
        api_key.user_id,
        book_id=request.book_id,
        content=request.content,
        note=request.note,
        page_number=request.page_number,
        chapter=request.chapter,
        color=request.color,
        embedding=embedding.vector if embedding else None,
        embedding_model=embedding.model if embedding else None,
    )
    return HighlightResponse.model_validate(highlight)


@router.get("/highlights/{highlight_id}", response_model=HighlightResponse, summary="Get a highlight")
async def get_highlight(
    highlight_id: str,
    api_key: ApiKey = Depends(require_scope("read")),
    repository: HighlightRepository = Depends(get_repository),
) -> HighlightResponse:
    highlight = repository.get_highlight(api_key.user_id, highlight_id)
    if highlight is None:
        raise HTTPException(status_code=404, detail="Highlight not found")
    return HighlightResponse.model_validate(highlight)


@router.patch("/highlights/{highlight_id}", response_model=HighlightResponse, summary="Update a highlight")
async def update_highlight(
    highlight_id: str,
    request: HighlightUpdateRequest,
    api_key: ApiKey = Depends(require_scope("write")),
    repository: HighlightRepository = Depends(get_repository),
    provider: EmbeddingProvider = Depends(get_embedding_provider),
    settings: Settings = Depends(get_app_settings),
) -> HighlightResponse:
    existing = repository.get_highlight(api_key.user_id, highlight_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Highlight not found")
    fields = to_payload(request)
    if fields.get("content", "") is None:
        fields.pop("content")

    embedding = None
    text_changed = "content" in fields or "note" in fields
    if text_changed:
        embedding = await embed_highlight(
            provider,
            fields.get("content", existing.content),
            fields.get("note", existing.note),
            timeout=settings.embedding_timeout,
        )
    highlight = repository.update_highlight(
        api_key.user_id,
        highlight_id,
        fields,
        embedding=embedding.vector if embedding else None,
        embedding_model=embedding.model if embedding else None,
        reset_embedding=text_changed and embedding is None,
    )
    if highlight is None:
        raise HTTPException(status_code=404, detail="Highlight not found")
    return HighlightResponse.model_validate(highlight)


@router.delete("/highlights/{highlight_id}", response_model=DeleteResponse, summary="Delete a highlight")
async def delete_highlight(
    highlight_id: str,
    api_key: ApiKey = Depends(require_scope("delete")),
    repository: HighlightRepository = Depends(get_repository),
) -> DeleteResponse:
    if not repository.delete_highlight(api_key.user_id, highlight_id):
        raise HTTPException(status_code=404, detail="Highlight not found")
    return DeleteResponse(status="ok", deleted=1)


# Topics ----------------------------------------------------------------------


@router.get("/topics", response_model=list[TopicResponse], summary="List topics with highlight counts")
async def list_topics(
    api_key: ApiKey = Depends(require_scope("read")),
    repository: HighlightRepository = Depends(get_repository),
) -> list[TopicResponse]:
    return [TopicResponse.model_validate(topic) for topic in repository.list_topics(api_key.user_id)]


@router.post("/topics", response_model=TopicResponse, status_code=201, summary="Create a topic")
async def create_topic(
    request: TopicCreateRequest,
    api_key: ApiKey = Depends(require_scope("write")),
    repository: HighlightRepository = Depends(get_repository),
) -> TopicResponse:
    topic = repository.create_topic(
        api_key.user_id, name=request.name, description=request.description, color=request.color
    )
    return TopicResponse.model_validate(topic)


@router.put(
    "/highlights/{highlight_id}/topics/{topic_id}",
    response_model=HighlightResponse,
    summary="Attach a topic to a highlight",
)
async def link_topic(
    highlight_id: str,
    topic_id: str,
    request: TopicLinkRequest | None = Body(default=None),
    api_key: ApiKey = Depends(require_scope("write")),
    repository: HighlightRepository = Depends(get_repository),
) -> HighlightResponse:
    confidence = request.confidence if request else None
    if not repository.link_topic(api_key.user_id, highlight_id, topic_id, confidence):
        raise HTTPException(status_code=404, detail="Highlight or topic not found")
    highlight = repository.get_highlight(api_key.user_id, highlight_id)
    return HighlightResponse.model_validate(highlight)


# Dashboard -------------------------------------------------------------------


@router.get("/dashboard", response_model=DashboardResponse, summary="Library statistics")
async def dashboard(
    api_key: ApiKey = Depends(require_scope("read")),
    repository: HighlightRepository = Depends(get_repository),
) -> DashboardResponse:
    stats = repository.dashboard(api_key.user_id)
    return DashboardResponse(
        total_highlights=stats["total_highlights"],
        total_books=stats["total_books"],
        total_topics=stats["total_topics"],
        total_searches=stats["total_searches"],
        recent_highlights=[HighlightResponse.model_validate(item) for item in stats["recent_highlights"]],
        recent_books=[BookResponse.model_validate(item) for item in stats["recent_books"]],
        topics=[TopicResponse.model_validate(item) for item in stats["topics"]],
    )


__all__ = ["router"]
