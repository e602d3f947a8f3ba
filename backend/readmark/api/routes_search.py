"""Search API routes."""

from __future__ import annotations

import math

from fastapi import APIRouter, Depends, Query

from readmark.api.dependencies import get_repository, get_search_service, require_scope
from readmark.core.errors import ValidationError
from readmark.db.repository import HighlightRepository
from readmark.models.dto import (
    HighlightResponse,
    Pagination,
    SearchData,
    SearchRequest,
    SearchResponse,
    TextSearchResponse,
)
from readmark.models.entities import ApiKey
from readmark.retrieval.search import SearchService

router = APIRouter()

MAX_PAGE_SIZE = 100


@router.post("/search", response_model=SearchResponse, summary="Search highlights and optionally answer")
async def search_highlights(
    request: SearchRequest,
    api_key: ApiKey = Depends(require_scope("read")),
    service: SearchService = Depends(get_search_service),
) -> SearchResponse:
    outcome = await service.search(api_key.user_id, request.query, use_ai=request.use_ai)
    return SearchResponse(
        data=SearchData(
            highlights=[HighlightResponse.model_validate(item) for item in outcome.highlights],
            ai_answer=outcome.answer,
            total_results=outcome.total_results,
            lexical_only=outcome.lexical_only,
        )
    )


@router.get("/v1/search", response_model=TextSearchResponse, summary="Paginated substring search")
async def text_search(
    q: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1),
    api_key: ApiKey = Depends(require_scope("read")),
    repository: HighlightRepository = Depends(get_repository),
) -> TextSearchResponse:
    if not q or not q.strip():
        raise ValidationError("Search query 'q' is required")
    limit = min(limit, MAX_PAGE_SIZE)
    highlights, total = repository.search_text(api_key.user_id, q.strip(), page=page, limit=limit)
    return TextSearchResponse(
        query=q,
        data=[HighlightResponse.model_validate(item) for item in highlights],
        pagination=Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)),
    )


__all__ = ["router"]
