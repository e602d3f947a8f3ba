"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache
from typing import Awaitable, Callable

from fastapi import Depends, Header
from openai import AsyncOpenAI

from readmark.core.config import Settings, get_settings
from readmark.db.repository import HighlightRepository
from readmark.db.sqlite import SQLiteDatabase
from readmark.ingest.embeddings import EmbeddingModel, EmbeddingProvider, OpenAIEmbedder
from readmark.models.entities import ApiKey
from readmark.retrieval import OpenAIAnswerSynthesizer, SearchService
from readmark.retrieval.answer import AnswerSynthesizer
from readmark.security.api_keys import verify_api_key

_DB: SQLiteDatabase | None = None
_OPENAI_CLIENT: AsyncOpenAI | None = None
_EMBEDDER: EmbeddingProvider | None = None
_SEARCH_SERVICE: SearchService | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_database() -> SQLiteDatabase:
    global _DB
    if _DB is None:
        settings = get_app_settings()
        db = SQLiteDatabase(settings.db_path)
        db.ensure_schema()
        _DB = db
    return _DB


def get_repository() -> HighlightRepository:
    return HighlightRepository(get_database())


def get_openai_client() -> AsyncOpenAI | None:
    global _OPENAI_CLIENT
    settings = get_app_settings()
    if _OPENAI_CLIENT is None and settings.openai_api_key:
        _OPENAI_CLIENT = AsyncOpenAI(api_key=settings.openai_api_key)
    return _OPENAI_CLIENT


def get_embedding_provider() -> EmbeddingProvider:
    global _EMBEDDER
    if _EMBEDDER is None:
        settings = get_app_settings()
        if settings.embedding_backend == "openai":
            client = get_openai_client()
            if client is None:
                raise RuntimeError("embedding_backend 'openai' requires an OpenAI API key")
            _EMBEDDER = OpenAIEmbedder(client, model=settings.embedding_model)
        else:
            _EMBEDDER = EmbeddingModel.get(settings.embedding_model, dim=settings.embedding_dim)
    return _EMBEDDER


def get_answer_synthesizer() -> AnswerSynthesizer | None:
    settings = get_app_settings()
    client = get_openai_client()
    if client is None:
        return None
    return OpenAIAnswerSynthesizer(client, model=settings.answer_model, temperature=settings.answer_temperature)


def get_search_service() -> SearchService:
    global _SEARCH_SERVICE
    if _SEARCH_SERVICE is None:
        repository = get_repository()
        _SEARCH_SERVICE = SearchService(
            corpus=repository,
            embedder=get_embedding_provider(),
            settings=get_app_settings(),
            synthesizer=get_answer_synthesizer(),
            history=repository,
        )
    return _SEARCH_SERVICE


def require_scope(scope: str) -> Callable[..., Awaitable[ApiKey]]:
    """Dependency factory resolving the caller's API key with ``scope``."""

    async def _dependency(
        authorization: str | None = Header(default=None),
        repository: HighlightRepository = Depends(get_repository),
    ) -> ApiKey:
        return verify_api_key(repository, authorization, required_scope=scope)

    return _dependency


__all__ = [
    "get_app_settings",
    "get_answer_synthesizer",
    "get_database",
    "get_embedding_provider",
    "get_openai_client",
    "get_repository",
    "get_search_service",
    "require_scope",
]
