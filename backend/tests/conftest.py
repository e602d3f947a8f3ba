"""Test fixtures for Readmark."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _reset_singletons() -> None:
    from readmark.api import dependencies as deps
    from readmark.core.config import get_settings
    from readmark.ingest.embeddings import EmbeddingModel

    EmbeddingModel._instances.clear()
    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps._DB = None
    deps._OPENAI_CLIENT = None
    deps._EMBEDDER = None
    deps._SEARCH_SERVICE = None


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("RDMK_DB_PATH", str(tmp_path / "readmark.db"))
    monkeypatch.setenv("RDMK_EMBEDDING_BACKEND", "hashed")
    for name in ("RDMK_CONFIG", "RDMK_OPENAI_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)

    _reset_singletons()
    yield
    from readmark.api import dependencies as deps

    if deps._DB is not None:
        deps._DB.close()
    _reset_singletons()


def make_highlight(
    highlight_id: str,
    content: str = "",
    note: str | None = None,
    embedding: list[float] | None = None,
    minutes: int = 0,
    book_title: str = "Meditations",
    embedding_model: str = "test",
):
    """Build an in-memory highlight; larger ``minutes`` means newer."""
    from readmark.models.entities import BookRef, Highlight

    created = BASE_TIME + timedelta(minutes=minutes)
    return Highlight(
        id=highlight_id,
        user_id="usr_test",
        book_id=f"book_{book_title.lower().replace(' ', '_')}",
        content=content or f"passage {highlight_id}",
        note=note,
        page_number=None,
        chapter=None,
        color=None,
        summary=None,
        embedding=embedding,
        embedding_model=embedding_model if embedding else None,
        created_at=created,
        updated_at=created,
        book=BookRef(id=f"book_{book_title.lower().replace(' ', '_')}", title=book_title, author=None),
    )
