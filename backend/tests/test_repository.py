"""Tests for the SQLite repository."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from readmark.core.errors import CorpusReadError
from readmark.db.repository import HighlightRepository
from readmark.db.sqlite import SQLiteDatabase


@pytest.fixture
def repository(tmp_path: Path):
    db = SQLiteDatabase(tmp_path / "repo.db")
    db.ensure_schema()
    yield HighlightRepository(db)
    db.close()


@pytest.fixture
def user_id(repository: HighlightRepository) -> str:
    return repository.create_user(email="reader@example.com", name="Reader").id


def _add(repository: HighlightRepository, user_id: str, book_id: str, content: str, created_at: int) -> str:
    highlight = repository.create_highlight(user_id, book_id=book_id, content=content, embedding=[1.0, 0.0])
    repository.db.execute("UPDATE highlights SET created_at = ? WHERE id = ?", [created_at, highlight.id])
    repository.db.commit()
    return highlight.id


def test_fetch_highlights_newest_first_with_id_tiebreak(repository: HighlightRepository, user_id: str) -> None:
    book = repository.create_book(user_id, title="Meditations")
    oldest = _add(repository, user_id, book.id, "first", 1_000)
    tied = [_add(repository, user_id, book.id, f"tied {idx}", 3_000) for idx in range(3)]
    middle = _add(repository, user_id, book.id, "middle", 2_000)

    corpus = repository.fetch_highlights(user_id)

    assert [item.id for item in corpus] == [*sorted(tied, reverse=True), middle, oldest]
    assert all(item.book is not None and item.book.title == "Meditations" for item in corpus)
    assert corpus[0].embedding == [1.0, 0.0]
    assert corpus[0].embedding_model is None


def test_fetch_highlights_is_scoped_to_user(repository: HighlightRepository, user_id: str) -> None:
    other = repository.create_user(email="other@example.com", name="Other").id
    book = repository.create_book(other, title="Walden")
    repository.create_highlight(other, book_id=book.id, content="Simplify, simplify")
    assert repository.fetch_highlights(user_id) == []


def test_fetch_highlights_maps_sqlite_errors(
    repository: HighlightRepository, user_id: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    def broken_query(sql, params=None):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(repository.db, "query", broken_query)
    with pytest.raises(CorpusReadError):
        repository.fetch_highlights(user_id)


def test_create_highlight_returns_relations(repository: HighlightRepository, user_id: str) -> None:
    book = repository.create_book(user_id, title="Letters from a Stoic", author="Seneca")
    assert book.highlight_count == 0

    highlight = repository.create_highlight(user_id, book_id=book.id, content="Luck is preparation", note="on chance")

    assert highlight.book is not None
    assert highlight.book.author == "Seneca"
    assert not highlight.has_embedding
    assert repository.get_book(user_id, book.id).highlight_count == 1


def test_record_search_counts_on_dashboard(repository: HighlightRepository, user_id: str) -> None:
    entry = repository.record_search(user_id, "what is luck", "Preparation meeting opportunity.")
    assert entry.query == "what is luck"
    assert repository.dashboard(user_id)["total_searches"] == 1
