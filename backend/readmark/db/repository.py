"""SQLite-backed repository for users, books, highlights, topics and history."""

from __future__ import annotations

import sqlite3
from array import array
from typing import Any, Iterable, Sequence

import orjson

from readmark.core.errors import CorpusReadError, ValidationError
from readmark.core.logging import get_logger
from readmark.db.sqlite import SQLiteDatabase
from readmark.models.entities import (
    ApiKey,
    Book,
    BookRef,
    Highlight,
    SearchHistoryEntry,
    Topic,
    TopicRef,
    User,
)
from readmark.utils.ids import new_id
from readmark.utils.time import ms_to_datetime, now_ms

logger = get_logger(__name__)

_HIGHLIGHT_COLUMNS = (
    "id, user_id, book_id, content, note, page_number, chapter, color, summary, "
    "embedding, embedding_dim, embedding_model, created_at, updated_at"
)
_BOOK_COLUMNS = "id, user_id, title, author, isbn, cover_image, source, source_id, created_at, updated_at"
_BOOK_UPDATABLE = ("title", "author", "isbn", "cover_image")
_HIGHLIGHT_UPDATABLE = ("content", "note", "page_number", "chapter", "color")


def pack_vector(vector: Sequence[float]) -> bytes:
    return array("f", vector).tobytes()


def unpack_vector(blob: bytes | None) -> list[float] | None:
    if not blob:
        return None
    floats = array("f")
    floats.frombytes(blob)
    return list(floats)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class HighlightRepository:
    """Data access for every user-scoped entity.

    Implements the corpus reader (``fetch_highlights``) and the history writer
    (``record_search``) consumed by the search service.
    """

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    # Users and API keys -------------------------------------------------

    def create_user(self, email: str, name: str) -> User:
        user_id = new_id("usr")
        now = now_ms()
        try:
            self.db.execute(
                "INSERT INTO users (id, email, name, created_at) VALUES (?, ?, ?, ?)",
                [user_id, email.lower(), name, now],
            )
        except sqlite3.IntegrityError as exc:
            self.db.rollback()
            raise ValidationError("Email is already registered") from exc
        self.db.commit()
        return User(id=user_id, email=email.lower(), name=name, created_at=ms_to_datetime(now))

    def create_api_key(
        self,
        user_id: str,
        name: str,
        key_hash: str,
        key_prefix: str,
        scopes: Sequence[str],
        expires_at: int | None = None,
    ) -> ApiKey:
        key_id = new_id("key")
        now = now_ms()
        self.db.execute(
            """
            INSERT INTO api_keys (id, user_id, name, key_hash, key_prefix, scopes_json, expires_at, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [key_id, user_id, name, key_hash, key_prefix, orjson.dumps(list(scopes)).decode("utf-8"), expires_at, now],
        )
        self.db.commit()
        return ApiKey(
            id=key_id,
            user_id=user_id,
            name=name,
            key_prefix=key_prefix,
            scopes=list(scopes),
            last_used_at=None,
            expires_at=ms_to_datetime(expires_at),
            created_at=ms_to_datetime(now),
        )

    def find_api_key(self, key_hash: str) -> ApiKey | None:
        row = self.db.query_one(
            """
            SELECT id, user_id, name, key_prefix, scopes_json, last_used_at, expires_at, created_at
            FROM api_keys WHERE key_hash = ?
            """,
            [key_hash],
        )
        return _row_to_api_key(row) if row else None

    def list_api_keys(self, user_id: str) -> list[ApiKey]:
        rows = self.db.query(
            """
            SELECT id, user_id, name, key_prefix, scopes_json, last_used_at, expires_at, created_at
            FROM api_keys WHERE user_id = ? ORDER BY created_at DESC
            """,
            [user_id],
        )
        return [_row_to_api_key(row) for row in rows]

    def delete_api_key(self, user_id: str, key_id: str) -> bool:
        cursor = self.db.execute("DELETE FROM api_keys WHERE id = ? AND user_id = ?", [key_id, user_id])
        self.db.commit()
        return cursor.rowcount > 0

    def touch_api_key(self, key_id: str) -> None:
        self.db.execute("UPDATE api_keys SET last_used_at = ? WHERE id = ?", [now_ms(), key_id])
        self.db.commit()

    # Books ---------------------------------------------------------------

    def list_books(self, user_id: str) -> list[Book]:
        rows = self.db.query(
            f"""
            SELECT {_prefixed(_BOOK_COLUMNS, "b")},
                   (SELECT COUNT(*) FROM highlights h WHERE h.book_id = b.id) AS highlight_count
            FROM books b
            WHERE b.user_id = ?
            ORDER BY b.updated_at DESC, b.id DESC
            """,
            [user_id],
        )
        return [_row_to_book(row) for row in rows]

    def get_book(self, user_id: str, book_id: str) -> Book | None:
        row = self.db.query_one(
            f"""
            SELECT {_prefixed(_BOOK_COLUMNS, "b")},
                   (SELECT COUNT(*) FROM highlights h WHERE h.book_id = b.id) AS highlight_count
            FROM books b
            WHERE b.id = ? AND b.user_id = ?
            """,
            [book_id, user_id],
        )
        return _row_to_book(row) if row else None

    def create_book(
        self,
        user_id: str,
        title: str,
        author: str | None = None,
        isbn: str | None = None,
        cover_image: str | None = None,
        source: str = "MANUAL",
        source_id: str | None = None,
    ) -> Book:
        book_id = new_id("book")
        now = now_ms()
        self.db.execute(
            f"INSERT INTO books ({_BOOK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [book_id, user_id, title, author, isbn, cover_image, source, source_id, now, now],
        )
        self.db.commit()
        created = ms_to_datetime(now)
        return Book(
            id=book_id,
            user_id=user_id,
            title=title,
            author=author,
            isbn=isbn,
            cover_image=cover_image,
            source=source,
            source_id=source_id,
            created_at=created,
            updated_at=created,
        )

    def update_book(self, user_id: str, book_id: str, fields: dict[str, Any]) -> Book | None:
        if self.get_book(user_id, book_id) is None:
            return None
        updates, params = _build_updates(fields, _BOOK_UPDATABLE)
        if updates:
            self.db.execute(
                f"UPDATE books SET {', '.join(updates)} WHERE id = ? AND user_id = ?",
                [*params, book_id, user_id],
            )
            self.db.commit()
        return self.get_book(user_id, book_id)

    def delete_book(self, user_id: str, book_id: str) -> bool:
        cursor = self.db.execute("DELETE FROM books WHERE id = ? AND user_id = ?", [book_id, user_id])
        self.db.commit()
        return cursor.rowcount > 0

    # Highlights ------------------------------------------------------------

    def fetch_highlights(self, user_id: str) -> list[Highlight]:
        """Load the user's whole corpus, newest first, with book and topics."""
        try:
            rows = self.db.query(
                f"""
                SELECT {_HIGHLIGHT_COLUMNS} FROM highlights
                WHERE user_id = ?
                ORDER BY created_at DESC, id DESC
                """,
                [user_id],
            )
            return self._with_relations([_row_to_highlight(row) for row in rows])
        except sqlite3.Error as exc:
            raise CorpusReadError(f"Failed to load highlights: {exc}") from exc

    def list_highlights(
        self,
        user_id: str,
        book_id: str | None = None,
        search: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Highlight], int]:
        clauses = ["user_id = ?"]
        params: list[Any] = [user_id]
        if book_id:
            clauses.append("book_id = ?")
            params.append(book_id)
        if search:
            pattern = f"%{_escape_like(search)}%"
            clauses.append("(content LIKE ? ESCAPE '\\' OR note LIKE ? ESCAPE '\\')")
            params.extend([pattern, pattern])
        return self._page(" AND ".join(clauses), params, page, page_size)

    def search_text(self, user_id: str, text: str, page: int = 1, limit: int = 20) -> tuple[list[Highlight], int]:
        """Substring search over content, note and summary."""
        pattern = f"%{_escape_like(text)}%"
        where = (
            "user_id = ? AND (content LIKE ? ESCAPE '\\' OR note LIKE ? ESCAPE '\\' "
            "OR summary LIKE ? ESCAPE '\\')"
        )
        return self._page(where, [user_id, pattern, pattern, pattern], page, limit)

    def get_highlight(self, user_id: str, highlight_id: str) -> Highlight | None:
        row = self.db.query_one(
            f"SELECT {_HIGHLIGHT_COLUMNS} FROM highlights WHERE id = ? AND user_id = ?",
            [highlight_id, user_id],
        )
        if row is None:
            return None
        return self._with_relations([_row_to_highlight(row)])[0]

    def create_highlight(
        self,
        user_id: str,
        book_id: str,
        content: str,
        note: str | None = None,
        page_number: int | None = None,
        chapter: str | None = None,
        color: str | None = None,
        embedding: Sequence[float] | None = None,
        embedding_model: str | None = None,
    ) -> Highlight:
        highlight_id = new_id("hl")
        now = now_ms()
        blob = pack_vector(embedding) if embedding else None
        with self.db.transaction() as conn:
            conn.execute(
                f"""
                INSERT INTO highlights ({_HIGHLIGHT_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, NULL, ?, ?, ?, ?, ?)
                """,
                [
                    highlight_id,
                    user_id,
                    book_id,
                    content,
                    note,
                    page_number,
                    chapter,
                    color,
                    blob,
                    len(embedding) if embedding else None,
                    embedding_model if embedding else None,
                    now,
                    now,
                ],
            )
            conn.execute("UPDATE books SET updated_at = ? WHERE id = ?", [now, book_id])
        created = ms_to_datetime(now)
        highlight = Highlight(
            id=highlight_id,
            user_id=user_id,
            book_id=book_id,
            content=content,
            note=note,
            page_number=page_number,
            chapter=chapter,
            color=color,
            summary=None,
            embedding=list(embedding) if embedding else None,
            embedding_model=embedding_model if embedding else None,
            created_at=created,
            updated_at=created,
        )
        return self._with_relations([highlight])[0]

    def update_highlight(
        self,
        user_id: str,
        highlight_id: str,
        fields: dict[str, Any],
        embedding: Sequence[float] | None = None,
        embedding_model: str | None = None,
        reset_embedding: bool = False,
    ) -> Highlight | None:
        if self.get_highlight(user_id, highlight_id) is None:
            return None
        updates, params = _build_updates(fields, _HIGHLIGHT_UPDATABLE)
        if embedding:
            updates.extend(["embedding = ?", "embedding_dim = ?", "embedding_model = ?"])
            params.extend([pack_vector(embedding), len(embedding), embedding_model])
        elif reset_embedding:
            updates.extend(["embedding = NULL", "embedding_dim = NULL", "embedding_model = NULL"])
        if updates:
            self.db.execute(
                f"UPDATE highlights SET {', '.join(updates)} WHERE id = ? AND user_id = ?",
                [*params, highlight_id, user_id],
            )
            self.db.commit()
        return self.get_highlight(user_id, highlight_id)

    def delete_highlight(self, user_id: str, highlight_id: str) -> bool:
        cursor = self.db.execute("DELETE FROM highlights WHERE id = ? AND user_id = ?", [highlight_id, user_id])
        self.db.commit()
        return cursor.rowcount > 0

    # Topics ----------------------------------------------------------------

    def list_topics(self, user_id: str) -> list[Topic]:
        rows = self.db.query(
            """
            SELECT t.id, t.user_id, t.name, t.description, t.color, t.is_auto, t.created_at, t.updated_at,
                   COUNT(ht.id) AS highlight_count
            FROM topics t
            LEFT JOIN highlight_topics ht ON ht.topic_id = t.id
            WHERE t.user_id = ?
            GROUP BY t.id
            ORDER BY highlight_count DESC, t.name ASC
            """,
            [user_id],
        )
        return [_row_to_topic(row) for row in rows]

    def create_topic(
        self,
        user_id: str,
        name: str,
        description: str | None = None,
        color: str | None = None,
        is_auto: bool = False,
    ) -> Topic:
        topic_id = new_id("topic")
        now = now_ms()
        try:
            self.db.execute(
                """
                INSERT INTO topics (id, user_id, name, description, color, is_auto, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [topic_id, user_id, name, description, color, int(is_auto), now, now],
            )
        except sqlite3.IntegrityError as exc:
            self.db.rollback()
            raise ValidationError("Topic already exists") from exc
        self.db.commit()
        return Topic(
            id=topic_id,
            user_id=user_id,
            name=name,
            description=description,
            color=color,
            is_auto=is_auto,
            created_at=ms_to_datetime(now),
            updated_at=ms_to_datetime(now),
        )

    def link_topic(self, user_id: str, highlight_id: str, topic_id: str, confidence: float | None = None) -> bool:
        """Attach a topic to a highlight; both must belong to the user."""
        owned = self.db.scalar(
            """
            SELECT COUNT(*) FROM highlights h, topics t
            WHERE h.id = ? AND h.user_id = ? AND t.id = ? AND t.user_id = ?
            """,
            [highlight_id, user_id, topic_id, user_id],
        )
        if not owned:
            return False
        self.db.execute(
            """
            INSERT INTO highlight_topics (id, highlight_id, topic_id, confidence, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (highlight_id, topic_id) DO UPDATE SET confidence = excluded.confidence
            """,
            [new_id("ht"), highlight_id, topic_id, confidence, now_ms()],
        )
        self.db.commit()
        return True

    # Search history ----------------------------------------------------------

    def record_search(self, user_id: str, query: str, answer: str | None) -> SearchHistoryEntry:
        entry_id = new_id("srch")
        now = now_ms()
        self.db.execute(
            "INSERT INTO search_history (id, user_id, query, response, created_at) VALUES (?, ?, ?, ?, ?)",
            [entry_id, user_id, query, answer, now],
        )
        self.db.commit()
        return SearchHistoryEntry(
            id=entry_id, user_id=user_id, query=query, response=answer, created_at=ms_to_datetime(now)
        )

    # Dashboard ---------------------------------------------------------------

    def dashboard(self, user_id: str) -> dict[str, Any]:
        counts = {
            table: int(self.db.scalar(f"SELECT COUNT(*) FROM {table} WHERE user_id = ?", [user_id]) or 0)
            for table in ("highlights", "books", "topics", "search_history")
        }
        recent_rows = self.db.query(
            f"""
            SELECT {_HIGHLIGHT_COLUMNS} FROM highlights
            WHERE user_id = ? ORDER BY created_at DESC, id DESC LIMIT 5
            """,
            [user_id],
        )
        return {
            "total_highlights": counts["highlights"],
            "total_books": counts["books"],
            "total_topics": counts["topics"],
            "total_searches": counts["search_history"],
            "recent_highlights": self._with_relations([_row_to_highlight(row) for row in recent_rows]),
            "recent_books": self.list_books(user_id)[:5],
            "topics": self.list_topics(user_id),
        }

    # Internal helpers --------------------------------------------------------

    def _page(self, where: str, params: list[Any], page: int, page_size: int) -> tuple[list[Highlight], int]:
        page = max(page, 1)
        total = int(self.db.scalar(f"SELECT COUNT(*) FROM highlights WHERE {where}", params) or 0)
        rows = self.db.query(
            f"""
            SELECT {_HIGHLIGHT_COLUMNS} FROM highlights
            WHERE {where}
            ORDER BY created_at DESC, id DESC
            LIMIT ? OFFSET ?
            """,
            [*params, page_size, (page - 1) * page_size],
        )
        return self._with_relations([_row_to_highlight(row) for row in rows]), total

    def _with_relations(self, highlights: list[Highlight]) -> list[Highlight]:
        if not highlights:
            return highlights
        book_ids = sorted({item.book_id for item in highlights})
        book_rows = self.db.query(
            f"SELECT id, title, author FROM books WHERE id IN ({_placeholders(book_ids)})",
            book_ids,
        )
        books = {row["id"]: BookRef(id=row["id"], title=row["title"], author=row["author"]) for row in book_rows}

        highlight_ids = [item.id for item in highlights]
        topic_rows = self.db.query(
            f"""
            SELECT ht.highlight_id, ht.confidence, t.id, t.name, t.color
            FROM highlight_topics ht
            JOIN topics t ON t.id = ht.topic_id
            WHERE ht.highlight_id IN ({_placeholders(highlight_ids)})
            ORDER BY t.name ASC
            """,
            highlight_ids,
        )
        topics: dict[str, list[TopicRef]] = {}
        for row in topic_rows:
            topics.setdefault(row["highlight_id"], []).append(
                TopicRef(id=row["id"], name=row["name"], color=row["color"], confidence=row["confidence"])
            )

        for item in highlights:
            item.book = books.get(item.book_id)
            item.topics = topics.get(item.id, [])
        return highlights


def _placeholders(values: Iterable[Any]) -> str:
    return ",".join("?" for _ in values)


def _prefixed(columns: str, alias: str) -> str:
    return ", ".join(f"{alias}.{column.strip()}" for column in columns.split(","))


def _build_updates(fields: dict[str, Any], allowed: Sequence[str]) -> tuple[list[str], list[Any]]:
    updates: list[str] = []
    params: list[Any] = []
    for name in allowed:
        if name in fields:
            updates.append(f"{name} = ?")
            params.append(fields[name])
    if updates:
        updates.append("updated_at = ?")
        params.append(now_ms())
    return updates, params


def _row_to_highlight(row: sqlite3.Row) -> Highlight:
    return Highlight(
        id=row["id"],
        user_id=row["user_id"],
        book_id=row["book_id"],
        content=row["content"],
        note=row["note"],
        page_number=row["page_number"],
        chapter=row["chapter"],
        color=row["color"],
        summary=row["summary"],
        embedding=unpack_vector(row["embedding"]),
        embedding_model=row["embedding_model"],
        created_at=ms_to_datetime(row["created_at"]),
        updated_at=ms_to_datetime(row["updated_at"]),
    )


def _row_to_book(row: sqlite3.Row) -> Book:
    return Book(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        author=row["author"],
        isbn=row["isbn"],
        cover_image=row["cover_image"],
        source=row["source"],
        source_id=row["source_id"],
        created_at=ms_to_datetime(row["created_at"]),
        updated_at=ms_to_datetime(row["updated_at"]),
        highlight_count=int(row["highlight_count"] or 0),
    )


def _row_to_topic(row: sqlite3.Row) -> Topic:
    return Topic(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        description=row["description"],
        color=row["color"],
        is_auto=bool(row["is_auto"]),
        created_at=ms_to_datetime(row["created_at"]),
        updated_at=ms_to_datetime(row["updated_at"]),
        highlight_count=int(row["highlight_count"] or 0),
    )


def _row_to_api_key(row: sqlite3.Row) -> ApiKey:
    return ApiKey(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        key_prefix=row["key_prefix"],
        scopes=list(orjson.loads(row["scopes_json"])),
        last_used_at=ms_to_datetime(row["last_used_at"]),
        expires_at=ms_to_datetime(row["expires_at"]),
        created_at=ms_to_datetime(row["created_at"]),
    )


__all__ = ["HighlightRepository", "pack_vector", "unpack_vector"]
