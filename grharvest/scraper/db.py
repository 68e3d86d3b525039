"""SQLite helpers for harvested books, blogs and editions.

Callers hand over plain records; every statement here is an idempotent
upsert or an insert-or-ignore so reruns of the same workflow are harmless.
"""
from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Iterable, List, Optional

from . import config
from .editions import Edition
from .entity_parser import Book


def get_connection(db_path: Optional[Path] = None) -> sqlite3.Connection:
    """Return a SQLite connection to the project database.

    The parent directory is created if missing.
    """

    path = Path(db_path) if db_path is not None else config.DB_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def initialize_schema(conn: sqlite3.Connection) -> None:
    """Create the tables if they do not yet exist. Safe to call repeatedly."""

    statements: Iterable[str] = (
        """
        CREATE TABLE IF NOT EXISTS books (
            id              TEXT PRIMARY KEY,
            legacy_id       TEXT,
            title           TEXT,
            title_complete  TEXT,
            author          TEXT,
            description     TEXT,
            average_rating  REAL,
            page_count      INTEGER,
            language        TEXT,
            format          TEXT,
            cover_image     TEXT,
            updated_at      DATETIME DEFAULT CURRENT_TIMESTAMP
        );
        """,
        """
        CREATE TABLE IF NOT EXISTS blogs (
            id          TEXT PRIMARY KEY,
            url         TEXT,
            title       TEXT,
            scraped_at  DATETIME DEFAULT CURRENT_TIMESTAMP
        );
        """,
        """
        CREATE TABLE IF NOT EXISTS blog_books (
            blog_id  TEXT,
            book_id  TEXT,
            PRIMARY KEY (blog_id, book_id)
        );
        """,
        """
        CREATE TABLE IF NOT EXISTS editions (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            book_legacy_id  TEXT,
            title           TEXT,
            link            TEXT,
            language        TEXT,
            format          TEXT,
            publisher       TEXT,
            published_date  TEXT,
            isbn            TEXT,
            isbn10          TEXT,
            asin            TEXT,
            average_rating  REAL,
            pages_count     INTEGER,
            cover_image     TEXT,
            filter_language TEXT,
            created_at      DATETIME DEFAULT CURRENT_TIMESTAMP
        );
        """,
        "CREATE INDEX IF NOT EXISTS idx_editions_book ON editions(book_legacy_id);",
        "CREATE INDEX IF NOT EXISTS idx_editions_lang ON editions(language);",
        "CREATE INDEX IF NOT EXISTS idx_editions_filter ON editions(book_legacy_id, filter_language);",
    )

    with conn:
        for statement in statements:
            conn.execute(statement)


def save_book(conn: sqlite3.Connection, book: Book) -> None:
    """Insert ``book`` or refresh its mutable fields when the id exists."""

    with conn:
        conn.execute(
            """
            INSERT INTO books (
                id, legacy_id, title, title_complete, author, description,
                average_rating, page_count, language, format, cover_image, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(id) DO UPDATE SET
                legacy_id = excluded.legacy_id,
                title = excluded.title,
                average_rating = excluded.average_rating,
                updated_at = CURRENT_TIMESTAMP;
            """,
            (
                book.id,
                str(book.legacy_id) if book.legacy_id is not None else None,
                book.title,
                book.title_complete,
                book.author,
                book.description,
                book.average_rating,
                book.page_count,
                book.language,
                book.format,
                book.cover_image,
            ),
        )


def get_book(conn: sqlite3.Connection, book_id: str) -> Optional[Book]:
    row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
    if row is None:
        return None
    legacy = row["legacy_id"]
    return Book(
        id=row["id"],
        title=row["title"] or "",
        legacy_id=int(legacy) if legacy and str(legacy).isdigit() else None,
        title_complete=row["title_complete"],
        author=row["author"],
        description=row["description"],
        page_count=row["page_count"],
        language=row["language"],
        format=row["format"],
        cover_image=row["cover_image"],
        average_rating=row["average_rating"],
    )


def save_editions(
    conn: sqlite3.Connection,
    legacy_id: str | int,
    editions: Iterable[Edition],
    filter_language: Optional[str] = None,
) -> int:
    """Store one harvested listing; ``filter_language`` is the listing filter code."""

    rows = [
        (
            str(legacy_id),
            edition.title,
            edition.link,
            edition.language,
            edition.format,
            edition.publisher,
            edition.published_date,
            edition.isbn,
            edition.isbn10,
            edition.asin,
            edition.average_rating,
            edition.page_count,
            edition.cover_image,
            filter_language,
        )
        for edition in editions
    ]
    with conn:
        conn.executemany(
            """
            INSERT INTO editions (
                book_legacy_id, title, link, language, format, publisher,
                published_date, isbn, isbn10, asin, average_rating, pages_count, cover_image,
                filter_language
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            rows,
        )
    return len(rows)


def get_editions(
    conn: sqlite3.Connection, legacy_id: str | int, filter_language: Optional[str] = None
) -> List[Edition]:
    sql = "SELECT * FROM editions WHERE book_legacy_id = ?"
    params: list = [str(legacy_id)]
    if filter_language:
        sql += " AND filter_language = ?"
        params.append(filter_language)
    sql += " ORDER BY id"

    return [
        Edition(
            title=row["title"],
            link=row["link"],
            format=row["format"],
            page_count=row["pages_count"],
            publisher=row["publisher"],
            published_date=row["published_date"],
            isbn=row["isbn"],
            isbn10=row["isbn10"],
            asin=row["asin"],
            language=row["language"],
            average_rating=row["average_rating"],
            cover_image=row["cover_image"],
        )
        for row in conn.execute(sql, params).fetchall()
    ]


def delete_editions(
    conn: sqlite3.Connection, legacy_id: str | int, filter_language: Optional[str] = None
) -> None:
    """Drop the rows of an earlier harvest so a rerun does not duplicate them."""

    sql = "DELETE FROM editions WHERE book_legacy_id = ?"
    params: list = [str(legacy_id)]
    if filter_language:
        sql += " AND filter_language = ?"
        params.append(filter_language)
    with conn:
        conn.execute(sql, params)


def save_blog(
    conn: sqlite3.Connection,
    *,
    blog_id: str,
    title: Optional[str] = None,
    url: Optional[str] = None,
) -> None:
    """Upsert a blog row; missing values keep what is already stored."""

    with conn:
        conn.execute(
            """
            INSERT INTO blogs (id, title, url) VALUES (?, COALESCE(?, 'Unknown Blog'), ?)
            ON CONFLICT(id) DO UPDATE SET
                title = COALESCE(?, blogs.title),
                url = COALESCE(?, blogs.url);
            """,
            (blog_id, title, url or "", title, url),
        )


def save_blog_reference(
    conn: sqlite3.Connection,
    *,
    blog_id: str,
    book_id: str,
    blog_title: Optional[str] = None,
    blog_url: Optional[str] = None,
) -> None:
    save_blog(conn, blog_id=blog_id, title=blog_title, url=blog_url)
    with conn:
        conn.execute(
            "INSERT OR IGNORE INTO blog_books (blog_id, book_id) VALUES (?, ?);",
            (blog_id, book_id),
        )


__all__ = [
    "get_connection",
    "initialize_schema",
    "save_book",
    "get_book",
    "save_editions",
    "get_editions",
    "delete_editions",
    "save_blog",
    "save_blog_reference",
]
