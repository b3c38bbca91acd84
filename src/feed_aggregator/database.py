"""SQLite storage for sources and articles."""

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from feed_aggregator.models import Article, Source, utc_now

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS sources (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    site_url TEXT,
    feed_url TEXT UNIQUE NOT NULL,
    category TEXT,
    favicon TEXT,
    is_active INTEGER DEFAULT 1,
    last_fetched_at TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS articles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_id INTEGER NOT NULL REFERENCES sources(id),
    title TEXT NOT NULL,
    url TEXT UNIQUE NOT NULL,
    excerpt TEXT,
    content TEXT,
    published_at TEXT,
    author TEXT,
    tags TEXT NOT NULL DEFAULT '[]',
    is_read INTEGER DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_articles_source_id ON articles(source_id);
CREATE INDEX IF NOT EXISTS idx_articles_published_at ON articles(published_at);
CREATE INDEX IF NOT EXISTS idx_articles_is_read ON articles(is_read);
"""

ARTICLE_LISTING_SQL = """
    SELECT articles.*,
           sources.name AS source_name,
           sources.site_url AS source_url,
           sources.favicon AS source_favicon
    FROM articles
    JOIN sources ON articles.source_id = sources.id
"""


class StorageWriteError(Exception):
    """Raised when an insert or update cannot be committed."""


class ConstraintViolation(StorageWriteError):
    """Raised when a write hits a uniqueness constraint."""


class Database:
    """SQLite storage client for sources and articles.

    Each operation opens its own connection and releases it when done, so a
    single instance can be shared between the scheduler thread and callers.
    """

    def __init__(self, db_path: str, timeout: float = 30.0):
        self.db_path = db_path
        self.timeout = timeout

    def initialize(self) -> None:
        """Create tables and indexes if they do not exist."""
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA_SQL)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection that commits on success and always closes."""
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def _writing(self) -> Iterator[sqlite3.Connection]:
        """Like _connect, but translates sqlite errors into storage errors."""
        try:
            with self._connect() as conn:
                yield conn
        except sqlite3.IntegrityError as e:
            raise ConstraintViolation(str(e)) from e
        except sqlite3.Error as e:
            raise StorageWriteError(str(e)) from e

    # --- Source operations ---

    def add_source(self, source: Source) -> Source:
        """Insert a new source and return it with its assigned id.

        Raises:
            ValueError: If a source with the same feed URL already exists.
        """
        try:
            with self._writing() as conn:
                cursor = conn.execute(
                    """INSERT INTO sources (name, site_url, feed_url, category, favicon,
                       is_active, last_fetched_at, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        source.name,
                        source.site_url,
                        source.feed_url,
                        source.category,
                        source.favicon,
                        int(source.is_active),
                        _dt_to_str(source.last_fetched_at),
                        _dt_to_str(source.created_at),
                    ),
                )
        except ConstraintViolation:
            raise ValueError("A source with this feed URL already exists")
        source.id = cursor.lastrowid
        return source

    def get_source_by_id(self, source_id: int) -> Source | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM sources WHERE id = ?", (source_id,)
            ).fetchone()
        return _row_to_source(row) if row else None

    def get_source_by_feed_url(self, feed_url: str) -> Source | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM sources WHERE feed_url = ?", (feed_url,)
            ).fetchone()
        return _row_to_source(row) if row else None

    def get_all_sources(self) -> list[Source]:
        """Return all sources ordered by name."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM sources ORDER BY name COLLATE NOCASE"
            ).fetchall()
        return [_row_to_source(r) for r in rows]

    def list_active_sources(self) -> list[Source]:
        """Return all active sources (for ingestion)."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM sources WHERE is_active = 1 ORDER BY id"
            ).fetchall()
        return [_row_to_source(r) for r in rows]

    def find_sources_by_identifier(self, identifier: str) -> list[Source]:
        """Find sources by exact feed URL or case-insensitive name substring."""
        with self._connect() as conn:
            rows = conn.execute(
                """SELECT * FROM sources
                   WHERE feed_url = ? OR name LIKE ? COLLATE NOCASE
                   ORDER BY id""",
                (identifier, f"%{identifier}%"),
            ).fetchall()
        return [_row_to_source(r) for r in rows]

    def set_source_active(self, source_id: int, is_active: bool) -> bool:
        with self._writing() as conn:
            cursor = conn.execute(
                "UPDATE sources SET is_active = ? WHERE id = ?",
                (int(is_active), source_id),
            )
        return cursor.rowcount > 0

    def touch_source_last_fetched(self, source_id: int, timestamp: datetime) -> None:
        """Record a successful fetch time for a source."""
        with self._writing() as conn:
            conn.execute(
                "UPDATE sources SET last_fetched_at = ? WHERE id = ?",
                (_dt_to_str(timestamp), source_id),
            )

    def delete_articles_for_source(self, source_id: int) -> int:
        """Delete every article owned by a source. Returns count deleted."""
        with self._writing() as conn:
            cursor = conn.execute(
                "DELETE FROM articles WHERE source_id = ?", (source_id,)
            )
        return cursor.rowcount

    def delete_source(self, source_id: int) -> bool:
        """Delete a source row. Its articles must be deleted first."""
        with self._writing() as conn:
            cursor = conn.execute("DELETE FROM sources WHERE id = ?", (source_id,))
        return cursor.rowcount > 0

    # --- Article operations ---

    def find_article_by_url(self, url: str) -> Article | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM articles WHERE url = ?", (url,)
            ).fetchone()
        return _row_to_article(row) if row else None

    def insert_article(self, article: Article) -> Article:
        """Insert an article and return it with its assigned id.

        Raises:
            ConstraintViolation: If an article with the same URL exists.
            StorageWriteError: On any other storage failure.
        """
        with self._writing() as conn:
            cursor = conn.execute(
                """INSERT INTO articles (source_id, title, url, excerpt, content,
                   published_at, author, tags, is_read, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    article.source_id,
                    article.title,
                    article.url,
                    article.excerpt,
                    article.content,
                    _dt_to_str(article.published_at),
                    article.author,
                    json.dumps(article.tags),
                    int(article.is_read),
                    _dt_to_str(article.created_at),
                ),
            )
        article.id = cursor.lastrowid
        return article

    def count_articles(self, source_id: int | None = None) -> int:
        query = "SELECT COUNT(*) AS cnt FROM articles"
        params: list = []
        if source_id is not None:
            query += " WHERE source_id = ?"
            params.append(source_id)
        with self._connect() as conn:
            row = conn.execute(query, params).fetchone()
        return row["cnt"] if row else 0

    def get_articles(
        self,
        source_id: int | None = None,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict]:
        """Get articles with their source's name, newest first.

        Returns dicts (not Article objects) to include source fields from the join.
        """
        query = ARTICLE_LISTING_SQL + " WHERE 1=1"
        params: list = []

        if source_id is not None:
            query += " AND articles.source_id = ?"
            params.append(source_id)
        if unread_only:
            query += " AND articles.is_read = 0"

        query += " ORDER BY articles.published_at DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_listing(r) for r in rows]

    def get_article(self, article_id: int) -> dict | None:
        with self._connect() as conn:
            row = conn.execute(
                ARTICLE_LISTING_SQL + " WHERE articles.id = ?", (article_id,)
            ).fetchone()
        return _row_to_listing(row) if row else None

    def search_articles(self, query: str, limit: int = 50) -> list[dict]:
        """Case-insensitive substring search over title, excerpt and content."""
        pattern = f"%{query}%"
        with self._connect() as conn:
            rows = conn.execute(
                ARTICLE_LISTING_SQL
                + """ WHERE articles.title LIKE ?
                      OR articles.excerpt LIKE ?
                      OR articles.content LIKE ?
                   ORDER BY articles.published_at DESC
                   LIMIT ?""",
                (pattern, pattern, pattern, limit),
            ).fetchall()
        return [_row_to_listing(r) for r in rows]

    def mark_articles_read(self, article_ids: list[int]) -> int:
        """Mark specific articles as read. Returns count of affected rows."""
        return self._set_read_flag(article_ids, True)

    def mark_articles_unread(self, article_ids: list[int]) -> int:
        """Mark specific articles as unread. Returns count of affected rows."""
        return self._set_read_flag(article_ids, False)

    def mark_source_articles_read(self, source_id: int) -> int:
        with self._writing() as conn:
            cursor = conn.execute(
                "UPDATE articles SET is_read = 1 WHERE source_id = ? AND is_read = 0",
                (source_id,),
            )
        return cursor.rowcount

    def _set_read_flag(self, article_ids: list[int], is_read: bool) -> int:
        if not article_ids:
            return 0
        placeholders = ",".join("?" for _ in article_ids)
        with self._writing() as conn:
            cursor = conn.execute(
                f"UPDATE articles SET is_read = ? WHERE id IN ({placeholders}) AND is_read = ?",
                [int(is_read), *article_ids, int(not is_read)],
            )
        return cursor.rowcount

    def get_stats(self) -> dict:
        """Return totals for articles, unread articles and active sources."""
        with self._connect() as conn:
            total = conn.execute("SELECT COUNT(*) FROM articles").fetchone()[0]
            unread = conn.execute(
                "SELECT COUNT(*) FROM articles WHERE is_read = 0"
            ).fetchone()[0]
            sources = conn.execute(
                "SELECT COUNT(*) FROM sources WHERE is_active = 1"
            ).fetchone()[0]
        return {
            "total_articles": total,
            "unread_articles": unread,
            "active_sources": sources,
        }


# --- Helper functions ---


def _dt_to_str(dt: datetime | None) -> str | None:
    """Convert datetime to ISO string for storage."""
    return dt.isoformat() if dt else None


def _str_to_dt(s: str | None) -> datetime | None:
    """Convert stored ISO string back to datetime."""
    if not s:
        return None
    return datetime.fromisoformat(s)


def _row_to_source(row: sqlite3.Row) -> Source:
    """Convert a database row to a Source dataclass."""
    return Source(
        id=row["id"],
        name=row["name"],
        site_url=row["site_url"],
        feed_url=row["feed_url"],
        category=row["category"],
        favicon=row["favicon"],
        is_active=bool(row["is_active"]),
        last_fetched_at=_str_to_dt(row["last_fetched_at"]),
        created_at=_str_to_dt(row["created_at"]) or utc_now(),
    )


def _row_to_article(row: sqlite3.Row) -> Article:
    """Convert a database row to an Article dataclass."""
    return Article(
        id=row["id"],
        source_id=row["source_id"],
        title=row["title"],
        url=row["url"],
        excerpt=row["excerpt"] or "",
        content=row["content"] or "",
        published_at=_str_to_dt(row["published_at"]),
        author=row["author"],
        tags=json.loads(row["tags"] or "[]"),
        is_read=bool(row["is_read"]),
        created_at=_str_to_dt(row["created_at"]) or utc_now(),
    )


def _row_to_listing(row: sqlite3.Row) -> dict:
    return {
        "id": row["id"],
        "source_id": row["source_id"],
        "source_name": row["source_name"],
        "source_url": row["source_url"],
        "source_favicon": row["source_favicon"],
        "title": row["title"],
        "url": row["url"],
        "excerpt": row["excerpt"],
        "content": row["content"],
        "published_at": row["published_at"],
        "author": row["author"],
        "tags": json.loads(row["tags"] or "[]"),
        "is_read": bool(row["is_read"]),
        "created_at": row["created_at"],
    }
