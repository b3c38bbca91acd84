"""Query and management tools exposed to the feed agent."""

import json
import os
from urllib.parse import urlparse

from langchain_core.tools import tool

from feed_aggregator.database import Database, StorageWriteError
from feed_aggregator.feed_parser import DEFAULT_TIMEOUT, FeedParseError, fetch_and_parse
from feed_aggregator.models import Source
from feed_aggregator.poller import FeedScheduler

EXCERPT_PREVIEW_LENGTH = 200

# Module-level references, set during startup
_db: Database | None = None
_scheduler: FeedScheduler | None = None


def set_database(db: Database) -> None:
    """Set the database instance used by all tools."""
    global _db
    _db = db


def set_scheduler(scheduler: FeedScheduler) -> None:
    """Set the scheduler used by refresh_feeds."""
    global _scheduler
    _scheduler = scheduler


def _get_db() -> Database:
    """Get the database instance, raising if not set."""
    if _db is None:
        raise RuntimeError("Database not initialized. Call set_database() first.")
    return _db


def _get_scheduler() -> FeedScheduler:
    if _scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call set_scheduler() first.")
    return _scheduler


def fetch_timeout() -> float:
    """Seconds allowed for validating a feed, from FEED_FETCH_TIMEOUT."""
    return float(os.environ.get("FEED_FETCH_TIMEOUT", DEFAULT_TIMEOUT))


def _error(message: str, **extra) -> str:
    return json.dumps({"status": "error", "message": message, **extra})


def _resolve_source(db: Database, identifier: str) -> tuple[Source | None, str | None]:
    """Resolve a name or feed URL to exactly one source, or an error payload."""
    matches = db.find_sources_by_identifier(identifier)
    if not matches:
        return None, _error(f"No source found matching '{identifier}'")
    if len(matches) > 1:
        exact = [s for s in matches if s.feed_url == identifier or s.name == identifier]
        if len(exact) != 1:
            return None, _error(
                "Multiple sources match. Please be more specific.",
                matches=[s.name for s in matches],
            )
        matches = exact
    return matches[0], None


def favicon_for(url: str) -> str | None:
    """Return the conventional /favicon.ico location for a site URL."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}/favicon.ico"


def _article_preview(article: dict) -> dict:
    return {
        "id": article["id"],
        "source_name": article["source_name"],
        "title": article["title"],
        "url": article["url"],
        "excerpt": (article["excerpt"] or "")[:EXCERPT_PREVIEW_LENGTH],
        "author": article["author"],
        "published_at": article["published_at"],
        "is_read": article["is_read"],
    }


@tool
def add_source(feed_url: str, name: str = "", site_url: str = "", category: str = "") -> str:
    """Register a new RSS or Atom feed source.

    Args:
        feed_url: The URL of the RSS or Atom feed.
        name: Optional display name. Defaults to the feed's own title.
        site_url: Optional website URL. Defaults to the feed's link.
        category: Optional category label such as "tech" or "culture".
    """
    db = _get_db()

    if db.get_source_by_feed_url(feed_url):
        return _error("A source with this feed URL already exists")

    try:
        parsed = fetch_and_parse(feed_url, timeout=fetch_timeout())
    except FeedParseError as e:
        return _error(f"Invalid RSS feed URL: {e}")

    site = site_url or parsed.link or feed_url
    source = Source(
        name=name or parsed.title,
        feed_url=feed_url,
        site_url=site,
        category=category or None,
        favicon=favicon_for(site),
    )

    try:
        saved = db.add_source(source)
    except ValueError as e:
        return _error(str(e))

    result = {
        "status": "added",
        "source": {
            "id": saved.id,
            "name": saved.name,
            "feed_url": saved.feed_url,
            "site_url": saved.site_url,
            "category": saved.category,
        },
    }
    if parsed.warnings:
        result["warnings"] = parsed.warnings
    return json.dumps(result)


@tool
def list_sources() -> str:
    """List all registered sources with their status and last fetch time."""
    db = _get_db()
    sources = db.get_all_sources()

    return json.dumps({
        "sources": [
            {
                "id": s.id,
                "name": s.name,
                "feed_url": s.feed_url,
                "site_url": s.site_url,
                "category": s.category,
                "favicon": s.favicon,
                "active": s.is_active,
                "last_fetched_at": s.last_fetched_at.isoformat() if s.last_fetched_at else None,
            }
            for s in sources
        ],
        "total": len(sources),
    })


@tool
def remove_source(source_identifier: str) -> str:
    """Remove a source and all of its articles.

    Args:
        source_identifier: The name or feed URL of the source to remove.
    """
    db = _get_db()

    source, error = _resolve_source(db, source_identifier)
    if error:
        return error

    try:
        deleted_articles = db.delete_articles_for_source(source.id)
        db.delete_source(source.id)
    except StorageWriteError as e:
        return _error(f"Could not remove source: {e}")

    return json.dumps({
        "status": "removed",
        "source_name": source.name,
        "articles_deleted": deleted_articles,
    })


@tool
def set_source_active(source_identifier: str, active: bool) -> str:
    """Pause or resume fetching for a source.

    Args:
        source_identifier: The name or feed URL of the source.
        active: True to resume fetching, False to pause it.
    """
    db = _get_db()

    source, error = _resolve_source(db, source_identifier)
    if error:
        return error

    try:
        db.set_source_active(source.id, active)
    except StorageWriteError as e:
        return _error(f"Could not update source: {e}")

    return json.dumps({
        "status": "updated",
        "source_name": source.name,
        "active": active,
    })


@tool
def get_articles(
    source_identifier: str = "",
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> str:
    """Get stored articles, newest first, optionally filtered by source or read status.

    Args:
        source_identifier: Optional filter by source name or feed URL.
        unread_only: If true, only return unread articles.
        limit: Maximum number of articles to return (default 50).
        offset: Number of articles to skip, for paging.
    """
    db = _get_db()

    source_id = None
    if source_identifier:
        source, error = _resolve_source(db, source_identifier)
        if error:
            return error
        source_id = source.id

    articles = db.get_articles(
        source_id=source_id,
        unread_only=unread_only,
        limit=limit,
        offset=offset,
    )

    return json.dumps({
        "articles": [_article_preview(a) for a in articles],
        "total": len(articles),
    })


@tool
def get_article(article_id: int) -> str:
    """Get one article with its full content.

    Args:
        article_id: The id of the article.
    """
    db = _get_db()

    article = db.get_article(article_id)
    if article is None:
        return _error("Article not found")
    return json.dumps(article)


@tool
def search_articles(query: str, limit: int = 50) -> str:
    """Search articles by keyword in their title, excerpt or content.

    Args:
        query: The keyword or phrase to search for.
        limit: Maximum number of results to return (default 50).
    """
    if not query.strip():
        return _error("Search query required")

    db = _get_db()
    articles = db.search_articles(query, limit=limit)

    return json.dumps({
        "articles": [_article_preview(a) for a in articles],
        "total": len(articles),
    })


@tool
def mark_as_read(
    article_ids: list[int] | None = None,
    source_identifier: str = "",
) -> str:
    """Mark articles as read, by id or for a whole source.

    Args:
        article_ids: Optional list of article ids to mark as read.
        source_identifier: Optional source name or feed URL; marks all its articles as read.
    """
    db = _get_db()

    if not article_ids and not source_identifier:
        return _error("Provide article_ids and/or source_identifier")

    total_marked = 0

    if source_identifier:
        source, error = _resolve_source(db, source_identifier)
        if error:
            return error
        total_marked += db.mark_source_articles_read(source.id)

    if article_ids:
        total_marked += db.mark_articles_read(article_ids)

    return json.dumps({
        "status": "success",
        "articles_marked": total_marked,
    })


@tool
def mark_as_unread(article_ids: list[int]) -> str:
    """Mark articles as unread.

    Args:
        article_ids: List of article ids to mark as unread.
    """
    db = _get_db()

    return json.dumps({
        "status": "success",
        "articles_marked": db.mark_articles_unread(article_ids),
    })


@tool
def get_stats() -> str:
    """Get totals for stored articles, unread articles and active sources."""
    return json.dumps(_get_db().get_stats())


@tool
def refresh_feeds() -> str:
    """Fetch all active sources now and store any new articles."""
    summary = _get_scheduler().refresh_now()
    return json.dumps({
        "status": "skipped" if summary.skipped else "refreshed",
        **summary.to_dict(),
    })
