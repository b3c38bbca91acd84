"""One ingestion cycle: fetch every active source and store unseen articles."""

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from feed_aggregator.database import ConstraintViolation
from feed_aggregator.feed_parser import FetchFailure, FetchResult, fetch_feed
from feed_aggregator.models import Article, FeedItem, RunSummary, Source, utc_now

logger = logging.getLogger(__name__)

EXCERPT_LENGTH = 300


class ArticleStore(Protocol):
    """Storage operations the ingestion cycle depends on."""

    def list_active_sources(self) -> list[Source]: ...

    def find_article_by_url(self, url: str) -> Article | None: ...

    def insert_article(self, article: Article) -> Article: ...

    def touch_source_last_fetched(self, source_id: int, timestamp: datetime) -> None: ...


FetchFunc = Callable[[str], FetchResult | FetchFailure]


class FeedIngestor:
    """Runs ingestion cycles against an injected store.

    Failures are contained per source and per article: a cycle always
    completes and reports what it managed as a RunSummary.
    """

    def __init__(
        self,
        store: ArticleStore,
        fetch: FetchFunc = fetch_feed,
        excerpt_length: int = EXCERPT_LENGTH,
    ):
        self.store = store
        self.fetch = fetch
        self.excerpt_length = excerpt_length
        self._running = threading.Lock()

    def run_cycle(self) -> RunSummary:
        """Fetch all active sources once. Skips if a cycle is already running."""
        if not self._running.acquire(blocking=False):
            logger.info("Ingestion cycle already in progress, skipping")
            return RunSummary(skipped=True)
        try:
            return self._run_cycle()
        finally:
            self._running.release()

    def _run_cycle(self) -> RunSummary:
        summary = RunSummary()
        try:
            sources = self.store.list_active_sources()
        except Exception as e:
            logger.error("Could not load active sources: %s", e)
            return summary

        summary.sources_considered = len(sources)

        for source in sources:
            try:
                fetched, added = self._ingest_source(source)
            except Exception:
                logger.exception("Source '%s' failed unexpectedly", source.name)
                continue
            if fetched:
                summary.sources_succeeded += 1
            summary.articles_added += added

        logger.info(
            "Ingestion cycle complete: %d/%d sources fetched, %d new articles",
            summary.sources_succeeded,
            summary.sources_considered,
            summary.articles_added,
        )
        return summary

    def _ingest_source(self, source: Source) -> tuple[bool, int]:
        """Fetch and store one source. Returns (fetched, articles added)."""
        result = self.fetch(source.feed_url)
        if isinstance(result, FetchFailure):
            logger.warning("Source '%s' fetch failed: %s", source.name, result.reason)
            return False, 0

        added = 0
        for item in result.items:
            if self._store_item(source, item):
                added += 1

        if added:
            logger.info("Source '%s': %d new articles", source.name, added)

        try:
            self.store.touch_source_last_fetched(source.id, utc_now())
        except Exception as e:
            logger.error("Source '%s': could not record fetch time: %s", source.name, e)

        return True, added

    def _store_item(self, source: Source, item: FeedItem) -> bool:
        """Insert an item unless its URL is already stored. Returns True if inserted."""
        try:
            if self.store.find_article_by_url(item.link) is not None:
                return False
            self.store.insert_article(self._to_article(source, item))
        except ConstraintViolation:
            logger.debug("Article already stored: %s", item.link)
            return False
        except Exception as e:
            logger.error("Error storing article '%s': %s", item.title, e)
            return False
        return True

    def _to_article(self, source: Source, item: FeedItem) -> Article:
        return Article(
            source_id=source.id,
            title=item.title,
            url=item.link,
            excerpt=item.content[: self.excerpt_length],
            content=item.content,
            published_at=item.published_at,
            author=item.author,
            tags=list(item.categories),
        )
