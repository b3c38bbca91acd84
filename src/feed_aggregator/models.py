"""Data models for the feed aggregator."""

from dataclasses import dataclass, field
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Source:
    """A registered feed subscription, unique by feed URL."""

    name: str
    feed_url: str
    site_url: str | None = None
    category: str | None = None
    favicon: str | None = None
    is_active: bool = True
    last_fetched_at: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)
    id: int | None = None


@dataclass
class Article:
    """A stored feed item, unique by URL across all sources."""

    source_id: int
    title: str
    url: str
    excerpt: str = ""
    content: str = ""
    published_at: datetime | None = None
    author: str | None = None
    tags: list[str] = field(default_factory=list)
    is_read: bool = False
    created_at: datetime = field(default_factory=utc_now)
    id: int | None = None


@dataclass
class FeedItem:
    """A normalized entry from a fetched feed, not yet persisted."""

    title: str
    link: str
    published_at: datetime
    content: str = ""
    author: str = ""
    categories: list[str] = field(default_factory=list)


@dataclass
class RunSummary:
    """Aggregate counts for one ingestion cycle."""

    sources_considered: int = 0
    sources_succeeded: int = 0
    articles_added: int = 0
    skipped: bool = False

    def to_dict(self) -> dict:
        return {
            "sources_considered": self.sources_considered,
            "sources_succeeded": self.sources_succeeded,
            "articles_added": self.articles_added,
        }
