"""RSS/Atom feed retrieval and normalization using httpx and feedparser."""

import calendar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from time import struct_time
from urllib.parse import urlparse

import feedparser
import httpx
from bs4 import BeautifulSoup

from feed_aggregator.models import FeedItem, utc_now


DEFAULT_TIMEOUT = 15.0
USER_AGENT = "feed-aggregator/0.1"
FALLBACK_FEED_TITLE = "Untitled Feed"


@dataclass
class FetchResult:
    """Result of fetching and parsing an RSS/Atom feed."""

    title: str
    description: str | None
    link: str | None
    items: list[FeedItem]
    warnings: list[str] = field(default_factory=list)


@dataclass
class FetchFailure:
    """A feed that could not be retrieved or parsed."""

    url: str
    reason: str
    cause: BaseException | None = None


class FeedParseError(Exception):
    """Raised when a feed cannot be retrieved or parsed."""


def fetch_feed(
    url: str,
    timeout: float = DEFAULT_TIMEOUT,
    client: httpx.Client | None = None,
) -> FetchResult | FetchFailure:
    """Fetch and parse a feed, returning a FetchFailure instead of raising.

    Network errors, timeouts, HTTP errors and parse errors all come back as a
    FetchFailure carrying the URL and the underlying cause.
    """
    try:
        return fetch_and_parse(url, timeout=timeout, client=client)
    except FeedParseError as e:
        return FetchFailure(url=url, reason=str(e), cause=e.__cause__ or e)
    except Exception as e:
        return FetchFailure(url=url, reason=f"Unexpected error: {e}", cause=e)


def fetch_and_parse(
    url: str,
    timeout: float = DEFAULT_TIMEOUT,
    client: httpx.Client | None = None,
) -> FetchResult:
    """Fetch and parse an RSS or Atom feed from a URL.

    Args:
        url: The feed URL to fetch and parse.
        timeout: Seconds allowed for the whole HTTP exchange.
        client: Optional httpx client to send the request with.

    Returns:
        FetchResult with feed metadata and normalized items in feed order.

    Raises:
        FeedParseError: If the URL is invalid, unreachable, times out, or is
            not a valid feed.
    """
    _validate_url(url)

    try:
        response = _get(url, timeout, client)
    except httpx.TimeoutException as e:
        raise FeedParseError(f"Timed out after {timeout:g}s fetching feed") from e
    except httpx.HTTPError as e:
        raise FeedParseError(f"Could not reach URL: {e}") from e

    if response.status_code in (401, 403):
        raise FeedParseError(
            "Feed requires authentication. Ensure the URL is publicly accessible."
        )

    if response.status_code >= 400:
        raise FeedParseError(f"Could not reach URL: HTTP {response.status_code}")

    parsed = feedparser.parse(response.content)

    if not parsed.get("version") and not parsed.entries:
        raise FeedParseError("URL does not point to a valid RSS or Atom feed")

    warnings: list[str] = []
    if parsed.bozo:
        warnings.append(f"Feed has formatting issues: {parsed.bozo_exception}")

    feed_title = parsed.feed.get("title") or FALLBACK_FEED_TITLE
    items = _extract_items(parsed.entries, feed_title, warnings)

    return FetchResult(
        title=feed_title,
        description=parsed.feed.get("description") or parsed.feed.get("subtitle"),
        link=parsed.feed.get("link"),
        items=items,
        warnings=warnings,
    )


def _get(url: str, timeout: float, client: httpx.Client | None) -> httpx.Response:
    headers = {"User-Agent": USER_AGENT}
    if client is None:
        return httpx.get(url, timeout=timeout, headers=headers, follow_redirects=True)
    return client.get(url, timeout=timeout, headers=headers, follow_redirects=True)


def _validate_url(url: str) -> None:
    """Validate that the URL has a valid format."""
    try:
        result = urlparse(url)
    except ValueError:
        raise FeedParseError("Invalid URL format")
    if not result.scheme or not result.netloc:
        raise FeedParseError("Invalid URL format")
    if result.scheme not in ("http", "https"):
        raise FeedParseError("Invalid URL format: only http and https are supported")


def _extract_items(entries: list, feed_title: str, warnings: list[str]) -> list[FeedItem]:
    """Normalize feedparser entries, preserving feed order."""
    items = []
    for entry in entries:
        link = entry.get("link")
        if not link:
            warnings.append(
                f"Skipping entry with no link: {entry.get('title', 'unknown')}"
            )
            continue
        try:
            items.append(normalize_entry(entry, feed_title))
        except Exception as e:
            warnings.append(f"Skipping malformed entry: {e}")
    return items


def normalize_entry(entry: dict, feed_title: str) -> FeedItem:
    """Map one dialect-resolved feedparser entry onto a FeedItem."""
    return FeedItem(
        title=entry.get("title") or "Untitled",
        link=entry["link"],
        published_at=_parse_date(entry) or utc_now(),
        content=_extract_content(entry),
        author=_extract_author(entry) or feed_title,
        categories=_extract_categories(entry),
    )


def _extract_content(entry: dict) -> str:
    """First non-empty of: text snippet, encoded content, description."""
    encoded = ""
    for block in entry.get("content") or []:
        value = block.get("value")
        if value:
            encoded = value
            break
    description = entry.get("summary") or entry.get("description") or ""

    snippet = html_to_text(encoded or description)
    return snippet or encoded or description


def html_to_text(markup: str) -> str:
    """Strip HTML tags and collapse whitespace."""
    if not markup:
        return ""
    text = BeautifulSoup(markup, "html.parser").get_text(" ")
    return " ".join(text.split())


def _extract_author(entry: dict) -> str:
    # feedparser maps dc:creator onto "author"
    author = entry.get("author")
    if author:
        return author
    detail = entry.get("author_detail") or {}
    if detail.get("name"):
        return detail["name"]
    for person in entry.get("authors") or []:
        if person.get("name"):
            return person["name"]
    return ""


def _extract_categories(entry: dict) -> list[str]:
    terms = []
    for tag in entry.get("tags") or []:
        term = tag.get("term")
        if term:
            terms.append(term)
    return terms


def _parse_date(entry: dict) -> datetime | None:
    """Parse publication date from a feedparser entry, as UTC."""
    for key in ("published_parsed", "updated_parsed"):
        time_struct = entry.get(key)
        if isinstance(time_struct, struct_time):
            try:
                return datetime.fromtimestamp(calendar.timegm(time_struct), tz=timezone.utc)
            except (ValueError, OverflowError):
                continue
    return None
