"""Tests for feed fetching and item normalization."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from feed_aggregator.feed_parser import (
    FeedParseError,
    FetchFailure,
    FetchResult,
    fetch_and_parse,
    fetch_feed,
    html_to_text,
)

RSS_URL = "https://example.com/feed.xml"
ATOM_URL = "https://example.org/atom.xml"


def _assert_recent(dt: datetime, started: datetime) -> None:
    assert dt.tzinfo is not None
    assert started - timedelta(seconds=1) <= dt <= datetime.now(timezone.utc) + timedelta(seconds=1)


class TestRssNormalization:
    @pytest.fixture
    def result(self, mock_client, sample_rss_xml):
        client = mock_client({RSS_URL: (200, sample_rss_xml)})
        result = fetch_feed(RSS_URL, client=client)
        assert isinstance(result, FetchResult)
        return result

    def test_feed_metadata(self, result):
        assert result.title == "Test Feed"
        assert result.link == "https://example.com"
        assert result.description == "A test RSS feed"

    def test_items_keep_feed_order(self, result):
        assert [i.link for i in result.items] == [
            "https://example.com/article-1",
            "https://example.com/article-2",
            "https://example.com/article-3",
        ]

    def test_creator_is_author(self, result):
        assert result.items[0].author == "Jane Doe"

    def test_author_falls_back_to_feed_title(self, result):
        assert result.items[1].author == "Test Feed"
        assert result.items[2].author == "Test Feed"

    def test_content_prefers_text_snippet_of_encoded_body(self, result):
        assert result.items[0].content == "Full body of the first article"

    def test_content_falls_back_to_description_text(self, result):
        assert result.items[1].content == "Description of the second article"

    def test_missing_content_is_empty_string(self, result):
        assert result.items[2].content == ""

    def test_categories(self, result):
        assert result.items[0].categories == ["python", "feeds"]
        assert result.items[1].categories == []

    def test_published_date_parsed_as_utc(self, result):
        assert result.items[0].published_at == datetime(2026, 2, 13, 10, 0, tzinfo=timezone.utc)


def test_unparsable_date_defaults_to_now(mock_client, sample_rss_xml):
    started = datetime.now(timezone.utc)
    client = mock_client({RSS_URL: (200, sample_rss_xml)})

    result = fetch_feed(RSS_URL, client=client)

    _assert_recent(result.items[2].published_at, started)


def test_missing_date_defaults_to_now(mock_client):
    xml = """<?xml version="1.0"?>
    <rss version="2.0"><channel><title>Dateless</title>
      <item><title>No date</title><link>https://example.com/no-date</link></item>
    </channel></rss>"""
    started = datetime.now(timezone.utc)
    client = mock_client({RSS_URL: (200, xml)})

    result = fetch_feed(RSS_URL, client=client)

    assert len(result.items) == 1
    _assert_recent(result.items[0].published_at, started)


def test_entries_without_link_are_skipped(mock_client):
    xml = """<?xml version="1.0"?>
    <rss version="2.0"><channel><title>Linkless</title>
      <item><title>Nowhere</title><description>no link</description></item>
      <item><title>Somewhere</title><link>https://example.com/here</link></item>
    </channel></rss>"""
    client = mock_client({RSS_URL: (200, xml)})

    result = fetch_feed(RSS_URL, client=client)

    assert [i.title for i in result.items] == ["Somewhere"]
    assert any("no link" in w for w in result.warnings)


def test_untitled_item(mock_client):
    xml = """<?xml version="1.0"?>
    <rss version="2.0"><channel><title>T</title>
      <item><link>https://example.com/untitled</link></item>
    </channel></rss>"""
    client = mock_client({RSS_URL: (200, xml)})

    result = fetch_feed(RSS_URL, client=client)

    assert result.items[0].title == "Untitled"


def test_atom_feed(mock_client, sample_atom_xml):
    client = mock_client({ATOM_URL: (200, sample_atom_xml)})

    result = fetch_feed(ATOM_URL, client=client)

    assert isinstance(result, FetchResult)
    assert result.title == "Test Atom Feed"
    assert result.description == "A test Atom feed"
    item = result.items[0]
    assert item.link == "https://example.org/entry-1"
    assert item.author == "Alice"
    assert item.content == "Summary of entry 1"
    assert item.published_at == datetime(2026, 2, 13, 10, 0, tzinfo=timezone.utc)


class TestFailures:
    def test_http_error_is_failure(self, mock_client):
        client = mock_client({RSS_URL: (500, "boom")})

        result = fetch_feed(RSS_URL, client=client)

        assert isinstance(result, FetchFailure)
        assert result.url == RSS_URL
        assert "HTTP 500" in result.reason

    def test_auth_required_is_failure(self, mock_client):
        client = mock_client({RSS_URL: (403, "forbidden")})

        result = fetch_feed(RSS_URL, client=client)

        assert isinstance(result, FetchFailure)
        assert "authentication" in result.reason

    def test_timeout_is_failure(self, mock_client):
        request = httpx.Request("GET", RSS_URL)
        client = mock_client({RSS_URL: httpx.ReadTimeout("timed out", request=request)})

        result = fetch_feed(RSS_URL, timeout=0.5, client=client)

        assert isinstance(result, FetchFailure)
        assert "Timed out" in result.reason
        assert isinstance(result.cause, httpx.TimeoutException)

    def test_connection_error_is_failure(self, mock_client):
        request = httpx.Request("GET", RSS_URL)
        client = mock_client({RSS_URL: httpx.ConnectError("refused", request=request)})

        result = fetch_feed(RSS_URL, client=client)

        assert isinstance(result, FetchFailure)
        assert "Could not reach URL" in result.reason

    def test_not_a_feed_is_failure(self, mock_client, sample_not_a_feed_xml):
        client = mock_client({RSS_URL: (200, sample_not_a_feed_xml)})

        result = fetch_feed(RSS_URL, client=client)

        assert isinstance(result, FetchFailure)
        assert "not point to a valid RSS or Atom feed" in result.reason

    @pytest.mark.parametrize("url", ["not a url", "ftp://example.com/feed", ""])
    def test_invalid_url_is_failure(self, url):
        result = fetch_feed(url)

        assert isinstance(result, FetchFailure)
        assert "Invalid URL format" in result.reason

    def test_fetch_and_parse_raises(self, mock_client):
        client = mock_client({RSS_URL: (404, "missing")})

        with pytest.raises(FeedParseError):
            fetch_and_parse(RSS_URL, client=client)


def test_html_to_text():
    assert html_to_text("<p>Hello <b>world</b></p>\n<p>again</p>") == "Hello world again"
    assert html_to_text("") == ""
