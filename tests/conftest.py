"""Shared test fixtures for feed aggregator tests."""

import httpx
import pytest

from feed_aggregator.database import Database
from feed_aggregator.models import Source


SAMPLE_RSS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:dc="http://purl.org/dc/elements/1.1/"
     xmlns:content="http://purl.org/rss/1.0/modules/content/">
  <channel>
    <title>Test Feed</title>
    <link>https://example.com</link>
    <description>A test RSS feed</description>
    <item>
      <title>First Article</title>
      <link>https://example.com/article-1</link>
      <guid>article-1</guid>
      <dc:creator>Jane Doe</dc:creator>
      <category>python</category>
      <category>feeds</category>
      <description>Short description of the first article</description>
      <content:encoded><![CDATA[<p>Full <b>body</b> of the first article</p>]]></content:encoded>
      <pubDate>Fri, 13 Feb 2026 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Second Article</title>
      <link>https://example.com/article-2</link>
      <guid>article-2</guid>
      <description>&lt;p&gt;Description of the &lt;i&gt;second&lt;/i&gt; article&lt;/p&gt;</description>
      <pubDate>Fri, 13 Feb 2026 09:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Third Article</title>
      <link>https://example.com/article-3</link>
      <guid>article-3</guid>
      <pubDate>sometime last week</pubDate>
    </item>
  </channel>
</rss>"""

SAMPLE_ATOM_XML = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Test Atom Feed</title>
  <link href="https://example.org"/>
  <subtitle>A test Atom feed</subtitle>
  <entry>
    <title>Atom Entry 1</title>
    <link href="https://example.org/entry-1"/>
    <id>urn:uuid:entry-1</id>
    <author><name>Alice</name></author>
    <summary>Summary of entry 1</summary>
    <updated>2026-02-13T10:00:00Z</updated>
  </entry>
</feed>"""

SAMPLE_NOT_A_FEED_XML = """<?xml version="1.0" encoding="UTF-8"?>
<html>
  <body>This is not a feed</body>
</html>"""


@pytest.fixture
def sample_rss_xml():
    """Sample valid RSS 2.0 XML."""
    return SAMPLE_RSS_XML


@pytest.fixture
def sample_atom_xml():
    """Sample valid Atom XML."""
    return SAMPLE_ATOM_XML


@pytest.fixture
def sample_not_a_feed_xml():
    """Sample XML that is not a feed."""
    return SAMPLE_NOT_A_FEED_XML


@pytest.fixture
def db(tmp_path):
    """An initialized Database on a temporary file."""
    database = Database(str(tmp_path / "feeds.db"))
    database.initialize()
    return database


@pytest.fixture
def make_source(db):
    """Register a source and return it with its id."""

    def _make(name: str, feed_url: str, is_active: bool = True) -> Source:
        return db.add_source(Source(name=name, feed_url=feed_url, is_active=is_active))

    return _make


@pytest.fixture
def mock_client():
    """Build an httpx.Client that serves canned responses by URL.

    Values are (status, body) tuples, or exceptions to raise for that URL.
    """
    clients = []

    def _make(routes: dict) -> httpx.Client:
        def handler(request: httpx.Request) -> httpx.Response:
            route = routes.get(str(request.url))
            if route is None:
                return httpx.Response(404, text="not found")
            if isinstance(route, Exception):
                raise route
            status, body = route
            return httpx.Response(status, text=body)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()
