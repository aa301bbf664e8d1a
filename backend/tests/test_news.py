from datetime import datetime, timedelta

import httpx
import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy import select

from dashboard.core.config import Settings
from dashboard.models.news import NewsItem, NewsSource, Notification
from dashboard.schemas.news import FetchNewsResult
from dashboard.services.news.fetcher import (
    FetchSourceResult,
    cleanup_old_notifications,
    create_batched_notifications,
    fetch_source,
    notification_title,
)
from dashboard.services.news.parser import hash_guid, parse_feed, truncate_summary

from conftest import create_user

RSS_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">
  <channel>
    <title>Example</title>
    <item>
      <title>First &amp; foremost</title>
      <link>https://example.com/1</link>
      <guid>item-1</guid>
      <description>&lt;p&gt;Hello&amp;nbsp;&lt;b&gt;world&lt;/b&gt;&lt;/p&gt;</description>
      <pubDate>Tue, 10 Jun 2025 04:00:00 GMT</pubDate>
      <media:content url="https://example.com/1.png" />
    </item>
    <item>
      <title>No guid here</title>
      <link>https://example.com/2</link>
      <description>Entity&nbsp;test</description>
    </item>
    <item>
      <description>Missing title and link</description>
    </item>
  </channel>
</rss>"""

ATOM_FEED = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom example</title>
  <entry>
    <title>Atom entry</title>
    <link rel="self" href="https://example.com/self" />
    <link rel="alternate" href="https://example.com/atom-1" />
    <id>urn:uuid:1</id>
    <updated>2025-06-10T04:00:00+02:00</updated>
    <summary>Short summary</summary>
  </entry>
</feed>"""


def test_parse_rss_items():
    result = parse_feed(RSS_FEED, "https://example.com/feed")

    assert result.error is None
    assert len(result.items) == 2

    first, second = result.items
    assert first.title == "First & foremost"
    assert first.guid == "item-1"
    assert first.summary == "Hello world"
    assert first.image_url == "https://example.com/1.png"
    assert first.published_at == datetime(2025, 6, 10, 4, 0)

    assert second.guid == "https://example.com/2"
    assert second.summary == "Entity test"


def test_parse_atom_prefers_alternate_link():
    result = parse_feed(ATOM_FEED, "https://example.com/atom")

    assert result.error is None
    [entry] = result.items
    assert entry.link == "https://example.com/atom-1"
    assert entry.guid == "urn:uuid:1"
    assert entry.summary == "Short summary"
    assert entry.published_at == datetime(2025, 6, 10, 2, 0)


def test_parse_invalid_xml_reports_error():
    result = parse_feed("<rss><channel><item>", "https://example.com/feed")
    assert result.items == []
    assert result.error.startswith("Invalid feed XML")


def test_parse_feed_tolerates_bare_ampersands():
    feed = """<rss version="2.0"><channel>
      <item>
        <title>Tom & Jerry return</title>
        <link>https://example.com/tj?a=1&b=2</link>
        <description>Rock & roll &copy; 2025 &bogus; entity</description>
      </item>
      <item>
        <title><![CDATA[Q&A: <special> characters]]></title>
        <link>https://example.com/qa</link>
        <description><![CDATA[<p>R&amp;D <img src="https://example.com/qa.png?w=1&amp;h=2"></p>]]></description>
      </item>
    </channel></rss>"""

    result = parse_feed(feed, "https://example.com/feed")

    assert result.error is None
    assert len(result.items) == 2
    first, second = result.items
    assert first.title == "Tom & Jerry return"
    assert first.link == "https://example.com/tj?a=1&b=2"
    assert first.summary == "Rock & roll © 2025 &bogus; entity"
    assert second.title == "Q&A: <special> characters"
    assert second.summary == "R&D"
    assert second.image_url == "https://example.com/qa.png?w=1&h=2"


def test_parse_feed_decodes_escaped_text_once():
    feed = """<rss version="2.0"><channel>
      <item>
        <title>Use &amp;lt;div&amp;gt; for layout</title>
        <link>https://example.com/div</link>
        <description>Escaped markup: &amp;lt;b&amp;gt;</description>
      </item>
    </channel></rss>"""

    [item] = parse_feed(feed, "https://example.com/feed").items

    assert item.title == "Use &lt;div&gt; for layout"
    assert item.summary == "Escaped markup: <b>"


def test_truncate_summary():
    assert truncate_summary("short") == "short"
    truncated = truncate_summary("a" * 600)
    assert len(truncated) == 503
    assert truncated.endswith("...")


def test_notification_title_pluralizes():
    assert notification_title(1, "Hacker News") == "1 new item from Hacker News"
    assert notification_title(3, "Hacker News") == "3 new items from Hacker News"


@pytest.mark.asyncio
async def test_fetch_source_stores_only_unseen_items(db):
    source = NewsSource(url="https://example.com/feed", name="Example")
    db.add(source)
    await db.commit()
    await db.refresh(source)

    db.add(NewsItem(
        source_id=source.id,
        guid="item-1",
        guid_hash=hash_guid("item-1"),
        title="Already stored",
        url="https://example.com/1",
        published_at=datetime.utcnow(),
    ))
    await db.commit()

    transport = httpx.MockTransport(lambda request: httpx.Response(200, text=RSS_FEED))
    async with httpx.AsyncClient(transport=transport) as client:
        result = await fetch_source(db, client, source)

    assert result.error is None
    assert result.new_items_count == 1
    stored = (await db.execute(select(NewsItem.guid))).scalars().all()
    assert sorted(stored) == ["https://example.com/2", "item-1"]


@pytest.mark.asyncio
async def test_fetch_source_reports_http_error(db):
    source = NewsSource(url="https://example.com/missing", name="Missing")
    db.add(source)
    await db.commit()
    await db.refresh(source)

    transport = httpx.MockTransport(lambda request: httpx.Response(404))
    async with httpx.AsyncClient(transport=transport) as client:
        result = await fetch_source(db, client, source)

    assert result.new_items_count == 0
    assert result.error == "HTTP 404: Not Found"


@pytest.mark.asyncio
async def test_notifications_skip_excluded_sources(db, user):
    other = await create_user(db, email="other@example.com")
    results = [
        FetchSourceResult(source_id=1, source_name="One", new_items_count=2),
        FetchSourceResult(source_id=2, source_name="Two", new_items_count=5),
        FetchSourceResult(source_id=3, source_name="Broken", error="HTTP 500"),
    ]

    created = await create_batched_notifications(db, results, {user.id: {2}, other.id: set()})

    assert created == 3
    rows = (await db.execute(select(Notification).where(Notification.user_id == user.id))).scalars().all()
    assert [n.title for n in rows] == ["2 new items from One"]
    assert rows[0].meta_data["sourceId"] == 1


@pytest.mark.asyncio
async def test_cleanup_old_notifications(db, user):
    db.add(Notification(user_id=user.id, title="old", created_at=datetime.utcnow() - timedelta(days=10)))
    db.add(Notification(user_id=user.id, title="new"))
    await db.commit()

    assert await cleanup_old_notifications(db, retention_days=7) == 1
    titles = (await db.execute(select(Notification.title))).scalars().all()
    assert titles == ["new"]


@pytest.mark.asyncio
async def test_cron_requires_configured_secret(client):
    with patch("dashboard.routers.cron.get_settings", return_value=Settings(CRON_SECRET=None)):
        response = await client.post("/api/cron/fetch-news", headers={"Authorization": "Bearer anything"})
    assert response.status_code == 500
    assert response.json() == {"error": "CRON_SECRET not configured"}


@pytest.mark.asyncio
async def test_cron_rejects_wrong_secret(client):
    response = await client.post("/api/cron/fetch-news", headers={"Authorization": "Bearer wrong"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_cron_runs_fetch(client):
    result = FetchNewsResult(success=True, sources_processed=2, total_new_items=4)
    with patch("dashboard.routers.cron.fetch_news", AsyncMock(return_value=result)):
        response = await client.post(
            "/api/cron/fetch-news",
            headers={"Authorization": "Bearer cron-test-secret"},
        )

    assert response.status_code == 200
    assert response.json()["total_new_items"] == 4


@pytest.mark.asyncio
async def test_cron_health(client):
    response = await client.get("/api/cron/fetch-news")
    assert response.json() == {"status": "ok", "endpoint": "fetch-news"}
