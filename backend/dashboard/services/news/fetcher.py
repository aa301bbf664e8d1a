"""
News fetcher: pulls every active source, stores unseen items, fans out one
notification per (user, source with new items) and prunes old notifications.

Runs from the cron route and the worker with its own session.
"""
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

import httpx
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard.models.news import NewsSource, NewsItem, UserNewsSourceExclusion, Notification, SystemSetting
from dashboard.models.user import User
from dashboard.schemas.news import FetcherSettings, FetchNewsResult
from dashboard.services.news.parser import ParsedFeedItem, hash_guid, parse_feed
from dashboard.utils.logger import get_logger

logger = get_logger("news.fetcher")

USER_AGENT = "Dashboard News Fetcher/1.0"
FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml"
FETCH_TIMEOUT_SECONDS = 30.0

SETTING_FETCH_INTERVAL = "fetch_interval_minutes"
SETTING_RETENTION_DAYS = "notification_retention_days"
SETTING_LAST_FETCH = "last_fetch_at"


@dataclass
class FetchSourceResult:
    source_id: int
    source_name: str
    new_items_count: int = 0
    error: Optional[str] = None


async def get_fetcher_settings(db: AsyncSession) -> FetcherSettings:
    result = await db.execute(select(SystemSetting))
    settings = FetcherSettings()
    for row in result.scalars().all():
        if row.key == SETTING_FETCH_INTERVAL and isinstance(row.value, int):
            settings.fetch_interval_minutes = row.value
        elif row.key == SETTING_RETENTION_DAYS and isinstance(row.value, int):
            settings.notification_retention_days = row.value
        elif row.key == SETTING_LAST_FETCH and isinstance(row.value, str):
            try:
                settings.last_fetch_at = datetime.fromisoformat(row.value)
            except ValueError:
                logger.warning(f"Ignoring malformed last_fetch_at setting: {row.value}")
    return settings


async def set_system_setting(db: AsyncSession, key: str, value) -> None:
    row = await db.get(SystemSetting, key)
    if row:
        row.value = value
        row.updated_at = datetime.utcnow()
    else:
        db.add(SystemSetting(key=key, value=value))
    await db.commit()


async def _users_with_exclusions(db: AsyncSession) -> Dict[int, Set[int]]:
    users = await db.execute(select(User.id))
    exclusions: Dict[int, Set[int]] = {user_id: set() for user_id in users.scalars().all()}
    rows = await db.execute(select(UserNewsSourceExclusion.user_id, UserNewsSourceExclusion.source_id))
    for user_id, source_id in rows.all():
        exclusions.setdefault(user_id, set()).add(source_id)
    return exclusions


async def store_new_items(db: AsyncSession, source_id: int, items: List[ParsedFeedItem]) -> int:
    """Inserts items whose guid hash is not stored yet. Returns the number inserted."""
    if not items:
        return 0

    by_hash: Dict[str, ParsedFeedItem] = {}
    for item in items:
        by_hash.setdefault(hash_guid(item.guid), item)

    existing = await db.execute(select(NewsItem.guid_hash).where(NewsItem.guid_hash.in_(list(by_hash))))
    existing_hashes = set(existing.scalars().all())

    new_items = [(h, item) for h, item in by_hash.items() if h not in existing_hashes]
    for guid_hash, item in new_items:
        db.add(NewsItem(
            source_id=source_id,
            guid=item.guid,
            guid_hash=guid_hash,
            title=item.title,
            summary=item.summary,
            url=item.link,
            image_url=item.image_url,
            published_at=item.published_at,
        ))
    await db.commit()
    return len(new_items)


async def fetch_source(db: AsyncSession, client: httpx.AsyncClient, source: NewsSource) -> FetchSourceResult:
    result = FetchSourceResult(source_id=source.id, source_name=source.name)
    try:
        response = await client.get(source.url, headers={"User-Agent": USER_AGENT, "Accept": FEED_ACCEPT})
        if response.status_code >= 400:
            result.error = f"HTTP {response.status_code}: {response.reason_phrase}"
            return result

        parsed = parse_feed(response.text, source.url)
        if parsed.error:
            result.error = parsed.error
            return result

        result.new_items_count = await store_new_items(db, source.id, parsed.items)
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to fetch news source {source.name}: {e}")
        result.error = str(e) or type(e).__name__
    return result


def notification_title(count: int, source_name: str) -> str:
    return f"{count} new {'item' if count == 1 else 'items'} from {source_name}"


async def create_batched_notifications(
    db: AsyncSession,
    results: List[FetchSourceResult],
    exclusions: Dict[int, Set[int]],
) -> int:
    with_new_items = [r for r in results if r.new_items_count > 0 and not r.error]
    if not with_new_items or not exclusions:
        return 0

    created = 0
    for user_id, excluded in exclusions.items():
        for source in with_new_items:
            if source.source_id in excluded:
                continue
            db.add(Notification(
                user_id=user_id,
                type="news",
                title=notification_title(source.new_items_count, source.source_name),
                message=f"Check out the latest updates from {source.source_name}",
                meta_data={
                    "type": "news",
                    "sourceId": source.source_id,
                    "sourceName": source.source_name,
                    "itemCount": source.new_items_count,
                },
            ))
            created += 1

    await db.commit()
    return created


async def cleanup_old_notifications(db: AsyncSession, retention_days: int) -> int:
    cutoff = datetime.utcnow() - timedelta(days=retention_days)
    result = await db.execute(delete(Notification).where(Notification.created_at < cutoff))
    await db.commit()
    return result.rowcount or 0


async def fetch_news(db: AsyncSession) -> FetchNewsResult:
    started = time.monotonic()

    def elapsed_ms() -> int:
        return int((time.monotonic() - started) * 1000)

    try:
        settings = await get_fetcher_settings(db)
        sources_result = await db.execute(select(NewsSource).where(NewsSource.is_active.is_(True)))
        sources = list(sources_result.scalars().all())
        if not sources:
            return FetchNewsResult(success=True, duration_ms=elapsed_ms())

        exclusions = await _users_with_exclusions(db)

        results: List[FetchSourceResult] = []
        errors: List[str] = []
        total_new_items = 0
        async with httpx.AsyncClient(timeout=FETCH_TIMEOUT_SECONDS, follow_redirects=True) as client:
            for source in sources:
                source_result = await fetch_source(db, client, source)
                results.append(source_result)
                if source_result.error:
                    errors.append(f"{source.name}: {source_result.error}")
                else:
                    total_new_items += source_result.new_items_count

        notifications_created = await create_batched_notifications(db, results, exclusions)
        notifications_deleted = await cleanup_old_notifications(db, settings.notification_retention_days)
        await set_system_setting(db, SETTING_LAST_FETCH, datetime.utcnow().isoformat())

        logger.info(
            f"News fetch finished: {len(sources)} sources, {total_new_items} new items, "
            f"{notifications_created} notifications, {len(errors)} errors"
        )
        return FetchNewsResult(
            success=not errors,
            sources_processed=len(sources),
            total_new_items=total_new_items,
            notifications_created=notifications_created,
            notifications_deleted=notifications_deleted,
            errors=errors,
            duration_ms=elapsed_ms(),
        )
    except Exception as e:
        logger.exception(f"News fetch failed: {e}")
        return FetchNewsResult(success=False, errors=[str(e) or "Unknown error"], duration_ms=elapsed_ms())
