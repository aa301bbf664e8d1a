from datetime import datetime
from typing import List

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard.models.news import NewsItem, NewsSource, UserNewsSourceExclusion, Notification
from dashboard.models.user import User
from dashboard.schemas.news import NewsItemResponse, NewsItemSource

DEFAULT_ITEMS_LIMIT = 50
DEFAULT_NOTIFICATIONS_LIMIT = 10


class NewsService:
    def __init__(self, db: AsyncSession, user: User):
        self.db = db
        self.user = user

    def _visible_items(self, *columns):
        excluded = select(UserNewsSourceExclusion.source_id).where(
            UserNewsSourceExclusion.user_id == self.user.id
        )
        return (
            select(*(columns or (NewsItem, NewsSource)))
            .select_from(NewsItem)
            .join(NewsSource, NewsItem.source_id == NewsSource.id)
            .where(NewsSource.is_active.is_(True), NewsItem.source_id.not_in(excluded))
        )

    async def get_items(self, limit: int = DEFAULT_ITEMS_LIMIT) -> List[NewsItemResponse]:
        """Newest first, skipping inactive sources and the user's excluded ones."""
        result = await self.db.execute(
            self._visible_items().order_by(NewsItem.published_at.desc(), NewsItem.id.desc()).limit(limit)
        )
        return [
            NewsItemResponse(
                id=item.id,
                title=item.title,
                summary=item.summary,
                url=item.url,
                image_url=item.image_url,
                published_at=item.published_at,
                source=NewsItemSource(
                    id=source.id,
                    name=source.name,
                    icon_name=source.icon_name,
                    brand_color=source.brand_color,
                    category=source.category,
                ),
            )
            for item, source in result.all()
        ]

    async def mark_as_read(self) -> datetime:
        self.user.news_last_seen_at = datetime.utcnow()
        await self.db.commit()
        return self.user.news_last_seen_at

    async def get_unread_count(self) -> int:
        query = self._visible_items(func.count(NewsItem.id))
        if self.user.news_last_seen_at:
            query = query.where(NewsItem.published_at > self.user.news_last_seen_at)
        return await self.db.scalar(query) or 0


class NotificationService:
    def __init__(self, db: AsyncSession, user_id: int):
        self.db = db
        self.user_id = user_id

    async def get_notifications(self, limit: int = DEFAULT_NOTIFICATIONS_LIMIT) -> List[Notification]:
        result = await self.db.execute(
            select(Notification)
            .where(Notification.user_id == self.user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_count(self) -> int:
        return await self.db.scalar(
            select(func.count()).select_from(Notification).where(Notification.user_id == self.user_id)
        ) or 0

    async def dismiss(self, notification_id: int) -> None:
        await self.db.execute(
            delete(Notification).where(Notification.id == notification_id, Notification.user_id == self.user_id)
        )
        await self.db.commit()

    async def dismiss_by_type(self, notification_type: str) -> int:
        result = await self.db.execute(
            delete(Notification).where(Notification.user_id == self.user_id, Notification.type == notification_type)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def dismiss_all(self) -> int:
        result = await self.db.execute(delete(Notification).where(Notification.user_id == self.user_id))
        await self.db.commit()
        return result.rowcount or 0
