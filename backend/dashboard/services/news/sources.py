from typing import List

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard.models.news import NewsSource, UserNewsSourceExclusion
from dashboard.models.user import User
from dashboard.schemas.news import (
    FetcherSettings,
    FetcherSettingsUpdate,
    NewsSourceCreate,
    NewsSourceUpdate,
    NewsSourceWithExclusion,
)
from dashboard.services.news.fetcher import (
    SETTING_FETCH_INTERVAL,
    SETTING_RETENTION_DAYS,
    get_fetcher_settings,
    set_system_setting,
)
from dashboard.utils.logger import get_logger

logger = get_logger("news.sources")

MANAGER_ROLES = ("admin", "news_manager")


def can_manage_news_sources(user: User) -> bool:
    return user.role in MANAGER_ROLES


class NewsSourceService:
    """
    Source management. Admins see and edit everything; news managers may
    create sources and edit or delete the ones they created.
    """

    def __init__(self, db: AsyncSession, user: User):
        self.db = db
        self.user = user

    def _require_manager(self) -> None:
        if not can_manage_news_sources(self.user):
            raise PermissionError("Permission denied")

    async def get_sources(self) -> List[NewsSource]:
        query = select(NewsSource)
        if not self.user.is_admin:
            query = query.where(NewsSource.is_active.is_(True))
        result = await self.db.execute(query.order_by(NewsSource.name))
        return list(result.scalars().all())

    async def _get_editable(self, source_id: int) -> NewsSource:
        self._require_manager()
        query = select(NewsSource).where(NewsSource.id == source_id)
        if not self.user.is_admin:
            query = query.where(NewsSource.created_by == self.user.id)
        result = await self.db.execute(query)
        source = result.scalar_one_or_none()
        if not source:
            raise ValueError("News source not found")
        return source

    async def create_source(self, data: NewsSourceCreate) -> NewsSource:
        self._require_manager()
        source = NewsSource(**data.model_dump(), created_by=self.user.id)
        self.db.add(source)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ValueError("A source with this URL already exists")
        await self.db.refresh(source)
        logger.info(f"User {self.user.id} created news source {source.id} ({source.url})")
        return source

    async def update_source(self, source_id: int, data: NewsSourceUpdate) -> NewsSource:
        source = await self._get_editable(source_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(source, field, value)
        await self.db.commit()
        await self.db.refresh(source)
        return source

    async def toggle_active(self, source_id: int, is_active: bool) -> NewsSource:
        return await self.update_source(source_id, NewsSourceUpdate(is_active=is_active))

    async def delete_source(self, source_id: int) -> None:
        source = await self._get_editable(source_id)
        await self.db.delete(source)
        await self.db.commit()

    async def get_fetcher_settings(self) -> FetcherSettings:
        if not self.user.is_admin:
            raise PermissionError("Permission denied")
        return await get_fetcher_settings(self.db)

    async def update_fetcher_settings(self, data: FetcherSettingsUpdate) -> FetcherSettings:
        if not self.user.is_admin:
            raise PermissionError("Permission denied")
        if data.fetch_interval_minutes is not None:
            await set_system_setting(self.db, SETTING_FETCH_INTERVAL, data.fetch_interval_minutes)
        if data.notification_retention_days is not None:
            await set_system_setting(self.db, SETTING_RETENTION_DAYS, data.notification_retention_days)
        return await get_fetcher_settings(self.db)

    # Per-user exclusions

    async def get_excluded_source_ids(self) -> List[int]:
        result = await self.db.execute(
            select(UserNewsSourceExclusion.source_id).where(UserNewsSourceExclusion.user_id == self.user.id)
        )
        return list(result.scalars().all())

    async def get_sources_with_exclusions(self) -> List[NewsSourceWithExclusion]:
        excluded = set(await self.get_excluded_source_ids())
        result = await self.db.execute(
            select(NewsSource).where(NewsSource.is_active.is_(True)).order_by(NewsSource.name)
        )
        return [
            NewsSourceWithExclusion(
                id=s.id,
                name=s.name,
                icon_name=s.icon_name,
                brand_color=s.brand_color,
                category=s.category,
                is_excluded=s.id in excluded,
            )
            for s in result.scalars().all()
        ]

    async def set_exclusion(self, source_id: int, excluded: bool) -> None:
        if excluded:
            if source_id in await self.get_excluded_source_ids():
                return
            if not await self.db.get(NewsSource, source_id):
                raise ValueError("News source not found")
            self.db.add(UserNewsSourceExclusion(user_id=self.user.id, source_id=source_id))
        else:
            await self.db.execute(
                delete(UserNewsSourceExclusion).where(
                    UserNewsSourceExclusion.user_id == self.user.id,
                    UserNewsSourceExclusion.source_id == source_id,
                )
            )
        await self.db.commit()
