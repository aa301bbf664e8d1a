from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel
from typing import List

from dashboard.core.database import get_db
from dashboard.models.user import User
from dashboard.routers.auth import get_current_user
from dashboard.schemas.news import NewsItemResponse, NewsSourceWithExclusion, UnreadCount
from dashboard.services.news.news_service import NewsService
from dashboard.services.news.sources import NewsSourceService

router = APIRouter(prefix="/api/news", tags=["news"])

class ExclusionUpdate(BaseModel):
    excluded: bool

@router.get("", response_model=List[NewsItemResponse])
async def get_news(limit: int = 50, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return await NewsService(db, current_user).get_items(limit)

@router.post("/mark-read")
async def mark_read(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    last_seen = await NewsService(db, current_user).mark_as_read()
    return {"success": True, "news_last_seen_at": last_seen}

@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return UnreadCount(count=await NewsService(db, current_user).get_unread_count())

@router.get("/exclusions", response_model=List[NewsSourceWithExclusion])
async def get_exclusions(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return await NewsSourceService(db, current_user).get_sources_with_exclusions()

@router.put("/exclusions/{source_id}")
async def set_exclusion(
    source_id: int,
    data: ExclusionUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        await NewsSourceService(db, current_user).set_exclusion(source_id, data.excluded)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True}
