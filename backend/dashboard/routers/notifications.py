from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from dashboard.core.database import get_db
from dashboard.models.user import User
from dashboard.routers.auth import get_current_user
from dashboard.schemas.news import NotificationResponse, UnreadCount
from dashboard.services.news.news_service import NotificationService

router = APIRouter(prefix="/api/notifications", tags=["notifications"])

@router.get("", response_model=List[NotificationResponse])
async def list_notifications(limit: int = 10, db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user)):
    return await NotificationService(db, user.id).get_notifications(limit)

@router.get("/count", response_model=UnreadCount)
async def count(db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user)):
    return UnreadCount(count=await NotificationService(db, user.id).get_count())

@router.delete("/{notification_id}")
async def dismiss(notification_id: int, db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user)):
    await NotificationService(db, user.id).dismiss(notification_id)
    return {"success": True}

@router.delete("")
async def dismiss_all(type: str = None, db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user)):
    service = NotificationService(db, user.id)
    deleted = await (service.dismiss_by_type(type) if type else service.dismiss_all())
    return {"success": True, "deleted": deleted}
