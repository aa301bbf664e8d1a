from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from dashboard.core.database import get_db
from dashboard.models.user import User
from dashboard.routers.auth import get_current_user
from dashboard.schemas.news import (
    FetcherSettings,
    FetcherSettingsUpdate,
    NewsSourceCreate,
    NewsSourceResponse,
    NewsSourceUpdate,
)
from dashboard.services.news.sources import NewsSourceService

router = APIRouter(prefix="/api/news-sources", tags=["news-sources"])

@router.get("", response_model=List[NewsSourceResponse])
async def list_sources(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return await NewsSourceService(db, current_user).get_sources()

@router.get("/settings", response_model=FetcherSettings)
async def read_fetcher_settings(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        return await NewsSourceService(db, current_user).get_fetcher_settings()
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))

@router.patch("/settings", response_model=FetcherSettings)
async def update_fetcher_settings(
    data: FetcherSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return await NewsSourceService(db, current_user).update_fetcher_settings(data)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))

@router.post("", response_model=NewsSourceResponse)
async def create_source(
    data: NewsSourceCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return await NewsSourceService(db, current_user).create_source(data)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.patch("/{source_id}", response_model=NewsSourceResponse)
async def update_source(
    source_id: int,
    data: NewsSourceUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return await NewsSourceService(db, current_user).update_source(source_id, data)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.delete("/{source_id}")
async def delete_source(source_id: int, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        await NewsSourceService(db, current_user).delete_source(source_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True}

