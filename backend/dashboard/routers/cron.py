from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from dashboard.core.config import get_settings
from dashboard.core.database import get_db
from dashboard.services.news.fetcher import fetch_news

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"])

@router.get("/fetch-news")
async def fetch_news_health():
    return {"status": "ok", "endpoint": "fetch-news"}

@router.post("/fetch-news")
async def fetch_news_cron(
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
):
    """Triggered by an external scheduler with ``Authorization: Bearer {CRON_SECRET}``."""
    cron_secret = get_settings().CRON_SECRET
    if not cron_secret:
        return JSONResponse(status_code=500, content={"error": "CRON_SECRET not configured"})

    if authorization != f"Bearer {cron_secret}":
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    try:
        result = await fetch_news(db)
    except Exception as e:
        logger.exception(f"Fetch news cron error: {e}")
        return JSONResponse(status_code=500, content={"error": str(e) or "Unknown error"})

    return JSONResponse(status_code=200 if result.success else 500, content=result.model_dump())
