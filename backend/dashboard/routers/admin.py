from fastapi import APIRouter, Depends, HTTPException
from typing import List
import httpx
import logging

from dashboard.models.user import User
from dashboard.routers.auth import get_current_admin_user
from dashboard.schemas.ai import ModelWithPricing, RefreshModelsResponse
from dashboard.services.openrouter_models import get_models_with_pricing, refresh_models_cache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

@router.post("/refresh-models", response_model=RefreshModelsResponse)
async def refresh_models(current_admin: User = Depends(get_current_admin_user)):
    try:
        models = await refresh_models_cache()
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Failed to refresh models: {e}")
        raise HTTPException(status_code=500, detail="Failed to refresh models")

    return RefreshModelsResponse(
        success=True,
        modelsCount=len(models),
        freeModels=[{"id": m.id, "isFree": m.is_free} for m in models if m.is_free],
    )

@router.get("/models", response_model=List[ModelWithPricing])
async def list_models(current_admin: User = Depends(get_current_admin_user)):
    try:
        return await get_models_with_pricing()
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Failed to load models: {e}")
        raise HTTPException(status_code=500, detail="Failed to load models")
