from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard.core.database import get_db
from dashboard.models.user import User
from dashboard.routers.auth import get_current_admin_user
from dashboard.schemas.expenditure import (
    ConsumptionCostUpdate,
    ExpenditureSourceCreate,
    ExpenditureSourceResponse,
    ExpenditureSourceUpdate,
    ExpenditureSummary,
)
from dashboard.services.expenditures import ExpenditureService, to_response

router = APIRouter(prefix="/api/expenditures", tags=["expenditures"])

@router.get("", response_model=ExpenditureSummary)
async def list_expenditures(db: AsyncSession = Depends(get_db), current_admin: User = Depends(get_current_admin_user)):
    return await ExpenditureService(db, current_admin.id).get_summary()

@router.post("", response_model=ExpenditureSourceResponse)
async def create_expenditure(
    data: ExpenditureSourceCreate,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_admin_user),
):
    return to_response(await ExpenditureService(db, current_admin.id).create_source(data))

@router.patch("/{source_id}", response_model=ExpenditureSourceResponse)
async def update_expenditure(
    source_id: int,
    data: ExpenditureSourceUpdate,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_admin_user),
):
    try:
        return to_response(await ExpenditureService(db, current_admin.id).update_source(source_id, data))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.put("/{source_id}/consumption", response_model=ExpenditureSourceResponse)
async def update_consumption(
    source_id: int,
    data: ConsumptionCostUpdate,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_admin_user),
):
    try:
        source = await ExpenditureService(db, current_admin.id).update_consumption_cost(source_id, data.consumption_cost)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return to_response(source)

@router.delete("/{source_id}")
async def delete_expenditure(source_id: int, db: AsyncSession = Depends(get_db), current_admin: User = Depends(get_current_admin_user)):
    try:
        await ExpenditureService(db, current_admin.id).delete_source(source_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True}
