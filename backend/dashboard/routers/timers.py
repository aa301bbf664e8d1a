from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from dashboard.core.database import get_db
from dashboard.models.user import User
from dashboard.routers.auth import get_current_user
from dashboard.schemas.timer import TimerCreate, TimerReorder, TimerResponse, TimerUpdate
from dashboard.services.timers import TIMER_PRESETS, TimerService

router = APIRouter(prefix="/api/timers", tags=["timers"])

ACTIONS = ("start", "pause", "reset", "complete")

@router.get("", response_model=List[TimerResponse])
async def list_timers(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return await TimerService(db, current_user.id).get_timers()

@router.get("/presets")
async def list_presets():
    return TIMER_PRESETS

@router.post("", response_model=TimerResponse)
async def create_timer(data: TimerCreate, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return await TimerService(db, current_user.id).create_timer(data)

@router.put("/reorder", response_model=List[TimerResponse])
async def reorder_timers(data: TimerReorder, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return await TimerService(db, current_user.id).reorder(data.timer_ids)

@router.patch("/{timer_id}", response_model=TimerResponse)
async def update_timer(
    timer_id: int,
    data: TimerUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return await TimerService(db, current_user.id).update_timer(timer_id, data)
    except ValueError as e:
        status = 404 if str(e) == "Timer not found" else 400
        raise HTTPException(status_code=status, detail=str(e))

@router.post("/{timer_id}/{action}", response_model=TimerResponse)
async def timer_action(
    timer_id: int,
    action: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if action not in ACTIONS:
        raise HTTPException(status_code=404, detail="Unknown timer action")
    service = TimerService(db, current_user.id)
    try:
        return await getattr(service, action)(timer_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.delete("/{timer_id}")
async def delete_timer(timer_id: int, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        await TimerService(db, current_user.id).delete_timer(timer_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True}
