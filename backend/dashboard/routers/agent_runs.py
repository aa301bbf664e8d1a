from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from dashboard.core.database import get_db
from dashboard.models.user import User
from dashboard.routers.auth import get_current_user
from dashboard.schemas.chat import AgentRunCreate, AgentRunResponse, AgentTasksSummary
from dashboard.services.agent_run_service import AgentRunService

router = APIRouter(prefix="/api/agent-runs", tags=["agent-runs"])

@router.get("", response_model=List[AgentRunResponse])
async def list_runs(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return await AgentRunService(db, current_user.id).list_runs()

@router.get("/summary", response_model=AgentTasksSummary)
async def get_runs_summary(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return await AgentRunService(db, current_user.id).get_summary()

@router.post("", response_model=AgentRunResponse)
async def queue_run(
    data: AgentRunCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return await AgentRunService(db, current_user.id).queue_agent_run(data, background_tasks)
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/{run_id}", response_model=AgentRunResponse)
async def get_run(run_id: int, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        return await AgentRunService(db, current_user.id).get_run(run_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
