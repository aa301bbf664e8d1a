from datetime import datetime
from typing import Any, Dict, List

from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from dashboard.core.database import SessionLocal
from dashboard.core.model_pricing import DEFAULT_MODEL, calculate_cost
from dashboard.models.chat import AgentRun
from dashboard.schemas.chat import AgentRunCreate
from dashboard.services.agent_service import AgentService
from dashboard.utils.logger import get_logger

logger = get_logger("agent_runs")

SUMMARY_RECENT_LIMIT = 5
ACTIVE_STATUSES = ("queued", "running")


async def execute_agent_run(run_id: int) -> None:
    """Background execution: queued -> running -> completed | failed."""
    async with SessionLocal() as db:
        run = await db.get(AgentRun, run_id)
        if not run:
            logger.error(f"Agent run {run_id} disappeared before execution")
            return

        run.status = "running"
        await db.commit()

        try:
            result = await AgentService().run_agent(
                prompt=run.prompt,
                model=run.model,
                system_prompt=run.system_prompt,
            )
        except Exception as e:
            logger.exception(f"Agent run {run_id} failed: {e}")
            run.status = "failed"
            run.error = str(e)
            run.completed_at = datetime.utcnow()
            await db.commit()
            return

        run.status = "completed"
        run.result = result.text
        run.input_tokens = result.usage.prompt_tokens if result.usage else 0
        run.output_tokens = result.usage.completion_tokens if result.usage else 0
        run.completed_at = datetime.utcnow()
        await db.commit()
        logger.info(f"Agent run {run_id} completed in {result.steps} steps")


class AgentRunService:
    def __init__(self, db: AsyncSession, user_id: int):
        self.db = db
        self.user_id = user_id

    async def list_runs(self) -> List[AgentRun]:
        result = await self.db.execute(
            select(AgentRun)
            .where(AgentRun.user_id == self.user_id)
            .order_by(AgentRun.created_at.desc(), AgentRun.id.desc())
        )
        return list(result.scalars().all())

    async def get_run(self, run_id: int) -> AgentRun:
        result = await self.db.execute(
            select(AgentRun).where(AgentRun.id == run_id, AgentRun.user_id == self.user_id)
        )
        run = result.scalar_one_or_none()
        if not run:
            raise ValueError("Agent run not found")
        return run

    async def queue_agent_run(self, data: AgentRunCreate, background_tasks: BackgroundTasks) -> AgentRun:
        run = AgentRun(
            user_id=self.user_id,
            prompt=data.prompt,
            system_prompt=data.system_prompt,
            model=data.model or DEFAULT_MODEL,
            status="queued",
        )
        self.db.add(run)
        await self.db.commit()
        await self.db.refresh(run)

        try:
            background_tasks.add_task(execute_agent_run, run.id)
        except Exception as e:
            logger.error(f"Failed to queue agent run {run.id}: {e}")
            run.status = "failed"
            run.error = "Failed to queue task"
            await self.db.commit()
            raise ValueError("Failed to queue task")

        return run

    async def get_summary(self) -> Dict[str, Any]:
        total = await self.db.scalar(
            select(func.count()).select_from(AgentRun).where(AgentRun.user_id == self.user_id)
        )
        running = await self.db.scalar(
            select(func.count()).select_from(AgentRun).where(
                AgentRun.user_id == self.user_id,
                AgentRun.status.in_(ACTIVE_STATUSES),
            )
        )
        recent = await self.db.execute(
            select(AgentRun)
            .where(AgentRun.user_id == self.user_id)
            .order_by(AgentRun.created_at.desc(), AgentRun.id.desc())
            .limit(SUMMARY_RECENT_LIMIT)
        )
        completed = await self.db.execute(
            select(AgentRun.model, AgentRun.input_tokens, AgentRun.output_tokens).where(
                AgentRun.user_id == self.user_id,
                AgentRun.status == "completed",
            )
        )
        total_cost = sum(
            calculate_cost(model, input_tokens or 0, output_tokens or 0)
            for model, input_tokens, output_tokens in completed.all()
        )

        return {
            "recent_runs": list(recent.scalars().all()),
            "total_runs": total or 0,
            "running_count": running or 0,
            "total_cost": total_cost,
        }
