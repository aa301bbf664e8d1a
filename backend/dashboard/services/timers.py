from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard.models.timer import Timer
from dashboard.schemas.timer import TimerCreate, TimerUpdate
from dashboard.utils.logger import get_logger

logger = get_logger("timers")


TIMER_PRESETS = [
    {"label": "5m", "seconds": 300},
    {"label": "15m", "seconds": 900},
    {"label": "30m", "seconds": 1800},
    {"label": "1h", "seconds": 3600},
]


def format_time(seconds: int) -> str:
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def parse_time(value: str) -> Optional[int]:
    """``M:SS`` or ``H:MM:SS`` to seconds; None when the format or ranges are invalid."""
    parts = value.strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        return None

    numbers = [int(p) for p in parts]
    hours, minutes, seconds = numbers if len(numbers) == 3 else [0, *numbers]
    if minutes >= 60 or seconds >= 60:
        return None
    return hours * 3600 + minutes * 60 + seconds


def remaining_from_end_time(end_time: datetime, now: Optional[datetime] = None) -> int:
    now = now or datetime.utcnow()
    return max(0, int((end_time.replace(tzinfo=None) - now).total_seconds()))


def sync_timer_state(timer: Timer, now: Optional[datetime] = None) -> bool:
    """Recomputes remaining time of a running timer; returns True when it has just completed."""
    if timer.state != "running" or timer.end_time is None:
        return False
    remaining = remaining_from_end_time(timer.end_time, now)
    if remaining == 0:
        timer.state = "completed"
        timer.remaining_seconds = 0
        timer.end_time = None
        return True
    timer.remaining_seconds = remaining
    return False


def progress(timer: Timer) -> float:
    if timer.duration_seconds == 0:
        return 0.0
    return (timer.duration_seconds - timer.remaining_seconds) / timer.duration_seconds * 100


class TimerService:
    def __init__(self, db: AsyncSession, user_id: int):
        self.db = db
        self.user_id = user_id

    async def get_timers(self) -> List[Timer]:
        result = await self.db.execute(
            select(Timer).where(Timer.user_id == self.user_id).order_by(Timer.display_order, Timer.id)
        )
        timers = list(result.scalars().all())
        if any([sync_timer_state(t) for t in timers]):
            await self.db.commit()
        return timers

    async def get_timer(self, timer_id: int) -> Timer:
        result = await self.db.execute(select(Timer).where(Timer.id == timer_id, Timer.user_id == self.user_id))
        timer = result.scalar_one_or_none()
        if not timer:
            raise ValueError("Timer not found")
        return timer

    async def create_timer(self, data: TimerCreate) -> Timer:
        max_order = await self.db.scalar(
            select(func.max(Timer.display_order)).where(Timer.user_id == self.user_id)
        )
        timer = Timer(
            user_id=self.user_id,
            name=data.name,
            duration_seconds=data.duration_seconds,
            remaining_seconds=data.duration_seconds,
            state="stopped",
            enable_completion_color=data.enable_completion_color,
            completion_color=data.completion_color,
            enable_alarm=data.enable_alarm,
            alarm_sound=data.alarm_sound,
            display_order=(max_order + 1) if max_order is not None else 0,
        )
        self.db.add(timer)
        await self.db.commit()
        await self.db.refresh(timer)
        return timer

    async def update_timer(self, timer_id: int, data: TimerUpdate) -> Timer:
        timer = await self.get_timer(timer_id)
        updates = data.model_dump(exclude_unset=True)
        if "duration_seconds" in updates:
            if timer.state == "running":
                raise ValueError("Cannot change the duration of a running timer")
            # editing the duration resets the countdown
            timer.remaining_seconds = updates["duration_seconds"]
            timer.state = "stopped"
            timer.end_time = None
        for field, value in updates.items():
            setattr(timer, field, value)
        await self.db.commit()
        await self.db.refresh(timer)
        return timer

    async def delete_timer(self, timer_id: int) -> None:
        timer = await self.get_timer(timer_id)
        await self.db.delete(timer)
        await self.db.commit()

    async def start(self, timer_id: int) -> Timer:
        timer = await self.get_timer(timer_id)
        if timer.state == "running":
            return timer
        if timer.state == "completed" or timer.remaining_seconds <= 0:
            timer.remaining_seconds = timer.duration_seconds
        timer.state = "running"
        timer.end_time = datetime.utcnow() + timedelta(seconds=timer.remaining_seconds)
        await self.db.commit()
        await self.db.refresh(timer)
        return timer

    async def pause(self, timer_id: int) -> Timer:
        timer = await self.get_timer(timer_id)
        if timer.state != "running":
            return timer
        if not sync_timer_state(timer):
            timer.state = "paused"
            timer.end_time = None
        await self.db.commit()
        await self.db.refresh(timer)
        return timer

    async def reset(self, timer_id: int) -> Timer:
        timer = await self.get_timer(timer_id)
        timer.state = "stopped"
        timer.remaining_seconds = timer.duration_seconds
        timer.end_time = None
        await self.db.commit()
        await self.db.refresh(timer)
        return timer

    async def complete(self, timer_id: int) -> Timer:
        timer = await self.get_timer(timer_id)
        timer.state = "completed"
        timer.remaining_seconds = 0
        timer.end_time = None
        await self.db.commit()
        await self.db.refresh(timer)
        return timer

    async def reorder(self, timer_ids: List[int]) -> List[Timer]:
        timers = {t.id: t for t in await self.get_timers()}
        for index, timer_id in enumerate(timer_ids):
            if timer_id in timers:
                timers[timer_id].display_order = index
        await self.db.commit()
        return await self.get_timers()
