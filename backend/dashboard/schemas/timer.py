from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Literal, Optional

TimerState = Literal["stopped", "running", "paused", "completed"]

class TimerCreate(BaseModel):
    name: str
    duration_seconds: int = Field(gt=0)
    enable_completion_color: bool = False
    completion_color: str = "#ef4444"
    enable_alarm: bool = False
    alarm_sound: str = "bell"

class TimerUpdate(BaseModel):
    name: Optional[str] = None
    duration_seconds: Optional[int] = Field(default=None, gt=0)
    enable_completion_color: Optional[bool] = None
    completion_color: Optional[str] = None
    enable_alarm: Optional[bool] = None
    alarm_sound: Optional[str] = None

class TimerResponse(BaseModel):
    id: int
    name: str
    duration_seconds: int
    remaining_seconds: int
    state: TimerState
    end_time: Optional[datetime] = None
    enable_completion_color: bool
    completion_color: str
    enable_alarm: bool
    alarm_sound: str
    display_order: int
    created_at: datetime

    class Config:
        from_attributes = True

class TimerReorder(BaseModel):
    timer_ids: List[int]
