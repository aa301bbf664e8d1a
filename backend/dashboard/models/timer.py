from datetime import datetime
from typing import Optional
from sqlalchemy import String, ForeignKey, DateTime, Integer, Boolean
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from dashboard.core.database import Base

class Timer(Base):
    __tablename__ = "timers"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String)
    duration_seconds: Mapped[int] = mapped_column(Integer)
    remaining_seconds: Mapped[int] = mapped_column(Integer)
    state: Mapped[str] = mapped_column(String, default="stopped")  # stopped, running, paused, completed
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    enable_completion_color: Mapped[bool] = mapped_column(Boolean, default=False)
    completion_color: Mapped[str] = mapped_column(String, default="#ef4444")
    enable_alarm: Mapped[bool] = mapped_column(Boolean, default=False)
    alarm_sound: Mapped[str] = mapped_column(String, default="bell")
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
