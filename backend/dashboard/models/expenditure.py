from datetime import datetime
from typing import Optional
from sqlalchemy import String, ForeignKey, DateTime, Integer, Float, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from dashboard.core.database import Base

class ExpenditureSource(Base):
    __tablename__ = "expenditure_sources"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String)
    base_cost: Mapped[float] = mapped_column(Float, default=0)
    billing_cycle: Mapped[str] = mapped_column(String, default="monthly")  # monthly, yearly
    billing_day_of_month: Mapped[int] = mapped_column(Integer, default=1)
    billing_month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 1-12, yearly only
    consumption_cost: Mapped[float] = mapped_column(Float, default=0)
    details_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
