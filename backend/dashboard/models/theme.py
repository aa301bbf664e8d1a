from datetime import datetime
from typing import Dict
from sqlalchemy import String, ForeignKey, DateTime, JSON, Boolean, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from dashboard.core.database import Base

class UserTheme(Base):
    __tablename__ = "user_themes"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_user_themes_user_name"),)

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String)
    light_variables: Mapped[Dict[str, str]] = mapped_column(JSON)
    dark_variables: Mapped[Dict[str, str]] = mapped_column(JSON)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
