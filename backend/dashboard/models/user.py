from datetime import datetime
from typing import Optional, Dict, Any
from sqlalchemy import String, DateTime, Integer, Float, JSON
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from dashboard.core.database import Base

USER_ROLES = ("user", "admin", "news_manager")

class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String, nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    role: Mapped[str] = mapped_column(String, default="user")  # user, admin, news_manager

    # Appearance
    theme: Mapped[str] = mapped_column(String, default="default")  # preset name or "custom:{id}"
    font: Mapped[str] = mapped_column(String, default="geist")
    fg_brightness_light: Mapped[float] = mapped_column(Float, default=100)
    bg_brightness_light: Mapped[float] = mapped_column(Float, default=100)
    fg_brightness_dark: Mapped[float] = mapped_column(Float, default=100)
    bg_brightness_dark: Mapped[float] = mapped_column(Float, default=100)
    sidebar_width: Mapped[int] = mapped_column(Integer, default=256)

    widget_settings: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    news_last_seen_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
