from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, ForeignKey, DateTime, BigInteger, UniqueConstraint
from datetime import datetime
from typing import Optional
from dashboard.core.database import Base

class GitHubAccount(Base):
    __tablename__ = "github_accounts"
    __table_args__ = (UniqueConstraint("user_id", "github_user_id", name="uq_github_accounts_user_github"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    github_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    github_username: Mapped[str] = mapped_column(String, nullable=False)
    avatar_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # "Personal", "Account 2", or whatever the user renames it to
    account_label: Mapped[str] = mapped_column(String, default="Personal")

    access_token: Mapped[str] = mapped_column(String, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
