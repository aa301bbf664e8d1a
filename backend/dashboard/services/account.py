from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard.core.security import (
    PASSWORD_RULE_MESSAGE,
    get_password_hash,
    is_valid_password,
    verify_password,
)
from dashboard.models.user import User
from dashboard.schemas.account import (
    PasswordChangeRequest,
    ProfileUpdate,
    UserCreate,
    SIDEBAR_MIN_WIDTH,
    SIDEBAR_MAX_WIDTH,
)
from dashboard.services.billing.credits import CreditsService
from dashboard.utils.logger import get_logger

logger = get_logger("account")


def clamp_sidebar_width(width: int) -> int:
    return max(SIDEBAR_MIN_WIDTH, min(SIDEBAR_MAX_WIDTH, width))


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def register_user(db: AsyncSession, data: UserCreate) -> User:
    """Creates the account and starts its trial. Raises ValueError for a taken email."""
    if await get_user_by_email(db, data.email):
        raise ValueError("Email already registered")

    user = User(
        email=data.email,
        hashed_password=get_password_hash(data.password),
        display_name=data.display_name,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    await CreditsService(db).initialize_user_billing(user.id)
    await db.refresh(user)
    logger.info(f"Registered user {user.id}")
    return user


async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
    user = await get_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


async def change_password(db: AsyncSession, user: User, data: PasswordChangeRequest) -> None:
    if not verify_password(data.current_password, user.hashed_password):
        raise ValueError("Current password is incorrect")
    if data.new_password != data.confirm_password:
        raise ValueError("Passwords do not match")
    if not is_valid_password(data.new_password):
        raise ValueError(PASSWORD_RULE_MESSAGE)

    user.hashed_password = get_password_hash(data.new_password)
    await db.commit()
    logger.info(f"Password updated for user {user.id}")


async def update_profile(db: AsyncSession, user: User, data: ProfileUpdate) -> User:
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is None and field != "display_name":
            continue
        setattr(user, field, value)
    await db.commit()
    await db.refresh(user)
    return user


async def update_sidebar_width(db: AsyncSession, user: User, width: int) -> int:
    user.sidebar_width = clamp_sidebar_width(width)
    await db.commit()
    return user.sidebar_width


async def set_user_role(db: AsyncSession, user_id: int, role: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        return None
    user.role = role
    await db.commit()
    await db.refresh(user)
    logger.info(f"User {user_id} role set to {role}")
    return user
