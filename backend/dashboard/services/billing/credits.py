import math
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from dashboard.models.billing import Subscription, UserCredits, CreditTransaction
from dashboard.schemas.billing import CreditsInfo
from dashboard.services.billing.subscription import (
    TRIAL_CREDITS_CENTS,
    TRIAL_DAYS,
    get_tier_credits,
)
from dashboard.utils.logger import get_logger

logger = get_logger("credits")


def round_cents(amount: float) -> int:
    """Round half up, so 0.5 cents becomes 1."""
    return int(math.floor(amount + 0.5))


def format_credits(cents: int) -> str:
    return f"${cents / 100:.2f}"


def usd_to_cents(usd: float) -> int:
    return round_cents(usd * 100)


class CreditsService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_credits_row(self, user_id: int) -> Optional[UserCredits]:
        result = await self.db.execute(select(UserCredits).where(UserCredits.user_id == user_id))
        return result.scalar_one_or_none()

    def _record(self, user_id: int, amount_cents: int, reason: str, reference_id: Optional[str] = None) -> None:
        self.db.add(CreditTransaction(
            user_id=user_id,
            amount_cents=amount_cents,
            reason=reason,
            reference_id=reference_id,
        ))

    async def initialize_user_billing(self, user_id: int) -> None:
        """New accounts start on a free trialing subscription with trial credits."""
        self.db.add(Subscription(user_id=user_id, tier="free", status="trialing"))
        self.db.add(UserCredits(
            user_id=user_id,
            balance_cents=TRIAL_CREDITS_CENTS,
            trial_ends_at=datetime.utcnow() + timedelta(days=TRIAL_DAYS),
        ))
        self._record(user_id, TRIAL_CREDITS_CENTS, "trial_credit")
        await self.db.commit()
        logger.info(f"Initialized billing for user {user_id}")

    async def get_balance(self, user_id: int) -> int:
        result = await self.db.execute(select(UserCredits.balance_cents).where(UserCredits.user_id == user_id))
        return result.scalar_one_or_none() or 0

    async def _adjust_balance(self, user_id: int, delta_cents: int) -> bool:
        """Relative UPDATE on the credits row. False when the user has no row."""
        result = await self.db.execute(
            update(UserCredits)
            .where(UserCredits.user_id == user_id)
            .values(balance_cents=UserCredits.balance_cents + delta_cents)
        )
        return result.rowcount > 0

    async def can_use_paid_models(self, user_id: int) -> bool:
        return await self.get_balance(user_id) > 0

    async def is_trial_active(self, user_id: int) -> bool:
        row = await self._get_credits_row(user_id)
        if not row or not row.trial_ends_at:
            return False
        return row.trial_ends_at > datetime.utcnow()

    async def get_credits_info(self, user_id: int) -> Optional[CreditsInfo]:
        row = await self._get_credits_row(user_id)
        if not row:
            return None

        now = datetime.utcnow()
        trial_ends_at = row.trial_ends_at
        is_trial_active = trial_ends_at is not None and trial_ends_at > now

        days_until_trial_ends = None
        if trial_ends_at and is_trial_active:
            days_until_trial_ends = math.ceil((trial_ends_at - now).total_seconds() / 86400)

        return CreditsInfo(
            balance_cents=row.balance_cents,
            balance_dollars=row.balance_cents / 100,
            is_trial_active=is_trial_active,
            trial_ends_at=trial_ends_at,
            days_until_trial_ends=days_until_trial_ends,
        )

    async def get_transactions(self, user_id: int, limit: int = 20) -> List[CreditTransaction]:
        result = await self.db.execute(
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def deduct_credits(
        self,
        user_id: int,
        amount_cents: float,
        reason: str,
        reference_id: Optional[str] = None,
    ) -> bool:
        """Usage may take the balance below zero; the next request is then refused upstream."""
        if amount_cents <= 0:
            return True

        amount = round_cents(amount_cents)
        if not await self._adjust_balance(user_id, -amount):
            logger.warning(f"No credits row for user {user_id}, cannot deduct {amount}")
            return False

        self._record(user_id, -amount, reason, reference_id)
        await self.db.commit()
        return True

    async def add_credits(self, user_id: int, amount_cents: int, reason: str) -> bool:
        if amount_cents <= 0:
            return False

        if not await self._adjust_balance(user_id, amount_cents):
            return False

        self._record(user_id, amount_cents, reason)
        await self.db.commit()
        return True

    async def set_balance(
        self,
        user_id: int,
        amount_cents: int,
        reason: str,
        clear_trial: bool = False,
    ) -> None:
        """Overwrite the balance, creating the credits row if needed. The ledger records the granted amount."""
        row = await self._get_credits_row(user_id)
        if not row:
            row = UserCredits(user_id=user_id, balance_cents=0)
            self.db.add(row)

        row.balance_cents = amount_cents
        if clear_trial:
            row.trial_ends_at = None
        self._record(user_id, amount_cents, reason)
        await self.db.commit()

    async def reset_monthly_credits(self, user_id: int) -> None:
        result = await self.db.execute(select(Subscription.tier).where(Subscription.user_id == user_id))
        tier = result.scalar_one_or_none() or "free"
        await self.set_balance(user_id, get_tier_credits(tier), "monthly_credit")

    async def handle_trial_expiry(self, user_id: int) -> None:
        result = await self.db.execute(select(Subscription).where(Subscription.user_id == user_id))
        subscription = result.scalar_one_or_none()
        if subscription and subscription.status == "trialing":
            subscription.status = "active"
        await self.set_balance(user_id, get_tier_credits("free"), "trial_ended_free_credit", clear_trial=True)
