from typing import Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from dashboard.models.billing import Subscription

SUBSCRIPTION_TIERS = ("free", "pro", "pro_plus")
PAID_TIERS = ("pro", "pro_plus")

# Monthly credit allowance per tier, in cents
TIER_CREDITS: Dict[str, int] = {
    "free": 100,
    "pro": 1500,
    "pro_plus": 3500,
}

# Monthly price in USD
TIER_PRICING: Dict[str, int] = {
    "free": 0,
    "pro": 10,
    "pro_plus": 20,
}

TIER_NAMES: Dict[str, str] = {
    "free": "Free",
    "pro": "Pro",
    "pro_plus": "Pro+",
}

TRIAL_CREDITS_CENTS = 1000
TRIAL_DAYS = 7


def get_tier_credits(tier: str) -> int:
    return TIER_CREDITS.get(tier, TIER_CREDITS["free"])


def get_plans() -> list:
    return [
        {
            "tier": tier,
            "name": TIER_NAMES[tier],
            "price_usd": TIER_PRICING[tier],
            "monthly_credits_cents": TIER_CREDITS[tier],
        }
        for tier in SUBSCRIPTION_TIERS
    ]


async def get_subscription(db: AsyncSession, user_id: int) -> Optional[Subscription]:
    result = await db.execute(select(Subscription).where(Subscription.user_id == user_id))
    return result.scalar_one_or_none()


async def get_user_tier(db: AsyncSession, user_id: int) -> str:
    subscription = await get_subscription(db, user_id)
    return subscription.tier if subscription else "free"
