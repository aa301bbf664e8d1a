from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from dashboard.models.billing import CreditTransaction, Subscription, UserCredits
from dashboard.services.billing.credits import CreditsService, format_credits, round_cents, usd_to_cents
from dashboard.services.billing.subscription import get_plans, get_tier_credits, get_user_tier


@pytest.fixture
async def billing_user(db, user):
    await CreditsService(db).initialize_user_billing(user.id)
    return user


def test_rounding_helpers():
    assert round_cents(0.5) == 1
    assert round_cents(2.4) == 2
    assert usd_to_cents(0.125) == 13
    assert format_credits(1234) == "$12.34"


def test_tier_tables():
    assert get_tier_credits("pro") == 1500
    assert get_tier_credits("unknown") == 100
    assert [p["price_usd"] for p in get_plans()] == [0, 10, 20]


@pytest.mark.asyncio
async def test_initialize_user_billing(db, billing_user):
    subscription = (await db.execute(select(Subscription).where(Subscription.user_id == billing_user.id))).scalar_one()
    assert subscription.tier == "free"
    assert subscription.status == "trialing"

    info = await CreditsService(db).get_credits_info(billing_user.id)
    assert info.balance_cents == 1000
    assert info.balance_dollars == 10.0
    assert info.is_trial_active
    assert info.days_until_trial_ends == 7

    transactions = await CreditsService(db).get_transactions(billing_user.id)
    assert [(t.amount_cents, t.reason) for t in transactions] == [(1000, "trial_credit")]
    assert await get_user_tier(db, billing_user.id) == "free"


@pytest.mark.asyncio
async def test_deduct_credits_can_go_negative(db, billing_user):
    service = CreditsService(db)

    assert await service.deduct_credits(billing_user.id, 0, "chat_message") is True
    assert await service.deduct_credits(billing_user.id, 1200.4, "chat_message", reference_id="42") is True

    assert await service.get_balance(billing_user.id) == -200
    assert not await service.can_use_paid_models(billing_user.id)
    latest = (await service.get_transactions(billing_user.id, limit=1))[0]
    assert latest.amount_cents == -1200
    assert latest.reference_id == "42"


@pytest.mark.asyncio
async def test_interleaved_deductions_are_not_lost(db, session_factory, billing_user):
    async with session_factory() as first, session_factory() as second:
        # both requests have already loaded the row before either writes
        assert (await CreditsService(first).get_credits_info(billing_user.id)).balance_cents == 1000
        assert (await CreditsService(second).get_credits_info(billing_user.id)).balance_cents == 1000

        assert await CreditsService(first).deduct_credits(billing_user.id, 300, "chat_message") is True
        assert await CreditsService(second).deduct_credits(billing_user.id, 200, "chat_message") is True
        assert await CreditsService(second).add_credits(billing_user.id, 50, "bonus") is True

    assert await CreditsService(db).get_balance(billing_user.id) == 550
    amounts = [t.amount_cents for t in await CreditsService(db).get_transactions(billing_user.id)]
    assert sorted(amounts) == [-300, -200, 50, 1000]


@pytest.mark.asyncio
async def test_deduct_and_add_without_credits_row(db, user):
    service = CreditsService(db)
    assert await service.deduct_credits(user.id, 10, "chat_message") is False
    assert await service.add_credits(user.id, 10, "bonus") is False


@pytest.mark.asyncio
async def test_add_credits_rejects_non_positive(db, billing_user):
    service = CreditsService(db)
    assert await service.add_credits(billing_user.id, 0, "bonus") is False
    assert await service.add_credits(billing_user.id, 250, "bonus") is True
    assert await service.get_balance(billing_user.id) == 1250


@pytest.mark.asyncio
async def test_handle_trial_expiry(db, billing_user):
    service = CreditsService(db)
    await service.handle_trial_expiry(billing_user.id)

    subscription = (await db.execute(select(Subscription).where(Subscription.user_id == billing_user.id))).scalar_one()
    credits = (await db.execute(select(UserCredits).where(UserCredits.user_id == billing_user.id))).scalar_one()
    assert subscription.status == "active"
    assert credits.balance_cents == 100
    assert credits.trial_ends_at is None

    reasons = (await db.execute(select(CreditTransaction.reason))).scalars().all()
    assert "trial_ended_free_credit" in reasons


@pytest.mark.asyncio
async def test_reset_monthly_credits_uses_tier(db, billing_user):
    subscription = (await db.execute(select(Subscription).where(Subscription.user_id == billing_user.id))).scalar_one()
    subscription.tier = "pro_plus"
    await db.commit()

    await CreditsService(db).reset_monthly_credits(billing_user.id)
    assert await CreditsService(db).get_balance(billing_user.id) == 3500


@pytest.mark.asyncio
async def test_expired_trial_reports_inactive(db, billing_user):
    credits = (await db.execute(select(UserCredits).where(UserCredits.user_id == billing_user.id))).scalar_one()
    credits.trial_ends_at = datetime.utcnow() - timedelta(hours=1)
    await db.commit()

    info = await CreditsService(db).get_credits_info(billing_user.id)
    assert info.is_trial_active is False
    assert info.days_until_trial_ends is None
