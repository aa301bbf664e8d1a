import asyncio
import json
from datetime import datetime
from typing import Any, Dict, Optional

import stripe
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from dashboard.core.config import get_settings
from dashboard.models.billing import Subscription
from dashboard.models.user import User
from dashboard.services.billing.credits import CreditsService
from dashboard.services.billing.subscription import PAID_TIERS, get_tier_credits
from dashboard.utils.logger import get_logger

logger = get_logger("stripe")


def _configure_stripe() -> None:
    settings = get_settings()
    if not settings.STRIPE_SECRET_KEY:
        raise ValueError("STRIPE_SECRET_KEY is not configured")
    stripe.api_key = settings.STRIPE_SECRET_KEY


def get_price_id(tier: str) -> str:
    settings = get_settings()
    price_ids = {
        "pro": settings.STRIPE_PRICE_PRO_MONTHLY,
        "pro_plus": settings.STRIPE_PRICE_PRO_PLUS_MONTHLY,
    }
    price_id = price_ids.get(tier)
    if not price_id:
        raise ValueError(f"STRIPE_PRICE_{tier.upper()}_MONTHLY is not configured")
    return price_id


def get_tier_from_price_id(price_id: Optional[str]) -> str:
    settings = get_settings()
    if price_id and price_id == settings.STRIPE_PRICE_PRO_MONTHLY:
        return "pro"
    if price_id and price_id == settings.STRIPE_PRICE_PRO_PLUS_MONTHLY:
        return "pro_plus"
    return "free"


def construct_event(payload: bytes, signature: str) -> Dict[str, Any]:
    """Verify the webhook signature and return the event as a plain dict.

    Raises stripe.SignatureVerificationError or ValueError.
    """
    settings = get_settings()
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise ValueError("STRIPE_WEBHOOK_SECRET is not configured")

    body = payload.decode("utf-8")
    stripe.WebhookSignature.verify_header(
        body,
        signature,
        settings.STRIPE_WEBHOOK_SECRET,
        stripe.Webhook.DEFAULT_TOLERANCE,
    )
    event = json.loads(body)
    if not isinstance(event, dict):
        raise ValueError("Webhook payload is not an event object")
    return event


def _from_timestamp(value: Optional[int]) -> Optional[datetime]:
    return datetime.utcfromtimestamp(value) if value else None


class StripeService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.credits = CreditsService(db)

    async def _get_subscription_by_user(self, user_id: int) -> Optional[Subscription]:
        result = await self.db.execute(select(Subscription).where(Subscription.user_id == user_id))
        return result.scalar_one_or_none()

    async def _get_subscription_by_stripe_id(self, stripe_subscription_id: str) -> Optional[Subscription]:
        result = await self.db.execute(
            select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
        )
        return result.scalar_one_or_none()

    async def get_or_create_customer(self, user: User) -> str:
        subscription = await self._get_subscription_by_user(user.id)
        if subscription and subscription.stripe_customer_id:
            return subscription.stripe_customer_id

        _configure_stripe()
        customer = await asyncio.to_thread(
            stripe.Customer.create,
            email=user.email,
            metadata={"user_id": str(user.id)},
        )

        if not subscription:
            subscription = Subscription(user_id=user.id, tier="free", status="active")
            self.db.add(subscription)
        subscription.stripe_customer_id = customer.id
        await self.db.commit()
        logger.info(f"Created Stripe customer {customer.id} for user {user.id}")
        return customer.id

    async def create_checkout_session(self, user: User, tier: str) -> str:
        if tier not in PAID_TIERS:
            raise ValueError("Invalid tier")

        settings = get_settings()
        price_id = get_price_id(tier)
        customer_id = await self.get_or_create_customer(user)
        base_url = settings.SITE_URL.rstrip("/")
        metadata = {"user_id": str(user.id), "tier": tier}

        session = await asyncio.to_thread(
            stripe.checkout.Session.create,
            customer=customer_id,
            mode="subscription",
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=f"{base_url}/account/billing?success=true",
            cancel_url=f"{base_url}/pricing?canceled=true",
            subscription_data={"metadata": metadata},
            automatic_tax={"enabled": True},
            customer_update={"address": "auto"},
            metadata=metadata,
        )

        url = session.url
        if not url:
            raise ValueError("Failed to create checkout session URL")
        return url

    async def create_portal_session(self, user: User) -> str:
        subscription = await self._get_subscription_by_user(user.id)
        if not subscription or not subscription.stripe_customer_id:
            raise ValueError("No Stripe customer found for this user")

        _configure_stripe()
        settings = get_settings()
        session = await asyncio.to_thread(
            stripe.billing_portal.Session.create,
            customer=subscription.stripe_customer_id,
            return_url=f"{settings.SITE_URL.rstrip('/')}/account/billing",
        )
        return session.url

    # ----------------------------
    # Webhook handlers
    # ----------------------------

    async def handle_event(self, event: Dict[str, Any]) -> None:
        """Dispatch a verified event. Payloads are plain dicts decoded from the webhook body."""
        event_type = event.get("type")
        obj = event.get("data", {}).get("object", {})

        if event_type == "checkout.session.completed":
            await self.handle_checkout_complete(obj)
        elif event_type == "customer.subscription.updated":
            await self.handle_subscription_update(obj)
        elif event_type == "customer.subscription.deleted":
            await self.handle_subscription_deleted(obj)
        elif event_type == "invoice.paid":
            await self.handle_invoice_paid(obj)
        else:
            logger.info(f"Unhandled Stripe event: {event_type}")

    async def handle_checkout_complete(self, session: Dict[str, Any]) -> None:
        metadata = session.get("metadata") or {}
        user_id = metadata.get("user_id")
        tier = metadata.get("tier")
        if not user_id or not tier:
            logger.error("Missing user_id or tier in checkout session metadata")
            return

        user_id = int(user_id)
        subscription = await self._get_subscription_by_user(user_id)
        if not subscription:
            subscription = Subscription(user_id=user_id)
            self.db.add(subscription)
        subscription.stripe_subscription_id = session.get("subscription")
        subscription.tier = tier
        subscription.status = "active"

        await self.credits.set_balance(user_id, get_tier_credits(tier), "subscription_upgrade", clear_trial=True)
        logger.info(f"User {user_id} upgraded to {tier}")

    async def handle_subscription_update(self, stripe_subscription: Dict[str, Any]) -> None:
        metadata = stripe_subscription.get("metadata") or {}
        if not metadata.get("user_id"):
            logger.error("Missing user_id in subscription metadata")
            return

        subscription = await self._get_subscription_by_stripe_id(stripe_subscription.get("id"))
        if not subscription:
            logger.error(f"Subscription not found: {stripe_subscription.get('id')}")
            return

        items = (stripe_subscription.get("items") or {}).get("data") or []
        price_id = items[0].get("price", {}).get("id") if items else None

        status = stripe_subscription.get("status")
        subscription.tier = get_tier_from_price_id(price_id)
        subscription.status = status if status in ("active", "past_due") else "canceled"

        period_start = _from_timestamp(stripe_subscription.get("current_period_start"))
        period_end = _from_timestamp(stripe_subscription.get("current_period_end"))
        if period_start:
            subscription.current_period_start = period_start
        if period_end:
            subscription.current_period_end = period_end

        await self.db.commit()

    async def handle_subscription_deleted(self, stripe_subscription: Dict[str, Any]) -> None:
        subscription = await self._get_subscription_by_stripe_id(stripe_subscription.get("id"))
        if not subscription:
            logger.error(f"Subscription not found: {stripe_subscription.get('id')}")
            return

        subscription.tier = "free"
        subscription.status = "canceled"
        subscription.stripe_subscription_id = None
        subscription.current_period_start = None
        subscription.current_period_end = None

        await self.credits.set_balance(
            subscription.user_id,
            get_tier_credits("free"),
            "subscription_canceled_free_credit",
        )

    async def handle_invoice_paid(self, invoice: Dict[str, Any]) -> None:
        if invoice.get("billing_reason") != "subscription_cycle":
            return

        subscription_id = invoice.get("subscription")
        if not subscription_id:
            details = (invoice.get("parent") or {}).get("subscription_details") or {}
            subscription_id = details.get("subscription")
        if not subscription_id:
            return

        subscription = await self._get_subscription_by_stripe_id(subscription_id)
        if not subscription:
            logger.error(f"Subscription not found for invoice: {subscription_id}")
            return

        await self.credits.set_balance(subscription.user_id, get_tier_credits(subscription.tier), "monthly_credit")
