from fastapi import APIRouter, Depends, HTTPException, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

import stripe

from dashboard.core.config import get_settings
from dashboard.core.database import get_db
from dashboard.models.user import User
from dashboard.routers.auth import get_current_user
from dashboard.schemas.billing import CheckoutRequest, UrlResponse
from dashboard.services.billing.stripe_service import StripeService, construct_event
from dashboard.services.billing.subscription import PAID_TIERS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stripe", tags=["stripe"])

@router.post("/checkout", response_model=UrlResponse)
async def create_checkout(
    data: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if data.tier not in PAID_TIERS:
        raise HTTPException(status_code=400, detail="Invalid tier")
    try:
        url = await StripeService(db).create_checkout_session(current_user, data.tier)
    except (ValueError, stripe.StripeError) as e:
        logger.error(f"Checkout session failed for user {current_user.id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create checkout session")
    return UrlResponse(url=url)

@router.post("/portal", response_model=UrlResponse)
async def create_portal(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        url = await StripeService(db).create_portal_session(current_user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except stripe.StripeError as e:
        logger.error(f"Portal session failed for user {current_user.id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create portal session")
    return UrlResponse(url=url)

@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
):
    if not stripe_signature:
        raise HTTPException(status_code=400, detail="Missing signature")
    if not get_settings().STRIPE_WEBHOOK_SECRET:
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    payload = await request.body()
    try:
        event = construct_event(payload, stripe_signature)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Stripe webhook signature verification failed: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        await StripeService(db).handle_event(event)
    except Exception as e:
        logger.exception(f"Stripe webhook handler failed for {event.get('type')}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Webhook handler failed")

    return {"received": True}
