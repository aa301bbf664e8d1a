import hashlib
import hmac
import json
import time

import pytest
import stripe
from unittest.mock import patch
from sqlalchemy import select

from dashboard.core.config import Settings
from dashboard.models.billing import Subscription, UserCredits
from dashboard.services.billing.credits import CreditsService
from dashboard.services.billing.stripe_service import StripeService, get_tier_from_price_id

from conftest import auth_headers


@pytest.fixture
async def billing_user(db, user):
    await CreditsService(db).initialize_user_billing(user.id)
    return user


def test_tier_from_price_id_falls_back_to_free():
    settings = Settings(STRIPE_PRICE_PRO_MONTHLY="price_pro", STRIPE_PRICE_PRO_PLUS_MONTHLY="price_plus")
    with patch("dashboard.services.billing.stripe_service.get_settings", return_value=settings):
        assert get_tier_from_price_id("price_pro") == "pro"
        assert get_tier_from_price_id("price_plus") == "pro_plus"
        assert get_tier_from_price_id("price_other") == "free"
        assert get_tier_from_price_id(None) == "free"


@pytest.mark.asyncio
async def test_checkout_completed_upgrades_user(db, billing_user):
    await StripeService(db).handle_event({
        "type": "checkout.session.completed",
        "data": {"object": {
            "subscription": "sub_123",
            "metadata": {"user_id": str(billing_user.id), "tier": "pro"},
        }},
    })

    subscription = (await db.execute(select(Subscription).where(Subscription.user_id == billing_user.id))).scalar_one()
    credits = (await db.execute(select(UserCredits).where(UserCredits.user_id == billing_user.id))).scalar_one()
    assert subscription.tier == "pro"
    assert subscription.status == "active"
    assert subscription.stripe_subscription_id == "sub_123"
    assert credits.balance_cents == 1500
    assert credits.trial_ends_at is None


@pytest.mark.asyncio
async def test_subscription_deleted_downgrades_to_free(db, billing_user):
    subscription = (await db.execute(select(Subscription).where(Subscription.user_id == billing_user.id))).scalar_one()
    subscription.tier = "pro_plus"
    subscription.status = "active"
    subscription.stripe_subscription_id = "sub_456"
    await db.commit()

    await StripeService(db).handle_event({
        "type": "customer.subscription.deleted",
        "data": {"object": {"id": "sub_456"}},
    })

    await db.refresh(subscription)
    assert subscription.tier == "free"
    assert subscription.status == "canceled"
    assert subscription.stripe_subscription_id is None
    assert await CreditsService(db).get_balance(billing_user.id) == 100


@pytest.mark.asyncio
async def test_invoice_paid_only_resets_on_cycle(db, billing_user):
    subscription = (await db.execute(select(Subscription).where(Subscription.user_id == billing_user.id))).scalar_one()
    subscription.tier = "pro"
    subscription.stripe_subscription_id = "sub_789"
    await db.commit()

    service = StripeService(db)
    await service.handle_event({
        "type": "invoice.paid",
        "data": {"object": {"billing_reason": "subscription_create", "subscription": "sub_789"}},
    })
    assert await CreditsService(db).get_balance(billing_user.id) == 1000

    await service.handle_event({
        "type": "invoice.paid",
        "data": {"object": {"billing_reason": "subscription_cycle", "subscription": "sub_789"}},
    })
    assert await CreditsService(db).get_balance(billing_user.id) == 1500


@pytest.mark.asyncio
async def test_webhook_requires_signature(client):
    response = await client.post("/api/stripe/webhook", content=b"{}")
    assert response.status_code == 400
    assert response.json()["detail"] == "Missing signature"


@pytest.mark.asyncio
async def test_webhook_rejects_invalid_signature(client):
    settings = Settings(STRIPE_WEBHOOK_SECRET="whsec_test")
    error = stripe.SignatureVerificationError("bad signature", "t=1,v1=abc")
    with patch("dashboard.routers.stripe.get_settings", return_value=settings), \
         patch("dashboard.routers.stripe.construct_event", side_effect=error):
        response = await client.post("/api/stripe/webhook", content=b"{}", headers={"stripe-signature": "t=1,v1=abc"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"


@pytest.mark.asyncio
async def test_webhook_acknowledges_event(client):
    settings = Settings(STRIPE_WEBHOOK_SECRET="whsec_test")
    event = {"type": "payment_intent.created", "data": {"object": {}}}
    with patch("dashboard.routers.stripe.get_settings", return_value=settings), \
         patch("dashboard.routers.stripe.construct_event", return_value=event):
        response = await client.post("/api/stripe/webhook", content=b"{}", headers={"stripe-signature": "t=1,v1=abc"})

    assert response.status_code == 200
    assert response.json() == {"received": True}


@pytest.mark.asyncio
async def test_webhook_handler_failure_returns_500(client):
    settings = Settings(STRIPE_WEBHOOK_SECRET="whsec_test")
    event = {"type": "checkout.session.completed", "data": {"object": {}}}
    with patch("dashboard.routers.stripe.get_settings", return_value=settings), \
         patch("dashboard.routers.stripe.construct_event", return_value=event), \
         patch.object(StripeService, "handle_event", side_effect=RuntimeError("db down")):
        response = await client.post("/api/stripe/webhook", content=b"{}", headers={"stripe-signature": "t=1,v1=abc"})

    assert response.status_code == 500


@pytest.mark.asyncio
async def test_checkout_rejects_free_tier(client, user):
    response = await client.post("/api/stripe/checkout", json={"tier": "free"}, headers=auth_headers(user))
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid tier"


WEBHOOK_SECRET = "whsec_test"


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def checkout_completed_payload(user_id: int) -> str:
    return json.dumps({
        "id": "evt_1",
        "object": "event",
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": "cs_1",
            "object": "checkout.session",
            "subscription": "sub_signed",
            "metadata": {"user_id": str(user_id), "tier": "pro_plus"},
        }},
    })


@pytest.mark.asyncio
async def test_signed_webhook_upgrades_user(client, db, billing_user):
    settings = Settings(STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET)
    payload = checkout_completed_payload(billing_user.id)
    with patch("dashboard.routers.stripe.get_settings", return_value=settings), \
         patch("dashboard.services.billing.stripe_service.get_settings", return_value=settings):
        response = await client.post(
            "/api/stripe/webhook",
            content=payload.encode(),
            headers={"stripe-signature": sign_payload(payload)},
        )

    assert response.status_code == 200
    assert response.json() == {"received": True}

    subscription = (await db.execute(
        select(Subscription)
        .where(Subscription.user_id == billing_user.id)
        .execution_options(populate_existing=True)
    )).scalar_one()
    assert subscription.tier == "pro_plus"
    assert subscription.stripe_subscription_id == "sub_signed"
    assert await CreditsService(db).get_balance(billing_user.id) == 3500


@pytest.mark.asyncio
async def test_signed_webhook_rejects_tampered_body(client, db, billing_user):
    settings = Settings(STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET)
    payload = checkout_completed_payload(billing_user.id)
    tampered = payload.replace("pro_plus", "pro")
    with patch("dashboard.routers.stripe.get_settings", return_value=settings), \
         patch("dashboard.services.billing.stripe_service.get_settings", return_value=settings):
        response = await client.post(
            "/api/stripe/webhook",
            content=tampered.encode(),
            headers={"stripe-signature": sign_payload(payload)},
        )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"
    assert await CreditsService(db).get_balance(billing_user.id) == 1000


@pytest.mark.asyncio
async def test_checkout_session_url_from_stripe_object(db, billing_user):
    settings = Settings(
        STRIPE_SECRET_KEY="sk_test_123",
        STRIPE_PRICE_PRO_MONTHLY="price_pro",
        SITE_URL="http://localhost:3000",
    )
    customer = stripe.Customer.construct_from({"id": "cus_1", "object": "customer"}, "sk_test_123")
    session = stripe.checkout.Session.construct_from(
        {"id": "cs_1", "object": "checkout.session", "url": "https://checkout.stripe.com/c/pay/cs_1"},
        "sk_test_123",
    )
    with patch("dashboard.services.billing.stripe_service.get_settings", return_value=settings), \
         patch.object(stripe.Customer, "create", return_value=customer), \
         patch.object(stripe.checkout.Session, "create", return_value=session) as create_session:
        url = await StripeService(db).create_checkout_session(billing_user, "pro")

    assert url == "https://checkout.stripe.com/c/pay/cs_1"
    assert create_session.call_args.kwargs["customer"] == "cus_1"
    assert create_session.call_args.kwargs["line_items"] == [{"price": "price_pro", "quantity": 1}]
    subscription = (await db.execute(
        select(Subscription)
        .where(Subscription.user_id == billing_user.id)
        .execution_options(populate_existing=True)
    )).scalar_one()
    assert subscription.stripe_customer_id == "cus_1"
