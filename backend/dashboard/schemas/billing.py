from pydantic import BaseModel
from typing import Optional
from datetime import datetime

class CreditsInfo(BaseModel):
    balance_cents: int
    balance_dollars: float
    is_trial_active: bool
    trial_ends_at: Optional[datetime] = None
    days_until_trial_ends: Optional[int] = None

class CreditTransactionResponse(BaseModel):
    id: int
    amount_cents: int
    reason: str
    reference_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class SubscriptionResponse(BaseModel):
    tier: str
    status: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    has_stripe_customer: bool = False

class PlanResponse(BaseModel):
    tier: str
    name: str
    price_usd: int
    monthly_credits_cents: int

class CheckoutRequest(BaseModel):
    tier: str

class UrlResponse(BaseModel):
    url: str
