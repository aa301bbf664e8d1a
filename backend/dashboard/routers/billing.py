from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from dashboard.core.database import get_db
from dashboard.models.user import User
from dashboard.routers.auth import get_current_user
from dashboard.schemas.billing import CreditsInfo, CreditTransactionResponse, PlanResponse, SubscriptionResponse
from dashboard.services.billing.credits import CreditsService
from dashboard.services.billing.subscription import get_plans, get_subscription

router = APIRouter(prefix="/billing", tags=["billing"])

@router.get("/credits", response_model=CreditsInfo)
async def read_credits(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    info = await CreditsService(db).get_credits_info(current_user.id)
    if not info:
        raise HTTPException(status_code=404, detail="Billing not initialized")
    return info

@router.get("/transactions", response_model=List[CreditTransactionResponse])
async def read_transactions(
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await CreditsService(db).get_transactions(current_user.id, limit=limit)

@router.get("/subscription", response_model=SubscriptionResponse)
async def read_subscription(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    subscription = await get_subscription(db, current_user.id)
    if not subscription:
        return SubscriptionResponse(tier="free", status="active")
    return SubscriptionResponse(
        tier=subscription.tier,
        status=subscription.status,
        current_period_start=subscription.current_period_start,
        current_period_end=subscription.current_period_end,
        has_stripe_customer=bool(subscription.stripe_customer_id),
    )

@router.get("/plans", response_model=List[PlanResponse])
async def read_plans():
    return get_plans()
