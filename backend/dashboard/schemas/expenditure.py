from pydantic import BaseModel, Field, model_validator
from datetime import date, datetime
from typing import List, Literal, Optional

BillingCycle = Literal["monthly", "yearly"]

class ExpenditureSourceCreate(BaseModel):
    name: str
    base_cost: float = Field(ge=0)
    billing_cycle: BillingCycle = "monthly"
    billing_day_of_month: int = Field(default=1, ge=1, le=31)
    billing_month: Optional[int] = Field(default=None, ge=1, le=12)
    consumption_cost: float = Field(default=0, ge=0)
    details_url: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode='after')
    def check_billing_month(self):
        if self.billing_cycle == "monthly":
            self.billing_month = None
        return self

class ExpenditureSourceUpdate(BaseModel):
    name: Optional[str] = None
    base_cost: Optional[float] = Field(default=None, ge=0)
    billing_cycle: Optional[BillingCycle] = None
    billing_day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    billing_month: Optional[int] = Field(default=None, ge=1, le=12)
    consumption_cost: Optional[float] = Field(default=None, ge=0)
    details_url: Optional[str] = None
    notes: Optional[str] = None

class ConsumptionCostUpdate(BaseModel):
    consumption_cost: float = Field(ge=0)

class ExpenditureSourceResponse(BaseModel):
    id: int
    name: str
    base_cost: float
    billing_cycle: BillingCycle
    billing_day_of_month: int
    billing_month: Optional[int] = None
    consumption_cost: float
    details_url: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    total_cost: float = 0
    monthly_cost: float = 0
    next_billing_date: Optional[date] = None
    billing_month_name: str = ""

    class Config:
        from_attributes = True

class ExpenditureSummary(BaseModel):
    sources: List[ExpenditureSourceResponse]
    total_monthly_cost: float
