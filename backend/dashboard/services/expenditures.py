import calendar
from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard.models.expenditure import ExpenditureSource
from dashboard.schemas.expenditure import (
    ExpenditureSourceCreate,
    ExpenditureSourceResponse,
    ExpenditureSourceUpdate,
    ExpenditureSummary,
)

MONTH_NAMES = list(calendar.month_name)[1:]


def month_name(month: Optional[int]) -> str:
    if month is None or month < 1 or month > 12:
        return ""
    return MONTH_NAMES[month - 1]


def calculate_total_cost(source: ExpenditureSource) -> float:
    return source.base_cost + source.consumption_cost


def calculate_monthly_cost(source: ExpenditureSource) -> float:
    total = calculate_total_cost(source)
    return total / 12 if source.billing_cycle == "yearly" else total


def _billing_date(year: int, month: int, day: int) -> date:
    # short months bill on their last day
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def calculate_next_billing_date(source: ExpenditureSource, today: Optional[date] = None) -> date:
    today = today or date.today()
    day = source.billing_day_of_month

    if source.billing_cycle == "yearly":
        month = source.billing_month or 1
        candidate = _billing_date(today.year, month, day)
        if candidate <= today:
            candidate = _billing_date(today.year + 1, month, day)
        return candidate

    if today.day < day:
        candidate = _billing_date(today.year, today.month, day)
        if candidate > today:
            return candidate
    year, month = (today.year + 1, 1) if today.month == 12 else (today.year, today.month + 1)
    return _billing_date(year, month, day)


def to_response(source: ExpenditureSource, today: Optional[date] = None) -> ExpenditureSourceResponse:
    response = ExpenditureSourceResponse.model_validate(source)
    response.total_cost = calculate_total_cost(source)
    response.monthly_cost = calculate_monthly_cost(source)
    response.next_billing_date = calculate_next_billing_date(source, today)
    response.billing_month_name = month_name(source.billing_month)
    return response


class ExpenditureService:
    """Admin-only cost tracking; callers enforce the admin check."""

    def __init__(self, db: AsyncSession, user_id: int):
        self.db = db
        self.user_id = user_id

    async def get_sources(self) -> List[ExpenditureSource]:
        result = await self.db.execute(
            select(ExpenditureSource)
            .where(ExpenditureSource.user_id == self.user_id)
            .order_by(ExpenditureSource.name)
        )
        return list(result.scalars().all())

    async def get_summary(self) -> ExpenditureSummary:
        sources = await self.get_sources()
        return ExpenditureSummary(
            sources=[to_response(s) for s in sources],
            total_monthly_cost=round(sum(calculate_monthly_cost(s) for s in sources), 2),
        )

    async def get_source(self, source_id: int) -> ExpenditureSource:
        result = await self.db.execute(
            select(ExpenditureSource).where(
                ExpenditureSource.id == source_id, ExpenditureSource.user_id == self.user_id
            )
        )
        source = result.scalar_one_or_none()
        if not source:
            raise ValueError("Expenditure source not found")
        return source

    async def create_source(self, data: ExpenditureSourceCreate) -> ExpenditureSource:
        source = ExpenditureSource(user_id=self.user_id, **data.model_dump())
        self.db.add(source)
        await self.db.commit()
        await self.db.refresh(source)
        return source

    async def update_source(self, source_id: int, data: ExpenditureSourceUpdate) -> ExpenditureSource:
        source = await self.get_source(source_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(source, field, value)
        if source.billing_cycle == "monthly":
            source.billing_month = None
        await self.db.commit()
        await self.db.refresh(source)
        return source

    async def update_consumption_cost(self, source_id: int, consumption_cost: float) -> ExpenditureSource:
        return await self.update_source(source_id, ExpenditureSourceUpdate(consumption_cost=consumption_cost))

    async def delete_source(self, source_id: int) -> None:
        source = await self.get_source(source_id)
        await self.db.delete(source)
        await self.db.commit()
