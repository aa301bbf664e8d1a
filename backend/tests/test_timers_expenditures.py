from datetime import date, datetime, timedelta

import pytest

from dashboard.models.expenditure import ExpenditureSource
from dashboard.models.timer import Timer
from dashboard.schemas.expenditure import ExpenditureSourceCreate, ExpenditureSourceUpdate
from dashboard.schemas.timer import TimerCreate, TimerUpdate
from dashboard.services.expenditures import (
    ExpenditureService,
    calculate_monthly_cost,
    calculate_next_billing_date,
    month_name,
)
from dashboard.services.timers import (
    TimerService,
    format_time,
    parse_time,
    progress,
    remaining_from_end_time,
)

from conftest import auth_headers


def source(**kwargs) -> ExpenditureSource:
    values = {"name": "Hosting", "base_cost": 10.0, "consumption_cost": 2.0,
              "billing_cycle": "monthly", "billing_day_of_month": 15, "billing_month": None}
    values.update(kwargs)
    return ExpenditureSource(**values)


def test_format_time():
    assert format_time(65) == "1:05"
    assert format_time(3600) == "1:00:00"
    assert format_time(0) == "0:00"


def test_parse_time():
    assert parse_time("5:00") == 300
    assert parse_time("1:02:03") == 3723
    assert parse_time("1:60") is None
    assert parse_time("90") is None
    assert parse_time("-1:30") is None
    assert parse_time("a:bc") is None


def test_remaining_and_progress():
    now = datetime(2025, 1, 1, 12, 0, 0)
    assert remaining_from_end_time(now + timedelta(seconds=90), now) == 90
    assert remaining_from_end_time(now - timedelta(seconds=5), now) == 0

    timer = Timer(duration_seconds=200, remaining_seconds=50)
    assert progress(timer) == 75.0


@pytest.mark.asyncio
async def test_timer_lifecycle(db, user):
    service = TimerService(db, user.id)
    first = await service.create_timer(TimerCreate(name="Tea", duration_seconds=180))
    second = await service.create_timer(TimerCreate(name="Focus", duration_seconds=1500))
    assert (first.display_order, second.display_order) == (0, 1)
    assert first.remaining_seconds == 180

    started = await service.start(first.id)
    assert started.state == "running"
    assert started.end_time is not None

    with pytest.raises(ValueError, match="running"):
        await service.update_timer(first.id, TimerUpdate(duration_seconds=60))

    paused = await service.pause(first.id)
    assert paused.state == "paused"
    assert paused.end_time is None
    assert 0 < paused.remaining_seconds <= 180

    completed = await service.complete(first.id)
    assert (completed.state, completed.remaining_seconds) == ("completed", 0)

    restarted = await service.start(first.id)
    assert restarted.remaining_seconds == 180

    reset = await service.reset(first.id)
    assert (reset.state, reset.remaining_seconds) == ("stopped", 180)


@pytest.mark.asyncio
async def test_duration_change_resets_timer(db, user):
    service = TimerService(db, user.id)
    timer = await service.create_timer(TimerCreate(name="Tea", duration_seconds=180))
    await service.start(timer.id)
    await service.pause(timer.id)

    updated = await service.update_timer(timer.id, TimerUpdate(duration_seconds=600))
    assert (updated.state, updated.remaining_seconds, updated.duration_seconds) == ("stopped", 600, 600)


@pytest.mark.asyncio
async def test_expired_running_timer_completes_on_read(db, user):
    service = TimerService(db, user.id)
    timer = await service.create_timer(TimerCreate(name="Eggs", duration_seconds=300))
    timer.state = "running"
    timer.end_time = datetime.utcnow() - timedelta(seconds=1)
    await db.commit()

    [synced] = await service.get_timers()
    assert synced.state == "completed"
    assert synced.remaining_seconds == 0


@pytest.mark.asyncio
async def test_reorder_timers(db, user):
    service = TimerService(db, user.id)
    a = await service.create_timer(TimerCreate(name="A", duration_seconds=60))
    b = await service.create_timer(TimerCreate(name="B", duration_seconds=60))
    c = await service.create_timer(TimerCreate(name="C", duration_seconds=60))

    ordered = await service.reorder([c.id, a.id, b.id])
    assert [t.name for t in ordered] == ["C", "A", "B"]


@pytest.mark.asyncio
async def test_timer_routes(client, user):
    headers = auth_headers(user)
    created = await client.post("/api/timers", headers=headers, json={"name": "Tea", "duration_seconds": 120})
    timer_id = created.json()["id"]

    started = await client.post(f"/api/timers/{timer_id}/start", headers=headers)
    assert started.json()["state"] == "running"

    unknown = await client.post(f"/api/timers/{timer_id}/explode", headers=headers)
    assert unknown.status_code == 404

    missing = await client.patch("/api/timers/999", headers=headers, json={"name": "x"})
    assert missing.status_code == 404

    presets = await client.get("/api/timers/presets")
    assert [p["seconds"] for p in presets.json()] == [300, 900, 1800, 3600]


def test_monthly_cost():
    assert calculate_monthly_cost(source()) == 12.0
    assert calculate_monthly_cost(source(billing_cycle="yearly", base_cost=120.0, consumption_cost=0.0)) == 10.0


def test_next_billing_date_monthly():
    assert calculate_next_billing_date(source(), date(2025, 3, 10)) == date(2025, 3, 15)
    assert calculate_next_billing_date(source(), date(2025, 3, 15)) == date(2025, 4, 15)
    assert calculate_next_billing_date(source(), date(2025, 12, 20)) == date(2026, 1, 15)


def test_next_billing_date_clamps_short_months():
    end_of_month = source(billing_day_of_month=31)
    assert calculate_next_billing_date(end_of_month, date(2025, 1, 31)) == date(2025, 2, 28)
    assert calculate_next_billing_date(end_of_month, date(2024, 2, 10)) == date(2024, 2, 29)


def test_next_billing_date_yearly():
    yearly = source(billing_cycle="yearly", billing_month=6, billing_day_of_month=1)
    assert calculate_next_billing_date(yearly, date(2025, 3, 1)) == date(2025, 6, 1)
    assert calculate_next_billing_date(yearly, date(2025, 6, 1)) == date(2026, 6, 1)


def test_month_name():
    assert month_name(1) == "January"
    assert month_name(None) == ""
    assert month_name(13) == ""


def test_monthly_sources_drop_billing_month():
    data = ExpenditureSourceCreate(name="CI", base_cost=5, billing_cycle="monthly", billing_month=4)
    assert data.billing_month is None


@pytest.mark.asyncio
async def test_expenditure_summary(db, admin):
    service = ExpenditureService(db, admin.id)
    await service.create_source(ExpenditureSourceCreate(name="VPS", base_cost=20))
    domain = await service.create_source(ExpenditureSourceCreate(
        name="Domain", base_cost=12, billing_cycle="yearly", billing_month=3,
    ))

    await service.update_consumption_cost(domain.id, 6)
    summary = await service.get_summary()

    assert [s.name for s in summary.sources] == ["Domain", "VPS"]
    assert summary.sources[0].total_cost == 18
    assert summary.sources[0].billing_month_name == "March"
    assert summary.total_monthly_cost == 21.5

    switched = await service.update_source(domain.id, ExpenditureSourceUpdate(billing_cycle="monthly"))
    assert switched.billing_month is None


@pytest.mark.asyncio
async def test_expenditure_routes_are_admin_only(client, user, admin):
    forbidden = await client.get("/api/expenditures", headers=auth_headers(user))
    assert forbidden.status_code == 403

    created = await client.post("/api/expenditures", headers=auth_headers(admin), json={"name": "VPS", "base_cost": 20})
    assert created.status_code == 200
    assert created.json()["monthly_cost"] == 20

    missing = await client.delete("/api/expenditures/999", headers=auth_headers(admin))
    assert missing.status_code == 404
