"""
Test earnings accrual and the daily counter.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from rewards.core.exceptions import ValidationError, UserNotFoundError
from rewards.models.earnings import EarningsHistory
from rewards.services.earnings_ledger import (
    EarningsLedger,
    roll_daily_earnings,
    today_in_zone,
)


def fixed_clock(year, month, day, hour=12):
    return lambda: datetime(year, month, day, hour, tzinfo=timezone.utc)


def test_roll_same_day_accumulates():
    todays, day, rolled = roll_daily_earnings(Decimal("5"), date(2024, 3, 1), Decimal("5"), date(2024, 3, 1))

    assert (todays, day, rolled) == (Decimal("10"), date(2024, 3, 1), False)


def test_roll_new_day_resets():
    todays, day, rolled = roll_daily_earnings(Decimal("5"), date(2024, 3, 1), Decimal("2"), date(2024, 3, 2))

    assert (todays, day, rolled) == (Decimal("2"), date(2024, 3, 2), True)


def test_roll_first_credit():
    todays, day, rolled = roll_daily_earnings(Decimal("0"), None, Decimal("3"), date(2024, 3, 2))

    assert (todays, day, rolled) == (Decimal("3"), date(2024, 3, 2), True)


def test_today_in_zone_treats_naive_as_utc():
    assert today_in_zone(datetime(2024, 3, 1, 23, 59), "UTC") == date(2024, 3, 1)
    assert today_in_zone(datetime(2024, 3, 1, 23, 59, tzinfo=timezone.utc), "utc") == date(2024, 3, 1)


@pytest.mark.asyncio
async def test_accrue_same_day_twice(db_session, user_factory):
    user = await user_factory()
    ledger = EarningsLedger(db_session, clock=fixed_clock(2024, 3, 1))

    first = await ledger.accrue(user.id, Decimal("5"))
    second = await ledger.accrue(user.id, Decimal("5"))
    await db_session.commit()

    assert first.todays_earnings == Decimal("5")
    assert first.day_rollover is True
    assert second.todays_earnings == Decimal("10")
    assert second.day_rollover is False
    assert second.total_earnings == Decimal("10")
    assert second.balance == Decimal("10")
    assert user.last_earning_date == date(2024, 3, 1)


@pytest.mark.asyncio
async def test_accrue_resets_stale_day(db_session, user_factory):
    user = await user_factory(
        todays_earnings=Decimal("7"),
        total_earnings=Decimal("20"),
        balance=Decimal("20"),
        last_earning_date=date(2024, 2, 28)
    )
    ledger = EarningsLedger(db_session, clock=fixed_clock(2024, 3, 1))

    snapshot = await ledger.accrue(user.id, Decimal("5"))

    assert snapshot.todays_earnings == Decimal("5")
    assert snapshot.last_earning_date == date(2024, 3, 1)
    assert snapshot.total_earnings == Decimal("25")
    assert snapshot.balance == Decimal("25")


@pytest.mark.asyncio
async def test_accrue_writes_history(db_session, user_factory):
    user = await user_factory(balance=Decimal("1"))
    ledger = EarningsLedger(db_session, clock=fixed_clock(2024, 3, 1))

    await ledger.accrue(user.id, Decimal("2.5"), task_id="task-1")
    await db_session.commit()

    rows = (await db_session.execute(
        select(EarningsHistory).where(EarningsHistory.user_id == user.id)
    )).scalars().all()
    assert len(rows) == 1
    assert rows[0].task_id == "task-1"
    assert rows[0].amount == Decimal("2.5")
    assert rows[0].previous_balance == Decimal("1")
    assert rows[0].new_balance == Decimal("3.5")
    assert rows[0].earning_date == date(2024, 3, 1)
    assert rows[0].is_day_rollover is True


@pytest.mark.asyncio
async def test_accrue_rejects_negative_amount(db_session, user_factory):
    user = await user_factory()

    with pytest.raises(ValidationError):
        await EarningsLedger(db_session).accrue(user.id, Decimal("-1"))


@pytest.mark.asyncio
async def test_accrue_unknown_user(db_session):
    with pytest.raises(UserNotFoundError) as exc_info:
        await EarningsLedger(db_session).accrue("missing", Decimal("1"))

    assert exc_info.value.details == {"userId": "missing"}


@pytest.mark.asyncio
async def test_snapshot_reports_zero_for_stale_day(db_session, user_factory):
    user = await user_factory(
        todays_earnings=Decimal("7"),
        total_earnings=Decimal("20"),
        last_earning_date=date(2024, 2, 28)
    )

    stale = await EarningsLedger(db_session, clock=fixed_clock(2024, 3, 1)).snapshot(user.id)
    current = await EarningsLedger(db_session, clock=fixed_clock(2024, 2, 28)).snapshot(user.id)

    assert stale.todays_earnings == Decimal("0")
    assert stale.total_earnings == Decimal("20")
    assert current.todays_earnings == Decimal("7")
    # Reading never mutates the user
    assert user.todays_earnings == Decimal("7")
