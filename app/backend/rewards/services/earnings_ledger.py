"""
Earnings accrual ledger.

Credits task earnings to a user's balance and lifetime total and keeps a
"today" counter that resets on the first credit of a new calendar day.
Every credit also writes an EarningsHistory row in the same transaction.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from rewards.models.user import User
from rewards.models.earnings import EarningsHistory
from rewards.core.config import settings
from rewards.core.exceptions import ValidationError, UserNotFoundError


logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]

ZERO = Decimal("0")


@dataclass
class UserEarningsSnapshot:
    """Earnings fields of a user at a point in time."""
    user_id: str
    balance: Decimal
    total_earnings: Decimal
    todays_earnings: Decimal
    last_earning_date: Optional[date]
    day_rollover: bool = False


def system_clock() -> datetime:
    return datetime.now(timezone.utc)


def today_in_zone(now: datetime, tz_name: str) -> date:
    """Calendar date of `now` in the given IANA zone. Naive datetimes are taken as UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    zone = timezone.utc if tz_name.upper() == "UTC" else ZoneInfo(tz_name)
    return now.astimezone(zone).date()


def roll_daily_earnings(
    todays_earnings: Decimal,
    last_earning_date: Optional[date],
    earnings: Decimal,
    today: date
) -> Tuple[Decimal, date, bool]:
    """
    Apply one credit to the day counter.

    Returns the new counter, the new last earning date and whether the
    counter was reset because the previous credit was on an earlier day.
    """
    if last_earning_date is None or last_earning_date < today:
        return earnings, today, True
    return (todays_earnings or ZERO) + earnings, last_earning_date, False


class EarningsLedger:
    """Service crediting task earnings. Flushes but never commits."""

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or system_clock
        self.logger = logger.bind(service="earnings_ledger")

    def today(self) -> date:
        return today_in_zone(self.clock(), settings.earnings_timezone)

    async def _get_user(self, user_id: str, for_update: bool = False) -> User:
        query = select(User).where(User.id == user_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def accrue(
        self,
        user_id: str,
        earnings: Decimal,
        task_id: Optional[str] = None
    ) -> UserEarningsSnapshot:
        """
        Credit earnings to a user.

        Args:
            user_id: Credited user
            earnings: Non-negative amount
            task_id: Task that produced the earnings, for the history row

        Returns:
            UserEarningsSnapshot after the credit

        Raises:
            ValidationError: Negative amount
            UserNotFoundError: Unknown user
        """
        earnings = Decimal(earnings)
        if earnings < 0:
            raise ValidationError(
                "Earnings must not be negative",
                {"earnings": str(earnings)}
            )

        user = await self._get_user(user_id, for_update=True)
        today = self.today()

        previous_balance = user.balance or ZERO
        user.balance = previous_balance + earnings
        user.total_earnings = (user.total_earnings or ZERO) + earnings

        todays, earning_date, rolled_over = roll_daily_earnings(
            user.todays_earnings, user.last_earning_date, earnings, today
        )
        user.todays_earnings = todays
        user.last_earning_date = earning_date

        self.db.add(EarningsHistory.create_task_commission_record(
            user_id=user.id,
            task_id=task_id,
            amount=earnings,
            previous_balance=previous_balance,
            new_balance=user.balance,
            todays_earnings=todays,
            earning_date=earning_date,
            is_day_rollover=rolled_over
        ))
        await self.db.flush()

        if rolled_over:
            self.logger.info("Daily earnings counter reset", user_id=user.id, earning_date=earning_date.isoformat())

        self.logger.info(
            "Earnings credited",
            user_id=user.id,
            task_id=task_id,
            amount=str(earnings),
            balance=str(user.balance),
            todays_earnings=str(todays)
        )

        return UserEarningsSnapshot(
            user_id=user.id,
            balance=user.balance,
            total_earnings=user.total_earnings,
            todays_earnings=todays,
            last_earning_date=earning_date,
            day_rollover=rolled_over
        )

    async def snapshot(self, user_id: str) -> UserEarningsSnapshot:
        """Current earnings; a counter from an earlier day reads as zero."""
        user = await self._get_user(user_id)

        todays = user.todays_earnings or ZERO
        if user.last_earning_date is None or user.last_earning_date < self.today():
            todays = ZERO

        return UserEarningsSnapshot(
            user_id=user.id,
            balance=user.balance or ZERO,
            total_earnings=user.total_earnings or ZERO,
            todays_earnings=todays,
            last_earning_date=user.last_earning_date
        )
