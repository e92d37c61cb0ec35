"""
Earnings history - one row per credited earnings event.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, DECIMAL, Date, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin, UUIDPrimaryKeyMixin


class EarningsEventType(str, Enum):
    """Kinds of earnings events."""
    TASK_COMMISSION = "task_commission"


class EarningsHistory(UUIDPrimaryKeyMixin, TimestampMixin, BaseModel):
    """Historical record of earnings credited to a user."""

    __tablename__ = "earnings_history"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        comment="Credited user"
    )

    # Tasks are deleted on batch reset; the history row outlives them
    task_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        nullable=True,
        comment="Task that produced the earnings"
    )

    event_type: Mapped[str] = mapped_column(
        String(30),
        default=EarningsEventType.TASK_COMMISSION.value
    )

    amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 4))

    previous_balance: Mapped[Decimal] = mapped_column(DECIMAL(18, 4))

    new_balance: Mapped[Decimal] = mapped_column(DECIMAL(18, 4))

    todays_earnings: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 4),
        comment="Day counter after this event"
    )

    earning_date: Mapped[date] = mapped_column(
        Date,
        comment="Calendar day the event was attributed to"
    )

    is_day_rollover: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="Whether this event reset the day counter"
    )

    __table_args__ = (
        Index("idx_earnings_history_user_time", "user_id", "created_at"),
        Index("idx_earnings_history_task", "task_id"),
    )

    def __repr__(self) -> str:
        return f"<EarningsHistory(user={self.user_id}, type={self.event_type}, amount={self.amount})>"

    @classmethod
    def create_task_commission_record(
        cls,
        user_id: str,
        task_id: Optional[str],
        amount: Decimal,
        previous_balance: Decimal,
        new_balance: Decimal,
        todays_earnings: Decimal,
        earning_date: date,
        is_day_rollover: bool
    ) -> "EarningsHistory":
        """Create a task commission record."""
        return cls(
            user_id=user_id,
            task_id=task_id,
            event_type=EarningsEventType.TASK_COMMISSION.value,
            amount=amount,
            previous_balance=previous_balance,
            new_balance=new_balance,
            todays_earnings=todays_earnings,
            earning_date=earning_date,
            is_day_rollover=is_day_rollover
        )
