"""
User model - the member/agent directory record.

The task engine only reads the quota and withdrawal fields and writes the
earnings fields; profile and identity columns are owned by the directory.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Integer, Boolean, DECIMAL, Date, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin, UUIDPrimaryKeyMixin


class UserRole(str, Enum):
    """Directory roles."""
    ADMIN = "admin"
    USER = "user"
    AGENT = "agent"


class WithdrawalPolicy(str, Enum):
    """Withdrawal permission flag."""
    ALLOWED = "allowed"
    NOT_ALLOWED = "not_allowed"


class User(UUIDPrimaryKeyMixin, TimestampMixin, BaseModel):
    """Member, agent or admin account."""

    __tablename__ = "users"

    # Identity
    name: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        comment="Unique display/login name"
    )

    role: Mapped[str] = mapped_column(
        String(20),
        default=UserRole.USER.value,
        comment="admin, user or agent"
    )

    parent_id: Mapped[str] = mapped_column(
        String(36),
        default="0",
        comment="Id of the recruiting agent, '0' for none"
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        comment="Whether the account is enabled"
    )

    reputation: Mapped[int] = mapped_column(
        Integer,
        default=100,
        comment="Reputation score"
    )

    # Funds
    balance: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 4),
        default=Decimal("0"),
        comment="Spendable funds"
    )

    frozen_amount: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 4),
        default=Decimal("0"),
        comment="Funds held back from withdrawal"
    )

    # Task quota
    daily_available_orders: Mapped[int] = mapped_column(
        Integer,
        default=0,
        comment="Target daily batch size, 0 when unset"
    )

    todays_orders: Mapped[int] = mapped_column(
        Integer,
        default=0,
        comment="Orders placed today"
    )

    todays_commission: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 4),
        default=Decimal("0"),
        comment="Commission generated today"
    )

    # Withdrawal policy
    allow_withdrawal: Mapped[str] = mapped_column(
        String(20),
        default=WithdrawalPolicy.ALLOWED.value,
        comment="allowed or not_allowed"
    )

    withdrawal_min_amount: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 4),
        default=Decimal("0")
    )

    withdrawal_max_amount: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 4),
        default=Decimal("1000000")
    )

    # Earnings ledger
    total_earnings: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 4),
        default=Decimal("0"),
        comment="Lifetime task earnings"
    )

    todays_earnings: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 4),
        default=Decimal("0"),
        comment="Earnings accrued on last_earning_date"
    )

    last_earning_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        comment="Calendar day of the last earnings event"
    )

    __table_args__ = (
        Index("idx_users_parent", "parent_id"),
        Index("idx_users_role", "role"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, name={self.name}, role={self.role})>"
