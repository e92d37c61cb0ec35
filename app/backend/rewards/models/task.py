"""
Task model - one numbered slot in a user's daily batch.

A task moves pending -> completed exactly once. The product behind a pending
slot may be swapped by an operator override; the captured product_price is
what earnings are computed from, never the live catalog price.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Set

from sqlalchemy import (
    String, Integer, Boolean, DECIMAL, Text, Index, ForeignKey, DateTime,
    JSON, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, TimestampMixin, UUIDPrimaryKeyMixin
from .product import Product


class TaskStatus(str, Enum):
    """Task lifecycle states."""
    PENDING = "pending"
    COMPLETED = "completed"


VALID_TRANSITIONS: Dict[TaskStatus, Set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.COMPLETED},
    TaskStatus.COMPLETED: set(),
}

TERMINAL_STATES: Set[TaskStatus] = {TaskStatus.COMPLETED}


def validate_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """Whether a task may move from one status to another."""
    return to_status in VALID_TRANSITIONS.get(TaskStatus(from_status), set())


class Task(UUIDPrimaryKeyMixin, TimestampMixin, BaseModel):
    """A task slot owned by a single user."""

    __tablename__ = "tasks"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        comment="Owner of the task"
    )

    product_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("products.id"),
        comment="Product currently occupying the slot"
    )

    product_price: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 4),
        comment="Price captured when the product was assigned"
    )

    task_number: Mapped[int] = mapped_column(
        Integer,
        comment="1-based position within the user's batch"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=TaskStatus.PENDING.value,
        comment="pending or completed"
    )

    percentage: Mapped[Decimal] = mapped_column(
        DECIMAL(10, 6),
        default=Decimal("0"),
        comment="Earnings rate applied on completion, 0 means platform default"
    )

    is_edited: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="Set once an override has touched the slot"
    )

    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    review: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    result: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    product: Mapped[Product] = relationship("Product", lazy="raise")

    __table_args__ = (
        UniqueConstraint("user_id", "task_number", name="uq_tasks_user_task_number"),
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 5)", name="ck_tasks_rating_range"),
        Index("idx_tasks_user_status", "user_id", "status"),
        Index("idx_tasks_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Task(id={self.id}, user={self.user_id}, number={self.task_number}, status={self.status})>"

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED.value

    @property
    def is_pending(self) -> bool:
        return self.status == TaskStatus.PENDING.value
