"""
Product catalog model. Read-only from the task engine's point of view.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Boolean, DECIMAL, Text, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin, UUIDPrimaryKeyMixin


class Product(UUIDPrimaryKeyMixin, TimestampMixin, BaseModel):
    """Catalog product that can back a task."""

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(
        String(200),
        unique=True,
        comment="Unique product name"
    )

    price: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 4),
        comment="Current catalog price"
    )

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        comment="Whether the product is active"
    )

    is_task: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="Whether the product may be handed out as a task"
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        Index("idx_products_eligible_price", "is_task", "status", "price"),
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name={self.name}, price={self.price})>"

    @property
    def is_eligible(self) -> bool:
        """Active and flagged for tasks."""
        return bool(self.status and self.is_task)
