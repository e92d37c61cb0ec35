"""
Database models for the task rewards backend.

Contains the SQLAlchemy models for the user directory, product catalog,
task batches and the earnings history.
"""

from .base import Base, BaseModel, TimestampMixin, UUIDPrimaryKeyMixin
from .user import User, UserRole, WithdrawalPolicy
from .product import Product
from .task import Task, TaskStatus, VALID_TRANSITIONS, TERMINAL_STATES, validate_transition
from .earnings import EarningsHistory, EarningsEventType

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "User",
    "UserRole",
    "WithdrawalPolicy",
    "Product",
    "Task",
    "TaskStatus",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "validate_transition",
    "EarningsHistory",
    "EarningsEventType",
]
