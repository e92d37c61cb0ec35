"""
Task-related Pydantic schemas for API.
Defines request bodies and responses of the task endpoints.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field

from .common import APIResponse, CamelModel, Money


class ProductSummary(CamelModel):
    """Product embedded in a task."""
    id: str
    name: str
    price: Money
    description: Optional[str] = None
    image: Optional[str] = None


class TaskResponse(CamelModel):
    """Task without its product."""
    id: str
    user_id: str
    product_id: str
    product_price: Money
    task_number: int
    status: str
    percentage: Money
    is_edited: bool
    rating: Optional[int] = None
    review: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TaskWithProductResponse(TaskResponse):
    """Task with the product behind it."""
    product: Optional[ProductSummary] = None


class BatchResponse(APIResponse):
    """Result of allocating or resetting a batch."""
    tasks: List[TaskResponse]
    total_tasks: int
    total_price: Money
    average_price: Money
    band_satisfied: bool
    used_fallback: bool
    policy: str


class TaskStatsResponse(APIResponse):
    """Task counts of a user's current batch."""
    total_tasks: int = 0
    completed_tasks: int = 0
    pending_tasks: int = 0


class TaskStatusResponse(TaskStatsResponse):
    """Tasks ordered by number with counts."""
    tasks: List[TaskWithProductResponse] = []


class EarningsSnapshot(CamelModel):
    """Earnings fields of a user."""
    user_id: str
    balance: Money
    total_earnings: Money
    todays_earnings: Money
    last_earning_date: Optional[date] = None


class EarningsResponse(APIResponse):
    """Current earnings of a user."""
    earnings: EarningsSnapshot


class SubmitTaskRequest(CamelModel):
    """Task submission body."""
    rating: int = Field(ge=1, le=5, description="Score from 1 to 5")
    review: Optional[str] = Field(default=None, max_length=2000)


class SubmitTaskResponse(APIResponse):
    """Completed task with the credited earnings."""
    task: TaskResponse
    earnings: Money
    user: Optional[EarningsSnapshot] = None


class UpdateTaskRequest(CamelModel):
    """Operator override of a single pending slot."""
    user_id: str = Field(min_length=1)
    product_id: str = Field(min_length=1)
    start_after: int = Field(ge=1, description="Task number of the slot to override")
    percentage: Decimal = Field(default=Decimal("0"), ge=0, le=1, description="Earnings rate for the slot as a fraction of price")


class TaskOverrideResponse(APIResponse):
    """Overridden task."""
    task: TaskResponse


class ReplaceOldestRequest(CamelModel):
    """Operator override of the user's oldest tasks."""
    user_id: str = Field(min_length=1)
    product_id: str = Field(min_length=1)
    count: int = Field(ge=1)


class ReplaceOldestResponse(APIResponse):
    """Tasks touched by the override."""
    tasks: List[TaskResponse]
