"""
Task completion: moves a task from pending to completed and credits the
owner's earnings in the same transaction.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from rewards.models.task import Task, TaskStatus, validate_transition
from rewards.core.config import settings
from rewards.core.exceptions import (
    ValidationError,
    TaskNotFoundError,
    TaskAlreadyCompletedError,
    UserNotFoundError,
    EarningsCreditError
)
from rewards.services.task_ledger import TaskLedger
from rewards.services.earnings_ledger import EarningsLedger, UserEarningsSnapshot
from rewards.services.user_locks import user_locks, UserLockRegistry


logger = structlog.get_logger(__name__)

EARNINGS_QUANTUM = Decimal("0.0001")


@dataclass
class SubmissionResult:
    """Completed task with the credited amount."""
    task: Task
    earnings: Decimal
    snapshot: Optional[UserEarningsSnapshot]


def compute_earnings(product_price: Decimal, percentage: Optional[Decimal]) -> Decimal:
    """product_price x rate, where a non-positive percentage falls back to the platform rate."""
    rate = Decimal(percentage) if percentage and Decimal(percentage) > 0 else settings.default_commission_rate
    return (Decimal(product_price) * rate).quantize(EARNINGS_QUANTUM, rounding=ROUND_HALF_UP)


class TaskCompletionService:
    """Service handling task submissions."""

    def __init__(
        self,
        db: AsyncSession,
        earnings_ledger: Optional[EarningsLedger] = None,
        locks: Optional[UserLockRegistry] = None
    ):
        self.db = db
        self.tasks = TaskLedger(db)
        self.earnings = earnings_ledger or EarningsLedger(db)
        self.locks = locks or user_locks
        self.logger = logger.bind(service="task_completion")

    async def submit(self, task_id: str, rating: int, review: Optional[str] = None) -> SubmissionResult:
        """
        Complete a task and credit its earnings, then commit.

        Args:
            task_id: Task to complete
            rating: Score from 1 to 5
            review: Free-text review

        Returns:
            SubmissionResult with the task, earnings and the owner's snapshot

        Raises:
            ValidationError: Rating out of range
            TaskNotFoundError: Unknown task
            TaskAlreadyCompletedError: Task was completed before
            UserNotFoundError: Owner is missing and crediting is not skipped
            EarningsCreditError: Crediting failed; nothing was persisted
        """
        if rating is None or not 1 <= int(rating) <= 5:
            raise ValidationError("Rating must be between 1 and 5", {"rating": rating})

        task = await self.tasks.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)

        async with self.locks.hold(task.user_id):
            try:
                result = await self._complete(task_id, int(rating), review)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        self.logger.info(
            "Task submitted",
            task_id=task_id,
            user_id=result.task.user_id,
            task_number=result.task.task_number,
            earnings=str(result.earnings),
            credited=result.snapshot is not None
        )
        return result

    async def _complete(self, task_id: str, rating: int, review: Optional[str]) -> SubmissionResult:
        # Re-read under the row lock; another submission may have won the race
        task = await self.tasks.get_task(task_id, for_update=True)
        if task is None:
            raise TaskNotFoundError(task_id)
        if not validate_transition(task.status, TaskStatus.COMPLETED):
            raise TaskAlreadyCompletedError(task.id, task.task_number)

        task.status = TaskStatus.COMPLETED.value
        task.rating = rating
        task.review = review
        task.completed_at = datetime.now(timezone.utc)
        await self.db.flush()

        earnings = compute_earnings(task.product_price, task.percentage)

        try:
            snapshot = await self.earnings.accrue(task.user_id, earnings, task_id=task.id)
        except UserNotFoundError:
            if not settings.skip_credit_for_missing_user:
                raise
            self.logger.warning(
                "Task owner missing, earnings not credited",
                task_id=task.id,
                user_id=task.user_id,
                earnings=str(earnings)
            )
            snapshot = None
        except SQLAlchemyError as e:
            raise EarningsCreditError(task.id, str(e)) from e

        return SubmissionResult(task=task, earnings=earnings, snapshot=snapshot)


def get_task_completion_service(db: AsyncSession) -> TaskCompletionService:
    """Get task completion service instance."""
    return TaskCompletionService(db)
