"""
Task ledger: the ordered task records of each user.

Owns batch creation and numbering, lookups, per-status counts and the
operator override path that swaps the product behind a slot.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

import structlog

from rewards.models.task import Task, TaskStatus
from rewards.models.product import Product
from rewards.core.exceptions import (
    ValidationError,
    TaskNotFoundError,
    ProductNotFoundError,
    TaskAlreadyCompletedError
)
from rewards.services.catalog_selector import Candidate


logger = structlog.get_logger(__name__)


@dataclass
class TaskCounts:
    """Task counts of one user's current batch."""
    total: int = 0
    completed: int = 0
    pending: int = 0


class TaskLedger:
    """Persistence of task batches. Flushes but never commits."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="task_ledger")

    async def create_batch(self, user_id: str, products: Sequence[Candidate]) -> List[Task]:
        """
        Replace the user's batch with one task per product.

        Tasks are numbered 1..len(products) in the given order and capture
        each product's price at assignment time.
        """
        deleted = await self.clear_batch(user_id)

        tasks = [
            Task(
                user_id=user_id,
                product_id=product.id,
                product_price=Decimal(product.price),
                task_number=number,
                status=TaskStatus.PENDING.value,
                percentage=Decimal("0"),
                is_edited=False
            )
            for number, product in enumerate(products, start=1)
        ]
        self.db.add_all(tasks)
        await self.db.flush()

        self.logger.info(
            "Task batch created",
            user_id=user_id,
            tasks=len(tasks),
            replaced=deleted
        )
        return tasks

    async def clear_batch(self, user_id: str) -> int:
        """Delete every task of the user; returns the number removed."""
        result = await self.db.execute(
            delete(Task).where(Task.user_id == user_id)
        )
        # Deletes must land before new numbers are inserted
        await self.db.flush()
        return result.rowcount or 0

    async def get_task(self, task_id: str, with_product: bool = False, for_update: bool = False) -> Optional[Task]:
        query = select(Task).where(Task.id == task_id)
        if with_product:
            query = query.options(selectinload(Task.product))
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_task_by_number(self, user_id: str, task_number: int) -> Optional[Task]:
        result = await self.db.execute(
            select(Task).where(
                Task.user_id == user_id,
                Task.task_number == task_number
            )
        )
        return result.scalar_one_or_none()

    async def list_tasks(self, user_id: str, with_products: bool = False) -> List[Task]:
        """All tasks of the user ordered by task number."""
        query = select(Task).where(Task.user_id == user_id).order_by(Task.task_number)
        if with_products:
            query = query.options(selectinload(Task.product)).execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_by_status(self, user_id: str) -> TaskCounts:
        """Counts from a single grouped query, so pending + completed == total."""
        result = await self.db.execute(
            select(Task.status, func.count(Task.id))
            .where(Task.user_id == user_id)
            .group_by(Task.status)
        )
        by_status = {status: count for status, count in result.all()}

        completed = by_status.get(TaskStatus.COMPLETED.value, 0)
        pending = by_status.get(TaskStatus.PENDING.value, 0)
        return TaskCounts(total=completed + pending, completed=completed, pending=pending)

    async def _get_product(self, product_id: str) -> Product:
        product = await self.db.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    async def replace_slot(
        self,
        user_id: str,
        task_number: int,
        product_id: str,
        percentage: Decimal
    ) -> Task:
        """
        Swap the product behind a pending slot and set its earnings rate.

        Raises:
            ValidationError: Percentage outside 0..1
            TaskNotFoundError: No task with that number for the user
            TaskAlreadyCompletedError: The slot is already completed
            ProductNotFoundError: Unknown product
        """
        percentage = Decimal(percentage)
        if percentage < 0 or percentage > 1:
            raise ValidationError(
                "Percentage must be a fraction between 0 and 1",
                {"percentage": str(percentage)}
            )

        task = await self.get_task_by_number(user_id, task_number)
        if task is None:
            raise TaskNotFoundError(userId=user_id, taskNumber=task_number)
        if task.is_completed:
            raise TaskAlreadyCompletedError(task.id, task.task_number)

        product = await self._get_product(product_id)

        task.product_id = product.id
        task.product_price = Decimal(product.price)
        task.percentage = percentage
        task.is_edited = True
        await self.db.flush()

        self.logger.info(
            "Task slot overridden",
            user_id=user_id,
            task_number=task_number,
            product_id=product.id,
            percentage=str(percentage)
        )
        return task

    async def replace_oldest(self, user_id: str, product_id: str, count: int) -> List[Task]:
        """
        Point the user's `count` oldest pending tasks at another product.

        Completed tasks keep the price they were credited at; percentage is
        left as is.
        """
        if count < 1:
            raise ValidationError("Count must be at least 1", {"count": count})

        product = await self._get_product(product_id)

        result = await self.db.execute(
            select(Task)
            .where(
                Task.user_id == user_id,
                Task.status == TaskStatus.PENDING.value
            )
            .order_by(Task.created_at, Task.task_number)
            .limit(count)
        )
        tasks = list(result.scalars().all())

        for task in tasks:
            task.product_id = product.id
            task.product_price = Decimal(product.price)
            task.is_edited = True
        await self.db.flush()

        self.logger.info(
            "Oldest tasks overridden",
            user_id=user_id,
            product_id=product.id,
            requested=count,
            updated=len(tasks)
        )
        return tasks
