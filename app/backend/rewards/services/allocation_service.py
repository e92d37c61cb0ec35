"""
Allocation orchestrator.

Builds and rebuilds a user's daily task batch from the eligible catalog,
applies operator overrides and answers status and statistics queries.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from rewards.models.user import User
from rewards.models.product import Product
from rewards.models.task import Task
from rewards.core.config import settings
from rewards.core.exceptions import UserNotFoundError
from rewards.services.catalog_selector import SelectionPolicy, parse_policy, select_batch
from rewards.services.task_ledger import TaskLedger, TaskCounts
from rewards.services.earnings_ledger import EarningsLedger, UserEarningsSnapshot
from rewards.services.user_locks import user_locks, UserLockRegistry


logger = structlog.get_logger(__name__)


@dataclass
class BatchResult:
    """A freshly allocated batch with its aggregates."""
    tasks: List[Task]
    total_price: Decimal
    average_price: Decimal
    band_satisfied: bool
    used_fallback: bool
    policy: SelectionPolicy

    @property
    def total_tasks(self) -> int:
        return len(self.tasks)


@dataclass
class TaskStatusReport:
    """Tasks of a user ordered by number, with counts."""
    tasks: List[Task] = field(default_factory=list)
    counts: TaskCounts = field(default_factory=TaskCounts)


class AllocationService:
    """Service tying catalog selection to the task ledger."""

    def __init__(self, db: AsyncSession, locks: Optional[UserLockRegistry] = None):
        self.db = db
        self.tasks = TaskLedger(db)
        self.locks = locks or user_locks
        self.logger = logger.bind(service="allocation_service")

    # ============================================================================
    # BATCH ALLOCATION
    # ============================================================================

    async def _get_user(self, user_id: str, for_update: bool = False) -> User:
        query = select(User).where(User.id == user_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def resolve_batch_size(self, user: User) -> int:
        """Daily batch size of the user; an unset quota is defaulted and saved."""
        if user.daily_available_orders and user.daily_available_orders > 0:
            return user.daily_available_orders

        user.daily_available_orders = settings.default_daily_orders
        await self.db.flush()

        self.logger.info(
            "Daily order quota defaulted",
            user_id=user.id,
            daily_available_orders=user.daily_available_orders
        )
        return user.daily_available_orders

    async def get_eligible_products(self) -> List[Product]:
        """Active task products, cheapest first."""
        result = await self.db.execute(
            select(Product)
            .where(Product.is_task.is_(True), Product.status.is_(True))
            .order_by(Product.price, Product.id)
        )
        return list(result.scalars().all())

    async def allocate(
        self,
        user_id: str,
        policy: Optional[Union[SelectionPolicy, str]] = None
    ) -> BatchResult:
        """
        Replace the user's batch with a new selection and commit.

        Raises:
            UserNotFoundError: Unknown user
            NoEligibleProductsError: Empty catalog
            ValidationError: Unknown policy or bad price band
        """
        policy = parse_policy(policy or settings.allocation_policy)

        async with self.locks.hold(user_id):
            try:
                user = await self._get_user(user_id, for_update=True)
                batch_size = await self.resolve_batch_size(user)
                products = await self.get_eligible_products()

                selection = select_batch(
                    products,
                    batch_size,
                    price_band=(settings.price_band_low, settings.price_band_high),
                    policy=policy
                )
                tasks = await self.tasks.create_batch(user.id, selection.products)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        result = BatchResult(
            tasks=tasks,
            total_price=selection.total_price,
            average_price=selection.average_price,
            band_satisfied=selection.band_satisfied,
            used_fallback=selection.used_fallback,
            policy=selection.policy
        )

        self.logger.info(
            "Task batch allocated",
            user_id=user_id,
            policy=result.policy.value,
            requested=batch_size,
            total_tasks=result.total_tasks,
            total_price=str(result.total_price),
            band_satisfied=result.band_satisfied
        )
        return result

    async def reallocate(
        self,
        user_id: str,
        policy: Optional[Union[SelectionPolicy, str]] = None
    ) -> BatchResult:
        """Discard the current batch and allocate a new one."""
        self.logger.info("Resetting task batch", user_id=user_id)
        return await self.allocate(user_id, policy)

    # ============================================================================
    # OPERATOR OVERRIDES
    # ============================================================================

    async def replace_slot(
        self,
        user_id: str,
        task_number: int,
        product_id: str,
        percentage: Decimal
    ) -> Task:
        """Override one pending slot and commit."""
        async with self.locks.hold(user_id):
            try:
                task = await self.tasks.replace_slot(user_id, task_number, product_id, percentage)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise
        return task

    async def replace_oldest(self, user_id: str, product_id: str, count: int) -> List[Task]:
        """Override the user's oldest tasks and commit."""
        async with self.locks.hold(user_id):
            try:
                tasks = await self.tasks.replace_oldest(user_id, product_id, count)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise
        return tasks

    # ============================================================================
    # QUERIES
    # ============================================================================

    async def status(self, user_id: str) -> TaskStatusReport:
        """All tasks of the user with their products, plus counts."""
        tasks = await self.tasks.list_tasks(user_id, with_products=True)
        completed = sum(1 for task in tasks if task.is_completed)
        counts = TaskCounts(total=len(tasks), completed=completed, pending=len(tasks) - completed)
        return TaskStatusReport(tasks=tasks, counts=counts)

    async def stats(self, user_id: str) -> TaskCounts:
        return await self.tasks.count_by_status(user_id)

    async def earnings(self, user_id: str) -> UserEarningsSnapshot:
        return await EarningsLedger(self.db).snapshot(user_id)


def get_allocation_service(db: AsyncSession) -> AllocationService:
    """Get allocation service instance."""
    return AllocationService(db)
