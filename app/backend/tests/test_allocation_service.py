"""
Test allocation orchestrator: batch allocation, resets, overrides and queries.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from rewards.core.exceptions import (
    NoEligibleProductsError,
    UserNotFoundError,
    ValidationError,
    TaskAlreadyCompletedError,
)
from rewards.core.config import settings
from rewards.models.user import User
from rewards.services.allocation_service import AllocationService
from rewards.services.catalog_selector import SelectionPolicy
from rewards.services.task_completion import TaskCompletionService
from rewards.services.user_locks import UserLockRegistry


@pytest.mark.asyncio
async def test_allocate_builds_full_batch_in_band(db_session, user_factory, product_factory):
    user = await user_factory()
    await product_factory([1.75] * 50)

    result = await AllocationService(db_session).allocate(user.id)

    assert result.total_tasks == 40
    assert [t.task_number for t in result.tasks] == list(range(1, 41))
    assert len({t.product_id for t in result.tasks}) == 40
    assert result.total_price == Decimal("70")
    assert result.average_price == Decimal("1.75")
    assert result.band_satisfied is True
    assert result.used_fallback is False
    assert result.policy == SelectionPolicy.PRICE_BANDED


@pytest.mark.asyncio
async def test_allocate_falls_back_when_band_is_infeasible(db_session, user_factory, product_factory):
    user = await user_factory()
    await product_factory([10 + 5 * k for k in range(45)])

    result = await AllocationService(db_session).allocate(user.id)

    assert result.total_tasks == 40
    assert result.used_fallback is True
    assert result.band_satisfied is False


@pytest.mark.asyncio
async def test_allocate_defaults_and_persists_quota(db_session, user_factory, product_factory, monkeypatch):
    user = await user_factory(daily_available_orders=0)
    user_id = user.id
    await product_factory([1] * 60)

    result = await AllocationService(db_session).allocate(user_id)

    assert result.total_tasks == 40
    stored = (await db_session.execute(
        select(User.daily_available_orders).where(User.id == user_id)
    )).scalar_one()
    assert stored == 40

    # A later allocation reads the stored quota instead of the current default
    monkeypatch.setattr(settings, "default_daily_orders", 25)
    second = await AllocationService(db_session).allocate(user_id)

    assert second.total_tasks == 40
    stored = (await db_session.execute(
        select(User.daily_available_orders).where(User.id == user_id)
    )).scalar_one()
    assert stored == 40


@pytest.mark.asyncio
async def test_allocate_respects_user_quota(db_session, user_factory, product_factory):
    user = await user_factory(daily_available_orders=5)
    await product_factory([1] * 20)

    result = await AllocationService(db_session).allocate(user.id)

    assert result.total_tasks == 5


@pytest.mark.asyncio
async def test_allocate_only_uses_eligible_products(db_session, user_factory, product_factory):
    user = await user_factory(daily_available_orders=10)
    eligible = await product_factory([1, 2, 3])
    await product_factory([1, 2], is_task=False)
    await product_factory([1, 2], status=False)

    result = await AllocationService(db_session).allocate(user.id)

    assert {t.product_id for t in result.tasks} == {p.id for p in eligible}
    assert all(p.is_eligible for p in eligible)


@pytest.mark.asyncio
async def test_allocate_without_products(db_session, user_factory):
    user = await user_factory()

    with pytest.raises(NoEligibleProductsError):
        await AllocationService(db_session).allocate(user.id)


@pytest.mark.asyncio
async def test_allocate_unknown_user(db_session, product_factory):
    await product_factory([1])

    with pytest.raises(UserNotFoundError):
        await AllocationService(db_session).allocate("missing")


@pytest.mark.asyncio
async def test_allocate_rejects_unknown_policy(db_session, user_factory, product_factory):
    user = await user_factory()
    await product_factory([1])

    with pytest.raises(ValidationError):
        await AllocationService(db_session).allocate(user.id, "cheapest")


@pytest.mark.asyncio
async def test_allocate_with_random_policy(db_session, user_factory, product_factory):
    user = await user_factory(daily_available_orders=10)
    await product_factory(range(1, 31))

    result = await AllocationService(db_session).allocate(user.id, "random")

    assert result.policy == SelectionPolicy.RANDOM
    assert result.total_tasks == 10
    assert len({t.product_id for t in result.tasks}) == 10


@pytest.mark.asyncio
async def test_reallocate_keeps_batch_shape(db_session, user_factory, product_factory):
    user = await user_factory()
    await product_factory([1.75] * 50)
    service = AllocationService(db_session)

    first = await service.allocate(user.id)
    first_ids = {t.id for t in first.tasks}
    second = await service.reallocate(user.id)
    third = await service.reallocate(user.id)

    for result in (second, third):
        assert result.total_tasks == 40
        assert [t.task_number for t in result.tasks] == list(range(1, 41))
    assert first_ids.isdisjoint({t.id for t in second.tasks})

    counts = await service.stats(user.id)
    assert counts.total == 40


@pytest.mark.asyncio
async def test_status_and_stats_after_submission(db_session, user_factory, product_factory):
    user = await user_factory(daily_available_orders=3)
    await product_factory([3, 1, 2])
    service = AllocationService(db_session)
    batch = await service.allocate(user.id)

    await TaskCompletionService(db_session).submit(batch.tasks[0].id, 5, "ok")

    report = await service.status(user.id)
    assert [t.task_number for t in report.tasks] == [1, 2, 3]
    assert [t.product.price for t in report.tasks] == [Decimal("1"), Decimal("2"), Decimal("3")]
    assert (report.counts.total, report.counts.completed, report.counts.pending) == (3, 1, 2)

    counts = await service.stats(user.id)
    assert (counts.total, counts.completed, counts.pending) == (3, 1, 2)
    assert counts.pending + counts.completed == counts.total


@pytest.mark.asyncio
async def test_override_operations_commit(db_session, user_factory, product_factory):
    user = await user_factory(daily_available_orders=3)
    user_id = user.id
    await product_factory([1, 2, 3])
    replacement, = await product_factory([100], is_task=False)
    replacement_id = replacement.id
    service = AllocationService(db_session)
    batch = await service.allocate(user_id)
    first_product_id = batch.tasks[0].product_id

    task = await service.replace_slot(user_id, 2, replacement_id, Decimal("0.05"))
    assert task.product_id == replacement_id
    assert task.is_edited is True

    completion = await TaskCompletionService(db_session).submit(task.id, 5)
    assert completion.earnings == Decimal("5")

    with pytest.raises(TaskAlreadyCompletedError):
        await service.replace_slot(user_id, 2, first_product_id, Decimal("0"))

    # Rollback expired loaded objects; only ids are used from here on
    oldest = await service.replace_oldest(user_id, replacement_id, 1)
    assert [t.task_number for t in oldest] == [1]


@pytest.mark.asyncio
async def test_earnings_snapshot(db_session, user_factory, product_factory):
    user = await user_factory(daily_available_orders=1)
    await product_factory([100])
    service = AllocationService(db_session)
    batch = await service.allocate(user.id)
    await TaskCompletionService(db_session).submit(batch.tasks[0].id, 5)

    snapshot = await service.earnings(user.id)

    assert snapshot.total_earnings == Decimal("0.5")
    assert snapshot.todays_earnings == Decimal("0.5")


@pytest.mark.asyncio
async def test_replace_oldest_keeps_credited_task(db_session, user_factory, product_factory):
    user = await user_factory(daily_available_orders=2)
    user_id = user.id
    await product_factory([100, 100])
    replacement, = await product_factory([999], is_task=False)
    service = AllocationService(db_session)
    batch = await service.allocate(user_id)
    first_id = batch.tasks[0].id
    first_product_id = batch.tasks[0].product_id

    completion = await TaskCompletionService(db_session).submit(first_id, 5)
    assert completion.earnings == Decimal("0.5")

    updated = await service.replace_oldest(user_id, replacement.id, 1)
    assert [t.task_number for t in updated] == [2]
    assert updated[0].product_price == Decimal("999")

    report = await service.status(user_id)
    credited = report.tasks[0]
    assert credited.is_completed
    assert credited.product_id == first_product_id
    assert credited.product_price == Decimal("100")
    assert credited.is_edited is False


@pytest.mark.asyncio
async def test_unknown_users_leave_no_locks_behind(db_session, product_factory):
    await product_factory([1])
    locks = UserLockRegistry()
    service = AllocationService(db_session, locks=locks)

    for i in range(20):
        with pytest.raises(UserNotFoundError):
            await service.allocate(f"nobody-{i}")

    assert len(locks) == 0
