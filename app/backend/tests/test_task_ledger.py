"""
Test task ledger: batch creation, lookups, counts and overrides.
"""

from decimal import Decimal

import pytest

from rewards.core.exceptions import (
    ValidationError,
    TaskNotFoundError,
    ProductNotFoundError,
    TaskAlreadyCompletedError,
)
from rewards.models.task import TaskStatus
from rewards.services.task_ledger import TaskLedger


@pytest.mark.asyncio
async def test_create_batch_numbers_tasks_in_order(db_session, user_factory, product_factory):
    user = await user_factory()
    products = await product_factory([3, 1, 2])
    ledger = TaskLedger(db_session)

    tasks = await ledger.create_batch(user.id, products)
    await db_session.commit()

    assert [t.task_number for t in tasks] == [1, 2, 3]
    assert [t.product_id for t in tasks] == [p.id for p in products]
    assert [t.product_price for t in tasks] == [Decimal("3"), Decimal("1"), Decimal("2")]
    assert all(t.is_pending and not t.is_completed for t in tasks)
    assert all(t.percentage == 0 and t.is_edited is False for t in tasks)


@pytest.mark.asyncio
async def test_create_batch_replaces_previous_batch(db_session, user_factory, product_factory):
    user = await user_factory()
    products = await product_factory([1, 2, 3, 4])
    ledger = TaskLedger(db_session)

    await ledger.create_batch(user.id, products)
    await db_session.commit()
    await ledger.create_batch(user.id, products[:2])
    await db_session.commit()

    tasks = await ledger.list_tasks(user.id)
    assert [t.task_number for t in tasks] == [1, 2]


@pytest.mark.asyncio
async def test_create_batch_leaves_other_users_alone(db_session, user_factory, product_factory):
    alice = await user_factory()
    bob = await user_factory()
    products = await product_factory([1, 2])
    ledger = TaskLedger(db_session)

    await ledger.create_batch(alice.id, products)
    await ledger.create_batch(bob.id, products[:1])
    await ledger.create_batch(alice.id, products[1:])
    await db_session.commit()

    assert len(await ledger.list_tasks(alice.id)) == 1
    assert len(await ledger.list_tasks(bob.id)) == 1


@pytest.mark.asyncio
async def test_product_price_is_a_snapshot(db_session, user_factory, product_factory):
    user = await user_factory()
    product, = await product_factory([10])
    ledger = TaskLedger(db_session)
    task, = await ledger.create_batch(user.id, [product])
    await db_session.commit()

    product.price = Decimal("99")
    await db_session.commit()

    reloaded = await ledger.get_task(task.id, for_update=True)
    assert reloaded.product_price == Decimal("10")


@pytest.mark.asyncio
async def test_lookups(db_session, user_factory, product_factory):
    user = await user_factory()
    products = await product_factory([1, 2])
    ledger = TaskLedger(db_session)
    tasks = await ledger.create_batch(user.id, products)
    await db_session.commit()

    assert (await ledger.get_task(tasks[0].id)).task_number == 1
    assert (await ledger.get_task_by_number(user.id, 2)).id == tasks[1].id
    assert await ledger.get_task("missing") is None
    assert await ledger.get_task_by_number(user.id, 3) is None

    with_products = await ledger.list_tasks(user.id, with_products=True)
    assert [t.product.name for t in with_products] == [p.name for p in products]


@pytest.mark.asyncio
async def test_count_by_status(db_session, user_factory, product_factory):
    user = await user_factory()
    products = await product_factory([1, 2, 3])
    ledger = TaskLedger(db_session)
    tasks = await ledger.create_batch(user.id, products)
    tasks[0].status = TaskStatus.COMPLETED.value
    await db_session.commit()

    counts = await ledger.count_by_status(user.id)

    assert (counts.total, counts.completed, counts.pending) == (3, 1, 2)
    assert counts.pending + counts.completed == counts.total


@pytest.mark.asyncio
async def test_count_by_status_for_user_without_tasks(db_session):
    counts = await TaskLedger(db_session).count_by_status("nobody")

    assert (counts.total, counts.completed, counts.pending) == (0, 0, 0)


@pytest.mark.asyncio
async def test_replace_slot_on_pending_task(db_session, user_factory, product_factory):
    user = await user_factory()
    products = await product_factory([1, 2, 3])
    replacement, = await product_factory([50])
    ledger = TaskLedger(db_session)
    await ledger.create_batch(user.id, products)
    await db_session.commit()

    task = await ledger.replace_slot(user.id, 2, replacement.id, Decimal("0.05"))
    await db_session.commit()

    assert task.task_number == 2
    assert task.status == TaskStatus.PENDING.value
    assert task.product_id == replacement.id
    assert task.product_price == Decimal("50")
    assert task.percentage == Decimal("0.05")
    assert task.is_edited is True

    untouched = await ledger.get_task_by_number(user.id, 1)
    assert untouched.product_id == products[0].id
    assert untouched.is_edited is False


@pytest.mark.asyncio
async def test_replace_slot_on_completed_task_changes_nothing(db_session, user_factory, product_factory):
    user = await user_factory()
    product, replacement = await product_factory([1, 50])
    ledger = TaskLedger(db_session)
    task, = await ledger.create_batch(user.id, [product])
    task.status = TaskStatus.COMPLETED.value
    await db_session.commit()

    with pytest.raises(TaskAlreadyCompletedError) as exc_info:
        await ledger.replace_slot(user.id, 1, replacement.id, Decimal("0.05"))

    assert exc_info.value.code == "TASK_ALREADY_COMPLETED"
    assert task.product_id == product.id
    assert task.is_edited is False


@pytest.mark.asyncio
async def test_replace_slot_errors(db_session, user_factory, product_factory):
    user = await user_factory()
    product, = await product_factory([1])
    ledger = TaskLedger(db_session)
    await ledger.create_batch(user.id, [product])
    await db_session.commit()

    with pytest.raises(TaskNotFoundError):
        await ledger.replace_slot(user.id, 7, product.id, Decimal("0"))
    with pytest.raises(ProductNotFoundError):
        await ledger.replace_slot(user.id, 1, "missing", Decimal("0"))
    with pytest.raises(ValidationError):
        await ledger.replace_slot(user.id, 1, product.id, Decimal("-0.1"))
    with pytest.raises(ValidationError):
        await ledger.replace_slot(user.id, 1, product.id, Decimal("1.5"))


@pytest.mark.asyncio
async def test_replace_oldest(db_session, user_factory, product_factory):
    user = await user_factory()
    products = await product_factory([1, 2, 3])
    replacement, = await product_factory([40])
    ledger = TaskLedger(db_session)
    await ledger.create_batch(user.id, products)
    await db_session.commit()

    tasks = await ledger.replace_oldest(user.id, replacement.id, 2)
    await db_session.commit()

    assert [t.task_number for t in tasks] == [1, 2]
    assert all(t.product_id == replacement.id for t in tasks)
    assert all(t.product_price == Decimal("40") and t.is_edited for t in tasks)
    assert all(t.percentage == 0 for t in tasks)

    third = await ledger.get_task_by_number(user.id, 3)
    assert third.product_id == products[2].id


@pytest.mark.asyncio
async def test_replace_oldest_validation(db_session, user_factory, product_factory):
    user = await user_factory()
    product, = await product_factory([1])
    ledger = TaskLedger(db_session)

    with pytest.raises(ValidationError):
        await ledger.replace_oldest(user.id, product.id, 0)
    with pytest.raises(ProductNotFoundError):
        await ledger.replace_oldest(user.id, "missing", 1)


@pytest.mark.asyncio
async def test_replace_oldest_skips_completed_tasks(db_session, user_factory, product_factory):
    user = await user_factory()
    products = await product_factory([100, 100, 100])
    replacement, = await product_factory([999])
    ledger = TaskLedger(db_session)
    first, second, _ = await ledger.create_batch(user.id, products)
    first.status = TaskStatus.COMPLETED.value
    await db_session.commit()

    tasks = await ledger.replace_oldest(user.id, replacement.id, 1)
    await db_session.commit()

    assert [t.task_number for t in tasks] == [2]
    assert second.product_price == Decimal("999")
    assert first.product_id == products[0].id
    assert first.product_price == Decimal("100")
    assert first.is_edited is False


@pytest.mark.asyncio
async def test_replace_oldest_with_every_task_completed(db_session, user_factory, product_factory):
    user = await user_factory()
    product, replacement = await product_factory([100, 999])
    ledger = TaskLedger(db_session)
    task, = await ledger.create_batch(user.id, [product])
    task.status = TaskStatus.COMPLETED.value
    await db_session.commit()

    assert await ledger.replace_oldest(user.id, replacement.id, 5) == []
    assert task.product_price == Decimal("100")
