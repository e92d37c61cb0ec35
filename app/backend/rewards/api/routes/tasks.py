"""
Task routes for the task rewards API.
Handles batch allocation, status queries, submissions and operator overrides.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from rewards.api.dependencies import get_database, get_required_user_auth
from rewards.api.schemas.tasks import (
    BatchResponse,
    TaskResponse,
    TaskWithProductResponse,
    TaskStatusResponse,
    TaskStatsResponse,
    EarningsSnapshot,
    EarningsResponse,
    SubmitTaskRequest,
    SubmitTaskResponse,
    UpdateTaskRequest,
    TaskOverrideResponse,
    ReplaceOldestRequest,
    ReplaceOldestResponse
)
from rewards.services.allocation_service import BatchResult, get_allocation_service
from rewards.services.task_completion import get_task_completion_service


logger = structlog.get_logger(__name__)

router = APIRouter()

# Path placeholder meaning "the authenticated caller"
SELF_PLACEHOLDER = "me"


def _batch_response(result: BatchResult, message: str) -> BatchResponse:
    return BatchResponse(
        message=message,
        tasks=[TaskResponse.model_validate(task) for task in result.tasks],
        total_tasks=result.total_tasks,
        total_price=result.total_price,
        average_price=result.average_price,
        band_satisfied=result.band_satisfied,
        used_fallback=result.used_fallback,
        policy=result.policy.value
    )


@router.post(
    "/assign/{user_id}",
    response_model=BatchResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Assign Tasks",
    description="Build the user's daily task batch from the eligible catalog"
)
async def assign_tasks(
    user_id: str,
    policy: Optional[str] = Query(None, description="random or price_banded"),
    db: AsyncSession = Depends(get_database)
):
    """Allocate a task batch for a user."""
    result = await get_allocation_service(db).allocate(user_id, policy)
    return _batch_response(result, "Tasks assigned successfully")


@router.post(
    "/reset/{user_id}",
    response_model=BatchResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Reset Tasks",
    description="Discard the user's batch and allocate a new one"
)
async def reset_tasks(
    user_id: str,
    policy: Optional[str] = Query(None, description="random or price_banded"),
    db: AsyncSession = Depends(get_database)
):
    """Reallocate a user's task batch."""
    result = await get_allocation_service(db).reallocate(user_id, policy)
    return _batch_response(result, "Tasks reset successfully")


async def _status_response(db: AsyncSession, user_id: str) -> TaskStatusResponse:
    report = await get_allocation_service(db).status(user_id)
    return TaskStatusResponse(
        tasks=[TaskWithProductResponse.model_validate(task) for task in report.tasks],
        total_tasks=report.counts.total,
        completed_tasks=report.counts.completed,
        pending_tasks=report.counts.pending
    )


@router.get(
    "/status",
    response_model=TaskStatusResponse,
    summary="Caller Task Status",
    description="Tasks and counts of the authenticated caller"
)
@router.get(
    f"/status/{SELF_PLACEHOLDER}",
    response_model=TaskStatusResponse,
    summary="Caller Task Status",
    description="Tasks and counts of the authenticated caller"
)
async def get_caller_task_status(
    caller_id: str = Depends(get_required_user_auth),
    db: AsyncSession = Depends(get_database)
):
    """Get the caller's tasks."""
    return await _status_response(db, caller_id)


@router.get(
    "/status/{user_id}",
    response_model=TaskStatusResponse,
    summary="Task Status",
    description="Tasks ordered by number with completion counts"
)
async def get_task_status(
    user_id: str,
    db: AsyncSession = Depends(get_database)
):
    """Get a user's tasks."""
    return await _status_response(db, user_id)


@router.get(
    "/stats/{user_id}",
    response_model=TaskStatsResponse,
    summary="Task Statistics",
    description="Total, completed and pending counts without task bodies"
)
async def get_task_stats(user_id: str, db: AsyncSession = Depends(get_database)):
    """Get a user's task counts."""
    counts = await get_allocation_service(db).stats(user_id)
    return TaskStatsResponse(
        total_tasks=counts.total,
        completed_tasks=counts.completed,
        pending_tasks=counts.pending
    )


@router.post(
    "/submit/{task_id}",
    response_model=SubmitTaskResponse,
    summary="Submit Task",
    description="Complete a pending task and credit its earnings"
)
async def submit_task(
    task_id: str,
    request: SubmitTaskRequest,
    db: AsyncSession = Depends(get_database)
):
    """Submit a task with a rating and review."""
    result = await get_task_completion_service(db).submit(task_id, request.rating, request.review)
    return SubmitTaskResponse(
        message="Task submitted successfully",
        task=TaskResponse.model_validate(result.task),
        earnings=result.earnings,
        user=EarningsSnapshot.model_validate(result.snapshot) if result.snapshot else None
    )


@router.post(
    "/update-tasks",
    response_model=TaskOverrideResponse,
    summary="Override Task",
    description="Swap the product behind a pending task and set its earnings rate"
)
async def update_task(request: UpdateTaskRequest, db: AsyncSession = Depends(get_database)):
    """Operator override of a single slot."""
    task = await get_allocation_service(db).replace_slot(
        request.user_id,
        request.start_after,
        request.product_id,
        request.percentage
    )
    logger.info("Task override applied via API", user_id=request.user_id, task_number=request.start_after)
    return TaskOverrideResponse(
        message="Task updated successfully",
        task=TaskResponse.model_validate(task)
    )


@router.post(
    "/replace-oldest",
    response_model=ReplaceOldestResponse,
    summary="Override Oldest Tasks",
    description="Point the user's oldest tasks at another product"
)
async def replace_oldest_tasks(request: ReplaceOldestRequest, db: AsyncSession = Depends(get_database)):
    """Operator override of the oldest tasks."""
    tasks = await get_allocation_service(db).replace_oldest(
        request.user_id,
        request.product_id,
        request.count
    )
    return ReplaceOldestResponse(
        message=f"{len(tasks)} tasks updated successfully",
        tasks=[TaskResponse.model_validate(task) for task in tasks]
    )


@router.get(
    "/earnings/{user_id}",
    response_model=EarningsResponse,
    summary="User Earnings",
    description="Balance, lifetime and today's earnings of a user"
)
async def get_user_earnings(user_id: str, db: AsyncSession = Depends(get_database)):
    """Get a user's earnings snapshot."""
    snapshot = await get_allocation_service(db).earnings(user_id)
    return EarningsResponse(earnings=EarningsSnapshot.model_validate(snapshot))
