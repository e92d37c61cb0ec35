"""
Custom exception classes for the application.
Provides structured error handling across all modules.
"""

from typing import Any, Optional, Dict


class RewardsError(Exception):
    """Base exception class for the task rewards backend."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(RewardsError):
    """Raised when a requested resource is not found."""

    status_code = 404

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: str = "NOT_FOUND"
    ):
        super().__init__(message, code, details)


class ValidationError(RewardsError):
    """Raised when input validation fails."""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


class ConflictError(RewardsError):
    """Raised when an operation conflicts with the current state."""

    status_code = 409

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: str = "CONFLICT"
    ):
        super().__init__(message, code, details)


class AuthenticationError(RewardsError):
    """Raised when the caller cannot be identified."""

    status_code = 401

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "AUTHENTICATION_ERROR", details)


class InternalError(RewardsError):
    """Raised on unexpected persistence or consistency failures."""

    status_code = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: str = "INTERNAL_ERROR"
    ):
        super().__init__(message, code, details)


# Domain-specific exceptions
class UserNotFoundError(NotFoundError):
    """Raised when a user is not found."""

    def __init__(self, user_id: str):
        super().__init__(
            f"User not found: {user_id}",
            {"userId": user_id},
            "USER_NOT_FOUND"
        )


class TaskNotFoundError(NotFoundError):
    """Raised when a task is not found."""

    def __init__(self, task_id: Optional[str] = None, **lookup: Any):
        details = {"taskId": task_id} if task_id else dict(lookup)
        super().__init__("Task not found", details, "TASK_NOT_FOUND")


class ProductNotFoundError(NotFoundError):
    """Raised when a product is not found."""

    def __init__(self, product_id: str):
        super().__init__(
            f"Product not found: {product_id}",
            {"productId": product_id},
            "PRODUCT_NOT_FOUND"
        )


class NoEligibleProductsError(NotFoundError):
    """Raised when the catalog has no products eligible for tasks."""

    def __init__(self):
        super().__init__(
            "No task products available",
            None,
            "NO_ELIGIBLE_PRODUCTS"
        )


class TaskAlreadyCompletedError(ConflictError):
    """Raised when a completed task is submitted or overridden again."""

    def __init__(self, task_id: str, task_number: Optional[int] = None):
        details: Dict[str, Any] = {"taskId": task_id}
        if task_number is not None:
            details["taskNumber"] = task_number
        super().__init__(
            "Task is already completed",
            details,
            "TASK_ALREADY_COMPLETED"
        )


class EarningsCreditError(InternalError):
    """Raised when task earnings could not be credited; the submission is rolled back."""

    def __init__(self, task_id: str, reason: str):
        super().__init__(
            f"Failed to credit earnings for task {task_id}",
            {"taskId": task_id, "reason": reason},
            "EARNINGS_CREDIT_FAILED"
        )
