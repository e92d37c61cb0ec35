"""
Main FastAPI application for the task rewards backend.
Configures the API server with routes, middleware, error handlers and documentation.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

import structlog

from rewards.core.config import settings
from rewards.core.logging import setup_logging
from rewards.core.database import init_database, close_database, DatabaseManager
from rewards.core.exceptions import RewardsError
from rewards.api.middleware import add_middleware
from rewards.api.schemas.common import APIResponse, HealthCheckResponse, create_error_response
from rewards.api.routes import tasks


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting task rewards API server", environment=settings.environment)

    await init_database()
    if settings.create_tables_on_startup:
        await DatabaseManager.create_tables()

    yield

    logger.info("Shutting down task rewards API server")
    await close_database()


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain and validation errors to consistent error bodies."""

    @app.exception_handler(RewardsError)
    async def rewards_error_handler(request: Request, exc: RewardsError):
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "Request rejected",
            path=request.url.path,
            error=exc.code,
            message=exc.message,
            details=exc.details
        )
        body = create_error_response(exc.message, exc.code, exc.details)
        return JSONResponse(
            status_code=exc.status_code,
            content=body.model_dump(mode="json", by_alias=True)
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = {}
        for error in exc.errors():
            field = str(error["loc"][-1]) if error.get("loc") else "request"
            details[field] = error.get("msg", "Invalid value")

        logger.info("Request validation failed", path=request.url.path, details=details)
        body = create_error_response("Invalid request", "VALIDATION_ERROR", details)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=body.model_dump(mode="json", by_alias=True)
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error("Unhandled error", path=request.url.path, error=str(exc), exc_info=True)
        body = create_error_response("An unexpected error occurred", "INTERNAL_SERVER_ERROR")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=body.model_dump(mode="json", by_alias=True)
        )


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""

    setup_logging(settings.log_file)

    app = FastAPI(
        title=settings.app_name,
        description="""
        Daily task allocation and earnings accrual.

        ## Features

        * **Task Batches** - Price-banded or random daily task lists
        * **Submissions** - Complete tasks and accrue earnings
        * **Overrides** - Operator product swaps on pending tasks

        ## Authentication

        ```
        Authorization: Bearer <user-id>
        ```
        """,
        version=settings.app_version,
        lifespan=lifespan,
    )

    add_middleware(app)
    register_exception_handlers(app)

    @app.get(
        "/health",
        response_model=HealthCheckResponse,
        tags=["System"],
        summary="Health Check",
        description="Check API server health and database connectivity"
    )
    async def health_check():
        """Health check endpoint."""
        if await DatabaseManager.health_check():
            return HealthCheckResponse(version=settings.app_version)

        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "version": settings.app_version,
                "services": {
                    "database": "unhealthy",
                    "api": "healthy"
                }
            }
        )

    @app.get(
        "/",
        response_model=APIResponse,
        tags=["System"],
        summary="API Information"
    )
    async def root():
        """Root endpoint with API information."""
        return APIResponse(message=f"{settings.app_name} v{settings.app_version}")

    app.include_router(
        tasks.router,
        prefix=f"{settings.api_prefix}/tasks",
        tags=["Tasks"]
    )

    logger.info("FastAPI application created successfully")
    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "rewards.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower()
    )
