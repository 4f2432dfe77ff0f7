"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from payrun_engine import __version__
from payrun_engine.api.routes import (
    health_router,
    payroll_periods_router,
    payroll_records_router,
    payroll_runs_router,
)
from payrun_engine.config import get_settings
from payrun_engine.database import dispose_db, init_db
from payrun_engine.errors import (
    ConflictError,
    NotFoundError,
    PayrollEngineError,
    StateError,
    ValidationError,
)
from payrun_engine.logging_config import configure_logging

logger = logging.getLogger(__name__)

# Seconds a client should wait before retrying a locked run
RETRY_AFTER_SECONDS = 5


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    init_db()
    yield
    # Shutdown
    await dispose_db()


def _envelope(
    status_code: int,
    message: str,
    data: dict | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "data": data, "message": message},
        headers=headers,
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Payroll Run Engine API",
        description="Payroll run orchestration and calculation",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return _envelope(status.HTTP_400_BAD_REQUEST, exc.message, {"code": exc.code})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return _envelope(
            status.HTTP_404_NOT_FOUND,
            exc.message,
            {"code": exc.code, "entity": exc.entity, "id": str(exc.entity_id)},
        )

    @app.exception_handler(StateError)
    async def state_error_handler(request: Request, exc: StateError) -> JSONResponse:
        return _envelope(
            status.HTTP_409_CONFLICT,
            exc.message,
            {"code": exc.code, "current_status": exc.current_status, "operation": exc.operation},
        )

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
        return _envelope(
            status.HTTP_409_CONFLICT,
            exc.message,
            {"code": exc.code, "run_id": str(exc.run_id)},
            headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
        )

    @app.exception_handler(PayrollEngineError)
    async def engine_error_handler(request: Request, exc: PayrollEngineError) -> JSONResponse:
        return _envelope(status.HTTP_422_UNPROCESSABLE_ENTITY, exc.message, {"code": exc.code})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _envelope(
            status.HTTP_400_BAD_REQUEST,
            "Request validation failed",
            {"code": "VALIDATION_ERROR", "errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _envelope(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred",
            {"code": "INTERNAL_ERROR"},
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(payroll_periods_router, prefix="/api/v1")
    app.include_router(payroll_runs_router, prefix="/api/v1")
    app.include_router(payroll_records_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
