"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from salary_engine import __version__
from salary_engine.api.routes import (
    audit_router,
    health_router,
    ledger_router,
    pay_runs_router,
    rates_router,
)
from salary_engine.config import configure_logging
from salary_engine.database import dispose_db, init_db
from salary_engine.errors import (
    AuthorizationError,
    BatchDeadlineExceededError,
    ImmutableRecordError,
    InvalidTransitionError,
    LedgerError,
    NotFoundError,
    PayRunExistsError,
    PayRunLockedError,
    PayrollError,
)

logger = logging.getLogger(__name__)

# Most specific first; unlisted PayrollError subclasses are 400
ERROR_STATUS: list[tuple[type[PayrollError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (BatchDeadlineExceededError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (PayRunExistsError, status.HTTP_409_CONFLICT),
    (PayRunLockedError, status.HTTP_409_CONFLICT),
    (ImmutableRecordError, status.HTTP_409_CONFLICT),
    (LedgerError, status.HTTP_409_CONFLICT),
]


def status_for(exc: PayrollError) -> int:
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    configure_logging()
    init_db()
    yield
    # Shutdown
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Salary Engine API",
        description="Monthly payroll: salary calculation, loan recovery and pay run workflow",
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
    @app.exception_handler(PayrollError)
    async def payroll_exception_handler(request: Request, exc: PayrollError) -> JSONResponse:
        """Map domain errors to client errors."""
        code = status_for(exc)
        logger.info("%s %s -> %d %s: %s", request.method, request.url.path, code, exc.code, exc)
        return JSONResponse(status_code=code, content={"detail": str(exc), "code": exc.code})

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        """Handle validation errors raised by the domain layer."""
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": str(exc), "code": "INVALID_INPUT"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(pay_runs_router, prefix="/api/v1")
    app.include_router(ledger_router, prefix="/api/v1")
    app.include_router(rates_router, prefix="/api/v1")
    app.include_router(audit_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
