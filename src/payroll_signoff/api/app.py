"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_signoff import __version__
from payroll_signoff.api.routes import (
    employees_router,
    health_router,
    lock_requirements_router,
    payroll_cycles_router,
    payroll_months_router,
    reports_router,
)
from payroll_signoff.config import Settings, get_settings
from payroll_signoff.database import create_all, dispose_db, init_db
from payroll_signoff.services.errors import PayrollNotFoundError, PayrollPreconditionError
from payroll_signoff.services.store import PayrollStore

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Without a ``session_factory`` the global engine from ``DATABASE_URL`` is
    used and missing tables are created at startup.
    """
    settings = settings or get_settings()
    owns_engine = session_factory is None

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        if owns_engine:
            engine, _ = init_db()
            await create_all(engine)
        yield
        if owns_engine:
            await dispose_db()

    app = FastAPI(
        title="Payroll Sign-off API",
        description="Monthly payroll locks, two-stage sign-off and snapshots",
        version=__version__,
        lifespan=lifespan,
    )

    if owns_engine:
        _, session_factory = init_db()
    app.state.settings = settings
    app.state.store = PayrollStore(session_factory)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(PayrollNotFoundError)
    async def not_found_handler(request: Request, exc: PayrollNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": str(exc), "code": "NOT_FOUND"},
        )

    @app.exception_handler(PayrollPreconditionError)
    async def precondition_handler(
        request: Request, exc: PayrollPreconditionError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": str(exc), "code": "PRECONDITION_FAILED"},
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
    app.include_router(payroll_months_router, prefix="/api/v1")
    app.include_router(payroll_cycles_router, prefix="/api/v1")
    app.include_router(lock_requirements_router, prefix="/api/v1")
    app.include_router(employees_router, prefix="/api/v1")
    app.include_router(reports_router, prefix="/api/v1")

    return app
