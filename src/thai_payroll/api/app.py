"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from thai_payroll.api.routes import (
    advances_router,
    benefit_settings_router,
    bulk_payroll_router,
    funding_allocations_router,
    health_router,
    tax_brackets_router,
    tax_calculations_router,
    tax_settings_router,
)
from thai_payroll.config import get_settings
from thai_payroll.database import create_tables, init_db
from thai_payroll.services.state_machine import InvalidTransitionError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    engine, _ = init_db()
    await create_tables(engine)
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title="Thai Payroll Engine API",
        description="Thai personal income tax and grant-funded payroll",
        version=settings.engine_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition_handler(
        request: Request, exc: InvalidTransitionError
    ) -> JSONResponse:
        """Batch status changes that the state machine forbids."""
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": str(exc), "code": "INVALID_TRANSITION"},
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

    app.include_router(health_router)
    app.include_router(tax_calculations_router, prefix="/api/v1")
    app.include_router(tax_brackets_router, prefix="/api/v1")
    app.include_router(tax_settings_router, prefix="/api/v1")
    app.include_router(benefit_settings_router, prefix="/api/v1")
    app.include_router(funding_allocations_router, prefix="/api/v1")
    app.include_router(bulk_payroll_router, prefix="/api/v1")
    app.include_router(advances_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
