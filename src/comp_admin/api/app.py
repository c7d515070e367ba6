"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from comp_admin.api.routes import (
    currencies_router,
    deal_team_spiffs_router,
    employees_router,
    health_router,
    payout_runs_router,
    plans_router,
    roles_router,
    targets_router,
)
from comp_admin.config import settings
from comp_admin.database import dispose_db, init_db
from comp_admin.errors import (
    CompAdminError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from comp_admin.events import EventEmitter, QueryCache

logger = logging.getLogger(__name__)

# Status code and error code per service error type
_ERROR_STATUS: list[tuple[type[CompAdminError], int, str]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR"),
    (NotFoundError, status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    (ConflictError, status.HTTP_409_CONFLICT, "CONFLICT"),
    (InvalidTransitionError, status.HTTP_409_CONFLICT, "INVALID_TRANSITION"),
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    init_db()
    yield
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Compensation Admin API",
        description="Sales compensation plans, targets and payout administration",
        version="0.1.0",
        lifespan=lifespan,
    )

    # One emitter per app; the cache listens to it
    app.state.events = EventEmitter()
    app.state.cache = QueryCache()
    app.state.cache.bind(app.state.events)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(CompAdminError)
    async def service_error_handler(request: Request, exc: CompAdminError) -> JSONResponse:
        """Map service errors onto HTTP status codes."""
        for error_type, status_code, code in _ERROR_STATUS:
            if isinstance(exc, error_type):
                return JSONResponse(
                    status_code=status_code,
                    content={"detail": str(exc), "code": code},
                )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": str(exc), "code": "ERROR"},
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
    for router in (
        employees_router,
        plans_router,
        currencies_router,
        roles_router,
        targets_router,
        payout_runs_router,
        deal_team_spiffs_router,
    ):
        app.include_router(router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
