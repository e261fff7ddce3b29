# ==== MANAGEROS MAIN APPLICATION MODULE ==== #

"""
Main FastAPI application for ManagerOS tolerance rules.

This module assembles the API: lifecycle management, middleware, health
probes, routers and the mapping of domain errors to HTTP responses.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from sqlalchemy import text

from manageros import __version__
from manageros.business.errors import (
    AuthorizationError, InvalidTransitionError, ManagerOSError,
    NotFoundError, RuleValidationError
)
from manageros.middleware.correlation import CorrelationMiddleware
from manageros.observability.logging import get_logger, init_logging
from manageros.observability.metrics import init_metrics, metrics_router
from manageros.observability.tracing import init_tracing
from manageros.routes import exceptions, people_stats, tolerance_rules
from manageros.settings import settings
from manageros.storage.db import close_database, get_session, init_database


logger = get_logger(__name__)

# Domain error → HTTP status
ERROR_STATUS_CODES = {
    AuthorizationError: 403,
    NotFoundError: 404,
    RuleValidationError: 422,
    InvalidTransitionError: 409,
}


# ==== APPLICATION LIFECYCLE MANAGEMENT ==== #


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup and shutdown operations.

    Args:
        app (FastAPI): FastAPI application instance

    Yields:
        None: Control back to FastAPI during application runtime
    """
    # --► STARTUP SEQUENCE
    init_logging(settings.LOG_LEVEL, settings.LOG_TO_FILES)
    init_tracing(settings.OTEL_SERVICE_NAME or settings.SERVICE_NAME)
    init_database()
    logger.info("ManagerOS API started", environment=settings.APP_ENV)

    yield

    # --► SHUTDOWN SEQUENCE
    await close_database()


# ==== APPLICATION FACTORY ==== #


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance
    """
    app = FastAPI(
        title="ManagerOS Tolerance Rules",
        description="Tolerance rules and exception review for people management",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.APP_ENV == "dev" else None,
        redoc_url="/redoc" if settings.APP_ENV == "dev" else None
    )

    init_metrics()

    # --► MIDDLEWARE STACK CONFIGURATION
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id"],
    )
    app.add_middleware(CorrelationMiddleware)

    _register_health_endpoints(app)
    _register_routers(app)
    _register_exception_handlers(app)

    FastAPIInstrumentor.instrument_app(app)

    return app


# ==== ENDPOINT REGISTRATION HELPERS ==== #


def _register_health_endpoints(app: FastAPI) -> None:
    @app.get("/healthz", tags=["health"])
    async def health_check() -> dict:
        """Liveness probe."""
        return {
            "status": "ok",
            "service": settings.SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    @app.get("/readyz", tags=["health"])
    async def readiness_check() -> JSONResponse:
        """Readiness probe, checks database connectivity."""
        try:
            async with get_session() as db:
                await db.execute(text("SELECT 1"))
        except Exception as e:
            logger.warning("Readiness check failed", error=str(e))
            return JSONResponse(
                status_code=503,
                content={"status": "unavailable", "service": settings.SERVICE_NAME}
            )

        return JSONResponse(content={
            "status": "ready",
            "service": settings.SERVICE_NAME,
            "environment": settings.APP_ENV
        })


def _register_routers(app: FastAPI) -> None:
    app.include_router(metrics_router, prefix="", tags=["monitoring"])
    app.include_router(
        tolerance_rules.router, prefix="/api/tolerance-rules", tags=["tolerance-rules"]
    )
    app.include_router(exceptions.router, prefix="/api/exceptions", tags=["exceptions"])
    app.include_router(people_stats.router, prefix="/api/people/stats", tags=["people"])


# ==== EXCEPTION HANDLERS ==== #


def _register_exception_handlers(app: FastAPI) -> None:
    """
    Register handlers mapping domain errors and unhandled errors to JSON.

    Args:
        app (FastAPI): FastAPI application instance
    """
    @app.exception_handler(ManagerOSError)
    async def domain_error_handler(request: Request, exc: ManagerOSError) -> JSONResponse:
        """Map domain errors raised by services to their HTTP status."""
        correlation_id = getattr(request.state, 'correlation_id', 'unknown')
        status_code = next(
            (code for error_type, code in ERROR_STATUS_CODES.items()
             if isinstance(exc, error_type)),
            400
        )

        content = {
            "detail": exc.message,
            "code": exc.code,
            "correlation_id": correlation_id
        }
        if isinstance(exc, RuleValidationError) and exc.errors:
            content["errors"] = exc.errors

        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Provides consistent error response format with correlation ID
        for debugging and request tracing.
        """
        correlation_id = getattr(request.state, 'correlation_id', 'unknown')
        logger.exception(
            "Unhandled error",
            path=request.url.path,
            correlation_id=correlation_id
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": "An unexpected error occurred",
                "correlation_id": correlation_id,
                "code": "INTERNAL_ERROR"
            }
        )


# Create application instance
app = create_app()
