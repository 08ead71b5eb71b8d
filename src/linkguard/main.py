"""
Main FastAPI application entry point.

This module sets up the FastAPI app with all middleware, routes, and lifecycle events.
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator, Callable, Dict, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .api import admin_router, healthz_router, links_router, metrics_router
from .config import Settings, get_settings
from .core.anonymizer import AnonymizationScheduler
from .core.auth import seed_admin
from .core.blocklist import BlockList
from .core.crypto import SealedRecordCodec
from .core.csrf import CsrfGuard
from .core.exceptions import LinkGuardException, NotFoundError, ValidationError
from .core.health import HealthChecker
from .core.metrics import MetricsCollector
from .core.pipeline import RequestPipeline
from .core.rate_limiter import SlidingWindowLimiter
from .core.records import LinkRequestRepository
from .core.scheduler import BackgroundSweeps
from .core.sessions import MemorySessionStore
from .core.store import Store, utcnow

MAX_BODY_BYTES = 1_048_576

CONTENT_SECURITY_POLICY = "; ".join([
    "default-src 'self'",
    "script-src 'self'",
    "style-src 'self' 'unsafe-inline'",
    "img-src 'self' data:",
    "connect-src 'self'",
    "font-src 'self'",
    "object-src 'none'",
    "frame-ancestors 'none'",
])

SECURITY_HEADERS = {
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
}


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured logging for the application."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper()),
    )

    # Silence the verbose watchfiles logger
    logging.getLogger("watchfiles").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def create_lifespan_handler(settings: Settings, clock: Callable[[], datetime]) -> Any:
    """Create a lifespan handler with access to settings."""
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        FastAPI lifespan context manager.

        Builds every component against one store, seeds the admin account
        and starts the background sweeps. A missing or malformed
        encryption key aborts startup.
        """
        logger = structlog.get_logger(__name__)
        logger.info("Starting LinkGuard service", version=app.version, environment=settings.environment)

        codec = SealedRecordCodec.from_hex(settings.crypto.encryption_key)

        store = Store(settings.database.url, echo=settings.database.echo).open()
        sweeps: Optional[BackgroundSweeps] = None

        try:
            seed_admin(store, settings.admin.username, settings.admin.password)

            metrics = MetricsCollector()
            blocklist = BlockList(store, clock=clock)
            limiter = SlidingWindowLimiter(
                store,
                blocklist,
                window_seconds=settings.security.rate_window_seconds,
                max_requests=settings.security.rate_max_requests,
                auto_block_hours=settings.security.auto_block_hours,
                sample_retention_seconds=settings.security.sample_retention_seconds,
                clock=clock,
            )
            sessions = MemorySessionStore(
                ttl_seconds=settings.security.session_ttl_seconds,
                max_size=settings.security.session_max_entries,
            )
            csrf = CsrfGuard(sessions)
            anonymizer = AnonymizationScheduler(store, clock=clock)

            app.state.settings = settings
            app.state.store = store
            app.state.metrics = metrics
            app.state.blocklist = blocklist
            app.state.limiter = limiter
            app.state.sessions = sessions
            app.state.csrf = csrf
            app.state.pipeline = RequestPipeline(limiter, csrf, metrics)
            app.state.records = LinkRequestRepository(
                store, codec, clock=clock, on_decrypt_failure=metrics.record_decrypt_failure
            )
            app.state.anonymizer = anonymizer

            if settings.retention.background_sweeps_enabled:
                sweeps = BackgroundSweeps(
                    limiter,
                    anonymizer,
                    retention_days=settings.retention.retention_days,
                    cleanup_interval_seconds=settings.retention.cleanup_interval_seconds,
                    cleanup_initial_delay_seconds=settings.retention.cleanup_initial_delay_seconds,
                    anonymize_interval_hours=settings.retention.anonymize_interval_hours,
                    anonymize_initial_delay_seconds=settings.retention.anonymize_initial_delay_seconds,
                    metrics=metrics,
                )
                await sweeps.start()
            app.state.sweeps = sweeps
            app.state.health_checker = HealthChecker(store, sweeps)

            logger.info("LinkGuard service started successfully")
            yield
        finally:
            logger.info("Shutting down LinkGuard service")

            if sweeps is not None:
                await sweeps.stop()
            store.close()

            logger.info("LinkGuard service shutdown complete")

    return lifespan


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Request validation failed"
    message = str(errors[0].get("msg", "Request validation failed"))
    return message.removeprefix("Value error, ")


def register_exception_handlers(app: FastAPI) -> None:
    logger = structlog.get_logger(__name__)

    @app.exception_handler(LinkGuardException)
    async def linkguard_exception_handler(request: Request, exc: LinkGuardException) -> JSONResponse:
        """Handle custom LinkGuard exceptions."""
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "LinkGuard exception occurred",
            error=str(exc),
            error_code=exc.error_code,
            status_code=exc.status_code,
            path=request.url.path,
            method=request.method,
        )

        headers = {}

        # Add Retry-After header for rate limit errors
        if exc.status_code == 429 and "retry_after" in exc.details:
            headers["Retry-After"] = str(exc.details["retry_after"])

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error_code,
                "message": str(exc),
                "details": exc.details,
            },
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
                "message": str(error.get("msg", "")),
            }
            for error in exc.errors()
        ]
        error = ValidationError(_validation_message(exc), details={"errors": errors})
        return await linkguard_exception_handler(request, error)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return await linkguard_exception_handler(request, NotFoundError())
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": "http_error",
                "message": str(exc.detail),
                "details": {},
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.error(
            "Unexpected exception occurred",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
            exc_info=True,
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "details": {},
            },
        )


def register_middleware(app: FastAPI, settings: Settings) -> None:
    @app.middleware("http")
    async def security_middleware(request: Request, call_next: Callable[..., Any]) -> Any:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > MAX_BODY_BYTES:
            response = JSONResponse(
                status_code=413,
                content={
                    "error": "payload_too_large",
                    "message": f"Request body exceeds {MAX_BODY_BYTES} bytes",
                    "details": {},
                },
            )
        else:
            started = time.perf_counter()
            response = await call_next(request)
            metrics = getattr(request.app.state, "metrics", None)
            if metrics is not None:
                route = request.scope.get("route")
                metrics.record_request(
                    request.method,
                    getattr(route, "path", "unmatched"),
                    response.status_code,
                    time.perf_counter() - started,
                )

        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        if settings.is_production:
            response.headers.setdefault(
                "Strict-Transport-Security", "max-age=15552000; includeSubDomains"
            )
        return response


def create_app(
    settings: Optional[Settings] = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory function ensures all configuration is applied
    whether running via uvicorn or in tests.
    """
    settings = settings or get_settings()

    configure_logging(settings.log_level)

    app = FastAPI(
        title="LinkGuard",
        description="WhatsApp link generator with rate limiting, CSRF protection and sealed PII",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=create_lifespan_handler(settings, clock),
    )

    register_exception_handlers(app)
    register_middleware(app, settings)

    app.include_router(links_router, prefix="/api", tags=["links"])
    app.include_router(admin_router, prefix="/api/admin", tags=["admin"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(healthz_router, tags=["health"])

    @app.get("/", include_in_schema=False)
    async def root() -> Dict[str, str]:
        """Root endpoint with service information."""
        return {
            "service": "LinkGuard",
            "version": app.version,
            "docs": "/docs",
        }

    return app


# Create the app instance
app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "linkguard.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
