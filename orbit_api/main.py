# orbit_api/main.py
from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from sqlalchemy.exc import SQLAlchemyError

from orbit_api import __version__
from orbit_api.core.config import settings
from orbit_api.core.exceptions import APIError, BaseAPIException, ValidationError, normalize_error
from orbit_api.core.logging import configure_structlog, get_structlog_logger
from orbit_api.core.startup import validate_startup_environment
from orbit_api.db import session as db_session
from orbit_api.middleware.auth import AuthMiddleware
from orbit_api.middleware.logging import LoggingMiddleware
from orbit_api.middleware.rate_limiter import RateLimitingMiddleware
from orbit_api.middleware.request_id import RequestIdMiddleware
from orbit_api.routes import (
    activities,
    assets,
    audit_logs,
    campaigns,
    companies,
    contacts,
    digital_snapshots,
    documents,
    email_sends,
    email_settings,
    email_templates,
    health,
    imports,
    markets,
    organizations,
    pe_platforms,
    playbooks,
    profiles,
    unsubscribes,
    verticals,
    webhooks,
)
from orbit_api.services.redis import close_redis_pool, init_redis_pool


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    logger = get_structlog_logger(__name__)

    logger.info("application.starting", environment=settings.environment)
    validate_startup_environment()

    if not settings.is_testing:
        try:
            await init_redis_pool()
            logger.info("redis.connected")
        except Exception as e:
            logger.error("redis.connection_failed", error=str(e))
            if settings.is_production:
                raise

    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment,
            integrations=[
                AsyncioIntegration(),
                FastApiIntegration(),
                StarletteIntegration(),
            ],
            traces_sample_rate=1.0 if settings.is_development else 0.1,
            send_default_pii=False,
        )
        logger.info("sentry.initialized")

    logger.info("application.started")
    yield

    logger.info("application.shutting_down")

    await close_redis_pool()

    if db_session.engine is not None:
        await db_session.engine.dispose()
        logger.info("database.connection_closed")

    logger.info("application.shutdown_complete")


# Configure logging before creating app
configure_structlog()
logger = get_structlog_logger(__name__)

app = FastAPI(
    title="Orbit ABM API",
    version=__version__,
    description="Multi-tenant account-based marketing CRM",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
)

# Innermost first: the last middleware added wraps all the others.
if not (settings.is_development or settings.is_testing):
    app.add_middleware(RateLimitingMiddleware)

app.add_middleware(AuthMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins(),
    allow_credentials=True,
    allow_methods=settings.methods(),
    allow_headers=settings.allowed_headers.split(","),
    expose_headers=["X-Request-ID", "X-Response-Time"],
)


def error_response(exc: BaseAPIException, headers=None) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(BaseAPIException)
async def api_exception_handler(request: Request, exc: BaseAPIException):
    """Handle custom API exceptions."""
    logger.warning(
        "api.exception",
        status_code=exc.status_code,
        code=exc.code,
        path=request.url.path,
        method=request.method,
    )
    headers = None
    retry_after = getattr(exc, "retry_after", None)
    if retry_after is not None:
        headers = {"Retry-After": str(retry_after)}
    return error_response(exc, headers)


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """Translate driver and ORM errors into the API taxonomy."""
    error = normalize_error(exc)
    logger.error(
        "database.exception",
        error_type=type(exc).__name__,
        code=error.code,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    return error_response(error)


def _field_name(loc) -> str:
    parts = [str(part) for part in loc if part not in ("body", "query", "path", "header")]
    return ".".join(parts) or "request"


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    errors = [
        {
            "field": _field_name(error.get("loc", [])),
            "msg": error.get("msg", "Validation error"),
            "type": error.get("type", "value_error"),
        }
        for error in exc.errors()
    ]

    logger.warning(
        "validation.error",
        path=request.url.path,
        method=request.method,
        errors=errors,
    )

    message = "Validation failed: " + "; ".join(f"{e['field']}: {e['msg']}" for e in errors)
    return error_response(ValidationError(message=message, details={"errors": errors}))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    error = normalize_error(exc)
    if not isinstance(error, APIError):
        return error_response(error)

    error_id = f"err_{uuid.uuid4().hex[:12]}"
    logger.error(
        "unhandled.exception",
        error_id=error_id,
        error_type=type(exc).__name__,
        error=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=exc,
    )

    message = f"Internal server error: {exc}" if settings.is_development else "Internal server error"
    return error_response(
        APIError(message=message, details={"error_id": error_id}),
        headers={"X-Error-ID": error_id},
    )


# The import/export router goes first so /{entity}/import and /{entity}/export
# are not captured by the resource routers' /{id} paths.
app.include_router(imports.router, prefix=settings.api_prefix)
app.include_router(health.router, prefix=settings.api_prefix)
app.include_router(organizations.router, prefix=settings.api_prefix)
app.include_router(profiles.router, prefix=settings.api_prefix)
app.include_router(markets.router, prefix=settings.api_prefix)
app.include_router(verticals.router, prefix=settings.api_prefix)
app.include_router(pe_platforms.router, prefix=settings.api_prefix)
app.include_router(companies.router, prefix=settings.api_prefix)
app.include_router(contacts.router, prefix=settings.api_prefix)
app.include_router(campaigns.router, prefix=settings.api_prefix)
app.include_router(playbooks.router, prefix=settings.api_prefix)
app.include_router(activities.router, prefix=settings.api_prefix)
app.include_router(audit_logs.router, prefix=settings.api_prefix)
app.include_router(assets.router, prefix=settings.api_prefix)
app.include_router(digital_snapshots.router, prefix=settings.api_prefix)
app.include_router(documents.router, prefix=settings.api_prefix)
app.include_router(email_templates.router, prefix=settings.api_prefix)
app.include_router(email_sends.router, prefix=settings.api_prefix)
app.include_router(email_settings.router, prefix=settings.api_prefix)
app.include_router(unsubscribes.router, prefix=settings.api_prefix)
app.include_router(webhooks.router, prefix=settings.api_prefix)

if not settings.is_testing:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Orbit ABM API",
        "version": app.version,
        "environment": settings.environment,
        "docs": "/docs" if settings.is_development else None,
        "health": f"{settings.api_prefix}/health",
    }


logger.info("application.configured", environment=settings.environment)
