# orbit_api/core/startup.py
"""
Environment validation run once at process start.

Missing optional configuration is logged as a warning. In production the
secrets required by the email pipeline and token signing are mandatory and
their absence aborts startup.
"""
from __future__ import annotations

from typing import Any, Dict, List

from orbit_api.core.config import Settings, settings as default_settings
from orbit_api.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)


def collect_environment_problems(settings: Settings) -> Dict[str, List[str]]:
    """Return configuration errors (fatal in production) and warnings."""
    errors: List[str] = []
    warnings: List[str] = []

    if not settings.webhook_secret:
        message = "ORBIT_WEBHOOK_SECRET is not set; SES event webhook is unauthenticated"
        (errors if settings.is_production else warnings).append(message)

    if not settings.email_encryption_key:
        message = "EMAIL_ENCRYPTION_KEY is not set; email credentials cannot be stored"
        (errors if settings.is_production else warnings).append(message)

    if settings.secret_key_is_generated():
        message = "SECRET_KEY is auto-generated; issued tokens will not survive a restart"
        (errors if settings.is_production else warnings).append(message)

    if settings.is_production and settings.database_dialect == "sqlite":
        errors.append("SQLite is not supported in production")

    if settings.is_production and settings.debug:
        warnings.append("DEBUG is enabled in production")

    return {"errors": errors, "warnings": warnings}


def feature_flags(settings: Settings) -> Dict[str, bool]:
    return {
        "audit_logs": settings.feature_audit_logs,
        "document_intelligence": settings.feature_document_intelligence,
        "email_templates": settings.feature_email_templates,
    }


def validate_startup_environment(settings: Settings = default_settings) -> Dict[str, List[str]]:
    """Log the environment status and fail fast on fatal problems in production."""
    problems = collect_environment_problems(settings)

    logger.info(
        "environment.status",
        environment=settings.environment,
        database=settings.database_dialect,
        webhook_secret_configured=bool(settings.webhook_secret),
        email_encryption_configured=bool(settings.email_encryption_key),
        sentry_configured=bool(settings.sentry_dsn),
        features=feature_flags(settings),
    )

    for warning in problems["warnings"]:
        logger.warning("environment.warning", message=warning)

    for error in problems["errors"]:
        logger.error("environment.error", message=error)

    if problems["errors"] and settings.is_production:
        raise RuntimeError(
            "Invalid environment configuration: " + "; ".join(problems["errors"])
        )

    return problems


def get_environment_health(settings: Settings = default_settings) -> Dict[str, Any]:
    problems = collect_environment_problems(settings)
    if problems["errors"]:
        status = "unhealthy"
    elif problems["warnings"]:
        status = "degraded"
    else:
        status = "healthy"

    return {
        "status": status,
        "checks": {
            "webhook_secret": bool(settings.webhook_secret),
            "email_encryption_key": bool(settings.email_encryption_key),
            "secret_key": not settings.secret_key_is_generated(),
            "sentry": bool(settings.sentry_dsn),
        },
        "features": feature_flags(settings),
        "errors": problems["errors"],
        "warnings": problems["warnings"],
    }
