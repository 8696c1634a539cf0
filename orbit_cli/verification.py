# orbit_cli/verification.py
"""
Operations behind the orbit-cli commands.
All functions return a VerificationResult: (success, message, data).
"""
from __future__ import annotations

import traceback
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, Optional
from uuid import UUID

import httpx

from orbit_api.core.config import settings
from orbit_api.core.exceptions import BaseAPIException
from orbit_api.core.startup import collect_environment_problems, feature_flags
from orbit_api.db.session import transaction_session
from orbit_api.middleware.auth import TokenManager
from orbit_api.models.organization import Organization
from orbit_api.services.audit import purge_audit_logs
from orbit_api.services.csv_export import export_csv, export_filename
from orbit_api.services.csv_import import import_records
from orbit_api.utils.csv_parser import parse_csv_rows
from orbit_api.utils.excel_parser import parse_excel_rows


@dataclass
class VerificationResult:
    """Structured result from CLI operations."""
    success: bool
    message: str
    data: Dict = None

    def __post_init__(self):
        if self.data is None:
            self.data = {}


def check_environment() -> VerificationResult:
    """Run the startup validation without raising."""
    problems = collect_environment_problems(settings)
    data = {
        "environment": settings.environment,
        "database": settings.database_dialect,
        "features": feature_flags(settings),
        "errors": problems["errors"],
        "warnings": problems["warnings"],
    }

    if problems["errors"]:
        return VerificationResult(
            success=False,
            message=f"{len(problems['errors'])} configuration error(s) in {settings.environment}",
            data=data,
        )
    return VerificationResult(success=True, message=f"Environment '{settings.environment}' is valid", data=data)


async def check_api_health(api_url: str = "http://localhost:8000", timeout: float = 5.0) -> VerificationResult:
    """
    Check that the API is running and its health endpoint reports healthy.
    """
    url = f"{api_url.rstrip('/')}{settings.api_prefix}/health"
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.get(url)
    except httpx.RequestError as e:
        return VerificationResult(
            success=False,
            message=f"API not accessible at {api_url}: {str(e)}",
            data={"error": str(e), "url": url},
        )

    try:
        body = response.json()
    except ValueError:
        body = {}

    checks = body.get("checks", {})
    data = {
        "status_code": response.status_code,
        "url": url,
        "status": body.get("status", "unknown"),
        "checks": {name: check.get("status", "unknown") for name, check in checks.items()},
    }

    if response.status_code == 200 and data["status"] in ("healthy", "degraded"):
        return VerificationResult(success=True, message=f"API is {data['status']}", data=data)
    return VerificationResult(
        success=False,
        message=f"API health check failed with status {response.status_code}",
        data=data,
    )


def read_rows(path: Path):
    content = path.read_bytes()
    if path.suffix.lower() == ".xlsx":
        return parse_excel_rows(content)
    return parse_csv_rows(content)


async def run_import(entity: str, path: Path, organization_id: UUID, mode: str = "append") -> VerificationResult:
    """Import a CSV/XLSX file straight into the database for one organization."""
    if not path.exists():
        return VerificationResult(success=False, message=f"File not found: {path}")

    try:
        rows = read_rows(path)
        async with transaction_session() as session:
            if await session.get(Organization, organization_id) is None:
                return VerificationResult(success=False, message=f"Organization {organization_id} not found")
            result = await import_records(
                session,
                organization_id=organization_id,
                entity=entity,
                rows=rows,
                mode=mode,
            )
    except (ValueError, BaseAPIException) as e:
        return VerificationResult(success=False, message=f"Import failed: {str(e)}")

    return VerificationResult(
        success=not result.errors or result.total > 0,
        message=f"Imported {result.total} {entity} ({result.created} created, {result.updated} updated)",
        data=result.to_dict(),
    )


async def run_export(entity: str, organization_id: UUID, output: Optional[Path] = None) -> VerificationResult:
    """Write a CSV export for one organization."""
    try:
        async with transaction_session() as session:
            organization = await session.get(Organization, organization_id)
            if organization is None:
                return VerificationResult(success=False, message=f"Organization {organization_id} not found")
            content = await export_csv(session, organization_id, entity)
            filename = export_filename(entity, organization.slug)
    except BaseAPIException as e:
        return VerificationResult(success=False, message=f"Export failed: {e.message}")

    target = output or Path(filename)
    target.write_text(content, encoding="utf-8", newline="")
    rows = max(content.count("\r\n") - 1, 0)
    return VerificationResult(
        success=True,
        message=f"Exported {rows} {entity} to {target}",
        data={"path": str(target), "rows": rows},
    )


async def run_purge_audit_logs(older_than_days: Optional[int] = None) -> VerificationResult:
    """Delete audit entries older than the retention window, across all organizations."""
    days = settings.audit_log_retention_days if older_than_days is None else older_than_days
    if days <= 0:
        return VerificationResult(success=False, message="Retention must be a positive number of days")

    async with transaction_session() as session:
        purged = await purge_audit_logs(session, days)

    return VerificationResult(
        success=True,
        message=f"Purged {purged} audit log entries older than {days} days",
        data={"purged": purged, "older_than_days": days},
    )


def issue_token(
    user_id: UUID,
    organization_id: UUID,
    role: str = "admin",
    email: Optional[str] = None,
    platform_role: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> VerificationResult:
    """Mint an access token for local development."""
    if settings.is_production:
        return VerificationResult(success=False, message="Refusing to mint tokens in production")

    try:
        token = TokenManager.create_access_token(
            {
                "sub": user_id,
                "email": email,
                "role": role,
                "org_id": organization_id,
                "platform_role": platform_role,
            },
            expires_delta=timedelta(minutes=expires_minutes) if expires_minutes else None,
        )
    except Exception as e:
        return VerificationResult(
            success=False,
            message=f"Token creation failed: {str(e)}",
            data={"traceback": traceback.format_exc()},
        )

    return VerificationResult(success=True, message="Token issued", data={"token": token})
