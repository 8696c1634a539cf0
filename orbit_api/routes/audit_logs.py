# orbit_api/routes/audit_logs.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.exceptions import BadRequestError
from orbit_api.db.queries import paginate, tenant_query
from orbit_api.db.session import get_session
from orbit_api.middleware.auth import get_current_org_id
from orbit_api.models.audit import AUDIT_ACTIONS, AUDIT_ENTITY_TYPES, AuditLog
from orbit_api.schemas.common import PaginatedResponse, PaginationParams
from orbit_api.services.email_events import to_naive_utc

router = APIRouter(prefix="/audit-logs", tags=["audit-logs"])


class AuditLogResponse(BaseModel):
    id: UUID
    organization_id: UUID
    entity_type: str
    entity_id: UUID
    action: str
    user_id: Optional[UUID] = None
    user_email: Optional[str] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    changed_fields: Optional[List[str]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="extra")
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("", response_model=PaginatedResponse[AuditLogResponse])
async def list_audit_logs(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
    pagination: PaginationParams = Depends(),
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[UUID] = Query(None),
    action: Optional[str] = Query(None),
    user_id: Optional[UUID] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
):
    """The tenant's audit trail, newest first."""
    if entity_type and entity_type not in AUDIT_ENTITY_TYPES:
        raise BadRequestError(
            message=f"Unknown entity_type '{entity_type}'",
            details={"allowed": list(AUDIT_ENTITY_TYPES)},
        )
    if action and action not in AUDIT_ACTIONS:
        raise BadRequestError(
            message=f"action must be one of: {', '.join(AUDIT_ACTIONS)}",
            details={"action": action},
        )

    stmt = tenant_query(AuditLog, organization_id)

    if entity_type:
        stmt = stmt.where(AuditLog.entity_type == entity_type)
    if entity_id:
        stmt = stmt.where(AuditLog.entity_id == entity_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if user_id:
        stmt = stmt.where(AuditLog.user_id == user_id)
    if start_date:
        stmt = stmt.where(AuditLog.created_at >= to_naive_utc(start_date))
    if end_date:
        stmt = stmt.where(AuditLog.created_at <= to_naive_utc(end_date))

    stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id)
    items, total = await paginate(session, stmt, pagination)
    return PaginatedResponse[AuditLogResponse].build(items, total, pagination)
