# orbit_api/routes/verticals.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.exceptions import ConflictError
from orbit_api.core.logging import get_structlog_logger
from orbit_api.db.queries import (
    apply_update,
    ensure_not_referenced,
    get_tenant_row_or_404,
    paginate,
    soft_delete,
    tenant_query,
)
from orbit_api.db.session import get_session
from orbit_api.middleware.auth import WRITE_ROLES, get_current_org_id, get_current_user, require_role
from orbit_api.models.campaign import Campaign
from orbit_api.models.company import Company
from orbit_api.models.playbook import PlaybookTemplate
from orbit_api.models.vertical import Vertical
from orbit_api.schemas.common import PaginatedResponse, PaginationParams
from orbit_api.services import audit

logger = get_structlog_logger()

router = APIRouter(prefix="/verticals", tags=["verticals"])

B2B_B2C_PATTERN = "^(B2B|B2C|Both)$"
TIER_PATTERN = "^(tier_1|tier_2|tier_3|borderline|eliminated)$"

VERTICAL_REFERENCES = (
    ("companies", Company, "vertical_id"),
    ("campaigns", Campaign, "vertical_id"),
    ("playbook_templates", PlaybookTemplate, "vertical_id"),
)


class VerticalCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    sector: Optional[str] = Field(None, max_length=200)
    b2b_b2c: Optional[str] = Field(None, pattern=B2B_B2C_PATTERN)
    naics_code: Optional[str] = Field(None, max_length=20)
    revenue_floor: Optional[int] = Field(None, ge=0)
    typical_revenue_range: Optional[str] = Field(None, max_length=100)
    typical_marketing_budget_pct: Optional[float] = Field(None, ge=0, le=100)
    key_decision_maker_title: Optional[str] = Field(None, max_length=200)
    tier: Optional[str] = Field(None, pattern=TIER_PATTERN)
    notes: Optional[str] = None


class VerticalUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    sector: Optional[str] = Field(None, max_length=200)
    b2b_b2c: Optional[str] = Field(None, pattern=B2B_B2C_PATTERN)
    naics_code: Optional[str] = Field(None, max_length=20)
    revenue_floor: Optional[int] = Field(None, ge=0)
    typical_revenue_range: Optional[str] = Field(None, max_length=100)
    typical_marketing_budget_pct: Optional[float] = Field(None, ge=0, le=100)
    key_decision_maker_title: Optional[str] = Field(None, max_length=200)
    tier: Optional[str] = Field(None, pattern=TIER_PATTERN)
    notes: Optional[str] = None


class VerticalResponse(VerticalCreate):
    id: UUID
    organization_id: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


async def check_vertical_conflicts(
    session: AsyncSession,
    organization_id: UUID,
    name: str,
    exclude_id: Optional[UUID] = None,
) -> None:
    stmt = tenant_query(Vertical, organization_id).where(func.lower(Vertical.name) == name.lower())
    if exclude_id:
        stmt = stmt.where(Vertical.id != exclude_id)

    existing = (await session.execute(stmt)).scalars().first()
    if existing:
        raise ConflictError(
            message=f"Vertical '{name}' already exists",
            details={"name": name, "existing_id": str(existing.id)},
        )


@router.get("", response_model=PaginatedResponse[VerticalResponse])
async def list_verticals(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
    pagination: PaginationParams = Depends(),
    tier: Optional[str] = Query(None, pattern=TIER_PATTERN),
    search: Optional[str] = Query(None, min_length=1, max_length=100),
):
    stmt = tenant_query(Vertical, organization_id)

    if tier:
        stmt = stmt.where(Vertical.tier == tier)
    if search:
        search_term = f"%{search}%"
        stmt = stmt.where(or_(Vertical.name.ilike(search_term), Vertical.sector.ilike(search_term)))

    items, total = await paginate(session, stmt.order_by(Vertical.created_at.desc()), pagination)
    return PaginatedResponse[VerticalResponse].build(items, total, pagination)


@router.post("", response_model=VerticalResponse, status_code=status.HTTP_201_CREATED)
async def create_vertical(
    vertical_data: VerticalCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    await check_vertical_conflicts(session, organization_id, vertical_data.name)

    vertical = Vertical(organization_id=organization_id, **vertical_data.model_dump())
    session.add(vertical)

    try:
        await audit.log_create(session, "vertical", vertical, current_user)
        await session.commit()
        await session.refresh(vertical)

        logger.info("vertical.created", vertical_id=str(vertical.id), name=vertical.name)
        return vertical

    except Exception as e:
        await session.rollback()
        logger.error("vertical.creation_failed", error=str(e))
        raise


@router.get("/{vertical_id}", response_model=VerticalResponse)
async def get_vertical(
    vertical_id: UUID,
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    return await get_tenant_row_or_404(session, Vertical, vertical_id, organization_id)


@router.patch("/{vertical_id}", response_model=VerticalResponse)
async def update_vertical(
    vertical_id: UUID,
    vertical_data: VerticalUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    vertical = await get_tenant_row_or_404(session, Vertical, vertical_id, organization_id)

    update_data = vertical_data.model_dump(exclude_unset=True)
    if update_data.get("name"):
        await check_vertical_conflicts(session, organization_id, update_data["name"], exclude_id=vertical.id)

    before = audit.snapshot(vertical)
    apply_update(vertical, update_data)
    await audit.log_update(session, "vertical", vertical, before, current_user)
    await session.commit()
    await session.refresh(vertical)

    logger.info("vertical.updated", vertical_id=str(vertical.id), fields=list(update_data.keys()))
    return vertical


@router.delete("/{vertical_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_vertical(
    vertical_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    vertical = await get_tenant_row_or_404(session, Vertical, vertical_id, organization_id)
    await ensure_not_referenced(session, vertical, VERTICAL_REFERENCES)

    soft_delete(vertical)
    await audit.log_delete(session, "vertical", vertical, current_user)
    await session.commit()

    logger.info("vertical.deleted", vertical_id=str(vertical_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
