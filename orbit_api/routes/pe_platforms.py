# orbit_api/routes/pe_platforms.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

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
from orbit_api.models.company import Company
from orbit_api.models.pe_platform import PEPlatform
from orbit_api.schemas.common import PaginatedResponse, PaginationParams
from orbit_api.services import audit
from orbit_api.services.validation import clean_website

logger = get_structlog_logger()

router = APIRouter(prefix="/pe-platforms", tags=["pe-platforms"])


class PEPlatformCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    parent_firm: Optional[str] = Field(None, max_length=255)
    estimated_valuation: Optional[int] = Field(None, ge=0)
    brand_count: Optional[int] = Field(None, ge=0)
    headquarters: Optional[str] = Field(None, max_length=255)
    website: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None

    @field_validator("website")
    def validate_website(cls, v):
        return clean_website(v)


class PEPlatformUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    parent_firm: Optional[str] = Field(None, max_length=255)
    estimated_valuation: Optional[int] = Field(None, ge=0)
    brand_count: Optional[int] = Field(None, ge=0)
    headquarters: Optional[str] = Field(None, max_length=255)
    website: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None

    @field_validator("website")
    def validate_website(cls, v):
        return clean_website(v)


class PEPlatformResponse(PEPlatformCreate):
    id: UUID
    organization_id: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


@router.get("", response_model=PaginatedResponse[PEPlatformResponse])
async def list_pe_platforms(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
    pagination: PaginationParams = Depends(),
    search: Optional[str] = Query(None, min_length=1, max_length=100),
):
    stmt = tenant_query(PEPlatform, organization_id)
    if search:
        stmt = stmt.where(PEPlatform.name.ilike(f"%{search}%"))

    items, total = await paginate(session, stmt.order_by(PEPlatform.created_at.desc()), pagination)
    return PaginatedResponse[PEPlatformResponse].build(items, total, pagination)


@router.post("", response_model=PEPlatformResponse, status_code=status.HTTP_201_CREATED)
async def create_pe_platform(
    platform_data: PEPlatformCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)

    platform = PEPlatform(organization_id=organization_id, **platform_data.model_dump())
    session.add(platform)

    try:
        await audit.log_create(session, "pe_platform", platform, current_user)
        await session.commit()
        await session.refresh(platform)

        logger.info("pe_platform.created", pe_platform_id=str(platform.id), name=platform.name)
        return platform

    except Exception as e:
        await session.rollback()
        logger.error("pe_platform.creation_failed", error=str(e))
        raise


@router.get("/{platform_id}", response_model=PEPlatformResponse)
async def get_pe_platform(
    platform_id: UUID,
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    return await get_tenant_row_or_404(session, PEPlatform, platform_id, organization_id, "PE platform")


@router.patch("/{platform_id}", response_model=PEPlatformResponse)
async def update_pe_platform(
    platform_id: UUID,
    platform_data: PEPlatformUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    platform = await get_tenant_row_or_404(session, PEPlatform, platform_id, organization_id, "PE platform")

    before = audit.snapshot(platform)
    apply_update(platform, platform_data.model_dump(exclude_unset=True))
    await audit.log_update(session, "pe_platform", platform, before, current_user)
    await session.commit()
    await session.refresh(platform)

    logger.info("pe_platform.updated", pe_platform_id=str(platform.id))
    return platform


@router.delete("/{platform_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pe_platform(
    platform_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    platform = await get_tenant_row_or_404(session, PEPlatform, platform_id, organization_id, "PE platform")
    await ensure_not_referenced(session, platform, [("companies", Company, "pe_platform_id")], "PE platform")

    soft_delete(platform)
    await audit.log_delete(session, "pe_platform", platform, current_user)
    await session.commit()

    logger.info("pe_platform.deleted", pe_platform_id=str(platform_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
