# orbit_api/routes/assets.py
from __future__ import annotations

from datetime import date, datetime
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.logging import get_structlog_logger
from orbit_api.db.queries import (
    apply_update,
    ensure_in_org,
    get_tenant_row_or_404,
    paginate,
    soft_delete,
    tenant_query,
)
from orbit_api.db.session import get_session
from orbit_api.middleware.auth import WRITE_ROLES, get_current_org_id, get_current_user, require_role
from orbit_api.models.asset import ASSET_STATUSES, ASSET_TYPES, Asset
from orbit_api.models.campaign import Campaign
from orbit_api.models.company import Company
from orbit_api.schemas.common import PaginatedResponse, PaginationParams
from orbit_api.services import audit
from orbit_api.services.validation import clean_choice

logger = get_structlog_logger()

router = APIRouter(prefix="/assets", tags=["assets"])


class AssetCreate(BaseModel):
    campaign_id: Optional[UUID] = None
    company_id: Optional[UUID] = None
    asset_type: str
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    file_url: Optional[str] = Field(None, max_length=1000)
    landing_page_url: Optional[str] = Field(None, max_length=1000)
    status: str = "draft"
    delivered_date: Optional[date] = None

    @field_validator("asset_type")
    def validate_asset_type(cls, v):
        return clean_choice(v, ASSET_TYPES, "asset_type")

    @field_validator("status")
    def validate_status(cls, v):
        return clean_choice(v, ASSET_STATUSES, "status")


class AssetUpdate(BaseModel):
    campaign_id: Optional[UUID] = None
    company_id: Optional[UUID] = None
    asset_type: Optional[str] = None
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    file_url: Optional[str] = Field(None, max_length=1000)
    landing_page_url: Optional[str] = Field(None, max_length=1000)
    status: Optional[str] = None
    delivered_date: Optional[date] = None

    @field_validator("asset_type")
    def validate_asset_type(cls, v):
        return clean_choice(v, ASSET_TYPES, "asset_type")

    @field_validator("status")
    def validate_status(cls, v):
        return clean_choice(v, ASSET_STATUSES, "status")


class AssetResponse(AssetCreate):
    id: UUID
    organization_id: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


async def check_asset_references(session: AsyncSession, organization_id: UUID, values: Dict) -> None:
    await ensure_in_org(session, Campaign, values.get("campaign_id"), organization_id)
    await ensure_in_org(session, Company, values.get("company_id"), organization_id)


@router.get("", response_model=PaginatedResponse[AssetResponse])
async def list_assets(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
    pagination: PaginationParams = Depends(),
    campaign_id: Optional[UUID] = Query(None),
    company_id: Optional[UUID] = Query(None),
    asset_type: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
):
    stmt = tenant_query(Asset, organization_id)

    if campaign_id:
        stmt = stmt.where(Asset.campaign_id == campaign_id)
    if company_id:
        stmt = stmt.where(Asset.company_id == company_id)
    if asset_type:
        stmt = stmt.where(Asset.asset_type == asset_type)
    if status_filter:
        stmt = stmt.where(Asset.status == status_filter)

    items, total = await paginate(session, stmt.order_by(Asset.created_at.desc()), pagination)
    return PaginatedResponse[AssetResponse].build(items, total, pagination)


@router.post("", response_model=AssetResponse, status_code=status.HTTP_201_CREATED)
async def create_asset(
    asset_data: AssetCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)

    values = asset_data.model_dump()
    await check_asset_references(session, organization_id, values)

    asset = Asset(organization_id=organization_id, **values)
    session.add(asset)

    try:
        await audit.log_create(session, "asset", asset, current_user)
        await session.commit()
        await session.refresh(asset)

        logger.info("asset.created", asset_id=str(asset.id), asset_type=asset.asset_type)
        return asset

    except Exception as e:
        await session.rollback()
        logger.error("asset.creation_failed", error=str(e))
        raise


@router.get("/{asset_id}", response_model=AssetResponse)
async def get_asset(
    asset_id: UUID,
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    return await get_tenant_row_or_404(session, Asset, asset_id, organization_id)


@router.patch("/{asset_id}", response_model=AssetResponse)
async def update_asset(
    asset_id: UUID,
    asset_data: AssetUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    asset = await get_tenant_row_or_404(session, Asset, asset_id, organization_id)

    update_data = asset_data.model_dump(exclude_unset=True)
    await check_asset_references(session, organization_id, update_data)
    if update_data.get("status") == "delivered" and not asset.delivered_date:
        update_data.setdefault("delivered_date", date.today())

    before = audit.snapshot(asset)
    apply_update(asset, update_data)
    await audit.log_update(session, "asset", asset, before, current_user)
    await session.commit()
    await session.refresh(asset)

    logger.info("asset.updated", asset_id=str(asset.id), fields=list(update_data.keys()))
    return asset


@router.delete("/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_asset(
    asset_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    asset = await get_tenant_row_or_404(session, Asset, asset_id, organization_id)

    soft_delete(asset)
    await audit.log_delete(session, "asset", asset, current_user)
    await session.commit()

    logger.info("asset.deleted", asset_id=str(asset_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
