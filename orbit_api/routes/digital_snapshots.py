# orbit_api/routes/digital_snapshots.py
from __future__ import annotations

from datetime import date, datetime
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
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
from orbit_api.models.company import Company
from orbit_api.models.digital_snapshot import DigitalSnapshot
from orbit_api.schemas.common import PaginatedResponse, PaginationParams
from orbit_api.services import audit

logger = get_structlog_logger()

router = APIRouter(prefix="/digital-snapshots", tags=["digital-snapshots"])

SNAPSHOT_LABEL = "Digital snapshot"


class SnapshotMetrics(BaseModel):
    google_rating: Optional[float] = Field(None, ge=0, le=5)
    google_review_count: Optional[int] = Field(None, ge=0)
    yelp_rating: Optional[float] = Field(None, ge=0, le=5)
    yelp_review_count: Optional[int] = Field(None, ge=0)
    bbb_rating: Optional[str] = Field(None, max_length=5)
    facebook_followers: Optional[int] = Field(None, ge=0)
    instagram_followers: Optional[int] = Field(None, ge=0)
    linkedin_followers: Optional[int] = Field(None, ge=0)
    domain_authority: Optional[int] = Field(None, ge=0, le=100)
    page_speed_mobile: Optional[int] = Field(None, ge=0, le=100)
    page_speed_desktop: Optional[int] = Field(None, ge=0, le=100)
    organic_keywords: Optional[int] = Field(None, ge=0)
    monthly_organic_traffic_est: Optional[int] = Field(None, ge=0)
    website_has_ssl: Optional[bool] = None
    website_is_mobile_responsive: Optional[bool] = None
    has_online_booking: Optional[bool] = None
    has_live_chat: Optional[bool] = None
    has_blog: Optional[bool] = None
    notes: Optional[str] = None


class SnapshotCreate(SnapshotMetrics):
    company_id: UUID
    snapshot_date: date = Field(default_factory=date.today)


class SnapshotUpdate(SnapshotMetrics):
    snapshot_date: Optional[date] = None


class SnapshotResponse(SnapshotMetrics):
    id: UUID
    organization_id: UUID
    company_id: UUID
    snapshot_date: date
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


@router.get("", response_model=PaginatedResponse[SnapshotResponse])
async def list_snapshots(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
    pagination: PaginationParams = Depends(),
    company_id: Optional[UUID] = Query(None),
):
    """Snapshots newest first; filter by company to get its history."""
    stmt = tenant_query(DigitalSnapshot, organization_id)
    if company_id:
        stmt = stmt.where(DigitalSnapshot.company_id == company_id)

    stmt = stmt.order_by(DigitalSnapshot.snapshot_date.desc(), DigitalSnapshot.created_at.desc())
    items, total = await paginate(session, stmt, pagination)
    return PaginatedResponse[SnapshotResponse].build(items, total, pagination)


@router.post("", response_model=SnapshotResponse, status_code=status.HTTP_201_CREATED)
async def create_snapshot(
    snapshot_data: SnapshotCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    await ensure_in_org(session, Company, snapshot_data.company_id, organization_id)

    snapshot = DigitalSnapshot(organization_id=organization_id, **snapshot_data.model_dump())
    session.add(snapshot)

    try:
        await audit.log_create(session, "digital_snapshot", snapshot, current_user)
        await session.commit()
        await session.refresh(snapshot)

        logger.info("digital_snapshot.created", snapshot_id=str(snapshot.id), company_id=str(snapshot.company_id))
        return snapshot

    except Exception as e:
        await session.rollback()
        logger.error("digital_snapshot.creation_failed", error=str(e))
        raise


@router.get("/{snapshot_id}", response_model=SnapshotResponse)
async def get_snapshot(
    snapshot_id: UUID,
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    return await get_tenant_row_or_404(session, DigitalSnapshot, snapshot_id, organization_id, SNAPSHOT_LABEL)


@router.patch("/{snapshot_id}", response_model=SnapshotResponse)
async def update_snapshot(
    snapshot_id: UUID,
    snapshot_data: SnapshotUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    snapshot = await get_tenant_row_or_404(session, DigitalSnapshot, snapshot_id, organization_id, SNAPSHOT_LABEL)

    update_data = snapshot_data.model_dump(exclude_unset=True)
    before = audit.snapshot(snapshot)
    apply_update(snapshot, update_data)
    await audit.log_update(session, "digital_snapshot", snapshot, before, current_user)
    await session.commit()
    await session.refresh(snapshot)

    logger.info("digital_snapshot.updated", snapshot_id=str(snapshot.id), fields=list(update_data.keys()))
    return snapshot


@router.delete("/{snapshot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_snapshot(
    snapshot_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    snapshot = await get_tenant_row_or_404(session, DigitalSnapshot, snapshot_id, organization_id, SNAPSHOT_LABEL)

    soft_delete(snapshot)
    await audit.log_delete(session, "digital_snapshot", snapshot, current_user)
    await session.commit()

    logger.info("digital_snapshot.deleted", snapshot_id=str(snapshot_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
