# orbit_api/routes/campaigns.py
from __future__ import annotations

from datetime import date, datetime
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.exceptions import ConflictError
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
from orbit_api.models.campaign import CAMPAIGN_STATUSES, Campaign
from orbit_api.models.company import Company
from orbit_api.models.market import Market
from orbit_api.models.playbook import PlaybookTemplate
from orbit_api.models.vertical import Vertical
from orbit_api.schemas.common import PaginatedResponse, PaginationParams
from orbit_api.services import audit
from orbit_api.services.validation import clean_choice

logger = get_structlog_logger()

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


class CampaignFields(BaseModel):
    playbook_template_id: Optional[UUID] = None
    market_id: Optional[UUID] = None
    vertical_id: Optional[UUID] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    current_step: Optional[int] = Field(None, ge=1)
    pivot_reason: Optional[str] = None
    pivot_to_campaign_id: Optional[UUID] = None
    assigned_to: Optional[UUID] = None
    value_proposition: Optional[str] = None
    primary_wedge: Optional[str] = None
    backup_trigger: Optional[str] = None
    success_criteria: Optional[str] = None
    research_doc_id: Optional[UUID] = None
    sequence_doc_id: Optional[UUID] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class CampaignCreate(CampaignFields):
    name: str = Field(..., min_length=1, max_length=255)
    company_id: UUID
    status: str = "planned"
    current_step: int = Field(default=1, ge=1)

    @field_validator("status")
    def validate_status(cls, v):
        return clean_choice(v, CAMPAIGN_STATUSES, "status")


class CampaignUpdate(CampaignFields):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    company_id: Optional[UUID] = None
    status: Optional[str] = None

    @field_validator("status")
    def validate_status(cls, v):
        return clean_choice(v, CAMPAIGN_STATUSES, "status")


class CampaignResponse(BaseModel):
    id: UUID
    organization_id: UUID
    name: str
    company_id: UUID
    playbook_template_id: Optional[UUID] = None
    market_id: Optional[UUID] = None
    vertical_id: Optional[UUID] = None
    status: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    current_step: int
    pivot_reason: Optional[str] = None
    pivot_to_campaign_id: Optional[UUID] = None
    assigned_to: Optional[UUID] = None
    value_proposition: Optional[str] = None
    primary_wedge: Optional[str] = None
    backup_trigger: Optional[str] = None
    success_criteria: Optional[str] = None
    research_doc_id: Optional[UUID] = None
    sequence_doc_id: Optional[UUID] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


async def check_campaign_references(session: AsyncSession, organization_id: UUID, values: Dict) -> None:
    await ensure_in_org(session, Company, values.get("company_id"), organization_id)
    await ensure_in_org(session, Market, values.get("market_id"), organization_id)
    await ensure_in_org(session, Vertical, values.get("vertical_id"), organization_id)
    await ensure_in_org(
        session, PlaybookTemplate, values.get("playbook_template_id"), organization_id, "Playbook template"
    )
    await ensure_in_org(session, Campaign, values.get("pivot_to_campaign_id"), organization_id)


async def check_campaign_name(
    session: AsyncSession,
    organization_id: UUID,
    name: str,
    exclude_id: Optional[UUID] = None,
) -> None:
    stmt = tenant_query(Campaign, organization_id).where(func.lower(Campaign.name) == name.strip().lower())
    if exclude_id:
        stmt = stmt.where(Campaign.id != exclude_id)

    existing = (await session.execute(stmt)).scalars().first()
    if existing:
        raise ConflictError(
            message=f"A campaign named '{name}' already exists",
            details={"name": name, "existing_id": str(existing.id)},
        )


@router.get("", response_model=PaginatedResponse[CampaignResponse])
async def list_campaigns(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
    pagination: PaginationParams = Depends(),
    status_filter: Optional[str] = Query(None, alias="status"),
    company_id: Optional[UUID] = Query(None),
    market_id: Optional[UUID] = Query(None),
    vertical_id: Optional[UUID] = Query(None),
    assigned_to: Optional[UUID] = Query(None),
):
    stmt = tenant_query(Campaign, organization_id)

    if status_filter:
        stmt = stmt.where(Campaign.status == status_filter)
    if company_id:
        stmt = stmt.where(Campaign.company_id == company_id)
    if market_id:
        stmt = stmt.where(Campaign.market_id == market_id)
    if vertical_id:
        stmt = stmt.where(Campaign.vertical_id == vertical_id)
    if assigned_to:
        stmt = stmt.where(Campaign.assigned_to == assigned_to)

    items, total = await paginate(session, stmt.order_by(Campaign.created_at.desc()), pagination)
    return PaginatedResponse[CampaignResponse].build(items, total, pagination)


@router.post("", response_model=CampaignResponse, status_code=status.HTTP_201_CREATED)
async def create_campaign(
    campaign_data: CampaignCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)

    values = campaign_data.model_dump()
    await check_campaign_references(session, organization_id, values)
    await check_campaign_name(session, organization_id, values["name"])

    campaign = Campaign(organization_id=organization_id, **values)
    session.add(campaign)

    try:
        await audit.log_create(session, "campaign", campaign, current_user)
        await session.commit()
        await session.refresh(campaign)

        logger.info(
            "campaign.created",
            campaign_id=str(campaign.id),
            company_id=str(campaign.company_id),
            status=campaign.status,
        )
        return campaign

    except Exception as e:
        await session.rollback()
        logger.error("campaign.creation_failed", error=str(e))
        raise


@router.get("/{campaign_id}", response_model=CampaignResponse)
async def get_campaign(
    campaign_id: UUID,
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    return await get_tenant_row_or_404(session, Campaign, campaign_id, organization_id)


@router.patch("/{campaign_id}", response_model=CampaignResponse)
async def update_campaign(
    campaign_id: UUID,
    campaign_data: CampaignUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    campaign = await get_tenant_row_or_404(session, Campaign, campaign_id, organization_id)

    update_data = campaign_data.model_dump(exclude_unset=True)
    await check_campaign_references(session, organization_id, update_data)
    if update_data.get("name") and update_data["name"].lower() != campaign.name.lower():
        await check_campaign_name(session, organization_id, update_data["name"], exclude_id=campaign.id)

    previous_status = campaign.status
    before = audit.snapshot(campaign)
    apply_update(campaign, update_data)
    await audit.log_update(session, "campaign", campaign, before, current_user)
    await session.commit()
    await session.refresh(campaign)

    logger.info(
        "campaign.updated",
        campaign_id=str(campaign.id),
        fields=list(update_data.keys()),
        previous_status=previous_status,
        status=campaign.status,
    )
    return campaign


@router.delete("/{campaign_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_campaign(
    campaign_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    campaign = await get_tenant_row_or_404(session, Campaign, campaign_id, organization_id)

    soft_delete(campaign)
    await audit.log_delete(session, "campaign", campaign, current_user)
    await session.commit()

    logger.info("campaign.deleted", campaign_id=str(campaign_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
