# orbit_api/routes/email_templates.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional
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
from orbit_api.models.campaign import Campaign
from orbit_api.models.contact import DMU_ROLES
from orbit_api.models.email import EmailTemplate
from orbit_api.models.playbook import PlaybookStep
from orbit_api.schemas.common import PaginatedResponse, PaginationParams
from orbit_api.services import audit
from orbit_api.services.merge_fields import unknown_merge_fields
from orbit_api.services.validation import clean_choice

logger = get_structlog_logger()

router = APIRouter(prefix="/email-templates", tags=["email-templates"])

TEMPLATE_LABEL = "Email template"


class EmailTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    subject_line: str = Field(..., min_length=1, max_length=500)
    subject_line_alt: Optional[str] = Field(None, max_length=500)
    body: str = Field(..., min_length=1)
    playbook_step_id: Optional[UUID] = None
    campaign_id: Optional[UUID] = None
    target_contact_role: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("target_contact_role")
    def validate_role(cls, v):
        return clean_choice(v, DMU_ROLES, "target_contact_role")


class EmailTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    subject_line: Optional[str] = Field(None, min_length=1, max_length=500)
    subject_line_alt: Optional[str] = Field(None, max_length=500)
    body: Optional[str] = Field(None, min_length=1)
    playbook_step_id: Optional[UUID] = None
    campaign_id: Optional[UUID] = None
    target_contact_role: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("target_contact_role")
    def validate_role(cls, v):
        return clean_choice(v, DMU_ROLES, "target_contact_role")


class EmailTemplateResponse(EmailTemplateCreate):
    id: UUID
    organization_id: UUID
    unknown_merge_fields: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


def template_response(template: EmailTemplate) -> EmailTemplateResponse:
    response = EmailTemplateResponse.model_validate(template)
    response.unknown_merge_fields = sorted(
        set(unknown_merge_fields(template.subject_line))
        | set(unknown_merge_fields(template.subject_line_alt or ""))
        | set(unknown_merge_fields(template.body))
    )
    return response


async def check_template_references(session: AsyncSession, organization_id: UUID, values: Dict) -> None:
    await ensure_in_org(session, PlaybookStep, values.get("playbook_step_id"), organization_id, "Playbook step")
    await ensure_in_org(session, Campaign, values.get("campaign_id"), organization_id)


@router.get("", response_model=PaginatedResponse[EmailTemplateResponse])
async def list_email_templates(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
    pagination: PaginationParams = Depends(),
    playbook_step_id: Optional[UUID] = Query(None),
    campaign_id: Optional[UUID] = Query(None),
):
    stmt = tenant_query(EmailTemplate, organization_id)

    if playbook_step_id:
        stmt = stmt.where(EmailTemplate.playbook_step_id == playbook_step_id)
    if campaign_id:
        stmt = stmt.where(EmailTemplate.campaign_id == campaign_id)

    items, total = await paginate(session, stmt.order_by(EmailTemplate.created_at.desc()), pagination)
    return PaginatedResponse[EmailTemplateResponse].build(
        [template_response(item) for item in items], total, pagination
    )


@router.post("", response_model=EmailTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_email_template(
    template_data: EmailTemplateCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)

    values = template_data.model_dump()
    await check_template_references(session, organization_id, values)

    template = EmailTemplate(organization_id=organization_id, **values)
    session.add(template)

    try:
        await audit.log_create(session, "email_template", template, current_user)
        await session.commit()
        await session.refresh(template)

        logger.info("email_template.created", email_template_id=str(template.id), name=template.name)
        return template_response(template)

    except Exception as e:
        await session.rollback()
        logger.error("email_template.creation_failed", error=str(e))
        raise


@router.get("/{template_id}", response_model=EmailTemplateResponse)
async def get_email_template(
    template_id: UUID,
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    template = await get_tenant_row_or_404(session, EmailTemplate, template_id, organization_id, TEMPLATE_LABEL)
    return template_response(template)


@router.patch("/{template_id}", response_model=EmailTemplateResponse)
async def update_email_template(
    template_id: UUID,
    template_data: EmailTemplateUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    template = await get_tenant_row_or_404(session, EmailTemplate, template_id, organization_id, TEMPLATE_LABEL)

    update_data = template_data.model_dump(exclude_unset=True)
    await check_template_references(session, organization_id, update_data)

    before = audit.snapshot(template)
    apply_update(template, update_data)
    await audit.log_update(session, "email_template", template, before, current_user)
    await session.commit()
    await session.refresh(template)

    logger.info("email_template.updated", email_template_id=str(template.id), fields=list(update_data.keys()))
    return template_response(template)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_email_template(
    template_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    template = await get_tenant_row_or_404(session, EmailTemplate, template_id, organization_id, TEMPLATE_LABEL)

    soft_delete(template)
    await audit.log_delete(session, "email_template", template, current_user)
    await session.commit()

    logger.info("email_template.deleted", email_template_id=str(template_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
