# orbit_api/routes/playbooks.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.exceptions import ConflictError
from orbit_api.core.logging import get_structlog_logger
from orbit_api.db.queries import (
    apply_update,
    ensure_in_org,
    ensure_not_referenced,
    get_tenant_row_or_404,
    paginate,
    soft_delete,
    tenant_query,
)
from orbit_api.db.session import get_session
from orbit_api.middleware.auth import WRITE_ROLES, get_current_org_id, get_current_user, require_role
from orbit_api.models.campaign import Campaign
from orbit_api.models.playbook import CHANNELS, PlaybookStep, PlaybookTemplate
from orbit_api.models.vertical import Vertical
from orbit_api.schemas.common import PaginatedResponse, PaginationParams
from orbit_api.services import audit
from orbit_api.services.validation import clean_choice

logger = get_structlog_logger()

router = APIRouter(tags=["playbooks"])

TEMPLATE_LABEL = "Playbook template"
STEP_LABEL = "Playbook step"


class PlaybookTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    vertical_id: Optional[UUID] = None
    description: Optional[str] = None
    total_duration_days: Optional[int] = Field(None, ge=0)
    is_active: bool = True


class PlaybookTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    vertical_id: Optional[UUID] = None
    description: Optional[str] = None
    total_duration_days: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class PlaybookTemplateResponse(PlaybookTemplateCreate):
    id: UUID
    organization_id: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PlaybookStepCreate(BaseModel):
    step_number: int = Field(..., ge=1)
    day_offset: int = Field(default=0, ge=0)
    channel: str
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    asset_type_required: Optional[str] = Field(None, max_length=50)
    is_pivot_trigger: bool = False

    @field_validator("channel")
    def validate_channel(cls, v):
        return clean_choice(v, CHANNELS, "channel")


class PlaybookStepUpdate(BaseModel):
    step_number: Optional[int] = Field(None, ge=1)
    day_offset: Optional[int] = Field(None, ge=0)
    channel: Optional[str] = None
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    asset_type_required: Optional[str] = Field(None, max_length=50)
    is_pivot_trigger: Optional[bool] = None

    @field_validator("channel")
    def validate_channel(cls, v):
        return clean_choice(v, CHANNELS, "channel")


class PlaybookStepResponse(BaseModel):
    id: UUID
    organization_id: UUID
    playbook_template_id: UUID
    step_number: int
    day_offset: int
    channel: str
    title: str
    description: Optional[str] = None
    asset_type_required: Optional[str] = None
    is_pivot_trigger: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


async def check_step_number(
    session: AsyncSession,
    organization_id: UUID,
    template_id: UUID,
    step_number: int,
    exclude_id: Optional[UUID] = None,
) -> None:
    stmt = tenant_query(PlaybookStep, organization_id).where(
        PlaybookStep.playbook_template_id == template_id,
        PlaybookStep.step_number == step_number,
    )
    if exclude_id:
        stmt = stmt.where(PlaybookStep.id != exclude_id)

    existing = (await session.execute(stmt)).scalars().first()
    if existing:
        raise ConflictError(
            message=f"Step {step_number} already exists in this playbook",
            details={"step_number": step_number, "existing_id": str(existing.id)},
        )


# Templates
@router.get("/playbook-templates", response_model=PaginatedResponse[PlaybookTemplateResponse])
async def list_playbook_templates(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
    pagination: PaginationParams = Depends(),
    vertical_id: Optional[UUID] = Query(None),
    is_active: Optional[bool] = Query(None),
):
    stmt = tenant_query(PlaybookTemplate, organization_id)

    if vertical_id:
        stmt = stmt.where(PlaybookTemplate.vertical_id == vertical_id)
    if is_active is not None:
        stmt = stmt.where(PlaybookTemplate.is_active == is_active)

    items, total = await paginate(session, stmt.order_by(PlaybookTemplate.created_at.desc()), pagination)
    return PaginatedResponse[PlaybookTemplateResponse].build(items, total, pagination)


@router.post(
    "/playbook-templates",
    response_model=PlaybookTemplateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_playbook_template(
    template_data: PlaybookTemplateCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    await ensure_in_org(session, Vertical, template_data.vertical_id, organization_id)

    template = PlaybookTemplate(organization_id=organization_id, **template_data.model_dump())
    session.add(template)

    try:
        await audit.log_create(session, "playbook_template", template, current_user)
        await session.commit()
        await session.refresh(template)

        logger.info("playbook_template.created", playbook_template_id=str(template.id), name=template.name)
        return template

    except Exception as e:
        await session.rollback()
        logger.error("playbook_template.creation_failed", error=str(e))
        raise


@router.get("/playbook-templates/{template_id}", response_model=PlaybookTemplateResponse)
async def get_playbook_template(
    template_id: UUID,
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    return await get_tenant_row_or_404(session, PlaybookTemplate, template_id, organization_id, TEMPLATE_LABEL)


@router.patch("/playbook-templates/{template_id}", response_model=PlaybookTemplateResponse)
async def update_playbook_template(
    template_id: UUID,
    template_data: PlaybookTemplateUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    template = await get_tenant_row_or_404(session, PlaybookTemplate, template_id, organization_id, TEMPLATE_LABEL)

    update_data = template_data.model_dump(exclude_unset=True)
    await ensure_in_org(session, Vertical, update_data.get("vertical_id"), organization_id)

    before = audit.snapshot(template)
    apply_update(template, update_data)
    await audit.log_update(session, "playbook_template", template, before, current_user)
    await session.commit()
    await session.refresh(template)

    logger.info("playbook_template.updated", playbook_template_id=str(template.id), fields=list(update_data.keys()))
    return template


@router.delete("/playbook-templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_playbook_template(
    template_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    template = await get_tenant_row_or_404(session, PlaybookTemplate, template_id, organization_id, TEMPLATE_LABEL)
    await ensure_not_referenced(
        session,
        template,
        [("campaigns", Campaign, "playbook_template_id")],
        TEMPLATE_LABEL,
    )

    soft_delete(template)
    await audit.log_delete(session, "playbook_template", template, current_user)
    await session.commit()

    logger.info("playbook_template.deleted", playbook_template_id=str(template_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Steps
@router.get("/playbook-templates/{template_id}/steps", response_model=List[PlaybookStepResponse])
async def list_playbook_steps(
    template_id: UUID,
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    """Steps of a playbook in execution order."""
    await get_tenant_row_or_404(session, PlaybookTemplate, template_id, organization_id, TEMPLATE_LABEL)

    stmt = (
        tenant_query(PlaybookStep, organization_id)
        .where(PlaybookStep.playbook_template_id == template_id)
        .order_by(PlaybookStep.step_number)
    )
    return list((await session.execute(stmt)).scalars().all())


@router.post(
    "/playbook-templates/{template_id}/steps",
    response_model=PlaybookStepResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_playbook_step(
    template_id: UUID,
    step_data: PlaybookStepCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    await get_tenant_row_or_404(session, PlaybookTemplate, template_id, organization_id, TEMPLATE_LABEL)
    await check_step_number(session, organization_id, template_id, step_data.step_number)

    step = PlaybookStep(
        organization_id=organization_id,
        playbook_template_id=template_id,
        **step_data.model_dump(),
    )
    session.add(step)

    try:
        await audit.log_create(session, "playbook_step", step, current_user)
        await session.commit()
        await session.refresh(step)

        logger.info(
            "playbook_step.created",
            playbook_step_id=str(step.id),
            playbook_template_id=str(template_id),
            step_number=step.step_number,
        )
        return step

    except Exception as e:
        await session.rollback()
        logger.error("playbook_step.creation_failed", error=str(e))
        raise


@router.patch("/playbook-steps/{step_id}", response_model=PlaybookStepResponse)
async def update_playbook_step(
    step_id: UUID,
    step_data: PlaybookStepUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    step = await get_tenant_row_or_404(session, PlaybookStep, step_id, organization_id, STEP_LABEL)

    update_data = step_data.model_dump(exclude_unset=True)
    new_number = update_data.get("step_number")
    if new_number and new_number != step.step_number:
        await check_step_number(session, organization_id, step.playbook_template_id, new_number, exclude_id=step.id)

    before = audit.snapshot(step)
    apply_update(step, update_data)
    await audit.log_update(session, "playbook_step", step, before, current_user)
    await session.commit()
    await session.refresh(step)

    logger.info("playbook_step.updated", playbook_step_id=str(step.id), fields=list(update_data.keys()))
    return step


@router.delete("/playbook-steps/{step_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_playbook_step(
    step_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    step = await get_tenant_row_or_404(session, PlaybookStep, step_id, organization_id, STEP_LABEL)

    soft_delete(step)
    await audit.log_delete(session, "playbook_step", step, current_user)
    await session.commit()

    logger.info("playbook_step.deleted", playbook_step_id=str(step_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
