# orbit_api/routes/email_sends.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy import nulls_last
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.config import settings
from orbit_api.core.exceptions import ConflictError
from orbit_api.core.logging import get_structlog_logger
from orbit_api.db.queries import apply_update, ensure_in_org, get_tenant_row_or_404, paginate, tenant_query
from orbit_api.db.session import get_session
from orbit_api.middleware.auth import WRITE_ROLES, get_current_org_id, get_current_user, require_role
from orbit_api.models.activity import Activity
from orbit_api.models.campaign import Campaign
from orbit_api.models.contact import Contact
from orbit_api.models.email import EMAIL_SEND_STATUSES, EmailSend, EmailTemplate
from orbit_api.schemas.common import PaginatedResponse, PaginationParams
from orbit_api.services.email_queue import email_pipeline, email_stats, generate_campaign_queue
from orbit_api.services.validation import clean_choice

logger = get_structlog_logger()

router = APIRouter(prefix="/email-sends", tags=["email-sends"])

SEND_LABEL = "Email send"


class EmailSendCreate(BaseModel):
    recipient_email: EmailStr
    subject_line: str = Field(..., min_length=1, max_length=500)
    from_email: Optional[EmailStr] = None
    subject_line_variant: Optional[str] = Field(None, pattern="^[AB]$")
    body_plain: Optional[str] = None
    body_html: Optional[str] = None
    campaign_id: Optional[UUID] = None
    contact_id: Optional[UUID] = None
    activity_id: Optional[UUID] = None
    email_template_id: Optional[UUID] = None
    scheduled_at: Optional[datetime] = None

    @field_validator("recipient_email")
    def lower_recipient(cls, v):
        return v.lower()


class EmailSendUpdate(BaseModel):
    subject_line: Optional[str] = Field(None, min_length=1, max_length=500)
    body_plain: Optional[str] = None
    body_html: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    status: Optional[str] = None
    ses_message_id: Optional[str] = Field(None, max_length=255)
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @field_validator("status")
    def validate_status(cls, v):
        return clean_choice(v, EMAIL_SEND_STATUSES, "status")


class EmailSendResponse(BaseModel):
    id: UUID
    organization_id: UUID
    campaign_id: Optional[UUID] = None
    contact_id: Optional[UUID] = None
    activity_id: Optional[UUID] = None
    email_template_id: Optional[UUID] = None
    recipient_email: str
    from_email: str
    subject_line: str
    subject_line_variant: Optional[str] = None
    body_plain: Optional[str] = None
    body_html: Optional[str] = None
    ses_message_id: Optional[str] = None
    status: str
    open_count: int
    click_count: int
    first_opened_at: Optional[datetime] = None
    last_opened_at: Optional[datetime] = None
    first_clicked_at: Optional[datetime] = None
    clicked_links: List[Any] = Field(default_factory=list)
    bounced_at: Optional[datetime] = None
    bounce_type: Optional[str] = None
    complained_at: Optional[datetime] = None
    scheduled_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BulkQueueRequest(BaseModel):
    campaign_id: UUID
    start_from_step: Optional[int] = Field(None, ge=1)


class BulkQueueResponse(BaseModel):
    success: bool = True
    created: int
    steps: int
    contacts: int
    message: str


class EmailStatsResponse(BaseModel):
    total: int
    sent: int
    delivered: int
    opened: int
    clicked: int
    replied: int
    bounced: int
    complained: int
    failed: int
    queued: int
    open_rate: int
    click_rate: int
    bounce_rate: int
    reply_rate: int
    days: int


class PipelineContact(BaseModel):
    id: UUID
    first_name: str
    last_name: str
    email: Optional[str] = None


class PipelineCampaign(BaseModel):
    id: UUID
    name: str


class PipelineSend(BaseModel):
    id: UUID
    recipient_email: str
    subject_line: str
    status: str
    scheduled_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    contact: Optional[PipelineContact] = None
    campaign: Optional[PipelineCampaign] = None


class PipelineDay(BaseModel):
    date: str
    day_label: str
    sent: int
    queued: int
    total: int
    is_today: bool


class PipelineSummary(BaseModel):
    today: int
    this_week: int
    total_queued: int
    sent_7d: int


class EmailPipelineResponse(BaseModel):
    daily_volume: List[PipelineDay]
    today_sends: List[PipelineSend]
    week_sends: List[PipelineSend]
    summary: PipelineSummary


async def check_send_references(session: AsyncSession, organization_id: UUID, values: Dict) -> None:
    await ensure_in_org(session, Campaign, values.get("campaign_id"), organization_id)
    await ensure_in_org(session, Contact, values.get("contact_id"), organization_id)
    await ensure_in_org(session, Activity, values.get("activity_id"), organization_id)
    await ensure_in_org(session, EmailTemplate, values.get("email_template_id"), organization_id, "Email template")


@router.get("", response_model=PaginatedResponse[EmailSendResponse])
async def list_email_sends(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
    pagination: PaginationParams = Depends(),
    campaign_id: Optional[UUID] = Query(None),
    contact_id: Optional[UUID] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
):
    stmt = tenant_query(EmailSend, organization_id)

    if campaign_id:
        stmt = stmt.where(EmailSend.campaign_id == campaign_id)
    if contact_id:
        stmt = stmt.where(EmailSend.contact_id == contact_id)
    if status_filter:
        stmt = stmt.where(EmailSend.status == status_filter)

    stmt = stmt.order_by(nulls_last(EmailSend.scheduled_at.desc()), EmailSend.created_at.desc())
    items, total = await paginate(session, stmt, pagination)
    return PaginatedResponse[EmailSendResponse].build(items, total, pagination)


@router.post("", response_model=EmailSendResponse, status_code=status.HTTP_201_CREATED)
async def create_email_send(
    send_data: EmailSendCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)

    values = send_data.model_dump()
    await check_send_references(session, organization_id, values)
    values["from_email"] = values.get("from_email") or settings.default_from_email

    send = EmailSend(organization_id=organization_id, status="queued", **values)
    session.add(send)

    try:
        await session.commit()
        await session.refresh(send)

        logger.info(
            "email_send.queued",
            email_send_id=str(send.id),
            campaign_id=str(send.campaign_id) if send.campaign_id else None,
            scheduled_at=send.scheduled_at.isoformat() if send.scheduled_at else None,
        )
        return send

    except Exception as e:
        await session.rollback()
        logger.error("email_send.creation_failed", error=str(e))
        raise


@router.post("/bulk", response_model=BulkQueueResponse, status_code=status.HTTP_201_CREATED)
async def bulk_queue_email_sends(
    request_data: BulkQueueRequest,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    """Queue every email step of a campaign's playbook for its company's contacts."""
    await require_role(current_user, WRITE_ROLES)

    try:
        result = await generate_campaign_queue(
            session,
            organization_id=organization_id,
            campaign_id=request_data.campaign_id,
            start_from_step=request_data.start_from_step,
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    body = BulkQueueResponse(**result.to_dict())
    if result.created == 0:
        return JSONResponse(status_code=status.HTTP_200_OK, content=body.model_dump())
    return body


@router.get("/stats", response_model=EmailStatsResponse)
async def get_email_stats(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
    campaign_id: Optional[UUID] = Query(None),
    days: int = Query(30, ge=1, le=365),
):
    return await email_stats(session, organization_id=organization_id, campaign_id=campaign_id, days=days)


@router.get("/pipeline", response_model=EmailPipelineResponse)
async def get_email_pipeline(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    """Scheduled volume around today plus today's and this week's sends."""
    return await email_pipeline(session, organization_id=organization_id)


@router.get("/{send_id}", response_model=EmailSendResponse)
async def get_email_send(
    send_id: UUID,
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    return await get_tenant_row_or_404(session, EmailSend, send_id, organization_id, SEND_LABEL)


@router.patch("/{send_id}", response_model=EmailSendResponse)
async def update_email_send(
    send_id: UUID,
    send_data: EmailSendUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    send = await get_tenant_row_or_404(session, EmailSend, send_id, organization_id, SEND_LABEL)

    update_data = send_data.model_dump(exclude_unset=True)
    apply_update(send, update_data)
    await session.commit()
    await session.refresh(send)

    logger.info("email_send.updated", email_send_id=str(send.id), fields=list(update_data.keys()))
    return send


@router.delete("/{send_id}", response_model=EmailSendResponse)
async def cancel_email_send(
    send_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    """Cancel a send that has not left the queue. Sends are never deleted."""
    await require_role(current_user, WRITE_ROLES)
    send = await get_tenant_row_or_404(session, EmailSend, send_id, organization_id, SEND_LABEL)

    if send.status != "queued":
        raise ConflictError(
            message="Email send not found or may not be in queued status",
            code="INVALID_STATE",
            details={"id": str(send_id), "status": send.status},
        )

    send.status = "cancelled"
    send.error_message = "Cancelled by user"
    await session.commit()
    await session.refresh(send)

    logger.info("email_send.cancelled", email_send_id=str(send_id), user_id=current_user.get("id"))
    return send
