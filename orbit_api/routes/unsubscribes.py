# orbit_api/routes/unsubscribes.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.exceptions import BadRequestError
from orbit_api.core.logging import get_structlog_logger
from orbit_api.db.queries import get_tenant_row_or_404, paginate, tenant_query
from orbit_api.db.session import get_session
from orbit_api.middleware.auth import WRITE_ROLES, get_current_org_id, get_current_user, require_role
from orbit_api.models.contact import Contact
from orbit_api.models.email import EmailUnsubscribe
from orbit_api.models.organization import Organization
from orbit_api.schemas.common import PaginatedResponse, PaginationParams
from orbit_api.services.email_events import suppress_contact
from orbit_api.services.unsubscribe_tokens import verify_unsubscribe_token

logger = get_structlog_logger()

router = APIRouter(tags=["unsubscribes"])

LINK_REASON = "User clicked unsubscribe link"
CANCEL_MESSAGE = "Contact unsubscribed"
MANUAL_REASON = "Manually unsubscribed"


class UnsubscribeCreate(BaseModel):
    email_address: Optional[EmailStr] = None
    contact_id: Optional[UUID] = None
    reason: Optional[str] = Field(None, max_length=1000)


class UnsubscribeResponse(BaseModel):
    id: UUID
    organization_id: UUID
    contact_id: Optional[UUID] = None
    email_address: str
    reason: Optional[str] = None
    source_email_send_id: Optional[UUID] = None
    unsubscribed_at: datetime
    created_at: datetime

    class Config:
        from_attributes = True


class UnsubscribeLinkInfo(BaseModel):
    email: Optional[str] = None
    contact_name: Optional[str] = None
    organization_name: Optional[str] = None


class UnsubscribeLinkRequest(BaseModel):
    token: str = Field(..., min_length=1)
    reason: Optional[str] = Field(None, max_length=1000)


class UnsubscribeLinkResult(BaseModel):
    success: bool = True
    email: Optional[str] = None
    cancelled_sends: int = 0


async def _token_contact(session: AsyncSession, claims: Dict) -> Optional[Contact]:
    stmt = select(Contact).where(
        Contact.id == claims["contact_id"],
        Contact.organization_id == claims["organization_id"],
    )
    return (await session.execute(stmt)).scalar_one_or_none()


# Suppression list (authenticated)
@router.get("/email-unsubscribes", response_model=PaginatedResponse[UnsubscribeResponse])
async def list_unsubscribes(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
    pagination: PaginationParams = Depends(),
    search: Optional[str] = Query(None, min_length=1, max_length=320),
):
    stmt = tenant_query(EmailUnsubscribe, organization_id)
    if search:
        stmt = stmt.where(EmailUnsubscribe.email_address.ilike(f"%{search}%"))

    items, total = await paginate(session, stmt.order_by(EmailUnsubscribe.created_at.desc()), pagination)
    return PaginatedResponse[UnsubscribeResponse].build(items, total, pagination)


@router.post("/email-unsubscribes", response_model=UnsubscribeResponse, status_code=status.HTTP_201_CREATED)
async def create_unsubscribe(
    unsubscribe_data: UnsubscribeCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    """Suppress an address by hand; the contact's queued sends are cancelled."""
    await require_role(current_user, WRITE_ROLES)

    contact = None
    if unsubscribe_data.contact_id:
        contact = await get_tenant_row_or_404(session, Contact, unsubscribe_data.contact_id, organization_id)

    email_address = unsubscribe_data.email_address or (contact.email if contact else None)
    if not email_address:
        raise BadRequestError(message="email_address or a contact with an email is required")

    if contact is None:
        stmt = tenant_query(Contact, organization_id).where(Contact.email == email_address.lower())
        contact = (await session.execute(stmt)).scalars().first()

    reason = unsubscribe_data.reason or MANUAL_REASON
    try:
        cancelled = await suppress_contact(
            session,
            organization_id=organization_id,
            contact=contact,
            email_address=email_address,
            reason=reason,
            cancel_message=CANCEL_MESSAGE,
        )
        stmt = tenant_query(EmailUnsubscribe, organization_id).where(
            EmailUnsubscribe.email_address == email_address.strip().lower()
        )
        row = (await session.execute(stmt)).scalar_one()
        await session.commit()
        await session.refresh(row)
    except Exception as e:
        await session.rollback()
        logger.error("unsubscribe.creation_failed", error=str(e))
        raise

    logger.info(
        "unsubscribe.created",
        unsubscribe_id=str(row.id),
        contact_id=str(contact.id) if contact else None,
        cancelled_sends=cancelled,
        user_id=current_user.get("id"),
    )
    return row


# Public link endpoints; the signed token is the credential.
@router.get("/unsubscribe", response_model=UnsubscribeLinkInfo)
async def describe_unsubscribe_link(
    token: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_session),
):
    claims = verify_unsubscribe_token(token)
    contact = await _token_contact(session, claims)
    organization = await session.get(Organization, claims["organization_id"])

    return UnsubscribeLinkInfo(
        email=claims.get("email") or (contact.email if contact else None),
        contact_name=contact.full_name if contact else None,
        organization_name=organization.name if organization else None,
    )


@router.post("/unsubscribe", response_model=UnsubscribeLinkResult)
async def apply_unsubscribe_link(
    request_data: UnsubscribeLinkRequest,
    session: AsyncSession = Depends(get_session),
):
    claims = verify_unsubscribe_token(request_data.token)
    contact = await _token_contact(session, claims)
    email_address = claims.get("email") or (contact.email if contact else None)

    if contact is None and not email_address:
        raise BadRequestError(message="Invalid or expired unsubscribe link")

    try:
        cancelled = await suppress_contact(
            session,
            organization_id=claims["organization_id"],
            contact=contact,
            email_address=email_address,
            reason=request_data.reason or LINK_REASON,
            cancel_message=CANCEL_MESSAGE,
            source_email_send_id=claims.get("email_send_id"),
        )
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.error("unsubscribe.link_failed", error=str(e))
        raise

    logger.info(
        "unsubscribe.link_applied",
        organization_id=str(claims["organization_id"]),
        contact_id=str(claims["contact_id"]),
        cancelled_sends=cancelled,
    )
    return UnsubscribeLinkResult(email=email_address, cancelled_sends=cancelled)
