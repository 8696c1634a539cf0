# orbit_api/routes/contacts.py
from __future__ import annotations

from datetime import date, datetime
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import or_
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
from orbit_api.models.activity import Activity
from orbit_api.models.company import Company
from orbit_api.models.contact import DMU_ROLES, RELATIONSHIP_STATUSES, Contact
from orbit_api.schemas.common import PaginatedResponse, PaginationParams
from orbit_api.services import audit
from orbit_api.services.validation import clean_choice, clean_email, clean_phone

logger = get_structlog_logger()

router = APIRouter(prefix="/contacts", tags=["contacts"])


class ContactFields(BaseModel):
    company_id: Optional[UUID] = None
    title: Optional[str] = Field(None, max_length=255)
    email: Optional[str] = Field(None, max_length=320)
    phone: Optional[str] = None
    linkedin_url: Optional[str] = Field(None, max_length=500)
    dmu_role: Optional[str] = None
    email_verified: Optional[bool] = None
    email_verification_date: Optional[date] = None
    notes: Optional[str] = None

    @field_validator("email")
    def validate_email(cls, v):
        return clean_email(v)

    @field_validator("phone")
    def validate_phone(cls, v):
        return clean_phone(v)

    @field_validator("dmu_role")
    def validate_dmu_role(cls, v):
        return clean_choice(v, DMU_ROLES, "dmu_role")


class ContactCreate(ContactFields):
    first_name: str = Field(..., min_length=1, max_length=128)
    last_name: str = Field(..., min_length=1, max_length=128)
    is_primary: bool = False
    relationship_status: str = "unknown"
    email_verified: bool = False

    @field_validator("relationship_status")
    def validate_relationship_status(cls, v):
        return clean_choice(v, RELATIONSHIP_STATUSES, "relationship_status")


class ContactUpdate(ContactFields):
    first_name: Optional[str] = Field(None, min_length=1, max_length=128)
    last_name: Optional[str] = Field(None, min_length=1, max_length=128)
    is_primary: Optional[bool] = None
    relationship_status: Optional[str] = None
    email_unsubscribed: Optional[bool] = None

    @field_validator("relationship_status")
    def validate_relationship_status(cls, v):
        return clean_choice(v, RELATIONSHIP_STATUSES, "relationship_status")


class ContactResponse(BaseModel):
    id: UUID
    organization_id: UUID
    company_id: Optional[UUID] = None
    first_name: str
    last_name: str
    full_name: str
    title: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    linkedin_url: Optional[str] = None
    is_primary: bool
    relationship_status: str
    dmu_role: Optional[str] = None
    email_verified: bool
    email_verification_date: Optional[date] = None
    email_unsubscribed: bool
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


async def check_email_conflict(
    session: AsyncSession,
    organization_id: UUID,
    email: Optional[str],
    exclude_id: Optional[UUID] = None,
) -> None:
    if not email:
        return

    stmt = tenant_query(Contact, organization_id).where(Contact.email == email)
    if exclude_id:
        stmt = stmt.where(Contact.id != exclude_id)

    existing = (await session.execute(stmt)).scalars().first()
    if existing:
        raise ConflictError(
            message=f"A contact with email '{email}' already exists ({existing.full_name})",
            details={"email": email, "existing_id": str(existing.id)},
        )


@router.get("", response_model=PaginatedResponse[ContactResponse])
async def list_contacts(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
    pagination: PaginationParams = Depends(),
    company_id: Optional[UUID] = Query(None),
    relationship_status: Optional[str] = Query(None),
    search: Optional[str] = Query(None, min_length=1, max_length=100),
):
    stmt = tenant_query(Contact, organization_id)

    if company_id:
        stmt = stmt.where(Contact.company_id == company_id)
    if relationship_status:
        stmt = stmt.where(Contact.relationship_status == relationship_status)
    if search:
        search_term = f"%{search}%"
        stmt = stmt.where(
            or_(
                Contact.first_name.ilike(search_term),
                Contact.last_name.ilike(search_term),
                Contact.email.ilike(search_term),
            )
        )

    items, total = await paginate(session, stmt.order_by(Contact.created_at.desc()), pagination)
    return PaginatedResponse[ContactResponse].build(items, total, pagination)


@router.post("", response_model=ContactResponse, status_code=status.HTTP_201_CREATED)
async def create_contact(
    contact_data: ContactCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    await ensure_in_org(session, Company, contact_data.company_id, organization_id)
    await check_email_conflict(session, organization_id, contact_data.email)

    contact = Contact(organization_id=organization_id, **contact_data.model_dump())
    session.add(contact)

    try:
        await audit.log_create(session, "contact", contact, current_user)
        await session.commit()
        await session.refresh(contact)

        logger.info("contact.created", contact_id=str(contact.id), company_id=str(contact.company_id))
        return contact

    except Exception as e:
        await session.rollback()
        logger.error("contact.creation_failed", error=str(e))
        raise


@router.get("/{contact_id}", response_model=ContactResponse)
async def get_contact(
    contact_id: UUID,
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    return await get_tenant_row_or_404(session, Contact, contact_id, organization_id)


@router.patch("/{contact_id}", response_model=ContactResponse)
async def update_contact(
    contact_id: UUID,
    contact_data: ContactUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    contact = await get_tenant_row_or_404(session, Contact, contact_id, organization_id)

    update_data = contact_data.model_dump(exclude_unset=True)
    await ensure_in_org(session, Company, update_data.get("company_id"), organization_id)
    if update_data.get("email") and update_data["email"] != contact.email:
        await check_email_conflict(session, organization_id, update_data["email"], exclude_id=contact.id)

    before = audit.snapshot(contact)
    apply_update(contact, update_data)
    await audit.log_update(session, "contact", contact, before, current_user)
    await session.commit()
    await session.refresh(contact)

    logger.info("contact.updated", contact_id=str(contact.id), fields=list(update_data.keys()))
    return contact


@router.delete("/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_contact(
    contact_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, WRITE_ROLES)
    contact = await get_tenant_row_or_404(session, Contact, contact_id, organization_id)
    await ensure_not_referenced(session, contact, [("activities", Activity, "contact_id")])

    soft_delete(contact)
    await audit.log_delete(session, "contact", contact, current_user)
    await session.commit()

    logger.info("contact.deleted", contact_id=str(contact_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
