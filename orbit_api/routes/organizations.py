# orbit_api/routes/organizations.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.exceptions import ConflictError, NotFoundError
from orbit_api.core.logging import get_structlog_logger
from orbit_api.db.queries import apply_update, ensure_not_referenced, live, paginate, soft_delete
from orbit_api.db.session import get_session
from orbit_api.middleware.auth import ADMIN_ROLES, get_current_user, is_platform_user, require_role
from orbit_api.models.organization import ORGANIZATION_TYPES, Organization, Profile
from orbit_api.schemas.common import PaginatedResponse, PaginationParams
from orbit_api.services import audit
from orbit_api.services.validation import clean_slug, clean_website

logger = get_structlog_logger()

router = APIRouter(prefix="/organizations", tags=["organizations"])

ORGANIZATION_TYPE_PATTERN = f"^({'|'.join(ORGANIZATION_TYPES)})$"


# Pydantic Models
class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Organization name")
    slug: str = Field(..., min_length=1, max_length=100, description="URL-safe identifier")
    type: str = Field(default="client", pattern=ORGANIZATION_TYPE_PATTERN)
    website: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None

    @field_validator("slug")
    def validate_slug(cls, v):
        return clean_slug(v)

    @field_validator("website")
    def validate_website(cls, v):
        return clean_website(v)


class OrganizationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[str] = Field(None, pattern=ORGANIZATION_TYPE_PATTERN)
    website: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None

    @field_validator("slug")
    def validate_slug(cls, v):
        return clean_slug(v)

    @field_validator("website")
    def validate_website(cls, v):
        return clean_website(v)


class OrganizationResponse(BaseModel):
    id: UUID
    name: str
    slug: str
    type: str
    website: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# Utility Functions
async def get_organization_or_404(
    organization_id: UUID,
    session: AsyncSession,
    current_user: Dict,
) -> Organization:
    """Platform users see every organization; others only their own."""
    if not is_platform_user(current_user) and str(organization_id) != str(current_user.get("organization_id")):
        raise NotFoundError(
            message="Organization not found",
            details={"id": str(organization_id), "resource": "organization"},
        )

    stmt = live(Organization).where(Organization.id == organization_id)
    organization = (await session.execute(stmt)).scalar_one_or_none()

    if not organization:
        raise NotFoundError(
            message="Organization not found",
            details={"id": str(organization_id), "resource": "organization"},
        )
    return organization


async def check_slug_conflict(
    session: AsyncSession,
    slug: str,
    exclude_id: Optional[UUID] = None,
) -> None:
    stmt = live(Organization).where(Organization.slug == slug)
    if exclude_id:
        stmt = stmt.where(Organization.id != exclude_id)

    existing = (await session.execute(stmt)).scalars().first()
    if existing:
        raise ConflictError(
            message=f"An organization with slug '{slug}' already exists",
            details={"slug": slug, "existing_id": str(existing.id)},
        )


# Routes
@router.get("", response_model=PaginatedResponse[OrganizationResponse])
async def list_organizations(
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    pagination: PaginationParams = Depends(),
    type: Optional[str] = Query(None, pattern=ORGANIZATION_TYPE_PATTERN),
    search: Optional[str] = Query(None, min_length=1, max_length=100),
):
    """List organizations visible to the caller."""
    stmt = live(Organization)

    if not is_platform_user(current_user):
        org_id = current_user.get("organization_id")
        if not org_id:
            return PaginatedResponse[OrganizationResponse].build([], 0, pagination)
        stmt = stmt.where(Organization.id == UUID(str(org_id)))

    if type:
        stmt = stmt.where(Organization.type == type)

    if search:
        search_term = f"%{search}%"
        stmt = stmt.where(or_(Organization.name.ilike(search_term), Organization.slug.ilike(search_term)))

    items, total = await paginate(session, stmt.order_by(Organization.created_at.desc()), pagination)

    logger.info(
        "organizations.list",
        user_id=current_user.get("id"),
        total=total,
        page=pagination.page,
    )

    return PaginatedResponse[OrganizationResponse].build(items, total, pagination)


@router.post("", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(
    organization_data: OrganizationCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
):
    """Create a new organization."""
    await require_role(current_user, ADMIN_ROLES)
    await check_slug_conflict(session, organization_data.slug)

    organization = Organization(**organization_data.model_dump())
    session.add(organization)

    try:
        await audit.log_create(session, "organization", organization, current_user)
        await session.commit()
        await session.refresh(organization)

        logger.info(
            "organization.created",
            organization_id=str(organization.id),
            slug=organization.slug,
            user_id=current_user.get("id"),
        )

        return organization

    except Exception as e:
        await session.rollback()
        logger.error("organization.creation_failed", error=str(e))
        raise


@router.get("/{organization_id}", response_model=OrganizationResponse)
async def get_organization(
    organization_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
):
    return await get_organization_or_404(organization_id, session, current_user)


@router.patch("/{organization_id}", response_model=OrganizationResponse)
async def update_organization(
    organization_id: UUID,
    organization_data: OrganizationUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
):
    """Update organization details."""
    await require_role(current_user, ADMIN_ROLES)
    organization = await get_organization_or_404(organization_id, session, current_user)

    update_data = organization_data.model_dump(exclude_unset=True)
    if update_data.get("slug") and update_data["slug"] != organization.slug:
        await check_slug_conflict(session, update_data["slug"], exclude_id=organization.id)

    before = audit.snapshot(organization)
    apply_update(organization, update_data)
    await audit.log_update(session, "organization", organization, before, current_user)

    try:
        await session.commit()
        await session.refresh(organization)

        logger.info(
            "organization.updated",
            organization_id=str(organization.id),
            fields=list(update_data.keys()),
        )

        return organization

    except Exception as e:
        await session.rollback()
        logger.error("organization.update_failed", organization_id=str(organization_id), error=str(e))
        raise


@router.delete("/{organization_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization(
    organization_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
):
    """Soft delete an organization that no longer has members."""
    await require_role(current_user, ADMIN_ROLES)
    organization = await get_organization_or_404(organization_id, session, current_user)

    await ensure_not_referenced(
        session,
        organization,
        [("profiles", Profile, "organization_id")],
    )

    soft_delete(organization)
    await audit.log_delete(session, "organization", organization, current_user)
    await session.commit()

    logger.info("organization.deleted", organization_id=str(organization_id), user_id=current_user.get("id"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
