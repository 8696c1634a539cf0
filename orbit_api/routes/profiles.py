# orbit_api/routes/profiles.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.exceptions import ConflictError, NotFoundError
from orbit_api.core.logging import get_structlog_logger
from orbit_api.db.queries import apply_update, paginate
from orbit_api.db.session import get_session
from orbit_api.middleware.auth import ADMIN_ROLES, get_current_org_id, get_current_user, require_role
from orbit_api.models.organization import PROFILE_ROLES, Profile
from orbit_api.schemas.common import PaginatedResponse, PaginationParams

logger = get_structlog_logger()

router = APIRouter(prefix="/profiles", tags=["profiles"])

ROLE_PATTERN = f"^({'|'.join(PROFILE_ROLES)})$"


class ProfileCreate(BaseModel):
    id: Optional[UUID] = Field(None, description="User id; matches the token subject")
    email: EmailStr
    full_name: Optional[str] = Field(None, max_length=255)
    role: str = Field(default="viewer", pattern=ROLE_PATTERN)
    avatar_url: Optional[str] = Field(None, max_length=1000)


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, max_length=255)
    avatar_url: Optional[str] = Field(None, max_length=1000)


class ProfileResponse(BaseModel):
    id: UUID
    organization_id: Optional[UUID] = None
    email: str
    full_name: Optional[str] = None
    role: str
    avatar_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


async def get_own_profile(session: AsyncSession, current_user: Dict) -> Profile:
    try:
        user_id = UUID(str(current_user.get("id")))
    except ValueError:
        raise NotFoundError(message="Profile not found")

    profile = await session.get(Profile, user_id)
    if profile is None:
        raise NotFoundError(message="Profile not found", details={"id": str(user_id)})
    return profile


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
):
    return await get_own_profile(session, current_user)


@router.patch("/me", response_model=ProfileResponse)
async def update_my_profile(
    profile_data: ProfileUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
):
    profile = await get_own_profile(session, current_user)
    apply_update(profile, profile_data.model_dump(exclude_unset=True))

    await session.commit()
    await session.refresh(profile)

    logger.info("profile.updated", profile_id=str(profile.id))
    return profile


@router.get("", response_model=PaginatedResponse[ProfileResponse])
async def list_profiles(
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
    pagination: PaginationParams = Depends(),
):
    """List the members of the current organization."""
    await require_role(current_user, ADMIN_ROLES)

    stmt = (
        select(Profile)
        .where(Profile.organization_id == organization_id)
        .order_by(Profile.created_at.desc())
    )
    items, total = await paginate(session, stmt, pagination)
    return PaginatedResponse[ProfileResponse].build(items, total, pagination)


@router.post("", response_model=ProfileResponse, status_code=status.HTTP_201_CREATED)
async def create_profile(
    profile_data: ProfileCreate,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    """Add a member to the current organization."""
    await require_role(current_user, ADMIN_ROLES)

    values = profile_data.model_dump(exclude_none=True)
    if "id" in values and await session.get(Profile, values["id"]) is not None:
        raise ConflictError(message="Profile already exists", details={"id": str(values["id"])})

    profile = Profile(organization_id=organization_id, **values)
    session.add(profile)

    try:
        await session.commit()
        await session.refresh(profile)

        logger.info("profile.created", profile_id=str(profile.id), organization_id=str(organization_id))
        return profile

    except Exception as e:
        await session.rollback()
        logger.error("profile.creation_failed", error=str(e))
        raise
