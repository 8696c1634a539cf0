# orbit_api/routes/email_settings.py
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
from orbit_api.db.queries import apply_update
from orbit_api.db.session import get_session
from orbit_api.middleware.auth import ADMIN_ROLES, get_current_org_id, get_current_user, require_role
from orbit_api.models.email import EmailSettings
from orbit_api.services.crypto import encrypt_secret, mask_secret

logger = get_structlog_logger()

router = APIRouter(prefix="/email-settings", tags=["email-settings"])

# Plain request field -> encrypted column.
SECRET_FIELDS = {
    "aws_access_key_id": "aws_access_key_id_encrypted",
    "aws_secret_key": "aws_secret_key_encrypted",
    "hubspot_token": "hubspot_token_encrypted",
}


class EmailSettingsFields(BaseModel):
    ses_region: Optional[str] = Field(None, max_length=32)
    ses_from_name: Optional[str] = Field(None, max_length=255)
    ses_from_email: Optional[EmailStr] = None
    ses_reply_to: Optional[EmailStr] = None
    ses_config_set: Optional[str] = Field(None, max_length=255)
    daily_send_limit: Optional[int] = Field(None, ge=0, le=100000)
    delay_between_sends_ms: Optional[int] = Field(None, ge=0, le=600000)
    sending_enabled: Optional[bool] = None
    signature_html: Optional[str] = None
    signature_plain: Optional[str] = None
    hubspot_owner_id: Optional[str] = Field(None, max_length=64)
    hubspot_enabled: Optional[bool] = None
    unsubscribe_url: Optional[str] = Field(None, max_length=1000)
    sender_address: Optional[str] = None

    # Write-only secrets, stored encrypted.
    aws_access_key_id: Optional[str] = Field(None, min_length=1)
    aws_secret_key: Optional[str] = Field(None, min_length=1)
    hubspot_token: Optional[str] = Field(None, min_length=1)


class EmailSettingsResponse(BaseModel):
    id: UUID
    organization_id: UUID
    ses_region: str
    ses_from_name: Optional[str] = None
    ses_from_email: Optional[str] = None
    ses_reply_to: Optional[str] = None
    ses_config_set: Optional[str] = None
    daily_send_limit: int
    sends_today: int
    sends_today_reset_at: Optional[datetime] = None
    delay_between_sends_ms: int
    sending_enabled: bool
    signature_html: Optional[str] = None
    signature_plain: Optional[str] = None
    hubspot_owner_id: Optional[str] = None
    hubspot_enabled: bool
    unsubscribe_url: Optional[str] = None
    sender_address: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_key: Optional[str] = None
    hubspot_token: Optional[str] = None
    created_at: datetime
    updated_at: datetime


def settings_response(row: EmailSettings) -> EmailSettingsResponse:
    """Serialize settings with every stored secret masked."""
    values = {
        name: getattr(row, name)
        for name in EmailSettingsResponse.model_fields
        if name not in SECRET_FIELDS and hasattr(row, name)
    }
    for name, column in SECRET_FIELDS.items():
        values[name] = mask_secret(getattr(row, column))
    return EmailSettingsResponse(**values)


def encrypt_fields(values: Dict) -> Dict:
    for name, column in SECRET_FIELDS.items():
        if name in values:
            secret = values.pop(name)
            values[column] = encrypt_secret(secret) if secret else None
    return values


async def get_org_settings(session: AsyncSession, organization_id: UUID) -> Optional[EmailSettings]:
    stmt = select(EmailSettings).where(EmailSettings.organization_id == organization_id)
    return (await session.execute(stmt)).scalar_one_or_none()


@router.get("", response_model=EmailSettingsResponse)
async def get_email_settings(
    session: AsyncSession = Depends(get_session),
    organization_id: UUID = Depends(get_current_org_id),
):
    row = await get_org_settings(session, organization_id)
    if row is None:
        raise NotFoundError(message="Email settings not configured", details={"resource": "email_settings"})
    return settings_response(row)


@router.post("", response_model=EmailSettingsResponse, status_code=status.HTTP_201_CREATED)
async def create_email_settings(
    settings_data: EmailSettingsFields,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, ADMIN_ROLES)

    existing = await get_org_settings(session, organization_id)
    if existing is not None:
        raise ConflictError(
            message="Email settings already exist for this organization",
            details={"existing_id": str(existing.id)},
        )

    values = encrypt_fields(settings_data.model_dump(exclude_none=True))
    row = EmailSettings(organization_id=organization_id, **values)
    session.add(row)

    try:
        await session.commit()
        await session.refresh(row)

        logger.info(
            "email_settings.created",
            organization_id=str(organization_id),
            secrets=[name for name, column in SECRET_FIELDS.items() if getattr(row, column)],
        )
        return settings_response(row)

    except Exception as e:
        await session.rollback()
        logger.error("email_settings.creation_failed", error=str(e))
        raise


@router.patch("", response_model=EmailSettingsResponse)
async def update_email_settings(
    settings_data: EmailSettingsFields,
    session: AsyncSession = Depends(get_session),
    current_user: Dict = Depends(get_current_user),
    organization_id: UUID = Depends(get_current_org_id),
):
    await require_role(current_user, ADMIN_ROLES)

    row = await get_org_settings(session, organization_id)
    if row is None:
        raise NotFoundError(message="Email settings not configured", details={"resource": "email_settings"})

    update_data = settings_data.model_dump(exclude_unset=True)
    changed = list(update_data.keys())
    apply_update(row, encrypt_fields(update_data))
    await session.commit()
    await session.refresh(row)

    # Field names only; secret values never reach the log.
    logger.info("email_settings.updated", organization_id=str(organization_id), fields=changed)
    return settings_response(row)
