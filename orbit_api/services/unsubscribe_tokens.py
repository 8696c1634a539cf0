# orbit_api/services/unsubscribe_tokens.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, Optional
from uuid import UUID

from jose import JWTError, jwt

from orbit_api.core.config import settings
from orbit_api.core.exceptions import BadRequestError

TOKEN_TYPE = "unsubscribe"


def _signing_key() -> str:
    return settings.email_encryption_key or settings.secret_key


def create_unsubscribe_token(
    organization_id: UUID,
    contact_id: UUID,
    email: str,
    email_send_id: Optional[UUID] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    expire = datetime.utcnow() + (expires_delta or timedelta(days=settings.unsubscribe_token_days))
    payload = {
        "org_id": str(organization_id),
        "contact_id": str(contact_id),
        "email_send_id": str(email_send_id) if email_send_id else None,
        "email": email,
        "type": TOKEN_TYPE,
        "exp": expire,
    }
    return jwt.encode(payload, _signing_key(), algorithm=settings.algorithm)


def verify_unsubscribe_token(token: str) -> Dict:
    """Decode a link token; any signature, expiry or shape problem is a 400."""
    try:
        payload = jwt.decode(token, _signing_key(), algorithms=[settings.algorithm])
    except JWTError as e:
        raise BadRequestError(
            message="Invalid or expired unsubscribe link",
            details={"error": str(e)},
        )

    if payload.get("type") != TOKEN_TYPE or not payload.get("org_id") or not payload.get("contact_id"):
        raise BadRequestError(message="Invalid or expired unsubscribe link")

    try:
        return {
            "organization_id": UUID(payload["org_id"]),
            "contact_id": UUID(payload["contact_id"]),
            "email_send_id": UUID(payload["email_send_id"]) if payload.get("email_send_id") else None,
            "email": payload.get("email"),
        }
    except ValueError:
        raise BadRequestError(message="Invalid or expired unsubscribe link")
