# orbit_api/routes/webhooks.py
from __future__ import annotations

import hmac
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.config import settings
from orbit_api.core.exceptions import AuthenticationError, BadRequestError
from orbit_api.core.logging import get_structlog_logger
from orbit_api.db.session import get_session
from orbit_api.services.email_events import EventType, apply_ses_event

logger = get_structlog_logger()

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

WEBHOOK_SECRET_HEADER = "x-webhook-secret"


class SesEvent(BaseModel):
    ses_message_id: str
    event_type: EventType
    timestamp: Optional[datetime] = None
    details: Optional[Dict[str, Any]] = None


def verify_webhook_secret(request: Request) -> None:
    """Shared-secret check for the SES relay, compared in constant time."""
    expected = settings.webhook_secret
    if not expected:
        if settings.is_production:
            raise AuthenticationError(message="Webhook secret is not configured")
        return

    provided = request.headers.get(WEBHOOK_SECRET_HEADER, "")
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("ses_event.unauthorized", client=request.client.host if request.client else None)
        raise AuthenticationError(message="Invalid webhook secret")


async def parse_event(request: Request) -> SesEvent:
    try:
        payload = await request.json()
    except ValueError:
        raise BadRequestError(message="Request body must be JSON")

    try:
        return SesEvent.model_validate(payload)
    except ValidationError as e:
        raise BadRequestError(
            message="Invalid SES event payload",
            details={"errors": e.errors(include_url=False, include_context=False)},
        )


@router.post("/ses-events")
async def receive_ses_event(
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    """Apply an SES delivery notification to the matching email send."""
    verify_webhook_secret(request)
    event = await parse_event(request)

    logger.info(
        "ses_event.received",
        ses_message_id=event.ses_message_id,
        event_type=event.event_type,
    )

    try:
        outcome = await apply_ses_event(
            session,
            ses_message_id=event.ses_message_id,
            event_type=event.event_type,
            timestamp=event.timestamp,
            details=event.details,
        )
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.error(
            "ses_event.failed",
            ses_message_id=event.ses_message_id,
            event_type=event.event_type,
            error=str(e),
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "code": "SERVER_ERROR",
                "category": "server",
                "message": "Failed to process SES event",
                "details": {},
            },
        )

    if not outcome.matched:
        return {"success": True, "message": "No matching email send found"}

    return {
        "success": True,
        "event_type": event.event_type,
        "email_send_id": str(outcome.email_send_id),
        "status": outcome.status,
        "cancelled_sends": outcome.cancelled,
    }
