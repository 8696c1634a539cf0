# orbit_api/services/email_events.py
"""Delivery-status state machine driven by SES notifications."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.logging import get_structlog_logger
from orbit_api.models.activity import Activity
from orbit_api.models.contact import Contact
from orbit_api.models.email import EmailSend, EmailUnsubscribe

logger = get_structlog_logger(__name__)

EventType = Literal["Delivery", "Open", "Click", "Bounce", "Complaint"]

# Forward-only progression; a send never moves to a lower rank.
STATUS_RANK = {
    "queued": 0,
    "sending": 1,
    "delivered": 2,
    "opened": 3,
    "clicked": 4,
    "replied": 5,
}
TERMINAL_STATUSES = frozenset({"bounced", "complained", "failed", "cancelled"})


@dataclass(frozen=True)
class EventOutcome:
    matched: bool
    email_send_id: Optional[UUID] = None
    previous_status: Optional[str] = None
    status: Optional[str] = None
    suppressed: bool = False
    cancelled: int = 0


def to_naive_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.utcnow()
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def advance_status(current: str, target: str) -> str:
    """Return `target` if it moves the send forward, else `current`."""
    if current in TERMINAL_STATUSES:
        return current
    if STATUS_RANK.get(target, -1) > STATUS_RANK.get(current, -1):
        return target
    return current


async def cancel_queued_sends(
    session: AsyncSession,
    *,
    organization_id: UUID,
    contact_id: UUID,
    error_message: str,
    campaign_id: Optional[UUID] = None,
    exclude_id: Optional[UUID] = None,
) -> int:
    stmt = (
        update(EmailSend)
        .where(
            EmailSend.organization_id == organization_id,
            EmailSend.contact_id == contact_id,
            EmailSend.status == "queued",
        )
        .values(status="cancelled", error_message=error_message, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if campaign_id is not None:
        stmt = stmt.where(EmailSend.campaign_id == campaign_id)
    if exclude_id is not None:
        stmt = stmt.where(EmailSend.id != exclude_id)

    result = await session.execute(stmt)
    return result.rowcount or 0


async def upsert_unsubscribe(
    session: AsyncSession,
    *,
    organization_id: UUID,
    email_address: str,
    contact_id: Optional[UUID],
    reason: Optional[str],
    source_email_send_id: Optional[UUID] = None,
    when: Optional[datetime] = None,
) -> EmailUnsubscribe:
    email_address = email_address.strip().lower()
    stmt = select(EmailUnsubscribe).where(
        EmailUnsubscribe.organization_id == organization_id,
        EmailUnsubscribe.email_address == email_address,
    )
    row = (await session.execute(stmt)).scalar_one_or_none()

    if row is None:
        row = EmailUnsubscribe(
            organization_id=organization_id,
            email_address=email_address,
        )
        session.add(row)

    row.contact_id = contact_id or row.contact_id
    row.reason = reason
    row.source_email_send_id = source_email_send_id or row.source_email_send_id
    row.unsubscribed_at = when or datetime.utcnow()
    await session.flush()
    return row


async def suppress_contact(
    session: AsyncSession,
    *,
    organization_id: UUID,
    contact: Optional[Contact],
    email_address: Optional[str],
    reason: str,
    cancel_message: str,
    source_email_send_id: Optional[UUID] = None,
    campaign_id: Optional[UUID] = None,
    exclude_send_id: Optional[UUID] = None,
    cancel_sends: bool = True,
    when: Optional[datetime] = None,
) -> int:
    """Unsubscribe a contact and cancel its queued sends.

    With `campaign_id` only the queued sends of that campaign are cancelled,
    otherwise every queued send of the contact in the organization is.
    `cancel_sends=False` records the unsubscribe without touching the queue.
    Returns the number of cancelled sends.
    """
    if contact is not None:
        contact.email_unsubscribed = True

    address = email_address or (contact.email if contact is not None else None)
    if address:
        await upsert_unsubscribe(
            session,
            organization_id=organization_id,
            email_address=address,
            contact_id=contact.id if contact is not None else None,
            reason=reason,
            source_email_send_id=source_email_send_id,
            when=when,
        )

    if contact is None or not cancel_sends:
        return 0

    return await cancel_queued_sends(
        session,
        organization_id=organization_id,
        contact_id=contact.id,
        campaign_id=campaign_id,
        exclude_id=exclude_send_id,
        error_message=cancel_message,
    )


async def _set_activity_outcome(
    session: AsyncSession,
    send: EmailSend,
    outcome: str,
    complete: bool = False,
) -> None:
    if send.activity_id is None:
        return
    activity = await session.get(Activity, send.activity_id)
    if activity is None:
        return
    activity.outcome = outcome
    if complete:
        activity.status = "completed"


async def _auto_pause(
    session: AsyncSession,
    send: EmailSend,
    reason: str,
    cancel_message: str,
    when: datetime,
) -> int:
    contact = await session.get(Contact, send.contact_id)
    # Only sends that belong to a campaign pause the rest of that campaign.
    return await suppress_contact(
        session,
        organization_id=send.organization_id,
        contact=contact,
        email_address=send.recipient_email,
        reason=reason,
        cancel_message=cancel_message,
        source_email_send_id=send.id,
        campaign_id=send.campaign_id,
        exclude_send_id=send.id,
        cancel_sends=send.campaign_id is not None,
        when=when,
    )


async def apply_ses_event(
    session: AsyncSession,
    *,
    ses_message_id: str,
    event_type: EventType,
    timestamp: Optional[datetime] = None,
    details: Optional[Dict[str, Any]] = None,
) -> EventOutcome:
    """Apply one SES event to the matching send. The caller owns the commit."""
    details = details or {}
    stmt = select(EmailSend).where(EmailSend.ses_message_id == ses_message_id)
    send = (await session.execute(stmt)).scalar_one_or_none()

    if send is None:
        logger.info("ses_event.unmatched", ses_message_id=ses_message_id, event_type=event_type)
        return EventOutcome(matched=False)

    now = to_naive_utc(timestamp)
    previous = send.status
    suppressed = False
    cancelled = 0

    if event_type == "Delivery":
        if send.status == "sending":
            send.status = "delivered"

    elif event_type == "Open":
        send.open_count = (send.open_count or 0) + 1
        send.last_opened_at = now
        if send.first_opened_at is None:
            send.first_opened_at = now
        send.status = advance_status(send.status, "opened")
        await _set_activity_outcome(session, send, "opened")

    elif event_type == "Click":
        send.click_count = (send.click_count or 0) + 1
        if send.first_clicked_at is None:
            send.first_clicked_at = now
        link = details.get("link")
        links = list(send.clicked_links or [])
        if link and link not in links:
            links.append(link)
            send.clicked_links = links
        send.status = advance_status(send.status, "clicked")
        await _set_activity_outcome(session, send, "clicked")

    elif event_type == "Bounce":
        bounce_type = details.get("bounceType") or "Permanent"
        send.bounced_at = now
        send.bounce_type = bounce_type
        send.status = "bounced"
        await _set_activity_outcome(session, send, "bounced", complete=True)
        if bounce_type == "Permanent" and send.contact_id is not None:
            cancelled = await _auto_pause(
                session,
                send,
                reason="Hard bounce: Permanent",
                cancel_message="Contact bounced (permanent)",
                when=now,
            )
            suppressed = True

    elif event_type == "Complaint":
        send.complained_at = now
        send.status = "complained"
        await _set_activity_outcome(session, send, "complained", complete=True)
        if send.contact_id is not None:
            cancelled = await _auto_pause(
                session,
                send,
                reason="Spam complaint",
                cancel_message="Contact complained (spam)",
                when=now,
            )
            suppressed = True

    else:
        raise ValueError(f"Unsupported SES event type: {event_type}")

    await session.flush()

    logger.info(
        "ses_event.applied",
        email_send_id=str(send.id),
        event_type=event_type,
        previous_status=previous,
        status=send.status,
        suppressed=suppressed,
        cancelled=cancelled,
    )

    return EventOutcome(
        matched=True,
        email_send_id=send.id,
        previous_status=previous,
        status=send.status,
        suppressed=suppressed,
        cancelled=cancelled,
    )
