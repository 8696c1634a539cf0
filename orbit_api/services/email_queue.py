# orbit_api/services/email_queue.py
"""Queue generation from a campaign playbook, and engagement statistics."""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orbit_api.core.config import settings
from orbit_api.core.exceptions import BadRequestError
from orbit_api.core.logging import get_structlog_logger
from orbit_api.db.queries import get_tenant_row_or_404, tenant_query
from orbit_api.models.activity import Activity
from orbit_api.models.campaign import Campaign
from orbit_api.models.company import Company
from orbit_api.models.contact import Contact
from orbit_api.models.email import EmailSend, EmailSettings, EmailTemplate
from orbit_api.models.playbook import PlaybookStep
from orbit_api.services.merge_fields import build_merge_data, format_body_text, render_merge_fields

logger = get_structlog_logger(__name__)

# Statuses that count toward each funnel stage.
SENT_EXCLUDED = ("queued", "cancelled", "failed")
DELIVERED_STATUSES = ("delivered", "opened", "clicked", "replied")
OPENED_STATUSES = ("opened", "clicked", "replied")
CLICKED_STATUSES = ("clicked", "replied")


@dataclass(frozen=True)
class QueueResult:
    created: int
    steps: int
    contacts: int
    message: str

    def to_dict(self) -> Dict:
        return asdict(self)


def _percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return int(math.floor(part * 100 / whole + 0.5))


async def _from_email(session: AsyncSession, organization_id: UUID) -> str:
    stmt = select(EmailSettings.ses_from_email).where(EmailSettings.organization_id == organization_id)
    configured = (await session.execute(stmt)).scalar_one_or_none()
    return configured or settings.default_from_email


async def _templates_by_step(
    session: AsyncSession,
    organization_id: UUID,
    campaign_id: UUID,
    step_ids: List[UUID],
) -> Dict[UUID, EmailTemplate]:
    stmt = tenant_query(EmailTemplate, organization_id).where(EmailTemplate.playbook_step_id.in_(step_ids))
    templates = (await session.execute(stmt.order_by(EmailTemplate.created_at))).scalars().all()

    # A campaign-scoped template wins over the organization default.
    by_step: Dict[UUID, EmailTemplate] = {}
    for template in templates:
        existing = by_step.get(template.playbook_step_id)
        if template.campaign_id == campaign_id:
            by_step[template.playbook_step_id] = template
        elif existing is None and template.campaign_id is None:
            by_step[template.playbook_step_id] = template
    return by_step


async def generate_campaign_queue(
    session: AsyncSession,
    *,
    organization_id: UUID,
    campaign_id: UUID,
    start_from_step: Optional[int] = None,
) -> QueueResult:
    """Create an activity and a queued send per email step and contact.

    The caller commits. A planned campaign is switched to active.
    """
    campaign = await get_tenant_row_or_404(session, Campaign, campaign_id, organization_id)

    if campaign.playbook_template_id is None:
        raise BadRequestError(message="Campaign has no playbook template assigned")
    if campaign.start_date is None:
        raise BadRequestError(message="Campaign has no start date")

    steps_stmt = (
        tenant_query(PlaybookStep, organization_id)
        .where(
            PlaybookStep.playbook_template_id == campaign.playbook_template_id,
            PlaybookStep.channel == "email",
        )
        .order_by(PlaybookStep.step_number)
    )
    if start_from_step:
        steps_stmt = steps_stmt.where(PlaybookStep.step_number >= start_from_step)
    steps = (await session.execute(steps_stmt)).scalars().all()

    if not steps:
        return QueueResult(created=0, steps=0, contacts=0, message="No email steps found in playbook")

    contacts_stmt = (
        tenant_query(Contact, organization_id)
        .where(
            Contact.company_id == campaign.company_id,
            Contact.email_unsubscribed.is_(False),
        )
        .order_by(Contact.created_at)
    )
    contacts = (await session.execute(contacts_stmt)).scalars().all()

    if not contacts:
        return QueueResult(
            created=0,
            steps=len(steps),
            contacts=0,
            message="No eligible contacts found for this company",
        )

    company = await session.get(Company, campaign.company_id)
    from_email = await _from_email(session, organization_id)
    templates = await _templates_by_step(session, organization_id, campaign.id, [s.id for s in steps])

    created = 0
    for step in steps:
        template = templates.get(step.id)
        if template is None:
            continue

        scheduled_date = campaign.start_date + timedelta(days=step.day_offset or 0)

        for contact in contacts:
            if not contact.email:
                continue

            merge_data = build_merge_data(contact, company)
            subject = render_merge_fields(template.subject_line, merge_data)
            body_plain = format_body_text(render_merge_fields(template.body, merge_data))

            activity = Activity(
                organization_id=organization_id,
                campaign_id=campaign.id,
                playbook_step_id=step.id,
                contact_id=contact.id,
                activity_type="email_sent",
                channel="email",
                scheduled_date=scheduled_date,
                status="scheduled",
            )
            session.add(activity)
            await session.flush()

            session.add(
                EmailSend(
                    organization_id=organization_id,
                    campaign_id=campaign.id,
                    contact_id=contact.id,
                    activity_id=activity.id,
                    email_template_id=template.id,
                    recipient_email=contact.email,
                    from_email=from_email,
                    subject_line=subject,
                    body_plain=body_plain,
                    status="queued",
                    scheduled_at=datetime.combine(scheduled_date, time.min),
                )
            )
            created += 1

    if campaign.status == "planned":
        campaign.status = "active"

    await session.flush()

    logger.info(
        "email_queue.generated",
        campaign_id=str(campaign.id),
        created=created,
        steps=len(steps),
        contacts=len(contacts),
    )

    return QueueResult(
        created=created,
        steps=len(steps),
        contacts=len(contacts),
        message=f"Generated {created} email sends across {len(steps)} steps for {len(contacts)} contacts",
    )


def summarize_statuses(statuses: List[str], days: int) -> Dict[str, int]:
    total = len(statuses)
    sent = sum(1 for s in statuses if s not in SENT_EXCLUDED)
    delivered = sum(1 for s in statuses if s in DELIVERED_STATUSES)
    opened = sum(1 for s in statuses if s in OPENED_STATUSES)
    clicked = sum(1 for s in statuses if s in CLICKED_STATUSES)
    replied = statuses.count("replied")
    bounced = statuses.count("bounced")

    return {
        "total": total,
        "sent": sent,
        "delivered": delivered,
        "opened": opened,
        "clicked": clicked,
        "replied": replied,
        "bounced": bounced,
        "complained": statuses.count("complained"),
        "failed": statuses.count("failed"),
        "queued": statuses.count("queued"),
        "open_rate": _percent(opened, sent),
        "click_rate": _percent(clicked, sent),
        "bounce_rate": _percent(bounced, sent),
        "reply_rate": _percent(replied, sent),
        "days": days,
    }


async def email_stats(
    session: AsyncSession,
    *,
    organization_id: UUID,
    campaign_id: Optional[UUID] = None,
    days: int = 30,
) -> Dict[str, int]:
    since = datetime.utcnow() - timedelta(days=days)
    stmt = select(EmailSend.status).where(
        EmailSend.organization_id == organization_id,
        EmailSend.created_at >= since,
    )
    if campaign_id is not None:
        stmt = stmt.where(EmailSend.campaign_id == campaign_id)

    statuses = list((await session.execute(stmt)).scalars().all())
    return summarize_statuses(statuses, days)


# Pipeline: 3 days back through 3 days ahead, by scheduled day.
PIPELINE_DAYS_BACK = 3
PIPELINE_DAYS_AHEAD = 3
DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min)


def work_week(today: date) -> Tuple[date, date]:
    """Monday of this week and the Saturday after it (exclusive end)."""
    monday = today - timedelta(days=today.weekday())
    return monday, monday + timedelta(days=5)


def daily_volume(sends: List[Tuple[Optional[datetime], str]], today: date) -> List[Dict]:
    """Sent and queued counts per scheduled day across the pipeline window."""
    days = []
    for offset in range(-PIPELINE_DAYS_BACK, PIPELINE_DAYS_AHEAD + 1):
        day = today + timedelta(days=offset)
        statuses = [status for scheduled_at, status in sends if scheduled_at and scheduled_at.date() == day]
        sent = sum(1 for s in statuses if s not in SENT_EXCLUDED)
        queued = statuses.count("queued")
        days.append(
            {
                "date": day.isoformat(),
                "day_label": f"{DAY_NAMES[day.weekday()]} {day.month}/{day.day}",
                "sent": sent,
                "queued": queued,
                "total": sent + queued,
                "is_today": day == today,
            }
        )
    return days


def _pipeline_item(send: EmailSend, contact: Optional[Contact], campaign: Optional[Campaign]) -> Dict:
    return {
        "id": send.id,
        "recipient_email": send.recipient_email,
        "subject_line": send.subject_line,
        "status": send.status,
        "scheduled_at": send.scheduled_at,
        "sent_at": send.sent_at,
        "contact": (
            {
                "id": contact.id,
                "first_name": contact.first_name,
                "last_name": contact.last_name,
                "email": contact.email,
            }
            if contact is not None
            else None
        ),
        "campaign": {"id": campaign.id, "name": campaign.name} if campaign is not None else None,
    }


async def _scheduled_between(
    session: AsyncSession,
    organization_id: UUID,
    start: datetime,
    end: datetime,
) -> List[Dict]:
    stmt = (
        select(EmailSend, Contact, Campaign)
        .outerjoin(Contact, EmailSend.contact_id == Contact.id)
        .outerjoin(Campaign, EmailSend.campaign_id == Campaign.id)
        .where(
            EmailSend.organization_id == organization_id,
            EmailSend.scheduled_at >= start,
            EmailSend.scheduled_at < end,
        )
        .order_by(EmailSend.scheduled_at)
    )
    rows = (await session.execute(stmt)).all()
    return [_pipeline_item(send, contact, campaign) for send, contact, campaign in rows]


async def email_pipeline(
    session: AsyncSession,
    *,
    organization_id: UUID,
    today: Optional[date] = None,
) -> Dict:
    today = today or datetime.utcnow().date()
    window_start = _day_start(today - timedelta(days=PIPELINE_DAYS_BACK))
    window_end = _day_start(today + timedelta(days=PIPELINE_DAYS_AHEAD + 1))

    window_stmt = select(EmailSend.scheduled_at, EmailSend.status).where(
        EmailSend.organization_id == organization_id,
        EmailSend.scheduled_at >= window_start,
        EmailSend.scheduled_at < window_end,
    )
    window = [(scheduled_at, status) for scheduled_at, status in (await session.execute(window_stmt)).all()]

    monday, saturday = work_week(today)
    today_sends = await _scheduled_between(
        session, organization_id, _day_start(today), _day_start(today + timedelta(days=1))
    )
    week_sends = await _scheduled_between(session, organization_id, _day_start(monday), _day_start(saturday))

    queued_stmt = select(func.count()).select_from(EmailSend).where(
        EmailSend.organization_id == organization_id,
        EmailSend.status == "queued",
    )
    sent_stmt = select(func.count()).select_from(EmailSend).where(
        EmailSend.organization_id == organization_id,
        EmailSend.status.notin_(SENT_EXCLUDED),
        EmailSend.scheduled_at >= _day_start(today - timedelta(days=7)),
    )

    return {
        "daily_volume": daily_volume(window, today),
        "today_sends": today_sends,
        "week_sends": week_sends,
        "summary": {
            "today": len(today_sends),
            "this_week": len(week_sends),
            "total_queued": (await session.execute(queued_stmt)).scalar() or 0,
            "sent_7d": (await session.execute(sent_stmt)).scalar() or 0,
        },
    }
