# orbit_api/models/activity.py
from __future__ import annotations

from sqlalchemy import Date, Float, Integer, String, Text
from sqlalchemy.orm import mapped_column

from orbit_api.db.base import Base, SoftDeleteMixin, TenantMixin, reference

ACTIVITY_TYPES = (
    "letter_sent",
    "email_sent",
    "linkedin_connect",
    "linkedin_message",
    "linkedin_engagement",
    "phone_call",
    "meeting",
    "audit_delivered",
    "report_delivered",
    "landing_page_shared",
    "breakup_note",
    "proposal_sent",
    "other",
)
ACTIVITY_STATUSES = ("scheduled", "completed", "skipped", "overdue")
ACTIVITY_OUTCOMES = (
    "no_response",
    "opened",
    "clicked",
    "replied",
    "meeting_booked",
    "declined",
    "voicemail",
    "conversation",
    "bounced",
    "complained",
)
RESULT_TYPES = (
    "meeting_scheduled",
    "proposal_sent",
    "proposal_accepted",
    "contract_signed",
    "contract_lost",
    "no_response",
    "declined",
    "breakup_sent",
    "referral_received",
    "other",
)


class Activity(TenantMixin, SoftDeleteMixin, Base):
    __tablename__ = "activities"

    campaign_id = reference("campaigns", ondelete="CASCADE")
    playbook_step_id = reference("playbook_steps")
    contact_id = reference("contacts")
    activity_type = mapped_column(String(30), nullable=False)
    channel = mapped_column(String(20))
    scheduled_date = mapped_column(Date)
    completed_date = mapped_column(Date)
    status = mapped_column(String(20), nullable=False, default="scheduled")
    outcome = mapped_column(String(20))
    notes = mapped_column(Text)


class Result(TenantMixin, SoftDeleteMixin, Base):
    __tablename__ = "results"

    campaign_id = reference("campaigns", nullable=False, ondelete="CASCADE")
    result_type = mapped_column(String(30), nullable=False)
    result_date = mapped_column(Date, nullable=False)
    contract_value_monthly = mapped_column(Float)
    contract_term_months = mapped_column(Integer)
    total_contract_value = mapped_column(Float)
    notes = mapped_column(Text)
