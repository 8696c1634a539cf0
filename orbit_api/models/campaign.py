# orbit_api/models/campaign.py
from __future__ import annotations

from sqlalchemy import Date, Integer, String, Text, Uuid
from sqlalchemy.orm import mapped_column

from orbit_api.db.base import Base, SoftDeleteMixin, TenantMixin, reference

CAMPAIGN_STATUSES = ("planned", "active", "paused", "completed", "won", "lost", "pivoted")


class Campaign(TenantMixin, SoftDeleteMixin, Base):
    __tablename__ = "campaigns"

    name = mapped_column(String(255), nullable=False)
    company_id = reference("companies", nullable=False, ondelete="RESTRICT")
    playbook_template_id = reference("playbook_templates")
    market_id = reference("markets")
    vertical_id = reference("verticals")
    status = mapped_column(String(20), nullable=False, default="planned", index=True)

    start_date = mapped_column(Date)
    end_date = mapped_column(Date)
    current_step = mapped_column(Integer, nullable=False, default=1)
    pivot_reason = mapped_column(Text)
    pivot_to_campaign_id = reference("campaigns")
    assigned_to = reference("profiles")

    value_proposition = mapped_column(Text)
    primary_wedge = mapped_column(Text)
    backup_trigger = mapped_column(Text)
    success_criteria = mapped_column(Text)
    # Plain columns: generated_documents already points back at campaigns.
    research_doc_id = mapped_column(Uuid)
    sequence_doc_id = mapped_column(Uuid)
    notes = mapped_column(Text)
