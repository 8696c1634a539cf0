# orbit_api/models/playbook.py
from __future__ import annotations

from sqlalchemy import Boolean, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import mapped_column

from orbit_api.db.base import Base, SoftDeleteMixin, TenantMixin, reference

CHANNELS = ("mail", "email", "linkedin", "phone", "in_person", "other")


class PlaybookTemplate(TenantMixin, SoftDeleteMixin, Base):
    __tablename__ = "playbook_templates"

    name = mapped_column(String(255), nullable=False)
    vertical_id = reference("verticals")
    description = mapped_column(Text)
    total_duration_days = mapped_column(Integer)
    is_active = mapped_column(Boolean, nullable=False, default=True)


class PlaybookStep(TenantMixin, SoftDeleteMixin, Base):
    __tablename__ = "playbook_steps"
    __table_args__ = (
        UniqueConstraint("playbook_template_id", "step_number", name="uq_playbook_steps_template_step"),
    )

    playbook_template_id = reference("playbook_templates", nullable=False, ondelete="CASCADE")
    step_number = mapped_column(Integer, nullable=False)
    day_offset = mapped_column(Integer, nullable=False, default=0)
    channel = mapped_column(String(20), nullable=False)
    title = mapped_column(String(255), nullable=False)
    description = mapped_column(Text)
    asset_type_required = mapped_column(String(50))
    is_pivot_trigger = mapped_column(Boolean, nullable=False, default=False)
