# orbit_api/models/audit.py
from __future__ import annotations

from sqlalchemy import JSON, Index, String, Text, Uuid
from sqlalchemy.orm import mapped_column

from orbit_api.db.base import Base, TenantMixin

AUDIT_ACTIONS = ("create", "update", "delete")

AUDIT_ENTITY_TYPES = (
    "organization",
    "market",
    "vertical",
    "pe_platform",
    "company",
    "contact",
    "campaign",
    "activity",
    "asset",
    "result",
    "playbook_template",
    "playbook_step",
    "digital_snapshot",
    "email_template",
    "document_template",
    "generated_document",
)


class AuditLog(TenantMixin, Base):
    """Append-only record of one mutation; rows are never updated or deleted by the API."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
    )

    entity_type = mapped_column(String(50), nullable=False)
    entity_id = mapped_column(Uuid, nullable=False)
    action = mapped_column(String(10), nullable=False, index=True)
    user_id = mapped_column(Uuid, index=True)
    user_email = mapped_column(String(320))
    old_values = mapped_column(JSON)
    new_values = mapped_column(JSON)
    changed_fields = mapped_column(JSON)
    ip_address = mapped_column(String(64))
    user_agent = mapped_column(Text)
    # `metadata` is reserved on declarative classes
    extra = mapped_column("metadata", JSON)
