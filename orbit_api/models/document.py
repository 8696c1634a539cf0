# orbit_api/models/document.py
from __future__ import annotations

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Uuid
from sqlalchemy.orm import mapped_column

from orbit_api.db.base import Base, SoftDeleteMixin, TenantMixin, reference

DOCUMENT_TYPES = (
    "prospect_research",
    "campaign_sequence",
    "competitive_analysis",
    "audit_report",
    "proposal",
)
DOCUMENT_STATUSES = ("draft", "in_review", "approved", "delivered", "archived")


class DocumentTemplate(TenantMixin, SoftDeleteMixin, Base):
    __tablename__ = "document_templates"

    name = mapped_column(String(255), nullable=False)
    document_type = mapped_column(String(30), nullable=False)
    vertical_id = reference("verticals")
    template_structure = mapped_column(JSON, nullable=False, default=dict)
    version = mapped_column(Integer, nullable=False, default=1)
    is_active = mapped_column(Boolean, nullable=False, default=True)


class GeneratedDocument(TenantMixin, SoftDeleteMixin, Base):
    __tablename__ = "generated_documents"

    document_template_id = reference("document_templates")
    company_id = reference("companies")
    campaign_id = reference("campaigns")
    title = mapped_column(String(500), nullable=False)
    document_type = mapped_column(String(30), nullable=False)
    status = mapped_column(String(20), nullable=False, default="draft")
    content = mapped_column(JSON, nullable=False, default=dict)
    readiness_score = mapped_column(Integer)
    version = mapped_column(Integer, nullable=False, default=1)
    approved_by = mapped_column(Uuid)
    approved_at = mapped_column(DateTime)
    last_generated_at = mapped_column(DateTime)
