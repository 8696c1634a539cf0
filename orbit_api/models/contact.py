# orbit_api/models/contact.py
from __future__ import annotations

from sqlalchemy import Boolean, Date, String, Text
from sqlalchemy.orm import mapped_column

from orbit_api.db.base import Base, SoftDeleteMixin, TenantMixin, reference

RELATIONSHIP_STATUSES = (
    "unknown",
    "identified",
    "connected",
    "engaged",
    "responsive",
    "meeting_held",
    "client",
)
DMU_ROLES = (
    "economic_buyer",
    "technical_buyer",
    "brand_buyer",
    "champion",
    "blocker",
    "influencer",
    "unknown",
)


class Contact(TenantMixin, SoftDeleteMixin, Base):
    __tablename__ = "contacts"

    company_id = reference("companies")
    first_name = mapped_column(String(128), nullable=False)
    last_name = mapped_column(String(128), nullable=False)
    title = mapped_column(String(255))
    email = mapped_column(String(320), index=True)
    phone = mapped_column(String(32))
    linkedin_url = mapped_column(String(500))
    is_primary = mapped_column(Boolean, nullable=False, default=False)
    relationship_status = mapped_column(String(20), nullable=False, default="unknown")
    dmu_role = mapped_column(String(20))
    email_verified = mapped_column(Boolean, nullable=False, default=False)
    email_verification_date = mapped_column(Date)
    email_unsubscribed = mapped_column(Boolean, nullable=False, default=False)
    notes = mapped_column(Text)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)
