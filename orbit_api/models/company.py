# orbit_api/models/company.py
from __future__ import annotations

from sqlalchemy import BigInteger, DateTime, Integer, String, Text
from sqlalchemy.orm import mapped_column

from orbit_api.db.base import Base, SoftDeleteMixin, TenantMixin, reference

OWNERSHIP_TYPES = ("independent", "pe_backed", "franchise", "corporate")
QUALIFYING_TIERS = ("top", "qualified", "borderline", "excluded")
COMPANY_STATUSES = (
    "prospect",
    "target",
    "active_campaign",
    "client",
    "lost",
    "churned",
    "excluded",
)


class Company(TenantMixin, SoftDeleteMixin, Base):
    __tablename__ = "companies"

    name = mapped_column(String(255), nullable=False)
    market_id = reference("markets")
    vertical_id = reference("verticals")
    pe_platform_id = reference("pe_platforms")

    website = mapped_column(String(500))
    domain = mapped_column(String(255), index=True)
    phone = mapped_column(String(32))
    address_line1 = mapped_column(String(255))
    address_line2 = mapped_column(String(255))
    city = mapped_column(String(128))
    state = mapped_column(String(2))
    zip = mapped_column(String(10))

    estimated_revenue = mapped_column(BigInteger)
    employee_count = mapped_column(Integer)
    year_founded = mapped_column(Integer)
    ownership_type = mapped_column(String(20), nullable=False, default="independent")
    qualifying_tier = mapped_column(String(20))
    status = mapped_column(String(20), nullable=False, default="prospect", index=True)

    manufacturer_affiliations = mapped_column(Text)
    certifications = mapped_column(Text)
    awards = mapped_column(Text)
    notes = mapped_column(Text)

    readiness_score = mapped_column(Integer)
    last_researched_at = mapped_column(DateTime)
