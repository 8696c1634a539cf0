# orbit_api/models/asset.py
from __future__ import annotations

from sqlalchemy import Date, String, Text
from sqlalchemy.orm import mapped_column

from orbit_api.db.base import Base, SoftDeleteMixin, TenantMixin, reference

ASSET_TYPES = (
    "blueprint",
    "website_audit",
    "market_report",
    "landing_page",
    "breakup_note",
    "proposal",
    "presentation",
    "other",
)
ASSET_STATUSES = ("draft", "ready", "delivered", "viewed")


class Asset(TenantMixin, SoftDeleteMixin, Base):
    __tablename__ = "assets"

    campaign_id = reference("campaigns")
    company_id = reference("companies")
    asset_type = mapped_column(String(30), nullable=False)
    title = mapped_column(String(255), nullable=False)
    description = mapped_column(Text)
    file_url = mapped_column(String(1000))
    landing_page_url = mapped_column(String(1000))
    status = mapped_column(String(20), nullable=False, default="draft")
    delivered_date = mapped_column(Date)
