# orbit_api/models/vertical.py
from __future__ import annotations

from sqlalchemy import BigInteger, Float, String, Text, UniqueConstraint
from sqlalchemy.orm import mapped_column

from orbit_api.db.base import Base, SoftDeleteMixin, TenantMixin

B2B_B2C_VALUES = ("B2B", "B2C", "Both")
VERTICAL_TIERS = ("tier_1", "tier_2", "tier_3", "borderline", "eliminated")


class Vertical(TenantMixin, SoftDeleteMixin, Base):
    __tablename__ = "verticals"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_verticals_org_name"),
    )

    name = mapped_column(String(200), nullable=False)
    sector = mapped_column(String(200))
    b2b_b2c = mapped_column(String(10))
    naics_code = mapped_column(String(20))
    revenue_floor = mapped_column(BigInteger)
    typical_revenue_range = mapped_column(String(100))
    typical_marketing_budget_pct = mapped_column(Float)
    key_decision_maker_title = mapped_column(String(200))
    tier = mapped_column(String(20))
    notes = mapped_column(Text)
