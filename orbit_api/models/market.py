# orbit_api/models/market.py
from __future__ import annotations

from sqlalchemy import BigInteger, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import mapped_column

from orbit_api.db.base import Base, SoftDeleteMixin, TenantMixin

PE_ACTIVITY_LEVELS = ("none", "low", "moderate", "high", "critical")


class Market(TenantMixin, SoftDeleteMixin, Base):
    __tablename__ = "markets"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", "state", name="uq_markets_org_name_state"),
    )

    name = mapped_column(String(200), nullable=False)
    state = mapped_column(String(2))
    metro_population = mapped_column(Integer)
    market_size_estimate = mapped_column(BigInteger)
    pe_activity_level = mapped_column(String(20))
    notes = mapped_column(Text)
