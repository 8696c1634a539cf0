# orbit_api/models/pe_platform.py
from __future__ import annotations

from sqlalchemy import BigInteger, Integer, String, Text
from sqlalchemy.orm import mapped_column

from orbit_api.db.base import Base, SoftDeleteMixin, TenantMixin


class PEPlatform(TenantMixin, SoftDeleteMixin, Base):
    __tablename__ = "pe_platforms"

    name = mapped_column(String(255), nullable=False)
    parent_firm = mapped_column(String(255))
    estimated_valuation = mapped_column(BigInteger)
    brand_count = mapped_column(Integer)
    headquarters = mapped_column(String(255))
    website = mapped_column(String(500))
    notes = mapped_column(Text)
