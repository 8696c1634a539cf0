# orbit_api/models/organization.py
from __future__ import annotations

from sqlalchemy import String, Text
from sqlalchemy.orm import mapped_column

from orbit_api.db.base import Base, SoftDeleteMixin, reference

ORGANIZATION_TYPES = ("agency", "client")
PROFILE_ROLES = ("admin", "manager", "viewer")


class Organization(SoftDeleteMixin, Base):
    __tablename__ = "organizations"

    name = mapped_column(String(255), nullable=False)
    slug = mapped_column(String(100), nullable=False, index=True)
    type = mapped_column(String(20), nullable=False, default="client")
    website = mapped_column(String(500))
    notes = mapped_column(Text)


class Profile(Base):
    """An application user. The id matches the `sub` claim of their token."""

    __tablename__ = "profiles"

    organization_id = reference("organizations", ondelete="SET NULL")
    email = mapped_column(String(320), nullable=False, index=True)
    full_name = mapped_column(String(255))
    role = mapped_column(String(20), nullable=False, default="viewer")
    avatar_url = mapped_column(String(1000))
