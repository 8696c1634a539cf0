# orbit_api/models/digital_snapshot.py
from __future__ import annotations

from sqlalchemy import Boolean, Date, Float, Integer, String, Text
from sqlalchemy.orm import mapped_column

from orbit_api.db.base import Base, SoftDeleteMixin, TenantMixin, reference


class DigitalSnapshot(TenantMixin, SoftDeleteMixin, Base):
    __tablename__ = "digital_snapshots"

    company_id = reference("companies", nullable=False, ondelete="CASCADE")
    snapshot_date = mapped_column(Date, nullable=False)

    google_rating = mapped_column(Float)
    google_review_count = mapped_column(Integer)
    yelp_rating = mapped_column(Float)
    yelp_review_count = mapped_column(Integer)
    bbb_rating = mapped_column(String(5))
    facebook_followers = mapped_column(Integer)
    instagram_followers = mapped_column(Integer)
    linkedin_followers = mapped_column(Integer)

    domain_authority = mapped_column(Integer)
    page_speed_mobile = mapped_column(Integer)
    page_speed_desktop = mapped_column(Integer)
    organic_keywords = mapped_column(Integer)
    monthly_organic_traffic_est = mapped_column(Integer)

    website_has_ssl = mapped_column(Boolean)
    website_is_mobile_responsive = mapped_column(Boolean)
    has_online_booking = mapped_column(Boolean)
    has_live_chat = mapped_column(Boolean)
    has_blog = mapped_column(Boolean)
    notes = mapped_column(Text)
