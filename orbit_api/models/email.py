# orbit_api/models/email.py
from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import mapped_column

from orbit_api.db.base import Base, SoftDeleteMixin, TenantMixin, reference

EMAIL_SEND_STATUSES = (
    "queued",
    "sending",
    "delivered",
    "opened",
    "clicked",
    "replied",
    "bounced",
    "complained",
    "failed",
    "cancelled",
)


class EmailTemplate(TenantMixin, SoftDeleteMixin, Base):
    __tablename__ = "email_templates"

    playbook_step_id = reference("playbook_steps")
    campaign_id = reference("campaigns")
    name = mapped_column(String(255), nullable=False)
    subject_line = mapped_column(String(500), nullable=False)
    subject_line_alt = mapped_column(String(500))
    body = mapped_column(Text, nullable=False)
    target_contact_role = mapped_column(String(30))
    notes = mapped_column(Text)


class EmailSettings(TenantMixin, Base):
    __tablename__ = "email_settings"
    __table_args__ = (
        UniqueConstraint("organization_id", name="uq_email_settings_org"),
    )

    ses_region = mapped_column(String(32), nullable=False, default="us-east-2")
    ses_from_name = mapped_column(String(255))
    ses_from_email = mapped_column(String(320))
    ses_reply_to = mapped_column(String(320))
    ses_config_set = mapped_column(String(255))
    aws_access_key_id_encrypted = mapped_column(Text)
    aws_secret_key_encrypted = mapped_column(Text)
    daily_send_limit = mapped_column(Integer, nullable=False, default=50)
    sends_today = mapped_column(Integer, nullable=False, default=0)
    sends_today_reset_at = mapped_column(DateTime)
    delay_between_sends_ms = mapped_column(Integer, nullable=False, default=1500)
    sending_enabled = mapped_column(Boolean, nullable=False, default=False)
    signature_html = mapped_column(Text)
    signature_plain = mapped_column(Text)
    hubspot_token_encrypted = mapped_column(Text)
    hubspot_owner_id = mapped_column(String(64))
    hubspot_enabled = mapped_column(Boolean, nullable=False, default=False)
    unsubscribe_url = mapped_column(String(1000))
    sender_address = mapped_column(Text)


class EmailSend(TenantMixin, Base):
    __tablename__ = "email_sends"

    campaign_id = reference("campaigns")
    contact_id = reference("contacts")
    activity_id = reference("activities")
    email_template_id = reference("email_templates")

    recipient_email = mapped_column(String(320), nullable=False)
    from_email = mapped_column(String(320), nullable=False)
    subject_line = mapped_column(String(500), nullable=False)
    subject_line_variant = mapped_column(String(1))
    body_plain = mapped_column(Text)
    body_html = mapped_column(Text)

    ses_message_id = mapped_column(String(255), unique=True)
    status = mapped_column(String(20), nullable=False, default="queued", index=True)

    open_count = mapped_column(Integer, nullable=False, default=0)
    click_count = mapped_column(Integer, nullable=False, default=0)
    first_opened_at = mapped_column(DateTime)
    last_opened_at = mapped_column(DateTime)
    first_clicked_at = mapped_column(DateTime)
    clicked_links = mapped_column(JSON, nullable=False, default=list)
    bounced_at = mapped_column(DateTime)
    bounce_type = mapped_column(String(32))
    complained_at = mapped_column(DateTime)

    scheduled_at = mapped_column(DateTime)
    sent_at = mapped_column(DateTime)
    error_message = mapped_column(Text)


class EmailUnsubscribe(TenantMixin, Base):
    __tablename__ = "email_unsubscribes"
    __table_args__ = (
        UniqueConstraint("organization_id", "email_address", name="uq_email_unsubscribes_org_email"),
    )

    contact_id = reference("contacts")
    email_address = mapped_column(String(320), nullable=False)
    reason = mapped_column(Text)
    source_email_send_id = reference("email_sends")
    unsubscribed_at = mapped_column(DateTime, nullable=False)
