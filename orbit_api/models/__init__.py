# orbit_api/models/__init__.py
"""
SQLAlchemy ORM models for database entities.
"""

from orbit_api.models.activity import Activity, Result
from orbit_api.models.asset import Asset
from orbit_api.models.audit import AuditLog
from orbit_api.models.campaign import Campaign
from orbit_api.models.company import Company
from orbit_api.models.contact import Contact
from orbit_api.models.digital_snapshot import DigitalSnapshot
from orbit_api.models.document import DocumentTemplate, GeneratedDocument
from orbit_api.models.email import EmailSend, EmailSettings, EmailTemplate, EmailUnsubscribe
from orbit_api.models.market import Market
from orbit_api.models.organization import Organization, Profile
from orbit_api.models.pe_platform import PEPlatform
from orbit_api.models.playbook import PlaybookStep, PlaybookTemplate
from orbit_api.models.vertical import Vertical

__all__ = [
    "Activity",
    "Asset",
    "AuditLog",
    "Campaign",
    "Company",
    "Contact",
    "DigitalSnapshot",
    "DocumentTemplate",
    "EmailSend",
    "EmailSettings",
    "EmailTemplate",
    "EmailUnsubscribe",
    "GeneratedDocument",
    "Market",
    "Organization",
    "PEPlatform",
    "PlaybookStep",
    "PlaybookTemplate",
    "Profile",
    "Result",
    "Vertical",
]
