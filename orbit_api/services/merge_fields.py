# orbit_api/services/merge_fields.py
"""Personalization of email templates with `{{field}}` placeholders."""
from __future__ import annotations

import re
from typing import Dict, Optional

from orbit_api.models.company import Company
from orbit_api.models.contact import Contact

MERGE_FIELD_PATTERN = re.compile(r"\{\{(\w+)\}\}")

MERGE_FIELDS = (
    "first_name",
    "last_name",
    "full_name",
    "title",
    "email",
    "company_name",
    "company_website",
    "company_city",
    "company_state",
)

_BOLD = re.compile(r"\*\*")
_ITALIC = re.compile(r"\*")
_EXTRA_BLANK_LINES = re.compile(r"\n{3,}")


def build_merge_data(contact: Contact, company: Optional[Company]) -> Dict[str, str]:
    full_name = " ".join(part for part in (contact.first_name, contact.last_name) if part)
    return {
        "first_name": contact.first_name or "",
        "last_name": contact.last_name or "",
        "full_name": full_name,
        "title": contact.title or "",
        "email": contact.email or "",
        "company_name": company.name if company else "",
        "company_website": (company.website or "") if company else "",
        "company_city": (company.city or "") if company else "",
        "company_state": (company.state or "") if company else "",
    }


def render_merge_fields(template: str, data: Dict[str, str]) -> str:
    """Replace known placeholders; unknown ones are left untouched."""

    def replace(match: re.Match) -> str:
        key = match.group(1)
        if key in data and data[key] is not None:
            return str(data[key])
        return match.group(0)

    return MERGE_FIELD_PATTERN.sub(replace, template or "")


def format_body_text(text: str) -> str:
    """Strip markdown emphasis and collapse runs of blank lines."""
    text = _BOLD.sub("", text or "")
    text = _ITALIC.sub("", text)
    text = _EXTRA_BLANK_LINES.sub("\n\n", text)
    return text.strip()


def unknown_merge_fields(template: str) -> list:
    """Placeholders in `template` that are not supported merge fields."""
    return sorted({key for key in MERGE_FIELD_PATTERN.findall(template or "") if key not in MERGE_FIELDS})
