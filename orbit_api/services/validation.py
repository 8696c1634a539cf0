# orbit_api/services/validation.py
"""Field validators shared by the request models of every resource."""
from __future__ import annotations

import re
from typing import Dict, List, Optional

from orbit_api.services.normalization import (
    normalize_email,
    normalize_phone,
    normalize_website,
)

SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")
STATE_PATTERN = re.compile(r"^[A-Z]{2}$")
US_ZIP_PATTERN = re.compile(r"^\d{5}(-\d{4})?$")


def validate_zip_code(zip_code: Optional[str]) -> bool:
    """US ZIP: 5 digits or 5+4 format."""
    if not zip_code:
        return False
    return bool(US_ZIP_PATTERN.match(zip_code.strip()))


def validate_slug(slug: Optional[str]) -> bool:
    return bool(slug) and bool(SLUG_PATTERN.match(slug))


# Pydantic-facing cleaners: return the canonical value or raise ValueError.

def clean_slug(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not validate_slug(value):
        raise ValueError("slug must contain only lowercase letters, numbers, and hyphens")
    return value


def clean_state(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    value = value.strip().upper()
    if not STATE_PATTERN.match(value):
        raise ValueError("state must be a 2-letter code")
    return value


def clean_zip(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    if not validate_zip_code(value):
        raise ValueError("zip must be 5 digits or ZIP+4")
    return value.strip()


def clean_phone(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    normalized = normalize_phone(value)
    if normalized is None:
        raise ValueError("invalid phone number format")
    return normalized


def clean_email(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    normalized = normalize_email(value)
    if normalized is None:
        raise ValueError("invalid email format")
    return normalized


def clean_website(value: Optional[str]) -> Optional[str]:
    return normalize_website(value)


def clean_choice(value: Optional[str], choices, field: str) -> Optional[str]:
    if value is None:
        return value
    if value not in choices:
        raise ValueError(f"{field} must be one of: {', '.join(choices)}")
    return value


def required_field_errors(row: Dict, required: List[str]) -> List[str]:
    """Names of required fields that are missing or blank in an import row."""
    missing = []
    for field in required:
        value = row.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)
    return missing
