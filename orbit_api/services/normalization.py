# orbit_api/services/normalization.py
from __future__ import annotations

import re
from typing import Optional

_EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")
_NON_DIGITS = re.compile(r"\D+")
_SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")
_TRAILING_STATE = re.compile(r",\s*([A-Za-z]{2})$")

MIN_PHONE_DIGITS = 10


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None

    normalized = email.strip().lower()
    if not _EMAIL_PATTERN.match(normalized):
        return None

    return normalized


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Return the phone number in E.164, or None when it cannot be inferred."""
    if not phone:
        return None

    cleaned = phone.strip()
    if _E164_PATTERN.match(cleaned):
        return cleaned

    digits = _NON_DIGITS.sub("", cleaned)
    if len(digits) < MIN_PHONE_DIGITS:
        return None

    # North American numbers are the only ones we can infer a country for
    if digits.startswith("1") and len(digits) == 11:
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    return None


def extract_domain(url: Optional[str]) -> Optional[str]:
    """Reduce a website to its bare host: `https://www.Acme.com:443/x?y` -> `acme.com`."""
    if not url or not url.strip():
        return None

    domain = url.strip().lower()
    domain = _SCHEME_PATTERN.sub("", domain)
    if domain.startswith("www."):
        domain = domain[4:]

    for separator in ("/", "?", "#"):
        domain = domain.split(separator, 1)[0]
    domain = domain.split(":", 1)[0]

    return domain or None


def normalize_website(url: Optional[str]) -> Optional[str]:
    if not url or not url.strip():
        return None

    url = url.strip()
    if not _SCHEME_PATTERN.match(url):
        url = f"https://{url}"
    return url


def normalize_name(name: Optional[str]) -> Optional[str]:
    """Loose comparison key for names: lower-case alphanumerics and single spaces."""
    if not name:
        return None
    lowered = _NON_ALNUM.sub("", name.lower())
    return _WHITESPACE.sub(" ", lowered).strip() or None


def extract_state_from_name(name: Optional[str]) -> Optional[str]:
    """Market names follow the "City, ST" convention: `"Madison, WI"` -> `"WI"`."""
    if not name:
        return None
    match = _TRAILING_STATE.search(name.strip())
    return match.group(1).upper() if match else None
