# orbit_api/services/crypto.py
"""Symmetric encryption of stored provider credentials."""
from __future__ import annotations

import base64
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from orbit_api.core.config import settings
from orbit_api.core.exceptions import APIError, BusinessRuleError

MASKED_VALUE = "***configured***"


def _fernet(key: Optional[str] = None) -> Fernet:
    hex_key = key or settings.email_encryption_key
    if not hex_key:
        raise BusinessRuleError(
            message="EMAIL_ENCRYPTION_KEY is not configured; credentials cannot be stored",
        )
    return Fernet(base64.urlsafe_b64encode(bytes.fromhex(hex_key)))


def encrypt_secret(value: str, key: Optional[str] = None) -> str:
    return _fernet(key).encrypt(value.encode("utf-8")).decode("ascii")


def decrypt_secret(token: str, key: Optional[str] = None) -> str:
    try:
        return _fernet(key).decrypt(token.encode("ascii")).decode("utf-8")
    except InvalidToken:
        raise APIError(message="Stored credential could not be decrypted")


def mask_secret(value: Optional[str]) -> Optional[str]:
    return MASKED_VALUE if value else None
