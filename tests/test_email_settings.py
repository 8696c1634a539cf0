import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import auth_headers, make_profile, sync_engine
from orbit_api.core.exceptions import APIError, BusinessRuleError
from orbit_api.models.email import EmailSettings
from orbit_api.services.crypto import MASKED_VALUE, decrypt_secret, encrypt_secret, mask_secret

OTHER_KEY = "cd" * 32


def stored_settings():
    with Session(sync_engine) as session:
        return session.execute(select(EmailSettings)).scalar_one()


def test_encrypt_round_trip():
    token = encrypt_secret("AKIAEXAMPLE")

    assert token != "AKIAEXAMPLE"
    assert decrypt_secret(token) == "AKIAEXAMPLE"


def test_decrypt_with_wrong_key_fails():
    token = encrypt_secret("AKIAEXAMPLE")

    with pytest.raises(APIError):
        decrypt_secret(token, key=OTHER_KEY)


def test_missing_key_refuses_to_encrypt(monkeypatch):
    from orbit_api.core.config import settings

    monkeypatch.setattr(settings, "email_encryption_key", None)
    with pytest.raises(BusinessRuleError):
        encrypt_secret("AKIAEXAMPLE")


def test_mask_secret():
    assert mask_secret("ciphertext") == MASKED_VALUE
    assert mask_secret(None) is None
    assert mask_secret("") is None


def test_get_before_configuration_is_not_found(client, headers):
    response = client.get("/api/email-settings", headers=headers)

    assert response.status_code == 404


def test_create_stores_secrets_encrypted_and_masks_them(client, headers):
    response = client.post(
        "/api/email-settings",
        json={
            "ses_from_email": "rep@acme-agency.com",
            "aws_access_key_id": "AKIAEXAMPLE",
            "aws_secret_key": "very-secret",
        },
        headers=headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["aws_access_key_id"] == MASKED_VALUE
    assert body["aws_secret_key"] == MASKED_VALUE
    assert body["hubspot_token"] is None
    assert body["ses_region"] == "us-east-2"
    assert body["daily_send_limit"] == 50

    row = stored_settings()
    assert row.aws_secret_key_encrypted != "very-secret"
    assert decrypt_secret(row.aws_secret_key_encrypted) == "very-secret"


def test_second_create_conflicts(client, headers):
    assert client.post("/api/email-settings", json={}, headers=headers).status_code == 201

    assert client.post("/api/email-settings", json={}, headers=headers).status_code == 409


def test_update_can_clear_a_secret(client, headers):
    client.post("/api/email-settings", json={"hubspot_token": "pat-123"}, headers=headers)

    response = client.patch("/api/email-settings", json={"hubspot_token": None, "daily_send_limit": 200}, headers=headers)

    assert response.status_code == 200
    assert response.json()["hubspot_token"] is None
    assert response.json()["daily_send_limit"] == 200
    assert stored_settings().hubspot_token_encrypted is None


def test_only_admins_configure_email(client, org):
    manager_headers = auth_headers(make_profile(org, "manager"))

    response = client.post("/api/email-settings", json={}, headers=manager_headers)

    assert response.status_code == 403
