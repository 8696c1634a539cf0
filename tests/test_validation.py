import pytest

from orbit_api.services.validation import (
    clean_choice,
    clean_email,
    clean_phone,
    clean_slug,
    clean_state,
    clean_zip,
    required_field_errors,
    validate_zip_code,
)


def test_validate_zip_code():
    assert validate_zip_code("46802")
    assert validate_zip_code("46802-1234")
    assert not validate_zip_code("4680")
    assert not validate_zip_code("ABCDE")
    assert not validate_zip_code(None)


def test_clean_slug():
    assert clean_slug(" acme-agency ") == "acme-agency"
    assert clean_slug(None) is None
    with pytest.raises(ValueError):
        clean_slug("Acme Agency")


def test_clean_state_upper_cases():
    assert clean_state("in") == "IN"
    assert clean_state("  ") is None
    with pytest.raises(ValueError):
        clean_state("Indiana")


def test_clean_zip():
    assert clean_zip(" 46802 ") == "46802"
    assert clean_zip("") is None
    with pytest.raises(ValueError):
        clean_zip("468")


def test_clean_phone_returns_e164():
    assert clean_phone("(260) 555-0123") == "+12605550123"
    assert clean_phone(None) is None
    with pytest.raises(ValueError):
        clean_phone("12")


def test_clean_email_lower_cases():
    assert clean_email(" Owner@Example.COM ") == "owner@example.com"
    with pytest.raises(ValueError):
        clean_email("owner@")


def test_clean_choice():
    assert clean_choice("active", ("active", "paused"), "status") == "active"
    assert clean_choice(None, ("active",), "status") is None
    with pytest.raises(ValueError) as exc_info:
        clean_choice("archived", ("active", "paused"), "status")
    assert "status must be one of: active, paused" in str(exc_info.value)


def test_required_field_errors():
    row = {"first_name": "Dana", "last_name": "  ", "email": None}
    assert required_field_errors(row, ["first_name", "last_name", "email"]) == ["last_name", "email"]
    assert required_field_errors(row, ["first_name"]) == []
