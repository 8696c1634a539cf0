from orbit_api.services.normalization import (
    extract_domain,
    extract_state_from_name,
    normalize_email,
    normalize_name,
    normalize_phone,
    normalize_website,
)


def test_normalize_email():
    assert normalize_email("test@example.com") == "test@example.com"
    assert normalize_email("  Test@Example.COM  ") == "test@example.com"

    assert normalize_email(None) is None
    assert normalize_email("") is None
    assert normalize_email("invalid") is None  # No @
    assert normalize_email("invalid@") is None  # No domain


def test_normalize_phone_e164():
    assert normalize_phone("+15125550123") == "+15125550123"
    assert normalize_phone("  +15125550123  ") == "+15125550123"


def test_normalize_phone_north_american_digits():
    assert normalize_phone("(512) 555-0123") == "+15125550123"
    assert normalize_phone("512.555.0123") == "+15125550123"
    assert normalize_phone("1-512-555-0123") == "+15125550123"


def test_normalize_phone_invalid():
    assert normalize_phone(None) is None
    assert normalize_phone("   ") is None
    assert normalize_phone("123") is None
    assert normalize_phone("555-0123") is None  # No area code
    assert normalize_phone("abc") is None


def test_extract_domain():
    assert extract_domain("https://www.Acme.com/about?x=1") == "acme.com"
    assert extract_domain("http://shop.acme.com:8080") == "shop.acme.com"
    assert extract_domain("acme.com/contact") == "acme.com"
    assert extract_domain("www.acme.com#top") == "acme.com"
    assert extract_domain("") is None
    assert extract_domain(None) is None


def test_normalize_website_adds_scheme():
    assert normalize_website("acme.com") == "https://acme.com"
    assert normalize_website(" http://acme.com ") == "http://acme.com"
    assert normalize_website("  ") is None


def test_normalize_name():
    assert normalize_name("  Fort Wayne,  IN ") == "fort wayne in"
    assert normalize_name("HVAC & Plumbing") == "hvac plumbing"
    assert normalize_name("!!!") is None
    assert normalize_name(None) is None


def test_extract_state_from_name():
    assert extract_state_from_name("Madison, WI") == "WI"
    assert extract_state_from_name("Fort Wayne,in") == "IN"
    assert extract_state_from_name("Chicago") is None
    assert extract_state_from_name(None) is None
