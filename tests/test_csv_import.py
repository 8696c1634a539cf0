from datetime import date

import pytest

from conftest import fetch, make_company, make_contact
from orbit_api.core.exceptions import BadRequestError
from orbit_api.models.company import Company
from orbit_api.services.csv_export import export_filename, render_csv
from orbit_api.services.csv_import import (
    build_column_mapping,
    company_values,
    import_records,
    parse_int,
)


def test_column_mapping_uses_aliases():
    mapping = build_column_mapping(["Company Name", "Website URL", "Zip Code", "Favorite Color"], "companies")

    assert mapping == {"Company Name": "name", "Website URL": "website", "Zip Code": "zip"}


def test_company_values_are_cleaned():
    values = company_values(
        {
            "name": " Summit Heating ",
            "website": "www.summitheat.com",
            "estimated_revenue": "$2,500,000",
            "year_founded": "1650",
            "ownership_type": "Private Equity",
            "state": "indiana",
        }
    )

    assert values["name"] == "Summit Heating"
    assert values["domain"] == "summitheat.com"
    assert values["estimated_revenue"] == 2500000
    assert values["year_founded"] is None
    assert values["ownership_type"] == "pe_backed"
    assert values["state"] is None
    assert values["status"] == "prospect"


def test_parse_int_is_lenient():
    assert parse_int("25 staff") == 25
    assert parse_int("n/a") is None
    assert parse_int(True) is None


def test_render_csv_quotes_and_blanks():
    text = render_csv(["name", "notes", "is_primary"], [{"name": "Smith, Jones & Co", "notes": None, "is_primary": True}])

    assert text == 'name,notes,is_primary\r\n"Smith, Jones & Co",,true\r\n'


def test_export_filename():
    assert export_filename("companies", "acme", on=date(2024, 3, 1)) == "companies_acme_2024-03-01.csv"
    assert export_filename("markets", None, on=date(2024, 3, 1)) == "markets_export_2024-03-01.csv"


@pytest.mark.asyncio
async def test_append_merges_blank_cells(db_session, org):
    company = make_company(org, "Summit Heating", city="Fort Wayne", phone="+12605550123")

    result = await import_records(
        db_session,
        organization_id=org.id,
        entity="companies",
        rows=[{"Company Name": "summit heating", "City": None, "Employees": "30"}],
        mode="append",
    )
    await db_session.commit()

    assert (result.created, result.updated) == (0, 1)
    stored = fetch(Company, company.id)
    assert stored.city == "Fort Wayne"
    assert stored.employee_count == 30


@pytest.mark.asyncio
async def test_overwrite_skips_records_in_use(db_session, org):
    used = make_company(org, "Summit Heating", city="Fort Wayne")
    make_contact(org, used)
    free = make_company(org, "North Plumbing", city="Auburn")

    result = await import_records(
        db_session,
        organization_id=org.id,
        entity="companies",
        rows=[{"name": "Summit Heating"}, {"name": "North Plumbing"}],
        mode="overwrite",
    )
    await db_session.commit()

    assert result.protected_skipped == 1
    assert result.updated == 1
    assert "in use" in result.errors[0]
    assert fetch(Company, used.id).city == "Fort Wayne"
    assert fetch(Company, free.id).city is None


@pytest.mark.asyncio
async def test_duplicate_domain_within_batch_is_skipped(db_session, org):
    result = await import_records(
        db_session,
        organization_id=org.id,
        entity="companies",
        rows=[
            {"name": "Summit Heating", "website": "summitheat.com"},
            {"name": "Summit Heating East", "website": "https://www.summitheat.com/east"},
        ],
    )

    assert result.created == 1
    assert result.errors == [
        "Row 2: Duplicate domain 'summitheat.com' (already in row 1), skipping"
    ]


@pytest.mark.asyncio
async def test_markets_and_verticals_are_created_on_demand(db_session, org):
    result = await import_records(
        db_session,
        organization_id=org.id,
        entity="companies",
        rows=[
            {"name": "Summit Heating", "market": "Fort Wayne, IN", "vertical": "HVAC"},
            {"name": "North Plumbing", "market": "Fort Wayne, IN", "vertical": "Plumbing"},
        ],
    )

    assert result.created == 2
    assert result.markets_created == ["Fort Wayne, IN"]
    assert result.verticals_created == ["HVAC", "Plumbing"]


@pytest.mark.asyncio
async def test_contact_with_unknown_company_is_skipped(db_session, org):
    make_company(org, "Summit Heating")

    result = await import_records(
        db_session,
        organization_id=org.id,
        entity="contacts",
        rows=[
            {"First Name": "Dana", "Last Name": "Reyes", "Company": "Summit Heating", "Email": "Dana@Summit.com"},
            {"First Name": "Sam", "Last Name": "Cole", "Company": "Nobody Inc"},
            {"First Name": "Pat"},
        ],
    )

    assert result.created == 1
    assert result.errors == [
        'Row 2: Company "Nobody Inc" not found, skipping row',
        "Row 3: Missing required field(s): last_name",
    ]


@pytest.mark.asyncio
async def test_similar_market_names_are_skipped(db_session, org):
    result = await import_records(
        db_session,
        organization_id=org.id,
        entity="markets",
        rows=[{"name": "Fort Wayne, IN"}, {"name": "fort wayne IN"}],
    )

    assert result.created == 1
    assert "similar" in result.errors[0]


@pytest.mark.asyncio
async def test_empty_batch_is_rejected(db_session, org):
    with pytest.raises(BadRequestError):
        await import_records(db_session, organization_id=org.id, entity="companies", rows=[])


def test_json_import_endpoint(client, headers):
    response = client.post(
        "/api/markets/import",
        json={"data": [{"Market": "Madison, WI", "Population": "680,000"}], "mode": "append"},
        headers=headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["created"] == 1
    assert body["total"] == 1

    market = client.get("/api/markets", headers=headers).json()["items"][0]
    assert market["state"] == "WI"
    assert market["metro_population"] == 680000


def test_invalid_mode_is_bad_request(client, headers):
    response = client.post("/api/markets/import", json={"data": [{"name": "X"}], "mode": "replace"}, headers=headers)

    assert response.status_code == 400


def test_csv_upload_import(client, headers):
    content = b"first_name,last_name,email\nDana,Reyes,dana@example.com\n,,\n"

    response = client.post(
        "/api/contacts/import",
        files={"file": ("contacts.csv", content, "text/csv")},
        data={"mode": "append"},
        headers=headers,
    )

    assert response.status_code == 200
    assert response.json()["created"] == 1


def test_upload_rejects_unknown_extension(client, headers):
    response = client.post(
        "/api/contacts/import",
        files={"file": ("contacts.txt", b"x", "text/plain")},
        headers=headers,
    )

    assert response.status_code == 400


def test_viewer_cannot_import(client, viewer_headers):
    response = client.post("/api/markets/import", json={"data": [{"name": "X"}]}, headers=viewer_headers)

    assert response.status_code == 403


def test_export_companies(client, headers, org):
    make_company(org, "Summit Heating", website="https://summitheat.com", notes="Smith, Jones")

    response = client.get("/api/companies/export", headers=headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert f'filename="companies_acme_{date.today().isoformat()}.csv"' in response.headers["content-disposition"]
    lines = response.text.split("\r\n")
    assert lines[0].startswith("name,market,vertical,website")
    assert lines[1].startswith("Summit Heating,,,https://summitheat.com")
    assert '"Smith, Jones"' in lines[1]


def test_template_download(client, headers):
    response = client.get("/api/import/templates/contacts", headers=headers)

    assert response.status_code == 200
    assert 'filename="contacts_template.csv"' in response.headers["content-disposition"]
    assert response.text.startswith("first_name,last_name,company")


def test_import_counts(client, headers, org):
    make_contact(org, make_company(org))

    response = client.get("/api/import/counts", headers=headers)

    assert response.status_code == 200
    assert response.json() == {
        "companies": 1,
        "contacts": 1,
        "markets": 0,
        "verticals": 0,
        "digital_snapshots": 0,
    }
