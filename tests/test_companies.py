from datetime import datetime

from conftest import add_rows, make_company, make_contact
from orbit_api.models.market import Market


def test_create_company_normalizes_website(client, headers):
    response = client.post(
        "/api/companies",
        json={"name": "Summit Heating", "website": "www.SummitHeat.com/about", "phone": "(260) 555-0123", "state": "in"},
        headers=headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["website"] == "https://www.SummitHeat.com/about"
    assert body["domain"] == "summitheat.com"
    assert body["phone"] == "+12605550123"
    assert body["state"] == "IN"
    assert body["status"] == "prospect"
    assert body["ownership_type"] == "independent"


def test_duplicate_domain_conflicts(client, headers, org):
    make_company(org, "Summit Heating", website="https://summitheat.com", domain="summitheat.com")

    response = client.post(
        "/api/companies",
        json={"name": "Summit Heating & Air", "website": "http://www.summitheat.com"},
        headers=headers,
    )

    assert response.status_code == 409
    assert response.json()["message"] == "A company with domain 'summitheat.com' already exists (Summit Heating)"


def test_duplicate_name_conflicts_case_insensitively(client, headers, org):
    make_company(org, "Summit Heating")

    response = client.post("/api/companies", json={"name": "summit heating"}, headers=headers)

    assert response.status_code == 409


def test_same_domain_in_other_tenant_is_allowed(client, headers, other_org):
    make_company(other_org, "Summit Heating", domain="summitheat.com")

    response = client.post("/api/companies", json={"name": "Summit Heating", "website": "summitheat.com"}, headers=headers)

    assert response.status_code == 201


def test_list_is_paginated_and_filtered(client, headers, org):
    for index in range(3):
        make_company(org, f"Company {index}", status="prospect")
    make_company(org, "Active Co", status="active")

    response = client.get("/api/companies", params={"page_size": 2}, headers=headers)
    body = response.json()
    assert body["total"] == 4
    assert len(body["items"]) == 2
    assert body["total_pages"] == 2
    assert body["has_next"] is True
    assert body["has_prev"] is False

    response = client.get("/api/companies", params={"status": "active"}, headers=headers)
    assert [c["name"] for c in response.json()["items"]] == ["Active Co"]


def test_soft_deleted_rows_are_excluded(client, headers, org):
    make_company(org, "Kept Co")
    make_company(org, "Gone Co", deleted_at=datetime.utcnow())

    response = client.get("/api/companies", headers=headers)

    assert [c["name"] for c in response.json()["items"]] == ["Kept Co"]


def test_cross_tenant_read_is_not_found(client, other_headers, org):
    company = make_company(org)

    response = client.get(f"/api/companies/{company.id}", headers=other_headers)

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_market_from_other_tenant_is_not_found(client, headers, other_org):
    market = add_rows(Market(organization_id=other_org.id, name="Madison, WI", state="WI"))

    response = client.post("/api/companies", json={"name": "X Co", "market_id": str(market.id)}, headers=headers)

    assert response.status_code == 404


def test_patch_website_updates_domain(client, headers, org):
    company = make_company(org, website="https://old.com", domain="old.com")

    response = client.patch(f"/api/companies/{company.id}", json={"website": "new-site.com"}, headers=headers)

    assert response.status_code == 200
    assert response.json()["domain"] == "new-site.com"


def test_delete_blocked_by_contacts(client, headers, org):
    company = make_company(org)
    make_contact(org, company)

    response = client.delete(f"/api/companies/{company.id}", headers=headers)

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "RESOURCE_IN_USE"
    assert body["details"]["references"] == {"contacts": 1}


def test_delete_soft_deletes(client, headers, org):
    company = make_company(org)

    assert client.delete(f"/api/companies/{company.id}", headers=headers).status_code == 204
    assert client.get(f"/api/companies/{company.id}", headers=headers).status_code == 404


def test_viewer_can_read_but_not_write(client, viewer_headers, org):
    make_company(org)

    assert client.get("/api/companies", headers=viewer_headers).status_code == 200
    assert client.post("/api/companies", json={"name": "New"}, headers=viewer_headers).status_code == 403
