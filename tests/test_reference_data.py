from datetime import datetime

from conftest import add_rows, make_company
from orbit_api.models.campaign import Campaign
from orbit_api.models.market import Market
from orbit_api.models.pe_platform import PEPlatform
from orbit_api.models.vertical import Vertical


def test_duplicate_market_in_same_state_conflicts(client, headers, org):
    add_rows(Market(organization_id=org.id, name="Madison", state="WI"))

    response = client.post("/api/markets", json={"name": "madison", "state": "wi"}, headers=headers)

    assert response.status_code == 409
    assert response.json()["message"] == "Market 'madison' already exists"


def test_same_market_name_in_other_state_is_allowed(client, headers, org):
    add_rows(Market(organization_id=org.id, name="Madison", state="WI"))

    response = client.post("/api/markets", json={"name": "Madison", "state": "AL"}, headers=headers)

    assert response.status_code == 201
    assert response.json()["state"] == "AL"


def test_market_rename_onto_existing_conflicts(client, headers, org):
    add_rows(Market(organization_id=org.id, name="Madison", state="WI"))
    other = add_rows(Market(organization_id=org.id, name="Green Bay", state="WI"))

    response = client.patch(f"/api/markets/{other.id}", json={"name": "Madison"}, headers=headers)

    assert response.status_code == 409


def test_market_in_use_cannot_be_deleted(client, headers, org):
    market = add_rows(Market(organization_id=org.id, name="Madison", state="WI"))
    make_company(org, market_id=market.id)

    response = client.delete(f"/api/markets/{market.id}", headers=headers)

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "RESOURCE_IN_USE"
    assert body["details"]["references"] == {"companies": 1}


def test_market_referenced_only_by_deleted_rows_can_be_deleted(client, headers, org):
    market = add_rows(Market(organization_id=org.id, name="Madison", state="WI"))
    make_company(org, market_id=market.id, deleted_at=datetime.utcnow())

    response = client.delete(f"/api/markets/{market.id}", headers=headers)

    assert response.status_code == 204
    assert client.get(f"/api/markets/{market.id}", headers=headers).status_code == 404


def test_duplicate_vertical_name_conflicts(client, headers, org):
    add_rows(Vertical(organization_id=org.id, name="HVAC"))

    response = client.post("/api/verticals", json={"name": "hvac"}, headers=headers)

    assert response.status_code == 409


def test_vertical_in_use_by_campaign_cannot_be_deleted(client, headers, org):
    vertical = add_rows(Vertical(organization_id=org.id, name="HVAC"))
    company = make_company(org)
    add_rows(Campaign(organization_id=org.id, name="Q3 Push", company_id=company.id, vertical_id=vertical.id))

    response = client.delete(f"/api/verticals/{vertical.id}", headers=headers)

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "RESOURCE_IN_USE"
    assert body["details"]["references"] == {"campaigns": 1}


def test_vertical_validates_tier(client, headers):
    response = client.post("/api/verticals", json={"name": "HVAC", "tier": "tier_9"}, headers=headers)

    assert response.status_code == 422


def test_pe_platform_lifecycle(client, headers):
    response = client.post(
        "/api/pe-platforms",
        json={"name": "Wrench Group", "website": "wrenchgroup.com", "brand_count": 12},
        headers=headers,
    )
    assert response.status_code == 201
    platform = response.json()
    assert platform["website"] == "https://wrenchgroup.com"

    response = client.patch(f"/api/pe-platforms/{platform['id']}", json={"brand_count": 14}, headers=headers)
    assert response.json()["brand_count"] == 14

    assert client.delete(f"/api/pe-platforms/{platform['id']}", headers=headers).status_code == 204
    assert client.get(f"/api/pe-platforms/{platform['id']}", headers=headers).status_code == 404


def test_pe_platform_with_portfolio_cannot_be_deleted(client, headers, org):
    platform = add_rows(PEPlatform(organization_id=org.id, name="Wrench Group"))
    make_company(org, pe_platform_id=platform.id, ownership_type="pe_backed")

    response = client.delete(f"/api/pe-platforms/{platform.id}", headers=headers)

    assert response.status_code == 409
    assert response.json()["message"] == "Cannot delete pe platform: still referenced by 1 companies"


def test_empty_update_is_rejected(client, headers, org):
    market = add_rows(Market(organization_id=org.id, name="Madison", state="WI"))

    response = client.patch(f"/api/markets/{market.id}", json={}, headers=headers)

    assert response.status_code == 400


def test_viewer_cannot_create_reference_data(client, viewer_headers):
    response = client.post("/api/verticals", json={"name": "HVAC"}, headers=viewer_headers)

    assert response.status_code == 403
