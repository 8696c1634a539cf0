from datetime import date

from conftest import add_rows, fetch, make_company, make_contact
from orbit_api.models.activity import Activity, Result
from orbit_api.models.asset import Asset
from orbit_api.models.campaign import Campaign
from orbit_api.routes.activities import fill_contract_value


def make_campaign(org, company=None, name="Q3 Push"):
    company = company or make_company(org)
    return add_rows(Campaign(organization_id=org.id, name=name, company_id=company.id))


def test_fill_contract_value():
    assert fill_contract_value({"contract_value_monthly": 2500.0, "contract_term_months": 12})["total_contract_value"] == 30000.0
    assert fill_contract_value({"contract_value_monthly": 2500.0, "total_contract_value": 1.0})["total_contract_value"] == 1.0
    assert "total_contract_value" not in fill_contract_value({"contract_value_monthly": 2500.0})


def test_result_total_contract_value_is_derived(client, headers, org):
    campaign = make_campaign(org)

    response = client.post(
        "/api/results",
        json={
            "campaign_id": str(campaign.id),
            "result_type": "contract_signed",
            "result_date": "2025-06-03",
            "contract_value_monthly": 2500,
            "contract_term_months": 12,
        },
        headers=headers,
    )

    assert response.status_code == 201
    assert response.json()["total_contract_value"] == 30000


def test_result_total_follows_term_change(client, headers, org):
    campaign = make_campaign(org)
    result = add_rows(
        Result(
            organization_id=org.id,
            campaign_id=campaign.id,
            result_type="contract_signed",
            result_date=date(2025, 6, 3),
            contract_value_monthly=2500.0,
            contract_term_months=12,
            total_contract_value=30000.0,
        )
    )

    response = client.patch(f"/api/results/{result.id}", json={"contract_term_months": 24}, headers=headers)

    assert response.status_code == 200
    assert response.json()["total_contract_value"] == 60000


def test_result_requires_campaign_of_tenant(client, headers, other_org):
    foreign = make_campaign(other_org)

    response = client.post(
        "/api/results",
        json={"campaign_id": str(foreign.id), "result_type": "meeting_scheduled", "result_date": "2025-06-03"},
        headers=headers,
    )

    assert response.status_code == 404


def test_completing_activity_stamps_completed_date(client, headers, org):
    campaign = make_campaign(org)
    activity = add_rows(Activity(organization_id=org.id, campaign_id=campaign.id, activity_type="letter_sent", channel="mail"))

    response = client.patch(f"/api/activities/{activity.id}", json={"status": "completed"}, headers=headers)

    assert response.status_code == 200
    assert response.json()["completed_date"] == date.today().isoformat()


def test_completing_activity_keeps_given_date(client, headers, org):
    activity = add_rows(Activity(organization_id=org.id, activity_type="phone_call"))

    response = client.patch(
        f"/api/activities/{activity.id}",
        json={"status": "completed", "completed_date": "2025-05-30"},
        headers=headers,
    )

    assert response.json()["completed_date"] == "2025-05-30"


def test_activity_with_other_tenants_contact_is_not_found(client, headers, org, other_org):
    foreign = make_contact(other_org, make_company(other_org))

    response = client.post(
        "/api/activities",
        json={"activity_type": "phone_call", "contact_id": str(foreign.id)},
        headers=headers,
    )

    assert response.status_code == 404


def test_activity_list_filters_by_campaign(client, headers, org):
    first = make_campaign(org, name="First")
    second = make_campaign(org, name="Second")
    add_rows(
        Activity(organization_id=org.id, campaign_id=first.id, activity_type="letter_sent"),
        Activity(organization_id=org.id, campaign_id=second.id, activity_type="phone_call"),
    )

    response = client.get("/api/activities", params={"campaign_id": str(first.id)}, headers=headers)

    assert [a["activity_type"] for a in response.json()["items"]] == ["letter_sent"]


def test_delivering_asset_stamps_delivered_date(client, headers, org):
    asset = add_rows(Asset(organization_id=org.id, asset_type="website_audit", title="Site audit", status="ready"))

    response = client.patch(f"/api/assets/{asset.id}", json={"status": "delivered"}, headers=headers)

    assert response.status_code == 200
    assert response.json()["delivered_date"] == date.today().isoformat()


def test_asset_type_is_validated(client, headers):
    response = client.post("/api/assets", json={"asset_type": "brochure", "title": "Flyer"}, headers=headers)

    assert response.status_code == 422


def test_asset_with_other_tenants_company_is_not_found(client, headers, other_org):
    foreign = make_company(other_org)

    response = client.post(
        "/api/assets",
        json={"asset_type": "blueprint", "title": "Growth blueprint", "company_id": str(foreign.id)},
        headers=headers,
    )

    assert response.status_code == 404


def test_digital_snapshot_lifecycle(client, headers, org):
    company = make_company(org)

    response = client.post(
        "/api/digital-snapshots",
        json={"company_id": str(company.id), "google_rating": 4.6, "google_review_count": 212},
        headers=headers,
    )
    assert response.status_code == 201
    snapshot = response.json()
    assert snapshot["snapshot_date"] == date.today().isoformat()

    response = client.get("/api/digital-snapshots", params={"company_id": str(company.id)}, headers=headers)
    assert response.json()["total"] == 1

    assert client.delete(f"/api/digital-snapshots/{snapshot['id']}", headers=headers).status_code == 204


def test_digital_snapshot_rejects_out_of_range_rating(client, headers, org):
    company = make_company(org)

    response = client.post(
        "/api/digital-snapshots",
        json={"company_id": str(company.id), "google_rating": 5.5},
        headers=headers,
    )

    assert response.status_code == 422


def test_digital_snapshot_for_other_tenants_company_is_not_found(client, headers, other_org):
    foreign = make_company(other_org)

    response = client.post("/api/digital-snapshots", json={"company_id": str(foreign.id)}, headers=headers)

    assert response.status_code == 404


def test_deleted_activity_is_hidden(client, headers, org):
    activity = add_rows(Activity(organization_id=org.id, activity_type="meeting"))

    assert client.delete(f"/api/activities/{activity.id}", headers=headers).status_code == 204

    assert client.get(f"/api/activities/{activity.id}", headers=headers).status_code == 404
    assert fetch(Activity, activity.id).deleted_at is not None
