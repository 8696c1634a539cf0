from conftest import make_company, make_contact


def test_create_contact_cleans_fields(client, headers, org):
    company = make_company(org)

    response = client.post(
        "/api/contacts",
        json={
            "company_id": str(company.id),
            "first_name": "Dana",
            "last_name": "Reyes",
            "email": " Dana@SummitHeat.COM ",
            "phone": "260-555-0199",
            "dmu_role": "economic_buyer",
        },
        headers=headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["email"] == "dana@summitheat.com"
    assert body["phone"] == "+12605550199"
    assert body["full_name"] == "Dana Reyes"
    assert body["relationship_status"] == "unknown"
    assert body["email_unsubscribed"] is False


def test_duplicate_email_conflicts(client, headers, org):
    company = make_company(org)
    make_contact(org, company, email="dana@summitheat.com")

    response = client.post(
        "/api/contacts",
        json={"first_name": "Other", "last_name": "Person", "email": "DANA@summitheat.com"},
        headers=headers,
    )

    assert response.status_code == 409
    assert "Dana Reyes" in response.json()["message"]


def test_invalid_dmu_role_is_rejected(client, headers):
    response = client.post(
        "/api/contacts",
        json={"first_name": "Dana", "last_name": "Reyes", "dmu_role": "gatekeeper"},
        headers=headers,
    )

    assert response.status_code == 422


def test_company_from_other_tenant_is_not_found(client, headers, other_org):
    foreign = make_company(other_org, "Rival Co")

    response = client.post(
        "/api/contacts",
        json={"company_id": str(foreign.id), "first_name": "Dana", "last_name": "Reyes"},
        headers=headers,
    )

    assert response.status_code == 404


def test_list_filters_by_company(client, headers, org):
    summit = make_company(org, "Summit Heating")
    north = make_company(org, "North Plumbing")
    make_contact(org, summit, "Dana", "Reyes")
    make_contact(org, north, "Sam", "Cole")

    response = client.get("/api/contacts", params={"company_id": str(north.id)}, headers=headers)

    assert response.status_code == 200
    assert [c["full_name"] for c in response.json()["items"]] == ["Sam Cole"]


def test_update_email_conflict(client, headers, org):
    company = make_company(org)
    make_contact(org, company, "Dana", "Reyes", email="dana@summitheat.com")
    other = make_contact(org, company, "Sam", "Cole", email="sam@summitheat.com")

    response = client.patch(f"/api/contacts/{other.id}", json={"email": "dana@summitheat.com"}, headers=headers)

    assert response.status_code == 409


def test_delete_contact(client, headers, org):
    contact = make_contact(org, make_company(org))

    assert client.delete(f"/api/contacts/{contact.id}", headers=headers).status_code == 204
    assert client.get(f"/api/contacts/{contact.id}", headers=headers).status_code == 404
