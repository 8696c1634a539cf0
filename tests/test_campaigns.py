from conftest import add_rows, make_company
from orbit_api.models.campaign import Campaign
from orbit_api.models.playbook import PlaybookStep, PlaybookTemplate


def test_create_campaign(client, headers, org):
    company = make_company(org)
    playbook = add_rows(PlaybookTemplate(organization_id=org.id, name="HVAC Sprint"))

    response = client.post(
        "/api/campaigns",
        json={"name": "Q3 Push", "company_id": str(company.id), "playbook_template_id": str(playbook.id)},
        headers=headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "planned"
    assert body["current_step"] == 1
    assert body["playbook_template_id"] == str(playbook.id)


def test_campaign_with_other_tenants_company_is_not_found(client, headers, other_org):
    foreign = make_company(other_org)

    response = client.post("/api/campaigns", json={"name": "Q3 Push", "company_id": str(foreign.id)}, headers=headers)

    assert response.status_code == 404
    assert response.json()["message"] == "Company not found"


def test_campaign_with_other_tenants_playbook_is_not_found(client, headers, org, other_org):
    company = make_company(org)
    foreign = add_rows(PlaybookTemplate(organization_id=other_org.id, name="Their Playbook"))

    response = client.post(
        "/api/campaigns",
        json={"name": "Q3 Push", "company_id": str(company.id), "playbook_template_id": str(foreign.id)},
        headers=headers,
    )

    assert response.status_code == 404
    assert response.json()["message"] == "Playbook template not found"


def test_duplicate_campaign_name_conflicts(client, headers, org):
    company = make_company(org)
    add_rows(Campaign(organization_id=org.id, name="Q3 Push", company_id=company.id))

    response = client.post("/api/campaigns", json={"name": "q3 push", "company_id": str(company.id)}, headers=headers)

    assert response.status_code == 409


def test_end_date_before_start_date_is_rejected(client, headers, org):
    company = make_company(org)

    response = client.post(
        "/api/campaigns",
        json={"name": "Q3 Push", "company_id": str(company.id), "start_date": "2025-07-01", "end_date": "2025-06-01"},
        headers=headers,
    )

    assert response.status_code == 422


def test_list_filters_by_status(client, headers, org):
    company = make_company(org)
    add_rows(
        Campaign(organization_id=org.id, name="Planned", company_id=company.id),
        Campaign(organization_id=org.id, name="Running", company_id=company.id, status="active"),
    )

    response = client.get("/api/campaigns", params={"status": "active"}, headers=headers)

    assert [c["name"] for c in response.json()["items"]] == ["Running"]


def test_playbook_steps_are_ordered_by_step_number(client, headers, org):
    playbook = add_rows(PlaybookTemplate(organization_id=org.id, name="HVAC Sprint"))
    for number, title in ((3, "Breakup"), (1, "Intro letter"), (2, "Call")):
        response = client.post(
            f"/api/playbook-templates/{playbook.id}/steps",
            json={"step_number": number, "day_offset": number * 3, "channel": "mail", "title": title},
            headers=headers,
        )
        assert response.status_code == 201

    response = client.get(f"/api/playbook-templates/{playbook.id}/steps", headers=headers)

    assert [s["title"] for s in response.json()] == ["Intro letter", "Call", "Breakup"]


def test_duplicate_step_number_conflicts(client, headers, org):
    playbook = add_rows(PlaybookTemplate(organization_id=org.id, name="HVAC Sprint"))
    add_rows(PlaybookStep(organization_id=org.id, playbook_template_id=playbook.id, step_number=1, channel="mail", title="Intro"))

    response = client.post(
        f"/api/playbook-templates/{playbook.id}/steps",
        json={"step_number": 1, "channel": "email", "title": "Another intro"},
        headers=headers,
    )

    assert response.status_code == 409
    assert response.json()["message"] == "Step 1 already exists in this playbook"


def test_renumbering_step_onto_existing_conflicts(client, headers, org):
    playbook = add_rows(PlaybookTemplate(organization_id=org.id, name="HVAC Sprint"))
    _, second = add_rows(
        PlaybookStep(organization_id=org.id, playbook_template_id=playbook.id, step_number=1, channel="mail", title="Intro"),
        PlaybookStep(organization_id=org.id, playbook_template_id=playbook.id, step_number=2, channel="phone", title="Call"),
    )

    response = client.patch(f"/api/playbook-steps/{second.id}", json={"step_number": 1}, headers=headers)

    assert response.status_code == 409


def test_step_channel_is_validated(client, headers, org):
    playbook = add_rows(PlaybookTemplate(organization_id=org.id, name="HVAC Sprint"))

    response = client.post(
        f"/api/playbook-templates/{playbook.id}/steps",
        json={"step_number": 1, "channel": "fax", "title": "Intro"},
        headers=headers,
    )

    assert response.status_code == 422


def test_steps_of_other_tenants_playbook_are_not_found(client, other_headers, org):
    playbook = add_rows(PlaybookTemplate(organization_id=org.id, name="HVAC Sprint"))

    response = client.get(f"/api/playbook-templates/{playbook.id}/steps", headers=other_headers)

    assert response.status_code == 404
