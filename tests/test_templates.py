from conftest import add_rows
from orbit_api.models.document import DocumentTemplate, GeneratedDocument
from orbit_api.models.vertical import Vertical


def test_document_template_lifecycle(client, headers, org):
    vertical = add_rows(Vertical(organization_id=org.id, name="HVAC"))

    response = client.post(
        "/api/document-templates",
        json={
            "name": "HVAC research",
            "document_type": "prospect_research",
            "vertical_id": str(vertical.id),
            "template_structure": {"sections": ["overview"]},
        },
        headers=headers,
    )
    assert response.status_code == 201
    template = response.json()
    assert template["version"] == 1
    assert template["is_active"] is True

    response = client.patch(
        f"/api/document-templates/{template['id']}", json={"version": 2, "is_active": False}, headers=headers
    )
    assert response.json()["version"] == 2

    response = client.get("/api/document-templates", headers=headers)
    assert response.json()["total"] == 1

    assert client.delete(f"/api/document-templates/{template['id']}", headers=headers).status_code == 204


def test_document_template_type_is_validated(client, headers):
    response = client.post("/api/document-templates", json={"name": "Memo", "document_type": "memo"}, headers=headers)

    assert response.status_code == 422


def test_document_template_in_use_cannot_be_deleted(client, headers, org):
    template = add_rows(DocumentTemplate(organization_id=org.id, name="Research", document_type="prospect_research"))
    add_rows(
        GeneratedDocument(
            organization_id=org.id,
            document_template_id=template.id,
            title="Summit research",
            document_type="prospect_research",
        )
    )

    response = client.delete(f"/api/document-templates/{template.id}", headers=headers)

    assert response.status_code == 409
    assert response.json()["details"]["references"] == {"generated_documents": 1}


def test_email_template_reports_unknown_merge_fields(client, headers):
    response = client.post(
        "/api/email-templates",
        json={
            "name": "Intro",
            "subject_line": "{{company_name}} and {{budget}}",
            "body": "Hi {{first_name}}, {{zeta}}",
            "target_contact_role": "economic_buyer",
        },
        headers=headers,
    )

    assert response.status_code == 201
    assert response.json()["unknown_merge_fields"] == ["budget", "zeta"]


def test_email_template_update_and_delete(client, headers):
    template = client.post(
        "/api/email-templates",
        json={"name": "Intro", "subject_line": "Hello", "body": "Hi {{first_name}}"},
        headers=headers,
    ).json()
    assert template["unknown_merge_fields"] == []

    response = client.patch(f"/api/email-templates/{template['id']}", json={"body": "Hi {{nickname}}"}, headers=headers)
    assert response.json()["unknown_merge_fields"] == ["nickname"]

    assert client.delete(f"/api/email-templates/{template['id']}", headers=headers).status_code == 204
    assert client.get(f"/api/email-templates/{template['id']}", headers=headers).status_code == 404


def test_email_template_role_is_validated(client, headers):
    response = client.post(
        "/api/email-templates",
        json={"name": "Intro", "subject_line": "Hello", "body": "Hi", "target_contact_role": "ceo"},
        headers=headers,
    )

    assert response.status_code == 422


def test_email_template_of_other_tenant_is_not_found(client, headers, other_headers):
    template = client.post(
        "/api/email-templates",
        json={"name": "Intro", "subject_line": "Hello", "body": "Hi"},
        headers=headers,
    ).json()

    assert client.get(f"/api/email-templates/{template['id']}", headers=other_headers).status_code == 404
