from datetime import date

import pytest

from conftest import fetch, make_company, make_contact
from orbit_api.models.company import Company
from orbit_api.services.research import (
    MAX_READINESS_SCORE,
    NO_COMPETITORS,
    calculate_readiness_score,
    export_markdown,
    format_currency,
    score_band,
    validate_research_content,
)


def test_readiness_scoring():
    assert MAX_READINESS_SCORE == 10
    assert calculate_readiness_score({}) == 0
    assert calculate_readiness_score({"dmu_identified": True, "value_prop_defined": True}) == 4
    assert calculate_readiness_score({"dmu_identified": False}) == 0


@pytest.mark.parametrize("score, band", [(0, "red"), (3, "red"), (4, "amber"), (6, "amber"), (7, "green"), (10, "green")])
def test_score_band(score, band):
    assert score_band(score) == band


def test_format_currency():
    assert format_currency(2500000) == "$2,500,000"
    assert format_currency(None) == "N/A"


def test_unknown_sections_are_rejected():
    with pytest.raises(ValueError):
        validate_research_content({"sections": {"readiness_score": {"content": "x"}}})


def test_export_markdown():
    content = {
        "sections": {"market_context": {"content": "Fast growing metro.", "source": "human_edited"}},
        "readiness_checks": {"dmu_identified": True},
        "readiness_score": 3,
    }

    markdown = export_markdown("Summit Heating Research", content, generated_on=date(2024, 6, 3))

    assert markdown.startswith("# Summit Heating Research\n\n## 1. Company Overview\n\n_No content._")
    assert "## 2. Market Context & Opportunity\n\nFast growing metro." in markdown
    assert "**Score: 3 / 10**" in markdown
    assert "- [x] Decision-making unit contacts identified (2+ contacts) (3 pts)" in markdown
    assert "- [ ] Primary contact email is verified (2 pts)" in markdown
    assert markdown.endswith("---\n_Generated 2024-06-03_")


def create_research_document(client, headers, company):
    response = client.post(
        "/api/generated-documents",
        json={"title": "Summit research", "document_type": "prospect_research", "company_id": str(company.id)},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()["id"]


def test_research_document_requires_company(client, headers):
    response = client.post(
        "/api/generated-documents",
        json={"title": "Orphan", "document_type": "prospect_research"},
        headers=headers,
    )

    assert response.status_code == 422


def test_auto_populate_fills_sections_and_scores(client, headers, org):
    company = make_company(org, "Summit Heating", website="https://summitheat.com", estimated_revenue=2500000, employee_count=25)
    make_contact(org, company, "Dana", "Reyes", email="dana@summit.com", is_primary=True, email_verified=True)
    make_contact(org, company, "Sam", "Cole", dmu_role="technical_buyer")
    document_id = create_research_document(client, headers, company)

    response = client.post(f"/api/generated-documents/{document_id}/research/auto-populate", headers=headers)

    assert response.status_code == 200
    body = response.json()
    sections = body["content"]["sections"]
    assert "| Revenue | $2,500,000 |" in sections["company_overview"]["content"]
    assert sections["competitive_landscape"]["content"] == NO_COMPETITORS
    assert "| Sam Cole | N/A | technical buyer |" in sections["decision_making_unit"]["content"]
    assert body["content"]["readiness_checks"]["digital_snapshot_exists"] is False
    assert body["readiness_score"] == 7
    assert body["band"] == "green"
    assert fetch(Company, company.id).readiness_score == 7


def test_auto_populate_keeps_human_edits(client, headers, org):
    company = make_company(org)
    document_id = create_research_document(client, headers, company)

    edit = client.patch(
        f"/api/generated-documents/{document_id}/research/sections/company_overview",
        json={"content": "Family owned since 1982."},
        headers=headers,
    )
    assert edit.status_code == 200

    response = client.post(f"/api/generated-documents/{document_id}/research/auto-populate", headers=headers)

    section = response.json()["content"]["sections"]["company_overview"]
    assert section == {**section, "content": "Family owned since 1982.", "source": "human_edited"}


def test_readiness_rejects_unknown_criteria(client, headers, org):
    document_id = create_research_document(client, headers, make_company(org))

    response = client.patch(
        f"/api/generated-documents/{document_id}/research/readiness",
        json={"checks": {"has_budget": True}},
        headers=headers,
    )

    assert response.status_code == 400


def test_readiness_update_and_export(client, headers, org):
    document_id = create_research_document(client, headers, make_company(org))

    response = client.patch(
        f"/api/generated-documents/{document_id}/research/readiness",
        json={"checks": {"company_data_complete": True, "digital_snapshot_exists": True}},
        headers=headers,
    )
    assert response.json()["readiness_score"] == 4
    assert response.json()["band"] == "amber"

    export = client.get(f"/api/generated-documents/{document_id}/research/export.md", headers=headers)
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/markdown")
    assert "**Score: 4 / 10**" in export.text


def test_research_definitions(client, headers):
    response = client.get("/api/research/definitions", headers=headers)

    body = response.json()
    assert body["max_score"] == 10
    assert [s["id"] for s in body["sections"]][-1] == "readiness_score"
