from datetime import date, datetime, timedelta

from conftest import add_rows, fetch, make_company, make_contact
from orbit_api.models.campaign import Campaign
from orbit_api.models.email import EmailSend, EmailTemplate
from orbit_api.models.playbook import PlaybookStep, PlaybookTemplate
from orbit_api.services.email_queue import daily_volume, summarize_statuses, work_week
from orbit_api.services.merge_fields import (
    format_body_text,
    render_merge_fields,
    unknown_merge_fields,
)


def test_render_merge_fields_keeps_unknown_placeholders():
    text = render_merge_fields("Hi {{first_name}}, about {{company_name}} {{budget}}", {"first_name": "Dana", "company_name": "Summit"})

    assert text == "Hi Dana, about Summit {{budget}}"


def test_unknown_merge_fields():
    assert unknown_merge_fields("{{first_name}} {{budget}} {{zeta}} {{budget}}") == ["budget", "zeta"]


def test_format_body_text():
    assert format_body_text("**Hello** *there*\n\n\n\nBye\n") == "Hello there\n\nBye"


def test_summarize_statuses_rounds_half_up():
    statuses = ["delivered", "opened", "clicked", "replied", "bounced", "queued", "cancelled", "sending"]

    stats = summarize_statuses(statuses, days=30)

    assert stats["total"] == 8
    assert stats["sent"] == 6
    assert stats["delivered"] == 4
    assert stats["opened"] == 3
    assert stats["open_rate"] == 50
    assert stats["click_rate"] == 33
    assert stats["bounce_rate"] == 17
    assert stats["queued"] == 1


def test_summarize_statuses_without_sends():
    stats = summarize_statuses([], days=7)

    assert stats["open_rate"] == 0
    assert stats["days"] == 7


def build_playbook(org):
    playbook = add_rows(PlaybookTemplate(organization_id=org.id, name="HVAC Sprint"))
    intro, call, follow_up = add_rows(
        PlaybookStep(organization_id=org.id, playbook_template_id=playbook.id, step_number=1, day_offset=0, channel="email", title="Intro"),
        PlaybookStep(organization_id=org.id, playbook_template_id=playbook.id, step_number=2, day_offset=3, channel="phone", title="Call"),
        PlaybookStep(organization_id=org.id, playbook_template_id=playbook.id, step_number=3, day_offset=7, channel="email", title="Follow up"),
    )
    return playbook, intro, call, follow_up


def test_bulk_queue_generates_sends(client, headers, org):
    company = make_company(org, "Summit Heating", city="Fort Wayne")
    make_contact(org, company, "Dana", "Reyes", email="dana@summit.com")
    make_contact(org, company, "Sam", "Cole", email="sam@summit.com", email_unsubscribed=True)
    make_contact(org, company, "Pat", "Lee")
    playbook, intro, _, follow_up = build_playbook(org)
    campaign = add_rows(
        Campaign(
            organization_id=org.id,
            company_id=company.id,
            name="Summit push",
            playbook_template_id=playbook.id,
            start_date=date(2024, 6, 3),
        )
    )
    add_rows(
        EmailTemplate(organization_id=org.id, playbook_step_id=intro.id, name="Default intro", subject_line="Default", body="x"),
        EmailTemplate(
            organization_id=org.id,
            playbook_step_id=intro.id,
            campaign_id=campaign.id,
            name="Campaign intro",
            subject_line="Hi {{first_name}}",
            body="**{{company_name}}** in {{company_city}}",
        ),
        EmailTemplate(organization_id=org.id, playbook_step_id=follow_up.id, name="Follow up", subject_line="Checking in", body="Still there?"),
    )

    response = client.post("/api/email-sends/bulk", json={"campaign_id": str(campaign.id)}, headers=headers)

    assert response.status_code == 201
    body = response.json()
    assert body["created"] == 2
    assert body["steps"] == 2
    assert body["contacts"] == 2

    sends = client.get("/api/email-sends", params={"campaign_id": str(campaign.id)}, headers=headers).json()["items"]
    by_subject = {s["subject_line"]: s for s in sends}
    assert set(by_subject) == {"Hi Dana", "Checking in"}
    assert by_subject["Hi Dana"]["body_plain"] == "Summit Heating in Fort Wayne"
    assert by_subject["Checking in"]["scheduled_at"].startswith("2024-06-10")
    assert fetch(Campaign, campaign.id).status == "active"


def test_bulk_queue_requires_playbook(client, headers, org):
    campaign = add_rows(Campaign(organization_id=org.id, company_id=make_company(org).id, name="No playbook"))

    response = client.post("/api/email-sends/bulk", json={"campaign_id": str(campaign.id)}, headers=headers)

    assert response.status_code == 400


def queued_send(org, status="queued"):
    company = make_company(org)
    contact = make_contact(org, company, email="dana@summit.com")
    return add_rows(
        EmailSend(
            organization_id=org.id,
            contact_id=contact.id,
            recipient_email=contact.email,
            from_email="rep@acme.test",
            subject_line="Hello",
            status=status,
            scheduled_at=datetime(2024, 6, 3, 9, 0),
        )
    )


def test_cancel_queued_send(client, headers, org):
    send = queued_send(org)

    response = client.delete(f"/api/email-sends/{send.id}", headers=headers)

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert fetch(EmailSend, send.id).error_message == "Cancelled by user"


def test_cancel_sent_send_is_invalid_state(client, headers, org):
    send = queued_send(org, status="delivered")

    response = client.delete(f"/api/email-sends/{send.id}", headers=headers)

    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_STATE"


def test_stats_endpoint(client, headers, org):
    queued_send(org, status="opened")

    response = client.get("/api/email-sends/stats", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["sent"] == 1
    assert body["open_rate"] == 100


def test_work_week_runs_monday_to_saturday():
    assert work_week(date(2024, 6, 5)) == (date(2024, 6, 3), date(2024, 6, 8))
    assert work_week(date(2024, 6, 9)) == (date(2024, 6, 3), date(2024, 6, 8))


def test_daily_volume_covers_a_week_around_today():
    today = date(2024, 6, 5)
    sends = [
        (datetime(2024, 6, 5, 9, 0), "delivered"),
        (datetime(2024, 6, 5, 10, 0), "queued"),
        (datetime(2024, 6, 5, 11, 0), "cancelled"),
        (datetime(2024, 6, 2, 9, 0), "opened"),
        (datetime(2024, 6, 8, 9, 0), "queued"),
        (None, "queued"),
    ]

    days = daily_volume(sends, today)

    assert [d["date"] for d in days][0] == "2024-06-02"
    assert len(days) == 7
    by_date = {d["date"]: d for d in days}
    assert by_date["2024-06-05"] == {
        "date": "2024-06-05",
        "day_label": "Wed 6/5",
        "sent": 1,
        "queued": 1,
        "total": 2,
        "is_today": True,
    }
    assert by_date["2024-06-02"]["sent"] == 1
    assert by_date["2024-06-08"]["queued"] == 1


def test_pipeline_endpoint(client, headers, org, other_org):
    company = make_company(org)
    contact = make_contact(org, company, email="dana@summit.com")
    campaign = add_rows(Campaign(organization_id=org.id, company_id=company.id, name="Q3 Push"))
    now = datetime.utcnow().replace(hour=12, minute=0, second=0, microsecond=0)
    add_rows(
        EmailSend(
            organization_id=org.id,
            contact_id=contact.id,
            campaign_id=campaign.id,
            recipient_email=contact.email,
            from_email="rep@acme-agency.com",
            subject_line="Hello",
            status="queued",
            scheduled_at=now,
        ),
        EmailSend(
            organization_id=org.id,
            contact_id=contact.id,
            recipient_email=contact.email,
            from_email="rep@acme-agency.com",
            subject_line="Earlier",
            status="delivered",
            scheduled_at=now - timedelta(days=30),
        ),
        EmailSend(
            organization_id=other_org.id,
            recipient_email="lee@rival.com",
            from_email="rep@acme-agency.com",
            subject_line="Not ours",
            status="queued",
            scheduled_at=now,
        ),
    )

    response = client.get("/api/email-sends/pipeline", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["summary"]["today"] == 1
    assert body["summary"]["total_queued"] == 1
    assert body["summary"]["sent_7d"] == 0
    item = body["today_sends"][0]
    assert item["subject_line"] == "Hello"
    assert item["contact"]["first_name"] == "Dana"
    assert item["campaign"]["name"] == "Q3 Push"
    today = next(d for d in body["daily_volume"] if d["is_today"])
    assert today["queued"] == 1
