from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from conftest import WEBHOOK_HEADERS, add_rows, fetch, make_company, make_contact
from orbit_api.models.activity import Activity
from orbit_api.models.campaign import Campaign
from orbit_api.models.contact import Contact
from orbit_api.models.email import EmailSend, EmailUnsubscribe
from orbit_api.services.email_events import advance_status, apply_ses_event, to_naive_utc


def make_campaign(org, company, name="Q3 Outreach"):
    return add_rows(Campaign(organization_id=org.id, company_id=company.id, name=name))


def make_send(org, campaign, contact, status="queued", ses_message_id=None, activity=None):
    return add_rows(
        EmailSend(
            organization_id=org.id,
            campaign_id=campaign.id if campaign else None,
            contact_id=contact.id,
            activity_id=activity.id if activity else None,
            recipient_email=contact.email,
            from_email="rep@acme.test",
            subject_line="Quick question",
            status=status,
            ses_message_id=ses_message_id,
        )
    )


def post_event(client, ses_message_id, event_type, details=None, headers=WEBHOOK_HEADERS):
    return client.post(
        "/api/webhooks/ses-events",
        json={"ses_message_id": ses_message_id, "event_type": event_type, "details": details},
        headers=headers,
    )


def test_advance_status_only_moves_forward():
    assert advance_status("delivered", "opened") == "opened"
    assert advance_status("replied", "clicked") == "replied"
    assert advance_status("clicked", "opened") == "clicked"
    assert advance_status("bounced", "opened") == "bounced"


def test_to_naive_utc():
    aware = datetime(2024, 5, 1, 12, 0, tzinfo=timezone(timedelta(hours=-5)))
    assert to_naive_utc(aware) == datetime(2024, 5, 1, 17, 0)


def test_delivery_moves_sending_to_delivered(client, org):
    contact = make_contact(org, make_company(org), email="dana@summit.com")
    send = make_send(org, make_campaign(org, make_company(org, "Other Co")), contact, status="sending", ses_message_id="m-1")

    response = post_event(client, "m-1", "Delivery")

    assert response.status_code == 200
    assert response.json()["email_send_id"] == str(send.id)
    assert fetch(EmailSend, send.id).status == "delivered"


def test_open_counts_and_sets_activity_outcome(client, org):
    company = make_company(org)
    contact = make_contact(org, company, email="dana@summit.com")
    campaign = make_campaign(org, company)
    activity = add_rows(Activity(organization_id=org.id, campaign_id=campaign.id, activity_type="email", contact_id=contact.id))
    send = make_send(org, campaign, contact, status="delivered", ses_message_id="m-2", activity=activity)

    post_event(client, "m-2", "Open")
    post_event(client, "m-2", "Open")

    stored = fetch(EmailSend, send.id)
    assert stored.status == "opened"
    assert stored.open_count == 2
    assert stored.first_opened_at <= stored.last_opened_at
    assert fetch(Activity, activity.id).outcome == "opened"


def test_click_does_not_downgrade_replied(client, org):
    company = make_company(org)
    contact = make_contact(org, company, email="dana@summit.com")
    send = make_send(org, make_campaign(org, company), contact, status="replied", ses_message_id="m-3")

    post_event(client, "m-3", "Click", {"link": "https://acme.test/case-study"})
    post_event(client, "m-3", "Click", {"link": "https://acme.test/case-study"})

    stored = fetch(EmailSend, send.id)
    assert stored.status == "replied"
    assert stored.click_count == 2
    assert stored.clicked_links == ["https://acme.test/case-study"]


def test_bounce_suppresses_contact_and_cancels_campaign_sends(client, org):
    company = make_company(org)
    contact = make_contact(org, company, email="dana@summit.com")
    campaign = make_campaign(org, company)
    other_campaign = make_campaign(org, company, "Q4 Outreach")
    bounced = make_send(org, campaign, contact, status="delivered", ses_message_id="m-4")
    queued = make_send(org, campaign, contact)
    elsewhere = make_send(org, other_campaign, contact)

    response = post_event(client, "m-4", "Bounce", {"bounceType": "Permanent"})

    assert response.status_code == 200
    assert fetch(EmailSend, bounced.id).status == "bounced"
    assert fetch(EmailSend, bounced.id).bounce_type == "Permanent"
    assert fetch(EmailSend, queued.id).status == "cancelled"
    assert fetch(EmailSend, queued.id).error_message == "Contact bounced (permanent)"
    assert fetch(EmailSend, elsewhere.id).status == "queued"
    assert fetch(Contact, contact.id).email_unsubscribed is True


def test_bounce_without_campaign_keeps_other_sends_queued(client, org):
    company = make_company(org)
    contact = make_contact(org, company, email="dana@summit.com")
    make_send(org, None, contact, status="sending", ses_message_id="m-7")
    queued_elsewhere = make_send(org, make_campaign(org, company), contact)

    response = post_event(client, "m-7", "Bounce", {"bounceType": "Permanent"})

    assert response.status_code == 200
    assert response.json()["cancelled_sends"] == 0
    assert fetch(EmailSend, queued_elsewhere.id).status == "queued"
    assert fetch(Contact, contact.id).email_unsubscribed is True


@pytest.mark.asyncio
async def test_complaint_without_campaign_still_records_unsubscribe(db_session, org):
    company = make_company(org)
    contact = make_contact(org, company, email="dana@summit.com")
    make_send(org, None, contact, status="delivered", ses_message_id="m-8")
    queued_elsewhere = make_send(org, make_campaign(org, company), contact)

    outcome = await apply_ses_event(db_session, ses_message_id="m-8", event_type="Complaint")
    await db_session.commit()

    assert outcome.suppressed
    assert outcome.cancelled == 0
    assert fetch(EmailSend, queued_elsewhere.id).status == "queued"
    unsubscribe = (await db_session.execute(select(EmailUnsubscribe))).scalar_one()
    assert unsubscribe.contact_id == contact.id


@pytest.mark.parametrize("status", ["bounced", "cancelled"])
@pytest.mark.parametrize("event_type", ["Open", "Click"])
def test_engagement_never_revives_terminal_send(client, org, status, event_type):
    company = make_company(org)
    contact = make_contact(org, company, email="dana@summit.com")
    send = make_send(org, make_campaign(org, company), contact, status=status, ses_message_id="m-9")

    response = post_event(client, "m-9", event_type, {"link": "https://acme.test/x"})

    assert response.status_code == 200
    assert fetch(EmailSend, send.id).status == status


def test_transient_bounce_does_not_suppress(client, org):
    company = make_company(org)
    contact = make_contact(org, company, email="dana@summit.com")
    make_send(org, make_campaign(org, company), contact, status="delivered", ses_message_id="m-5")

    post_event(client, "m-5", "Bounce", {"bounceType": "Transient"})

    assert fetch(Contact, contact.id).email_unsubscribed is False


@pytest.mark.asyncio
async def test_complaint_records_unsubscribe(db_session, org):
    company = make_company(org)
    contact = make_contact(org, company, email="Dana@Summit.com")
    send = make_send(org, make_campaign(org, company), contact, status="opened", ses_message_id="m-6")

    outcome = await apply_ses_event(db_session, ses_message_id="m-6", event_type="Complaint")
    await db_session.commit()

    assert outcome.matched
    assert outcome.previous_status == "opened"
    assert outcome.status == "complained"
    assert outcome.suppressed

    unsubscribe = (await db_session.execute(select(EmailUnsubscribe))).scalar_one()
    assert unsubscribe.email_address == "dana@summit.com"
    assert unsubscribe.reason == "Spam complaint"
    assert unsubscribe.source_email_send_id == send.id


def test_unknown_message_id_is_acknowledged(client):
    response = post_event(client, "missing", "Open")

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "No matching email send found"}


def test_wrong_secret_is_rejected(client):
    response = post_event(client, "m-1", "Open", headers={"x-webhook-secret": "nope"})

    assert response.status_code == 401


def test_unknown_event_type_is_bad_request(client):
    response = post_event(client, "m-1", "Reject")

    assert response.status_code == 400
