from datetime import date, datetime, timedelta

import pytest

from app.core.exceptions import NotFoundError, StateTransitionError, ValidationError
from app.core.timezone_utils import utcnow
from app.models.user import User
from app.models.marketing import (
    CampaignAudience,
    CampaignChannel,
    CampaignEventType,
    CampaignStatus,
    RecipientStatus
)
from app.schemas.attendance import CheckInRequest
from app.schemas.marketing import CampaignCreate, CampaignEventCreate, CampaignUpdate
from app.schemas.member import MemberUpdate
from app.services.attendance import attendance_service
from app.services.marketing import DeliveryError, marketing_service, render_message
from app.services.member import member_service
from app.services.retention import retention_service
from app.services.schedule import booking_service


@pytest.fixture(autouse=True)
def reset_dispatcher():
    yield
    marketing_service.set_dispatcher(None)


def _campaign(db, **overrides):
    data = {"name": "Promo verano", "content": "Hola {{first_name}}, tenemos {{special_offer}}"}
    data.update(overrides)
    return marketing_service.create_campaign(db, campaign_in=CampaignCreate(**data))


def test_create_campaign_defaults_to_draft(db):
    campaign = _campaign(db)

    assert campaign.status == CampaignStatus.DRAFT
    assert campaign.audience == CampaignAudience.ALL_MEMBERS
    assert campaign.channel == CampaignChannel.EMAIL


def test_scheduled_campaign_requires_date():
    with pytest.raises(ValueError):
        CampaignCreate(name="X", content="Y", status=CampaignStatus.SCHEDULED)


def test_class_audience_requires_existing_class(db):
    with pytest.raises(ValueError):
        CampaignCreate(name="X", content="Y", audience=CampaignAudience.CLASS_ATTENDEES)

    with pytest.raises(NotFoundError):
        _campaign(db, audience=CampaignAudience.CLASS_ATTENDEES, class_id=999)


def test_render_message_fills_placeholders():
    user = User(first_name="Ana", last_name="García", email="ana@test.com")

    assert render_message("{{first_name}} {{last_name}} <{{email}}>", user, None) == "Ana García <ana@test.com>"
    assert render_message("Te regalamos {{special_offer}}", user, "un batido") == "Te regalamos un batido"
    assert render_message("{{special_offer}}", user, None) == "una oferta exclusiva"


def test_send_records_recipients_and_events(db, make_member):
    sent = []
    marketing_service.set_dispatcher(lambda channel, dest, subject, body: sent.append((dest, body)))
    first = make_member(first_name="Ana")
    second = make_member(first_name="Bruno")
    campaign = _campaign(db)

    result = marketing_service.send_campaign(db, campaign.id)

    assert result.status == CampaignStatus.SENT
    assert (result.total_recipients, result.delivered_count, result.failed_count) == (2, 2, 0)
    assert sorted(body for _, body in sent) == [
        "Hola Ana, tenemos una oferta exclusiva", "Hola Bruno, tenemos una oferta exclusiva"
    ]
    recipients, total = marketing_service.list_recipients(db, campaign_id=campaign.id)
    assert total == 2
    assert {r.member_id for r in recipients} == {first.id, second.id}
    assert all(r.status == RecipientStatus.SENT for r in recipients)
    events = marketing_service.get_recipient_events(db, campaign_id=campaign.id, recipient_id=recipients[0].id)
    assert [e.event_type for e in events] == [CampaignEventType.DELIVERED]
    assert marketing_service.get_campaign(db, campaign.id).sent_at is not None


def test_missing_destination_makes_campaign_partial(db, make_member):
    with_phone = make_member()
    make_member()
    member_service.update_member(db, member_id=with_phone.id, member_in=MemberUpdate(phone="+34600000000"))
    campaign = _campaign(db, channel=CampaignChannel.SMS)

    result = marketing_service.send_campaign(db, campaign.id)

    assert result.status == CampaignStatus.PARTIAL
    assert (result.delivered_count, result.failed_count) == (1, 1)
    failed, _ = marketing_service.list_recipients(db, campaign_id=campaign.id, status=RecipientStatus.FAILED)
    assert failed[0].fail_reason.startswith("Sin destino")


def test_provider_rejections_fail_the_campaign(db, member):
    def reject(channel, dest, subject, body):
        raise DeliveryError("Buzón inexistente")

    marketing_service.set_dispatcher(reject)
    campaign = _campaign(db)

    result = marketing_service.send_campaign(db, campaign.id)

    assert result.status == CampaignStatus.FAILED
    recipients, _ = marketing_service.list_recipients(db, campaign_id=campaign.id)
    assert recipients[0].fail_reason == "Buzón inexistente"


def test_empty_audience_marks_campaign_failed(db, member):
    campaign = _campaign(db, audience=CampaignAudience.CUSTOM, custom_member_ids=[member.id + 100])

    with pytest.raises(ValidationError):
        marketing_service.send_campaign(db, campaign.id)

    assert marketing_service.get_campaign(db, campaign.id).status == CampaignStatus.FAILED


def test_sent_campaign_cannot_be_sent_or_edited_again(db, member):
    campaign = _campaign(db)
    marketing_service.send_campaign(db, campaign.id)

    with pytest.raises(StateTransitionError):
        marketing_service.send_campaign(db, campaign.id)
    with pytest.raises(StateTransitionError):
        marketing_service.update_campaign(db, campaign_id=campaign.id, campaign_in=CampaignUpdate(name="Otra"))


def test_update_cannot_jump_to_delivery_states(db):
    campaign = _campaign(db)

    with pytest.raises(StateTransitionError):
        marketing_service.update_campaign(
            db, campaign_id=campaign.id, campaign_in=CampaignUpdate(status=CampaignStatus.SENT)
        )
    with pytest.raises(ValidationError):
        marketing_service.update_campaign(
            db, campaign_id=campaign.id, campaign_in=CampaignUpdate(status=CampaignStatus.SCHEDULED)
        )

    cancelled = marketing_service.update_campaign(
        db, campaign_id=campaign.id, campaign_in=CampaignUpdate(status=CampaignStatus.CANCELLED)
    )
    assert cancelled.status == CampaignStatus.CANCELLED


def test_inactive_audience_excludes_recent_visitors(db, make_member, give_membership):
    regular = make_member()
    absent = make_member()
    give_membership(regular.id)
    attendance_service.check_in(db, check_in=CheckInRequest(member_id=regular.id))
    campaign = _campaign(db, audience=CampaignAudience.INACTIVE_MEMBERS, inactive_days=14)

    audience = marketing_service.resolve_audience(db, campaign)

    assert [m.id for m, _ in audience] == [absent.id]


def test_birthday_audience_matches_month_and_day(db, make_member):
    celebrating = make_member()
    other = make_member()
    make_member()
    member_service.update_member(db, member_id=celebrating.id, member_in=MemberUpdate(date_of_birth=date(1990, 6, 15)))
    member_service.update_member(db, member_id=other.id, member_in=MemberUpdate(date_of_birth=date(1990, 6, 18)))
    campaign = _campaign(db, audience=CampaignAudience.BIRTHDAY_MEMBERS)

    audience = marketing_service.resolve_audience(db, campaign, now=datetime(2025, 6, 15, 12, 0))

    assert [m.id for m, _ in audience] == [celebrating.id]


def test_class_attendee_audience(db, make_member, schedule, give_credits):
    attendee = make_member()
    make_member()
    give_credits(attendee.id)
    booking_service.book_class(db, member_id=attendee.id, schedule_id=schedule.id)
    campaign = _campaign(db, audience=CampaignAudience.CLASS_ATTENDEES, class_id=schedule.class_id)

    audience = marketing_service.resolve_audience(db, campaign)

    assert [m.id for m, _ in audience] == [attendee.id]


def test_high_risk_audience_follows_retention_buckets(db, make_member, give_membership):
    at_risk = make_member()
    regular = make_member()
    give_membership(regular.id)
    attendance_service.check_in(db, check_in=CheckInRequest(member_id=regular.id))
    retention_service.recalculate_all(db)
    campaign = _campaign(db, audience=CampaignAudience.HIGH_RISK_MEMBERS)

    audience = marketing_service.resolve_audience(db, campaign)

    assert [m.id for m, _ in audience] == [at_risk.id]


def test_deactivated_members_are_never_targeted(db, make_member):
    leaving = make_member()
    staying = make_member()
    member_service.deactivate_member(db, leaving.id)
    campaign = _campaign(db, audience=CampaignAudience.CUSTOM, custom_member_ids=[leaving.id, staying.id])

    result = marketing_service.send_campaign(db, campaign.id)

    assert result.total_recipients == 1


def test_events_update_recipient_and_analytics(db, make_member):
    for _ in range(4):
        make_member()
    campaign = _campaign(db)
    marketing_service.send_campaign(db, campaign.id)
    recipients, _ = marketing_service.list_recipients(db, campaign_id=campaign.id)
    opened, clicked, bounced = recipients[0], recipients[1], recipients[2]

    marketing_service.log_campaign_event(
        db, campaign_id=campaign.id, recipient_id=opened.id,
        event_in=CampaignEventCreate(event_type=CampaignEventType.OPENED)
    )
    marketing_service.log_campaign_event(
        db, campaign_id=campaign.id, recipient_id=clicked.id,
        event_in=CampaignEventCreate(event_type=CampaignEventType.CLICKED)
    )
    # Una apertura posterior no deshace el clic
    marketing_service.log_campaign_event(
        db, campaign_id=campaign.id, recipient_id=clicked.id,
        event_in=CampaignEventCreate(event_type=CampaignEventType.OPENED)
    )
    marketing_service.log_campaign_event(
        db, campaign_id=campaign.id, recipient_id=bounced.id,
        event_in=CampaignEventCreate(event_type=CampaignEventType.FAILED, detail="Rebote")
    )

    db.refresh(clicked)
    assert clicked.status == RecipientStatus.CLICKED
    assert clicked.opened_at is not None
    analytics = marketing_service.get_campaign_analytics(db, campaign.id)
    assert analytics.total_recipients == 4
    assert analytics.delivered_count == 3
    assert analytics.failed_count == 1
    assert analytics.opened_count == 2
    assert analytics.clicked_count == 1
    assert analytics.open_rate == 66.67
    assert analytics.click_rate == 33.33
    events = marketing_service.get_recipient_events(db, campaign_id=campaign.id, recipient_id=clicked.id)
    assert [e.event_type for e in events] == [
        CampaignEventType.DELIVERED, CampaignEventType.CLICKED, CampaignEventType.OPENED
    ]


def test_event_for_recipient_of_other_campaign_is_rejected(db, member):
    first = _campaign(db)
    second = _campaign(db, name="Otra")
    marketing_service.send_campaign(db, first.id)
    recipients, _ = marketing_service.list_recipients(db, campaign_id=first.id)

    with pytest.raises(NotFoundError):
        marketing_service.log_campaign_event(
            db, campaign_id=second.id, recipient_id=recipients[0].id,
            event_in=CampaignEventCreate(event_type=CampaignEventType.OPENED)
        )


def test_analytics_without_deliveries_has_zero_rates(db):
    campaign = _campaign(db)

    analytics = marketing_service.get_campaign_analytics(db, campaign.id)

    assert (analytics.total_recipients, analytics.open_rate, analytics.click_rate) == (0, 0.0, 0.0)


def test_list_campaigns_filters_and_counts(db, member):
    sent = _campaign(db, name="Black Friday")
    _campaign(db, name="Año nuevo")
    marketing_service.send_campaign(db, sent.id)

    rows, total = marketing_service.list_campaigns(db, search="friday")

    assert total == 1
    assert rows[0][0].id == sent.id
    assert rows[0][1] == 1
    drafts, total = marketing_service.list_campaigns(db, status=CampaignStatus.DRAFT)
    assert total == 1 and drafts[0][1] == 0


def test_scheduled_campaigns_are_sent_when_due(db, member):
    now = utcnow()
    due = _campaign(db, status=CampaignStatus.SCHEDULED, scheduled_at=now - timedelta(minutes=1))
    later = _campaign(db, name="Luego", status=CampaignStatus.SCHEDULED, scheduled_at=now + timedelta(hours=1))

    processed = marketing_service.process_scheduled_campaigns(db, now=now)

    assert processed == 1
    assert marketing_service.get_campaign(db, due.id).status == CampaignStatus.SENT
    assert marketing_service.get_campaign(db, later.id).status == CampaignStatus.SCHEDULED


def test_daily_automations_run_once_per_day(db, make_member):
    make_member()
    now = utcnow()

    first = marketing_service.run_daily_automations(db, now=now)
    second = marketing_service.run_daily_automations(db, now=now)

    # Sin asistencias: el socio entra en reenganche; nadie cumple años
    assert (first.birthday_sent, first.reengagement_sent) == (0, 1)
    assert len(first.campaign_ids) == 1
    assert second.campaign_ids == []
    campaign = marketing_service.get_campaign(db, first.campaign_ids[0])
    assert campaign.audience == CampaignAudience.INACTIVE_MEMBERS
    assert campaign.status == CampaignStatus.SENT
