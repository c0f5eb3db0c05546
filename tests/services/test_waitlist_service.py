from datetime import timedelta

import pytest

from app.core.config import get_settings
from app.core.exceptions import CapacityExceededError, ConflictError, StateTransitionError, ValidationError
from app.core.timezone_utils import utcnow
from app.models.schedule import BookingStatus, WaitlistStatus
from app.services.member import member_service
from app.services.schedule import booking_service, waitlist_service


@pytest.fixture
def full_schedule(db, make_member, schedule, give_credits):
    """Sesión de aforo 2 completa y tres socios con créditos en la lista de espera."""
    holders = [make_member() for _ in range(2)]
    waiting = [make_member() for _ in range(3)]
    bookings = []
    for m in holders + waiting:
        give_credits(m.id)
    for m in holders:
        bookings.append(booking_service.book_class(db, member_id=m.id, schedule_id=schedule.id))
    entries = []
    for m in waiting:
        with pytest.raises(CapacityExceededError) as exc_info:
            booking_service.book_class(db, member_id=m.id, schedule_id=schedule.id)
        entries.append(waitlist_service.get_entry(db, exc_info.value.waitlist_entry_id))
    return schedule, bookings, entries


def test_positions_are_assigned_in_order(db, full_schedule):
    _, _, entries = full_schedule

    assert [e.position for e in entries] == [1, 2, 3]


def test_join_is_idempotent(db, full_schedule):
    schedule, _, entries = full_schedule

    again = waitlist_service.join_waitlist(db, member_id=entries[0].member_id, schedule_id=schedule.id)

    assert again.id == entries[0].id
    assert again.position == 1


def test_join_with_free_spots_is_rejected(db, member, schedule):
    with pytest.raises(ValidationError):
        waitlist_service.join_waitlist(db, member_id=member.id, schedule_id=schedule.id)


def test_member_with_booking_cannot_join(db, full_schedule):
    schedule, bookings, _ = full_schedule

    with pytest.raises(ConflictError):
        waitlist_service.join_waitlist(db, member_id=bookings[0].member_id, schedule_id=schedule.id)


def test_cancellation_promotes_first_in_line(db, full_schedule):
    schedule, bookings, entries = full_schedule

    booking_service.cancel_booking(db, bookings[0].id)

    first, second, third = [waitlist_service.get_entry(db, e.id) for e in entries]
    assert first.status == WaitlistStatus.NOTIFIED
    assert first.position is None
    assert first.expires_at is not None
    promoted = booking_service.get_booking(db, first.booking_id)
    assert promoted.status == BookingStatus.CONFIRMED
    assert promoted.credit_pass_id is not None
    assert (second.position, third.position) == (1, 2)


def test_leaving_renumbers_remaining_entries(db, full_schedule):
    _, _, entries = full_schedule

    left = waitlist_service.leave_waitlist(db, entries[0].id)

    assert left.status == WaitlistStatus.CANCELLED
    assert left.position is None
    assert waitlist_service.get_entry(db, entries[1].id).position == 1
    assert waitlist_service.get_entry(db, entries[2].id).position == 2


def test_leaving_twice_is_rejected(db, full_schedule):
    _, _, entries = full_schedule
    waitlist_service.leave_waitlist(db, entries[2].id)

    with pytest.raises(StateTransitionError):
        waitlist_service.leave_waitlist(db, entries[2].id)


def test_accept_offer_keeps_booking(db, full_schedule):
    _, bookings, entries = full_schedule
    booking_service.cancel_booking(db, bookings[0].id)

    accepted = waitlist_service.accept_offer(db, entries[0].id)

    assert accepted.status == WaitlistStatus.BOOKED
    assert accepted.expires_at is None
    assert booking_service.get_booking(db, accepted.booking_id).status == BookingStatus.CONFIRMED


def test_declining_offer_passes_spot_to_next(db, full_schedule):
    _, bookings, entries = full_schedule
    booking_service.cancel_booking(db, bookings[0].id)

    declined = waitlist_service.leave_waitlist(db, entries[0].id)

    assert declined.status == WaitlistStatus.CANCELLED
    assert booking_service.get_booking(db, declined.booking_id).status == BookingStatus.CANCELLED
    assert waitlist_service.get_entry(db, entries[1].id).status == WaitlistStatus.NOTIFIED


def test_expired_offer_moves_to_next_member(db, full_schedule):
    _, bookings, entries = full_schedule
    booking_service.cancel_booking(db, bookings[0].id)
    window = get_settings().WAITLIST_ACCEPTANCE_WINDOW_MINUTES

    expired = waitlist_service.expire_offers(db, now=utcnow() + timedelta(minutes=window + 1))

    assert expired == 1
    first = waitlist_service.get_entry(db, entries[0].id)
    assert first.status == WaitlistStatus.EXPIRED
    assert booking_service.get_booking(db, first.booking_id).status == BookingStatus.CANCELLED
    assert waitlist_service.get_entry(db, entries[1].id).status == WaitlistStatus.NOTIFIED


def test_expired_offer_cannot_be_accepted(db, full_schedule):
    _, bookings, entries = full_schedule
    booking_service.cancel_booking(db, bookings[0].id)
    window = get_settings().WAITLIST_ACCEPTANCE_WINDOW_MINUTES

    with pytest.raises(StateTransitionError):
        waitlist_service.accept_offer(db, entries[0].id, now=utcnow() + timedelta(minutes=window + 1))


def test_offer_swept_by_expiry_cannot_be_accepted_later(db, full_schedule):
    _, bookings, entries = full_schedule
    booking_service.cancel_booking(db, bookings[0].id)
    offered = waitlist_service.get_entry(db, entries[0].id)
    assert offered.status == WaitlistStatus.NOTIFIED
    window = get_settings().WAITLIST_ACCEPTANCE_WINDOW_MINUTES
    waitlist_service.expire_offers(db, now=utcnow() + timedelta(minutes=window + 1))

    with pytest.raises(StateTransitionError):
        waitlist_service.accept_offer(db, offered.id)

    entry = waitlist_service.get_entry(db, offered.id)
    assert entry.status == WaitlistStatus.EXPIRED
    assert booking_service.get_booking(db, entry.booking_id).status == BookingStatus.CANCELLED


def test_offer_with_cancelled_booking_cannot_be_accepted(db, full_schedule):
    _, bookings, entries = full_schedule
    booking_service.cancel_booking(db, bookings[0].id)
    offered = waitlist_service.get_entry(db, entries[0].id)

    booking_service.cancel_booking(db, offered.booking_id)

    with pytest.raises(StateTransitionError):
        waitlist_service.accept_offer(db, offered.id)
    assert waitlist_service.get_entry(db, offered.id).status != WaitlistStatus.BOOKED


def test_promotion_skips_inactive_members(db, full_schedule):
    _, bookings, entries = full_schedule
    member_service.deactivate_member(db, entries[0].member_id)

    booking_service.cancel_booking(db, bookings[0].id)

    assert waitlist_service.get_entry(db, entries[0].id).status == WaitlistStatus.CANCELLED
    assert waitlist_service.get_entry(db, entries[1].id).status == WaitlistStatus.NOTIFIED
    assert waitlist_service.get_entry(db, entries[2].id).position == 1


def test_no_show_frees_spot(db, full_schedule):
    _, bookings, entries = full_schedule

    booking_service.update_booking_status(db, booking_id=bookings[1].id, status=BookingStatus.NO_SHOW)

    assert waitlist_service.get_entry(db, entries[0].id).status == WaitlistStatus.NOTIFIED
