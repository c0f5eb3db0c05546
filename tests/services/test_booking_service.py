from datetime import timedelta

import pytest

from app.core.exceptions import (
    CapacityExceededError,
    ConflictError,
    InsufficientCreditsError,
    StateTransitionError,
    ValidationError
)
from app.core.timezone_utils import utcnow
from app.models.credits import ClassCreditTransaction, CreditTransactionType
from app.models.schedule import BookingStatus, WaitlistStatus
from app.services.credits import credit_service
from app.services.schedule import booking_service, schedule_service, waitlist_service
from app.schemas.schedule import ClassScheduleUpdate, RatingCreate


class TestBookClass:

    def test_book_consumes_one_credit(self, db, member, schedule, give_credits):
        credit_pass = give_credits(member.id)

        booking = booking_service.book_class(db, member_id=member.id, schedule_id=schedule.id)

        assert booking.status == BookingStatus.CONFIRMED
        assert booking.credit_pass_id == credit_pass.id
        db.refresh(credit_pass)
        assert credit_pass.remaining_credits == 4
        usage = db.query(ClassCreditTransaction).filter(
            ClassCreditTransaction.booking_id == booking.id,
            ClassCreditTransaction.type == CreditTransactionType.USAGE
        ).one()
        assert usage.credits_delta == -1
        assert usage.balance_after == 4

    def test_book_without_credits_fails_without_side_effects(self, db, member, schedule):
        with pytest.raises(InsufficientCreditsError):
            booking_service.book_class(db, member_id=member.id, schedule_id=schedule.id)

        assert booking_service.get_schedule_bookings(db, schedule_id=schedule.id) == []

    def test_duplicate_booking_is_rejected(self, db, member, schedule, give_credits):
        give_credits(member.id)
        booking_service.book_class(db, member_id=member.id, schedule_id=schedule.id)

        with pytest.raises(ConflictError):
            booking_service.book_class(db, member_id=member.id, schedule_id=schedule.id)

    def test_full_session_adds_member_to_waitlist(self, db, make_member, schedule, give_credits):
        members = [make_member() for _ in range(3)]
        for m in members:
            give_credits(m.id)
        booking_service.book_class(db, member_id=members[0].id, schedule_id=schedule.id)
        booking_service.book_class(db, member_id=members[1].id, schedule_id=schedule.id)

        with pytest.raises(CapacityExceededError) as exc_info:
            booking_service.book_class(db, member_id=members[2].id, schedule_id=schedule.id)

        assert exc_info.value.waitlist_position == 1
        entry = waitlist_service.get_entry(db, exc_info.value.waitlist_entry_id)
        assert entry.status == WaitlistStatus.WAITING
        assert entry.member_id == members[2].id

    def test_full_session_without_waitlist(self, db, make_member, schedule, give_credits):
        members = [make_member() for _ in range(3)]
        for m in members:
            give_credits(m.id)
        for m in members[:2]:
            booking_service.book_class(db, member_id=m.id, schedule_id=schedule.id)

        with pytest.raises(CapacityExceededError) as exc_info:
            booking_service.book_class(
                db, member_id=members[2].id, schedule_id=schedule.id, join_waitlist=False
            )

        assert exc_info.value.waitlist_entry_id is None
        assert waitlist_service.get_schedule_waitlist(db, schedule.id) == []

    def test_started_session_cannot_be_booked(self, db, member, make_schedule, give_credits):
        give_credits(member.id)
        schedule = make_schedule(hours_ahead=1)

        with pytest.raises(ValidationError):
            booking_service.book_class(
                db, member_id=member.id, schedule_id=schedule.id, now=utcnow() + timedelta(hours=2)
            )


class TestCancelBooking:

    def test_early_cancellation_refunds_credit(self, db, member, schedule, give_credits):
        credit_pass = give_credits(member.id)
        booking = booking_service.book_class(db, member_id=member.id, schedule_id=schedule.id)

        cancelled = booking_service.cancel_booking(db, booking.id, reason="No puedo ir")

        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.cancellation_reason == "No puedo ir"
        db.refresh(credit_pass)
        assert credit_pass.remaining_credits == 5

    def test_late_cancellation_keeps_credit(self, db, member, make_schedule, give_credits):
        credit_pass = give_credits(member.id)
        schedule = make_schedule(hours_ahead=1)
        booking = booking_service.book_class(db, member_id=member.id, schedule_id=schedule.id)

        booking_service.cancel_booking(db, booking.id)

        db.refresh(credit_pass)
        assert credit_pass.remaining_credits == 4

    def test_cancelled_booking_cannot_be_cancelled_again(self, db, member, schedule, give_credits):
        give_credits(member.id)
        booking = booking_service.book_class(db, member_id=member.id, schedule_id=schedule.id)
        booking_service.cancel_booking(db, booking.id)

        with pytest.raises(StateTransitionError):
            booking_service.cancel_booking(db, booking.id)

    def test_member_can_rebook_after_cancelling(self, db, member, schedule, give_credits):
        give_credits(member.id)
        booking = booking_service.book_class(db, member_id=member.id, schedule_id=schedule.id)
        booking_service.cancel_booking(db, booking.id)

        again = booking_service.book_class(db, member_id=member.id, schedule_id=schedule.id)

        assert again.id != booking.id
        assert again.status == BookingStatus.CONFIRMED


class TestStatusTransitions:

    def test_pending_booking_is_confirmed_with_credit(self, db, member, schedule, give_credits):
        credit_pass = give_credits(member.id)
        booking = booking_service.request_booking(db, member_id=member.id, schedule_id=schedule.id)
        assert booking.status == BookingStatus.PENDING
        assert booking.credit_pass_id is None

        confirmed = booking_service.confirm_booking(db, booking.id)

        assert confirmed.status == BookingStatus.CONFIRMED
        assert confirmed.confirmed_at is not None
        db.refresh(credit_pass)
        assert credit_pass.remaining_credits == 4

    def test_completed_is_terminal(self, db, member, schedule, give_credits):
        give_credits(member.id)
        booking = booking_service.book_class(db, member_id=member.id, schedule_id=schedule.id)
        booking_service.update_booking_status(db, booking_id=booking.id, status=BookingStatus.COMPLETED)

        with pytest.raises(StateTransitionError) as exc_info:
            booking_service.update_booking_status(db, booking_id=booking.id, status=BookingStatus.CANCELLED)

        assert exc_info.value.details == {"from": "COMPLETED", "to": "CANCELLED"}

    def test_pending_cannot_be_marked_no_show(self, db, member, schedule):
        booking = booking_service.request_booking(db, member_id=member.id, schedule_id=schedule.id)

        with pytest.raises(StateTransitionError):
            booking_service.update_booking_status(db, booking_id=booking.id, status=BookingStatus.NO_SHOW)


class TestCapacityUpdates:

    def test_capacity_below_confirmed_is_rejected(self, db, make_member, schedule, give_credits):
        for _ in range(2):
            m = make_member()
            give_credits(m.id)
            booking_service.book_class(db, member_id=m.id, schedule_id=schedule.id)

        with pytest.raises(ValidationError):
            schedule_service.update_schedule(
                db, schedule_id=schedule.id, schedule_in=ClassScheduleUpdate(capacity=1)
            )

    def test_capacity_increase_promotes_waitlist(self, db, make_member, schedule, give_credits):
        members = [make_member() for _ in range(3)]
        for m in members:
            give_credits(m.id)
        for m in members[:2]:
            booking_service.book_class(db, member_id=m.id, schedule_id=schedule.id)
        with pytest.raises(CapacityExceededError) as exc_info:
            booking_service.book_class(db, member_id=members[2].id, schedule_id=schedule.id)

        updated = schedule_service.update_schedule(
            db, schedule_id=schedule.id, schedule_in=ClassScheduleUpdate(capacity=3)
        )

        assert updated.confirmed_count == 3
        entry = waitlist_service.get_entry(db, exc_info.value.waitlist_entry_id)
        assert entry.status == WaitlistStatus.NOTIFIED
        assert entry.booking_id is not None

    def test_deactivating_schedule_refunds_bookings(self, db, member, schedule, give_credits):
        credit_pass = give_credits(member.id)
        booking = booking_service.book_class(db, member_id=member.id, schedule_id=schedule.id)

        schedule_service.deactivate_schedule(db, schedule_id=schedule.id, reason="Instructor enfermo")

        db.refresh(booking)
        db.refresh(credit_pass)
        assert booking.status == BookingStatus.CANCELLED
        assert credit_pass.remaining_credits == 5
        assert credit_service.get_member_credits(db, member.id).total_remaining_credits == 5


class TestInstructorRating:

    def test_rating_requires_attendance(self, db, member, trainer, make_schedule, give_credits):
        give_credits(member.id)
        schedule = make_schedule(trainer_id=trainer.id)
        booking = booking_service.book_class(db, member_id=member.id, schedule_id=schedule.id)

        with pytest.raises(ValidationError):
            booking_service.rate_instructor(db, booking_id=booking.id, rating_in=RatingCreate(rating=5))

    def test_rating_completed_class_once(self, db, member, trainer, make_schedule, give_credits):
        give_credits(member.id)
        schedule = make_schedule(trainer_id=trainer.id)
        booking = booking_service.book_class(db, member_id=member.id, schedule_id=schedule.id)
        booking_service.update_booking_status(db, booking_id=booking.id, status=BookingStatus.COMPLETED)

        rating = booking_service.rate_instructor(
            db, booking_id=booking.id, rating_in=RatingCreate(rating=4, comment="Muy buena clase")
        )

        assert rating.trainer_id == trainer.id
        assert rating.rating == 4
        with pytest.raises(ConflictError):
            booking_service.rate_instructor(db, booking_id=booking.id, rating_in=RatingCreate(rating=5))
