from datetime import timedelta

import pytest

from app.core.exceptions import InsufficientCreditsError, ValidationError
from app.core.timezone_utils import utcnow
from app.models.credits import ClassPassStatus, CreditTransactionType
from app.schemas.credits import ClassPackageCreate
from app.schemas.membership import MembershipPlanCreate, MembershipAssign
from app.schemas.schedule import GymClassCreate
from app.services.credits import credit_service
from app.services.member import member_service
from app.services.membership import membership_service
from app.services.schedule import booking_service, class_service


def _package(db, **overrides):
    data = {"name": "Bono", "credits_included": 2, "price_cents": 2000, "validity_days": 30}
    data.update(overrides)
    return credit_service.create_package(db, package_in=ClassPackageCreate(**data))


def test_purchase_creates_pass_and_ledger_entry(db, member, package):
    credit_pass = credit_service.purchase_package(db, member_id=member.id, package_id=package.id)

    assert credit_pass.remaining_credits == 5
    assert credit_pass.status == ClassPassStatus.ACTIVE
    assert credit_pass.expires_at is not None
    transactions = credit_service.get_transactions(db, member.id)
    assert [t.type for t in transactions] == [CreditTransactionType.PURCHASE]
    assert transactions[0].credits_delta == 5


def test_inactive_member_cannot_purchase(db, member, package):
    member_service.deactivate_member(db, member.id)

    with pytest.raises(ValidationError):
        credit_service.purchase_package(db, member_id=member.id, package_id=package.id)


def test_pass_expiring_first_is_used_first(db, member, schedule):
    long_pass = credit_service.purchase_package(
        db, member_id=member.id, package_id=_package(db, name="Largo", validity_days=90).id
    )
    short_pass = credit_service.purchase_package(
        db, member_id=member.id, package_id=_package(db, name="Corto", validity_days=10).id
    )

    booking = booking_service.book_class(db, member_id=member.id, schedule_id=schedule.id)

    assert booking.credit_pass_id == short_pass.id
    db.refresh(long_pass)
    assert long_pass.remaining_credits == 2


def test_last_credit_exhausts_pass_and_refund_reactivates_it(db, member, schedule):
    credit_pass = credit_service.purchase_package(
        db, member_id=member.id, package_id=_package(db, credits_included=1).id
    )

    booking = booking_service.book_class(db, member_id=member.id, schedule_id=schedule.id)
    db.refresh(credit_pass)
    assert credit_pass.status == ClassPassStatus.EXHAUSTED

    booking_service.cancel_booking(db, booking.id)
    db.refresh(credit_pass)
    assert credit_pass.status == ClassPassStatus.ACTIVE
    assert credit_pass.remaining_credits == 1
    types = [t.type for t in credit_service.get_transactions(db, member.id)]
    assert types.count(CreditTransactionType.REFUND) == 1


def test_credits_count_down_to_zero_then_booking_is_refused(db, member, make_schedule):
    credit_pass = credit_service.purchase_package(
        db, member_id=member.id, package_id=_package(db, name="Tres", credits_included=3).id
    )
    sessions = [make_schedule(hours_ahead=h) for h in (48, 52, 56, 60)]

    for expected, session in zip((2, 1, 0), sessions):
        booking_service.book_class(db, member_id=member.id, schedule_id=session.id)
        db.refresh(credit_pass)
        assert credit_pass.remaining_credits == expected
    assert credit_pass.status == ClassPassStatus.EXHAUSTED

    with pytest.raises(InsufficientCreditsError):
        booking_service.book_class(db, member_id=member.id, schedule_id=sessions[3].id)
    db.refresh(credit_pass)
    assert credit_pass.remaining_credits == 0
    types = [t.type for t in credit_service.get_transactions(db, member.id)]
    assert types.count(CreditTransactionType.USAGE) == 3


def test_unlimited_pass_does_not_consume_credits(db, member, schedule):
    credit_service.purchase_package(
        db, member_id=member.id,
        package_id=_package(db, name="Ilimitado", monthly_unlimited=True, credits_included=1).id
    )

    booking = booking_service.book_class(db, member_id=member.id, schedule_id=schedule.id)

    assert booking.credit_pass_id is None
    assert credit_service.get_member_credits(db, member.id).has_unlimited_pass is True


def test_unlimited_membership_skips_credit_check(db, member, schedule):
    plan = membership_service.create_plan(
        db, plan_in=MembershipPlanCreate(name="Premium", price_cents=9000, duration_days=30, unlimited_classes=True)
    )
    membership_service.assign_membership(db, assign_in=MembershipAssign(member_id=member.id, plan_id=plan.id))

    booking = booking_service.book_class(db, member_id=member.id, schedule_id=schedule.id)

    assert booking.credit_pass_id is None


def test_pass_restricted_to_other_class_is_not_usable(db, member, schedule):
    other = class_service.create_class(
        db, class_in=GymClassCreate(name="Spinning", duration_minutes=45, max_capacity=10)
    )
    credit_service.purchase_package(
        db, member_id=member.id, package_id=_package(db, name="Solo spinning", class_id=other.id).id
    )

    with pytest.raises(InsufficientCreditsError):
        booking_service.book_class(db, member_id=member.id, schedule_id=schedule.id)


def test_expire_passes_marks_overdue_passes(db, member, package):
    credit_pass = credit_service.purchase_package(db, member_id=member.id, package_id=package.id)

    expired = credit_service.expire_passes(db, now=utcnow() + timedelta(days=31))

    assert expired == 1
    db.refresh(credit_pass)
    assert credit_pass.status == ClassPassStatus.EXPIRED
    credits = credit_service.get_member_credits(db, member.id, now=utcnow() + timedelta(days=31))
    assert credits.total_remaining_credits == 0
