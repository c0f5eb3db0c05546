from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictError, DiscountCodeInvalidError, StateTransitionError, ValidationError
from app.core.timezone_utils import utcnow
from app.models.discount import DiscountType
from app.models.membership import Membership, MembershipStatus
from app.schemas.discount import DiscountCodeCreate
from app.schemas.membership import MembershipAssign, MembershipPlanUpdate
from app.services.discount import discount_service
from app.services.membership import membership_service


def test_assign_membership_starting_today(db, member, plan):
    today = utcnow().date()

    membership = membership_service.assign_membership(
        db, assign_in=MembershipAssign(member_id=member.id, plan_id=plan.id)
    )

    assert membership.status == MembershipStatus.ACTIVE
    assert membership.start_date == today
    assert membership.end_date == today + timedelta(days=30)
    assert membership.final_price_cents == 4000
    assert membership_service.is_membership_valid(db, member.id, today)


def test_future_start_is_pending(db, member, plan):
    start = utcnow().date() + timedelta(days=5)

    membership = membership_service.assign_membership(
        db, assign_in=MembershipAssign(member_id=member.id, plan_id=plan.id, start_date=start)
    )

    assert membership.status == MembershipStatus.PENDING
    result = membership_service.run_lifecycle(db, today=start)
    assert result["activated"] == 1
    db.refresh(membership)
    assert membership.status == MembershipStatus.ACTIVE


def test_only_one_current_membership(db, member, give_membership):
    give_membership(member.id)

    with pytest.raises(ConflictError):
        give_membership(member.id)


def test_past_start_date_is_rejected(db, member, plan):
    with pytest.raises(ValidationError):
        membership_service.assign_membership(
            db, assign_in=MembershipAssign(
                member_id=member.id, plan_id=plan.id, start_date=utcnow().date() - timedelta(days=1)
            )
        )


def test_discount_code_is_applied_and_consumed(db, member, give_membership):
    code = discount_service.create_code(
        db, code_in=DiscountCodeCreate(code="BIENVENIDA", type=DiscountType.FIXED, amount=1500, max_redemptions=1)
    )

    membership = give_membership(member.id, discount_code="bienvenida")

    assert membership.discount_cents == 1500
    assert membership.final_price_cents == 2500
    assert membership.discount_code_id == code.id
    db.refresh(code)
    assert code.used_count == 1


def test_exhausted_code_leaves_no_membership(db, make_member, give_membership):
    discount_service.create_code(
        db, code_in=DiscountCodeCreate(code="UNICO", type=DiscountType.PERCENTAGE, amount=50, max_redemptions=1)
    )
    first, second = make_member(), make_member()
    give_membership(first.id, discount_code="UNICO")

    with pytest.raises(DiscountCodeInvalidError):
        give_membership(second.id, discount_code="UNICO")

    assert membership_service.list_member_memberships(db, second.id) == []


def test_plan_changes_do_not_touch_existing_memberships(db, member, plan, give_membership):
    membership = give_membership(member.id)

    membership_service.update_plan(db, plan_id=plan.id, plan_in=MembershipPlanUpdate(price_cents=9900))

    db.refresh(membership)
    assert membership.final_price_cents == 4000


def test_freeze_and_unfreeze(db, member, give_membership):
    membership = give_membership(member.id)

    frozen = membership_service.freeze_membership(db, membership.id)
    assert frozen.status == MembershipStatus.FROZEN
    assert not membership_service.is_membership_valid(db, member.id)

    active = membership_service.unfreeze_membership(db, membership.id)
    assert active.status == MembershipStatus.ACTIVE
    assert active.frozen_at is None


def test_only_active_memberships_can_be_frozen(db, member, give_membership):
    membership = give_membership(member.id)
    membership_service.cancel_membership(db, membership.id)

    with pytest.raises(StateTransitionError):
        membership_service.freeze_membership(db, membership.id)


def test_lifecycle_expires_overdue_memberships(db, member, give_membership):
    membership = give_membership(member.id)

    result = membership_service.run_lifecycle(db, today=membership.end_date + timedelta(days=1))

    assert result == {"expired": 1, "activated": 0}
    db.refresh(membership)
    assert membership.status == MembershipStatus.EXPIRED


def test_lifecycle_expires_pending_membership_whose_window_passed(db, member, plan):
    start = utcnow().date() + timedelta(days=5)
    membership = membership_service.assign_membership(
        db, assign_in=MembershipAssign(member_id=member.id, plan_id=plan.id, start_date=start)
    )
    assert membership.status == MembershipStatus.PENDING

    # El barrido no corrió durante toda la vigencia
    result = membership_service.run_lifecycle(db, today=membership.end_date + timedelta(days=1))

    assert result == {"expired": 1, "activated": 0}
    db.refresh(membership)
    assert membership.status == MembershipStatus.EXPIRED
    # Ya no bloquea una nueva asignación
    assert membership_service.get_active_membership(db, member.id) is None


def test_database_rejects_second_current_membership(db, member, plan, give_membership):
    current = give_membership(member.id)

    db.add(Membership(
        member_id=member.id,
        plan_id=plan.id,
        start_date=current.start_date,
        end_date=current.end_date,
        status=MembershipStatus.ACTIVE,
        original_price_cents=4000,
        discount_cents=0,
        final_price_cents=4000,
    ))
    with pytest.raises(IntegrityError):
        db.flush()
    db.rollback()


def test_closed_memberships_do_not_count_against_current_one(db, member, give_membership):
    first = give_membership(member.id)
    membership_service.cancel_membership(db, first.id)

    second = give_membership(member.id)

    assert second.status == MembershipStatus.ACTIVE
    assert second.id != first.id


def test_referenced_plan_is_deactivated_instead_of_deleted(db, member, plan, give_membership):
    give_membership(member.id)

    deleted = membership_service.delete_plan(db, plan.id)

    assert deleted.is_active is False
    assert membership_service.get_plan(db, plan.id).id == plan.id
