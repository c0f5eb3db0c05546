from datetime import timedelta

import pytest

from app.core.exceptions import DiscountCodeInvalidError, NotFoundError, ValidationError
from app.core.timezone_utils import utcnow
from app.models.discount import DiscountType
from app.schemas.discount import DiscountCodeCreate, DiscountCodeUpdate
from app.services.discount import discount_service


def _code(db, code="VERANO20", **overrides):
    data = {"code": code, "type": DiscountType.PERCENTAGE, "amount": 20}
    data.update(overrides)
    return discount_service.create_code(db, code_in=DiscountCodeCreate(**data))


def test_codes_are_normalized_to_uppercase(db):
    code = _code(db, code="  verano20 ")

    assert code.code == "VERANO20"
    assert discount_service.validate_code(db, "verano20").id == code.id


def test_percentage_discount(db):
    _code(db)

    breakdown = discount_service.preview(db, code="VERANO20", price_cents=4999)

    assert breakdown.discount_cents == 999
    assert breakdown.final_price_cents == 4000


def test_fixed_discount_never_exceeds_price(db):
    _code(db, code="MENOS50", type=DiscountType.FIXED, amount=5000)

    breakdown = discount_service.preview(db, code="MENOS50", price_cents=3000)

    assert breakdown.discount_cents == 3000
    assert breakdown.final_price_cents == 0


def test_preview_does_not_consume(db):
    code = _code(db, max_redemptions=1)

    discount_service.preview(db, code=code.code, price_cents=1000)

    db.refresh(code)
    assert code.used_count == 0


def test_redeem_stops_at_max_redemptions(db):
    code = _code(db, max_redemptions=1)

    discount_service.redeem(db, code=code.code, price_cents=1000)
    db.commit()
    with pytest.raises(DiscountCodeInvalidError) as exc_info:
        discount_service.redeem(db, code=code.code, price_cents=1000)

    assert exc_info.value.reason == DiscountCodeInvalidError.EXHAUSTED
    db.refresh(code)
    assert code.used_count == 1


@pytest.mark.parametrize("overrides,reason", [
    ({"is_active": False}, DiscountCodeInvalidError.INACTIVE),
    ({"starts_at": utcnow() + timedelta(days=1)}, DiscountCodeInvalidError.NOT_STARTED),
    ({"starts_at": utcnow() - timedelta(days=10), "ends_at": utcnow() - timedelta(days=1)},
     DiscountCodeInvalidError.EXPIRED),
])
def test_invalid_codes_report_reason(db, overrides, reason):
    _code(db, **overrides)

    with pytest.raises(DiscountCodeInvalidError) as exc_info:
        discount_service.validate_code(db, "VERANO20")

    assert exc_info.value.reason == reason
    assert exc_info.value.to_dict()["reason"] == reason


def test_unknown_code(db):
    with pytest.raises(NotFoundError):
        discount_service.validate_code(db, "NOEXISTE")


def test_max_redemptions_cannot_drop_below_usage(db):
    code = _code(db, max_redemptions=5)
    discount_service.redeem(db, code=code.code, price_cents=1000)
    discount_service.redeem(db, code=code.code, price_cents=1000)
    db.commit()

    with pytest.raises(ValidationError):
        discount_service.update_code(db, code_id=code.id, code_in=DiscountCodeUpdate(max_redemptions=1))


def test_delete_unused_code(db):
    code = _code(db)
    code_id = code.id

    discount_service.delete_code(db, code_id)

    with pytest.raises(NotFoundError):
        discount_service.get_code(db, code_id)
