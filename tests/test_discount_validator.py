from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from marketplace.models.discount import DiscountCode
from marketplace.models.user import Role
from marketplace.services.discounts import (
    DiscountRejected,
    DiscountRejection,
    check_discount_code,
    find_discount,
    validate_discount_code,
)

START = datetime(2026, 6, 1, tzinfo=timezone.utc)
END = datetime(2026, 6, 30, 23, 59, 59, tzinfo=timezone.utc)
INSIDE = datetime(2026, 6, 15, tzinfo=timezone.utc)


def _code(**overrides):
    values = {
        "id": 1,
        "is_active": True,
        "start_date": START,
        "end_date": END,
        "usage_limit": None,
        "usage_count": 0,
        "min_purchase_amount": None,
        "eligible_product_ids": [],
        "eligible_category_ids": [],
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _reason(discount, *, subtotal="100.00", product_ids=(1,), category_ids=(), now=INSIDE):
    with pytest.raises(DiscountRejected) as excinfo:
        check_discount_code(
            discount,
            subtotal=Decimal(subtotal),
            product_ids=product_ids,
            category_ids=category_ids,
            now=now,
        )
    return excinfo.value.reason


def test_valid_code_passes_every_check():
    check_discount_code(_code(), subtotal=Decimal("10.00"), product_ids={1}, now=INSIDE)


@pytest.mark.parametrize("now", [START, END])
def test_window_bounds_are_inclusive(now):
    check_discount_code(_code(), subtotal=Decimal("10.00"), product_ids={1}, now=now)


def test_one_microsecond_outside_the_window_is_rejected():
    tick = timedelta(microseconds=1)
    assert _reason(_code(), now=START - tick) is DiscountRejection.NOT_STARTED
    assert _reason(_code(), now=END + tick) is DiscountRejection.EXPIRED


def test_naive_stored_dates_are_read_as_utc():
    discount = _code(start_date=START.replace(tzinfo=None), end_date=END.replace(tzinfo=None))
    check_discount_code(discount, subtotal=Decimal("1.00"), product_ids={1}, now=END)


def test_usage_limit_is_strict():
    assert _reason(_code(usage_limit=5, usage_count=5)) is DiscountRejection.USAGE_LIMIT_REACHED
    check_discount_code(_code(usage_limit=5, usage_count=4), subtotal=Decimal("1"), product_ids={1}, now=INSIDE)


def test_min_purchase_accepts_equal_subtotal():
    discount = _code(min_purchase_amount=Decimal("50.00"))
    check_discount_code(discount, subtotal=Decimal("50.00"), product_ids={1}, now=INSIDE)
    assert _reason(discount, subtotal="49.99") is DiscountRejection.MIN_PURCHASE_NOT_MET


def test_restrictions_match_on_product_or_category():
    discount = _code(eligible_product_ids=[7], eligible_category_ids=[3])
    check_discount_code(discount, subtotal=Decimal("1"), product_ids={7}, now=INSIDE)
    check_discount_code(discount, subtotal=Decimal("1"), product_ids={99}, category_ids={3}, now=INSIDE)
    assert _reason(discount, product_ids={99}, category_ids={4}) is DiscountRejection.NOT_ELIGIBLE


def test_first_failing_check_is_reported():
    discount = _code(
        is_active=False,
        usage_limit=1,
        usage_count=1,
        min_purchase_amount=Decimal("500"),
        eligible_product_ids=[42],
    )
    assert _reason(discount, now=END + timedelta(days=1)) is DiscountRejection.INACTIVE

    discount.is_active = True
    assert _reason(discount, now=END + timedelta(days=1)) is DiscountRejection.EXPIRED
    assert _reason(discount) is DiscountRejection.USAGE_LIMIT_REACHED

    discount.usage_count = 0
    assert _reason(discount) is DiscountRejection.MIN_PURCHASE_NOT_MET

    discount.min_purchase_amount = None
    assert _reason(discount) is DiscountRejection.NOT_ELIGIBLE


def test_rejection_status_codes():
    assert DiscountRejected(DiscountRejection.NOT_FOUND).status_code == 404
    assert DiscountRejected(DiscountRejection.USAGE_LIMIT_REACHED).status_code == 409
    assert DiscountRejected(DiscountRejection.EXPIRED).status_code == 400
    assert DiscountRejected(DiscountRejection.NOT_ELIGIBLE).code == "not_eligible"


def test_lookup_is_scoped_to_seller_and_case_insensitive(db, factory):
    seller = factory.user(Role.SELLER)
    other_seller = factory.user(Role.SELLER)
    discount = factory.discount(seller, code="SAVE10")

    assert find_discount(db, seller.id, " save10 ").id == discount.id
    assert find_discount(db, other_seller.id, "SAVE10") is None

    with pytest.raises(DiscountRejected) as excinfo:
        validate_discount_code(db, seller_id=other_seller.id, code="SAVE10", subtotal=Decimal("10"), product_ids=[1])
    assert excinfo.value.reason is DiscountRejection.NOT_FOUND


def test_repeated_validation_never_consumes_usage(db, factory):
    seller = factory.user(Role.SELLER)
    discount = factory.discount(seller, code="SAVE10", usage_limit=5)

    for _ in range(10):
        validate_discount_code(db, seller_id=seller.id, code="save10", subtotal=Decimal("200.00"), product_ids=[1])

    db.expire_all()
    assert db.get(DiscountCode, discount.id).usage_count == 0
