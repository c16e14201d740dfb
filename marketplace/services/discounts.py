"""Discount code validation and discount computation.

Validation never touches ``usage_count``; consuming a use is the job of
:mod:`marketplace.services.usage_counter` once the order row exists.
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Iterable, Sequence

from sqlalchemy.orm import Session

from marketplace.core.clock import ensure_utc, utcnow
from marketplace.core.errors import Conflict, MarketplaceError
from marketplace.core.money import HUNDRED, ZERO, clamp_money, to_money
from marketplace.models.discount import DiscountCode

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_CODE_LENGTH = 8
CODE_GENERATION_ATTEMPTS = 5


class DiscountKind(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    BUY_X_GET_Y = "buy_x_get_y"
    FREE_SHIPPING = "free_shipping"
    BUNDLED = "bundled"


class DiscountRejection(str, Enum):
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    NOT_STARTED = "not_started"
    EXPIRED = "expired"
    USAGE_LIMIT_REACHED = "usage_limit_reached"
    MIN_PURCHASE_NOT_MET = "min_purchase_not_met"
    NOT_ELIGIBLE = "not_eligible"


_REJECTION_STATUS = {
    DiscountRejection.NOT_FOUND: 404,
    DiscountRejection.USAGE_LIMIT_REACHED: 409,
}

_REJECTION_MESSAGES = {
    DiscountRejection.NOT_FOUND: "Discount code not found",
    DiscountRejection.INACTIVE: "Discount code is not active",
    DiscountRejection.NOT_STARTED: "Discount code is not valid yet",
    DiscountRejection.EXPIRED: "Discount code has expired",
    DiscountRejection.USAGE_LIMIT_REACHED: "Discount code usage limit reached",
    DiscountRejection.MIN_PURCHASE_NOT_MET: "Minimum purchase amount not met",
    DiscountRejection.NOT_ELIGIBLE: "Discount code does not apply to these products",
}


class DiscountRejected(MarketplaceError):
    """A code failed validation. The message is safe to show to the buyer."""

    def __init__(self, reason: DiscountRejection) -> None:
        super().__init__(_REJECTION_MESSAGES[reason], code=reason.value)
        self.reason = reason
        self.status_code = _REJECTION_STATUS.get(reason, 400)


class DiscountNoLongerAvailable(Conflict):
    """The last use of a code went to a concurrent checkout."""

    code = "discount_unavailable"

    def __init__(self) -> None:
        super().__init__("Discount code is no longer available")


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    unit_price: Decimal
    category_id: int | None = None

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class DiscountResult:
    amount: Decimal
    free_shipping: bool = False


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def find_discount(db: Session, seller_id: int, code: str) -> DiscountCode | None:
    return (
        db.query(DiscountCode)
        .filter(DiscountCode.seller_id == seller_id, DiscountCode.code == normalize_code(code))
        .first()
    )


def has_restrictions(discount: DiscountCode) -> bool:
    return bool(discount.eligible_product_ids or discount.eligible_category_ids)


def line_is_eligible(discount: DiscountCode, product_id: int, category_id: int | None) -> bool:
    if not has_restrictions(discount):
        return True
    if product_id in set(discount.eligible_product_ids or ()):
        return True
    return category_id is not None and category_id in set(discount.eligible_category_ids or ())


def check_discount_code(
    discount: DiscountCode,
    *,
    subtotal: Decimal,
    product_ids: Iterable[int],
    category_ids: Iterable[int] = (),
    now: datetime | None = None,
) -> None:
    """Run the checks in order; the first one that fails is the reported reason."""
    now = ensure_utc(now or utcnow())

    if not discount.is_active:
        raise DiscountRejected(DiscountRejection.INACTIVE)

    # Both bounds are inclusive.
    if now < ensure_utc(discount.start_date):
        raise DiscountRejected(DiscountRejection.NOT_STARTED)
    if now > ensure_utc(discount.end_date):
        raise DiscountRejected(DiscountRejection.EXPIRED)

    if discount.usage_limit is not None and discount.usage_count >= discount.usage_limit:
        raise DiscountRejected(DiscountRejection.USAGE_LIMIT_REACHED)

    if discount.min_purchase_amount is not None and to_money(subtotal) < to_money(discount.min_purchase_amount):
        raise DiscountRejected(DiscountRejection.MIN_PURCHASE_NOT_MET)

    if has_restrictions(discount):
        products = set(discount.eligible_product_ids or ())
        categories = set(discount.eligible_category_ids or ())
        if products.isdisjoint(product_ids) and categories.isdisjoint(category_ids):
            raise DiscountRejected(DiscountRejection.NOT_ELIGIBLE)


def validate_discount_code(
    db: Session,
    *,
    seller_id: int,
    code: str,
    subtotal: Decimal,
    product_ids: Iterable[int],
    category_ids: Iterable[int] = (),
    now: datetime | None = None,
) -> DiscountCode:
    discount = find_discount(db, seller_id, code)
    if discount is None:
        logger.info("discount rejected seller_id=%s reason=not_found", seller_id)
        raise DiscountRejected(DiscountRejection.NOT_FOUND)
    try:
        check_discount_code(
            discount,
            subtotal=subtotal,
            product_ids=set(product_ids),
            category_ids=set(category_ids),
            now=now,
        )
    except DiscountRejected as exc:
        logger.info(
            "discount rejected reason=%s",
            exc.reason.value,
            extra={"discount_code_id": discount.id},
        )
        raise
    return discount


Strategy = Callable[[DiscountCode, Decimal, Sequence[CartLine]], Decimal]

_STRATEGIES: dict[DiscountKind, Strategy] = {}


def register_strategy(kind: DiscountKind) -> Callable[[Strategy], Strategy]:
    def decorator(func: Strategy) -> Strategy:
        _STRATEGIES[kind] = func
        return func

    return decorator


def _percent_of(amount: Decimal, percent) -> Decimal:
    return amount * to_money(percent) / HUNDRED


@register_strategy(DiscountKind.PERCENTAGE)
def _percentage(discount: DiscountCode, subtotal: Decimal, lines: Sequence[CartLine]) -> Decimal:
    return _percent_of(subtotal, discount.value)


@register_strategy(DiscountKind.FIXED_AMOUNT)
def _fixed_amount(discount: DiscountCode, subtotal: Decimal, lines: Sequence[CartLine]) -> Decimal:
    return to_money(discount.value)


@register_strategy(DiscountKind.FREE_SHIPPING)
def _free_shipping(discount: DiscountCode, subtotal: Decimal, lines: Sequence[CartLine]) -> Decimal:
    return ZERO


@register_strategy(DiscountKind.BUY_X_GET_Y)
def _buy_x_get_y(discount: DiscountCode, subtotal: Decimal, lines: Sequence[CartLine]) -> Decimal:
    """Every complete group of X+Y eligible units discounts its Y cheapest units by ``value`` percent."""
    buy, get = discount.buy_quantity or 0, discount.get_quantity or 0
    if buy < 1 or get < 1:
        return ZERO

    eligible = [
        line for line in lines if line.quantity > 0 and line_is_eligible(discount, line.product_id, line.category_id)
    ]
    units = sum(line.quantity for line in eligible)
    rewarded = (units // (buy + get)) * get

    discounted_value = ZERO
    for line in sorted(eligible, key=lambda item: to_money(item.unit_price)):
        if rewarded <= 0:
            break
        taken = min(rewarded, line.quantity)
        discounted_value += to_money(line.unit_price) * taken
        rewarded -= taken
    return _percent_of(discounted_value, discount.value)


@register_strategy(DiscountKind.BUNDLED)
def _bundled(discount: DiscountCode, subtotal: Decimal, lines: Sequence[CartLine]) -> Decimal:
    """``value`` percent off each complete set of the bundle's products."""
    bundle = set(discount.eligible_product_ids or ())
    if len(bundle) < 2:
        return ZERO

    quantities: dict[int, int] = {}
    prices: dict[int, Decimal] = {}
    for line in lines:
        if line.product_id in bundle:
            quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity
            prices.setdefault(line.product_id, to_money(line.unit_price))

    bundles = min(quantities.get(product_id, 0) for product_id in bundle)
    if bundles <= 0:
        return ZERO
    return _percent_of(sum(prices.values(), ZERO) * bundles, discount.value)


def apply_discount(
    discount: DiscountCode,
    subtotal: Decimal,
    lines: Sequence[CartLine] = (),
) -> DiscountResult:
    """Money off ``subtotal`` for an already validated code, always within [0, subtotal]."""
    subtotal = to_money(subtotal)
    kind = DiscountKind(discount.discount_type)
    amount = to_money(_STRATEGIES[kind](discount, subtotal, lines))
    if discount.max_discount_amount is not None:
        amount = min(amount, to_money(discount.max_discount_amount))
    return DiscountResult(
        amount=clamp_money(amount, max(subtotal, ZERO)),
        free_shipping=kind is DiscountKind.FREE_SHIPPING,
    )


def generate_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_unique_code(db: Session, seller_id: int, length: int = DEFAULT_CODE_LENGTH) -> str:
    for _ in range(CODE_GENERATION_ATTEMPTS):
        candidate = generate_code(length)
        if find_discount(db, seller_id, candidate) is None:
            return candidate
    raise Conflict("Could not generate a unique discount code, try a longer length")
