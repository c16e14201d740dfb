"""Order fulfillment and payment state machines.

Both axes are linearized through ``orders.version``: every write is a conditional
UPDATE on the version the caller read, and a mismatch surfaces as ``StaleOrder``.
Who may request a transition is decided in ``marketplace.services.authorization``.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from enum import Enum

from fastapi import status
from sqlalchemy import update
from sqlalchemy.orm import Session

from marketplace.core.clock import utcnow
from marketplace.core.errors import BadRequest, Conflict, MarketplaceError
from marketplace.core.money import ZERO, to_money
from marketplace.models.discount import DiscountRedemption
from marketplace.models.order import Order
from marketplace.models.payment import OrderPayment
from marketplace.models.product import Product
from marketplace.services.order_events import emit_order_status_changed, emit_payment_status_changed
from marketplace.services.usage_counter import release_usage

logger = logging.getLogger(__name__)


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELED = "canceled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELED})

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELED: frozenset(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED}),
    PaymentStatus.PARTIALLY_REFUNDED: frozenset({PaymentStatus.PARTIALLY_REFUNDED, PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}


class OrderTransitionError(MarketplaceError):
    code = "illegal_transition"


class IllegalTransition(OrderTransitionError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current: OrderStatus, target: OrderStatus) -> None:
        super().__init__(f"Cannot move order from {current.value} to {target.value}")
        self.current = current
        self.target = target


class OrderLocked(OrderTransitionError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "order_locked"

    def __init__(self, current: OrderStatus) -> None:
        super().__init__(f"Order is {current.value} and can no longer change status")
        self.current = current


class StaleOrder(Conflict):
    code = "stale_order"

    def __init__(self) -> None:
        super().__init__("Order was modified by another request, reload it and retry")


class PaymentTransitionError(Conflict):
    code = "illegal_payment_transition"


def is_legal_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS[current]


def check_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Raise on an illegal move; False means the move is a no-op."""
    if current in TERMINAL_STATUSES:
        raise OrderLocked(current)
    if current == target:
        return False
    if not is_legal_transition(current, target):
        raise IllegalTransition(current, target)
    return True


def find_order(db: Session, order_id: int) -> Order | None:
    return db.query(Order).filter(Order.id == order_id).first()


def update_order_status(db: Session, order_id: int, new_status: str, expected_version: int) -> bool:
    result = db.execute(
        update(Order)
        .where(Order.id == order_id, Order.version == expected_version)
        .values(status=new_status, version=Order.version + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _release_reservations(db: Session, order: Order) -> None:
    for item in order.order_items:
        db.execute(
            update(Product)
            .where(Product.id == item.product_id)
            .values(stock=Product.stock + item.quantity)
            .execution_options(synchronize_session=False)
        )

    redemption = order.redemption
    if redemption is None:
        return
    marked = db.execute(
        update(DiscountRedemption)
        .where(DiscountRedemption.id == redemption.id, DiscountRedemption.released_at.is_(None))
        .values(released_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if marked.rowcount == 1:
        release_usage(db, redemption.discount_code_id)


def transition_order(
    db: Session,
    order: Order,
    new_status: OrderStatus,
    *,
    expected_version: int | None = None,
) -> Order:
    current = OrderStatus(order.status)
    target = OrderStatus(new_status)
    if expected_version is not None and expected_version != order.version:
        raise StaleOrder()
    if not check_transition(current, target):
        return order

    try:
        if not update_order_status(db, order.id, target.value, order.version):
            raise StaleOrder()
        if target is OrderStatus.CANCELED:
            _release_reservations(db, order)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    if order.redemption is not None:
        db.refresh(order.redemption)
    logger.info(
        "order status changed %s -> %s",
        current.value,
        target.value,
        extra={"order_id": order.id},
    )
    emit_order_status_changed(order, current.value)
    return order


def update_payment_status(
    db: Session,
    order_id: int,
    new_status: PaymentStatus,
    expected_version: int,
    refunded_amount: Decimal | None = None,
) -> bool:
    values = {"payment_status": new_status.value, "version": Order.version + 1, "updated_at": utcnow()}
    if refunded_amount is not None:
        values["refunded_amount"] = refunded_amount
    result = db.execute(
        update(Order)
        .where(Order.id == order_id, Order.version == expected_version)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _move_payment(
    db: Session,
    order: Order,
    target: PaymentStatus,
    *,
    kind: str,
    amount: Decimal,
    reference: str | None,
    refunded_amount: Decimal | None = None,
) -> Order:
    current = PaymentStatus(order.payment_status)
    if target not in PAYMENT_TRANSITIONS[current]:
        raise PaymentTransitionError(f"Cannot move payment from {current.value} to {target.value}")

    try:
        if not update_payment_status(db, order.id, target, order.version, refunded_amount):
            raise StaleOrder()
        db.add(
            OrderPayment(
                order_id=order.id,
                kind=kind,
                amount=amount,
                status=target.value,
                reference=reference,
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(
        "order payment changed %s -> %s",
        current.value,
        target.value,
        extra={"order_id": order.id},
    )
    emit_payment_status_changed(order, current.value)
    return order


def confirm_payment(db: Session, order: Order, *, success: bool, reference: str | None = None) -> Order:
    if OrderStatus(order.status) is OrderStatus.CANCELED:
        raise PaymentTransitionError("Cannot confirm payment for a canceled order")
    if success:
        return _move_payment(
            db, order, PaymentStatus.PAID, kind="charge", amount=to_money(order.total_amount), reference=reference
        )
    return _move_payment(db, order, PaymentStatus.FAILED, kind="failure", amount=ZERO, reference=reference)


def refundable_amount(order: Order) -> Decimal:
    return max(to_money(order.total_amount) - to_money(order.refunded_amount), ZERO)


def refund_payment(db: Session, order: Order, amount: Decimal, *, reference: str | None = None) -> Order:
    amount = to_money(amount)
    if amount <= ZERO:
        raise BadRequest("Refund amount must be greater than zero")
    if amount > refundable_amount(order):
        raise BadRequest("Refund amount exceeds what is left to refund on this order")

    refunded = to_money(order.refunded_amount) + amount
    target = PaymentStatus.REFUNDED if refunded == to_money(order.total_amount) else PaymentStatus.PARTIALLY_REFUNDED
    return _move_payment(
        db, order, target, kind="refund", amount=amount, reference=reference, refunded_amount=refunded
    )
