from __future__ import annotations

from marketplace.core.money import money_str
from marketplace.models.discount import DiscountCode
from marketplace.models.order import Order
from marketplace.services.event_bus import (
    DISCOUNT_LIMIT_REACHED,
    ORDER_CANCELED,
    ORDER_CREATED,
    ORDER_STATUS_CHANGED,
    PAYMENT_STATUS_CHANGED,
    event_bus,
)


def build_order_payload(order: Order, previous_status: str | None = None) -> dict:
    return {
        "order_id": order.id,
        "buyer_id": order.buyer_id,
        "status": order.status,
        "previous_status": previous_status,
        "payment_status": order.payment_status,
        "total_amount": money_str(order.total_amount),
        "seller_ids": sorted({item.seller_id for item in order.order_items}),
        "version": order.version,
    }


def emit_order_created(order: Order) -> None:
    event_bus.emit(ORDER_CREATED, build_order_payload(order))


def emit_order_status_changed(order: Order, previous_status: str) -> None:
    if previous_status == order.status:
        return
    payload = build_order_payload(order, previous_status=previous_status)
    event_bus.emit(ORDER_STATUS_CHANGED, payload)
    if order.status == "canceled":
        event_bus.emit(ORDER_CANCELED, payload)


def emit_payment_status_changed(order: Order, previous_payment_status: str) -> None:
    payload = build_order_payload(order)
    payload["previous_payment_status"] = previous_payment_status
    event_bus.emit(PAYMENT_STATUS_CHANGED, payload)


def emit_discount_limit_reached(discount: DiscountCode) -> None:
    event_bus.emit(
        DISCOUNT_LIMIT_REACHED,
        {
            "discount_code_id": discount.id,
            "seller_id": discount.seller_id,
            "code": discount.code,
            "usage_limit": discount.usage_limit,
        },
    )
