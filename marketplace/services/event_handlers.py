from __future__ import annotations

import logging

from marketplace.services.event_bus import (
    DISCOUNT_LIMIT_REACHED,
    MESSAGE_SENT,
    ORDER_CANCELED,
    ORDER_CREATED,
    ORDER_STATUS_CHANGED,
    PASSWORD_RESET_REQUESTED,
    PAYMENT_STATUS_CHANGED,
    event_bus,
)

logger = logging.getLogger("marketplace.notifications")


def handle_order_created(payload: dict) -> None:
    logger.info(
        "notify buyer=%s sellers=%s: order placed total=%s",
        payload["buyer_id"],
        payload.get("seller_ids"),
        payload.get("total_amount"),
        extra={"order_id": payload["order_id"]},
    )


def handle_order_status_changed(payload: dict) -> None:
    logger.info(
        "notify buyer=%s: order %s -> %s",
        payload["buyer_id"],
        payload.get("previous_status"),
        payload["status"],
        extra={"order_id": payload["order_id"]},
    )


def handle_order_canceled(payload: dict) -> None:
    logger.info(
        "notify sellers=%s: order canceled",
        payload.get("seller_ids"),
        extra={"order_id": payload["order_id"]},
    )


def handle_payment_status_changed(payload: dict) -> None:
    logger.info(
        "notify buyer=%s: payment %s -> %s",
        payload["buyer_id"],
        payload.get("previous_payment_status"),
        payload["payment_status"],
        extra={"order_id": payload["order_id"]},
    )


def handle_discount_limit_reached(payload: dict) -> None:
    logger.info(
        "notify seller=%s: discount code %s reached its usage limit of %s",
        payload["seller_id"],
        payload["code"],
        payload["usage_limit"],
        extra={"discount_code_id": payload["discount_code_id"]},
    )


def handle_message_sent(payload: dict) -> None:
    logger.info(
        "notify user=%s: new message from user=%s in thread=%s",
        payload["recipient_id"],
        payload["sender_id"],
        payload["thread_id"],
    )


def handle_password_reset_requested(payload: dict) -> None:
    # payload["token"] is a live credential; it stays out of the log.
    logger.info("notify user=%s: password reset requested", payload["user_id"])


def register_event_handlers() -> None:
    event_bus.subscribe(ORDER_CREATED, handle_order_created)
    event_bus.subscribe(ORDER_STATUS_CHANGED, handle_order_status_changed)
    event_bus.subscribe(ORDER_CANCELED, handle_order_canceled)
    event_bus.subscribe(PAYMENT_STATUS_CHANGED, handle_payment_status_changed)
    event_bus.subscribe(DISCOUNT_LIMIT_REACHED, handle_discount_limit_reached)
    event_bus.subscribe(MESSAGE_SENT, handle_message_sent)
    event_bus.subscribe(PASSWORD_RESET_REQUESTED, handle_password_reset_requested)
