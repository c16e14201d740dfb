from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from marketplace.core.database import get_db
from marketplace.core.money import money_str
from marketplace.deps import get_current_user
from marketplace.models.order import Order
from marketplace.models.payment import OrderPayment
from marketplace.models.user import User
from marketplace.routers.orders import load_order_for
from marketplace.services.authorization import OrderAction
from marketplace.services.order_status import confirm_payment, refund_payment, refundable_amount

router = APIRouter(prefix="/api/orders/{order_id}/payment", tags=["payments"])


class ConfirmPaymentPayload(BaseModel):
    success: bool = True
    reference: Optional[str] = Field(default=None, max_length=120)


class RefundPayload(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    reference: Optional[str] = Field(default=None, max_length=120)


def _payment_to_dict(payment: OrderPayment) -> dict:
    return {
        "id": payment.id,
        "kind": payment.kind,
        "amount": money_str(payment.amount),
        "status": payment.status,
        "reference": payment.reference,
        "created_at": payment.created_at.isoformat() if payment.created_at else None,
    }


def payment_view(order: Order) -> dict:
    return {
        "order_id": order.id,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "total_amount": money_str(order.total_amount),
        "refunded_amount": money_str(order.refunded_amount),
        "refundable_amount": money_str(refundable_amount(order)),
        "version": order.version,
        "events": [_payment_to_dict(payment) for payment in sorted(order.payments, key=lambda p: p.id)],
    }


@router.get("")
def get_payment(order_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return payment_view(load_order_for(db, user, order_id, OrderAction.VIEW))


@router.post("/confirm")
def confirm(
    order_id: int,
    payload: ConfirmPaymentPayload,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Simulated gateway callback: marks the charge as paid or failed."""
    order = load_order_for(db, user, order_id, OrderAction.CONFIRM_PAYMENT)
    order = confirm_payment(db, order, success=payload.success, reference=payload.reference)
    return payment_view(order)


@router.post("/refund")
def refund(
    order_id: int,
    payload: RefundPayload,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    order = load_order_for(db, user, order_id, OrderAction.REFUND)
    order = refund_payment(db, order, payload.amount, reference=payload.reference)
    return payment_view(order)
