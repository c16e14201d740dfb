from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import desc
from sqlalchemy.orm import Session

from marketplace.core.database import get_db
from marketplace.core.errors import NotFound
from marketplace.core.money import money_str
from marketplace.deps import get_current_user, require_buyer
from marketplace.models.order import Order
from marketplace.models.order_item import OrderItem
from marketplace.models.user import User
from marketplace.services.authorization import Actor, OrderAction, authorize_order, scope_orders
from marketplace.services.checkout import PaymentMethod, ShippingDetails, place_order
from marketplace.services.order_status import OrderStatus, find_order, transition_order

router = APIRouter(prefix="/api/orders", tags=["orders"])


class ShippingPayload(BaseModel):
    name: Optional[str] = Field(default=None, max_length=120)
    address_1: Optional[str] = Field(default=None, max_length=255)
    address_2: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=120)
    postal_code: Optional[str] = Field(default=None, max_length=20)
    country: Optional[str] = Field(default=None, max_length=80)
    phone: Optional[str] = Field(default=None, max_length=30)


class CheckoutPayload(BaseModel):
    seller_id: Optional[int] = None
    code: Optional[str] = Field(default=None, max_length=20)
    payment_method: Optional[PaymentMethod] = None
    shipping: Optional[ShippingPayload] = None


class StatusUpdatePayload(BaseModel):
    status: OrderStatus
    expected_version: Optional[int] = Field(default=None, ge=1)


class CancelPayload(BaseModel):
    expected_version: Optional[int] = Field(default=None, ge=1)


def _order_item_to_dict(item: OrderItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "product_id": item.product_id,
        "seller_id": item.seller_id,
        "title": item.title,
        "quantity": item.quantity,
        "unit_price": money_str(item.unit_price),
        "subtotal": money_str(item.subtotal),
    }


def order_to_dict(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "buyer_id": order.buyer_id,
        "status": order.status,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "version": order.version,
        "subtotal_amount": money_str(order.subtotal_amount),
        "discount_amount": money_str(order.discount_amount),
        "total_amount": money_str(order.total_amount),
        "refunded_amount": money_str(order.refunded_amount),
        "discount_code_id": order.discount_code_id,
        "free_shipping": order.free_shipping,
        "shipping": {
            "name": order.shipping_name,
            "address_1": order.shipping_address_1,
            "address_2": order.shipping_address_2,
            "city": order.shipping_city,
            "postal_code": order.shipping_postal_code,
            "country": order.shipping_country,
            "phone": order.shipping_phone,
        },
        "items": [_order_item_to_dict(item) for item in order.order_items],
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
    }


def load_order_for(db: Session, user: User, order_id: int, action: OrderAction, target=None) -> Order:
    order = find_order(db, order_id)
    if order is None:
        raise NotFound("Order not found")
    authorize_order(Actor.from_user(user), order, action, target)
    return order


@router.post("", status_code=201)
def checkout(payload: CheckoutPayload, db: Session = Depends(get_db), buyer: User = Depends(require_buyer)):
    shipping = ShippingDetails(**payload.shipping.model_dump()) if payload.shipping else None
    order = place_order(
        db,
        buyer,
        seller_id=payload.seller_id,
        code=payload.code,
        shipping=shipping,
        payment_method=payload.payment_method,
    )
    return order_to_dict(order)


@router.get("")
def list_orders(
    status: Optional[OrderStatus] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    query = scope_orders(Actor.from_user(user), db.query(Order))
    if status is not None:
        query = query.filter(Order.status == status.value)
    orders = query.order_by(desc(Order.created_at), desc(Order.id)).offset(offset).limit(limit).all()
    return [order_to_dict(order) for order in orders]


@router.get("/{order_id}")
def get_order(order_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return order_to_dict(load_order_for(db, user, order_id, OrderAction.VIEW))


@router.patch("/{order_id}/status")
def update_status(
    order_id: int,
    payload: StatusUpdatePayload,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    order = load_order_for(db, user, order_id, OrderAction.UPDATE_STATUS, payload.status)
    order = transition_order(db, order, payload.status, expected_version=payload.expected_version)
    return order_to_dict(order)


@router.post("/{order_id}/cancel")
def cancel_order(
    order_id: int,
    payload: Optional[CancelPayload] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    expected_version = payload.expected_version if payload else None
    order = load_order_for(db, user, order_id, OrderAction.UPDATE_STATUS, OrderStatus.CANCELED)
    order = transition_order(db, order, OrderStatus.CANCELED, expected_version=expected_version)
    return order_to_dict(order)
