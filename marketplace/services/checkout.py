"""Turning a buyer's cart into an order.

Everything happens in one transaction: prices are frozen from the catalog, stock
is reserved with conditional decrements, and the discount use is consumed only
after the order row exists. Any failure rolls all of it back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Sequence

from sqlalchemy import update
from sqlalchemy.orm import Session

from marketplace.core.errors import BadRequest, Conflict
from marketplace.core.money import ZERO, to_money
from marketplace.models.cart import CartItem
from marketplace.models.discount import DiscountCode, DiscountRedemption
from marketplace.models.order import Order
from marketplace.models.order_item import OrderItem
from marketplace.models.product import Product
from marketplace.models.user import User
from marketplace.services.discounts import (
    CartLine,
    DiscountNoLongerAvailable,
    DiscountRejected,
    DiscountRejection,
    DiscountResult,
    apply_discount,
    validate_discount_code,
)
from marketplace.services.order_events import emit_discount_limit_reached, emit_order_created
from marketplace.services.order_status import OrderStatus, PaymentStatus
from marketplace.services.usage_counter import conditional_increment_usage, usage_limit_reached

logger = logging.getLogger(__name__)


class PaymentMethod(str, Enum):
    MTN = "mtn"
    ORANGE = "orange"
    OTHER = "other"


@dataclass(frozen=True)
class ShippingDetails:
    name: str | None = None
    address_1: str | None = None
    address_2: str | None = None
    city: str | None = None
    postal_code: str | None = None
    country: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class PricedLine:
    cart_item: CartItem
    product: Product
    line: CartLine


@dataclass(frozen=True)
class Quote:
    subtotal: Decimal
    discount: DiscountResult
    discount_code: DiscountCode | None

    @property
    def total(self) -> Decimal:
        return max(self.subtotal - self.discount.amount, ZERO)


def subtotal_of(lines: Sequence[CartLine]) -> Decimal:
    return sum((line.subtotal for line in lines), ZERO)


def load_cart(db: Session, buyer_id: int) -> list[PricedLine]:
    items = db.query(CartItem).filter(CartItem.user_id == buyer_id).order_by(CartItem.id).all()
    priced: list[PricedLine] = []
    for item in items:
        product = item.product
        if product is None or not product.is_active:
            raise BadRequest(f"Product {item.product_id} is no longer available")
        priced.append(
            PricedLine(
                cart_item=item,
                product=product,
                line=CartLine(
                    product_id=product.id,
                    quantity=item.quantity,
                    unit_price=to_money(product.price),
                    category_id=product.category_id,
                ),
            )
        )
    return priced


def quote_cart(
    db: Session,
    priced: Sequence[PricedLine],
    *,
    seller_id: int | None = None,
    code: str | None = None,
    now: datetime | None = None,
) -> Quote:
    """Price the cart and, when a code is given, validate and apply it to the code owner's lines."""
    lines = [entry.line for entry in priced]
    subtotal = subtotal_of(lines)
    if not code:
        return Quote(subtotal=subtotal, discount=DiscountResult(amount=ZERO), discount_code=None)
    if seller_id is None:
        raise BadRequest("seller_id is required when a discount code is given")

    owner_lines = [entry.line for entry in priced if entry.product.seller_id == seller_id]
    if not owner_lines:
        raise DiscountRejected(DiscountRejection.NOT_ELIGIBLE)
    owner_subtotal = subtotal_of(owner_lines)

    discount = validate_discount_code(
        db,
        seller_id=seller_id,
        code=code,
        subtotal=owner_subtotal,
        product_ids={line.product_id for line in owner_lines},
        category_ids={line.category_id for line in owner_lines if line.category_id is not None},
        now=now,
    )
    return Quote(subtotal=subtotal, discount=apply_discount(discount, owner_subtotal, owner_lines), discount_code=discount)


def _reserve_stock(db: Session, priced: Sequence[PricedLine]) -> None:
    for entry in priced:
        reserved = db.execute(
            update(Product)
            .where(Product.id == entry.product.id, Product.stock >= entry.line.quantity)
            .values(stock=Product.stock - entry.line.quantity)
            .execution_options(synchronize_session=False)
        )
        if reserved.rowcount != 1:
            raise Conflict(f"Not enough stock for {entry.product.title}", code="out_of_stock")


def place_order(
    db: Session,
    buyer: User,
    *,
    seller_id: int | None = None,
    code: str | None = None,
    shipping: ShippingDetails | None = None,
    payment_method: PaymentMethod | None = None,
    now: datetime | None = None,
) -> Order:
    priced = load_cart(db, buyer.id)
    if not priced:
        raise BadRequest("Cart is empty")

    quote = quote_cart(db, priced, seller_id=seller_id, code=code, now=now)
    discount = quote.discount_code
    shipping = shipping or ShippingDetails()

    try:
        _reserve_stock(db, priced)

        order = Order(
            buyer_id=buyer.id,
            subtotal_amount=quote.subtotal,
            discount_amount=quote.discount.amount,
            total_amount=quote.total,
            refunded_amount=ZERO,
            discount_code_id=discount.id if discount is not None else None,
            free_shipping=quote.discount.free_shipping,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            payment_method=payment_method.value if payment_method else None,
            version=1,
            shipping_name=shipping.name,
            shipping_address_1=shipping.address_1,
            shipping_address_2=shipping.address_2,
            shipping_city=shipping.city,
            shipping_postal_code=shipping.postal_code,
            shipping_country=shipping.country,
            shipping_phone=shipping.phone,
        )
        order.order_items = [
            OrderItem(
                product_id=entry.product.id,
                seller_id=entry.product.seller_id,
                title=entry.product.title,
                quantity=entry.line.quantity,
                unit_price=entry.line.unit_price,
                subtotal=entry.line.subtotal,
            )
            for entry in priced
        ]
        db.add(order)
        db.flush()

        if discount is not None:
            if not conditional_increment_usage(db, discount.id):
                raise DiscountNoLongerAvailable()
            db.add(
                DiscountRedemption(
                    discount_code_id=discount.id,
                    order_id=order.id,
                    buyer_id=buyer.id,
                    amount=quote.discount.amount,
                )
            )

        db.query(CartItem).filter(CartItem.user_id == buyer.id).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(
        "order placed subtotal=%s discount=%s total=%s",
        quote.subtotal,
        quote.discount.amount,
        quote.total,
        extra={"order_id": order.id, "discount_code_id": order.discount_code_id},
    )
    emit_order_created(order)
    if discount is not None and usage_limit_reached(db, discount.id):
        emit_discount_limit_reached(discount)
    return order
