from __future__ import annotations

from datetime import datetime

from sqlalchemy import distinct, func
from sqlalchemy.orm import Session

from marketplace.core.money import money_str, to_money
from marketplace.models.discount import DiscountCode, DiscountRedemption
from marketplace.models.order import Order
from marketplace.models.order_item import OrderItem
from marketplace.models.product import Product
from marketplace.models.user import Role, User
from marketplace.services.order_status import OrderStatus

TOP_PRODUCTS_LIMIT = 5


def _in_range(query, column, start: datetime | None, end: datetime | None):
    if start is not None:
        query = query.filter(column >= start)
    if end is not None:
        query = query.filter(column <= end)
    return query


def seller_summary(
    db: Session,
    seller_id: int,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    """Sales figures for one seller; canceled orders count only in the status breakdown."""
    items = _in_range(
        db.query(OrderItem).join(Order, Order.id == OrderItem.order_id).filter(OrderItem.seller_id == seller_id),
        Order.created_at,
        start,
        end,
    )
    live_items = items.filter(Order.status != OrderStatus.CANCELED.value)

    gross_sales, units_sold, order_count = live_items.with_entities(
        func.coalesce(func.sum(OrderItem.subtotal), 0),
        func.coalesce(func.sum(OrderItem.quantity), 0),
        func.count(distinct(OrderItem.order_id)),
    ).one()

    status_rows = (
        items.with_entities(Order.status, func.count(distinct(Order.id))).group_by(Order.status).all()
    )

    top_rows = (
        live_items.with_entities(
            OrderItem.product_id,
            OrderItem.title,
            func.sum(OrderItem.quantity).label("units"),
            func.sum(OrderItem.subtotal).label("revenue"),
        )
        .group_by(OrderItem.product_id, OrderItem.title)
        .order_by(func.sum(OrderItem.quantity).desc(), OrderItem.product_id)
        .limit(TOP_PRODUCTS_LIMIT)
        .all()
    )

    discounts_given = _in_range(
        db.query(func.coalesce(func.sum(DiscountRedemption.amount), 0))
        .join(DiscountCode, DiscountCode.id == DiscountRedemption.discount_code_id)
        .filter(DiscountCode.seller_id == seller_id, DiscountRedemption.released_at.is_(None)),
        DiscountRedemption.created_at,
        start,
        end,
    ).scalar()

    codes = (
        db.query(DiscountCode)
        .filter(DiscountCode.seller_id == seller_id)
        .order_by(DiscountCode.usage_count.desc(), DiscountCode.id)
        .all()
    )

    return {
        "seller_id": seller_id,
        "gross_sales": money_str(gross_sales),
        "discounts_given": money_str(discounts_given),
        "net_sales": money_str(to_money(gross_sales) - to_money(discounts_given)),
        "orders": int(order_count or 0),
        "units_sold": int(units_sold or 0),
        "orders_by_status": {status: count for status, count in status_rows},
        "top_products": [
            {
                "product_id": row.product_id,
                "title": row.title,
                "units": int(row.units or 0),
                "revenue": money_str(row.revenue),
            }
            for row in top_rows
        ],
        "discount_codes": [
            {
                "id": code.id,
                "code": code.code,
                "usage_count": code.usage_count,
                "usage_limit": code.usage_limit,
                "is_active": code.is_active,
            }
            for code in codes
        ],
    }


def platform_summary(db: Session, *, start: datetime | None = None, end: datetime | None = None) -> dict:
    """Marketplace-wide figures; gross is before discounts, as in seller_summary."""
    orders = _in_range(db.query(Order), Order.created_at, start, end)
    live = orders.filter(Order.status != OrderStatus.CANCELED.value)

    gross, discounts, refunds, live_count = live.with_entities(
        func.coalesce(func.sum(Order.subtotal_amount), 0),
        func.coalesce(func.sum(Order.discount_amount), 0),
        func.coalesce(func.sum(Order.refunded_amount), 0),
        func.count(Order.id),
    ).one()

    by_status = orders.with_entities(Order.status, func.count(Order.id)).group_by(Order.status).all()
    by_payment = (
        orders.with_entities(Order.payment_status, func.count(Order.id)).group_by(Order.payment_status).all()
    )
    users_by_role = db.query(User.role, func.count(User.id)).group_by(User.role).all()

    return {
        "orders": int(live_count or 0),
        "gross_sales": money_str(gross),
        "discounts_given": money_str(discounts),
        "net_sales": money_str(to_money(gross) - to_money(discounts)),
        "refunded": money_str(refunds),
        "orders_by_status": {status: count for status, count in by_status},
        "orders_by_payment_status": {status: count for status, count in by_payment},
        "users_by_role": {role: count for role, count in users_by_role},
    }


def dashboard_stats(db: Session) -> dict:
    """Headline counts for the admin dashboard."""
    users_by_role = dict(db.query(User.role, func.count(User.id)).group_by(User.role).all())
    order_count, revenue = (
        db.query(Order)
        .filter(Order.status != OrderStatus.CANCELED.value)
        .with_entities(
            func.count(Order.id),
            func.coalesce(func.sum(Order.total_amount - Order.refunded_amount), 0),
        )
        .one()
    )
    return {
        "total_users": sum(users_by_role.values()),
        "total_buyers": users_by_role.get(Role.BUYER.value, 0),
        "total_sellers": users_by_role.get(Role.SELLER.value, 0),
        "pending_sellers": users_by_role.get(Role.PENDING_SELLER.value, 0),
        "total_products": db.query(Product).filter(Product.is_active.is_(True)).count(),
        "total_orders": int(order_count or 0),
        "total_revenue": money_str(revenue),
    }
