"""Who may do what with an order.

Each role has one policy object and ``_POLICIES`` must cover every ``Role``; a
missing entry fails at import time rather than at request time.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sqlalchemy import false
from sqlalchemy.orm import Query

from marketplace.core.errors import Forbidden, NotFound
from marketplace.models.order import Order
from marketplace.models.order_item import OrderItem
from marketplace.models.user import Role, User
from marketplace.services.order_status import OrderStatus


class OrderAction(str, Enum):
    VIEW = "view"
    UPDATE_STATUS = "update_status"
    CONFIRM_PAYMENT = "confirm_payment"
    REFUND = "refund"


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: Role

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(user_id=user.id, role=Role(user.role))


def _is_buyer_of(actor: Actor, order: Order) -> bool:
    return order.buyer_id == actor.user_id


def _sells_in(actor: Actor, order: Order) -> bool:
    return any(item.seller_id == actor.user_id for item in order.order_items)


class _BuyerPolicy:
    def can_view(self, actor: Actor, order: Order) -> bool:
        return _is_buyer_of(actor, order)

    def can_transition(self, actor: Actor, order: Order, target: OrderStatus) -> bool:
        return (
            _is_buyer_of(actor, order)
            and target is OrderStatus.CANCELED
            and order.status == OrderStatus.PENDING.value
        )

    def can_confirm_payment(self, actor: Actor, order: Order) -> bool:
        return _is_buyer_of(actor, order)

    def can_refund(self, actor: Actor, order: Order) -> bool:
        return False

    def scope(self, actor: Actor, query: Query) -> Query:
        return query.filter(Order.buyer_id == actor.user_id)


class _SellerPolicy:
    def can_view(self, actor: Actor, order: Order) -> bool:
        return _sells_in(actor, order)

    def can_transition(self, actor: Actor, order: Order, target: OrderStatus) -> bool:
        return _sells_in(actor, order)

    def can_confirm_payment(self, actor: Actor, order: Order) -> bool:
        return False

    def can_refund(self, actor: Actor, order: Order) -> bool:
        return False

    def scope(self, actor: Actor, query: Query) -> Query:
        return query.filter(Order.order_items.any(OrderItem.seller_id == actor.user_id))


class _PendingSellerPolicy:
    def can_view(self, actor: Actor, order: Order) -> bool:
        return False

    def can_transition(self, actor: Actor, order: Order, target: OrderStatus) -> bool:
        return False

    def can_confirm_payment(self, actor: Actor, order: Order) -> bool:
        return False

    def can_refund(self, actor: Actor, order: Order) -> bool:
        return False

    def scope(self, actor: Actor, query: Query) -> Query:
        return query.filter(false())


class _AdminPolicy:
    def can_view(self, actor: Actor, order: Order) -> bool:
        return True

    def can_transition(self, actor: Actor, order: Order, target: OrderStatus) -> bool:
        return True

    def can_confirm_payment(self, actor: Actor, order: Order) -> bool:
        return True

    def can_refund(self, actor: Actor, order: Order) -> bool:
        return True

    def scope(self, actor: Actor, query: Query) -> Query:
        return query


_POLICIES = {
    Role.BUYER: _BuyerPolicy(),
    Role.SELLER: _SellerPolicy(),
    Role.PENDING_SELLER: _PendingSellerPolicy(),
    Role.ADMIN: _AdminPolicy(),
}

if set(_POLICIES) != set(Role):
    raise RuntimeError(f"Order policies missing for roles: {set(Role) - set(_POLICIES)}")


def _policy(actor: Actor):
    return _POLICIES[actor.role]


def scope_orders(actor: Actor, query: Query) -> Query:
    return _policy(actor).scope(actor, query)


def authorize_order(
    actor: Actor,
    order: Order,
    action: OrderAction,
    target: OrderStatus | None = None,
) -> None:
    """Raise NotFound when the order is invisible to the actor, Forbidden when the action is not theirs."""
    policy = _policy(actor)
    if not policy.can_view(actor, order):
        raise NotFound("Order not found")

    if action is OrderAction.VIEW:
        allowed = True
    elif action is OrderAction.UPDATE_STATUS:
        if target is None:
            raise ValueError("target status is required for status updates")
        allowed = policy.can_transition(actor, order, target)
    elif action is OrderAction.CONFIRM_PAYMENT:
        allowed = policy.can_confirm_payment(actor, order)
    elif action is OrderAction.REFUND:
        allowed = policy.can_refund(actor, order)
    else:
        raise ValueError(f"Unhandled order action: {action}")

    if not allowed:
        raise Forbidden("You are not allowed to perform this action on the order")
