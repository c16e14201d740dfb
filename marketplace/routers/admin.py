from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import desc
from sqlalchemy.orm import Session

from marketplace.core.database import get_db
from marketplace.core.errors import BadRequest, NotFound
from marketplace.deps import require_admin
from marketplace.models.order import Order
from marketplace.models.user import Role, User
from marketplace.routers.auth import user_to_dict
from marketplace.routers.orders import order_to_dict
from marketplace.services.analytics import dashboard_stats

router = APIRouter(prefix="/api/admin", tags=["admin"])

logger = logging.getLogger(__name__)


class SellerDecisionPayload(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


def _pending_seller(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFound("User not found")
    if user.role != Role.PENDING_SELLER.value:
        raise BadRequest("Only pending sellers can be approved or rejected", code="not_pending_seller")
    return user


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db), _admin: User = Depends(require_admin)):
    return dashboard_stats(db)


@router.get("/users")
def list_users(
    role: Optional[Role] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _admin: User = Depends(require_admin),
):
    query = db.query(User)
    if role is not None:
        query = query.filter(User.role == role.value)
    users = query.order_by(User.id).offset(offset).limit(limit).all()
    return [user_to_dict(user) for user in users]


@router.post("/users/{user_id}/approve-seller")
def approve_seller(user_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    user = _pending_seller(db, user_id)
    user.role = Role.SELLER.value
    db.commit()
    db.refresh(user)
    logger.info("seller approved user_id=%s by admin_id=%s", user.id, admin.id)
    return user_to_dict(user)


@router.post("/users/{user_id}/reject-seller")
def reject_seller(
    user_id: int,
    payload: Optional[SellerDecisionPayload] = None,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """The applicant keeps their account as a buyer."""
    user = _pending_seller(db, user_id)
    user.role = Role.BUYER.value
    db.commit()
    db.refresh(user)
    logger.info(
        "seller rejected user_id=%s by admin_id=%s reason=%s",
        user.id,
        admin.id,
        payload.reason if payload else None,
    )
    return user_to_dict(user)


@router.get("/orders")
def list_all_orders(
    status: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _admin: User = Depends(require_admin),
):
    query = db.query(Order)
    if status:
        query = query.filter(Order.status == status)
    orders = query.order_by(desc(Order.created_at), desc(Order.id)).offset(offset).limit(limit).all()
    return [order_to_dict(order) for order in orders]
