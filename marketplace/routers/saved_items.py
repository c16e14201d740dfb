from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import desc
from sqlalchemy.orm import Session

from marketplace.core.database import get_db
from marketplace.core.errors import NotFound
from marketplace.deps import get_current_user
from marketplace.models.cart import SavedItem
from marketplace.models.product import Product
from marketplace.models.user import User
from marketplace.routers.products import product_to_dict

router = APIRouter(prefix="/api/saved-items", tags=["saved-items"])


@router.get("")
def list_saved_items(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    items = (
        db.query(SavedItem)
        .filter(SavedItem.user_id == user.id)
        .order_by(desc(SavedItem.saved_at), desc(SavedItem.id))
        .all()
    )
    return [
        {"product": product_to_dict(item.product), "saved_at": item.saved_at.isoformat() if item.saved_at else None}
        for item in items
    ]


@router.post("/{product_id}")
def save_item(product_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    if db.query(Product.id).filter(Product.id == product_id, Product.is_active.is_(True)).first() is None:
        raise NotFound("Product not found")
    existing = (
        db.query(SavedItem)
        .filter(SavedItem.user_id == user.id, SavedItem.product_id == product_id)
        .first()
    )
    if existing is None:
        db.add(SavedItem(user_id=user.id, product_id=product_id))
        db.commit()
    return {"product_id": product_id, "saved": True}


@router.delete("/{product_id}")
def remove_saved_item(product_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    deleted = (
        db.query(SavedItem)
        .filter(SavedItem.user_id == user.id, SavedItem.product_id == product_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    if not deleted:
        raise NotFound("Product is not saved")
    return {"product_id": product_id, "saved": False}
