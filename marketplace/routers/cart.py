from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from marketplace.core.database import get_db
from marketplace.core.errors import BadRequest, NotFound
from marketplace.core.money import ZERO, money_str, to_money
from marketplace.deps import require_buyer
from marketplace.models.cart import CartItem
from marketplace.models.product import Product
from marketplace.models.user import User

router = APIRouter(prefix="/api/cart", tags=["cart"])


class AddToCartPayload(BaseModel):
    product_id: int
    quantity: int = Field(default=1, ge=1, le=999)


class SetQuantityPayload(BaseModel):
    quantity: int = Field(..., ge=1, le=999)


def _cart_view(db: Session, user: User) -> dict:
    items = db.query(CartItem).filter(CartItem.user_id == user.id).order_by(CartItem.id).all()
    lines = []
    subtotal = ZERO
    for item in items:
        product = item.product
        line_total = to_money(to_money(product.price) * item.quantity)
        subtotal += line_total
        lines.append(
            {
                "product_id": product.id,
                "seller_id": product.seller_id,
                "title": product.title,
                "unit_price": money_str(product.price),
                "quantity": item.quantity,
                "line_total": money_str(line_total),
                "available": bool(product.is_active) and product.stock >= item.quantity,
            }
        )
    return {
        "items": lines,
        "item_count": sum(item.quantity for item in items),
        "subtotal": money_str(subtotal),
    }


def _available_product(db: Session, product_id: int) -> Product:
    product = db.query(Product).filter(Product.id == product_id, Product.is_active.is_(True)).first()
    if product is None:
        raise NotFound("Product not found")
    return product


def _check_stock(product: Product, quantity: int) -> None:
    if quantity > product.stock:
        raise BadRequest(f"Only {product.stock} units of {product.title} in stock", code="insufficient_stock")


def _cart_item(db: Session, user: User, product_id: int) -> CartItem | None:
    return (
        db.query(CartItem)
        .filter(CartItem.user_id == user.id, CartItem.product_id == product_id)
        .first()
    )


@router.get("")
def get_cart(db: Session = Depends(get_db), user: User = Depends(require_buyer)):
    return _cart_view(db, user)


@router.post("/items", status_code=201)
def add_to_cart(payload: AddToCartPayload, db: Session = Depends(get_db), user: User = Depends(require_buyer)):
    product = _available_product(db, payload.product_id)
    item = _cart_item(db, user, product.id)
    quantity = payload.quantity + (item.quantity if item else 0)
    _check_stock(product, quantity)
    if item is None:
        db.add(CartItem(user_id=user.id, product_id=product.id, quantity=quantity))
    else:
        item.quantity = quantity
    db.commit()
    return _cart_view(db, user)


@router.put("/items/{product_id}")
def set_quantity(
    product_id: int,
    payload: SetQuantityPayload,
    db: Session = Depends(get_db),
    user: User = Depends(require_buyer),
):
    item = _cart_item(db, user, product_id)
    if item is None:
        raise NotFound("Product is not in the cart")
    _check_stock(_available_product(db, product_id), payload.quantity)
    item.quantity = payload.quantity
    db.commit()
    return _cart_view(db, user)


@router.delete("/items/{product_id}")
def remove_from_cart(product_id: int, db: Session = Depends(get_db), user: User = Depends(require_buyer)):
    item = _cart_item(db, user, product_id)
    if item is None:
        raise NotFound("Product is not in the cart")
    db.delete(item)
    db.commit()
    return _cart_view(db, user)


@router.delete("")
def clear_cart(db: Session = Depends(get_db), user: User = Depends(require_buyer)):
    db.query(CartItem).filter(CartItem.user_id == user.id).delete(synchronize_session=False)
    db.commit()
    return _cart_view(db, user)
