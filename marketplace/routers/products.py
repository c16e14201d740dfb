from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy import desc
from sqlalchemy.orm import Session

from marketplace.core.config import Settings, get_settings
from marketplace.core.database import get_db
from marketplace.core.errors import BadRequest, NotFound
from marketplace.core.money import money_str
from marketplace.deps import require_seller
from marketplace.models.category import Category
from marketplace.models.product import Product
from marketplace.models.user import User
from marketplace.services.storage import presign_upload, upload_product_image

router = APIRouter(prefix="/api/products", tags=["products"])

logger = logging.getLogger(__name__)

MAX_IMAGES_PER_PRODUCT = 8
_REQUIRED_FIELDS = {"title", "price", "stock", "is_active"}


class ProductCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    stock: int = Field(default=0, ge=0)
    category_id: Optional[int] = None
    location: Optional[str] = Field(default=None, max_length=120)


class ProductUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    price: Optional[Decimal] = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    stock: Optional[int] = Field(default=None, ge=0)
    category_id: Optional[int] = None
    location: Optional[str] = Field(default=None, max_length=120)
    is_active: Optional[bool] = None


class PresignPayload(BaseModel):
    filename: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(..., min_length=1, max_length=100)
    product_id: Optional[int] = None


def product_to_dict(product: Product) -> dict:
    return {
        "id": product.id,
        "seller_id": product.seller_id,
        "category_id": product.category_id,
        "title": product.title,
        "description": product.description,
        "price": money_str(product.price),
        "stock": product.stock,
        "images": list(product.images or []),
        "location": product.location,
        "is_active": product.is_active,
        "created_at": product.created_at.isoformat() if product.created_at else None,
        "updated_at": product.updated_at.isoformat() if product.updated_at else None,
    }


def _ensure_category(db: Session, category_id: Optional[int]) -> None:
    if category_id is not None and db.query(Category.id).filter(Category.id == category_id).first() is None:
        raise BadRequest("Category does not exist")


def _own_product(db: Session, seller: User, product_id: int) -> Product:
    product = (
        db.query(Product)
        .filter(Product.id == product_id, Product.seller_id == seller.id)
        .first()
    )
    if product is None:
        raise NotFound("Product not found")
    return product


@router.get("")
def list_products(
    category_id: Optional[int] = None,
    seller_id: Optional[int] = None,
    q: Optional[str] = Query(default=None, max_length=100),
    min_price: Optional[Decimal] = Query(default=None, ge=0),
    max_price: Optional[Decimal] = Query(default=None, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    query = db.query(Product).filter(Product.is_active.is_(True))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if seller_id is not None:
        query = query.filter(Product.seller_id == seller_id)
    if q:
        pattern = f"%{q.strip()}%"
        query = query.filter(Product.title.ilike(pattern) | Product.description.ilike(pattern))
    if min_price is not None:
        query = query.filter(Product.price >= min_price)
    if max_price is not None:
        query = query.filter(Product.price <= max_price)

    total = query.count()
    products = query.order_by(desc(Product.created_at), desc(Product.id)).offset(offset).limit(limit).all()
    return {"items": [product_to_dict(product) for product in products], "total": total}


@router.get("/{product_id}")
def get_product(product_id: int, db: Session = Depends(get_db)):
    product = db.query(Product).filter(Product.id == product_id, Product.is_active.is_(True)).first()
    if product is None:
        raise NotFound("Product not found")
    return product_to_dict(product)


@router.post("", status_code=201)
def create_product(payload: ProductCreate, db: Session = Depends(get_db), seller: User = Depends(require_seller)):
    _ensure_category(db, payload.category_id)
    product = Product(
        seller_id=seller.id,
        category_id=payload.category_id,
        title=payload.title.strip(),
        description=payload.description,
        price=payload.price,
        stock=payload.stock,
        location=payload.location,
        images=[],
        is_active=True,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info("product created id=%s seller_id=%s", product.id, seller.id)
    return product_to_dict(product)


@router.patch("/{product_id}")
def update_product(
    product_id: int,
    payload: ProductUpdate,
    db: Session = Depends(get_db),
    seller: User = Depends(require_seller),
):
    product = _own_product(db, seller, product_id)
    changes = payload.model_dump(exclude_unset=True)
    if "category_id" in changes:
        _ensure_category(db, changes["category_id"])
    for field, value in changes.items():
        if value is None and field in _REQUIRED_FIELDS:
            raise BadRequest(f"{field} cannot be null")
        setattr(product, field, value)
    db.commit()
    db.refresh(product)
    return product_to_dict(product)


@router.delete("/{product_id}")
def deactivate_product(product_id: int, db: Session = Depends(get_db), seller: User = Depends(require_seller)):
    product = _own_product(db, seller, product_id)
    product.is_active = False
    db.commit()
    db.refresh(product)
    return product_to_dict(product)


@router.post("/{product_id}/images")
def upload_image(
    product_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    seller: User = Depends(require_seller),
    settings: Settings = Depends(get_settings),
):
    product = _own_product(db, seller, product_id)
    if len(product.images or []) >= MAX_IMAGES_PER_PRODUCT:
        raise BadRequest(f"A product can have at most {MAX_IMAGES_PER_PRODUCT} images")

    url = upload_product_image(settings, file, seller_id=seller.id, product_id=product.id)
    # reassign so the JSON column is flagged dirty
    product.images = [*(product.images or []), url]
    db.commit()
    db.refresh(product)
    return {"url": url, "product": product_to_dict(product)}


@router.post("/uploads/presign")
def presign_image_upload(
    payload: PresignPayload,
    db: Session = Depends(get_db),
    seller: User = Depends(require_seller),
    settings: Settings = Depends(get_settings),
):
    if payload.product_id is not None:
        _own_product(db, seller, payload.product_id)
    return presign_upload(
        settings,
        seller_id=seller.id,
        filename=payload.filename,
        content_type=payload.content_type,
        product_id=payload.product_id,
    )
