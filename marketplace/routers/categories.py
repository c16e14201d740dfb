from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from marketplace.core.database import get_db
from marketplace.core.errors import BadRequest, Conflict, NotFound
from marketplace.deps import require_admin
from marketplace.models.category import Category
from marketplace.models.product import Product
from marketplace.models.user import User
from marketplace.utils.slug import slugify

router = APIRouter(prefix="/api/categories", tags=["categories"])


class CategoryPayload(BaseModel):
    name: str = Field(..., min_length=2, max_length=80)
    description: Optional[str] = None


def category_to_dict(category: Category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
    }


def _get_category(db: Session, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if category is None:
        raise NotFound("Category not found")
    return category


def _apply(db: Session, category: Category, payload: CategoryPayload) -> None:
    name = payload.name.strip()
    slug = slugify(name)
    if not slug:
        raise BadRequest("Category name must contain letters or digits")
    clash = db.query(Category.id).filter((Category.name == name) | (Category.slug == slug))
    if category.id is not None:
        clash = clash.filter(Category.id != category.id)
    if clash.first() is not None:
        raise Conflict("Category already exists", code="duplicate_category")
    category.name = name
    category.slug = slug
    category.description = payload.description


@router.get("")
def list_categories(db: Session = Depends(get_db)):
    return [category_to_dict(category) for category in db.query(Category).order_by(Category.name).all()]


@router.get("/{category_id}")
def get_category(category_id: int, db: Session = Depends(get_db)):
    return category_to_dict(_get_category(db, category_id))


@router.post("", status_code=201)
def create_category(payload: CategoryPayload, db: Session = Depends(get_db), _admin: User = Depends(require_admin)):
    category = Category()
    _apply(db, category, payload)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category_to_dict(category)


@router.put("/{category_id}")
def update_category(
    category_id: int,
    payload: CategoryPayload,
    db: Session = Depends(get_db),
    _admin: User = Depends(require_admin),
):
    category = _get_category(db, category_id)
    _apply(db, category, payload)
    db.commit()
    db.refresh(category)
    return category_to_dict(category)


@router.delete("/{category_id}", status_code=204)
def delete_category(category_id: int, db: Session = Depends(get_db), _admin: User = Depends(require_admin)):
    category = _get_category(db, category_id)
    if db.query(Product.id).filter(Product.category_id == category.id).first() is not None:
        raise BadRequest("Cannot delete a category that still has products", code="category_in_use")
    db.delete(category)
    db.commit()
    return Response(status_code=204)
