from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.core.database import get_db
from marketplace.core.money import ZERO, money_str, to_money
from marketplace.deps import get_current_user, require_seller
from marketplace.models.campaign import Campaign
from marketplace.models.discount import DiscountCode
from marketplace.models.user import User
from marketplace.schemas.marketing import CampaignIn, DiscountCodeIn, GenerateCodeIn, ValidateCodeIn
from marketplace.services import marketing
from marketplace.services.discounts import CartLine, apply_discount, generate_unique_code, validate_discount_code

router = APIRouter(prefix="/api/marketing", tags=["marketing"])


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def discount_to_dict(discount: DiscountCode) -> Dict[str, Any]:
    return {
        "id": discount.id,
        "seller_id": discount.seller_id,
        "campaign_id": discount.campaign_id,
        "code": discount.code,
        "discount_type": discount.discount_type,
        "value": money_str(discount.value),
        "min_purchase_amount": money_str(discount.min_purchase_amount),
        "max_discount_amount": money_str(discount.max_discount_amount),
        "buy_quantity": discount.buy_quantity,
        "get_quantity": discount.get_quantity,
        "usage_limit": discount.usage_limit,
        "usage_count": discount.usage_count,
        "eligible_product_ids": list(discount.eligible_product_ids or []),
        "eligible_category_ids": list(discount.eligible_category_ids or []),
        "start_date": _iso(discount.start_date),
        "end_date": _iso(discount.end_date),
        "is_active": discount.is_active,
    }


def campaign_to_dict(campaign: Campaign, include_codes: bool = False) -> Dict[str, Any]:
    data = {
        "id": campaign.id,
        "seller_id": campaign.seller_id,
        "name": campaign.name,
        "description": campaign.description,
        "campaign_type": campaign.campaign_type,
        "start_date": _iso(campaign.start_date),
        "end_date": _iso(campaign.end_date),
        "is_active": campaign.is_active,
        "banner_image": campaign.banner_image,
    }
    if include_codes:
        data["discount_codes"] = [discount_to_dict(code) for code in campaign.discount_codes]
    return data


@router.post("/campaigns", status_code=201)
def create_campaign(payload: CampaignIn, db: Session = Depends(get_db), seller: User = Depends(require_seller)):
    campaign = marketing.create_campaign(db, seller.id, payload)
    return campaign_to_dict(campaign, include_codes=True)


@router.get("/campaigns")
def list_campaigns(
    active_only: bool = False,
    db: Session = Depends(get_db),
    seller: User = Depends(require_seller),
):
    return [campaign_to_dict(c) for c in marketing.list_campaigns(db, seller.id, active_only=active_only)]


@router.get("/campaigns/{campaign_id}")
def get_campaign(campaign_id: int, db: Session = Depends(get_db), seller: User = Depends(require_seller)):
    return campaign_to_dict(marketing.get_campaign(db, seller.id, campaign_id), include_codes=True)


@router.post("/discount-codes", status_code=201)
def create_discount_code(
    payload: DiscountCodeIn,
    db: Session = Depends(get_db),
    seller: User = Depends(require_seller),
):
    return discount_to_dict(marketing.create_discount_code(db, seller.id, payload))


@router.get("/discount-codes")
def list_discount_codes(
    campaign_id: Optional[int] = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
    seller: User = Depends(require_seller),
):
    codes = marketing.list_discount_codes(db, seller.id, campaign_id=campaign_id, active_only=active_only)
    return [discount_to_dict(code) for code in codes]


@router.post("/discount-codes/generate")
def generate_discount_code(
    payload: GenerateCodeIn,
    db: Session = Depends(get_db),
    seller: User = Depends(require_seller),
):
    return {"code": generate_unique_code(db, seller.id, payload.length)}


@router.post("/discount-codes/validate")
def validate_code(payload: ValidateCodeIn, db: Session = Depends(get_db), _user: User = Depends(get_current_user)):
    """Check a code against a cart description; never consumes a use."""
    lines = [CartLine(**item.model_dump()) for item in payload.items]
    discount = validate_discount_code(
        db,
        seller_id=payload.seller_id,
        code=payload.code,
        subtotal=payload.subtotal,
        product_ids=set(payload.product_ids) | {line.product_id for line in lines},
        category_ids=set(payload.category_ids) | {line.category_id for line in lines if line.category_id is not None},
    )
    result = apply_discount(discount, payload.subtotal, lines)
    return {
        "valid": True,
        "discount_code_id": discount.id,
        "code": discount.code,
        "discount_type": discount.discount_type,
        "discount_amount": money_str(result.amount),
        "free_shipping": result.free_shipping,
        "new_total": money_str(max(to_money(payload.subtotal) - result.amount, ZERO)),
    }


@router.get("/discount-codes/{discount_id}")
def get_discount_code(discount_id: int, db: Session = Depends(get_db), seller: User = Depends(require_seller)):
    return discount_to_dict(marketing.get_discount_code(db, seller.id, discount_id))


@router.put("/discount-codes/{discount_id}")
def replace_discount_code(
    discount_id: int,
    payload: DiscountCodeIn,
    db: Session = Depends(get_db),
    seller: User = Depends(require_seller),
):
    return discount_to_dict(marketing.replace_discount_code(db, seller.id, discount_id, payload))


@router.post("/discount-codes/{discount_id}/deactivate")
def deactivate_discount_code(
    discount_id: int,
    db: Session = Depends(get_db),
    seller: User = Depends(require_seller),
):
    return discount_to_dict(marketing.deactivate_discount_code(db, seller.id, discount_id))
