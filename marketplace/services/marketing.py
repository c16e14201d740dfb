from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.core.clock import ensure_utc, utcnow
from marketplace.core.errors import BadRequest, Conflict, NotFound
from marketplace.models.campaign import Campaign
from marketplace.models.discount import DiscountCode
from marketplace.models.product import Product
from marketplace.schemas.marketing import CampaignIn, DiscountCodeIn, DiscountTerms
from marketplace.services.discounts import find_discount

logger = logging.getLogger(__name__)

USAGE_WITHIN_LIMIT_CONSTRAINT = "ck_discount_codes_usage_within_limit"


def get_campaign(db: Session, seller_id: int, campaign_id: int) -> Campaign:
    campaign = (
        db.query(Campaign)
        .filter(Campaign.id == campaign_id, Campaign.seller_id == seller_id)
        .first()
    )
    if campaign is None:
        raise NotFound("Campaign not found")
    return campaign


def list_campaigns(db: Session, seller_id: int, *, active_only: bool = False, now: datetime | None = None):
    query = db.query(Campaign).filter(Campaign.seller_id == seller_id)
    if active_only:
        now = now or utcnow()
        query = query.filter(
            Campaign.is_active.is_(True),
            Campaign.start_date <= now,
            Campaign.end_date >= now,
        )
    return query.order_by(Campaign.start_date.desc(), Campaign.id.desc()).all()


def get_discount_code(db: Session, seller_id: int, discount_id: int) -> DiscountCode:
    discount = (
        db.query(DiscountCode)
        .filter(DiscountCode.id == discount_id, DiscountCode.seller_id == seller_id)
        .first()
    )
    if discount is None:
        raise NotFound("Discount code not found")
    return discount


def list_discount_codes(
    db: Session,
    seller_id: int,
    *,
    campaign_id: int | None = None,
    active_only: bool = False,
):
    query = db.query(DiscountCode).filter(DiscountCode.seller_id == seller_id)
    if campaign_id is not None:
        query = query.filter(DiscountCode.campaign_id == campaign_id)
    if active_only:
        query = query.filter(DiscountCode.is_active.is_(True))
    return query.order_by(DiscountCode.created_at.desc(), DiscountCode.id.desc()).all()


def _ensure_code_free(db: Session, seller_id: int, code: str, exclude_id: int | None = None) -> None:
    existing = find_discount(db, seller_id, code)
    if existing is not None and existing.id != exclude_id:
        raise Conflict(f"Discount code {code} already exists", code="duplicate_code")


def _ensure_products_owned(db: Session, seller_id: int, product_ids: list[int]) -> None:
    if not product_ids:
        return
    owned = {
        row.id
        for row in db.query(Product.id).filter(Product.id.in_(product_ids), Product.seller_id == seller_id).all()
    }
    missing = sorted(set(product_ids) - owned)
    if missing:
        raise BadRequest(f"Products not found in your catalog: {missing}")


def _ensure_within_campaign(campaign: Campaign, start: datetime, end: datetime) -> None:
    if ensure_utc(start) < ensure_utc(campaign.start_date) or ensure_utc(end) > ensure_utc(campaign.end_date):
        raise BadRequest("Discount code dates must fall within the campaign dates", code="outside_campaign_window")


def _write_terms(discount: DiscountCode, terms: DiscountTerms) -> None:
    discount.code = terms.code
    discount.discount_type = terms.discount_type.value
    discount.value = terms.value
    discount.min_purchase_amount = terms.min_purchase_amount
    discount.max_discount_amount = terms.max_discount_amount
    discount.usage_limit = terms.usage_limit
    discount.buy_quantity = terms.buy_quantity
    discount.get_quantity = terms.get_quantity
    discount.eligible_product_ids = list(terms.eligible_product_ids)
    discount.eligible_category_ids = list(terms.eligible_category_ids)


def _limit_below_usage(usage_count: int | None = None) -> Conflict:
    consumed = "the uses" if usage_count is None else f"the {usage_count} uses"
    return Conflict(f"usage_limit cannot go below {consumed} already consumed", code="usage_limit_below_usage")


def create_campaign(db: Session, seller_id: int, payload: CampaignIn) -> Campaign:
    campaign = Campaign(
        seller_id=seller_id,
        name=payload.name.strip(),
        description=payload.description.strip(),
        campaign_type=payload.campaign_type.value,
        start_date=payload.start_date,
        end_date=payload.end_date,
        banner_image=payload.banner_image,
        is_active=True,
    )
    db.add(campaign)

    if payload.discount_code is not None:
        terms = payload.discount_code
        _ensure_code_free(db, seller_id, terms.code)
        _ensure_products_owned(db, seller_id, terms.eligible_product_ids)
        discount = DiscountCode(
            seller_id=seller_id,
            campaign=campaign,
            start_date=payload.start_date,
            end_date=payload.end_date,
            is_active=True,
            usage_count=0,
        )
        _write_terms(discount, terms)
        db.add(discount)

    db.commit()
    db.refresh(campaign)
    logger.info("campaign created id=%s seller_id=%s", campaign.id, seller_id)
    return campaign


def create_discount_code(db: Session, seller_id: int, payload: DiscountCodeIn) -> DiscountCode:
    if payload.campaign_id is not None:
        campaign = get_campaign(db, seller_id, payload.campaign_id)
        _ensure_within_campaign(campaign, payload.start_date, payload.end_date)
    _ensure_code_free(db, seller_id, payload.code)
    _ensure_products_owned(db, seller_id, payload.eligible_product_ids)

    discount = DiscountCode(
        seller_id=seller_id,
        campaign_id=payload.campaign_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        is_active=payload.is_active,
        usage_count=0,
    )
    _write_terms(discount, payload)
    db.add(discount)
    db.commit()
    db.refresh(discount)
    logger.info("discount code created", extra={"discount_code_id": discount.id})
    return discount


def replace_discount_code(db: Session, seller_id: int, discount_id: int, payload: DiscountCodeIn) -> DiscountCode:
    """Full replace of the seller-editable fields; usage_count is never written here."""
    discount = get_discount_code(db, seller_id, discount_id)
    if payload.campaign_id is not None:
        campaign = get_campaign(db, seller_id, payload.campaign_id)
        _ensure_within_campaign(campaign, payload.start_date, payload.end_date)
    _ensure_code_free(db, seller_id, payload.code, exclude_id=discount.id)
    _ensure_products_owned(db, seller_id, payload.eligible_product_ids)
    if payload.usage_limit is not None and payload.usage_limit < discount.usage_count:
        raise _limit_below_usage(discount.usage_count)

    _write_terms(discount, payload)
    discount.campaign_id = payload.campaign_id
    discount.start_date = payload.start_date
    discount.end_date = payload.end_date
    discount.is_active = payload.is_active
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        # A checkout consumed a use between the read above and this write.
        if USAGE_WITHIN_LIMIT_CONSTRAINT in str(exc.orig):
            raise _limit_below_usage() from exc
        raise
    db.refresh(discount)
    logger.info("discount code replaced", extra={"discount_code_id": discount.id})
    return discount


def deactivate_discount_code(db: Session, seller_id: int, discount_id: int) -> DiscountCode:
    discount = get_discount_code(db, seller_id, discount_id)
    if discount.is_active:
        discount.is_active = False
        db.commit()
        db.refresh(discount)
        logger.info("discount code deactivated", extra={"discount_code_id": discount.id})
    return discount
