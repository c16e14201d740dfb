from __future__ import annotations

import logging

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from marketplace.models.discount import DiscountCode

logger = logging.getLogger(__name__)


def conditional_increment_usage(db: Session, discount_id: int) -> bool:
    """Consume one use in a single conditional UPDATE.

    Returns False when the limit is already reached, which includes losing a race
    for the last use. Database faults propagate.
    """
    result = db.execute(
        update(DiscountCode)
        .where(DiscountCode.id == discount_id)
        .where(or_(DiscountCode.usage_limit.is_(None), DiscountCode.usage_count < DiscountCode.usage_limit))
        .values(usage_count=DiscountCode.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    consumed = result.rowcount == 1
    if consumed:
        logger.info("discount usage consumed", extra={"discount_code_id": discount_id})
    else:
        logger.info("discount usage refused, limit reached", extra={"discount_code_id": discount_id})
    return consumed


def release_usage(db: Session, discount_id: int) -> bool:
    """Give one use back; the count never drops below zero."""
    result = db.execute(
        update(DiscountCode)
        .where(DiscountCode.id == discount_id)
        .where(DiscountCode.usage_count > 0)
        .values(usage_count=DiscountCode.usage_count - 1)
        .execution_options(synchronize_session=False)
    )
    released = result.rowcount == 1
    if released:
        logger.info("discount usage released", extra={"discount_code_id": discount_id})
    return released


def usage_limit_reached(db: Session, discount_id: int) -> bool:
    row = (
        db.query(DiscountCode.usage_count, DiscountCode.usage_limit)
        .filter(DiscountCode.id == discount_id)
        .one_or_none()
    )
    if row is None or row.usage_limit is None:
        return False
    return row.usage_count >= row.usage_limit
