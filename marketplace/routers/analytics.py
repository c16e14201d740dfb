from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.core.clock import ensure_utc
from marketplace.core.database import get_db
from marketplace.core.errors import BadRequest
from marketplace.deps import require_admin, require_seller
from marketplace.models.user import User
from marketplace.services.analytics import platform_summary, seller_summary

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


def _range(start: Optional[datetime], end: Optional[datetime]):
    start, end = ensure_utc(start), ensure_utc(end)
    if start and end and start > end:
        raise BadRequest("start must not be after end")
    return start, end


@router.get("/seller")
def seller_analytics(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db),
    seller: User = Depends(require_seller),
):
    start, end = _range(start, end)
    return seller_summary(db, seller.id, start=start, end=end)


@router.get("/platform")
def platform_analytics(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db),
    _admin: User = Depends(require_admin),
):
    start, end = _range(start, end)
    return platform_summary(db, start=start, end=end)
