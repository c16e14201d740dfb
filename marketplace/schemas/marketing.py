from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from marketplace.core.clock import ensure_utc
from marketplace.services.discounts import DiscountKind, normalize_code


class CampaignType(str, Enum):
    SALE = "sale"
    FLASH_SALE = "flash_sale"
    PRODUCT_LAUNCH = "product_launch"
    SEASONAL = "seasonal"
    CLEARANCE = "clearance"
    BUNDLE_DEAL = "bundle_deal"
    LOYALTY = "loyalty"
    CUSTOM = "custom"


def _check_window(start: datetime, end: datetime) -> None:
    if start >= end:
        raise ValueError("start_date must be before end_date")


class DiscountTerms(BaseModel):
    """Everything about a discount code except its validity window."""

    code: str = Field(..., min_length=3, max_length=20)
    discount_type: DiscountKind
    value: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    min_purchase_amount: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    max_discount_amount: Optional[Decimal] = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    usage_limit: Optional[int] = Field(default=None, ge=1)
    buy_quantity: Optional[int] = Field(default=None, ge=1)
    get_quantity: Optional[int] = Field(default=None, ge=1)
    eligible_product_ids: list[int] = Field(default_factory=list)
    eligible_category_ids: list[int] = Field(default_factory=list)

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        code = normalize_code(value)
        if not code.isalnum() or not code.isascii():
            raise ValueError("code must contain only letters and digits")
        return code

    @field_validator("eligible_product_ids", "eligible_category_ids")
    @classmethod
    def _dedupe(cls, value: list[int]) -> list[int]:
        return sorted(set(value))

    @model_validator(mode="after")
    def _check_kind(self):
        kind = self.discount_type
        if kind is DiscountKind.PERCENTAGE and not (0 < self.value <= 100):
            raise ValueError("percentage value must be between 0 and 100")
        if kind is DiscountKind.FIXED_AMOUNT and self.value <= 0:
            raise ValueError("fixed amount value must be positive")
        if kind is DiscountKind.BUY_X_GET_Y:
            if self.buy_quantity is None or self.get_quantity is None:
                raise ValueError("buy_x_get_y codes need buy_quantity and get_quantity")
            if not (0 < self.value <= 100):
                raise ValueError("buy_x_get_y value is the percentage off the free units (1-100)")
        if kind is DiscountKind.BUNDLED:
            if len(self.eligible_product_ids) < 2:
                raise ValueError("bundled codes need at least two eligible_product_ids")
            if not (0 < self.value <= 100):
                raise ValueError("bundled value is the percentage off the bundle (1-100)")
        return self


class DiscountCodeIn(DiscountTerms):
    campaign_id: Optional[int] = None
    start_date: datetime
    end_date: datetime
    is_active: bool = True

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_dates(self):
        _check_window(self.start_date, self.end_date)
        return self


class CampaignIn(BaseModel):
    name: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=10)
    campaign_type: CampaignType
    start_date: datetime
    end_date: datetime
    banner_image: Optional[str] = Field(default=None, max_length=500)
    discount_code: Optional[DiscountTerms] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_dates(self):
        _check_window(self.start_date, self.end_date)
        return self


class GenerateCodeIn(BaseModel):
    length: int = Field(default=8, ge=6, le=20)


class CartLineIn(BaseModel):
    product_id: int
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    category_id: Optional[int] = None


class ValidateCodeIn(BaseModel):
    seller_id: int
    code: str = Field(..., min_length=1, max_length=20)
    subtotal: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    product_ids: list[int] = Field(default_factory=list)
    category_ids: list[int] = Field(default_factory=list)
    items: list[CartLineIn] = Field(default_factory=list)
