# storefront/schemas/coupon.py
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import ConfigDict, field_validator, model_validator
from sqlmodel import SQLModel, Field

from storefront.models.coupon import DiscountType


class CouponCreate(SQLModel):
    """
    Admin payload for a new coupon. Codes are stored upper-case.
    """

    model_config = ConfigDict(extra="forbid")

    code: str = Field(min_length=1, max_length=50)
    description: str | None = None
    discount_type: DiscountType = DiscountType.PERCENTAGE
    value: Decimal = Field(gt=0)
    min_order_amount: Decimal | None = Field(default=None, ge=0)
    max_discount: Decimal | None = Field(default=None, gt=0)
    starts_at: datetime | None = None
    expires_at: datetime | None = None
    usage_limit: int | None = Field(default=None, gt=0)
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("code cannot be empty")
        return v

    @model_validator(mode="after")
    def check_rules(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.value > 100:
            raise ValueError("percentage value cannot exceed 100")
        if self.starts_at and self.expires_at and self.expires_at <= self.starts_at:
            raise ValueError("expires_at must be after starts_at")
        return self


class CouponRead(SQLModel):
    id: uuid.UUID
    code: str
    description: str | None
    discount_type: DiscountType
    value: Decimal
    min_order_amount: Decimal | None
    max_discount: Decimal | None
    starts_at: datetime | None
    expires_at: datetime | None
    usage_limit: int | None
    usage_count: int
    is_active: bool
    created_at: datetime


class CouponValidation(SQLModel):
    """
    Outcome of validating a coupon against a subtotal.

    A failed check carries exactly one reason and a zero discount.
    """

    code: str
    discount: Decimal
    errors: list[str] = []

    @property
    def valid(self) -> bool:
        return not self.errors
