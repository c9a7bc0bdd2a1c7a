# storefront/models/coupon.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlmodel import SQLModel, Field


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class Coupon(SQLModel, table=True):
    """
    Named discount rule.

    Codes are stored upper-case and matched case-insensitively.
    usage_count only moves inside the order creation transaction.
    """

    __tablename__ = "coupons"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    code: str = Field(
        max_length=50,
        unique=True,
        index=True,
    )
    description: str | None = None

    discount_type: DiscountType = Field(default=DiscountType.PERCENTAGE)
    value: Decimal = Field(max_digits=12, decimal_places=2)

    min_order_amount: Decimal | None = Field(
        default=None, max_digits=12, decimal_places=2
    )
    max_discount: Decimal | None = Field(
        default=None, max_digits=12, decimal_places=2
    )

    starts_at: datetime | None = None
    expires_at: datetime | None = None

    usage_limit: int | None = None
    usage_count: int = Field(default=0)

    is_active: bool = Field(default=True, index=True)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column_kwargs={"onupdate": lambda: datetime.now(timezone.utc)},
    )
