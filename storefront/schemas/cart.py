# storefront/schemas/cart.py
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import field_validator
from sqlmodel import SQLModel, Field


class CartItemCreate(SQLModel):
    """
    Payload for adding a product (and optional variant) to the cart.
    """

    product_id: uuid.UUID
    variant_id: uuid.UUID | None = None
    quantity: int = Field(default=1, gt=0)


class CartItemUpdate(SQLModel):
    """
    Payload for updating quantity of a cart item.
    """

    quantity: int = Field(gt=0)


class ApplyCouponRequest(SQLModel):
    code: str = Field(min_length=1, max_length=50)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("code cannot be empty")
        return v


class CartItemRead(SQLModel):
    """
    Read model for a single cart item, including line_total.
    """

    id: uuid.UUID
    product_id: uuid.UUID
    variant_id: uuid.UUID | None = None
    product_name: str | None = None
    image_url: str | None = None
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    created_at: datetime


class CartSummary(SQLModel):
    """
    Full cart response model with totals.

    total = max(0, subtotal - discount)
    """

    id: uuid.UUID
    is_guest: bool
    items: list[CartItemRead]
    total_quantity: int
    subtotal: Decimal
    coupon_code: str | None = None
    discount: Decimal
    total: Decimal
    expires_at: datetime | None = None


class CartCleanupResult(SQLModel):
    deleted: int
