# storefront/schemas/checkout.py
import uuid
from decimal import Decimal
from typing import Literal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel

ShippingMethod = Literal["standard", "express"]


class CheckoutRequest(SQLModel):
    """
    Payload for a checkout preview ("review order" screen).

    coupon_code falls back to the code applied on the cart when omitted.
    """

    model_config = ConfigDict(extra="forbid")

    address_id: uuid.UUID
    coupon_code: str | None = None
    shipping_method: ShippingMethod = "standard"

    @field_validator("coupon_code")
    @classmethod
    def normalize_coupon(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip().upper()
        return v or None


class CheckoutLine(SQLModel):
    """
    One cart line re-priced against the live product.
    """

    cart_item_id: uuid.UUID
    product_id: uuid.UUID
    variant_id: uuid.UUID | None = None
    product_name: str | None = None
    sku: str | None = None
    image_url: str | None = None
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    available_stock: int


class CheckoutPreview(SQLModel):
    items: list[CheckoutLine]
    subtotal: Decimal
    discount: Decimal
    coupon_code: str | None = None
    shipping_zone: str | None = None
    shipping_method: ShippingMethod
    shipping_cost: Decimal
    tax: Decimal
    tax_label: str
    tax_included: bool
    total: Decimal
    currency: str
    valid: bool
    errors: list[str]


class ShippingOption(SQLModel):
    method: ShippingMethod
    cost: Decimal
    estimate: str
    is_free: bool


class ShippingQuote(SQLModel):
    zone: str
    options: list[ShippingOption]
