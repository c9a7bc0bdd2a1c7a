# storefront/schemas/order.py
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import ConfigDict, EmailStr, field_validator
from sqlmodel import SQLModel, Field

from storefront.models.order import OrderStatus, PaymentMethod, PaymentStatus
from storefront.schemas.checkout import ShippingMethod


class OrderCreate(SQLModel):
    """
    Payload for creating an order from the current cart.

    Caller provides:
      - address_id (must belong to the caller)
      - payment_method (COD | CARD | BKASH)
      - coupon_code (optional, falls back to the cart's coupon)
      - shipping_method (standard | express)
      - guest_email (guests only, optional)
      - note (optional)

    Backend derives:
      - order number, status = PENDING, payment status from method
      - price breakdown from live products
      - items from cart
    """

    model_config = ConfigDict(extra="forbid")

    address_id: uuid.UUID
    payment_method: PaymentMethod
    coupon_code: str | None = None
    shipping_method: ShippingMethod = "standard"
    guest_email: EmailStr | None = None
    note: str | None = Field(default=None, max_length=500)

    @field_validator("coupon_code")
    @classmethod
    def normalize_coupon(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip().upper()
        return v or None

    @field_validator("note", mode="before")
    @classmethod
    def normalize_note(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class OrderRead(SQLModel):
    """
    Lightweight representation of an order (without items).
    """

    id: uuid.UUID
    order_number: str
    user_id: uuid.UUID | None
    guest_full_name: str | None = None
    guest_email: str | None = None
    guest_phone: str | None = None
    status: OrderStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    subtotal: Decimal
    discount: Decimal
    shipping_cost: Decimal
    tax: Decimal
    total: Decimal
    currency: str
    shipping_method: str
    shipping_full_name: str
    shipping_phone: str
    shipping_address_line1: str
    shipping_address_line2: str | None = None
    shipping_district: str
    shipping_division: str
    shipping_postal_code: str | None = None
    coupon_code: str | None = None
    note: str | None = None
    created_at: datetime
    confirmed_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    refunded_at: datetime | None = None


class OrderItemRead(SQLModel):
    """
    Representation of a single order line item.
    """

    id: uuid.UUID
    order_id: uuid.UUID
    product_id: uuid.UUID
    variant_id: uuid.UUID | None = None
    product_name: str
    sku: str
    image_url: str | None = None
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class OrderStatusHistoryRead(SQLModel):
    from_status: OrderStatus | None
    to_status: OrderStatus
    note: str | None
    created_at: datetime


class OrderWithItemsRead(OrderRead):
    """
    Full order view including items and status history.
    """

    items: list[OrderItemRead]
    history: list[OrderStatusHistoryRead] = []


class OrderStatusUpdate(SQLModel):
    """
    Admin payload to change order status.
    """

    model_config = ConfigDict(extra="forbid")

    status: OrderStatus
    note: str | None = Field(default=None, max_length=500)


class OrderCancelRequest(SQLModel):
    model_config = ConfigDict(extra="forbid")

    note: str | None = Field(default=None, max_length=500)
