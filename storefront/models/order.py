# storefront/models/order.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlmodel import SQLModel, Field


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    COD = "COD"
    CARD = "CARD"
    BKASH = "BKASH"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"                    # cash on delivery, collected later
    AWAITING_PAYMENT = "AWAITING_PAYMENT"  # waiting for the gateway webhook
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class Order(SQLModel, table=True):
    """
    Durable record of a completed checkout.

    Money fields are fixed at creation; only status fields and the
    per-state timestamps change afterwards, through the status machine.
    Orders are never deleted.
    """

    __tablename__ = "orders"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    # ORD-YYYYMMDD-NNNN
    order_number: str = Field(
        max_length=32,
        unique=True,
        index=True,
    )

    user_id: uuid.UUID | None = Field(
        default=None,
        foreign_key="users.id",
        index=True,
    )

    # Guest orders: the session token that placed them, plus a contact
    # snapshot (user_id is NULL)
    session_token: str | None = Field(default=None, index=True)
    guest_full_name: str | None = None
    guest_email: str | None = Field(default=None, index=True)
    guest_phone: str | None = None

    status: OrderStatus = Field(
        default=OrderStatus.PENDING,
        index=True,
    )
    payment_method: PaymentMethod
    payment_status: PaymentStatus

    subtotal: Decimal = Field(max_digits=12, decimal_places=2)
    discount: Decimal = Field(default=Decimal("0.00"), max_digits=12, decimal_places=2)
    shipping_cost: Decimal = Field(max_digits=12, decimal_places=2)
    tax: Decimal = Field(max_digits=12, decimal_places=2)
    total: Decimal = Field(max_digits=12, decimal_places=2)
    currency: str = Field(default="BDT", max_length=3)

    shipping_method: str = Field(default="standard")

    # Shipping address snapshot
    shipping_full_name: str
    shipping_phone: str
    shipping_address_line1: str
    shipping_address_line2: str | None = None
    shipping_district: str
    shipping_division: str
    shipping_postal_code: str | None = None

    coupon_code: str | None = None
    note: str | None = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column_kwargs={"onupdate": lambda: datetime.now(timezone.utc)},
    )

    # Set on first entry into the state only
    confirmed_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    refunded_at: datetime | None = None


class OrderItem(SQLModel, table=True):
    """
    Snapshot of a cart line at order time. Never recomputed from the live
    product.
    """

    __tablename__ = "order_items"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_id: uuid.UUID = Field(
        foreign_key="orders.id",
        index=True,
    )

    product_id: uuid.UUID = Field(
        foreign_key="products.id",
        index=True,
    )
    variant_id: uuid.UUID | None = None

    product_name: str
    sku: str
    image_url: str | None = None

    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(max_digits=12, decimal_places=2)
    line_total: Decimal = Field(max_digits=12, decimal_places=2)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column_kwargs={"onupdate": lambda: datetime.now(timezone.utc)},
    )


class OrderStatusHistory(SQLModel, table=True):
    """
    One row per lifecycle transition, with the optional free-text note.
    """

    __tablename__ = "order_status_history"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_id: uuid.UUID = Field(
        foreign_key="orders.id",
        index=True,
    )

    from_status: OrderStatus | None = None
    to_status: OrderStatus
    note: str | None = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column_kwargs={"onupdate": lambda: datetime.now(timezone.utc)},
    )
