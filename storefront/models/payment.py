# storefront/models/payment.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlmodel import SQLModel, Field

from storefront.models.order import PaymentMethod


class PaymentRecordStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class Payment(SQLModel, table=True):
    """
    Payment attempt/result for one order.

    external_payment_id is unique: a redelivered provider event can never
    produce a second row.
    """

    __tablename__ = "payments"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_id: uuid.UUID = Field(
        foreign_key="orders.id",
        index=True,
    )

    method: PaymentMethod
    amount: Decimal = Field(max_digits=12, decimal_places=2)
    currency: str = Field(default="BDT", max_length=3)

    # Provider reference; NULL for cash on delivery
    external_payment_id: str | None = Field(
        default=None,
        unique=True,
        index=True,
    )

    status: PaymentRecordStatus = Field(default=PaymentRecordStatus.PENDING)
    failure_reason: str | None = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column_kwargs={"onupdate": lambda: datetime.now(timezone.utc)},
    )
