# storefront/models/product.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlmodel import SQLModel, Field

PRODUCT_ACTIVE = "ACTIVE"


class Product(SQLModel, table=True):
    """
    Catalog entry, as far as checkout needs it.

    The catalog itself (categories, brands, search) lives elsewhere; this
    table only carries what the cart and order paths read: price, stock,
    status and the fields snapshotted into order items.
    """

    __tablename__ = "products"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    name: str = Field(
        max_length=255,
        index=True,
    )

    sku: str = Field(
        max_length=64,
        unique=True,
        index=True,
    )

    price: Decimal = Field(
        max_digits=12,
        decimal_places=2,
        description="Unit price in the reporting currency",
    )

    # May dip below zero only inside an order transaction that is about
    # to be rolled back.
    stock: int = Field(
        default=0,
        description="How many units currently in stock",
    )

    # ACTIVE | DRAFT | ARCHIVED
    status: str = Field(
        default=PRODUCT_ACTIVE,
        index=True,
    )

    image_url: str | None = Field(
        default=None,
        description="Representative image",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column_kwargs={"onupdate": lambda: datetime.now(timezone.utc)},
    )

    @property
    def is_purchasable(self) -> bool:
        return self.status == PRODUCT_ACTIVE
