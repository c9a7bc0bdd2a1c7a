# storefront/models/cart.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import CheckConstraint
from sqlmodel import SQLModel, Field

from storefront.core.identity import CartIdentity, GuestIdentity, UserIdentity


class Cart(SQLModel, table=True):
    """
    Shopping cart for a user or for an anonymous session.

    Exactly one of user_id / session_token is set (CHECK constraint), and
    each is unique, so an identity has at most one cart.
    """

    __tablename__ = "carts"
    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) <> (session_token IS NULL)",
            name="ck_carts_single_identity",
        ),
    )

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    user_id: uuid.UUID | None = Field(
        default=None,
        foreign_key="users.id",
        unique=True,
        index=True,
    )
    session_token: str | None = Field(
        default=None,
        unique=True,
        index=True,
    )

    coupon_code: str | None = None
    discount: Decimal = Field(
        default=Decimal("0.00"),
        max_digits=12,
        decimal_places=2,
    )

    # Guest carts only; user carts never expire.
    expires_at: datetime | None = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column_kwargs={"onupdate": lambda: datetime.now(timezone.utc)},
    )

    @property
    def identity(self) -> CartIdentity:
        if self.user_id is not None:
            return UserIdentity(user_id=self.user_id)
        return GuestIdentity(session_token=self.session_token)

    @property
    def is_guest(self) -> bool:
        return self.user_id is None


class CartItem(SQLModel, table=True):
    """
    Line inside a cart. The unit price is captured when the line is added.
    """

    __tablename__ = "cart_items"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    cart_id: uuid.UUID = Field(
        foreign_key="carts.id",
        ondelete="CASCADE",
        index=True,
    )

    product_id: uuid.UUID = Field(
        foreign_key="products.id",
        index=True,
    )
    variant_id: uuid.UUID | None = None

    quantity: int = Field(
        gt=0,
        description="Must be >= 1",
    )

    unit_price: Decimal = Field(
        max_digits=12,
        decimal_places=2,
        description="Price when added to cart",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column_kwargs={"onupdate": lambda: datetime.now(timezone.utc)},
    )
