"""Pytest fixtures for storefront tests."""

import os
import uuid
from decimal import Decimal

# Settings are read at import time; point them at an in-memory database.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["WEBHOOK_SECRET"] = "test-webhook-secret"

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlmodel import Session, SQLModel

from storefront.core.identity import GuestIdentity, UserIdentity
from storefront.database import engine, get_session
from storefront.main import app
from storefront.models.address import Address
from storefront.models.coupon import Coupon, DiscountType
from storefront.models.order import PaymentMethod
from storefront.models.product import Product
from storefront.models.user import User
from storefront.routers.cart import service as cart_service
from storefront.routers.orders import service as order_service
from storefront.schemas.cart import CartItemCreate
from storefront.schemas.order import OrderCreate

WEBHOOK_SECRET = "test-webhook-secret"


@pytest.fixture
def session():
    """Fresh schema per test on the shared in-memory engine."""
    SQLModel.metadata.create_all(engine)
    with Session(engine) as s:
        yield s
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def client(session):
    """Test client whose requests share the test session."""
    app.dependency_overrides[get_session] = lambda: session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session):
    def _make(role: str = "user", email: str | None = None) -> User:
        user_id = uuid.uuid4()
        user = User(
            id=user_id,
            email=email or f"{user_id.hex[:8]}@example.com",
            name="Test User",
            role=role,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(role="admin")


def auth_headers(user: User) -> dict[str, str]:
    token = jwt.encode(
        {"sub": str(user.id), "email": user.email},
        os.environ["JWT_SECRET"],
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_identity(user):
    return UserIdentity(user_id=user.id)


@pytest.fixture
def guest_identity():
    return GuestIdentity(session_token=f"guest-{uuid.uuid4().hex}")


@pytest.fixture
def make_product(session):
    def _make(
        name: str = "Jamdani Saree",
        price: str = "2500.00",
        stock: int = 10,
        status: str = "ACTIVE",
    ) -> Product:
        product = Product(
            name=name,
            sku=f"SKU-{uuid.uuid4().hex[:8].upper()}",
            price=Decimal(price),
            stock=stock,
            status=status,
            image_url=f"https://cdn.example.com/{name.lower().replace(' ', '-')}.jpg",
        )
        session.add(product)
        session.commit()
        session.refresh(product)
        return product

    return _make


@pytest.fixture
def make_address(session):
    def _make(identity, district: str = "Dhaka") -> Address:
        address = Address(
            user_id=getattr(identity, "user_id", None),
            session_token=getattr(identity, "session_token", None),
            full_name="Rahim Uddin",
            phone="01700000000",
            address_line1="House 12, Road 5",
            district=district,
            division="Dhaka" if district == "Dhaka" else "Chattogram",
            postal_code="1205",
        )
        session.add(address)
        session.commit()
        session.refresh(address)
        return address

    return _make


@pytest.fixture
def make_coupon(session):
    def _make(
        code: str = "SAVE20",
        discount_type: DiscountType = DiscountType.PERCENTAGE,
        value: str = "20",
        **kwargs,
    ) -> Coupon:
        coupon = Coupon(
            code=code,
            discount_type=discount_type,
            value=Decimal(value),
            **kwargs,
        )
        session.add(coupon)
        session.commit()
        session.refresh(coupon)
        return coupon

    return _make


@pytest.fixture
def fill_cart(session):
    def _fill(identity, *lines: tuple[Product, int]):
        summary = None
        for product, quantity in lines:
            summary = cart_service.add_item(
                session,
                identity,
                CartItemCreate(product_id=product.id, quantity=quantity),
            )
        return summary

    return _fill


@pytest.fixture
def place_order(session, make_product, make_address, fill_cart):
    """Put one product in the cart and check out."""

    def _place(
        identity,
        payment_method: PaymentMethod = PaymentMethod.COD,
        quantity: int = 2,
        product: Product | None = None,
    ):
        product = product or make_product()
        address = make_address(identity)
        fill_cart(identity, (product, quantity))
        return order_service.create_order(
            session,
            identity,
            OrderCreate(address_id=address.id, payment_method=payment_method),
        )

    return _place
