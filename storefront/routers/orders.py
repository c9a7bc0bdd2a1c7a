# storefront/routers/orders.py
import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from storefront.core.auth import get_cart_identity, require_admin, require_auth
from storefront.core.config import get_settings
from storefront.core.identity import CartIdentity
from storefront.database import get_session
from storefront.models.order import OrderStatus
from storefront.models.user import User
from storefront.repositories.address_repo import AddressRepository
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.coupon_repo import CouponRepository
from storefront.repositories.order_repo import OrderRepository
from storefront.repositories.payment_repo import PaymentRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.order import (
    OrderCancelRequest,
    OrderCreate,
    OrderRead,
    OrderStatusUpdate,
    OrderWithItemsRead,
)
from storefront.services.checkout_service import CheckoutService
from storefront.services.coupon_service import CouponService
from storefront.services.order_number import OrderNumberGenerator
from storefront.services.order_service import OrderService
from storefront.services.order_status_service import OrderStatusService
from storefront.services.shipping_service import ShippingCalculator
from storefront.services.tax_service import TaxCalculator

router = APIRouter(prefix="/orders", tags=["Orders"])

settings = get_settings()

order_repo = OrderRepository()
cart_repo = CartRepository()
product_repo = ProductRepository()
coupon_repo = CouponRepository()
payment_repo = PaymentRepository()

checkout_service = CheckoutService(
    cart_repo=cart_repo,
    product_repo=product_repo,
    address_repo=AddressRepository(),
    coupon_service=CouponService(coupon_repo),
    shipping=ShippingCalculator.from_settings(settings),
    tax=TaxCalculator.from_settings(settings),
)
status_service = OrderStatusService(order_repo, product_repo, payment_repo)
service = OrderService(
    order_repo=order_repo,
    cart_repo=cart_repo,
    product_repo=product_repo,
    coupon_repo=coupon_repo,
    payment_repo=payment_repo,
    checkout_service=checkout_service,
    number_generator=OrderNumberGenerator(order_repo, settings.ORDER_NUMBER_TIMEZONE),
    status_service=status_service,
)


# -------- Customer endpoints --------


@router.post(
    "",
    response_model=OrderWithItemsRead,
    status_code=status.HTTP_201_CREATED,
)
def create_order(
    payload: OrderCreate,
    session: Session = Depends(get_session),
    identity: CartIdentity = Depends(get_cart_identity),
):
    """
    Create an order from the caller's cart (user or guest).

    Errors:
      - 400 ValidationFailed with every problem found
      - 409 when the checkout lost a race and should be retried
    """
    return service.create_order(session, identity, payload)


@router.get(
    "/me",
    response_model=list[OrderRead],
)
def list_my_orders(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    skip: int = 0,
    limit: int = 50,
):
    """
    List the authenticated user's orders (without items).
    """
    return service.list_user_orders(session, current_user.id, skip, limit)


@router.get(
    "/me/{order_number}",
    response_model=OrderWithItemsRead,
)
def get_my_order(
    order_number: str,
    session: Session = Depends(get_session),
    identity: CartIdentity = Depends(get_cart_identity),
):
    """
    Get a single order (with items) placed by the caller.
    """
    return service.get_user_order(session, identity, order_number)


@router.post(
    "/me/{order_number}/cancel",
    response_model=OrderWithItemsRead,
)
def cancel_my_order(
    order_number: str,
    payload: OrderCancelRequest | None = None,
    session: Session = Depends(get_session),
    identity: CartIdentity = Depends(get_cart_identity),
):
    note = payload.note if payload else None
    return service.cancel_own_order(session, identity, order_number, note)


# -------- Admin endpoints --------


@router.get(
    "",
    response_model=list[OrderRead],
)
def list_all_orders(
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
    skip: int = 0,
    limit: int = 50,
    status_filter: OrderStatus | None = Query(default=None, alias="status"),
):
    """
    List all orders (admin only), optionally filtered by status.
    """
    return service.list_all_orders(session, skip, limit, status_filter)


@router.get(
    "/{order_id}",
    response_model=OrderWithItemsRead,
)
def get_order_admin(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    return service.get_order_admin(session, order_id)


@router.patch(
    "/{order_id}/status",
    response_model=OrderWithItemsRead,
)
def update_order_status(
    order_id: uuid.UUID,
    payload: OrderStatusUpdate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """
    Admin-only status transition through the order state machine.

    Illegal transitions => 400 InvalidTransition.
    """
    return service.update_status(session, order_id, payload)
