# storefront/routers/cart.py
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session

from storefront.core.auth import (
    get_cart_identity,
    get_session_token,
    require_admin,
    require_auth,
)
from storefront.core.identity import CartIdentity
from storefront.database import get_session
from storefront.models.user import User
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.coupon_repo import CouponRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.cart import (
    ApplyCouponRequest,
    CartCleanupResult,
    CartItemCreate,
    CartItemUpdate,
    CartSummary,
)
from storefront.services.cart_service import CartService
from storefront.services.coupon_service import CouponService

router = APIRouter(prefix="/cart", tags=["Cart"])

cart_repo = CartRepository()
product_repo = ProductRepository()
coupon_service = CouponService(CouponRepository())
service = CartService(cart_repo, product_repo, coupon_service)


@router.get("", response_model=CartSummary)
def get_my_cart(
    session: Session = Depends(get_session),
    identity: CartIdentity = Depends(get_cart_identity),
):
    """
    Get the caller's cart summary (created on first access).

    Auth:
      - bearer token => user cart
      - X-Session-Token => guest cart
    """
    return service.get_cart_summary(session, identity)


@router.post("/items", response_model=CartSummary)
def add_to_cart(
    payload: CartItemCreate,
    session: Session = Depends(get_session),
    identity: CartIdentity = Depends(get_cart_identity),
):
    """
    Add product to the caller's cart.

    Returns the updated cart summary.
    """
    return service.add_item(session, identity, payload)


@router.patch("/items/{item_id}", response_model=CartSummary)
def update_cart_item(
    item_id: uuid.UUID,
    payload: CartItemUpdate,
    session: Session = Depends(get_session),
    identity: CartIdentity = Depends(get_cart_identity),
):
    return service.update_quantity(
        session=session,
        identity=identity,
        item_id=item_id,
        payload=payload,
    )


@router.delete("/items/{item_id}", response_model=CartSummary)
def remove_cart_item(
    item_id: uuid.UUID,
    session: Session = Depends(get_session),
    identity: CartIdentity = Depends(get_cart_identity),
):
    return service.remove_item(session, identity, item_id)


@router.delete("", response_model=CartSummary)
def clear_cart(
    session: Session = Depends(get_session),
    identity: CartIdentity = Depends(get_cart_identity),
):
    """
    Clear the entire cart (items and coupon).
    """
    return service.clear(session, identity)


@router.post("/coupon", response_model=CartSummary)
def apply_coupon(
    payload: ApplyCouponRequest,
    session: Session = Depends(get_session),
    identity: CartIdentity = Depends(get_cart_identity),
):
    """
    Apply a coupon; 400 with the reason when it does not validate.
    """
    return service.apply_coupon(session, identity, payload.code)


@router.delete("/coupon", response_model=CartSummary)
def remove_coupon(
    session: Session = Depends(get_session),
    identity: CartIdentity = Depends(get_cart_identity),
):
    return service.remove_coupon(session, identity)


@router.post("/merge", response_model=CartSummary)
def merge_guest_cart(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    session_token: str | None = Depends(get_session_token),
):
    """
    Fold the guest cart identified by X-Session-Token into the
    authenticated user's cart. Call right after login.
    """
    if session_token is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Session-Token header required",
        )
    return service.merge_guest_into_user(session, session_token, current_user.id)


@router.post("/cleanup", response_model=CartCleanupResult)
def cleanup_guest_carts(
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """
    Delete expired guest carts (admin only).
    """
    return CartCleanupResult(deleted=service.cleanup_expired_guest_carts(session))
