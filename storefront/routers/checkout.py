# storefront/routers/checkout.py
import uuid

from fastapi import APIRouter, Depends
from sqlmodel import Session

from storefront.core.auth import get_cart_identity
from storefront.core.config import get_settings
from storefront.core.identity import CartIdentity
from storefront.database import get_session
from storefront.repositories.address_repo import AddressRepository
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.coupon_repo import CouponRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.checkout import CheckoutPreview, CheckoutRequest, ShippingQuote
from storefront.services.checkout_service import CheckoutService
from storefront.services.coupon_service import CouponService
from storefront.services.shipping_service import ShippingCalculator
from storefront.services.tax_service import TaxCalculator

router = APIRouter(prefix="/checkout", tags=["Checkout"])

settings = get_settings()

service = CheckoutService(
    cart_repo=CartRepository(),
    product_repo=ProductRepository(),
    address_repo=AddressRepository(),
    coupon_service=CouponService(CouponRepository()),
    shipping=ShippingCalculator.from_settings(settings),
    tax=TaxCalculator.from_settings(settings),
)


@router.post("/validate", response_model=CheckoutPreview)
def validate_checkout(
    payload: CheckoutRequest,
    session: Session = Depends(get_session),
    identity: CartIdentity = Depends(get_cart_identity),
):
    """
    Priced preview of the caller's cart ("review order" screen).

    Always 200: problems are listed in `errors` and `valid` is false.
    No side effects.
    """
    return service.validate(
        session,
        identity,
        payload.address_id,
        payload.coupon_code,
        payload.shipping_method,
    )


@router.get("/shipping", response_model=ShippingQuote)
def shipping_options(
    address_id: uuid.UUID,
    session: Session = Depends(get_session),
    identity: CartIdentity = Depends(get_cart_identity),
):
    """
    Standard and express shipping options for an address.
    """
    return service.shipping_options(session, identity, address_id)
