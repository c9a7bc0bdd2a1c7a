# storefront/tasks/cart_cleanup.py
"""
Sweep expired guest carts.

Run from cron:

    python -m storefront.tasks.cart_cleanup
"""
import logging

from sqlmodel import Session

from storefront.core.config import get_settings
from storefront.database import engine
from storefront.models import user as _user_models  # noqa: F401
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.coupon_repo import CouponRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.services.cart_service import CartService
from storefront.services.coupon_service import CouponService

logger = logging.getLogger(__name__)

cart_service = CartService(
    CartRepository(),
    ProductRepository(),
    CouponService(CouponRepository()),
)


def cleanup_expired_guest_carts() -> int:
    logger.info("Guest cart cleanup started")
    with Session(engine) as session:
        deleted = cart_service.cleanup_expired_guest_carts(session)
    logger.info("Guest cart cleanup finished: %d cart(s) removed", deleted)
    return deleted


if __name__ == "__main__":
    logging.basicConfig(level=get_settings().LOG_LEVEL.upper())
    cleanup_expired_guest_carts()
