# storefront/services/coupon_service.py
import logging
from datetime import datetime
from decimal import Decimal

from fastapi import HTTPException, status
from sqlmodel import Session

from storefront.core.clock import as_utc, utcnow
from storefront.core.money import ZERO, to_money
from storefront.models.coupon import Coupon, DiscountType
from storefront.repositories.coupon_repo import CouponRepository
from storefront.schemas.coupon import CouponCreate, CouponValidation

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def compute_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """
    Discount for a coupon that already passed validation.

    Percentage coupons are capped by max_discount; every discount is
    capped by the subtotal so a total can never go negative.
    """
    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = subtotal * Decimal(coupon.value) / HUNDRED
        if coupon.max_discount is not None:
            discount = min(discount, Decimal(coupon.max_discount))
    else:
        discount = Decimal(coupon.value)

    discount = max(min(discount, subtotal), ZERO)
    return to_money(discount)


class CouponService:
    """
    Coupon validation and admin management.

    Validation checks, in order (first failure wins):
      1. exists (case-insensitive)
      2. is_active
      3. not expired
      4. already started
      5. usage_count < usage_limit
      6. subtotal >= min_order_amount

    Validation never touches usage_count; that happens only inside the
    order creation transaction.
    """

    def __init__(self, coupon_repo: CouponRepository):
        self.coupon_repo = coupon_repo

    def validate(
        self,
        session: Session,
        code: str,
        subtotal: Decimal,
        now: datetime | None = None,
    ) -> CouponValidation:
        now = now or utcnow()
        code = code.strip().upper()
        subtotal = to_money(subtotal)

        coupon = self.coupon_repo.get_by_code(session, code)
        error = self._first_failure(coupon, code, subtotal, now)
        if error is not None:
            return CouponValidation(code=code, discount=ZERO, errors=[error])

        return CouponValidation(
            code=coupon.code,
            discount=compute_discount(coupon, subtotal),
        )

    def _first_failure(
        self,
        coupon: Coupon | None,
        code: str,
        subtotal: Decimal,
        now: datetime,
    ) -> str | None:
        if coupon is None:
            return f"Coupon '{code}' not found"

        if not coupon.is_active:
            return f"Coupon '{coupon.code}' is not active"

        expires_at = as_utc(coupon.expires_at)
        if expires_at is not None and expires_at <= now:
            return f"Coupon '{coupon.code}' has expired"

        starts_at = as_utc(coupon.starts_at)
        if starts_at is not None and starts_at > now:
            return f"Coupon '{coupon.code}' is not valid yet"

        if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
            return f"Coupon '{coupon.code}' has reached its usage limit"

        if coupon.min_order_amount is not None and subtotal < coupon.min_order_amount:
            return (
                f"Coupon '{coupon.code}' requires a minimum order of "
                f"{to_money(coupon.min_order_amount)}"
            )

        return None

    # -------- Admin operations --------

    def create_coupon(self, session: Session, payload: CouponCreate) -> Coupon:
        if self.coupon_repo.get_by_code(session, payload.code):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Coupon '{payload.code}' already exists",
            )

        coupon = Coupon(**payload.model_dump())
        coupon = self.coupon_repo.create(session, coupon)
        logger.info("Coupon %s created (%s %s)", coupon.code, coupon.discount_type.value, coupon.value)
        return coupon

    def list_coupons(self, session: Session, skip: int = 0, limit: int = 50) -> list[Coupon]:
        return self.coupon_repo.list(session, skip, limit)
