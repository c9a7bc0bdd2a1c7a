# storefront/routers/coupons.py
from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from storefront.core.auth import require_admin
from storefront.database import get_session
from storefront.models.user import User
from storefront.repositories.coupon_repo import CouponRepository
from storefront.schemas.coupon import CouponCreate, CouponRead
from storefront.services.coupon_service import CouponService

router = APIRouter(prefix="/coupons", tags=["Coupons"])

repo = CouponRepository()
service = CouponService(repo)


@router.get("", response_model=list[CouponRead])
def list_coupons(
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
    skip: int = 0,
    limit: int = 50,
):
    return service.list_coupons(session, skip, limit)


@router.post("", response_model=CouponRead, status_code=status.HTTP_201_CREATED)
def create_coupon(
    payload: CouponCreate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """
    Create a coupon (admin only). Duplicate code => 409.
    """
    return service.create_coupon(session, payload)
