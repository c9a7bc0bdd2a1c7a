# storefront/repositories/coupon_repo.py
from sqlalchemy import func, or_, update
from sqlmodel import Session, select

from storefront.models.coupon import Coupon


class CouponRepository:

    def get_by_code(self, session: Session, code: str) -> Coupon | None:
        stmt = select(Coupon).where(func.upper(Coupon.code) == code.strip().upper())
        return session.exec(stmt).first()

    def list(self, session: Session, skip: int = 0, limit: int = 50) -> list[Coupon]:
        stmt = select(Coupon).order_by(Coupon.created_at.desc()).offset(skip).limit(limit)
        return list(session.exec(stmt).all())

    def create(self, session: Session, coupon: Coupon) -> Coupon:
        session.add(coupon)
        session.commit()
        session.refresh(coupon)
        return coupon

    def increment_usage(self, session: Session, code: str) -> bool:
        """
        Conditional usage_count + 1 (only while below usage_limit).

        Flushes without committing; runs inside the order transaction.
        Returns False when no row was updated, i.e. the limit is reached.
        """
        stmt = (
            update(Coupon)
            .where(
                func.upper(Coupon.code) == code.strip().upper(),
                or_(
                    Coupon.usage_limit.is_(None),
                    Coupon.usage_count < Coupon.usage_limit,
                ),
            )
            .values(usage_count=Coupon.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        result = session.exec(stmt)
        coupon = self.get_by_code(session, code)
        if coupon is not None:
            session.refresh(coupon, attribute_names=["usage_count"])
        return result.rowcount == 1
