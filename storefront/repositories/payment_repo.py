# storefront/repositories/payment_repo.py
import uuid

from sqlmodel import Session, select

from storefront.models.payment import Payment, PaymentRecordStatus


class PaymentRepository:
    """
    Data access for payment rows. Flush only; the webhook processor and
    the order transaction commit.
    """

    def get_by_external_id(self, session: Session, external_payment_id: str) -> Payment | None:
        stmt = select(Payment).where(Payment.external_payment_id == external_payment_id)
        return session.exec(stmt).first()

    def list_for_order(self, session: Session, order_id: uuid.UUID) -> list[Payment]:
        stmt = (
            select(Payment)
            .where(Payment.order_id == order_id)
            .order_by(Payment.created_at)
        )
        return list(session.exec(stmt).all())

    def list_completed_for_order(self, session: Session, order_id: uuid.UUID) -> list[Payment]:
        stmt = select(Payment).where(
            Payment.order_id == order_id,
            Payment.status == PaymentRecordStatus.COMPLETED,
        )
        return list(session.exec(stmt).all())

    def save(self, session: Session, payment: Payment) -> Payment:
        session.add(payment)
        session.flush()
        return payment
