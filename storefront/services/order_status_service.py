# storefront/services/order_status_service.py
import logging
import uuid
from datetime import datetime

from fastapi import HTTPException, status
from sqlmodel import Session

from storefront.core.clock import utcnow
from storefront.core.errors import InvalidTransition
from storefront.models.order import (
    Order,
    OrderStatus,
    OrderStatusHistory,
    PaymentMethod,
    PaymentStatus,
)
from storefront.models.payment import PaymentRecordStatus
from storefront.repositories.order_repo import OrderRepository
from storefront.repositories.payment_repo import PaymentRepository
from storefront.repositories.product_repo import ProductRepository

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {
        OrderStatus.CONFIRMED,
        OrderStatus.CANCELLED,
        OrderStatus.PAYMENT_FAILED,
    },
    OrderStatus.PAYMENT_FAILED: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {
        OrderStatus.PROCESSING,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
    },
    OrderStatus.PROCESSING: {
        OrderStatus.SHIPPED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
    },
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.REFUNDED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: {OrderStatus.REFUNDED},
    OrderStatus.REFUNDED: set(),
}

# Recorded on first entry only
STATUS_TIMESTAMPS: dict[OrderStatus, str] = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
    OrderStatus.REFUNDED: "refunded_at",
}

# Goods have left the warehouse (or stock was already given back)
NO_RESTOCK_ON_REFUND = {
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
}


class OrderStatusService:
    """
    Order lifecycle state machine.

        PENDING -> CONFIRMED -> PROCESSING -> SHIPPED -> DELIVERED
        PENDING -> PAYMENT_FAILED -> CONFIRMED | CANCELLED
        PENDING | CONFIRMED | PROCESSING -> CANCELLED
        anything paid (but not yet refunded) -> REFUNDED

    Side effects:
      - CANCELLED gives the ordered quantities back to stock
      - REFUNDED requires payment_status PAID, marks the completed payment
        REFUNDED, and gives stock back unless the order shipped or was
        already cancelled
      - DELIVERED settles a cash-on-delivery payment (PAID)
      - every transition appends an OrderStatusHistory row
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        product_repo: ProductRepository,
        payment_repo: PaymentRepository,
    ):
        self.order_repo = order_repo
        self.product_repo = product_repo
        self.payment_repo = payment_repo

    def can_transition(self, current: OrderStatus, new: OrderStatus) -> bool:
        return new in ALLOWED_TRANSITIONS.get(current, set())

    def apply(
        self,
        session: Session,
        order: Order,
        new_status: OrderStatus,
        note: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """
        Move `order` to `new_status` inside the caller's transaction.

        Returns False (and does nothing) when the order is already in the
        requested state. Does not commit.
        """
        current = OrderStatus(order.status)
        new_status = OrderStatus(new_status)
        now = now or utcnow()

        if current == new_status:
            return False

        if not self.can_transition(current, new_status):
            raise InvalidTransition(current.value, new_status.value)

        if new_status == OrderStatus.REFUNDED:
            if order.payment_status != PaymentStatus.PAID:
                raise InvalidTransition(
                    current.value,
                    new_status.value,
                    reason="order has no completed payment to refund",
                )
            self._reverse_payment(session, order)
            if current not in NO_RESTOCK_ON_REFUND:
                self._restore_stock(session, order)

        if new_status == OrderStatus.CANCELLED:
            self._restore_stock(session, order)

        if new_status == OrderStatus.DELIVERED and order.payment_method == PaymentMethod.COD:
            self._collect_cash(session, order)

        timestamp_field = STATUS_TIMESTAMPS.get(new_status)
        if timestamp_field and getattr(order, timestamp_field) is None:
            setattr(order, timestamp_field, now)

        order.status = new_status
        self.order_repo.update_order(session, order)
        self.order_repo.add_history(
            session,
            OrderStatusHistory(
                order_id=order.id,
                from_status=current,
                to_status=new_status,
                note=note,
            ),
        )

        logger.info(
            "Order %s: %s -> %s%s",
            order.order_number,
            current.value,
            new_status.value,
            f" ({note})" if note else "",
        )
        return True

    def transition(
        self,
        session: Session,
        order_id: uuid.UUID,
        new_status: OrderStatus,
        note: str | None = None,
    ) -> Order:
        """
        Administrative transition: look up, apply, commit.
        """
        order = self.order_repo.get_by_id(session, order_id)
        if not order:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Order not found",
            )

        try:
            changed = self.apply(session, order, new_status, note)
        except Exception:
            session.rollback()
            raise

        if changed:
            session.commit()
            session.refresh(order)
        return order

    # ---- side effects ----

    def _restore_stock(self, session: Session, order: Order) -> None:
        for item in self.order_repo.list_items_for_order(session, order.id):
            self.product_repo.increment_stock(session, item.product_id, item.quantity)
        logger.info("Order %s: stock restored", order.order_number)

    def _reverse_payment(self, session: Session, order: Order) -> None:
        for payment in self.payment_repo.list_completed_for_order(session, order.id):
            payment.status = PaymentRecordStatus.REFUNDED
            self.payment_repo.save(session, payment)
        order.payment_status = PaymentStatus.REFUNDED

    def _collect_cash(self, session: Session, order: Order) -> None:
        """
        Cash on delivery is settled when the parcel is handed over.
        """
        if order.payment_status != PaymentStatus.PENDING:
            return
        for payment in self.payment_repo.list_for_order(session, order.id):
            if payment.status == PaymentRecordStatus.PENDING:
                payment.status = PaymentRecordStatus.COMPLETED
                self.payment_repo.save(session, payment)
        order.payment_status = PaymentStatus.PAID
