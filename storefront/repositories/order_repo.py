# storefront/repositories/order_repo.py
import uuid
from datetime import datetime

from sqlalchemy import func
from sqlmodel import Session, select

from storefront.models.order import Order, OrderItem, OrderStatusHistory


class OrderRepository:
    """
    Data access layer for orders, order_items and their status history.

    NOTE:
      - No commits here; order creation and status transitions are
        multi-step transactions. The service calls session.commit().
    """

    # ---- Orders ----

    def list_for_user(
        self,
        session: Session,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Order]:
        stmt = (
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(session.exec(stmt).all())

    def list_all(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        status: str | None = None,
    ) -> list[Order]:
        stmt = select(Order)
        if status is not None:
            stmt = stmt.where(Order.status == status)
        stmt = stmt.order_by(Order.created_at.desc()).offset(skip).limit(limit)
        return list(session.exec(stmt).all())

    def get_by_id(self, session: Session, order_id: uuid.UUID) -> Order | None:
        return session.get(Order, order_id)

    def get_by_number(self, session: Session, order_number: str) -> Order | None:
        stmt = select(Order).where(Order.order_number == order_number)
        return session.exec(stmt).first()

    def count_created_between(
        self,
        session: Session,
        start: datetime,
        end: datetime,
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(Order)
            .where(Order.created_at >= start, Order.created_at < end)
        )
        value = session.exec(stmt).one()
        return int(value or 0)

    def create_order(self, session: Session, order: Order) -> Order:
        """
        Insert an Order without committing, but ensure the row is flushed
        (unique order_number is checked here).
        """
        session.add(order)
        session.flush()
        return order

    def update_order(self, session: Session, order: Order) -> Order:
        session.add(order)
        session.flush()
        return order

    # ---- Order items ----

    def list_items_for_order(
        self,
        session: Session,
        order_id: uuid.UUID,
    ) -> list[OrderItem]:
        stmt = (
            select(OrderItem)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.created_at)
        )
        return list(session.exec(stmt).all())

    def create_items(
        self,
        session: Session,
        items: list[OrderItem],
    ) -> list[OrderItem]:
        session.add_all(items)
        session.flush()
        return items

    # ---- Status history ----

    def add_history(self, session: Session, entry: OrderStatusHistory) -> OrderStatusHistory:
        session.add(entry)
        session.flush()
        return entry

    def list_history(
        self,
        session: Session,
        order_id: uuid.UUID,
    ) -> list[OrderStatusHistory]:
        stmt = (
            select(OrderStatusHistory)
            .where(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.created_at)
        )
        return list(session.exec(stmt).all())
