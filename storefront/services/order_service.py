# storefront/services/order_service.py
import logging
import uuid

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

from storefront.core.clock import utcnow
from storefront.core.config import get_settings
from storefront.core.errors import (
    InvalidTransition,
    OrderNumberConflict,
    StockRaceLost,
    ValidationFailed,
)
from storefront.core.identity import CartIdentity, GuestIdentity, UserIdentity
from storefront.core.money import ZERO
from storefront.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusHistory,
    PaymentMethod,
    PaymentStatus,
)
from storefront.models.payment import Payment, PaymentRecordStatus
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.coupon_repo import CouponRepository
from storefront.repositories.order_repo import OrderRepository
from storefront.repositories.payment_repo import PaymentRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.order import (
    OrderCreate,
    OrderItemRead,
    OrderRead,
    OrderStatusHistoryRead,
    OrderStatusUpdate,
    OrderWithItemsRead,
)
from storefront.services.checkout_service import CheckoutContext, CheckoutService
from storefront.services.order_number import OrderNumberCollision, OrderNumberGenerator
from storefront.services.order_status_service import OrderStatusService

logger = logging.getLogger(__name__)
settings = get_settings()

# Settled on delivery; every other method waits for the gateway webhook
OFFLINE_PAYMENT_METHODS = {PaymentMethod.COD}

CUSTOMER_CANCELLABLE = {
    OrderStatus.PENDING,
    OrderStatus.PAYMENT_FAILED,
    OrderStatus.CONFIRMED,
}


def initial_payment_status(method: PaymentMethod) -> PaymentStatus:
    if method in OFFLINE_PAYMENT_METHODS:
        return PaymentStatus.PENDING
    return PaymentStatus.AWAITING_PAYMENT


class OrderService:
    """
    Business logic for orders.

    Responsibilities:
      - Create order from cart in one transaction (stock, order, items,
        cart cleanup, coupon usage)
      - Retry the whole unit when the order number collides
      - Customer and admin reads
      - Customer cancel and admin transitions through the status machine
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        cart_repo: CartRepository,
        product_repo: ProductRepository,
        coupon_repo: CouponRepository,
        payment_repo: PaymentRepository,
        checkout_service: CheckoutService,
        number_generator: OrderNumberGenerator,
        status_service: OrderStatusService,
    ):
        self.order_repo = order_repo
        self.cart_repo = cart_repo
        self.product_repo = product_repo
        self.coupon_repo = coupon_repo
        self.payment_repo = payment_repo
        self.checkout_service = checkout_service
        self.number_generator = number_generator
        self.status_service = status_service

    # -------- Order creation --------

    def create_order(
        self,
        session: Session,
        identity: CartIdentity,
        payload: OrderCreate,
    ) -> OrderWithItemsRead:
        """
        Convert the caller's cart into an Order.

        A taken order number aborts the transaction; the whole unit
        (validation included) is retried with the next sequence offset.
        """
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(settings.ORDER_NUMBER_MAX_ATTEMPTS),
                retry=retry_if_exception_type(OrderNumberCollision),
                reraise=True,
            ):
                with attempt:
                    offset = attempt.retry_state.attempt_number - 1
                    order = self._create_once(session, identity, payload, offset)
        except OrderNumberCollision:
            logger.error(
                "Gave up allocating an order number after %d attempts",
                settings.ORDER_NUMBER_MAX_ATTEMPTS,
            )
            raise OrderNumberConflict()

        return self._build_order_with_items_dto(session, order)

    def _create_once(
        self,
        session: Session,
        identity: CartIdentity,
        payload: OrderCreate,
        offset: int,
    ) -> Order:
        """
        Steps:
          0. Re-run checkout validation; any error => ValidationFailed.
          1. Atomically decrement stock per line; negative => StockRaceLost.
          2. Insert Order, OrderItems, initial history and (COD) a pending
             Payment row.
          3. Empty the cart (user carts stay as a shell, guest carts go).
          4. Conditionally bump coupon usage; limit hit => ValidationFailed.
          5. Commit. Any failure rolls back every step.
        """
        # 0) Validate
        ctx = self.checkout_service.evaluate(
            session,
            identity,
            payload.address_id,
            payload.coupon_code,
            payload.shipping_method,
        )
        if not ctx.preview.valid:
            raise ValidationFailed(ctx.preview.errors)

        try:
            # 1) Stock
            self._reserve_stock(session, ctx)

            # 2) Order + items
            order = self._insert_order(session, identity, payload, ctx, offset)

            # 3) Cart
            self._empty_cart(session, ctx)

            # 4) Coupon usage
            if ctx.preview.coupon_code:
                if not self.coupon_repo.increment_usage(session, ctx.preview.coupon_code):
                    raise ValidationFailed(
                        [f"Coupon '{ctx.preview.coupon_code}' has reached its usage limit"]
                    )

            # 5) Commit
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            if "order_number" in str(exc.orig):
                logger.warning("Order number collision (offset %d), retrying", offset)
                raise OrderNumberCollision() from exc
            raise
        except Exception:
            session.rollback()
            raise

        session.refresh(order)
        logger.info(
            "Order %s created: %d line(s), total %s %s, payment %s",
            order.order_number,
            len(ctx.items),
            order.total,
            order.currency,
            order.payment_method.value,
        )
        return order

    def _reserve_stock(self, session: Session, ctx: CheckoutContext) -> None:
        for line in ctx.preview.items:
            remaining = self.product_repo.decrement_stock(
                session, line.product_id, line.quantity
            )
            if remaining is None or remaining < 0:
                logger.warning(
                    "Stock race lost on %s (requested %d, left %s)",
                    line.product_name,
                    line.quantity,
                    remaining,
                )
                raise StockRaceLost(line.product_name or str(line.product_id))

    def _insert_order(
        self,
        session: Session,
        identity: CartIdentity,
        payload: OrderCreate,
        ctx: CheckoutContext,
        offset: int,
    ) -> Order:
        preview = ctx.preview
        address = ctx.address
        now = utcnow()
        is_guest = isinstance(identity, GuestIdentity)

        order = Order(
            order_number=self.number_generator.next(session, now, offset),
            user_id=identity.user_id if isinstance(identity, UserIdentity) else None,
            session_token=identity.session_token if is_guest else None,
            guest_full_name=address.full_name if is_guest else None,
            guest_email=str(payload.guest_email) if is_guest and payload.guest_email else None,
            guest_phone=address.phone if is_guest else None,
            status=OrderStatus.PENDING,
            payment_method=payload.payment_method,
            payment_status=initial_payment_status(payload.payment_method),
            subtotal=preview.subtotal,
            discount=preview.discount,
            shipping_cost=preview.shipping_cost,
            tax=preview.tax,
            total=preview.total,
            currency=preview.currency,
            shipping_method=preview.shipping_method,
            shipping_full_name=address.full_name,
            shipping_phone=address.phone,
            shipping_address_line1=address.address_line1,
            shipping_address_line2=address.address_line2,
            shipping_district=address.district,
            shipping_division=address.division,
            shipping_postal_code=address.postal_code,
            coupon_code=preview.coupon_code,
            note=payload.note,
            created_at=now,
            updated_at=now,
        )
        order = self.order_repo.create_order(session, order)

        self.order_repo.create_items(
            session,
            [
                OrderItem(
                    order_id=order.id,
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    product_name=line.product_name,
                    sku=line.sku,
                    image_url=line.image_url,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    line_total=line.line_total,
                )
                for line in preview.items
            ],
        )

        self.order_repo.add_history(
            session,
            OrderStatusHistory(
                order_id=order.id,
                from_status=None,
                to_status=OrderStatus.PENDING,
                note="Order placed",
            ),
        )

        if payload.payment_method in OFFLINE_PAYMENT_METHODS:
            self.payment_repo.save(
                session,
                Payment(
                    order_id=order.id,
                    method=payload.payment_method,
                    amount=order.total,
                    currency=order.currency,
                    status=PaymentRecordStatus.PENDING,
                ),
            )

        return order

    def _empty_cart(self, session: Session, ctx: CheckoutContext) -> None:
        cart = ctx.cart
        if cart.is_guest:
            self.cart_repo.discard_cart(session, cart)
            return

        self.cart_repo.discard_items(session, cart.id)
        cart.coupon_code = None
        cart.discount = ZERO
        session.add(cart)
        session.flush()

    # -------- Customer operations --------

    def list_user_orders(
        self,
        session: Session,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[OrderRead]:
        """
        List orders for the given user (without items).
        """
        orders = self.order_repo.list_for_user(session, user_id, skip, limit)
        return orders  # type: ignore[return-value]

    def _get_owned_order(
        self,
        session: Session,
        identity: CartIdentity,
        order_number: str,
    ) -> Order:
        order = self.order_repo.get_by_number(session, order_number)
        if order is not None:
            if isinstance(identity, UserIdentity):
                owned = order.user_id == identity.user_id
            else:
                owned = order.user_id is None and order.session_token == identity.session_token
            if owned:
                return order

        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Order not found",
        )

    def get_user_order(
        self,
        session: Session,
        identity: CartIdentity,
        order_number: str,
    ) -> OrderWithItemsRead:
        """
        Get a single order for the caller, including items.

        - 404 if order not found or does not belong to the caller.
        """
        order = self._get_owned_order(session, identity, order_number)
        return self._build_order_with_items_dto(session, order)

    def cancel_own_order(
        self,
        session: Session,
        identity: CartIdentity,
        order_number: str,
        note: str | None = None,
    ) -> OrderWithItemsRead:
        """
        Customer cancel. Allowed until the order starts processing.
        """
        order = self._get_owned_order(session, identity, order_number)
        current = OrderStatus(order.status)

        if current != OrderStatus.CANCELLED and current not in CUSTOMER_CANCELLABLE:
            raise InvalidTransition(
                current.value,
                OrderStatus.CANCELLED.value,
                reason="order is already being fulfilled",
            )

        try:
            changed = self.status_service.apply(
                session, order, OrderStatus.CANCELLED, note or "Cancelled by customer"
            )
        except Exception:
            session.rollback()
            raise

        if changed:
            session.commit()
            session.refresh(order)
        return self._build_order_with_items_dto(session, order)

    # -------- Admin operations --------

    def list_all_orders(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        status_filter: OrderStatus | None = None,
    ) -> list[OrderRead]:
        """
        List all orders (admin only).
        """
        orders = self.order_repo.list_all(session, skip, limit, status_filter)
        return orders  # type: ignore[return-value]

    def get_order_admin(
        self,
        session: Session,
        order_id: uuid.UUID,
    ) -> OrderWithItemsRead:
        """
        Get any order with items (admin only).
        """
        order = self.order_repo.get_by_id(session, order_id)
        if not order:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Order not found",
            )
        return self._build_order_with_items_dto(session, order)

    def update_status(
        self,
        session: Session,
        order_id: uuid.UUID,
        payload: OrderStatusUpdate,
    ) -> OrderWithItemsRead:
        order = self.status_service.transition(session, order_id, payload.status, payload.note)
        return self._build_order_with_items_dto(session, order)

    # -------- Helper DTO builder --------

    def _build_order_with_items_dto(
        self,
        session: Session,
        order: Order,
    ) -> OrderWithItemsRead:
        """
        Compose OrderWithItemsRead from ORM rows (items and history).
        """
        items = self.order_repo.list_items_for_order(session, order.id)
        history = self.order_repo.list_history(session, order.id)

        return OrderWithItemsRead(
            **OrderRead.model_validate(order).model_dump(),
            items=[OrderItemRead.model_validate(it) for it in items],
            history=[OrderStatusHistoryRead.model_validate(h) for h in history],
        )
