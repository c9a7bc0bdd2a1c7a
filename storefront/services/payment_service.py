# storefront/services/payment_service.py
import hashlib
import hmac
import logging
import time

from fastapi import HTTPException, status
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from storefront.core.errors import InvalidSignature, InvalidTransition
from storefront.core.money import to_money
from storefront.models.order import Order, OrderStatus, PaymentStatus
from storefront.models.payment import Payment, PaymentRecordStatus
from storefront.repositories.order_repo import OrderRepository
from storefront.repositories.payment_repo import PaymentRepository
from storefront.schemas.payment import (
    EVENT_PAYMENT_FAILED,
    EVENT_PAYMENT_REFUNDED,
    EVENT_PAYMENT_SUCCEEDED,
    PaymentEvent,
    WebhookResult,
)
from storefront.services.order_status_service import OrderStatusService

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"


def compute_signature(secret: str, timestamp: int, body: bytes) -> str:
    message = f"{timestamp}.".encode() + body
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def sign_payload(secret: str, body: bytes, timestamp: int | None = None) -> str:
    """
    Build a signature header value: "t=<unix>,v1=<hex>".
    """
    timestamp = int(time.time()) if timestamp is None else timestamp
    return f"t={timestamp},v1={compute_signature(secret, timestamp, body)}"


def verify_signature(
    secret: str,
    body: bytes,
    header: str | None,
    tolerance_seconds: int,
    now: float | None = None,
) -> None:
    """
    Check "t=<unix>,v1=<hex HMAC-SHA256(secret, '<t>.<body>')>".

    Raises InvalidSignature on a missing/garbled header, a stale
    timestamp or a digest mismatch.
    """
    if not header:
        raise InvalidSignature("Missing webhook signature")

    parts: dict[str, list[str]] = {}
    for chunk in header.split(","):
        key, sep, value = chunk.strip().partition("=")
        if sep:
            parts.setdefault(key, []).append(value)

    try:
        timestamp = int(parts["t"][0])
    except (KeyError, ValueError):
        raise InvalidSignature("Malformed webhook signature")

    candidates = parts.get("v1", [])
    if not candidates:
        raise InvalidSignature("Malformed webhook signature")

    now = time.time() if now is None else now
    if abs(now - timestamp) > tolerance_seconds:
        raise InvalidSignature("Webhook timestamp outside tolerance")

    expected = compute_signature(secret, timestamp, body)
    if not any(hmac.compare_digest(expected, c) for c in candidates):
        raise InvalidSignature("Invalid webhook signature")


class PaymentWebhookService:
    """
    Reconciles payment provider notifications with orders.

    Idempotency is keyed on external_payment_id (unique column): a
    redelivered event finds its COMPLETED row and becomes a no-op, and two
    deliveries racing each other collide on the constraint.

    Unknown event types and unknown orders are acknowledged and ignored so
    the provider stops retrying.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        payment_repo: PaymentRepository,
        status_service: OrderStatusService,
        secret: str,
        tolerance_seconds: int = 300,
    ):
        self.order_repo = order_repo
        self.payment_repo = payment_repo
        self.status_service = status_service
        self.secret = secret
        self.tolerance_seconds = tolerance_seconds
        self.handlers = {
            EVENT_PAYMENT_SUCCEEDED: self._handle_succeeded,
            EVENT_PAYMENT_FAILED: self._handle_failed,
            EVENT_PAYMENT_REFUNDED: self._handle_refunded,
        }

    def handle_event(
        self,
        session: Session,
        raw_payload: bytes,
        signature: str | None,
    ) -> WebhookResult:
        try:
            verify_signature(self.secret, raw_payload, signature, self.tolerance_seconds)
        except InvalidSignature as exc:
            logger.warning("Rejected webhook: %s", exc.detail)
            raise

        try:
            event = PaymentEvent.model_validate_json(raw_payload)
        except ValidationError:
            logger.warning("Rejected webhook: malformed payload")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Malformed webhook payload",
            )

        handler = self.handlers.get(event.event_type)
        if handler is None:
            logger.info("Ignoring unsupported webhook event %s", event.event_type)
            return WebhookResult(status="ignored", detail="Unsupported event type")

        order = (
            self.order_repo.get_by_number(session, event.order_reference)
            if event.order_reference
            else None
        )
        if order is None:
            logger.warning(
                "Ignoring %s for unknown order %s",
                event.event_type,
                event.order_reference,
            )
            return WebhookResult(status="ignored", detail="Unknown order")

        try:
            result = handler(session, event, order)
            if result.status == "processed":
                session.commit()
        except IntegrityError:
            # A concurrent delivery of the same event got there first
            session.rollback()
            logger.info(
                "Duplicate %s for order %s (external id %s)",
                event.event_type,
                event.order_reference,
                event.external_payment_id,
            )
            return WebhookResult(status="duplicate")
        except Exception:
            session.rollback()
            raise

        logger.info(
            "Webhook %s for order %s: %s",
            event.event_type,
            order.order_number,
            result.status,
        )
        return result

    # ---- handlers (no commit) ----

    def _handle_succeeded(self, session: Session, event: PaymentEvent, order: Order) -> WebhookResult:
        existing = None
        if event.external_payment_id:
            existing = self.payment_repo.get_by_external_id(session, event.external_payment_id)
            if existing is not None and existing.status == PaymentRecordStatus.COMPLETED:
                return WebhookResult(status="duplicate")

        if order.payment_status in (PaymentStatus.PAID, PaymentStatus.REFUNDED):
            logger.warning(
                "Order %s is already paid; ignoring payment %s",
                order.order_number,
                event.external_payment_id,
            )
            return WebhookResult(status="duplicate", detail="Order already paid")

        amount = to_money(event.amount) if event.amount is not None else order.total
        if amount != order.total:
            logger.warning(
                "Amount mismatch on order %s: expected %s, received %s",
                order.order_number,
                order.total,
                amount,
            )

        payment = existing or self._pending_payment(session, order) or Payment(
            order_id=order.id,
            method=order.payment_method,
        )
        payment.amount = amount
        payment.currency = (event.currency or order.currency).upper()
        payment.external_payment_id = event.external_payment_id
        payment.status = PaymentRecordStatus.COMPLETED
        payment.failure_reason = None
        self.payment_repo.save(session, payment)

        order.payment_status = PaymentStatus.PAID
        if order.status in (OrderStatus.PENDING, OrderStatus.PAYMENT_FAILED):
            note = "Payment received"
            if event.external_payment_id:
                note = f"Payment {event.external_payment_id} received"
            self.status_service.apply(session, order, OrderStatus.CONFIRMED, note=note)
        else:
            self.order_repo.update_order(session, order)

        return WebhookResult(status="processed")

    def _handle_failed(self, session: Session, event: PaymentEvent, order: Order) -> WebhookResult:
        if order.payment_status in (PaymentStatus.PAID, PaymentStatus.REFUNDED):
            logger.info(
                "Order %s is already paid; ignoring failed attempt %s",
                order.order_number,
                event.external_payment_id,
            )
            return WebhookResult(status="ignored", detail="Order already paid")

        if event.external_payment_id:
            existing = self.payment_repo.get_by_external_id(session, event.external_payment_id)
            if existing is not None:
                return WebhookResult(status="duplicate")

        self.payment_repo.save(
            session,
            Payment(
                order_id=order.id,
                method=order.payment_method,
                amount=to_money(event.amount) if event.amount is not None else order.total,
                currency=(event.currency or order.currency).upper(),
                external_payment_id=event.external_payment_id,
                status=PaymentRecordStatus.FAILED,
                failure_reason=event.failure_reason,
            ),
        )

        order.payment_status = PaymentStatus.FAILED
        if order.status == OrderStatus.PENDING:
            self.status_service.apply(
                session,
                order,
                OrderStatus.PAYMENT_FAILED,
                note=event.failure_reason or "Payment failed",
            )
        else:
            self.order_repo.update_order(session, order)

        return WebhookResult(status="processed")

    def _handle_refunded(self, session: Session, event: PaymentEvent, order: Order) -> WebhookResult:
        if order.status == OrderStatus.REFUNDED:
            return WebhookResult(status="duplicate")

        if order.payment_status != PaymentStatus.PAID:
            logger.warning("Refund for unpaid order %s ignored", order.order_number)
            return WebhookResult(status="ignored", detail="Order is not paid")

        try:
            self.status_service.apply(
                session, order, OrderStatus.REFUNDED, note="Refunded by payment provider"
            )
        except InvalidTransition as exc:
            logger.warning("Refund for order %s ignored: %s", order.order_number, exc.detail)
            return WebhookResult(status="ignored", detail=exc.detail)

        return WebhookResult(status="processed")

    def _pending_payment(self, session: Session, order: Order) -> Payment | None:
        for payment in self.payment_repo.list_for_order(session, order.id):
            if payment.status == PaymentRecordStatus.PENDING:
                return payment
        return None
