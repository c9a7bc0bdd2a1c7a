# storefront/routers/payments.py
from fastapi import APIRouter, Depends, Header, Request
from sqlmodel import Session

from storefront.core.config import get_settings
from storefront.database import get_session
from storefront.repositories.order_repo import OrderRepository
from storefront.repositories.payment_repo import PaymentRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.payment import WebhookResult
from storefront.services.order_status_service import OrderStatusService
from storefront.services.payment_service import PaymentWebhookService

router = APIRouter(prefix="/payments", tags=["Payments"])

settings = get_settings()

order_repo = OrderRepository()
payment_repo = PaymentRepository()
service = PaymentWebhookService(
    order_repo=order_repo,
    payment_repo=payment_repo,
    status_service=OrderStatusService(order_repo, ProductRepository(), payment_repo),
    secret=settings.WEBHOOK_SECRET,
    tolerance_seconds=settings.WEBHOOK_TOLERANCE_SECONDS,
)


async def raw_body(request: Request) -> bytes:
    """
    Unparsed request body; the signature covers these exact bytes.
    """
    return await request.body()


@router.post("/webhook", response_model=WebhookResult)
def payment_webhook(
    body: bytes = Depends(raw_body),
    session: Session = Depends(get_session),
    x_webhook_signature: str | None = Header(default=None),
):
    """
    Payment provider notifications.

    Always 200 for a verified event, including ignored and duplicate ones,
    so the provider stops retrying. 400 for a bad signature or payload.
    """
    return service.handle_event(session, body, x_webhook_signature)
