# storefront/schemas/payment.py
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

EVENT_PAYMENT_SUCCEEDED = "payment.succeeded"
EVENT_PAYMENT_FAILED = "payment.failed"
EVENT_PAYMENT_REFUNDED = "payment.refunded"

WebhookOutcome = Literal["processed", "duplicate", "ignored"]


class PaymentEvent(BaseModel):
    """
    Inbound provider notification.

    Wire format is camelCase:
      {eventType, orderReference, externalPaymentId, amount, currency}
    orderReference is our order number.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    event_type: str = Field(alias="eventType")
    order_reference: str | None = Field(default=None, alias="orderReference")
    external_payment_id: str | None = Field(default=None, alias="externalPaymentId")
    amount: Decimal | None = None
    currency: str | None = None
    failure_reason: str | None = Field(default=None, alias="failureReason")


class WebhookResult(BaseModel):
    received: bool = True
    status: WebhookOutcome
    detail: str | None = None
