# storefront/core/errors.py
"""
Checkout error taxonomy.

Every error is an HTTPException so services can raise them directly and
FastAPI renders them, the same way the rest of the code raises 404/403.
"""
from fastapi import HTTPException, status


class ValidationFailed(HTTPException):
    """
    Aggregated, user-correctable problems (shown as a list).

    Coupon failures are reported through this error with the coupon's
    reason string.
    """

    def __init__(self, errors: list[str], message: str = "Checkout validation failed"):
        self.errors = list(errors)
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": message, "errors": self.errors},
        )


class OutOfStock(HTTPException):
    def __init__(self, product_name: str, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                f"Not enough stock for {product_name} "
                f"(have {available}, requested {requested})"
            ),
        )


class InvalidTransition(HTTPException):
    def __init__(self, current: str, requested: str, reason: str | None = None):
        self.current = current
        self.requested = requested
        detail = f"Invalid status transition: {current} -> {requested}"
        if reason:
            detail = f"{detail} ({reason})"
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class InvalidSignature(HTTPException):
    def __init__(self, reason: str = "Invalid webhook signature"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=reason)


class CheckoutConflict(HTTPException):
    """
    Transient transaction-level failure. Nothing was persisted; the client
    should retry the whole checkout.
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": "Please retry checkout", "reason": reason},
        )


class StockRaceLost(CheckoutConflict):
    def __init__(self, product_name: str):
        self.product_name = product_name
        super().__init__(f"{product_name} was sold out by a concurrent order")


class OrderNumberConflict(CheckoutConflict):
    def __init__(self):
        super().__init__("Could not allocate a unique order number")
