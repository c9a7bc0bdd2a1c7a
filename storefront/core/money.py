# storefront/core/money.py
from decimal import Decimal, ROUND_HALF_UP

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Round a monetary amount to 2 decimal places, half-up.

    Floats are rejected. Amounts are Decimals, or ints / numeric strings
    coming from config or a payload.
    """
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be floats")
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
