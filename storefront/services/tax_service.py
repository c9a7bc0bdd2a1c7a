# storefront/services/tax_service.py
from dataclasses import dataclass
from decimal import Decimal

from storefront.core.config import Settings
from storefront.core.money import to_money

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class TaxBreakdown:
    amount: Decimal
    tax: Decimal
    total: Decimal
    rate_percent: Decimal
    included: bool
    label: str


class TaxCalculator:
    """
    VAT on the discounted subtotal. Shipping is never taxed.

    Inclusive mode backs the tax out of the amount (total unchanged):
        tax = amount - amount / (1 + rate)
    Exclusive mode adds it on top:
        tax = amount * rate, total = amount + tax
    """

    def __init__(self, rate_percent: Decimal, included: bool = True, label: str = "VAT"):
        if rate_percent < 0:
            raise ValueError("Tax rate cannot be negative")
        self.rate_percent = Decimal(rate_percent)
        self.included = included
        self.label = label

    @classmethod
    def from_settings(cls, settings: Settings) -> "TaxCalculator":
        return cls(
            rate_percent=settings.TAX_VAT_RATE,
            included=settings.TAX_INCLUDED,
            label=settings.TAX_LABEL,
        )

    def calculate(self, amount: Decimal) -> TaxBreakdown:
        amount = to_money(amount)
        rate = self.rate_percent / HUNDRED

        if self.included:
            tax = to_money(amount - amount / (1 + rate))
            total = amount
        else:
            tax = to_money(amount * rate)
            total = amount + tax

        return TaxBreakdown(
            amount=amount,
            tax=tax,
            total=to_money(total),
            rate_percent=self.rate_percent,
            included=self.included,
            label=self.label,
        )
