# storefront/services/shipping_service.py
from decimal import Decimal
from enum import Enum

from storefront.core.config import Settings
from storefront.core.money import ZERO, to_money
from storefront.schemas.checkout import ShippingOption, ShippingQuote

SHIPPING_METHODS = ("standard", "express")


class ShippingZone(str, Enum):
    INSIDE_DHAKA = "INSIDE_DHAKA"
    OUTSIDE_DHAKA = "OUTSIDE_DHAKA"


DELIVERY_ESTIMATES: dict[tuple[ShippingZone, str], str] = {
    (ShippingZone.INSIDE_DHAKA, "standard"): "1-2 days",
    (ShippingZone.INSIDE_DHAKA, "express"): "Same day",
    (ShippingZone.OUTSIDE_DHAKA, "standard"): "3-5 days",
    (ShippingZone.OUTSIDE_DHAKA, "express"): "1-2 days",
}


class ShippingCalculator:
    """
    Flat-rate shipping by zone.

    Rules:
      - zone comes from the address district (case-insensitive lookup in
        the "near" list); everything else is OUTSIDE_DHAKA
      - two rates per zone: standard and express
      - standard is free once subtotal >= free_threshold
      - express is never free
    """

    def __init__(
        self,
        near_districts: list[str],
        near_standard: Decimal,
        near_express: Decimal,
        far_standard: Decimal,
        far_express: Decimal,
        free_threshold: Decimal,
    ):
        self.near_districts = {d.strip().lower() for d in near_districts}
        self.rates: dict[tuple[ShippingZone, str], Decimal] = {
            (ShippingZone.INSIDE_DHAKA, "standard"): to_money(near_standard),
            (ShippingZone.INSIDE_DHAKA, "express"): to_money(near_express),
            (ShippingZone.OUTSIDE_DHAKA, "standard"): to_money(far_standard),
            (ShippingZone.OUTSIDE_DHAKA, "express"): to_money(far_express),
        }
        self.free_threshold = to_money(free_threshold)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ShippingCalculator":
        return cls(
            near_districts=settings.SHIPPING_NEAR_DISTRICTS,
            near_standard=settings.SHIPPING_NEAR_STANDARD,
            near_express=settings.SHIPPING_NEAR_EXPRESS,
            far_standard=settings.SHIPPING_FAR_STANDARD,
            far_express=settings.SHIPPING_FAR_EXPRESS,
            free_threshold=settings.FREE_SHIPPING_THRESHOLD,
        )

    def zone_for(self, district: str | None) -> ShippingZone:
        if district and district.strip().lower() in self.near_districts:
            return ShippingZone.INSIDE_DHAKA
        return ShippingZone.OUTSIDE_DHAKA

    def is_free(self, subtotal: Decimal, method: str = "standard") -> bool:
        return method == "standard" and subtotal >= self.free_threshold

    def cost(self, district: str | None, subtotal: Decimal, method: str = "standard") -> Decimal:
        if method not in SHIPPING_METHODS:
            raise ValueError(f"Unknown shipping method: {method}")
        if self.is_free(subtotal, method):
            return ZERO
        return self.rates[(self.zone_for(district), method)]

    def quote(self, district: str | None, subtotal: Decimal) -> ShippingQuote:
        """
        Both options for one destination, e.g. for a shipping picker.
        """
        zone = self.zone_for(district)
        options = [
            ShippingOption(
                method=method,
                cost=self.cost(district, subtotal, method),
                estimate=DELIVERY_ESTIMATES[(zone, method)],
                is_free=self.is_free(subtotal, method),
            )
            for method in SHIPPING_METHODS
        ]
        return ShippingQuote(zone=zone.value, options=options)
