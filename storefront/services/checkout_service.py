# storefront/services/checkout_service.py
import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from fastapi import HTTPException, status
from sqlmodel import Session

from storefront.core.config import get_settings
from storefront.core.identity import CartIdentity
from storefront.core.money import ZERO, to_money
from storefront.models.address import Address
from storefront.models.cart import Cart, CartItem
from storefront.models.product import Product
from storefront.repositories.address_repo import AddressRepository
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.checkout import (
    CheckoutLine,
    CheckoutPreview,
    ShippingQuote,
)
from storefront.services.coupon_service import CouponService
from storefront.services.shipping_service import ShippingCalculator
from storefront.services.tax_service import TaxCalculator

settings = get_settings()


def line_total(product: Product, quantity: int) -> Decimal:
    """
    Live price times quantity, rounded per line.
    """
    return to_money(to_money(product.price) * quantity)


def requested_per_product(items: list[CartItem]) -> dict[uuid.UUID, int]:
    """
    Stock is tracked per product, so variant lines of one product share it.
    """
    totals: dict[uuid.UUID, int] = {}
    for it in items:
        totals[it.product_id] = totals.get(it.product_id, 0) + it.quantity
    return totals


@dataclass
class CheckoutContext:
    """
    Everything order creation needs besides the preview itself.
    """

    preview: CheckoutPreview
    cart: Cart | None = None
    items: list[CartItem] = field(default_factory=list)
    products: dict[uuid.UUID, Product] = field(default_factory=dict)
    address: Address | None = None


class CheckoutService:
    """
    Read-only cross-check of a cart against live products, the caller's
    address book and the coupon rules.

    Every problem is collected; nothing is written. The same evaluation
    runs right before an order is committed.
    """

    def __init__(
        self,
        cart_repo: CartRepository,
        product_repo: ProductRepository,
        address_repo: AddressRepository,
        coupon_service: CouponService,
        shipping: ShippingCalculator,
        tax: TaxCalculator,
    ):
        self.cart_repo = cart_repo
        self.product_repo = product_repo
        self.address_repo = address_repo
        self.coupon_service = coupon_service
        self.shipping = shipping
        self.tax = tax

    def validate(
        self,
        session: Session,
        identity: CartIdentity,
        address_id: uuid.UUID,
        coupon_code: str | None = None,
        shipping_method: str = "standard",
    ) -> CheckoutPreview:
        return self.evaluate(
            session, identity, address_id, coupon_code, shipping_method
        ).preview

    def evaluate(
        self,
        session: Session,
        identity: CartIdentity,
        address_id: uuid.UUID,
        coupon_code: str | None = None,
        shipping_method: str = "standard",
    ) -> CheckoutContext:
        """
        Steps:
          1. Load the caller's cart; an empty cart is an error.
          2. Re-read every product: missing, inactive and short-stock lines
             are all reported.
          3. Subtotal from live prices.
          4. Address must belong to the caller.
          5. Discount from the coupon (explicit code, else the cart's).
          6. Shipping on the pre-discount subtotal, tax on the discounted one.
        """
        errors: list[str] = []

        # 1) Cart
        cart = self.cart_repo.get_for_identity(session, identity)
        items = self.cart_repo.list_items(session, cart.id) if cart else []
        if not items:
            errors.append("Cart is empty")

        # 2) Live products
        products = self.product_repo.get_many(session, [it.product_id for it in items])
        requested = requested_per_product(items)
        short_products: set[uuid.UUID] = set()
        lines: list[CheckoutLine] = []
        subtotal = ZERO

        for it in items:
            product = products.get(it.product_id)
            if product is None:
                errors.append("A product in your cart no longer exists")
                continue

            if not product.is_purchasable:
                errors.append(f"{product.name} is no longer available")
            elif requested[product.id] > product.stock and product.id not in short_products:
                short_products.add(product.id)
                errors.append(
                    f"Not enough stock for {product.name} "
                    f"(have {product.stock}, requested {requested[product.id]})"
                )

            # 3) Live price, not the cart-captured one
            unit_price = to_money(product.price)
            amount = line_total(product, it.quantity)
            subtotal += amount
            lines.append(
                CheckoutLine(
                    cart_item_id=it.id,
                    product_id=product.id,
                    variant_id=it.variant_id,
                    product_name=product.name,
                    sku=product.sku,
                    image_url=product.image_url,
                    quantity=it.quantity,
                    unit_price=unit_price,
                    line_total=amount,
                    available_stock=product.stock,
                )
            )

        subtotal = to_money(subtotal)

        # 4) Address
        address = self.address_repo.get_for_owner(session, address_id, identity)
        if address is None:
            errors.append("Shipping address not found")

        # 5) Coupon
        code = coupon_code or (cart.coupon_code if cart else None)
        discount = ZERO
        if code and items:
            result = self.coupon_service.validate(session, code, subtotal)
            if result.valid:
                discount = result.discount
                code = result.code
            else:
                errors.extend(result.errors)

        # 6) Shipping and tax
        shipping_zone = None
        shipping_cost = ZERO
        if address is not None:
            shipping_zone = self.shipping.zone_for(address.district).value
            shipping_cost = self.shipping.cost(address.district, subtotal, shipping_method)

        taxed = self.tax.calculate(max(ZERO, subtotal - discount))

        preview = CheckoutPreview(
            items=lines,
            subtotal=subtotal,
            discount=discount,
            coupon_code=code,
            shipping_zone=shipping_zone,
            shipping_method=shipping_method,
            shipping_cost=shipping_cost,
            tax=taxed.tax,
            tax_label=taxed.label,
            tax_included=taxed.included,
            total=to_money(taxed.total + shipping_cost),
            currency=settings.CURRENCY,
            valid=not errors,
            errors=errors,
        )

        return CheckoutContext(
            preview=preview,
            cart=cart,
            items=items,
            products=products,
            address=address,
        )

    def shipping_options(
        self,
        session: Session,
        identity: CartIdentity,
        address_id: uuid.UUID,
    ) -> ShippingQuote:
        """
        Standard and express options for the caller's cart and address.
        """
        address = self.address_repo.get_for_owner(session, address_id, identity)
        if address is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Address not found",
            )

        cart = self.cart_repo.get_for_identity(session, identity)
        items = self.cart_repo.list_items(session, cart.id) if cart else []
        products = self.product_repo.get_many(session, [it.product_id for it in items])

        subtotal = ZERO
        for it in items:
            product = products.get(it.product_id)
            if product is not None:
                subtotal += line_total(product, it.quantity)

        return self.shipping.quote(address.district, to_money(subtotal))
