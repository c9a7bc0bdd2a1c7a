# storefront/services/cart_service.py
import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from storefront.core.clock import as_utc, utcnow
from storefront.core.config import get_settings
from storefront.core.errors import OutOfStock, ValidationFailed
from storefront.core.identity import CartIdentity, GuestIdentity, UserIdentity
from storefront.core.money import ZERO, to_money
from storefront.models.cart import Cart, CartItem
from storefront.models.product import Product
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.cart import (
    CartItemCreate,
    CartItemUpdate,
    CartItemRead,
    CartSummary,
)
from storefront.services.coupon_service import CouponService

logger = logging.getLogger(__name__)
settings = get_settings()


def cart_subtotal(items: list[CartItem]) -> Decimal:
    return to_money(sum((Decimal(it.unit_price) * it.quantity for it in items), ZERO))


class CartService:
    """
    Business logic for cart operations.

    Responsibilities:
      - one cart per identity (user id or guest session token)
      - validate product existence and ACTIVE status
      - enforce quantity <= live stock on every mutation
      - capture unit_price from Product.price when a line is added
      - keep the applied coupon's discount in sync with the items
      - slide the guest cart expiry on every mutation
    """

    def __init__(
        self,
        cart_repo: CartRepository,
        product_repo: ProductRepository,
        coupon_service: CouponService,
    ):
        self.cart_repo = cart_repo
        self.product_repo = product_repo
        self.coupon_service = coupon_service

    # ---- internal helpers ----

    def _guest_expiry(self, now: datetime | None = None) -> datetime:
        return (now or utcnow()) + timedelta(days=settings.GUEST_CART_TTL_DAYS)

    def _get_valid_product(self, session: Session, product_id: uuid.UUID) -> Product:
        product = self.product_repo.get_by_id(session, product_id)
        if not product:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Product not found",
            )
        if not product.is_purchasable:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{product.name} is not available for purchase",
            )
        return product

    def _get_own_item(self, session: Session, cart: Cart, item_id: uuid.UUID) -> CartItem:
        item = self.cart_repo.get_item(session, item_id)
        if not item or item.cart_id != cart.id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Item not found in cart",
            )
        return item

    def _quantity_on_other_lines(
        self,
        session: Session,
        cart_id: uuid.UUID,
        product_id: uuid.UUID,
        exclude_item_id: uuid.UUID | None = None,
    ) -> int:
        # Variants of one product draw on the same stock
        return sum(
            it.quantity
            for it in self.cart_repo.list_items(session, cart_id)
            if it.product_id == product_id and it.id != exclude_item_id
        )

    def _touch(self, session: Session, cart: Cart) -> Cart:
        """
        Recompute the coupon discount from the current items and slide the
        guest expiry. A coupon that no longer validates is dropped.
        """
        items = self.cart_repo.list_items(session, cart.id)

        if cart.coupon_code:
            subtotal = cart_subtotal(items)
            result = self.coupon_service.validate(session, cart.coupon_code, subtotal)
            if result.valid:
                cart.discount = result.discount
            else:
                logger.info(
                    "Dropping coupon %s from cart %s: %s",
                    cart.coupon_code,
                    cart.id,
                    result.errors[0],
                )
                cart.coupon_code = None
                cart.discount = ZERO
        else:
            cart.discount = ZERO

        if cart.is_guest:
            cart.expires_at = self._guest_expiry()

        return self.cart_repo.update_cart(session, cart)

    def _new_cart(self, identity: CartIdentity) -> Cart:
        if isinstance(identity, UserIdentity):
            return Cart(user_id=identity.user_id)
        return Cart(
            session_token=identity.session_token,
            expires_at=self._guest_expiry(),
        )

    # ---- public operations ----

    def get_or_create(self, session: Session, identity: CartIdentity) -> Cart:
        cart = self.cart_repo.get_for_identity(session, identity)
        if cart:
            return cart

        try:
            cart = self.cart_repo.create_cart(session, self._new_cart(identity))
        except IntegrityError:
            # Another request created the cart first
            session.rollback()
            cart = self.cart_repo.get_for_identity(session, identity)
            if cart is None:
                raise
            return cart

        logger.info("Created %s cart %s", "guest" if cart.is_guest else "user", cart.id)
        return cart

    def get_cart_summary(self, session: Session, identity: CartIdentity) -> CartSummary:
        """
        Return full cart summary:
          - list of CartItemRead (with line_total)
          - total_quantity, subtotal, discount
          - total = max(0, subtotal - discount)
        """
        cart = self.get_or_create(session, identity)
        return self.build_summary(session, cart)

    def build_summary(self, session: Session, cart: Cart) -> CartSummary:
        items = self.cart_repo.list_items(session, cart.id)
        products = self.product_repo.get_many(session, [it.product_id for it in items])

        item_reads: list[CartItemRead] = []
        total_qty = 0
        for it in items:
            product = products.get(it.product_id)
            total_qty += it.quantity
            item_reads.append(
                CartItemRead(
                    id=it.id,
                    product_id=it.product_id,
                    variant_id=it.variant_id,
                    product_name=product.name if product else None,
                    image_url=product.image_url if product else None,
                    quantity=it.quantity,
                    unit_price=to_money(it.unit_price),
                    line_total=to_money(Decimal(it.unit_price) * it.quantity),
                    created_at=it.created_at,
                )
            )

        subtotal = cart_subtotal(items)
        discount = to_money(cart.discount or ZERO)
        return CartSummary(
            id=cart.id,
            is_guest=cart.is_guest,
            items=item_reads,
            total_quantity=total_qty,
            subtotal=subtotal,
            coupon_code=cart.coupon_code,
            discount=discount,
            total=max(ZERO, subtotal - discount),
            expires_at=cart.expires_at,
        )

    def add_item(
        self,
        session: Session,
        identity: CartIdentity,
        payload: CartItemCreate,
    ) -> CartSummary:
        """
        Add a product to the cart.

        Rules:
          - product must exist and be ACTIVE
          - an existing product+variant line is increased, not duplicated
          - quantity across all lines of the product <= live stock
          - unit_price is taken from the current product.price
        """
        cart = self.get_or_create(session, identity)
        product = self._get_valid_product(session, payload.product_id)

        existing = self.cart_repo.get_line(
            session, cart.id, payload.product_id, payload.variant_id
        )
        requested = payload.quantity + (existing.quantity if existing else 0)
        others = self._quantity_on_other_lines(
            session, cart.id, product.id, existing.id if existing else None
        )
        if requested + others > product.stock:
            raise OutOfStock(product.name, product.stock, requested + others)

        if existing:
            existing.quantity = requested
            self.cart_repo.update_item(session, existing)
        else:
            self.cart_repo.create_item(
                session,
                CartItem(
                    cart_id=cart.id,
                    product_id=product.id,
                    variant_id=payload.variant_id,
                    quantity=payload.quantity,
                    unit_price=to_money(product.price),
                ),
            )

        cart = self._touch(session, cart)
        return self.build_summary(session, cart)

    def update_quantity(
        self,
        session: Session,
        identity: CartIdentity,
        item_id: uuid.UUID,
        payload: CartItemUpdate,
    ) -> CartSummary:
        """
        Update the quantity of an item in the cart.

        If quantity exceeds live stock => OutOfStock.
        """
        cart = self.get_or_create(session, identity)
        item = self._get_own_item(session, cart, item_id)
        product = self._get_valid_product(session, item.product_id)

        others = self._quantity_on_other_lines(session, cart.id, product.id, item.id)
        if payload.quantity + others > product.stock:
            raise OutOfStock(product.name, product.stock, payload.quantity + others)

        item.quantity = payload.quantity
        self.cart_repo.update_item(session, item)

        cart = self._touch(session, cart)
        return self.build_summary(session, cart)

    def remove_item(
        self,
        session: Session,
        identity: CartIdentity,
        item_id: uuid.UUID,
    ) -> CartSummary:
        cart = self.get_or_create(session, identity)
        item = self._get_own_item(session, cart, item_id)
        self.cart_repo.delete_item(session, item)

        cart = self._touch(session, cart)
        return self.build_summary(session, cart)

    def clear(self, session: Session, identity: CartIdentity) -> CartSummary:
        """
        Remove all items and the applied coupon.
        """
        cart = self.get_or_create(session, identity)
        self.cart_repo.clear_items(session, cart.id)
        cart.coupon_code = None

        cart = self._touch(session, cart)
        return self.build_summary(session, cart)

    # ---- coupons ----

    def apply_coupon(self, session: Session, identity: CartIdentity, code: str) -> CartSummary:
        cart = self.get_or_create(session, identity)
        items = self.cart_repo.list_items(session, cart.id)
        if not items:
            raise ValidationFailed(["Cart is empty"], message="Coupon could not be applied")

        result = self.coupon_service.validate(session, code, cart_subtotal(items))
        if not result.valid:
            raise ValidationFailed(result.errors, message="Coupon could not be applied")

        cart.coupon_code = result.code
        cart = self._touch(session, cart)
        return self.build_summary(session, cart)

    def remove_coupon(self, session: Session, identity: CartIdentity) -> CartSummary:
        cart = self.get_or_create(session, identity)
        cart.coupon_code = None
        cart = self._touch(session, cart)
        return self.build_summary(session, cart)

    # ---- guest -> user ----

    def merge_guest_into_user(
        self,
        session: Session,
        session_token: str,
        user_id: uuid.UUID,
    ) -> CartSummary:
        """
        Fold a guest cart into the user's cart after login.

        Matching product+variant lines have their quantities summed, the
        rest are copied. The guest cart is deleted. No-op when the guest
        cart is missing or empty.
        """
        user_identity = UserIdentity(user_id=user_id)
        guest_cart = self.cart_repo.get_for_identity(
            session, GuestIdentity(session_token=session_token)
        )
        user_cart = self.get_or_create(session, user_identity)

        if guest_cart is None:
            return self.build_summary(session, user_cart)

        guest_items = self.cart_repo.list_items(session, guest_cart.id)
        if not guest_items:
            return self.build_summary(session, user_cart)

        for gi in guest_items:
            existing = self.cart_repo.get_line(
                session, user_cart.id, gi.product_id, gi.variant_id
            )
            if existing:
                existing.quantity += gi.quantity
                self.cart_repo.stage_item(session, existing)
            else:
                self.cart_repo.stage_item(
                    session,
                    CartItem(
                        cart_id=user_cart.id,
                        product_id=gi.product_id,
                        variant_id=gi.variant_id,
                        quantity=gi.quantity,
                        unit_price=gi.unit_price,
                    ),
                )

        if not user_cart.coupon_code and guest_cart.coupon_code:
            user_cart.coupon_code = guest_cart.coupon_code

        self.cart_repo.discard_cart(session, guest_cart)
        session.commit()
        logger.info(
            "Merged %d guest line(s) from cart %s into user cart %s",
            len(guest_items),
            guest_cart.id,
            user_cart.id,
        )

        user_cart = self._touch(session, user_cart)
        return self.build_summary(session, user_cart)

    # ---- maintenance ----

    def cleanup_expired_guest_carts(self, session: Session, now: datetime | None = None) -> int:
        """
        Delete guest carts past expires_at or untouched for the TTL.
        """
        now = as_utc(now) or utcnow()
        idle_cutoff = now - timedelta(days=settings.GUEST_CART_TTL_DAYS)

        carts = self.cart_repo.list_expired_guest_carts(session, now, idle_cutoff)
        for cart in carts:
            self.cart_repo.discard_cart(session, cart)
        session.commit()

        if carts:
            logger.info("Removed %d expired guest cart(s)", len(carts))
        return len(carts)
