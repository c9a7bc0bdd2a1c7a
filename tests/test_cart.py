"""Tests for the cart aggregate."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi import HTTPException

from storefront.core.clock import as_utc
from storefront.core.errors import OutOfStock, ValidationFailed
from storefront.core.identity import GuestIdentity, UserIdentity
from storefront.models.cart import Cart
from storefront.routers.cart import cart_repo, service as cart_service
from storefront.schemas.cart import CartItemCreate, CartItemUpdate
from storefront.tasks.cart_cleanup import cleanup_expired_guest_carts


def add(session, identity, product, quantity=1, variant_id=None):
    return cart_service.add_item(
        session,
        identity,
        CartItemCreate(product_id=product.id, variant_id=variant_id, quantity=quantity),
    )


class TestGetOrCreate:
    def test_user_cart_is_created_once(self, session, user_identity):
        first = cart_service.get_or_create(session, user_identity)
        second = cart_service.get_or_create(session, user_identity)
        assert first.id == second.id
        assert first.user_id == user_identity.user_id
        assert first.session_token is None
        assert first.expires_at is None

    def test_guest_cart_expires_in_thirty_days(self, session, guest_identity):
        cart = cart_service.get_or_create(session, guest_identity)
        assert cart.is_guest
        assert cart.identity == guest_identity
        remaining = as_utc(cart.expires_at) - datetime.now(timezone.utc)
        assert timedelta(days=29) < remaining <= timedelta(days=30)

    def test_empty_summary(self, session, guest_identity):
        summary = cart_service.get_cart_summary(session, guest_identity)
        assert summary.items == []
        assert summary.subtotal == Decimal("0")
        assert summary.total == Decimal("0")


class TestAddItem:
    def test_add_captures_price(self, session, user_identity, make_product):
        product = make_product(price="1200.50")
        summary = add(session, user_identity, product, 2)
        assert len(summary.items) == 1
        assert summary.items[0].unit_price == Decimal("1200.50")
        assert summary.items[0].line_total == Decimal("2401.00")
        assert summary.subtotal == Decimal("2401.00")
        assert summary.total_quantity == 2

    def test_same_line_is_increased(self, session, user_identity, make_product):
        product = make_product(stock=5)
        add(session, user_identity, product, 2)
        summary = add(session, user_identity, product, 3)
        assert len(summary.items) == 1
        assert summary.items[0].quantity == 5

    def test_different_variants_are_separate_lines(self, session, user_identity, make_product):
        product = make_product(stock=5)
        add(session, user_identity, product, 1, variant_id=uuid.uuid4())
        summary = add(session, user_identity, product, 1, variant_id=uuid.uuid4())
        assert len(summary.items) == 2

    def test_over_stock_rejected(self, session, user_identity, make_product):
        product = make_product(stock=3)
        with pytest.raises(OutOfStock):
            add(session, user_identity, product, 4)

    def test_cumulative_quantity_checked(self, session, user_identity, make_product):
        product = make_product(stock=3)
        add(session, user_identity, product, 2)
        with pytest.raises(OutOfStock) as exc:
            add(session, user_identity, product, 2)
        assert exc.value.requested == 4
        assert exc.value.available == 3

    def test_variant_lines_share_product_stock(self, session, user_identity, make_product):
        product = make_product(stock=5)
        add(session, user_identity, product, 3, variant_id=uuid.uuid4())
        with pytest.raises(OutOfStock) as exc:
            add(session, user_identity, product, 3, variant_id=uuid.uuid4())
        assert exc.value.requested == 6
        assert exc.value.available == 5

    def test_inactive_product_rejected(self, session, user_identity, make_product):
        product = make_product(status="ARCHIVED")
        with pytest.raises(HTTPException) as exc:
            add(session, user_identity, product)
        assert exc.value.status_code == 400

    def test_missing_product(self, session, user_identity):
        with pytest.raises(HTTPException) as exc:
            cart_service.add_item(
                session,
                user_identity,
                CartItemCreate(product_id=uuid.uuid4(), quantity=1),
            )
        assert exc.value.status_code == 404


class TestUpdateAndRemove:
    def test_update_quantity(self, session, user_identity, make_product):
        product = make_product(stock=10)
        summary = add(session, user_identity, product, 1)
        item_id = summary.items[0].id
        summary = cart_service.update_quantity(
            session, user_identity, item_id, CartItemUpdate(quantity=7)
        )
        assert summary.items[0].quantity == 7

    def test_update_over_stock(self, session, user_identity, make_product):
        product = make_product(stock=2)
        item_id = add(session, user_identity, product, 1).items[0].id
        with pytest.raises(OutOfStock):
            cart_service.update_quantity(
                session, user_identity, item_id, CartItemUpdate(quantity=3)
            )

    def test_update_counts_other_variant_lines(self, session, user_identity, make_product):
        product = make_product(stock=5)
        add(session, user_identity, product, 2, variant_id=uuid.uuid4())
        blue = uuid.uuid4()
        summary = add(session, user_identity, product, 1, variant_id=blue)
        item_id = next(i.id for i in summary.items if i.variant_id == blue)

        summary = cart_service.update_quantity(
            session, user_identity, item_id, CartItemUpdate(quantity=3)
        )
        assert summary.total_quantity == 5

        with pytest.raises(OutOfStock) as exc:
            cart_service.update_quantity(
                session, user_identity, item_id, CartItemUpdate(quantity=4)
            )
        assert exc.value.requested == 6

    def test_cannot_touch_another_cart(self, session, user_identity, guest_identity, make_product):
        product = make_product()
        item_id = add(session, guest_identity, product, 1).items[0].id
        with pytest.raises(HTTPException) as exc:
            cart_service.remove_item(session, user_identity, item_id)
        assert exc.value.status_code == 404

    def test_remove_item(self, session, user_identity, make_product):
        first = make_product(name="Panjabi")
        second = make_product(name="Lungi")
        add(session, user_identity, first)
        summary = add(session, user_identity, second)
        item_id = summary.items[0].id
        summary = cart_service.remove_item(session, user_identity, item_id)
        assert len(summary.items) == 1

    def test_clear(self, session, user_identity, make_product, make_coupon):
        make_coupon("SAVE20")
        add(session, user_identity, make_product(), 1)
        cart_service.apply_coupon(session, user_identity, "SAVE20")
        summary = cart_service.clear(session, user_identity)
        assert summary.items == []
        assert summary.coupon_code is None
        assert summary.discount == Decimal("0")


class TestCoupons:
    def test_apply_coupon(self, session, user_identity, make_product, make_coupon):
        make_coupon("SAVE20", value="20", max_discount=Decimal("800"))
        add(session, user_identity, make_product(price="2500"), 2)
        summary = cart_service.apply_coupon(session, user_identity, "save20")
        assert summary.coupon_code == "SAVE20"
        assert summary.subtotal == Decimal("5000.00")
        assert summary.discount == Decimal("800.00")
        assert summary.total == Decimal("4200.00")

    def test_invalid_coupon_rejected(self, session, user_identity, make_product):
        add(session, user_identity, make_product(), 1)
        with pytest.raises(ValidationFailed) as exc:
            cart_service.apply_coupon(session, user_identity, "NOPE")
        assert "not found" in exc.value.errors[0]

    def test_discount_follows_items(self, session, user_identity, make_product, make_coupon):
        make_coupon("SAVE20", value="20")
        product = make_product(price="1000", stock=10)
        item_id = add(session, user_identity, product, 1).items[0].id
        cart_service.apply_coupon(session, user_identity, "SAVE20")
        summary = cart_service.update_quantity(
            session, user_identity, item_id, CartItemUpdate(quantity=3)
        )
        assert summary.discount == Decimal("600.00")

    def test_coupon_dropped_when_minimum_no_longer_met(
        self, session, user_identity, make_product, make_coupon
    ):
        make_coupon("BIG", value="10", min_order_amount=Decimal("2000"))
        product = make_product(price="1000", stock=10)
        item_id = add(session, user_identity, product, 2).items[0].id
        cart_service.apply_coupon(session, user_identity, "BIG")
        summary = cart_service.update_quantity(
            session, user_identity, item_id, CartItemUpdate(quantity=1)
        )
        assert summary.coupon_code is None
        assert summary.discount == Decimal("0")

    def test_remove_coupon(self, session, user_identity, make_product, make_coupon):
        make_coupon("SAVE20")
        add(session, user_identity, make_product(), 1)
        cart_service.apply_coupon(session, user_identity, "SAVE20")
        summary = cart_service.remove_coupon(session, user_identity)
        assert summary.coupon_code is None
        assert summary.total == summary.subtotal


class TestMerge:
    def test_merge_sums_and_copies(self, session, user_identity, guest_identity, make_product):
        shared = make_product(name="Shared", stock=20)
        guest_only = make_product(name="Guest only", stock=20)
        add(session, user_identity, shared, 1)
        add(session, guest_identity, shared, 2)
        add(session, guest_identity, guest_only, 3)

        summary = cart_service.merge_guest_into_user(
            session, guest_identity.session_token, user_identity.user_id
        )

        quantities = {it.product_id: it.quantity for it in summary.items}
        assert quantities == {shared.id: 3, guest_only.id: 3}
        assert cart_repo.get_for_identity(session, guest_identity) is None

    def test_merge_without_guest_cart_is_noop(self, session, user_identity, make_product):
        add(session, user_identity, make_product(), 1)
        summary = cart_service.merge_guest_into_user(
            session, "no-such-token", user_identity.user_id
        )
        assert len(summary.items) == 1

    def test_merge_empty_guest_cart_is_noop(self, session, user_identity, guest_identity):
        cart_service.get_or_create(session, guest_identity)
        summary = cart_service.merge_guest_into_user(
            session, guest_identity.session_token, user_identity.user_id
        )
        assert summary.items == []
        assert cart_repo.get_for_identity(session, guest_identity) is not None


class TestCleanup:
    def test_removes_only_expired_guest_carts(self, session, user_identity, make_product):
        product = make_product()
        stale = GuestIdentity(session_token="stale")
        fresh = GuestIdentity(session_token="fresh")
        add(session, stale, product, 1)
        add(session, fresh, product, 1)
        cart_service.get_or_create(session, user_identity)

        stale_cart = cart_repo.get_for_identity(session, stale)
        stale_cart.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
        session.add(stale_cart)
        session.commit()

        deleted = cart_service.cleanup_expired_guest_carts(session)

        assert deleted == 1
        assert cart_repo.get_for_identity(session, stale) is None
        assert cart_repo.get_for_identity(session, fresh) is not None
        assert cart_repo.get_for_identity(session, user_identity) is not None

    def test_user_carts_never_expire(self, session, make_user):
        user = make_user()
        cart = Cart(user_id=user.id)
        session.add(cart)
        session.commit()
        later = datetime.now(timezone.utc) + timedelta(days=365)
        assert cart_service.cleanup_expired_guest_carts(session, now=later) == 0
        assert cart_repo.get_for_identity(session, UserIdentity(user_id=user.id)) is not None

    def test_scheduled_sweep(self, session, make_product):
        product = make_product()
        stale = GuestIdentity(session_token="abandoned")
        add(session, stale, product, 1)
        stale_cart = cart_repo.get_for_identity(session, stale)
        stale_cart.updated_at = datetime.now(timezone.utc) - timedelta(days=31)
        stale_cart.expires_at = datetime.now(timezone.utc) + timedelta(days=1)
        session.add(stale_cart)
        session.commit()

        assert cleanup_expired_guest_carts() == 1
        assert cart_repo.get_for_identity(session, stale) is None
