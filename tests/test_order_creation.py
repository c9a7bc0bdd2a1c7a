"""Tests for the order creation transaction."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlmodel import select

from storefront.core.errors import (
    CheckoutConflict,
    OrderNumberConflict,
    StockRaceLost,
    ValidationFailed,
)
from storefront.models.coupon import Coupon
from storefront.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusHistory,
    PaymentMethod,
    PaymentStatus,
)
from storefront.models.payment import Payment, PaymentRecordStatus
from storefront.routers.cart import cart_repo, service as cart_service
from storefront.routers.orders import service as order_service
from storefront.schemas.cart import CartItemCreate
from storefront.schemas.order import OrderCreate


def count(session, model):
    return len(session.exec(select(model)).all())


class TestCreateOrder:
    def test_cod_order(self, session, user_identity, make_product, make_address, fill_cart):
        saree = make_product(name="Jamdani Saree", price="2500", stock=5)
        kurta = make_product(name="Cotton Kurta", price="800", stock=10)
        fill_cart(user_identity, (saree, 2), (kurta, 3))
        address = make_address(user_identity)

        order = order_service.create_order(
            session,
            user_identity,
            OrderCreate(address_id=address.id, payment_method=PaymentMethod.COD, note=" leave at gate "),
        )

        assert order.order_number.startswith("ORD-")
        assert order.status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert order.user_id == user_identity.user_id
        assert order.subtotal == Decimal("7400.00")
        assert order.total == Decimal("7400.00")
        assert order.shipping_district == "Dhaka"
        assert order.note == "leave at gate"
        assert len(order.items) == 2
        assert {it.sku for it in order.items} == {saree.sku, kurta.sku}
        assert [h.to_status for h in order.history] == [OrderStatus.PENDING]

        session.refresh(saree)
        session.refresh(kurta)
        assert saree.stock == 3
        assert kurta.stock == 7

        payments = session.exec(select(Payment)).all()
        assert len(payments) == 1
        assert payments[0].status == PaymentRecordStatus.PENDING
        assert payments[0].amount == Decimal("7400.00")

    def test_user_cart_kept_as_empty_shell(self, session, user_identity, place_order):
        place_order(user_identity)
        cart = cart_repo.get_for_identity(session, user_identity)
        assert cart is not None
        assert cart_repo.list_items(session, cart.id) == []
        assert cart.coupon_code is None

    def test_gateway_order_awaits_payment(self, session, user_identity, place_order):
        order = place_order(user_identity, payment_method=PaymentMethod.CARD)
        assert order.payment_status == PaymentStatus.AWAITING_PAYMENT
        assert count(session, Payment) == 0

    def test_guest_order(self, session, guest_identity, make_product, make_address, fill_cart):
        fill_cart(guest_identity, (make_product(), 1))
        address = make_address(guest_identity, district="Sylhet")

        order = order_service.create_order(
            session,
            guest_identity,
            OrderCreate(
                address_id=address.id,
                payment_method=PaymentMethod.BKASH,
                guest_email="guest@example.com",
            ),
        )

        assert order.user_id is None
        assert order.guest_email == "guest@example.com"
        assert order.guest_full_name == "Rahim Uddin"
        assert order.payment_status == PaymentStatus.AWAITING_PAYMENT
        assert cart_repo.get_for_identity(session, guest_identity) is None

    def test_item_snapshot_survives_product_changes(self, session, user_identity, make_product, place_order):
        product = make_product(name="Nakshi Kantha", price="1500")
        order = place_order(user_identity, product=product, quantity=1)

        product.name = "Renamed"
        product.price = Decimal("9999")
        session.add(product)
        session.commit()

        reread = order_service.get_user_order(session, user_identity, order.order_number)
        assert reread.items[0].product_name == "Nakshi Kantha"
        assert reread.items[0].unit_price == Decimal("1500.00")
        assert reread.items[0].line_total == Decimal("1500.00")

    def test_coupon_usage_incremented(
        self, session, user_identity, make_product, make_address, make_coupon, fill_cart
    ):
        coupon = make_coupon("SAVE20", value="20", max_discount=Decimal("800"), usage_limit=10)
        fill_cart(user_identity, (make_product(price="2500"), 2))
        address = make_address(user_identity)

        order = order_service.create_order(
            session,
            user_identity,
            OrderCreate(address_id=address.id, payment_method=PaymentMethod.COD, coupon_code="save20"),
        )

        assert order.coupon_code == "SAVE20"
        assert order.discount == Decimal("800.00")
        assert order.total == Decimal("4200.00")
        session.refresh(coupon)
        assert coupon.usage_count == 1

    def test_stock_decrement_matches_ordered_quantities(
        self, session, user_identity, make_product, make_address, fill_cart
    ):
        products = [make_product(name=f"Item {i}", price="100", stock=20) for i in range(3)]
        quantities = [1, 4, 7]
        fill_cart(user_identity, *zip(products, quantities))
        address = make_address(user_identity)
        before = sum(p.stock for p in products)

        order_service.create_order(
            session,
            user_identity,
            OrderCreate(address_id=address.id, payment_method=PaymentMethod.COD),
        )

        for p in products:
            session.refresh(p)
        assert before - sum(p.stock for p in products) == sum(quantities)


class TestValidationFailures:
    def test_empty_cart(self, session, user_identity, make_address):
        address = make_address(user_identity)
        with pytest.raises(ValidationFailed) as exc:
            order_service.create_order(
                session,
                user_identity,
                OrderCreate(address_id=address.id, payment_method=PaymentMethod.COD),
            )
        assert exc.value.errors == ["Cart is empty"]
        assert exc.value.status_code == 400

    def test_all_errors_returned_and_nothing_written(
        self, session, user_identity, make_product, make_address, fill_cart
    ):
        a = make_product(name="A", stock=5)
        b = make_product(name="B", stock=5)
        fill_cart(user_identity, (a, 3), (b, 3))
        a.stock = 1
        b.stock = 2
        session.add(a)
        session.add(b)
        session.commit()
        address = make_address(user_identity)

        with pytest.raises(ValidationFailed) as exc:
            order_service.create_order(
                session,
                user_identity,
                OrderCreate(address_id=address.id, payment_method=PaymentMethod.COD),
            )

        assert len(exc.value.errors) == 2
        assert count(session, Order) == 0
        session.refresh(a)
        assert a.stock == 1

    def test_variant_lines_over_shared_stock_fail_validation(
        self, session, user_identity, make_product, make_address
    ):
        saree = make_product(name="Jamdani Saree", stock=6)
        for _ in range(2):
            cart_service.add_item(
                session,
                user_identity,
                CartItemCreate(product_id=saree.id, variant_id=uuid.uuid4(), quantity=3),
            )
        saree.stock = 5
        session.add(saree)
        session.commit()
        address = make_address(user_identity)

        with pytest.raises(ValidationFailed) as exc:
            order_service.create_order(
                session,
                user_identity,
                OrderCreate(address_id=address.id, payment_method=PaymentMethod.COD),
            )

        assert exc.value.status_code == 400
        assert exc.value.errors == ["Not enough stock for Jamdani Saree (have 5, requested 6)"]
        assert count(session, Order) == 0
        session.refresh(saree)
        assert saree.stock == 5


class TestConcurrency:
    def test_stock_race_lost(self, session, user_identity, make_product, make_address, fill_cart, monkeypatch):
        product = make_product(name="Last Saree", stock=2)
        fill_cart(user_identity, (product, 2))
        address = make_address(user_identity)

        original = order_service.checkout_service.evaluate

        def evaluate_then_sell_out(*args, **kwargs):
            ctx = original(*args, **kwargs)
            # A concurrent checkout takes the last unit after validation
            product.stock = 1
            session.add(product)
            session.commit()
            return ctx

        monkeypatch.setattr(order_service.checkout_service, "evaluate", evaluate_then_sell_out)

        with pytest.raises(StockRaceLost) as exc:
            order_service.create_order(
                session,
                user_identity,
                OrderCreate(address_id=address.id, payment_method=PaymentMethod.COD),
            )

        assert isinstance(exc.value, CheckoutConflict)
        assert exc.value.status_code == 409
        assert count(session, Order) == 0
        assert count(session, OrderItem) == 0
        session.refresh(product)
        assert product.stock == 1
        cart = cart_repo.get_for_identity(session, user_identity)
        assert len(cart_repo.list_items(session, cart.id)) == 1

    def test_coupon_limit_race_rolls_back(
        self, session, user_identity, make_product, make_address, make_coupon, fill_cart, monkeypatch
    ):
        coupon = make_coupon("ONCE", value="10", usage_limit=1)
        product = make_product(stock=5)
        fill_cart(user_identity, (product, 1))
        address = make_address(user_identity)

        original = order_service.checkout_service.evaluate

        def evaluate_then_redeem(*args, **kwargs):
            ctx = original(*args, **kwargs)
            coupon.usage_count = 1
            session.add(coupon)
            session.commit()
            return ctx

        monkeypatch.setattr(order_service.checkout_service, "evaluate", evaluate_then_redeem)

        with pytest.raises(ValidationFailed) as exc:
            order_service.create_order(
                session,
                user_identity,
                OrderCreate(address_id=address.id, payment_method=PaymentMethod.COD, coupon_code="ONCE"),
            )

        assert "usage limit" in exc.value.errors[0]
        assert count(session, Order) == 0
        session.refresh(product)
        assert product.stock == 5
        assert session.exec(select(Coupon)).one().usage_count == 1

    def test_order_number_collision_is_retried(self, session, user_identity, place_order, monkeypatch):
        taken = order_service.number_generator.next(session)
        first = place_order(user_identity)
        assert first.order_number == taken

        # Make the next generated number collide once
        calls = []
        original = order_service.number_generator.next

        def next_with_collision(session_, now=None, offset=0):
            calls.append(offset)
            if offset == 0:
                return taken
            return original(session_, now, offset)

        monkeypatch.setattr(order_service.number_generator, "next", next_with_collision)

        second = place_order(user_identity)

        assert calls == [0, 1]
        assert second.order_number != taken
        assert count(session, Order) == 2
        assert count(session, OrderStatusHistory) == 2

    def test_order_number_conflict_after_max_attempts(self, session, user_identity, place_order, monkeypatch):
        first = place_order(user_identity)
        monkeypatch.setattr(
            order_service.number_generator,
            "next",
            lambda *args, **kwargs: first.order_number,
        )

        with pytest.raises(OrderNumberConflict) as exc:
            place_order(user_identity)

        assert exc.value.status_code == 409
        assert count(session, Order) == 1


class TestCustomerReads:
    def test_list_and_get(self, session, user_identity, place_order):
        order = place_order(user_identity)
        orders = order_service.list_user_orders(session, user_identity.user_id)
        assert [o.order_number for o in orders] == [order.order_number]

        detail = order_service.get_user_order(session, user_identity, order.order_number)
        assert detail.id == order.id

    def test_guest_reads_own_order(self, session, guest_identity, place_order):
        order = place_order(guest_identity)
        detail = order_service.get_user_order(session, guest_identity, order.order_number)
        assert detail.order_number == order.order_number

    def test_other_callers_get_404(self, session, user_identity, guest_identity, place_order):
        order = place_order(user_identity)
        with pytest.raises(Exception) as exc:
            order_service.get_user_order(session, guest_identity, order.order_number)
        assert exc.value.status_code == 404

    def test_orders_from_different_days_do_not_collide(self, session, user_identity, place_order):
        first = place_order(user_identity)
        stored = session.get(Order, first.id)
        stored.created_at = datetime.now(timezone.utc) - timedelta(days=3)
        stored.order_number = "ORD-20000101-0001"
        session.add(stored)
        session.commit()

        second = place_order(user_identity)
        assert second.order_number.endswith("-0001")
