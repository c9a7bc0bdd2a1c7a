"""Tests for the daily order number generator."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from storefront.models.order import Order, PaymentMethod, PaymentStatus
from storefront.repositories.order_repo import OrderRepository
from storefront.services.order_number import OrderNumberGenerator

# 2026-03-01 20:00 UTC is already 2026-03-02 02:00 in Dhaka (UTC+6)
LATE_EVENING_UTC = datetime(2026, 3, 1, 20, 0, tzinfo=timezone.utc)


@pytest.fixture
def generator():
    return OrderNumberGenerator(OrderRepository(), "Asia/Dhaka")


@pytest.fixture
def insert_order(session):
    def _insert(created_at: datetime, order_number: str | None = None) -> Order:
        order = Order(
            order_number=order_number or f"TEST-{uuid.uuid4().hex[:12]}",
            payment_method=PaymentMethod.COD,
            payment_status=PaymentStatus.PENDING,
            subtotal=Decimal("100"),
            shipping_cost=Decimal("60"),
            tax=Decimal("13.04"),
            total=Decimal("160"),
            shipping_full_name="Rahim Uddin",
            shipping_phone="01700000000",
            shipping_address_line1="House 12",
            shipping_district="Dhaka",
            shipping_division="Dhaka",
            created_at=created_at,
        )
        session.add(order)
        session.commit()
        return order

    return _insert


class TestOrderNumber:
    def test_first_number_of_the_day(self, session, generator):
        assert generator.next(session, LATE_EVENING_UTC) == "ORD-20260302-0001"

    def test_uses_business_timezone_for_the_date(self, session, generator):
        morning_utc = datetime(2026, 3, 1, 5, 0, tzinfo=timezone.utc)
        assert generator.next(session, morning_utc).startswith("ORD-20260301-")

    def test_counts_only_todays_orders(self, session, generator, insert_order):
        start, end = generator.day_bounds(LATE_EVENING_UTC)
        insert_order(start - timedelta(seconds=1))
        insert_order(start)
        insert_order(start + timedelta(hours=5))
        insert_order(end)

        assert generator.next(session, LATE_EVENING_UTC) == "ORD-20260302-0003"

    def test_offset_skips_ahead(self, session, generator):
        assert generator.next(session, LATE_EVENING_UTC, offset=2) == "ORD-20260302-0003"

    def test_numbers_increase_within_a_day(self, session, generator, insert_order):
        issued = []
        for minute in range(3):
            now = LATE_EVENING_UTC + timedelta(minutes=minute)
            number = generator.next(session, now)
            insert_order(now, number)
            issued.append(number)

        assert issued == sorted(issued)
        assert len(set(issued)) == 3
        assert issued[-1] == "ORD-20260302-0003"

    def test_day_bounds(self, generator):
        start, end = generator.day_bounds(LATE_EVENING_UTC)
        assert start == datetime(2026, 3, 1, 18, 0, tzinfo=timezone.utc)
        assert end - start == timedelta(days=1)

    def test_naive_datetimes_are_utc(self, session, generator):
        naive = LATE_EVENING_UTC.replace(tzinfo=None)
        assert generator.next(session, naive) == "ORD-20260302-0001"
