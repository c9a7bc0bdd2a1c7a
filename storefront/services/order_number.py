# storefront/services/order_number.py
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlmodel import Session

from storefront.core.clock import as_utc, utcnow
from storefront.repositories.order_repo import OrderRepository

ORDER_NUMBER_PREFIX = "ORD"


class OrderNumberCollision(Exception):
    """
    The generated number was already taken (unique constraint on
    orders.order_number). Retry the whole creation unit with a larger offset.
    """


class OrderNumberGenerator:
    """
    ORD-YYYYMMDD-NNNN, NNNN = orders created today + 1 + offset.

    "Today" is the business calendar day in the configured timezone.
    The count alone is not race-free; the unique constraint is the guard
    and callers retry with an increasing offset on collision.
    """

    def __init__(self, order_repo: OrderRepository, tz_name: str = "Asia/Dhaka"):
        self.order_repo = order_repo
        self.tz = ZoneInfo(tz_name)

    def day_bounds(self, now: datetime) -> tuple[datetime, datetime]:
        """
        [start, end) of the business day containing `now`, in UTC.
        """
        local_day = as_utc(now).astimezone(self.tz).date()
        start = datetime.combine(local_day, time.min, tzinfo=self.tz)
        end = datetime.combine(local_day + timedelta(days=1), time.min, tzinfo=self.tz)
        return start.astimezone(timezone.utc), end.astimezone(timezone.utc)

    def next(self, session: Session, now: datetime | None = None, offset: int = 0) -> str:
        now = as_utc(now) or utcnow()
        start, end = self.day_bounds(now)
        count = self.order_repo.count_created_between(session, start, end)
        sequence = count + 1 + offset
        day = now.astimezone(self.tz).strftime("%Y%m%d")
        return f"{ORDER_NUMBER_PREFIX}-{day}-{sequence:04d}"
