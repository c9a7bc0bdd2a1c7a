# storefront/core/identity.py
import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class UserIdentity:
    """Authenticated customer; carts and orders are keyed by user id."""

    user_id: uuid.UUID


@dataclass(frozen=True)
class GuestIdentity:
    """Anonymous shopper identified by the X-Session-Token header."""

    session_token: str


# Exactly one of the two: a cart is scoped either to a user or to a guest
# session, never both.
CartIdentity = UserIdentity | GuestIdentity
