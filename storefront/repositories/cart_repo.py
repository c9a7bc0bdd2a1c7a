# storefront/repositories/cart_repo.py
import uuid
from datetime import datetime

from sqlalchemy import or_
from sqlmodel import Session, select

from storefront.core.identity import CartIdentity, UserIdentity
from storefront.models.cart import Cart, CartItem


class CartRepository:
    """
    Data access for carts and cart lines.

    Methods used by the cart use cases commit immediately. The ones used
    inside the order transaction (discard_items, discard_cart) only flush.
    """

    # ---- Carts ----

    def get_for_identity(self, session: Session, identity: CartIdentity) -> Cart | None:
        if isinstance(identity, UserIdentity):
            stmt = select(Cart).where(Cart.user_id == identity.user_id)
        else:
            stmt = select(Cart).where(
                Cart.session_token == identity.session_token,
                Cart.user_id.is_(None),
            )
        return session.exec(stmt).first()

    def create_cart(self, session: Session, cart: Cart) -> Cart:
        session.add(cart)
        session.commit()
        session.refresh(cart)
        return cart

    def update_cart(self, session: Session, cart: Cart) -> Cart:
        session.add(cart)
        session.commit()
        session.refresh(cart)
        return cart

    def delete_cart(self, session: Session, cart: Cart) -> None:
        self.discard_cart(session, cart)
        session.commit()

    def list_expired_guest_carts(
        self,
        session: Session,
        now: datetime,
        idle_cutoff: datetime,
    ) -> list[Cart]:
        stmt = select(Cart).where(
            Cart.user_id.is_(None),
            or_(Cart.expires_at < now, Cart.updated_at < idle_cutoff),
        )
        return list(session.exec(stmt).all())

    # ---- Items ----

    def list_items(self, session: Session, cart_id: uuid.UUID) -> list[CartItem]:
        stmt = (
            select(CartItem)
            .where(CartItem.cart_id == cart_id)
            .order_by(CartItem.created_at)
        )
        return list(session.exec(stmt).all())

    def get_item(self, session: Session, item_id: uuid.UUID) -> CartItem | None:
        return session.get(CartItem, item_id)

    def get_line(
        self,
        session: Session,
        cart_id: uuid.UUID,
        product_id: uuid.UUID,
        variant_id: uuid.UUID | None,
    ) -> CartItem | None:
        stmt = select(CartItem).where(
            CartItem.cart_id == cart_id,
            CartItem.product_id == product_id,
        )
        if variant_id is None:
            stmt = stmt.where(CartItem.variant_id.is_(None))
        else:
            stmt = stmt.where(CartItem.variant_id == variant_id)
        return session.exec(stmt).first()

    def create_item(self, session: Session, item: CartItem) -> CartItem:
        session.add(item)
        session.commit()
        session.refresh(item)
        return item

    def update_item(self, session: Session, item: CartItem) -> CartItem:
        session.add(item)
        session.commit()
        session.refresh(item)
        return item

    def delete_item(self, session: Session, item: CartItem) -> None:
        session.delete(item)
        session.commit()

    def clear_items(self, session: Session, cart_id: uuid.UUID) -> None:
        self.discard_items(session, cart_id)
        session.commit()

    # ---- Transaction helpers (no commit) ----

    def stage_item(self, session: Session, item: CartItem) -> CartItem:
        session.add(item)
        session.flush()
        return item

    def discard_items(self, session: Session, cart_id: uuid.UUID) -> int:
        items = self.list_items(session, cart_id)
        for item in items:
            session.delete(item)
        session.flush()
        return len(items)

    def discard_cart(self, session: Session, cart: Cart) -> None:
        self.discard_items(session, cart.id)
        session.delete(cart)
        session.flush()
