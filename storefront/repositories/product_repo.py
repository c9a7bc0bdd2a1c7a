# storefront/repositories/product_repo.py
import uuid

from sqlalchemy import update
from sqlmodel import Session, select

from storefront.models.product import Product


class ProductRepository:
    """
    Data access for the catalog fields checkout needs.

    Stock changes are single UPDATE statements (stock = stock - :qty) so
    concurrent checkouts never overwrite each other's decrement. They flush
    but never commit; the caller owns the transaction.
    """

    def get_by_id(self, session: Session, product_id: uuid.UUID) -> Product | None:
        return session.get(Product, product_id)

    def get_many(
        self,
        session: Session,
        product_ids: list[uuid.UUID],
    ) -> dict[uuid.UUID, Product]:
        if not product_ids:
            return {}
        stmt = select(Product).where(Product.id.in_(product_ids))
        return {p.id: p for p in session.exec(stmt).all()}

    def create(self, session: Session, product: Product) -> Product:
        session.add(product)
        session.commit()
        session.refresh(product)
        return product

    def decrement_stock(
        self,
        session: Session,
        product_id: uuid.UUID,
        quantity: int,
    ) -> int | None:
        """
        Atomically subtract quantity and return the resulting stock.

        Returns None if the product row does not exist.
        """
        return self._adjust_stock(session, product_id, -quantity)

    def increment_stock(
        self,
        session: Session,
        product_id: uuid.UUID,
        quantity: int,
    ) -> int | None:
        return self._adjust_stock(session, product_id, quantity)

    def _adjust_stock(
        self,
        session: Session,
        product_id: uuid.UUID,
        delta: int,
    ) -> int | None:
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + delta)
            .execution_options(synchronize_session=False)
        )
        result = session.exec(stmt)
        if result.rowcount == 0:
            return None

        product = session.get(Product, product_id)
        if product is not None:
            # Identity map copy is stale after a bulk UPDATE
            session.refresh(product, attribute_names=["stock"])
            return product.stock

        return session.exec(
            select(Product.stock).where(Product.id == product_id)
        ).one()
