# storefront/repositories/address_repo.py
import uuid

from sqlmodel import Session

from storefront.core.identity import CartIdentity, UserIdentity
from storefront.models.address import Address


class AddressRepository:
    """
    Address book lookups scoped to the caller.
    """

    def get_for_owner(
        self,
        session: Session,
        address_id: uuid.UUID,
        identity: CartIdentity,
    ) -> Address | None:
        address = session.get(Address, address_id)
        if address is None:
            return None

        if isinstance(identity, UserIdentity):
            owned = address.user_id == identity.user_id
        else:
            owned = address.user_id is None and address.session_token == identity.session_token

        return address if owned else None

    def create(self, session: Session, address: Address) -> Address:
        session.add(address)
        session.commit()
        session.refresh(address)
        return address
