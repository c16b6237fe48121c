from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from clients.catalog import CatalogClient
from clients.identity import DummyJsonIdentity, IdentityService
from db.store import Store, open_store
from services.commerce import CommerceState
from services.session import SessionManager


@dataclass
class StorefrontState:
    """
    Everything the screens share, owned by the app and handed down to them.

    Fields:
      - store: the persistent key-value store
      - session: token lifecycle and current user
      - commerce: cart + wishlist, scoped to the signed-in user
      - catalog: read-only product catalog client
    """

    store: Store
    session: SessionManager
    commerce: CommerceState
    catalog: CatalogClient

    @classmethod
    def create(
        cls,
        store: Optional[Store] = None,
        identity: Optional[IdentityService] = None,
        catalog: Optional[CatalogClient] = None,
    ) -> "StorefrontState":
        store = store if store is not None else open_store()
        session = SessionManager(identity or DummyJsonIdentity(), store)
        commerce = CommerceState(store)
        commerce.bind(session)
        return cls(
            store=store,
            session=session,
            commerce=commerce,
            catalog=catalog or CatalogClient(),
        )

    async def start(self):
        """Resolve the persisted session; the commerce scope follows via the listener."""
        return await self.session.bootstrap()

    def logout(self) -> None:
        self.session.logout()
