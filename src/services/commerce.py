# cart and wishlist collections; synchronous, persisted to the store after every mutation
from __future__ import annotations

import time
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union

from db.models import CartItem, OrderSummary, Product, WishlistItem
from db.store import CART_KEY, WISHLIST_KEY, Store, scoped_key
from services import pricing
from services.session import SessionManager, SessionState
from utils.errors import StorefrontError
from utils.logger import get_logger

_logger = get_logger(__name__)

GUEST_SCOPE = "guest"

ItemT = TypeVar("ItemT", CartItem, WishlistItem)


class _Collection(Generic[ItemT]):
    """
    Ordered collection with at most one entry per product id.
    Subclasses decide how an item is built and (de)serialised.
    """

    base_key: str = ""

    def __init__(self, store: Store, scope: str = GUEST_SCOPE):
        self._store = store
        self._scope = scope
        self._items: Dict[int, ItemT] = {}
        self._last_id = 0
        self.persisted = True

    @property
    def key(self) -> str:
        return scoped_key(self.base_key, self._scope)

    @property
    def scope(self) -> str:
        return self._scope

    @property
    def items(self) -> List[ItemT]:
        return list(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self.items)

    def contains(self, product_id: int) -> bool:
        return product_id in self._items

    def get(self, product_id: int) -> Optional[ItemT]:
        return self._items.get(product_id)

    def remove(self, product_id: int) -> None:
        if self._items.pop(product_id, None) is not None:
            self._persist()

    def clear(self) -> None:
        self._items.clear()
        self._persist()

    def _next_id(self) -> int:
        # millisecond clock, bumped so ids stay unique inside the collection
        self._last_id = max(int(time.time() * 1000), self._last_id + 1)
        return self._last_id

    def _persist(self) -> bool:
        self.persisted = self._store.set_json(self.key, self.snapshot())
        return self.persisted

    def snapshot(self) -> List[Dict[str, Any]]:
        return [item.to_dict() for item in self._items.values()]

    def _parse(self, raw: Dict[str, Any]) -> ItemT:
        raise NotImplementedError

    def _merge(self, existing: ItemT, incoming: ItemT) -> ItemT:
        return existing

    def load(self, raw: Any) -> None:
        """Replace the in-memory collection from a snapshot; bad data is skipped, not fatal."""
        self._items.clear()
        if raw is None:
            return
        if not isinstance(raw, list):
            _logger.warning(f"Ignoring {self.key}: expected a list, got {type(raw).__name__}.")
            return
        for entry in raw:
            try:
                item = self._parse(entry)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                _logger.warning(f"Skipping malformed entry in {self.key}: {e}")
                continue
            pid = item.product.id
            self._items[pid] = self._merge(self._items[pid], item) if pid in self._items else item
            self._last_id = max(self._last_id, item.id)

    def rehydrate(self, scope: Optional[str] = None) -> None:
        if scope is not None:
            self._scope = scope
        self.load(self._store.get_json(self.key))
        _logger.debug(f"Loaded {len(self)} entries from {self.key}.")


class Cart(_Collection[CartItem]):
    base_key = CART_KEY

    @staticmethod
    def _clamp(quantity: int, stock: int) -> int:
        return max(1, min(int(quantity), stock))

    def add(self, product: Product, quantity: int = 1) -> Optional[CartItem]:
        """
        Add quantity of product, merging into the existing line for the same product.
        The result is clamped to [1, stock]; a product with no stock is not added.
        """
        if product.stock < 1:
            _logger.info(f"Product {product.id} is out of stock; not added to cart.")
            return None
        existing = self._items.get(product.id)
        if existing:
            item = CartItem(
                id=existing.id,
                product=product,
                quantity=self._clamp(existing.quantity + quantity, product.stock),
            )
        else:
            item = CartItem(
                id=self._next_id(),
                product=product,
                quantity=self._clamp(quantity, product.stock),
            )
        self._items[product.id] = item
        self._persist()
        return item

    def set_quantity(self, product_id: int, quantity: int) -> Optional[CartItem]:
        existing = self._items.get(product_id)
        if existing is None:
            return None
        if quantity < 1:
            self.remove(product_id)
            return None
        item = CartItem(
            id=existing.id,
            product=existing.product,
            quantity=min(int(quantity), existing.product.stock),
        )
        self._items[product_id] = item
        self._persist()
        return item

    def increment(self, product_id: int) -> Optional[CartItem]:
        existing = self._items.get(product_id)
        if existing is None:
            return None
        return self.set_quantity(product_id, existing.quantity + 1)

    def decrement(self, product_id: int) -> Optional[CartItem]:
        existing = self._items.get(product_id)
        if existing is None:
            return None
        return self.set_quantity(product_id, existing.quantity - 1)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self._items.values())

    def get_total(self) -> float:
        return pricing.subtotal(self._items.values())

    def summary(self) -> OrderSummary:
        return pricing.summarize(self.items)

    def _parse(self, raw: Dict[str, Any]) -> CartItem:
        product = Product.from_api(raw["product"])
        quantity = int(raw.get("quantity", 1))
        if product.stock < 1 or quantity < 1:
            raise ValueError(f"unusable quantity {quantity} for product {product.id}")
        return CartItem(
            id=int(raw["id"]),
            product=product,
            quantity=self._clamp(quantity, product.stock),
        )

    def _merge(self, existing: CartItem, incoming: CartItem) -> CartItem:
        return CartItem(
            id=existing.id,
            product=incoming.product,
            quantity=self._clamp(existing.quantity + incoming.quantity, incoming.product.stock),
        )


class Wishlist(_Collection[WishlistItem]):
    base_key = WISHLIST_KEY

    def add(self, product: Product) -> WishlistItem:
        """Idempotent: adding a product already present returns the existing entry."""
        existing = self._items.get(product.id)
        if existing:
            return existing
        item = WishlistItem(id=self._next_id(), product=product)
        self._items[product.id] = item
        self._persist()
        return item

    def toggle(self, product: Product) -> bool:
        """Add if absent, remove if present. Returns whether it is now wishlisted."""
        if self.contains(product.id):
            self.remove(product.id)
            return False
        self.add(product)
        return True

    def _parse(self, raw: Dict[str, Any]) -> WishlistItem:
        return WishlistItem(id=int(raw["id"]), product=Product.from_api(raw["product"]))


class CommerceState:
    """
    Owns the cart and the wishlist for the current scope (user id, or guest).
    """

    def __init__(self, store: Store, scope: str = GUEST_SCOPE):
        self.store = store
        self.cart = Cart(store, scope)
        self.wishlist = Wishlist(store, scope)
        self.load_scope(scope)

    @property
    def scope(self) -> str:
        return self.cart.scope

    def load_scope(self, scope: str) -> None:
        self.cart.rehydrate(scope)
        self.wishlist.rehydrate(scope)

    def move_to_cart(self, item: Union[WishlistItem, int], quantity: int = 1) -> bool:
        """
        Move a wishlist entry into the cart: insert first, then remove from the
        wishlist. The wishlist entry is kept unless the cart insert succeeded
        and was persisted.
        """
        product_id = item.product.id if isinstance(item, WishlistItem) else item
        entry = self.wishlist.get(product_id)
        if entry is None:
            return False
        try:
            added = self.cart.add(entry.product, quantity)
        except StorefrontError as e:
            _logger.warning(f"Move to cart failed for product {product_id}: {e}")
            return False
        if added is None or not self.cart.persisted:
            _logger.warning(f"Product {product_id} kept in wishlist; cart insert did not stick.")
            return False
        self.wishlist.remove(product_id)
        return True

    def summary(self) -> OrderSummary:
        return self.cart.summary()

    def clear(self) -> None:
        self.cart.clear()
        self.wishlist.clear()

    def drop_scope(self) -> None:
        """Forget the current scope entirely: memory and store keys, then fall back to guest."""
        self.store.remove(self.cart.key)
        self.store.remove(self.wishlist.key)
        self.load_scope(GUEST_SCOPE)

    def bind(self, session: SessionManager) -> None:
        """Follow the session: load the user's collections on login, drop them on logout."""
        session.add_listener(self._on_session_change)
        if session.user is not None:
            self.load_scope(session.user.id)

    def _on_session_change(self, state: SessionState, session: SessionManager) -> None:
        if state is SessionState.AUTHENTICATED and session.user is not None:
            if self.scope != session.user.id:
                self.load_scope(session.user.id)
        elif state is SessionState.UNAUTHENTICATED and self.scope != GUEST_SCOPE:
            self.drop_scope()
