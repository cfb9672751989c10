"""Cart storage on top of the key/value store"""

import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from ..models.cart import CART_SCHEMA_VERSION, Cart
from .store import KeyValueStore

logger = logging.getLogger(__name__)


class MalformedCartError(Exception):
    """A stored cart document could not be read back"""
    pass


class CartConflictError(Exception):
    """The cart changed between load and save; the caller may retry"""
    pass


@dataclass
class StoredCart:
    """A cart together with the raw document it was loaded from"""
    key: str
    cart: Cart
    raw: Optional[str] = None

    @property
    def exists(self) -> bool:
        return self.raw is not None


class CartRepository:
    """
    Reads and writes cart documents.

    Every write refreshes the cart TTL. With optimistic locking enabled a
    write only succeeds if the stored document is still the one that was
    loaded; otherwise CartConflictError is raised. With it disabled the last
    write wins.
    """

    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: int,
        optimistic_locking: bool = True,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.optimistic_locking = optimistic_locking

    @staticmethod
    def parse(key: str, raw: str) -> Cart:
        """Validate a stored document"""
        try:
            cart = Cart.model_validate_json(raw)
        except ValidationError as e:
            raise MalformedCartError(f"Cart {key} is malformed: {e}") from e

        if cart.schema_version != CART_SCHEMA_VERSION:
            raise MalformedCartError(
                f"Cart {key} has unsupported schema version {cart.schema_version}"
            )
        return cart

    @staticmethod
    def serialize(cart: Cart) -> str:
        return cart.model_dump_json(by_alias=True, exclude_none=True)

    async def load(self, key: str) -> Optional[StoredCart]:
        """Get a cart by key, refreshing its TTL; None if it does not exist"""
        raw = await self.store.get(key)
        if raw is None:
            logger.debug(f"Cart {key} not found")
            return None

        cart = self.parse(key, raw)
        await self.store.expire(key, self.ttl_seconds)
        logger.debug(f"Cart {key} retrieved")
        return StoredCart(key=key, cart=cart, raw=raw)

    async def load_or_new(self, key: str) -> StoredCart:
        """Get a cart by key, or a new empty cart that is not yet persisted"""
        stored = await self.load(key)
        return stored or StoredCart(key=key, cart=Cart.new())

    async def save(self, stored: StoredCart) -> StoredCart:
        """Persist a cart, bumping its version"""
        cart = stored.cart.model_copy(update={"version": stored.cart.version + 1})
        raw = self.serialize(cart)

        if self.optimistic_locking:
            written = await self.store.compare_and_set(
                stored.key, stored.raw, raw, self.ttl_seconds
            )
            if not written:
                logger.warning(f"Concurrent modification of cart {stored.key}")
                raise CartConflictError(f"Cart {stored.key} was modified concurrently")
        else:
            await self.store.set(stored.key, raw, self.ttl_seconds)

        logger.debug(f"Cart {stored.key} saved at version {cart.version}")
        return StoredCart(key=stored.key, cart=cart, raw=raw)

    async def create(self, key: str, cart: Cart) -> StoredCart:
        """Persist a cart under a key that is expected to be free"""
        return await self.save(StoredCart(key=key, cart=cart))

    async def rename(self, old_key: str, new_key: str) -> None:
        """Move a cart to a new key; raises KeyNotFoundError if it is gone"""
        await self.store.rename(old_key, new_key)
        await self.store.expire(new_key, self.ttl_seconds)
        logger.info(f"Cart {old_key} renamed to {new_key}")

    async def delete(self, key: str) -> None:
        await self.store.delete(key)
        logger.info(f"Cart {key} deleted")
