"""
Cart Service

Orchestrates cart requests: loads the cart, applies the requested change,
persists it and reconciles it against the catalog. Also implements the
storefront redirect protocol that creates, merges or claims carts.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Union

from ..database.carts import CartRepository, StoredCart
from ..database.store import KeyNotFoundError
from ..models.cart import Cart, CartResponse
from .cart_engine import (
    DEFAULT_MAX_QUANTITY,
    CartCommand,
    CartFailure,
    apply_operation,
    merge_carts,
    parse_product_tokens,
    resolve_links,
)
from .cart_response import create_cart_response
from .catalog_client import CatalogClient

logger = logging.getLogger(__name__)


class RedirectError(Exception):
    """A redirect request that cannot produce a cart"""
    pass


def store_key_of(cart_key: str) -> str:
    """Store key part of a `{owner}|{store}` cart key"""
    parts = cart_key.split("|")
    return parts[1] if len(parts) > 1 else ""


@dataclass
class CartReference:
    """Cookie value linking a browser to its cart: `{key};{T|F}`"""
    key: str
    identified: bool = False

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["CartReference"]:
        if not value:
            return None
        key, _, flag = value.partition(";")
        if not key:
            return None
        return cls(key=key, identified=flag == "T")

    @property
    def store_key(self) -> str:
        return store_key_of(self.key)

    def cookie_value(self) -> str:
        return f"{self.key};{'T' if self.identified else 'F'}"


@dataclass
class RedirectOutcome:
    """Cart a redirect ended up on"""
    cart_key: str
    identified: bool

    @property
    def reference(self) -> CartReference:
        return CartReference(key=self.cart_key, identified=self.identified)


class CartService:
    """
    Cart operations exposed over HTTP.

    Usage:
        service = CartService(repository, catalog)
        response = await service.get_cart("abc|NAMER")
    """

    def __init__(
        self,
        repository: CartRepository,
        catalog: CatalogClient,
        max_quantity: int = DEFAULT_MAX_QUANTITY,
    ):
        self.repository = repository
        self.catalog = catalog
        self.max_quantity = max_quantity

    async def _persist(self, stored: StoredCart) -> StoredCart:
        return await self.repository.save(
            StoredCart(key=stored.key, cart=resolve_links(stored.cart), raw=stored.raw)
        )

    async def _generate_response(self, stored: StoredCart) -> CartResponse:
        """Reconcile a stored cart and write back any corrections"""
        cart = stored.cart
        if not cart.items:
            return CartResponse(promotions=list(cart.promotions or []))

        price_ids = [item.product_id for item in cart.items]
        price_ids += [item.parent_product_id for item in cart.items if item.parent_product_id]
        snapshot = await self.catalog.get_offerings_by_price_ids(store_key_of(stored.key), price_ids)

        response, corrected = create_cart_response(cart, snapshot)
        if corrected is not None:
            logger.info(f"Persisting {len(response.errors)} correction(s) to cart {stored.key}")
            await self._persist(StoredCart(key=stored.key, cart=corrected, raw=stored.raw))
        return response

    async def get_cart(self, cart_id: str) -> CartResponse:
        stored = await self.repository.load(cart_id)
        if stored is None:
            return CartResponse()
        return await self._generate_response(stored)

    async def update_cart(self, cart_id: str, command: CartCommand) -> Union[CartResponse, CartFailure]:
        """Apply a mutation; a missing cart is created empty first"""
        stored = await self.repository.load_or_new(cart_id)

        outcome = apply_operation(stored.cart, command, self.max_quantity)
        if isinstance(outcome, CartFailure):
            logger.info(f"{command.operation.value} on cart {cart_id} rejected: {outcome.value}")
            return outcome

        saved = await self._persist(StoredCart(key=cart_id, cart=outcome, raw=stored.raw))
        return await self._generate_response(saved)

    async def redirect_cart(
        self,
        cart_reference: Optional[CartReference],
        product_ids: Optional[str],
        promotions: Optional[list[str]],
        user_id: Optional[str],
        store_key: Optional[str],
    ) -> RedirectOutcome:
        """
        Land a shopper coming from the storefront on a cart.

        - signed-in user with an anonymous cart of the same store: the
          anonymous cart is renamed to the user's key
        - existing cart of the same store: requested items are merged in
        - otherwise: a new anonymous cart is created
        """
        items = parse_product_tokens(product_ids)
        if not items:
            raise RedirectError("productIds is undefined.")
        if not store_key:
            raise RedirectError("storeKey is undefined.")

        requested = Cart.new(items=items, promotions=list(dict.fromkeys(promotions or [])))
        same_store = cart_reference is not None and cart_reference.store_key == store_key

        if user_id and same_store and not cart_reference.identified:
            user_key = f"{user_id}|{store_key}"
            try:
                await self.repository.rename(cart_reference.key, user_key)
            except KeyNotFoundError:
                logger.info(f"Anonymous cart {cart_reference.key} expired, seeding {user_key}")
                await self._merge_into(user_key, requested)
            return RedirectOutcome(cart_key=user_key, identified=True)

        if same_store:
            await self._merge_into(cart_reference.key, requested)
            return RedirectOutcome(cart_key=cart_reference.key, identified=cart_reference.identified)

        cart_key = f"{uuid.uuid4()}|{store_key}"
        seeded = merge_carts(Cart.new(), requested, self.max_quantity)
        await self.repository.create(cart_key, resolve_links(seeded))
        logger.info(f"Created cart {cart_key}")
        return RedirectOutcome(cart_key=cart_key, identified=False)

    async def _merge_into(self, cart_key: str, incoming: Cart) -> StoredCart:
        stored = await self.repository.load_or_new(cart_key)
        merged = merge_carts(stored.cart, incoming, self.max_quantity)
        return await self._persist(StoredCart(key=cart_key, cart=merged, raw=stored.raw))

    async def claim_cart(self, cart_key: str, new_key: str) -> RedirectOutcome:
        """Move an anonymous cart to the key of the user who signed in"""
        await self.repository.rename(cart_key, new_key)
        return RedirectOutcome(cart_key=new_key, identified=True)

    async def delete_cart(self, cart_id: str) -> None:
        await self.repository.delete(cart_id)

    async def get_item_count(self, cart_id: str) -> int:
        stored = await self.repository.load(cart_id)
        if stored is None:
            return 0
        return sum(item.quantity for item in stored.cart.items)
