"""
Cart Engine

State transitions on a cart document. Every operation works on a copy of
the cart it is given and returns either the new cart or a CartFailure when a
precondition does not hold; the input cart is never modified.
"""

import math
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Callable, Optional, Union

from ..models.cart import Cart, CartItem

DEFAULT_MAX_QUANTITY = 999

PRODUCT_TOKEN_PATTERN = re.compile(r"(?:\d{3,}|\[\d{3,},\d{3,}\])+")
PRODUCT_ID_PATTERN = re.compile(r"\d{3,}")


class CartFailure(str, Enum):
    """Precondition failures reported back to the caller"""
    ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
    NOTHING_REMOVED = "NOTHING_REMOVED"
    CHILD_UPDATE_NOT_ALLOWED = "CHILD_UPDATE_NOT_ALLOWED"
    NO_PROMOTIONS = "NO_PROMOTIONS"

    @property
    def message(self) -> str:
        return FAILURE_MESSAGES[self]


FAILURE_MESSAGES = {
    CartFailure.ITEM_NOT_FOUND: "Unable to update item quantity. Item not found.",
    CartFailure.NOTHING_REMOVED: "Unable to update cart. Item not found.",
    CartFailure.CHILD_UPDATE_NOT_ALLOWED: "Child item quantity update not allowed",
    CartFailure.NO_PROMOTIONS: "Unable to remove promotion. Cart has no promotions.",
}

CartOutcome = Union[Cart, CartFailure]


def clamp_quantity(quantity: Union[int, float], max_quantity: int = DEFAULT_MAX_QUANTITY) -> int:
    """Round half up to a whole number and clamp to [1, max_quantity]"""
    magnitude = abs(quantity)
    if math.isnan(magnitude):
        return 1
    if magnitude >= max_quantity:
        return max_quantity
    rounded = int(Decimal(str(magnitude)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(1, min(rounded, max_quantity))


def _find(items: list[CartItem], product_id: Optional[str]) -> Optional[CartItem]:
    if product_id is None:
        return None
    return next((item for item in items if item.product_id == product_id), None)


def _find_parent_of(items: list[CartItem], product_id: str) -> Optional[CartItem]:
    return next((item for item in items if item.child_product_id == product_id), None)


def _copy(cart: Cart) -> Cart:
    return cart.model_copy(deep=True)


def add_item(cart: Cart, product_id: str, max_quantity: int = DEFAULT_MAX_QUANTITY) -> Cart:
    """Add one of `product_id`, incrementing an existing item"""
    updated = _copy(cart)
    item = _find(updated.items, product_id)
    if item:
        item.quantity = clamp_quantity(item.quantity + 1, max_quantity)
    else:
        updated.items.append(CartItem(product_id=product_id, quantity=1))
    return updated


def remove_item(cart: Cart, product_id: str) -> CartOutcome:
    """
    Remove an item together with any child linked to it.

    Removing a child only removes the child; its parent loses the link.
    """
    updated = _copy(cart)
    kept = [
        item
        for item in updated.items
        if item.product_id != product_id and item.parent_product_id != product_id
    ]
    if len(kept) == len(updated.items):
        return CartFailure.NOTHING_REMOVED

    for item in kept:
        if item.child_product_id == product_id:
            item.child_product_id = None
    updated.items = kept
    return updated


def update_quantity(
    cart: Cart,
    product_id: str,
    quantity: Optional[float],
    max_quantity: int = DEFAULT_MAX_QUANTITY,
) -> CartOutcome:
    """
    Set the quantity of a parent or standalone item.

    A zero or missing quantity removes the item and its child. Otherwise the
    quantity is clamped and copied onto the linked child.
    """
    updated = _copy(cart)
    item = _find(updated.items, product_id)
    if item is None:
        return CartFailure.ITEM_NOT_FOUND
    if item.parent_product_id:
        return CartFailure.CHILD_UPDATE_NOT_ALLOWED

    child = _find(updated.items, item.child_product_id)

    if not quantity:
        removed = {item.product_id}
        if child:
            removed.add(child.product_id)
        updated.items = [i for i in updated.items if i.product_id not in removed]
        return updated

    item.quantity = clamp_quantity(quantity, max_quantity)
    if child:
        child.quantity = item.quantity
    return updated


def add_promotion(cart: Cart, code: str) -> Cart:
    updated = _copy(cart)
    if updated.promotions is None:
        updated.promotions = []
    if code not in updated.promotions:
        updated.promotions.append(code)
    return updated


def remove_promotion(cart: Cart, code: str) -> CartOutcome:
    if cart.promotions is None:
        return CartFailure.NO_PROMOTIONS
    updated = _copy(cart)
    updated.promotions = [promotion for promotion in updated.promotions if promotion != code]
    return updated


def merge_carts(
    existing: Cart,
    incoming: Cart,
    max_quantity: int = DEFAULT_MAX_QUANTITY,
) -> Cart:
    """
    Merge the items and promotions of `incoming` into `existing`.

    Bundle links are carried across in both directions. A parent that is
    added again gets its quantity bumped by one and its child follows. A
    child takes the quantity of its parent. A parent whose child is already
    in the cart on its own is added without the link.
    """
    merged = _copy(existing)
    items = merged.items

    for source in incoming.items:
        new_item = source.model_copy()
        existing_item = _find(items, new_item.product_id)

        if existing_item and new_item.child_product_id:
            existing_item.child_product_id = new_item.child_product_id
        if existing_item and existing_item.parent_product_id:
            new_item.parent_product_id = existing_item.parent_product_id

        if existing_item:
            if new_item.parent_product_id:
                parent = _find_parent_of(items, new_item.product_id)
                if parent:
                    existing_item.quantity = parent.quantity
            else:
                existing_item.quantity = clamp_quantity(existing_item.quantity + 1, max_quantity)
                child = _find(items, existing_item.child_product_id)
                if child:
                    child.quantity = existing_item.quantity
            continue

        if new_item.parent_product_id:
            parent = _find_parent_of(items, new_item.product_id)
            if parent:
                new_item.quantity = parent.quantity
        if new_item.child_product_id and _find(items, new_item.child_product_id):
            new_item.child_product_id = None
        items.append(new_item)

    promotions = list(merged.promotions or [])
    for code in incoming.promotions or []:
        if code not in promotions:
            promotions.append(code)
    merged.promotions = promotions
    return merged


def parse_product_tokens(raw: Optional[str]) -> list[CartItem]:
    """
    Turn a productIds query value into cart items.

    "4369,4535" yields two items; "[4369,4535]" yields 4369 as a parent with
    4535 as its child. Each product id is used once: a bundle that names an
    id already seen is split into standalone items for the ids not yet seen.
    """
    if not raw:
        return []

    tokens = list(dict.fromkeys(PRODUCT_TOKEN_PATTERN.findall(raw)))
    items: list[CartItem] = []
    seen: set[str] = set()
    for token in tokens:
        ids = PRODUCT_ID_PATTERN.findall(token)
        if len(ids) >= 2 and ids[0] != ids[1] and not seen & {ids[0], ids[1]}:
            parent_id, child_id = ids[0], ids[1]
            seen.update((parent_id, child_id))
            items.append(CartItem(product_id=parent_id, child_product_id=child_id, quantity=1))
            items.append(CartItem(product_id=child_id, parent_product_id=parent_id, quantity=1))
        else:
            for product_id in ids[:2]:
                if product_id not in seen:
                    seen.add(product_id)
                    items.append(CartItem(product_id=product_id, quantity=1))
    return items


def resolve_links(cart: Cart) -> Cart:
    """Drop parent/child references that are not matched by the other side"""
    updated = _copy(cart)
    by_id: dict[str, CartItem] = {}
    for item in updated.items:
        by_id.setdefault(item.product_id, item)

    for item in updated.items:
        if item.child_product_id:
            child = by_id.get(item.child_product_id)
            if child is None or child.parent_product_id != item.product_id:
                item.child_product_id = None
        if item.parent_product_id:
            parent = by_id.get(item.parent_product_id)
            if parent is None or parent.child_product_id != item.product_id:
                item.parent_product_id = None
    return updated


class CartOperation(str, Enum):
    """Mutations exposed through the cart API"""
    ADD_ITEM = "addItem"
    REMOVE_ITEM = "removeItem"
    UPDATE_QUANTITY = "updateQuantity"
    ADD_PROMOTION = "addPromotion"
    REMOVE_PROMOTION = "removePromotion"
    MERGE = "merge"


@dataclass
class CartCommand:
    """A requested mutation and its arguments"""
    operation: CartOperation
    product_id: Optional[str] = None
    quantity: Optional[float] = None
    promotion: Optional[str] = None
    incoming: Optional[Cart] = None


Handler = Callable[[Cart, CartCommand, int], CartOutcome]

_HANDLERS: dict[CartOperation, Handler] = {
    CartOperation.ADD_ITEM: lambda cart, cmd, max_q: add_item(cart, cmd.product_id, max_q),
    CartOperation.REMOVE_ITEM: lambda cart, cmd, max_q: remove_item(cart, cmd.product_id),
    CartOperation.UPDATE_QUANTITY: lambda cart, cmd, max_q: update_quantity(
        cart, cmd.product_id, cmd.quantity, max_q
    ),
    CartOperation.ADD_PROMOTION: lambda cart, cmd, max_q: add_promotion(cart, cmd.promotion),
    CartOperation.REMOVE_PROMOTION: lambda cart, cmd, max_q: remove_promotion(cart, cmd.promotion),
    CartOperation.MERGE: lambda cart, cmd, max_q: merge_carts(cart, cmd.incoming or Cart.new(), max_q),
}


def apply_operation(
    cart: Cart,
    command: CartCommand,
    max_quantity: int = DEFAULT_MAX_QUANTITY,
) -> CartOutcome:
    """Run the handler registered for `command.operation`"""
    return _HANDLERS[command.operation](cart, command, max_quantity)
