"""
Cart Validation

Business rules applied while reconciling a cart against the catalog. Both
checks are pure: they look at offerings/line items and return an error
record or None.
"""

from dataclasses import dataclass
from typing import Any, Optional, Union

from ..models.cart import CartItem, CartValidationError, LineItem, RemediationAction
from ..models.catalog import Offering, OfferingType

ERROR_MULTIPLE_BIC = 11000
ERROR_INVALID_ITEM = 12000
ERROR_INCOMPATIBLE_TYPES = 13000
ERROR_INCOMPATIBLE_SUBSCRIPTIONS = 14000
ERROR_MAINTENANCE_WITHOUT_PERPETUAL = 15000

SUBSCRIPTION_TYPES = (OfferingType.BIC_SUBSCRIPTION, OfferingType.META_SUBSCRIPTION)


@dataclass(frozen=True)
class ErrorTemplate:
    """Fixed description of a validation error"""
    code: int
    message: str
    priority: int
    action: RemediationAction


ERRORS: dict[int, ErrorTemplate] = {
    template.code: template
    for template in (
        ErrorTemplate(
            ERROR_MULTIPLE_BIC,
            "Adding multiple BIC subscriptions is not supported",
            10000,
            RemediationAction.SET_QUANTITY_TO_ONE,
        ),
        ErrorTemplate(
            ERROR_INVALID_ITEM,
            "Invalid item in cart. Item will be removed from cart",
            100,
            RemediationAction.REMOVE,
        ),
        ErrorTemplate(
            ERROR_INCOMPATIBLE_TYPES,
            "Incompatible product offering types",
            1000,
            RemediationAction.USER_ACTION,
        ),
        ErrorTemplate(
            ERROR_INCOMPATIBLE_SUBSCRIPTIONS,
            "Incompatible subscriptions",
            1000,
            RemediationAction.USER_ACTION,
        ),
        ErrorTemplate(
            ERROR_MAINTENANCE_WITHOUT_PERPETUAL,
            "Cannot add maintenance subscription without perpetual product",
            1000,
            RemediationAction.REMOVE,
        ),
    )
}


def get_error(code: int, line_items: list[Union[LineItem, CartItem]]) -> CartValidationError:
    """New error record for `code` stamped with the offending items"""
    template = ERRORS[code]
    return CartValidationError(
        code=template.code,
        message=template.message,
        priority=template.priority,
        action=template.action,
        line_items=[item.model_copy() for item in line_items],
    )


def validate_offering(
    offering: Optional[Offering],
    cart_item: CartItem,
    parent_offering: Optional[Offering] = None,
) -> Optional[CartValidationError]:
    """
    Validate a single cart item against its catalog offering.

    Rules are checked in order and the first match wins:
    - offering not found -> 12000
    - BIC subscription with quantity > 1 -> 11000
    - maintenance subscription without a parent of the same product line -> 15000
    """
    if offering is None:
        return get_error(ERROR_INVALID_ITEM, [cart_item])

    if offering.offering_type == OfferingType.BIC_SUBSCRIPTION and cart_item.quantity > 1:
        return get_error(ERROR_MULTIPLE_BIC, [cart_item])

    if offering.offering_type == OfferingType.MAINTENANCE_SUBSCRIPTION:
        if parent_offering is None or parent_offering.product_line != offering.product_line:
            return get_error(ERROR_MAINTENANCE_WITHOUT_PERPETUAL, [cart_item])

    return None


def _both_set_and_differ(a: Any, b: Any) -> bool:
    return a is not None and b is not None and a != b


def mixed_item_check(item_a: LineItem, item_b: LineItem) -> Optional[CartValidationError]:
    """Check whether two line items may share a cart"""
    types = (item_a.offering_type, item_b.offering_type)
    if (types[0] == OfferingType.PERPETUAL and types[1] in SUBSCRIPTION_TYPES) or (
        types[1] == OfferingType.PERPETUAL and types[0] in SUBSCRIPTION_TYPES
    ):
        return get_error(ERROR_INCOMPATIBLE_TYPES, [item_a, item_b])

    if _both_set_and_differ(item_a.billing_period, item_b.billing_period) or _both_set_and_differ(
        item_a.billing_period_count, item_b.billing_period_count
    ):
        return get_error(ERROR_INCOMPATIBLE_SUBSCRIPTIONS, [item_a, item_b])

    return None
