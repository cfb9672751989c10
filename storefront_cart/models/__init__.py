# Storefront Cart Models

from .cart import (
    Cart,
    CartItem,
    CartState,
    CartResponse,
    CartValidationError,
    LineItem,
    RemediationAction,
    AddItemRequest,
    UpdateQuantityRequest,
    AddPromotionRequest,
    CartCountResponse,
)
from .catalog import (
    CatalogSnapshot,
    IncludedRecord,
    Offering,
    OfferingType,
    SHIPPABLE_MEDIA_TYPES,
)

__all__ = [
    "Cart",
    "CartItem",
    "CartState",
    "CartResponse",
    "CartValidationError",
    "LineItem",
    "RemediationAction",
    "AddItemRequest",
    "UpdateQuantityRequest",
    "AddPromotionRequest",
    "CartCountResponse",
    "CatalogSnapshot",
    "IncludedRecord",
    "Offering",
    "OfferingType",
    "SHIPPABLE_MEDIA_TYPES",
]
