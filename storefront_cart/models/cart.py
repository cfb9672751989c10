"""Cart models for the storefront cart service"""

from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from pydantic import ConfigDict, Field, field_serializer

from .base import CamelModel

CART_SCHEMA_VERSION = 1


class CartState(str, Enum):
    """Lifecycle state of a persisted cart"""
    ACTIVE = "active"


class RemediationAction(str, Enum):
    """What the service (or the shopper) does about a validation error"""
    SET_QUANTITY_TO_ONE = "setQuantityToOne"
    REMOVE = "remove"
    USER_ACTION = "userAction"


class CartItem(CamelModel):
    """Item in a persisted cart; product_id is the catalog price id"""
    product_id: str
    quantity: int = Field(default=1, gt=0)
    parent_product_id: Optional[str] = None
    child_product_id: Optional[str] = None


class Cart(CamelModel):
    """
    Persisted cart document.

    `version` is bumped on every write and backs the compare-and-set used
    for optimistic concurrency. `promotions` is None only for documents that
    were written without a promotion list.
    """
    schema_version: int = CART_SCHEMA_VERSION
    version: int = 0
    state: CartState = CartState.ACTIVE
    promotions: Optional[list[str]] = None
    items: list[CartItem] = Field(default_factory=list)

    @classmethod
    def new(
        cls,
        items: Optional[list[CartItem]] = None,
        promotions: Optional[list[str]] = None,
    ) -> "Cart":
        """Create an empty active cart"""
        return cls(
            state=CartState.ACTIVE,
            promotions=list(promotions or []),
            items=list(items or []),
        )


class LineItem(CamelModel):
    """
    Presentation-ready cart entry.

    Descriptor fields coming from the catalog are merged in as extra keys,
    so the set of attributes is open-ended.
    """

    model_config = ConfigDict(extra="allow")

    offering_id: str
    external_key: Optional[str] = None
    offering_type: Optional[str] = None
    product_line: Optional[str] = None
    tax_code: Optional[str] = None
    quantity: int
    unit_price: Decimal
    calculated_price: str
    product_id: str
    media_type: Optional[str] = None
    # from descriptors
    product_name1: str = ""
    product_name2: str = ""
    mini_cart_name1: str = ""
    mini_cart_name2: str = ""
    delivery_method: str = ""
    year: str = ""
    image_url: Optional[str] = None
    # from billing plan
    plan_type: str = ""
    billing_period: Optional[str] = None
    billing_period_count: Optional[int] = None
    sort_order: Optional[Union[int, float, str]] = None
    parent_product_id: Optional[str] = None
    child_product_id: Optional[str] = None

    @field_serializer("unit_price", when_used="json")
    def serialize_unit_price(self, value: Decimal) -> float:
        return float(value)


class CartValidationError(CamelModel):
    """Business validation error reported alongside a cart response"""
    code: int
    message: str
    priority: int
    action: RemediationAction
    line_items: list[Union[LineItem, CartItem]] = Field(default_factory=list)


class CartResponse(CamelModel):
    """Cart contract returned to the storefront"""
    line_items: list[LineItem] = Field(default_factory=list)
    promotions: list[str] = Field(default_factory=list)
    has_shipment: bool = False
    errors: list[CartValidationError] = Field(default_factory=list)


class AddItemRequest(CamelModel):
    """Request to add an item to the cart"""
    product_id: str


class UpdateQuantityRequest(CamelModel):
    """Request to set the quantity of a cart item; zero removes it"""
    quantity: Optional[float] = Field(default=None, allow_inf_nan=False)


class AddPromotionRequest(CamelModel):
    """Request to add a promotion code"""
    promotion: str


class CartCountResponse(CamelModel):
    """Total quantity of items in a cart"""
    count: int
