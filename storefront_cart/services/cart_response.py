"""
Cart Response

Builds the storefront cart contract from a persisted cart and a catalog
snapshot: resolves offerings, prices and billing plans for each item,
validates the combination and works out which corrections must be written
back to the cart.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from ..models.cart import Cart, CartItem, CartResponse, CartValidationError, LineItem, RemediationAction
from ..models.catalog import SHIPPABLE_MEDIA_TYPES, CatalogSnapshot, IncludedRecord, Links, Offering
from .cart_engine import resolve_links
from .cart_validation import mixed_item_check, validate_offering

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def contains_price_id(links: Optional[Links], price_id: str) -> bool:
    """True if the first price linked from `links` is `price_id`"""
    return bool(
        links
        and links.prices
        and links.prices.linkage
        and links.prices.linkage[0].id == price_id
    )


def _find_included(included: list[IncludedRecord], type_: str, id_: str) -> Optional[IncludedRecord]:
    return next((r for r in included if r.type == type_ and r.id == id_), None)


def find_offering_by_price_id(snapshot: CatalogSnapshot, price_id: Optional[str]) -> Optional[Offering]:
    """Offering priced by `price_id` directly or through one of its billing plans"""
    if not price_id:
        return None

    for offering in snapshot.data:
        if contains_price_id(offering.links, price_id):
            return offering
        if offering.links.billing_plans:
            for linkage in offering.links.billing_plans.linkage:
                plan = _find_included(snapshot.included, "billingPlan", linkage.id)
                if plan and contains_price_id(plan.links, price_id):
                    return offering
    return None


def get_price(included: list[IncludedRecord], price_id: str) -> Optional[Decimal]:
    price = _find_included(included, "price", price_id)
    return price.amount if price else None


def get_offering_detail(offering: Optional[Offering], included: list[IncludedRecord]) -> Optional[IncludedRecord]:
    if not offering or not offering.links.offering_detail or not offering.links.offering_detail.linkage:
        return None
    return _find_included(included, "offeringDetail", offering.links.offering_detail.linkage.id)


def get_billing_plan(included: list[IncludedRecord], price_id: str) -> Optional[IncludedRecord]:
    """Billing plan whose price links include `price_id`"""
    for record in included:
        if record.type != "billingPlan" or not record.links or not record.links.prices:
            continue
        if any(linkage.id == price_id for linkage in record.links.prices.linkage):
            return record
    return None


def _merge_descriptors(fields: dict[str, Any], estore: dict[str, Any]) -> None:
    fields.update({key: value for key, value in estore.items() if value is not None})


def create_line_item(
    offering: Offering,
    offering_detail: Optional[IncludedRecord],
    billing_plan: Optional[IncludedRecord],
    price: Decimal,
    cart_item: CartItem,
) -> LineItem:
    """
    Line item for a cart item whose offering and price resolved.

    Storefront descriptors from the billing plan are applied first, then the
    offering's, so the offering wins on conflicting keys.
    """
    fields: dict[str, Any] = {
        "offeringId": offering.id,
        "externalKey": offering.external_key,
        "offeringType": offering.offering_type,
        "productLine": offering.product_line,
        "taxCode": offering_detail.tax_code if offering_detail else None,
        "quantity": cart_item.quantity,
        "unitPrice": price,
        "calculatedPrice": str((price * cart_item.quantity).quantize(CENTS, rounding=ROUND_HALF_UP)),
        "productId": cart_item.product_id,
        "mediaType": offering.media_type,
        "imageUrl": offering.descriptors.image_url,
        "parentProductId": cart_item.parent_product_id,
        "childProductId": cart_item.child_product_id,
    }

    if billing_plan:
        fields["billingPeriod"] = billing_plan.billing_period
        fields["billingPeriodCount"] = billing_plan.billing_period_count
        if billing_plan.descriptors:
            _merge_descriptors(fields, billing_plan.descriptors.estore)

    _merge_descriptors(fields, offering.descriptors.estore)
    return LineItem.model_validate(fields)


def sort_key(line_item: LineItem) -> tuple:
    """Numbers first in ascending order, then strings, then items without a sort order"""
    value = line_item.sort_order
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value, "")
    if isinstance(value, str):
        return (1, 0, value)
    return (2, 0, "")


def create_cart_response(cart: Cart, snapshot: CatalogSnapshot) -> tuple[CartResponse, Optional[Cart]]:
    """
    Reconcile `cart` against `snapshot`.

    Returns the response and, when validation changed the items, the
    corrected cart that should be persisted. `cart` itself is left untouched.
    """
    line_items: list[LineItem] = []
    errors: list[CartValidationError] = []
    kept_items: list[CartItem] = []
    has_shipment = False

    for source in cart.items:
        cart_item = source.model_copy()

        offering = find_offering_by_price_id(snapshot, cart_item.product_id)
        price = get_price(snapshot.included, cart_item.product_id)
        if offering is not None and price is None:
            logger.warning(f"Offering {offering.id} has no price record for {cart_item.product_id}")
            offering = None

        parent_offering = find_offering_by_price_id(snapshot, cart_item.parent_product_id)
        error = validate_offering(offering, cart_item, parent_offering)

        if error:
            errors.append(error)
            if error.action == RemediationAction.SET_QUANTITY_TO_ONE:
                cart_item.quantity = 1
            elif error.action == RemediationAction.REMOVE:
                logger.info(f"Dropping {cart_item.product_id} from cart: {error.code}")
                continue

        kept_items.append(cart_item)
        line_item = create_line_item(
            offering,
            get_offering_detail(offering, snapshot.included),
            get_billing_plan(snapshot.included, cart_item.product_id),
            price,
            cart_item,
        )

        for added in line_items:
            conflict = mixed_item_check(line_item, added)
            if conflict:
                errors.append(conflict)
                break

        line_items.append(line_item)
        if offering.media_type in SHIPPABLE_MEDIA_TYPES:
            has_shipment = True

    response = CartResponse(
        line_items=sorted(line_items, key=sort_key),
        promotions=list(cart.promotions or []),
        has_shipment=has_shipment,
        errors=errors,
    )

    corrected = None
    if errors:
        candidate = resolve_links(cart.model_copy(update={"items": kept_items}))
        # userAction errors alone leave the items as they are
        if candidate.items != cart.items:
            corrected = candidate
    return response, corrected
