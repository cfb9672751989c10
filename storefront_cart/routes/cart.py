"""Cart API routes"""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import RedirectResponse

from ..core.config import Settings
from ..database.carts import CartConflictError, MalformedCartError
from ..database.store import KeyNotFoundError, StoreError
from ..models.cart import (
    AddItemRequest,
    AddPromotionRequest,
    CartCountResponse,
    CartResponse,
    UpdateQuantityRequest,
)
from ..services.cart_engine import CartCommand, CartFailure, CartOperation
from ..services.cart_service import CartReference, CartService, RedirectError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/services/v1/cart", tags=["Cart"])

FAILURE_STATUS = {
    CartFailure.ITEM_NOT_FOUND: 404,
    CartFailure.NOTHING_REMOVED: 404,
    CartFailure.CHILD_UPDATE_NOT_ALLOWED: 400,
    CartFailure.NO_PROMOTIONS: 400,
}


def get_cart_service(request: Request) -> CartService:
    return request.app.state.cart_service


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_cart_reference(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> Optional[CartReference]:
    """Cart reference from the cart cookie, if the browser sent one"""
    return CartReference.parse(request.cookies.get(settings.cart_cookie_name))


def set_cart_cookie(response: Response, settings: Settings, reference: CartReference) -> None:
    response.set_cookie(
        settings.cart_cookie_name,
        reference.cookie_value(),
        domain=settings.cookie_domain,
    )


def _cart_response(outcome: Union[CartResponse, CartFailure]) -> CartResponse:
    if isinstance(outcome, CartFailure):
        raise HTTPException(
            status_code=FAILURE_STATUS[outcome],
            detail={"code": outcome.value, "message": outcome.message},
        )
    return outcome


@router.get("/r")
async def redirect_cart(
    product_ids: Optional[str] = Query(None, alias="productIds"),
    store_key: Optional[str] = Query(None, alias="storeKey"),
    promotions: Optional[str] = Query(None),
    user_ext_key: Optional[str] = Query(None, alias="userExtKey"),
    reference: Optional[CartReference] = Depends(get_cart_reference),
    settings: Settings = Depends(get_app_settings),
    service: CartService = Depends(get_cart_service),
):
    """
    Create or update a cart from a storefront link and send the shopper to it.

    Example: /services/v1/cart/r?storeKey=NAMER&productIds=4369,[4535,4536]
    """
    promotion_codes = [code.strip() for code in (promotions or "").split(",") if code.strip()]

    try:
        outcome = await service.redirect_cart(
            reference,
            product_ids,
            promotion_codes,
            user_ext_key,
            store_key,
        )
    except (RedirectError, StoreError, CartConflictError, MalformedCartError) as e:
        logger.error(f"Cart redirect failed: {e}")
        return RedirectResponse(f"{settings.storefront_url}/cart/error", status_code=302)

    response = RedirectResponse(f"{settings.storefront_url}/cart", status_code=302)
    set_cart_cookie(response, settings, outcome.reference)
    return response


@router.put("/updateKey/{owner_key}", status_code=204)
async def update_key(
    owner_key: str,
    reference: Optional[CartReference] = Depends(get_cart_reference),
    settings: Settings = Depends(get_app_settings),
    service: CartService = Depends(get_cart_service),
):
    """Move the cookie's anonymous cart to the key of the signed-in user"""
    new_key = owner_key.split(";")[0]
    if reference is None or not new_key:
        raise HTTPException(status_code=500, detail="Cart cookie or owner key missing")

    try:
        outcome = await service.claim_cart(reference.key, new_key)
    except KeyNotFoundError:
        raise HTTPException(status_code=500, detail=f"Unable to rename cart {reference.key}")

    response = Response(status_code=204)
    set_cart_cookie(response, settings, outcome.reference)
    return response


@router.get("/{cart_id}/count", response_model=CartCountResponse)
async def get_cart_item_count(
    cart_id: str,
    service: CartService = Depends(get_cart_service),
):
    """Total quantity of items in a cart; 0 for unknown carts"""
    return CartCountResponse(count=await service.get_item_count(cart_id))


@router.get("/{cart_id}", response_model=CartResponse, response_model_exclude_none=True)
async def get_cart(
    cart_id: str,
    service: CartService = Depends(get_cart_service),
):
    """Get a cart reconciled against the catalog"""
    return await service.get_cart(cart_id)


@router.post("/{cart_id}/items", response_model=CartResponse, response_model_exclude_none=True)
async def add_item(
    cart_id: str,
    request: AddItemRequest,
    service: CartService = Depends(get_cart_service),
):
    """Add one of a product to the cart"""
    command = CartCommand(CartOperation.ADD_ITEM, product_id=request.product_id)
    return _cart_response(await service.update_cart(cart_id, command))


@router.put("/{cart_id}/items/{product_id}", response_model=CartResponse, response_model_exclude_none=True)
async def update_item_quantity(
    cart_id: str,
    product_id: str,
    request: UpdateQuantityRequest,
    service: CartService = Depends(get_cart_service),
):
    """Set an item's quantity; zero removes it"""
    command = CartCommand(
        CartOperation.UPDATE_QUANTITY,
        product_id=product_id,
        quantity=request.quantity,
    )
    return _cart_response(await service.update_cart(cart_id, command))


@router.delete("/{cart_id}/items/{product_id}", response_model=CartResponse, response_model_exclude_none=True)
async def remove_item(
    cart_id: str,
    product_id: str,
    service: CartService = Depends(get_cart_service),
):
    """Remove an item (and its child) from the cart"""
    command = CartCommand(CartOperation.REMOVE_ITEM, product_id=product_id)
    return _cart_response(await service.update_cart(cart_id, command))


@router.put("/{cart_id}/promotions", response_model=CartResponse, response_model_exclude_none=True)
async def add_promotion(
    cart_id: str,
    request: AddPromotionRequest,
    service: CartService = Depends(get_cart_service),
):
    command = CartCommand(CartOperation.ADD_PROMOTION, promotion=request.promotion)
    return _cart_response(await service.update_cart(cart_id, command))


@router.delete(
    "/{cart_id}/promotions/{promotion}",
    response_model=CartResponse,
    response_model_exclude_none=True,
)
async def remove_promotion(
    cart_id: str,
    promotion: str,
    service: CartService = Depends(get_cart_service),
):
    command = CartCommand(CartOperation.REMOVE_PROMOTION, promotion=promotion)
    return _cart_response(await service.update_cart(cart_id, command))


@router.delete("/{cart_id}", status_code=204)
async def delete_cart(
    cart_id: str,
    service: CartService = Depends(get_cart_service),
):
    """Delete a cart"""
    await service.delete_cart(cart_id)
    return Response(status_code=204)
