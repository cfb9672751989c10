"""Health check routes"""

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from ..database.store import StoreError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/services/v1", tags=["Health"])


@router.get("/health")
async def health_check(request: Request, mode: Optional[str] = Query(None)):
    """
    Health check.

    Without a mode only the cart store is checked. With ``mode=peers`` the
    catalog service is checked as well.
    """
    state = request.app.state

    if mode == "peers":
        failures = await state.catalog.health_check()
        if failures:
            return _fail(f"Call to catalog service failed: {', '.join(failures)}")
        return {"status": "OK", "service": "storefront-cart"}

    try:
        await state.store.ping()
    except StoreError as e:
        logger.error(f"Cart store health check failed: {e}")
        return _fail("Unable to connect to the cart store")
    return {"status": "OK", "service": "storefront-cart"}


def _fail(reason: str) -> JSONResponse:
    return JSONResponse(status_code=503, content={"status": f"fail:{reason}", "service": "storefront-cart"})
