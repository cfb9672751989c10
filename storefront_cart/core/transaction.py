"""
Transaction Reference Middleware

Tags every request with an X-Transaction-Ref so a storefront call can be
followed through the catalog service logs.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger(__name__)

TRANSACTION_REF_HEADER = "X-Transaction-Ref"

_transaction_ref: ContextVar[Optional[str]] = ContextVar("transaction_ref", default=None)


def get_transaction_ref() -> Optional[str]:
    """Transaction reference of the request being served, if any"""
    return _transaction_ref.get()


class TransactionRefMiddleware(BaseHTTPMiddleware):
    """
    Middleware that assigns a transaction reference to each request.

    An incoming X-Transaction-Ref header is reused; otherwise a new one is
    generated. The reference is echoed back on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        ref = request.headers.get(TRANSACTION_REF_HEADER) or str(uuid.uuid4())
        token = _transaction_ref.set(ref)
        started = time.perf_counter()

        try:
            response = await call_next(request)
        finally:
            _transaction_ref.reset(token)

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers[TRANSACTION_REF_HEADER] = ref
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({elapsed_ms:.1f}ms) ref={ref}"
        )
        return response
