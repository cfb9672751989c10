# Cart services

from .catalog_client import CatalogClient, CatalogClientError, CatalogUnavailableError
from .cart_engine import CartCommand, CartFailure, CartOperation, apply_operation
from .cart_response import create_cart_response
from .cart_service import CartReference, CartService, RedirectError, RedirectOutcome

__all__ = [
    "CatalogClient",
    "CatalogClientError",
    "CatalogUnavailableError",
    "CartCommand",
    "CartFailure",
    "CartOperation",
    "apply_operation",
    "create_cart_response",
    "CartReference",
    "CartService",
    "RedirectError",
    "RedirectOutcome",
]
