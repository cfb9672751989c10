# API Routes

from .cart import router as cart_router
from .health import router as health_router

__all__ = ["cart_router", "health_router"]
