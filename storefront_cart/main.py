"""
Storefront Cart Application

Cart backend for the storefront: keeps short-lived carts in Redis and
reconciles them against the catalog service.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import Settings, get_settings
from .core.transaction import TransactionRefMiddleware
from .database.carts import CartConflictError, CartRepository, MalformedCartError
from .database.store import KeyValueStore, StoreUnreachableError, create_store
from .routes import cart_router, health_router
from .security.catalog_signer import CatalogSigner
from .services.cart_service import CartService
from .services.catalog_client import CatalogClient, CatalogClientError, CatalogUnavailableError

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_catalog_client(settings: Settings) -> CatalogClient:
    signer = None
    if settings.catalog_credentials_configured:
        signer = CatalogSigner(
            partner_id=settings.catalog_partner_id,
            app_family_id=settings.catalog_app_family_id,
            api_secret=settings.catalog_api_secret,
        )
    return CatalogClient(
        settings.catalog_base_url,
        path=settings.catalog_path,
        timeout=settings.catalog_timeout_seconds,
        signer=signer,
    )


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": message})


def register_exception_handlers(app: FastAPI) -> None:
    """Map infrastructure failures to HTTP errors"""

    @app.exception_handler(StoreUnreachableError)
    async def store_unreachable(request: Request, exc: StoreUnreachableError):
        return _error(503, "Cart store unavailable")

    @app.exception_handler(CatalogUnavailableError)
    async def catalog_unavailable(request: Request, exc: CatalogUnavailableError):
        if exc.timed_out:
            return _error(504, "Catalog service timed out")
        return _error(502, "Catalog service unavailable")

    @app.exception_handler(CatalogClientError)
    async def catalog_error(request: Request, exc: CatalogClientError):
        return _error(502, "Unexpected catalog response")

    @app.exception_handler(CartConflictError)
    async def cart_conflict(request: Request, exc: CartConflictError):
        return _error(409, "Cart was modified concurrently, please retry")

    @app.exception_handler(MalformedCartError)
    async def malformed_cart(request: Request, exc: MalformedCartError):
        logger.error(f"{exc}")
        return _error(500, "Stored cart could not be read")


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
    catalog: Optional[CatalogClient] = None,
) -> FastAPI:
    """
    Build the application.

    Store and catalog clients are created on startup unless given; clients
    created here are closed on shutdown.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events"""
        logger.info(f"{settings.app_name} starting up...")
        logger.info(f"Catalog URL: {settings.catalog_base_url}{settings.catalog_path}")
        logger.info(f"Catalog credentials configured: {settings.catalog_credentials_configured}")
        logger.info(f"Optimistic locking: {'enabled' if settings.cart_optimistic_locking else 'disabled'}")

        app_store = store or create_store(
            settings.redis_url,
            timeout=settings.store_timeout_seconds,
            retry_attempts=settings.store_retry_attempts,
        )
        app_catalog = catalog or create_catalog_client(settings)
        repository = CartRepository(
            app_store,
            ttl_seconds=settings.cart_storage_expiration_seconds,
            optimistic_locking=settings.cart_optimistic_locking,
        )

        app.state.settings = settings
        app.state.store = app_store
        app.state.catalog = app_catalog
        app.state.cart_service = CartService(
            repository,
            app_catalog,
            max_quantity=settings.max_cart_item_quantity,
        )

        yield

        logger.info(f"{settings.app_name} shutting down...")
        if catalog is None:
            await app_catalog.close()
        if store is None:
            await app_store.close()

    app = FastAPI(
        title=settings.app_name,
        description="Storefront cart service",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.storefront_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(TransactionRefMiddleware)

    register_exception_handlers(app)

    app.include_router(cart_router)
    app.include_router(health_router)

    @app.get("/")
    async def home():
        return {
            "message": "Storefront Cart API",
            "docs": "/docs",
            "endpoints": {
                "cart": "/services/v1/cart",
                "health": "/services/v1/health",
            },
        }

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "storefront_cart.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
