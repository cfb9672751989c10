"""Cart Service Configuration"""

from typing import Optional
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Storefront Cart"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 3001
    environment_name: str = "Dev"

    # Storefront
    storefront_url: str = "http://localhost:3000"
    cookie_domain: Optional[str] = None

    # Key/value store ("memory://" selects the in-process store)
    redis_url: str = "redis://localhost:6379/0"
    store_timeout_seconds: float = 2.0
    store_retry_attempts: int = 3

    # Cart
    cart_storage_expiration_seconds: int = 1000
    max_cart_item_quantity: int = 999
    cart_optimistic_locking: bool = True

    # Catalog (pricing engine)
    catalog_base_url: str = "http://localhost:8080"
    catalog_path: str = "/api/v1"
    catalog_timeout_seconds: float = 10.0
    catalog_partner_id: str = ""
    catalog_app_family_id: str = ""
    catalog_api_secret: str = ""

    @property
    def cookie_suffix(self) -> str:
        """Cookie names carry the environment name outside production"""
        return "" if self.environment_name == "Prod" else self.environment_name

    @property
    def cart_cookie_name(self) -> str:
        return f"cartReference{self.cookie_suffix}"

    @property
    def catalog_credentials_configured(self) -> bool:
        """Check if catalog signing credentials are configured"""
        return all([
            self.catalog_partner_id,
            self.catalog_app_family_id,
            self.catalog_api_secret,
        ])


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()

