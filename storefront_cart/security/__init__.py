# Request signing for upstream services

from .catalog_signer import CatalogSigner

__all__ = ["CatalogSigner"]
