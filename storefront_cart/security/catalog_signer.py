"""
Catalog Request Signer

Signs requests to the catalog/pricing service. The catalog expects an
HMAC-SHA256 over partner id, app family id and a unix timestamp, passed as
``auth.*`` query parameters.
"""

import time
from typing import Optional

from cryptography.hazmat.primitives import hashes, hmac


class CatalogSigner:
    """
    Generates catalog authentication parameters.

    Usage:
        signer = CatalogSigner(partner_id="...", app_family_id="...", api_secret="...")
        params = signer.auth_params()
    """

    def __init__(self, partner_id: str, app_family_id: str, api_secret: str):
        self.partner_id = partner_id
        self.app_family_id = app_family_id
        self._api_secret = api_secret.encode()

    def signature(self, timestamp: int) -> str:
        """Hex HMAC-SHA256 of partner id + app family id + timestamp"""
        message = f"{self.partner_id}{self.app_family_id}{timestamp}".encode()
        mac = hmac.HMAC(self._api_secret, hashes.SHA256())
        mac.update(message)
        return mac.finalize().hex()

    def auth_params(self, timestamp: Optional[int] = None) -> dict[str, str]:
        """Query parameters authenticating a catalog GET request"""
        created = timestamp if timestamp is not None else int(time.time())
        return {
            "auth.appFamilyId": self.app_family_id,
            "auth.partnerId": self.partner_id,
            "auth.signature": self.signature(created),
            "auth.timestamp": str(created),
        }
