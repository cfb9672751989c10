"""
Catalog API Client

HTTP client for the catalog/pricing service. Fetches priced offerings for
the price ids held in a cart. Requests carry HMAC auth parameters when
credentials are configured.
"""

import logging
from typing import Any, Iterable, Optional

import httpx
from pydantic import ValidationError

from ..core.transaction import TRANSACTION_REF_HEADER, get_transaction_ref
from ..models.catalog import CatalogSnapshot
from ..security.catalog_signer import CatalogSigner

logger = logging.getLogger(__name__)


class CatalogClientError(Exception):
    """Base exception for catalog client errors"""
    pass


class CatalogUnavailableError(CatalogClientError):
    """The catalog could not be reached, timed out or answered with an error"""

    def __init__(self, message: str, status_code: Optional[int] = None, timed_out: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.timed_out = timed_out


class CatalogClient:
    """
    Client for the catalog offerings API.

    Usage:
        client = CatalogClient("https://catalog.example.com", path="/api/v1")
        snapshot = await client.get_offerings_by_price_ids("NAMER", ["4369", "4535"])
        await client.close()
    """

    def __init__(
        self,
        base_url: str,
        path: str = "",
        timeout: float = 10.0,
        signer: Optional[CatalogSigner] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize catalog client.

        Args:
            base_url: Scheme and host of the catalog service
            path: Path prefix of the catalog API
            timeout: Per-request timeout in seconds
            signer: Signs requests; unsigned if omitted
            transport: Custom httpx transport, mainly for tests
        """
        self.base_url = f"{base_url.rstrip('/')}{path.rstrip('/')}"
        self._signer = signer
        self._http_client = httpx.AsyncClient(timeout=timeout, transport=transport)

        if not signer:
            logger.warning("No catalog credentials provided - requests will not be signed")

    async def close(self) -> None:
        """Close HTTP client"""
        await self._http_client.aclose()

    def _generate_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Connection": "keep-alive",
        }
        ref = get_transaction_ref()
        if ref:
            headers[TRANSACTION_REF_HEADER] = ref
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        """Make a signed HTTP request; error statuses raise CatalogUnavailableError"""
        url = f"{self.base_url}{path}"
        query = dict(params or {})
        if self._signer:
            query.update(self._signer.auth_params())

        try:
            response = await self._http_client.request(
                method=method,
                url=url,
                params=query,
                headers=self._generate_headers(),
            )
        except httpx.TimeoutException as e:
            logger.error(f"Catalog request timed out: {method} {url}")
            raise CatalogUnavailableError(f"Catalog request timed out: {e}", timed_out=True) from e
        except httpx.HTTPError as e:
            logger.error(f"Catalog request failed: {method} {url} - {e}")
            raise CatalogUnavailableError(f"Catalog request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(f"Catalog request failed: {response.status_code} - {response.text}")
            raise CatalogUnavailableError(
                f"Catalog returned {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, str]] = None,
    ) -> Any:
        """Make a signed HTTP request and decode the JSON body"""
        response = await self._send(method, path, params)
        try:
            return response.json()
        except ValueError as e:
            raise CatalogClientError(f"Catalog returned invalid JSON: {e}") from e

    async def get_offerings_by_price_ids(
        self,
        store_key: str,
        price_ids: Iterable[str],
    ) -> CatalogSnapshot:
        """
        Get offerings for one or more price ids in a store.

        An empty set of price ids returns an empty snapshot without a call.
        """
        ids = list(dict.fromkeys(price_ids))
        if not ids:
            return CatalogSnapshot()

        body = await self._request(
            "GET",
            "/offerings/",
            params={
                "filter[externalKey]": store_key,
                "filter[priceIds]": ",".join(ids),
            },
        )

        try:
            return CatalogSnapshot.model_validate(body)
        except ValidationError as e:
            raise CatalogClientError(f"Unexpected offerings payload: {e}") from e

    async def health_check(self) -> list[str]:
        """
        Check the catalog's own dependencies.

        The catalog answers with plain text such as
        ``v2status: db:OK, cache:OK``. Returns the entries that are not OK,
        or a single entry describing why the catalog could not be reached.
        """
        try:
            response = await self._send("GET", "/healthcheck")
        except CatalogClientError as e:
            logger.warning(f"Catalog health check failed: {e}")
            return [str(e)]

        entries = response.text.replace("v2status:", "").split(",")
        return [
            entry.strip()
            for entry in entries
            if entry.strip() and entry.split(":")[-1].strip() != "OK"
        ]
