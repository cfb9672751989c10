"""Shared fixtures: catalog snapshot builder, stub catalog and test app."""

from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from storefront_cart.core.config import Settings
from storefront_cart.database.carts import CartRepository
from storefront_cart.database.store import InMemoryStore
from storefront_cart.main import create_app
from storefront_cart.models.catalog import CatalogSnapshot


class SnapshotBuilder:
    """Builds catalog snapshots shaped like the catalog's offerings payload."""

    def __init__(self):
        self.data: list[dict[str, Any]] = []
        self.included: list[dict[str, Any]] = []

    def add_offering(
        self,
        price_id: str,
        offering_type: str = "PERPETUAL",
        amount: Optional[str] = "100.00",
        product_line: str = "ACD",
        media_type: str = "ESD",
        billing_period: Optional[str] = None,
        billing_period_count: Optional[int] = None,
        via_billing_plan: bool = False,
        estore: Optional[dict[str, Any]] = None,
        plan_estore: Optional[dict[str, Any]] = None,
        tax_code: str = "DC010500",
    ) -> "SnapshotBuilder":
        offering_id = f"offering-{price_id}"
        detail_id = f"detail-{price_id}"
        links: dict[str, Any] = {
            "offeringDetail": {"linkage": {"type": "offeringDetail", "id": detail_id}},
        }

        if billing_period or via_billing_plan:
            plan_id = f"plan-{price_id}"
            links["billingPlans"] = {"linkage": [{"type": "billingPlan", "id": plan_id}]}
            self.included.append({
                "type": "billingPlan",
                "id": plan_id,
                "billingPeriod": billing_period,
                "billingPeriodCount": billing_period_count,
                "descriptors": {"estore": plan_estore or {}},
                "links": {"prices": {"linkage": [{"type": "price", "id": price_id}]}},
            })
        if not via_billing_plan:
            links["prices"] = {"linkage": [{"type": "price", "id": price_id}]}

        self.data.append({
            "type": "offering",
            "id": offering_id,
            "externalKey": f"EXT-{price_id}",
            "offeringType": offering_type,
            "productLine": product_line,
            "mediaType": media_type,
            "descriptors": {"imageUrl": f"https://img.example.com/{price_id}.png", "estore": estore or {}},
            "links": links,
        })
        self.included.append({
            "type": "offeringDetail",
            "id": detail_id,
            "name": f"Product {price_id}",
            "externalKey": f"EXT-{price_id}",
            "taxCode": tax_code,
        })
        if amount is not None:
            self.included.append({"type": "price", "id": price_id, "amount": amount})
        return self

    def build(self) -> CatalogSnapshot:
        return CatalogSnapshot.model_validate({"data": self.data, "included": self.included})


class StubCatalog:
    """Catalog client double returning a fixed snapshot."""

    def __init__(self, snapshot: Optional[CatalogSnapshot] = None):
        self.snapshot = snapshot or CatalogSnapshot()
        self.calls: list[tuple[str, list[str]]] = []
        self.failures: list[str] = []
        self.error: Optional[Exception] = None

    async def get_offerings_by_price_ids(self, store_key, price_ids):
        if self.error:
            raise self.error
        self.calls.append((store_key, list(price_ids)))
        return self.snapshot

    async def health_check(self):
        return self.failures

    async def close(self):
        pass


@pytest.fixture()
def snapshot_builder():
    return SnapshotBuilder


@pytest.fixture()
def store():
    return InMemoryStore()


@pytest.fixture()
def stub_catalog():
    return StubCatalog()


@pytest.fixture()
def repository(store):
    return CartRepository(store, ttl_seconds=1000)


@pytest.fixture()
def settings():
    return Settings(
        _env_file=None,
        environment_name="Test",
        storefront_url="http://store.example.com",
        redis_url="memory://",
    )


@pytest.fixture()
def client(settings, store, stub_catalog):
    app = create_app(settings=settings, store=store, catalog=stub_catalog)
    with TestClient(app) as test_client:
        yield test_client
