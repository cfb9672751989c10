"""Integration tests for the cart HTTP API."""

import asyncio
from http.cookies import SimpleCookie

import pytest
from fastapi.testclient import TestClient

from storefront_cart.database.store import InMemoryStore, StoreUnreachableError
from storefront_cart.main import create_app
from storefront_cart.models.cart import Cart, CartItem
from storefront_cart.services.catalog_client import CatalogUnavailableError

COOKIE = "cartReferenceTest"
CART_ID = "abc|NAMER"
BASE = "/services/v1/cart"


def run(coro):
    return asyncio.run(coro)


def encode_reference(value):
    jar = SimpleCookie()
    jar[COOKIE] = value
    return jar[COOKIE].coded_value


def reference_from(response):
    jar = SimpleCookie()
    jar.load(response.headers["set-cookie"])
    return jar[COOKIE].value


@pytest.fixture()
def catalog_with_offerings(stub_catalog, snapshot_builder):
    stub_catalog.snapshot = (
        snapshot_builder()
        .add_offering("4369", amount="100.00")
        .add_offering("4535", amount="25.50", offering_type="MAINTENANCE_SUBSCRIPTION")
        .add_offering("4536", amount="10.00", media_type="DVD")
        .build()
    )
    return stub_catalog


@pytest.fixture()
def bundle_cart(repository):
    cart = Cart.new(items=[
        CartItem(product_id="4369", quantity=1, child_product_id="4535"),
        CartItem(product_id="4535", quantity=1, parent_product_id="4369"),
    ])
    run(repository.create(CART_ID, cart))
    return cart


class TestRedirectEndpoint:
    def test_creates_anonymous_cart(self, client, repository):
        response = client.get(
            f"{BASE}/r",
            params={"productIds": "4369,[4535,4536]", "storeKey": "NAMER", "promotions": "SAVE10"},
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == "http://store.example.com/cart"
        key, flag = reference_from(response).split(";")
        assert key.endswith("|NAMER")
        assert flag == "F"

        stored = run(repository.load(key))
        assert [i.product_id for i in stored.cart.items] == ["4369", "4535", "4536"]
        assert stored.cart.items[1].child_product_id == "4536"
        assert stored.cart.promotions == ["SAVE10"]

    def test_merges_into_existing_cart_of_same_store(self, client, repository):
        first = client.get(f"{BASE}/r", params={"productIds": "4369", "storeKey": "NAMER"}, follow_redirects=False)
        key = reference_from(first).split(";")[0]

        second = client.get(f"{BASE}/r", params={"productIds": "4369", "storeKey": "NAMER"}, follow_redirects=False)

        assert reference_from(second) == f"{key};F"
        assert run(repository.load(key)).cart.items[0].quantity == 2

    def test_signed_in_user_claims_anonymous_cart(self, client, repository):
        run(repository.create("anon|NAMER", Cart.new(items=[CartItem(product_id="4369", quantity=3)])))
        client.cookies.set(COOKIE, encode_reference("anon|NAMER;F"))

        response = client.get(
            f"{BASE}/r",
            params={"productIds": "4535", "storeKey": "NAMER", "userExtKey": "user1"},
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert reference_from(response) == "user1|NAMER;T"
        assert run(repository.load("anon|NAMER")) is None
        assert run(repository.load("user1|NAMER")).cart.items[0].quantity == 3

    def test_store_change_starts_new_cart(self, client, repository):
        run(repository.create("anon|NAMER", Cart.new(items=[CartItem(product_id="4369")])))
        client.cookies.set(COOKIE, encode_reference("anon|NAMER;F"))

        response = client.get(f"{BASE}/r", params={"productIds": "4369", "storeKey": "EMEA"}, follow_redirects=False)

        key, flag = reference_from(response).split(";")
        assert key.endswith("|EMEA")
        assert key != "anon|NAMER"
        assert flag == "F"

    def test_repeated_product_id_stored_once(self, client, repository):
        response = client.get(
            f"{BASE}/r",
            params={"productIds": "[4369,4535],4369", "storeKey": "NAMER"},
            follow_redirects=False,
        )

        key = reference_from(response).split(";")[0]
        parent, child = run(repository.load(key)).cart.items
        assert (parent.product_id, parent.child_product_id) == ("4369", "4535")
        assert (child.product_id, child.parent_product_id) == ("4535", "4369")
        assert parent.quantity == child.quantity == 1

    def test_missing_product_ids_redirects_to_error(self, client):
        response = client.get(f"{BASE}/r", params={"storeKey": "NAMER"}, follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "http://store.example.com/cart/error"


class TestUpdateKeyEndpoint:
    def test_renames_cart_and_marks_identified(self, client, repository):
        run(repository.create("anon|NAMER", Cart.new(items=[CartItem(product_id="4369")])))
        client.cookies.set(COOKIE, encode_reference("anon|NAMER;F"))

        response = client.put(f"{BASE}/updateKey/user1|NAMER")

        assert response.status_code == 204
        assert reference_from(response) == "user1|NAMER;T"
        assert run(repository.load("user1|NAMER")) is not None

    def test_missing_cookie(self, client):
        assert client.put(f"{BASE}/updateKey/user1|NAMER").status_code == 500

    def test_missing_cart(self, client):
        client.cookies.set(COOKIE, encode_reference("gone|NAMER;F"))
        assert client.put(f"{BASE}/updateKey/user1|NAMER").status_code == 500


class TestCartEndpoints:
    def test_get_unknown_cart_is_empty(self, client, stub_catalog):
        response = client.get(f"{BASE}/{CART_ID}")

        assert response.status_code == 200
        assert response.json() == {"lineItems": [], "promotions": [], "hasShipment": False, "errors": []}
        assert stub_catalog.calls == []

    def test_add_item(self, client, catalog_with_offerings):
        client.post(f"{BASE}/{CART_ID}/items", json={"productId": "4369"})
        response = client.post(f"{BASE}/{CART_ID}/items", json={"productId": "4369"})

        assert response.status_code == 200
        line_item = response.json()["lineItems"][0]
        assert line_item["productId"] == "4369"
        assert line_item["quantity"] == 2
        assert line_item["unitPrice"] == 100.0
        assert line_item["calculatedPrice"] == "200.00"
        assert catalog_with_offerings.calls[-1] == ("NAMER", ["4369"])

    def test_update_parent_quantity_mirrors_child(self, client, catalog_with_offerings, bundle_cart):
        response = client.put(f"{BASE}/{CART_ID}/items/4369", json={"quantity": 4})

        assert response.status_code == 200
        assert {i["productId"]: i["quantity"] for i in response.json()["lineItems"]} == {"4369": 4, "4535": 4}

    def test_update_child_quantity_rejected(self, client, catalog_with_offerings, bundle_cart):
        response = client.put(f"{BASE}/{CART_ID}/items/4535", json={"quantity": 4})

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "CHILD_UPDATE_NOT_ALLOWED"

    def test_update_unknown_item(self, client, catalog_with_offerings, bundle_cart):
        response = client.put(f"{BASE}/{CART_ID}/items/9999", json={"quantity": 4})

        assert response.status_code == 404
        assert response.json()["detail"]["message"] == "Unable to update item quantity. Item not found."

    def test_huge_quantity_clamped(self, client, catalog_with_offerings, bundle_cart):
        response = client.put(f"{BASE}/{CART_ID}/items/4369", json={"quantity": 1e30})

        assert response.status_code == 200
        assert {i["productId"]: i["quantity"] for i in response.json()["lineItems"]} == {"4369": 999, "4535": 999}

    @pytest.mark.parametrize("literal", ["Infinity", "-Infinity", "NaN"])
    def test_non_finite_quantity_rejected(self, client, catalog_with_offerings, bundle_cart, literal):
        response = client.put(
            f"{BASE}/{CART_ID}/items/4369",
            content=f'{{"quantity": {literal}}}',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 422

    def test_remove_parent_removes_child(self, client, catalog_with_offerings, bundle_cart):
        response = client.delete(f"{BASE}/{CART_ID}/items/4369")

        assert response.status_code == 200
        assert response.json()["lineItems"] == []

    def test_remove_unknown_item(self, client, catalog_with_offerings, bundle_cart):
        response = client.delete(f"{BASE}/{CART_ID}/items/9999")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NOTHING_REMOVED"

    def test_promotions(self, client, catalog_with_offerings, bundle_cart):
        added = client.put(f"{BASE}/{CART_ID}/promotions", json={"promotion": "SAVE10"})
        assert added.json()["promotions"] == ["SAVE10"]

        removed = client.delete(f"{BASE}/{CART_ID}/promotions/SAVE10")
        assert removed.json()["promotions"] == []

    def test_remove_promotion_from_cart_without_promotions(self, client, store):
        run(store.set(CART_ID, '{"items": []}'))

        response = client.delete(f"{BASE}/{CART_ID}/promotions/SAVE10")

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "NO_PROMOTIONS"

    def test_invalid_items_are_removed_and_persisted(self, client, catalog_with_offerings, repository):
        run(repository.create(CART_ID, Cart.new(items=[CartItem(product_id="9999"), CartItem(product_id="4369")])))

        response = client.get(f"{BASE}/{CART_ID}")

        body = response.json()
        assert [e["code"] for e in body["errors"]] == [12000]
        assert body["errors"][0]["action"] == "remove"
        assert [i["productId"] for i in body["lineItems"]] == ["4369"]
        assert client.get(f"{BASE}/{CART_ID}/count").json() == {"count": 1}

    def test_user_action_errors_leave_stored_cart_untouched(self, client, store, stub_catalog, snapshot_builder):
        stub_catalog.snapshot = (
            snapshot_builder()
            .add_offering("4369", offering_type="PERPETUAL")
            .add_offering("5001", offering_type="BIC_SUBSCRIPTION")
            .build()
        )
        raw = '{"items":[{"productId":"4369","quantity":1},{"productId":"5001","quantity":1}]}'
        run(store.set(CART_ID, raw))

        response = client.get(f"{BASE}/{CART_ID}")

        assert [e["code"] for e in response.json()["errors"]] == [13000]
        assert run(store.get(CART_ID)) == raw

    def test_has_shipment(self, client, catalog_with_offerings):
        response = client.post(f"{BASE}/{CART_ID}/items", json={"productId": "4536"})
        assert response.json()["hasShipment"] is True

    def test_count(self, client, repository):
        run(repository.create(CART_ID, Cart.new(items=[
            CartItem(product_id="4369", quantity=2),
            CartItem(product_id="4536", quantity=3),
        ])))

        assert client.get(f"{BASE}/{CART_ID}/count").json() == {"count": 5}
        assert client.get(f"{BASE}/missing|NAMER/count").json() == {"count": 0}

    def test_delete_cart(self, client, bundle_cart):
        response = client.delete(f"{BASE}/{CART_ID}")

        assert response.status_code == 204
        assert client.get(f"{BASE}/{CART_ID}/count").json() == {"count": 0}

    def test_transaction_ref_echoed(self, client):
        response = client.get(f"{BASE}/{CART_ID}", headers={"X-Transaction-Ref": "ref-123"})
        assert response.headers["X-Transaction-Ref"] == "ref-123"


class TestErrorMapping:
    def test_catalog_unavailable(self, client, stub_catalog, bundle_cart):
        stub_catalog.error = CatalogUnavailableError("down", status_code=500)
        assert client.get(f"{BASE}/{CART_ID}").status_code == 502

    def test_catalog_timeout(self, client, stub_catalog, bundle_cart):
        stub_catalog.error = CatalogUnavailableError("slow", timed_out=True)
        assert client.get(f"{BASE}/{CART_ID}").status_code == 504

    def test_store_unreachable(self, settings, stub_catalog):
        class UnreachableStore(InMemoryStore):
            async def get(self, key):
                raise StoreUnreachableError("connection refused")

        app = create_app(settings=settings, store=UnreachableStore(), catalog=stub_catalog)
        with TestClient(app) as client:
            assert client.get(f"{BASE}/{CART_ID}").status_code == 503

    def test_concurrent_modification(self, settings, stub_catalog):
        class RacingStore(InMemoryStore):
            async def compare_and_set(self, key, expected, value, ttl=None):
                return False

        app = create_app(settings=settings, store=RacingStore(), catalog=stub_catalog)
        with TestClient(app) as client:
            response = client.post(f"{BASE}/{CART_ID}/items", json={"productId": "4369"})
        assert response.status_code == 409

    @pytest.mark.parametrize("failure, status", [("conflict", 409), ("unreachable", 503)])
    def test_failed_correction_write_back(self, settings, stub_catalog, failure, status):
        class FailingWriteStore(InMemoryStore):
            async def compare_and_set(self, key, expected, value, ttl=None):
                if failure == "unreachable":
                    raise StoreUnreachableError("connection reset")
                return False

        store = FailingWriteStore()
        raw = '{"items":[{"productId":"9999","quantity":1}]}'
        run(store.set(CART_ID, raw))

        app = create_app(settings=settings, store=store, catalog=stub_catalog)
        with TestClient(app) as client:
            response = client.get(f"{BASE}/{CART_ID}")

        assert response.status_code == status
        assert run(store.get(CART_ID)) == raw

    def test_malformed_cart(self, client, store):
        run(store.set(CART_ID, "{broken"))
        assert client.get(f"{BASE}/{CART_ID}").status_code == 500


class TestHealthEndpoint:
    def test_self_check(self, client):
        response = client.get("/services/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "OK"

    def test_peers_check(self, client, stub_catalog):
        assert client.get("/services/v1/health", params={"mode": "peers"}).status_code == 200

        stub_catalog.failures = ["cache:DOWN"]
        response = client.get("/services/v1/health", params={"mode": "peers"})

        assert response.status_code == 503
        assert response.json()["status"].startswith("fail:")
