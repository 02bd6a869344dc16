import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from marketplace.api import ROUTERS, install_error_handlers


@pytest.fixture()
def client():
    app = FastAPI()
    install_error_handlers(app)
    for router in ROUTERS:
        app.include_router(router)
    return TestClient(app)


@pytest.fixture()
def api_variant(client):
    """Register a variant over HTTP and return its id."""
    counter = {"n": 0}

    def _register(shop_id="shop-a", price=100000.0, quantity=50, **fields):
        counter["n"] += 1
        response = client.post(
            "/variants",
            json={
                "product_id": f"prod-{counter['n']}",
                "shop_id": shop_id,
                "sku": f"API-{counter['n']:03d}",
                "price": price,
                "quantity": quantity,
                **fields,
            },
        )
        assert response.status_code == 201
        return response.json()["id"]

    return _register


@pytest.fixture()
def api_checkout(client):
    """Fill the cart over HTTP and check every line out."""

    def _checkout(user_id, lines, payment_method="cod", **extra):
        item_ids = []
        for variant_id, quantity in lines:
            response = client.post("/cart/items", json={"user_id": user_id, "variant_id": variant_id, "quantity": quantity})
            assert response.status_code == 201
            item_ids.append(response.json()["id"])
        return client.post(
            "/checkout",
            json={"user_id": user_id, "cart_item_ids": item_ids, "payment_method": payment_method, **extra},
        )

    return _checkout
