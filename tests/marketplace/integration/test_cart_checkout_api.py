"""Integration tests for the cart and checkout endpoints."""


class TestCartApi:
    def test_add_list_update_remove(self, client, api_variant):
        variant_id = api_variant()
        item_id = client.post("/cart/items", json={"user_id": "u1", "variant_id": variant_id, "quantity": 2}).json()["id"]

        cart = client.get("/cart/u1").json()
        assert [i["item_id"] for i in cart["items"]] == [item_id]

        assert client.put(f"/cart/items/{item_id}", json={"user_id": "u1", "quantity": 4}).status_code == 200
        assert client.get("/cart/u1").json()["items"][0]["quantity"] == 4

        assert client.delete(f"/cart/items/{item_id}", params={"user_id": "u1"}).status_code == 200
        assert client.get("/cart/u1").json()["items"] == []

    def test_empty_cart_for_new_user(self, client):
        assert client.get("/cart/nobody").json() == {"user_id": "nobody", "items": []}

    def test_unknown_cart_item(self, client, api_variant):
        client.post("/cart/items", json={"user_id": "u1", "variant_id": api_variant(), "quantity": 1})
        response = client.put("/cart/items/missing", json={"user_id": "u1", "quantity": 2})
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CART_ITEM_NOT_FOUND"


class TestCheckoutApi:
    def test_two_shops_two_sub_orders(self, client, api_variant, api_checkout):
        a1 = api_variant(shop_id="shop-a", price=120000)
        a2 = api_variant(shop_id="shop-a", price=80000)
        b1 = api_variant(shop_id="shop-b", price=50000)

        response = api_checkout("u1", [(a1, 1), (a2, 1), (b1, 1)])

        assert response.status_code == 201
        order = response.json()["order"]
        assert order["status"] == "confirmed"
        assert order["grand_total"] == 250000 + 2 * 20000
        sizes = sorted(len(s["items"]) for s in order["sub_orders"])
        assert sizes == [1, 2]
        assert response.json()["payment"]["method"] == "cod"

    def test_vnpay_checkout_returns_payment_url(self, client, api_variant, api_checkout):
        response = api_checkout("u1", [(api_variant(), 1)], payment_method="vnpay")
        assert response.status_code == 201
        body = response.json()
        assert body["order"]["status"] == "pending_payment"
        assert body["payment"]["payment_url"].startswith("https://vnpay.test/pay?")

    def test_insufficient_stock(self, client, api_variant, api_checkout):
        variant_id = api_variant(quantity=1)
        response = api_checkout("u1", [(variant_id, 2)])

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["error"]["code"] == "INSUFFICIENT_STOCK"
        assert client.get(f"/variants/{variant_id}").json()["reserved_quantity"] == 0

    def test_invalid_payment_method(self, client, api_variant, api_checkout):
        response = api_checkout("u1", [(api_variant(), 1)], payment_method="paypal")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_PAYMENT_METHOD"

    def test_empty_selection_is_rejected_by_schema(self, client):
        response = client.post("/checkout", json={"user_id": "u1", "cart_item_ids": [], "payment_method": "cod"})
        assert response.status_code == 422

    def test_cart_items_not_found(self, client):
        response = client.post("/checkout", json={"user_id": "u1", "cart_item_ids": ["x"], "payment_method": "cod"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "CART_EMPTY"

    def test_preview(self, client, api_variant):
        variant_id = api_variant(price=60000)
        item_id = client.post("/cart/items", json={"user_id": "u1", "variant_id": variant_id, "quantity": 2}).json()["id"]

        response = client.post(
            "/checkout/preview", json={"user_id": "u1", "cart_item_ids": [item_id], "payment_method": "cod"}
        )

        assert response.status_code == 200
        assert response.json()["grand_total"] == 120000 + 20000
        assert client.get(f"/variants/{variant_id}").json()["reserved_quantity"] == 0
