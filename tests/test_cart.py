from bson import ObjectId

from schemas import Cart


def test_empty_cart(client, user_headers):
    data = client.get("/api/cart", headers=user_headers).json()["data"]
    assert data["items"] == []
    assert data["subtotal"] == 0.0


def test_add_items_accumulates_quantity(client, user_headers, make_book):
    book_id = make_book(price=12.5)
    client.post("/api/cart/items", json={"book_id": book_id, "quantity": 1}, headers=user_headers)
    data = client.post("/api/cart/items", json={"book_id": book_id, "quantity": 2}, headers=user_headers).json()["data"]
    assert len(data["items"]) == 1
    assert data["items"][0]["quantity"] == 3
    assert data["subtotal"] == 37.5


def test_remove_and_clear(client, user_headers, make_book):
    first, second = make_book(price=10.0), make_book(price=5.0)
    client.post("/api/cart/items", json={"book_id": first}, headers=user_headers)
    client.post("/api/cart/items", json={"book_id": second}, headers=user_headers)

    data = client.delete(f"/api/cart/items/{first}", headers=user_headers).json()["data"]
    assert [i["book_id"] for i in data["items"]] == [second]
    assert data["subtotal"] == 5.0

    assert client.delete(f"/api/cart/items/{first}", headers=user_headers).status_code == 404

    client.delete("/api/cart", headers=user_headers)
    assert client.get("/api/cart", headers=user_headers).json()["data"]["items"] == []


def test_unknown_book(client, user_headers):
    resp = client.post("/api/cart/items", json={"book_id": str(ObjectId())}, headers=user_headers)
    assert resp.status_code == 404


def test_cart_requires_login(client):
    assert client.get("/api/cart").status_code == 401


def test_stored_cart_matches_schema(client, mongo, user_headers, make_book):
    client.post("/api/cart/items", json={"book_id": make_book(price=8.0), "quantity": 2}, headers=user_headers)
    stored = mongo["cart"].find_one({})
    cart = Cart(**{k: v for k, v in stored.items() if k != "_id"})
    assert cart.subtotal == 16.0
    assert cart.items[0].quantity == 2
