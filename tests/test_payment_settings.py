from payment_settings import get_settings


def test_defaults_are_created_once(client, mongo):
    body = client.get("/api/payment-settings").json()["data"]
    assert [m["type"] for m in body["methods"]] == ["epay", "fbx"]
    assert body["methods"][1]["bank_name"] == "Maybank"
    assert body["general"]["tax_rate"] == 6
    assert body["general"]["verification_timeout"] == 24
    assert body["is_active"] is True

    client.get("/api/payment-settings")
    assert mongo["paymentsettings"].count_documents({}) == 1


def test_update_merges_blocks(client, mongo, admin_headers):
    resp = client.put(
        "/api/payment-settings",
        json={"general": {"tax_rate": 8}, "fbx": {"account_number": "5140-1234"}},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    stored = get_settings(mongo)
    assert stored["general"]["tax_rate"] == 8
    assert stored["general"]["shipping_cost"] == 10
    assert stored["fbx"]["account_number"] == "5140-1234"
    assert stored["fbx"]["bank_name"] == "Maybank"


def test_disabled_method_is_hidden(client, admin_headers):
    client.put("/api/payment-settings", json={"fbx": {"enabled": False}}, headers=admin_headers)
    methods = client.get("/api/payment-settings").json()["data"]["methods"]
    assert [m["type"] for m in methods] == ["epay"]


def test_update_rejects_out_of_range_values(client, mongo, admin_headers):
    resp = client.put("/api/payment-settings", json={"general": {"verification_timeout": 500}}, headers=admin_headers)
    assert resp.status_code == 400
    assert get_settings(mongo)["general"]["verification_timeout"] == 24

    resp = client.put("/api/payment-settings", json={"general": {"max_file_size": 0}}, headers=admin_headers)
    assert resp.status_code == 400


def test_update_requires_admin(client, user_headers):
    resp = client.put("/api/payment-settings", json={"is_active": False}, headers=user_headers)
    assert resp.status_code == 403


def test_new_orders_use_current_tax_rate(client, admin_headers, user_headers, make_book):
    client.put("/api/payment-settings", json={"general": {"tax_rate": 10, "shipping_cost": 5}}, headers=admin_headers)
    body = {
        "name": "Meena",
        "email": "meena@example.com",
        "phone": "0123",
        "books": [{"book_id": make_book(price=50.0), "quantity": 1}],
        "payment_method": "fbx",
        "transaction_proof": "/uploads/transactions/t.png",
        "shipping_enabled": True,
        "shipping_address": "Kuala Lumpur",
    }
    totals = client.post("/api/orders", json=body, headers=user_headers).json()["data"]["totals"]
    assert totals == {"subtotal": 50.0, "shipping_cost": 5.0, "tax": 5.0, "total": 60.0}
