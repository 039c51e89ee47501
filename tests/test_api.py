"""End-to-end request flows through the FastAPI application."""

import uuid

from fastapi.testclient import TestClient

from bistro.main import create_app

from conftest import (
    ADMIN_EMAIL,
    add_cart_item,
    add_menu_item,
    admin_header,
    auth_header,
    make_settings,
    register,
)


def pay(client, email, price, cart_ids, menu_item_ids, transaction_id="txn_1"):
    return client.post("/payments", json={
        "email": email,
        "price": price,
        "transactionId": transaction_id,
        "cartIds": cart_ids,
        "menuItemIds": menu_item_ids,
        "status": "succeeded",
    })


# =============================================================================
# ROOT & HEALTH
# =============================================================================

def test_root(client):
    body = client.get("/").json()

    assert body["version"] == "1.0.0"
    assert body["environment"] == "development"


def test_health_reports_each_component(client):
    body = client.get("/health").json()

    assert body["database"] == "healthy"
    assert body["payment_service"] == "healthy"
    # No broker in the test environment
    assert body["redis"].startswith("unhealthy")
    assert body["status"] == "degraded"


# =============================================================================
# CHECKOUT
# =============================================================================

def test_checkout_clears_cart_and_records_payment(client):
    register(client, "a@x.com")
    headers = auth_header(client, "a@x.com")
    m1, m2 = str(uuid.uuid4()), str(uuid.uuid4())
    c1 = add_cart_item(client, "a@x.com", 10.0, m1)
    c2 = add_cart_item(client, "a@x.com", 15.0, m2)

    cart = client.get("/carts", params={"email": "a@x.com"}, headers=headers).json()
    assert {item["id"] for item in cart} == {c1, c2}

    intent = client.post("/create-payment-intent", json={"price": 25.0})
    assert intent.status_code == 200
    assert intent.json()["clientSecret"].startswith("pi_mock_")

    response = pay(client, "a@x.com", 25.0, [c1, c2], [m1, m2])
    assert response.status_code == 200
    body = response.json()
    assert body["deleteResult"]["deletedCount"] == 2
    assert body["paymentResult"]["duplicate"] is False

    assert client.get("/carts", params={"email": "a@x.com"}, headers=headers).json() == []

    history = client.get("/payments/a@x.com", headers=headers).json()
    assert len(history) == 1
    assert history[0]["price"] == 25.0
    assert history[0]["transactionId"] == "txn_1"
    assert set(history[0]["cartIds"]) == {c1, c2}
    assert history[0]["menuItemIds"] == [m1, m2]

    stats = client.get("/admin-stats", headers=admin_header(client)).json()
    assert stats["orderCount"] == 1
    assert stats["totalRevenue"] == 25.0


def test_resent_payment_is_not_recorded_twice(client):
    register(client, "a@x.com")
    c1 = add_cart_item(client, "a@x.com", 10.0, str(uuid.uuid4()))

    first = pay(client, "a@x.com", 10.0, [c1], []).json()
    second = pay(client, "a@x.com", 10.0, [c1], []).json()

    assert second["paymentResult"]["duplicate"] is True
    assert second["paymentResult"]["insertedId"] == first["paymentResult"]["insertedId"]
    assert second["deleteResult"]["deletedCount"] == 0

    history = client.get("/payments/a@x.com", headers=auth_header(client, "a@x.com")).json()
    assert len(history) == 1


def test_payment_history_newest_first(client):
    headers = auth_header(client, "a@x.com")
    pay(client, "a@x.com", 5.0, [], [], transaction_id="txn_old")
    pay(client, "a@x.com", 7.0, [], [], transaction_id="txn_new")
    pay(client, "b@x.com", 9.0, [], [], transaction_id="txn_other")

    history = client.get("/payments/a@x.com", headers=headers).json()

    assert [p["transactionId"] for p in history] == ["txn_new", "txn_old"]


def test_cart_of_another_identity_is_forbidden(client):
    add_cart_item(client, "a@x.com", 10.0, str(uuid.uuid4()))

    response = client.get("/carts", params={"email": "a@x.com"}, headers=auth_header(client, "b@x.com"))

    assert response.status_code == 403
    assert response.json()["error"] == "forbidden access"


def test_cart_accepts_legacy_menu_id_field(client):
    response = client.post("/carts", json={"email": "a@x.com", "menuId": str(uuid.uuid4()), "price": 4.5})
    assert response.status_code == 200


def test_remove_cart_item(client):
    cart_id = add_cart_item(client, "a@x.com", 10.0, str(uuid.uuid4()))

    assert client.delete(f"/carts/{cart_id}").json()["deletedCount"] == 1
    assert client.delete(f"/carts/{cart_id}").status_code == 404
    assert client.delete("/carts/not-a-uuid").status_code == 422


# =============================================================================
# VALIDATION & UPSTREAM FAILURES
# =============================================================================

def test_payment_intent_rejects_non_positive_price(client):
    assert client.post("/create-payment-intent", json={"price": 0}).status_code == 422
    assert client.post("/create-payment-intent", json={"price": -5}).status_code == 422
    assert client.post("/create-payment-intent", json={}).status_code == 422


def test_malformed_cart_id_rejects_whole_payment(client):
    response = pay(client, "a@x.com", 10.0, ["not-a-uuid"], [])
    assert response.status_code == 422

    history = client.get("/payments/a@x.com", headers=auth_header(client, "a@x.com")).json()
    assert history == []


def test_invalid_email_is_rejected(client):
    assert client.post("/users", json={"email": "not-an-email"}).status_code == 422
    assert client.post("/jwt", json={"email": ""}).status_code == 422


def test_provider_outage_is_upstream_failure(tmp_path):
    settings = make_settings(tmp_path, mock_payment_failure_rate=1.0)

    with TestClient(create_app(settings)) as failing_client:
        response = failing_client.post("/create-payment-intent", json={"price": 25.0})

    assert response.status_code == 502
    assert response.json()["error"] == "upstream failure"


# =============================================================================
# USERS
# =============================================================================

def test_register_existing_email_returns_existing_record(client):
    first = client.post("/users", json={"name": "Alice", "email": "a@x.com"}).json()
    second = client.post("/users", json={"name": "Alice", "email": "A@X.com"}).json()

    assert first["existing"] is False
    assert second["existing"] is True
    assert second["insertedId"] == first["insertedId"]


def test_configured_admin_email_registers_as_admin(client):
    headers = admin_header(client)

    users = client.get("/users", headers=headers).json()

    assert [(u["email"], u["role"]) for u in users] == [(ADMIN_EMAIL, "admin")]


def test_promotion_requires_admin(client):
    user_id = register(client, "a@x.com")

    assert client.patch(f"/users/admin/{user_id}").status_code == 401
    assert client.patch(f"/users/admin/{user_id}", headers=auth_header(client, "a@x.com")).status_code == 403

    response = client.patch(f"/users/admin/{user_id}", headers=admin_header(client))
    assert response.status_code == 200
    assert response.json()["modifiedCount"] == 1

    # Stored role changed, same token now passes the admin check
    assert client.get("/users", headers=auth_header(client, "a@x.com")).status_code == 200


def test_promoting_an_admin_again_modifies_nothing(client):
    headers = admin_header(client)
    user_id = register(client, "a@x.com")

    client.patch(f"/users/admin/{user_id}", headers=headers)
    response = client.patch(f"/users/admin/{user_id}", headers=headers).json()

    assert (response["matchedCount"], response["modifiedCount"]) == (1, 0)


def test_promoting_unknown_identity(client):
    headers = admin_header(client)

    assert client.patch(f"/users/admin/{uuid.uuid4()}", headers=headers).status_code == 404
    assert client.patch("/users/admin/not-a-uuid", headers=headers).status_code == 422


# =============================================================================
# MENU & STATS
# =============================================================================

def test_menu_lifecycle(client):
    headers = admin_header(client)
    item_id = add_menu_item(client, headers, "Margherita", "Pizza", 12.5)

    menu = client.get("/menu").json()
    assert [(m["id"], m["price"]) for m in menu] == [(item_id, 12.5)]

    assert client.delete(f"/menu/{item_id}", headers=headers).json()["deletedCount"] == 1
    assert client.delete(f"/menu/{item_id}", headers=headers).status_code == 404
    assert client.get("/menu").json() == []


def test_menu_item_price_must_be_positive(client):
    response = client.post("/menu", headers=admin_header(client), json={"name": "Free", "category": "x", "price": 0})
    assert response.status_code == 422


def test_reviews_empty(client):
    assert client.get("/reviews").json() == []


def test_order_stats_by_category(client):
    headers = admin_header(client)
    pizza_a = add_menu_item(client, headers, "Margherita", "Pizza", 12.5)
    pizza_b = add_menu_item(client, headers, "Marinara", "Pizza", 9.0)
    salad = add_menu_item(client, headers, "Caesar", "Salad", 8.0)

    pay(client, "a@x.com", 20.5, [], [pizza_a, salad], transaction_id="txn_a")
    pay(client, "b@x.com", 9.0, [], [pizza_b], transaction_id="txn_b")

    rows = client.get("/order-stats", headers=headers).json()

    assert {(r["category"], r["count"], r["total"]) for r in rows} == {
        ("Pizza", 2, 21.5),
        ("Salad", 1, 8.0),
    }


def test_admin_stats_with_no_payments(client):
    stats = client.get("/admin-stats", headers=admin_header(client)).json()

    assert stats == {"userCount": 1, "menuItemCount": 0, "orderCount": 0, "totalRevenue": 0}


def test_user_stats_only_count_own_payments(client):
    headers = admin_header(client)
    salad = add_menu_item(client, headers, "Caesar", "Salad", 8.0)
    pay(client, "a@x.com", 16.0, [], [salad, salad], transaction_id="txn_a")
    pay(client, "b@x.com", 8.0, [], [salad], transaction_id="txn_b")

    stats = client.get("/user-stats", headers=auth_header(client, "a@x.com")).json()

    assert stats == {"orderCount": 2, "menuCount": 1, "paymentCount": 1}


def test_user_stats_requires_token(client):
    assert client.get("/user-stats").status_code == 401
