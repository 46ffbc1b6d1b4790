from decimal import Decimal

from conftest import bearer
from tibeb.orders import MAX_ITEM_QUANTITY


def place(client, headers, items):
    return client.post("/api/orders", json={"items": items}, headers=headers)


def test_order_is_priced_from_catalog(client, user_headers, create_product):
    p1 = create_product(price=100)

    resp = place(client, user_headers, [{"product": p1["id"], "quantity": 2, "price": 1}])

    assert resp.status_code == 201
    order = resp.json()
    assert Decimal(str(order["totalAmount"])) == Decimal("200")
    assert order["status"] == "pending"
    assert len(order["items"]) == 1
    line = order["items"][0]
    assert line["product"] == p1["id"]
    assert line["quantity"] == 2
    assert Decimal(str(line["priceAtPurchase"])) == Decimal("100")


def test_order_requires_authentication(client, create_product):
    p1 = create_product()

    assert place(client, {}, [{"product": p1["id"], "quantity": 1}]).status_code == 401


def test_empty_or_missing_items(client, user_headers):
    empty = place(client, user_headers, [])
    missing = client.post("/api/orders", json={}, headers=user_headers)

    assert empty.status_code == 400
    assert empty.json()["error"] == "Order must contain at least one item"
    assert missing.status_code == 400


def test_deactivated_product_creates_no_order(client, admin_headers, user_headers, create_product):
    good = create_product(name="Good")
    retired = create_product(name="Retired")
    client.put(f"/api/products/{retired['id']}", json={"isActive": False}, headers=admin_headers)

    resp = place(client, user_headers, [
        {"product": good["id"], "quantity": 1},
        {"product": retired["id"], "quantity": 1},
    ])

    assert resp.status_code == 400
    assert client.get("/api/orders/my", headers=user_headers).json() == []


def test_nonexistent_product_and_bad_quantity(client, user_headers, create_product):
    p1 = create_product()

    unknown = place(client, user_headers, [{"product": "64b7f0c2a1b2c3d4e5f60718", "quantity": 1}])
    zero = place(client, user_headers, [{"product": p1["id"], "quantity": 0}])

    assert unknown.status_code == 400
    assert zero.status_code == 400
    assert client.get("/api/orders/my", headers=user_headers).json() == []


def test_my_orders_expand_products_and_survive_price_changes(client, admin_headers, user_headers, create_product):
    jebena = create_product(name="Jebena", price=100)
    mesob = create_product(name="Mesob", price=300)
    first = place(client, user_headers, [{"product": jebena["id"], "quantity": 1}]).json()
    second = place(client, user_headers, [{"product": mesob["id"], "quantity": 2}]).json()
    client.put(f"/api/products/{jebena['id']}", json={"price": 999}, headers=admin_headers)

    resp = client.get("/api/orders/my", headers=user_headers)

    assert resp.status_code == 200
    orders = resp.json()
    assert [o["id"] for o in orders] == [second["id"], first["id"]]
    assert orders[0]["items"][0]["product"]["name"] == "Mesob"
    assert Decimal(str(orders[1]["items"][0]["priceAtPurchase"])) == Decimal("100")
    assert Decimal(str(orders[1]["totalAmount"])) == Decimal("100")


def test_my_orders_only_show_the_callers(client, signup, user_headers, create_product):
    p1 = create_product()
    place(client, user_headers, [{"product": p1["id"], "quantity": 1}])
    other = bearer(signup("other@example.com")["token"])

    assert client.get("/api/orders/my", headers=other).json() == []


def test_admin_sees_all_orders_with_users(client, admin_headers, user_headers, create_product):
    p1 = create_product()
    place(client, user_headers, [{"product": p1["id"], "quantity": 3}])

    assert client.get("/api/orders", headers=user_headers).status_code == 403

    resp = client.get("/api/orders", headers=admin_headers)
    assert resp.status_code == 200
    order = resp.json()[0]
    assert order["user"]["email"] == "buyer@example.com"
    assert "passwordHash" not in order["user"]
    assert order["items"][0]["product"]["id"] == p1["id"]


def test_get_single_order_is_owner_or_admin(client, signup, admin_headers, user_headers, create_product):
    p1 = create_product()
    order = place(client, user_headers, [{"product": p1["id"], "quantity": 1}]).json()
    other = bearer(signup("other@example.com")["token"])

    assert client.get(f"/api/orders/{order['id']}", headers=user_headers).status_code == 200
    assert client.get(f"/api/orders/{order['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/orders/{order['id']}", headers=other).status_code == 404


def test_admin_status_update(client, admin_headers, user_headers, create_product):
    p1 = create_product()
    order = place(client, user_headers, [{"product": p1["id"], "quantity": 1}]).json()

    shipped = client.put(f"/api/orders/{order['id']}/status", json={"status": "shipped"}, headers=admin_headers)
    bogus = client.put(f"/api/orders/{order['id']}/status", json={"status": "lost"}, headers=admin_headers)
    forbidden = client.put(f"/api/orders/{order['id']}/status", json={"status": "paid"}, headers=user_headers)

    assert shipped.status_code == 200
    assert shipped.json()["status"] == "shipped"
    assert shipped.json()["totalAmount"] == order["totalAmount"]
    assert bogus.status_code == 400
    assert forbidden.status_code == 403


def test_owner_can_cancel_pending_order_once(client, user_headers, create_product):
    p1 = create_product()
    order = place(client, user_headers, [{"product": p1["id"], "quantity": 1}]).json()

    first = client.put(f"/api/orders/{order['id']}/cancel", headers=user_headers)
    second = client.put(f"/api/orders/{order['id']}/cancel", headers=user_headers)

    assert first.status_code == 200
    assert first.json()["status"] == "cancelled"
    assert second.status_code == 400


def test_oversized_quantity_is_rejected(client, user_headers, create_product):
    p1 = create_product()

    resp = place(client, user_headers, [{"product": p1["id"], "quantity": 10 ** 20}])

    assert resp.status_code == 400
    assert resp.json()["error"] == f"Item 1: quantity must be at most {MAX_ITEM_QUANTITY}"
    assert client.get("/api/orders/my", headers=user_headers).json() == []


def test_largest_allowed_quantity_is_accepted(client, user_headers, create_product):
    p1 = create_product(price=1)

    resp = place(client, user_headers, [{"product": p1["id"], "quantity": MAX_ITEM_QUANTITY}])

    assert resp.status_code == 201
    assert Decimal(str(resp.json()["totalAmount"])) == Decimal(MAX_ITEM_QUANTITY)
