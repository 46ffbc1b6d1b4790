import os
from decimal import Decimal

from tibeb.shared.utils import settings

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def test_create_then_fetch_round_trip(client, create_product):
    created = create_product(name="Jebena", price=19.99, inventoryCount=7)

    resp = client.get(f"/api/products/{created['id']}")

    assert resp.status_code == 200
    fetched = resp.json()
    for field in ("name", "description", "category", "images", "inventoryCount", "isActive"):
        assert fetched[field] == created[field]
    assert Decimal(str(fetched["price"])) == Decimal("19.99")
    assert fetched["createdAt"]


def test_product_mutations_need_admin(client, user_headers):
    payload = {"name": "x", "price": 1, "category": "y"}

    assert client.post("/api/products", json=payload).status_code == 401
    assert client.post("/api/products", json=payload, headers=user_headers).status_code == 403
    assert client.put("/api/products/abc", json=payload, headers=user_headers).status_code == 403
    assert client.delete("/api/products/abc", headers=user_headers).status_code == 403


def test_invalid_product_payloads(client, admin_headers):
    negative = client.post("/api/products", json={"name": "x", "price": -5, "category": "y"}, headers=admin_headers)
    missing = client.post("/api/products", json={"price": 5}, headers=admin_headers)
    not_a_number = client.post("/api/products", json={"name": "x", "price": "abc", "category": "y"},
                               headers=admin_headers)

    assert negative.status_code == 400
    assert negative.json()["error"] == "Price must be a non-negative number"
    assert missing.status_code == 400
    assert not_a_number.status_code == 400


def test_listing_filters_and_pagination(client, create_product):
    create_product(name="Coffee Beans", category="food", price=12)
    create_product(name="Jebena", description="Pot for coffee", category="kitchen", price=45)
    create_product(name="Mesob", category="kitchen", price=300)
    create_product(name="Hidden Coffee", category="food", price=10, isActive=False)

    search = client.get("/api/products", params={"q": "COFFEE"}).json()
    kitchen = client.get("/api/products", params={"category": "kitchen", "maxPrice": "100"}).json()
    paged = client.get("/api/products", params={"page": "0", "limit": "2"}).json()

    assert {p["name"] for p in search["items"]} == {"Coffee Beans", "Jebena"}
    assert [p["name"] for p in kitchen["items"]] == ["Jebena"]
    assert paged["page"] == 1
    assert paged["total"] == 3
    assert paged["pages"] == 2
    assert [p["name"] for p in paged["items"]] == ["Mesob", "Jebena"]


def test_listing_rejects_non_numeric_price_bounds(client):
    resp = client.get("/api/products", params={"minPrice": "cheap"})

    assert resp.status_code == 400
    assert resp.json()["error"] == "minPrice must be a number"


def test_update_and_deactivate(client, admin_headers, create_product):
    product = create_product(price=100)

    resp = client.put(f"/api/products/{product['id']}", json={"price": 80}, headers=admin_headers)
    assert resp.status_code == 200
    assert Decimal(str(resp.json()["price"])) == Decimal("80")
    assert resp.json()["name"] == product["name"]

    client.put(f"/api/products/{product['id']}", json={"isActive": False}, headers=admin_headers)
    assert client.get(f"/api/products/{product['id']}").status_code == 404
    assert client.get("/api/products").json()["total"] == 0


def test_update_missing_product(client, admin_headers):
    resp = client.put("/api/products/64b7f0c2a1b2c3d4e5f60718", json={"price": 1}, headers=admin_headers)

    assert resp.status_code == 404


def test_delete(client, admin_headers, create_product):
    product = create_product()

    resp = client.delete(f"/api/products/{product['id']}", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}

    assert client.get(f"/api/products/{product['id']}").status_code == 404
    assert client.delete(f"/api/products/{product['id']}", headers=admin_headers).status_code == 404


def test_unknown_product_is_404(client):
    assert client.get("/api/products/not-an-id").status_code == 404
    assert client.get("/api/products/64b7f0c2a1b2c3d4e5f60718").status_code == 404


def test_upload_images_appends_urls(client, admin_headers, create_product):
    product = create_product(images=["https://cdn.example.com/front.jpg"])

    resp = client.post(
        f"/api/products/{product['id']}/images",
        files=[("images", ("side.png", PNG, "image/png")), ("images", ("back.jpg", PNG, "image/jpeg"))],
        headers=admin_headers,
    )

    assert resp.status_code == 200
    images = resp.json()["images"]
    assert images[0] == "https://cdn.example.com/front.jpg"
    assert len(images) == 3
    assert images[1].startswith("/uploads/") and images[1].endswith(".png")
    assert images[2].endswith(".jpg")
    stored = os.path.join(settings.UPLOAD_DIR, images[1].rsplit("/", 1)[1])
    with open(stored, "rb") as f:
        assert f.read() == PNG


def test_upload_rejects_non_images(client, admin_headers, create_product):
    product = create_product()

    resp = client.post(
        f"/api/products/{product['id']}/images",
        files=[("images", ("notes.txt", b"hello", "text/plain"))],
        headers=admin_headers,
    )

    assert resp.status_code == 400
    assert client.get(f"/api/products/{product['id']}").json()["images"] == product["images"]


def test_upload_needs_admin(client, user_headers, create_product):
    product = create_product()

    resp = client.post(
        f"/api/products/{product['id']}/images",
        files=[("images", ("side.png", PNG, "image/png"))],
        headers=user_headers,
    )

    assert resp.status_code == 403


def test_upload_rejects_oversized_files(client, admin_headers, create_product, monkeypatch):
    product = create_product()
    monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 8)

    resp = client.post(
        f"/api/products/{product['id']}/images",
        files=[("images", ("small.png", b"tiny", "image/png")), ("images", ("big.png", PNG, "image/png"))],
        headers=admin_headers,
    )

    assert resp.status_code == 400
    assert resp.json()["error"] == "big.png is larger than 8 bytes"
    assert client.get(f"/api/products/{product['id']}").json()["images"] == product["images"]
    assert not os.listdir(settings.UPLOAD_DIR)
