from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from tibeb import main
from tibeb.accounts import UserStore, ContactStore
from tibeb.catalog import CatalogStore
from tibeb.models import ProductDB
from tibeb.orders import OrderStore, OrderResolver
from tibeb.shared.security_config import limiter
from tibeb.shared.utils import settings

ADMIN_EMAIL = "admin@example.com"
PASSWORD = "Secret123"


# --- Store level ---

@pytest.fixture
def db():
    return AsyncMongoMockClient()["tibeb_test"]

@pytest.fixture
def catalog(db):
    return CatalogStore(db)

@pytest.fixture
def users(db):
    return UserStore(db)

@pytest.fixture
def contacts(db):
    return ContactStore(db)

@pytest.fixture
def order_store(db, catalog, users):
    return OrderStore(db, catalog, users)

@pytest.fixture
def resolver(catalog, order_store):
    return OrderResolver(catalog, order_store)

@pytest.fixture
def add_product(catalog):
    async def _add(**overrides):
        fields = {
            "name": "Habesha Kemis",
            "description": "Handwoven cotton dress",
            "price": Decimal("100"),
            "category": "clothing",
        }
        fields.update(overrides)
        return await catalog.create(ProductDB(**fields))
    return _add


# --- HTTP level ---

@pytest.fixture
def client(monkeypatch, tmp_path):
    mock_client = AsyncMongoMockClient()
    monkeypatch.setattr(main, "get_db_client", lambda: mock_client)
    monkeypatch.setattr(settings, "ADMIN_EMAILS", ADMIN_EMAIL)
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "NOTIFY_WEBHOOK_URL", None)
    monkeypatch.setattr(limiter, "enabled", False)
    with TestClient(main.app) as c:
        yield c

def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}

@pytest.fixture
def signup(client):
    def _signup(email: str, password: str = PASSWORD, first_name: str = "Abebe", last_name: str = "Kebede"):
        resp = client.post("/api/signup", json={
            "firstName": first_name,
            "lastName": last_name,
            "email": email,
            "password": password,
            "confirmPassword": password,
        })
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _signup

@pytest.fixture
def admin_headers(signup):
    return bearer(signup(ADMIN_EMAIL, first_name="Admin")["token"])

@pytest.fixture
def user_headers(signup):
    return bearer(signup("buyer@example.com")["token"])

@pytest.fixture
def create_product(client, admin_headers):
    def _create(**overrides):
        payload = {
            "name": "Jebena",
            "description": "Handmade clay pot",
            "price": 100,
            "category": "kitchen",
            "images": ["https://cdn.example.com/jebena.jpg"],
            "inventoryCount": 12,
        }
        payload.update(overrides)
        resp = client.post("/api/products", json=payload, headers=admin_headers)
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _create
