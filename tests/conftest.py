from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

import models
from config import Settings
from database import build_engine, build_session_factory, init_db
from main import create_app
from security import get_password_hash

PASSWORD = "secret123"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        upload_dir=str(tmp_path / "uploads"),
        jwt_secret="test-secret",
        max_file_size=1024,
    )


@pytest.fixture
def client(settings):
    # Entering the client runs the lifespan: tables, cache and geocoder
    with TestClient(create_app(settings)) as c:
        yield c


@pytest.fixture
async def session_factory(settings):
    engine = build_engine(settings)
    await init_db(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


# --- HTTP helpers ---
def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def register(client, role: str, email: str, name: str = "Test User") -> dict:
    response = client.post("/api/auth/register", json={
        "name": name,
        "email": email,
        "password": PASSWORD,
        "role": role,
    })
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
def owner(client):
    data = register(client, "owner", "owner@example.com", name="Olive")
    return SimpleNamespace(id=data["id"], headers=auth_header(data["access_token"]))


@pytest.fixture
def buyer(client):
    data = register(client, "buyer", "buyer@example.com", name="Bruno")
    return SimpleNamespace(id=data["id"], headers=auth_header(data["access_token"]))


@pytest.fixture
def catalog(client, owner):
    """A located shop with one category and two products: apples (3.99 x 100) and carrots (1.99 x 150)."""
    response = client.put("/api/shops/profile", headers=owner.headers, json={
        "shop_address": "123 Main Street",
        "shop_city": "Cityville",
        "shop_state": "Stateville",
        "shop_zip_code": "12345",
        "latitude": 40.7128,
        "longitude": -74.0060,
        "delivery_radius": 10,
    })
    assert response.status_code == 200, response.text
    shop_id = response.json()["data"]["id"]

    category = client.post("/api/categories", headers=owner.headers, json={"name": "Produce"}).json()["data"]

    def add_product(name, price, stock):
        r = client.post("/api/products", headers=owner.headers, json={
            "name": name, "price": price, "stock": stock, "category_id": category["id"],
        })
        assert r.status_code == 201, r.text
        return r.json()["data"]

    apples = add_product("Organic Apples", 3.99, 100)
    carrots = add_product("Fresh Carrots", 1.99, 150)
    return SimpleNamespace(shop_id=shop_id, category=category, apples=apples, carrots=carrots)


@pytest.fixture
def buyer_address(client, buyer):
    response = client.post("/api/addresses", headers=buyer.headers, json={
        "label": "Home",
        "address_line1": "456 Oak Avenue",
        "city": "Cityville",
        "state": "Stateville",
        "zip_code": "12345",
        "latitude": 40.7130,
        "longitude": -74.0065,
    })
    assert response.status_code == 201, response.text
    return response.json()["data"]


# --- Service-level data ---
@pytest.fixture
async def world(session):
    """Owner with a located shop, a buyer with a default address and two products, written directly."""
    owner = models.User(name="Olive", email="olive@example.com", password=get_password_hash(PASSWORD),
                        role=models.UserRole.OWNER)
    rival = models.User(name="Rita", email="rita@example.com", password=get_password_hash(PASSWORD),
                        role=models.UserRole.OWNER)
    buyer = models.User(name="Bruno", email="bruno@example.com", password=get_password_hash(PASSWORD),
                        role=models.UserRole.BUYER)
    shop = models.ShopProfile(user=owner, shop_name="Fresh Grocery Mart", delivery_radius=10,
                              latitude=Decimal("40.7128"), longitude=Decimal("-74.0060"))
    rival_shop = models.ShopProfile(user=rival, shop_name="Rita's Shop")
    address = models.Address(user=buyer, label="Home", address_line1="456 Oak Avenue", city="Cityville",
                             state="Stateville", zip_code="12345", is_default=True,
                             latitude=Decimal("40.7130"), longitude=Decimal("-74.0065"))
    category = models.Category(name="Produce")
    apples = models.Product(name="Organic Apples", price=Decimal("3.99"), stock=100, category=category, shop=shop)
    carrots = models.Product(name="Fresh Carrots", price=Decimal("1.99"), stock=150, category=category, shop=shop)
    session.add_all([owner, rival, buyer, shop, rival_shop, address, category, apples, carrots])
    await session.commit()
    return SimpleNamespace(owner=owner, rival=rival, buyer=buyer, shop=shop, rival_shop=rival_shop,
                           address=address, category=category, apples=apples, carrots=carrots)
