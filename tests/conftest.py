"""Pytest configuration: in-memory MongoDB, seeded catalog and an HTTP client."""

import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

# Keep the app off any real database
os.environ.pop("DATABASE_URL", None)
os.environ.pop("DATABASE_NAME", None)
os.environ["APP_ENV"] = "test"

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from auth import Principal
from config import Settings
from database import get_db
from main import app


@pytest.fixture
def db():
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def settings():
    return Settings(environment="test", products_per_page=2, review_write_retries=3)


def _product(name, price, type_id, category_id, ratings=0, stock=10, active=True, images=None):
    return {
        "_id": ObjectId(),
        "name": name,
        "description": f"{name} description",
        "price": price,
        "images": images or [],
        "type": type_id,
        "category": category_id,
        "stock": stock,
        "sold": 0,
        "is_active": active,
        "ratings": ratings,
        "num_of_reviews": 0,
        "reviews": [],
    }


@pytest.fixture
def seed(db):
    """Two active types, a hidden one, categories, products, users, sessions and one order."""
    men = {"_id": ObjectId(), "nom": "men", "is_active": True}
    women = {"_id": ObjectId(), "nom": "women", "is_active": True}
    kids = {"_id": ObjectId(), "nom": "kids", "is_active": False}
    db["type"].insert_many([men, women, kids])

    shirts = {"_id": ObjectId(), "category_name": "Shirts", "type": men["_id"], "is_active": True}
    shoes = {"_id": ObjectId(), "category_name": "Shoes", "type": men["_id"], "is_active": True}
    hidden = {"_id": ObjectId(), "category_name": "Archive", "type": men["_id"], "is_active": False}
    dresses = {"_id": ObjectId(), "category_name": "Dresses", "type": women["_id"], "is_active": True}
    db["category"].insert_many([shirts, shoes, hidden, dresses])

    image = {"public_id": "a", "url": "https://img.example/a.jpg"}
    second = {"public_id": "b", "url": "https://img.example/b.jpg"}
    oxford = _product("Oxford Shirt", 49.9, men["_id"], shirts["_id"], ratings=4.5, images=[image, second])
    linen = _product("Linen Shirt", 39.0, men["_id"], shirts["_id"], ratings=3.0)
    flannel = _product("Flannel shirt", 59.0, men["_id"], shirts["_id"], ratings=4.0)
    sneaker = _product("Canvas Sneaker", 89.0, men["_id"], shoes["_id"], ratings=2.5, stock=1)
    retired = _product("Retired Shirt", 10.0, men["_id"], shirts["_id"], active=False)
    gown = _product("Evening Gown", 199.0, women["_id"], dresses["_id"], ratings=5.0)
    db["product"].insert_many([oxford, linen, flannel, sneaker, retired, gown])

    alice = {"_id": ObjectId(), "email": "alice@example.com", "role": "user", "favorites": []}
    bob = {"_id": ObjectId(), "email": "bob@example.com", "role": "user"}
    admin = {"_id": ObjectId(), "email": "admin@example.com", "role": "admin"}
    db["user"].insert_many([alice, bob, admin])

    future = datetime.now(timezone.utc) + timedelta(days=1)
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    db["session"].insert_many([
        {"token": "alice-token", "user_id": alice["_id"], "expires_at": future},
        {"token": "bob-token", "user_id": bob["_id"], "expires_at": future},
        {"token": "admin-token", "user_id": admin["_id"], "expires_at": future},
        {"token": "expired-token", "user_id": alice["_id"], "expires_at": past},
        {"token": "ghost-token", "user_id": ObjectId(), "expires_at": future},
    ])

    db["order"].insert_one({
        "user": alice["_id"],
        "order_items": [{"product": oxford["_id"], "name": oxford["name"], "price": 49.9, "quantity": 1}],
        "subtotal": 49.9,
        "tax": 3.99,
        "total": 53.89,
        "status": "processing",
    })

    return SimpleNamespace(
        men=men, women=women, kids=kids,
        shirts=shirts, shoes=shoes, hidden=hidden, dresses=dresses,
        oxford=oxford, linen=linen, flannel=flannel, sneaker=sneaker, retired=retired, gown=gown,
        alice=alice, bob=bob, admin=admin,
    )


@pytest.fixture
def alice(seed):
    return Principal(user_id=str(seed.alice["_id"]), email=seed.alice["email"])


@pytest.fixture
def bob(seed):
    return Principal(user_id=str(seed.bob["_id"]), email=seed.bob["email"])


@pytest.fixture
def admin(seed):
    return Principal(user_id=str(seed.admin["_id"]), email=seed.admin["email"], role="admin")


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()