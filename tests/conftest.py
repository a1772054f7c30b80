"""Pytest fixtures for the storefront tests."""

import time

import mongomock
import mongomock.gridfs
import pytest
from fastapi.testclient import TestClient

import database

mongomock.gridfs.enable_gridfs_integration()


class RecordingNotifier:
    """Stands in for NotificationService and records what would be sent."""

    def __init__(self):
        self.orders = []

    def notify_new_order(self, order):
        self.orders.append(order)
        return {"admin": True, "customer": bool(order.get("customer_email"))}


@pytest.fixture
def mongo(monkeypatch):
    """A fresh in-memory MongoDB database wired into the database module."""
    fake_db = mongomock.MongoClient().db
    monkeypatch.setattr(database, "db", fake_db)
    return fake_db


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(mongo, notifier):
    from main import app, get_notifier

    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(mongo):
    from auth import create_token, hash_password

    user_id = database.create_document(
        "user",
        {"name": "Admin", "email": "admin@bytek.dz", "password_hash": hash_password("secret"), "is_admin": True},
    )
    token = create_token({"id": user_id, "email": "admin@bytek.dz", "is_admin": True})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer_headers(mongo):
    from auth import create_token, hash_password

    user_id = database.create_document(
        "user",
        {"name": "Someone", "email": "someone@example.com", "password_hash": hash_password("pw"), "is_admin": False},
    )
    token = create_token({"id": user_id, "email": "someone@example.com", "is_admin": False})
    return {"Authorization": f"Bearer {token}"}


def make_product(**overrides):
    product = {
        "name": "Viper V3 Pro",
        "description": "Wireless esports mouse",
        "price": 5000.0,
        "original_price": None,
        "image": "https://cdn.example.com/viper.png",
        "images": [],
        "category": "mice",
        "status": "available",
        "in_stock": True,
        "rating": 4.5,
        "reviews": 10,
        "sku": None,
        "stock": {"One Size": {"Black": 5, "White": 1}},
        "sizes": ["One Size"],
        "colors": ["Black", "White"],
        "tags": [],
        "featured": False,
    }
    product.update(overrides)
    return product


@pytest.fixture
def product_id(mongo):
    return database.create_document("product", make_product())


@pytest.fixture
def form_token():
    """A checkout form token issued well past the minimum dwell time."""
    from checkout import issue_form_token

    return issue_form_token(loaded_at=time.time() - 30)
