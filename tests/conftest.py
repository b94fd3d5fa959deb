"""Shared fixtures: an in-memory MongoDB and a TestClient running the app lifespan."""

import os

os.environ.setdefault("JWT_SECRET", "test-signing-secret")

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main


@pytest.fixture
def mongo_db(monkeypatch):
    """Fresh mongomock database swapped in for the real connection."""
    mongo_client = mongomock.MongoClient()
    test_db = mongo_client["ecommerce_test"]
    monkeypatch.setattr(database, "db", test_db)
    monkeypatch.setattr(main, "db", test_db)
    yield test_db
    mongo_client.drop_database("ecommerce_test")


@pytest.fixture
def client(mongo_db):
    with TestClient(main.app) as test_client:
        yield test_client


@pytest.fixture
def order_payload():
    """A complete, valid order body."""
    return {
        "billingDetails": {"name": "Rahim Uddin", "phone": "01711000000", "address": "12 Lake Road, Dhaka"},
        "orderedProducts": [
            {
                "image": "https://cdn.shop.io/tee-black.jpg",
                "name": "Classic Tee",
                "price": "650",
                "size": "L",
                "color": "Black",
                "quantity": 2,
            }
        ],
        "shippingInfo": {"type": "Inside Dhaka", "cost": "60"},
        "summary": {"subtotal": "1300", "total": "1360", "paymentMethod": "Cash on Delivery"},
    }


@pytest.fixture
def registered_user(client):
    """Register a user and return its credentials."""
    creds = {"name": "Nadia Islam", "email": "nadia@shopmail.io", "password": "secret123"}
    res = client.post("/api/auth/register", json=creds)
    assert res.status_code == 201
    return creds
