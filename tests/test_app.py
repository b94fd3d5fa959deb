"""Tests for error mapping, startup checks and the meta endpoints."""

import asyncio

import pytest
from pymongo.errors import PyMongoError, ServerSelectionTimeoutError

import main
from errors import APIError, AuthError, NotFoundError, StorageError, ValidationError


def _run_lifespan():
    async def run():
        async with main.lifespan(main.app):
            pass

    asyncio.run(run())


class TestErrorTaxonomy:
    """Status codes carried by each error type."""

    def test_status_codes(self):
        assert ValidationError("x").status_code == 400
        assert NotFoundError("x").status_code == 404
        assert AuthError("x").status_code == 401
        assert StorageError("x").status_code == 500
        assert APIError("x").status_code == 500

    def test_to_dict_merges_details(self):
        err = ValidationError("Bad status.", {"allowed": ["Pending"]})
        assert err.to_dict() == {"message": "Bad status.", "allowed": ["Pending"]}
        assert str(err) == "Bad status. (allowed=['Pending'])"


class TestErrorResponses:
    """How errors are rendered to clients."""

    def test_storage_failure_hides_driver_message(self, client, monkeypatch):
        def broken(*args, **kwargs):
            raise ServerSelectionTimeoutError("db-host-7:27017 connection refused")

        monkeypatch.setattr(main, "get_documents", broken)
        res = client.get("/api/orders/all")
        assert res.status_code == 500
        assert res.json() == {"message": "Failed to retrieve orders"}

    def test_storage_failure_on_create(self, client, monkeypatch, order_payload):
        def broken(*args, **kwargs):
            raise PyMongoError("write concern error")

        monkeypatch.setattr(main, "create_document", broken)
        res = client.post("/api/orders", json=order_payload)
        assert res.status_code == 500
        assert res.json() == {"message": "Failed to place order"}

    def test_malformed_body_is_bad_request(self, client):
        res = client.post("/api/orders", json={"orderedProducts": "not a list"})
        assert res.status_code == 400
        body = res.json()
        assert body["message"] == "Invalid request data."
        assert body["errors"]


class TestStartup:
    """Lifespan checks run before serving."""

    def test_refuses_to_start_without_secret(self, mongo_db, monkeypatch):
        monkeypatch.setattr(main, "SECRET_KEY", None)
        with pytest.raises(RuntimeError, match="JWT_SECRET"):
            _run_lifespan()

    def test_refuses_to_start_without_database(self, monkeypatch):
        monkeypatch.setattr(main, "db", None)
        with pytest.raises(RuntimeError, match="DATABASE_URL"):
            _run_lifespan()

    def test_creates_unique_email_index(self, client, mongo_db):
        indexes = mongo_db["user"].index_information()
        assert any(info.get("unique") and info["key"] == [("email", 1)] for info in indexes.values())


class TestMeta:
    """Liveness, database diagnostic and CORS."""

    def test_root(self, client):
        assert client.get("/").json() == {"message": "Order & Auth API running"}

    def test_database_check(self, client, mongo_db):
        mongo_db["order"].insert_one({"status": "Pending"})
        body = client.get("/test").json()
        assert body["database"] == "ok"
        assert "order" in body["collections"]

    def test_database_check_reports_driver_error(self, client, mongo_db, monkeypatch):
        def broken():
            raise ServerSelectionTimeoutError("db-host-7:27017 timed out")

        monkeypatch.setattr(mongo_db, "list_collection_names", broken)
        body = client.get("/test").json()
        assert body["database"].startswith("error: db-host-7")

    def test_cors_allows_any_origin(self, client):
        res = client.get("/", headers={"Origin": "https://storefront.shop.io"})
        assert res.headers["access-control-allow-origin"] in ("*", "https://storefront.shop.io")
