"""Tests for the transactions module and its subcategory list."""
import pytest

from app.impgeo import create_app
from app.impgeo.accounts import create_user
from app.impgeo.db import session_scope
from app.impgeo.models import ActivityLog, Base
from app.impgeo.permissions import ensure_default_modules


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("JWT_SECRET", "test-jwt-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        ensure_default_modules(s)
        create_user(s, {"username": "admin", "password": "admin123", "role": "admin"}, None)

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _auth(client, username="admin", password="admin123"):
    r = client.post("/api/auth/login", json={"username": username, "password": password})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json['token']}"}


def test_create_and_list(client):
    h = _auth(client)
    r = client.post(
        "/api/transactions",
        json={"date": "2024-03-10", "description": "Projeto Fazenda", "value": "1.234,56", "category": "Projetos"},
        headers=h,
    )
    assert r.status_code == 201
    t = r.json["data"]
    assert t["value"] == 1234.56
    assert t["type"] == "Receita"
    assert t["date"] == "2024-03-10"
    assert "created_at" in t

    client.post(
        "/api/transactions",
        json={"date": "2024-04-01", "description": "Aluguel", "value": 900, "type": "Despesa", "subcategory": "ALUGUEL + INTERNET"},
        headers=h,
    )
    r = client.get("/api/transactions", headers=h)
    assert [row["description"] for row in r.json["data"]] == ["Aluguel", "Projeto Fazenda"]


def test_create_requires_description(client):
    h = _auth(client)
    r = client.post("/api/transactions", json={"value": 10}, headers=h)
    assert r.status_code == 400
    r = client.post("/api/transactions", json={"description": "x", "value": "abc"}, headers=h)
    assert r.status_code == 400
    r = client.post("/api/transactions", json={"description": "x", "date": "10/03/2024"}, headers=h)
    assert r.status_code == 400


def test_update_and_delete(app, client):
    h = _auth(client)
    tid = client.post("/api/transactions", json={"description": "Venda", "value": 100}, headers=h).json["data"]["id"]

    r = client.put(f"/api/transactions/{tid}", json={"description": "Venda RTK", "value": 150.5, "type": "Receita"}, headers=h)
    assert r.status_code == 200
    assert r.json["data"]["value"] == 150.5

    assert client.put("/api/transactions/9999", json={"description": "x"}, headers=h).status_code == 404

    r = client.delete(f"/api/transactions/{tid}", headers=h)
    assert r.status_code == 200
    assert client.get("/api/transactions", headers=h).json["data"] == []

    with session_scope(app) as s:
        actions = {a for (a,) in s.query(ActivityLog.action).filter(ActivityLog.module_key == "transactions")}
    assert {"transaction.create", "transaction.update", "transaction.delete"} <= actions


def test_bulk_delete(client):
    h = _auth(client)
    ids = [
        client.post("/api/transactions", json={"description": f"T{i}", "value": i}, headers=h).json["data"]["id"]
        for i in range(3)
    ]
    r = client.delete("/api/transactions", json={"ids": ids[:2] + [9999]}, headers=h)
    assert r.status_code == 200
    assert r.json["deletedCount"] == 2
    assert [t["id"] for t in client.get("/api/transactions", headers=h).json["data"]] == [ids[2]]

    r = client.delete("/api/transactions", json={"ids": "1,2"}, headers=h)
    assert r.status_code == 400
    assert r.json["error"] == "IDs devem ser um array"


def test_subcategories(client):
    h = _auth(client)
    r = client.post("/api/subcategories", json={"name": "RTK"}, headers=h)
    assert r.status_code == 201
    assert r.json["data"]["name"] == "RTK"
    assert client.post("/api/subcategories", json={"name": " "}, headers=h).status_code == 400

    client.post("/api/transactions", json={"description": "Seguro", "value": 50, "subcategory": "SEGURO DRONE"}, headers=h)
    r = client.get("/api/subcategories", headers=h)
    assert r.json["data"] == ["RTK", "SEGURO DRONE"]

    # posting an existing name does not duplicate it
    client.post("/api/subcategories", json={"name": "RTK"}, headers=h)
    assert client.get("/api/subcategories", headers=h).json["data"].count("RTK") == 1


def test_create_rejects_non_finite_value(client):
    h = _auth(client)
    for raw in ("NaN", "Infinity", "-Infinity"):
        r = client.post("/api/transactions", json={"description": "x", "value": raw}, headers=h)
        assert r.status_code == 400
        assert r.json["error"] == "Valor inválido"
    assert client.get("/api/transactions", headers=h).json["data"] == []

    r = client.post("/api/transactions", json={"description": "US", "value": "1,234.56"}, headers=h)
    assert r.json["data"]["value"] == 1234.56
