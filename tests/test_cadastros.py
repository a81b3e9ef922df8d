"""Tests for the registries: clients, products, projects and services."""
import pytest

from app.impgeo import create_app
from app.impgeo.accounts import create_user
from app.impgeo.db import session_scope
from app.impgeo.models import Base
from app.impgeo.permissions import ensure_default_modules


@pytest.fixture()
def client(tmp_path, monkeypatch):
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

    return app.test_client()


@pytest.fixture()
def h(client):
    r = client.post("/api/auth/login", json={"username": "admin", "password": "admin123"})
    return {"Authorization": f"Bearer {r.json['token']}"}


# ---------- Clients ----------


def test_clients_crud(client, h):
    r = client.post(
        "/api/clients",
        json={"name": "Fazenda Santa Luzia", "email": "Contato@Fazenda.com", "state": "mg", "zipCode": "38400-000"},
        headers=h,
    )
    assert r.status_code == 201
    c = r.json["data"]
    assert c["email"] == "contato@fazenda.com"
    assert c["state"] == "MG"
    assert c["zip_code"] == "38400-000"

    assert client.post("/api/clients", json={"email": "a@b.com"}, headers=h).status_code == 400
    assert client.post("/api/clients", json={"name": "X", "email": "nope"}, headers=h).status_code == 400

    r = client.put(f"/api/clients/{c['id']}", json={"name": "Fazenda Santa Luzia II", "city": "Uberlândia"}, headers=h)
    assert r.status_code == 200
    assert r.json["data"]["city"] == "Uberlândia"
    # full replacement: fields left out are cleared
    assert r.json["data"]["email"] is None

    assert client.delete(f"/api/clients/{c['id']}", headers=h).status_code == 200
    assert client.delete(f"/api/clients/{c['id']}", headers=h).status_code == 404


def test_clients_bulk_delete(client, h):
    ids = [client.post("/api/clients", json={"name": f"C{i}"}, headers=h).json["data"]["id"] for i in range(3)]
    r = client.delete("/api/clients", json={"ids": ids}, headers=h)
    assert r.json["deletedCount"] == 3
    assert client.get("/api/clients", headers=h).json["data"] == []
    assert client.delete("/api/clients", json={}, headers=h).status_code == 400


# ---------- Products ----------


def test_products_crud(client, h):
    r = client.post(
        "/api/products",
        json={"name": "GNSS RTK", "category": "Equipamentos", "price": "12.500,00", "cost": 9000, "stock": 3, "sold": "1"},
        headers=h,
    )
    assert r.status_code == 201
    p = r.json["data"]
    assert p["price"] == 12500.0
    assert p["stock"] == 3 and p["sold"] == 1

    assert client.post("/api/products", json={"name": "X", "price": -1}, headers=h).status_code == 400
    assert client.post("/api/products", json={"name": "X", "stock": "muitos"}, headers=h).status_code == 400

    r = client.put(f"/api/products/{p['id']}", json={"name": "GNSS RTK", "price": 13000, "cost": 9000, "stock": 2, "sold": 2}, headers=h)
    assert r.json["data"]["stock"] == 2

    r = client.delete("/api/products", json={"ids": [p["id"]]}, headers=h)
    assert r.json["deletedCount"] == 1


# ---------- Projects ----------


def test_projects_crud(client, h):
    r = client.post(
        "/api/projects",
        json={
            "name": "Georreferenciamento Fazenda Alegre",
            "client": "João Silva",
            "startDate": "2024-01-10",
            "endDate": "2024-06-30",
            "value": 15000,
            "progress": 40,
            "services": "Georreferenciamento, CAR",
        },
        headers=h,
    )
    assert r.status_code == 201
    p = r.json["data"]
    assert p["status"] == "ativo"
    assert p["services"] == ["Georreferenciamento", "CAR"]
    assert p["startDate"] == "2024-01-10"

    bad = [
        {"name": "X", "status": "cancelado"},
        {"name": "X", "progress": 120},
        {"name": "X", "startDate": "2024-05-01", "endDate": "2024-04-01"},
        {"name": "X", "services": {"a": 1}},
    ]
    for payload in bad:
        assert client.post("/api/projects", json=payload, headers=h).status_code == 400, payload

    r = client.put(f"/api/projects/{p['id']}", json={"name": p["name"], "status": "concluido", "progress": 100}, headers=h)
    assert r.json["data"]["status"] == "concluido"

    assert client.delete(f"/api/projects/{p['id']}", headers=h).status_code == 200


# ---------- Services ----------


def test_services_crud(client, h):
    r = client.post(
        "/api/services",
        json={"name": "Levantamento Topográfico", "category": "Topografia", "price": 3500, "duration": 15},
        headers=h,
    )
    assert r.status_code == 201
    sv = r.json["data"]
    assert sv["status"] == "ativo"
    assert sv["duration"] == 15

    assert client.post("/api/services", json={"name": "X", "status": "pausado"}, headers=h).status_code == 400

    r = client.put(f"/api/services/{sv['id']}", json={"name": sv["name"], "status": "inativo", "price": 3500}, headers=h)
    assert r.json["data"]["status"] == "inativo"
    assert r.json["data"]["duration"] is None

    assert client.delete(f"/api/services/{sv['id']}", headers=h).status_code == 200
    assert client.get("/api/services", headers=h).json["data"] == []
    # services have no batch delete
    assert client.delete("/api/services", json={"ids": [1]}, headers=h).status_code == 405


def test_non_finite_values_are_rejected(client, h):
    r = client.post("/api/products", json={"name": "Drone", "price": "NaN"}, headers=h)
    assert r.status_code == 400
    r = client.post("/api/products", json={"name": "Drone", "cost": "Infinity"}, headers=h)
    assert r.status_code == 400
    r = client.post("/api/projects", json={"name": "CAR", "client": "Ana", "value": "-Infinity"}, headers=h)
    assert r.status_code == 400
    r = client.post("/api/services", json={"name": "Topografia", "price": "NaN"}, headers=h)
    assert r.status_code == 400
