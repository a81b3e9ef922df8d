"""Tests for the admin surface: users, module grants, catalog, activity and statistics."""
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
        create_user(s, {"username": "maria", "password": "maria123", "role": "user"}, None)

    return app.test_client()


def _auth(client, username="admin", password="admin123"):
    r = client.post("/api/auth/login", json={"username": username, "password": password})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json['token']}"}


def _user_id(client, h, username):
    users = client.get("/api/users", headers=h).json["data"]
    return next(u["id"] for u in users if u["username"] == username)


def test_admin_routes_reject_non_admins(client):
    h = _auth(client, "maria", "maria123")
    for path in ("/api/users", "/api/admin/modules", "/api/admin/activity-log", "/api/admin/statistics"):
        r = client.get(path, headers=h)
        assert r.status_code == 403, path
        assert "administradores" in r.json["error"]


def test_user_crud(client):
    h = _auth(client)
    r = client.post("/api/users", json={"username": "joao", "password": "joao123", "role": "guest"}, headers=h)
    assert r.status_code == 201
    joao = r.json["data"]
    assert joao["role"] == "guest"
    assert "password_hash" not in joao and "passwordHash" not in joao

    r = client.post("/api/users", json={"username": "joao", "password": "outra123"}, headers=h)
    assert r.status_code == 400
    assert r.json["error"] == "Usuário já existe"

    r = client.post("/api/users", json={"username": "pedro", "password": "123"}, headers=h)
    assert r.status_code == 400

    r = client.put(f"/api/users/{joao['id']}", json={"firstName": "João", "isActive": False}, headers=h)
    assert r.status_code == 200
    assert r.json["data"]["firstName"] == "João"
    assert r.json["data"]["isActive"] is False

    r = client.delete(f"/api/users/{joao['id']}", headers=h)
    assert r.status_code == 200
    assert client.put(f"/api/users/{joao['id']}", json={}, headers=h).status_code == 404


def test_admin_cannot_remove_or_demote_self(client):
    h = _auth(client)
    me = _user_id(client, h, "admin")
    assert client.delete(f"/api/users/{me}", headers=h).status_code == 400
    assert client.put(f"/api/users/{me}", json={"role": "user"}, headers=h).status_code == 400
    assert client.put(f"/api/users/{me}", json={"isActive": False}, headers=h).status_code == 400


def test_role_change_reseeds_permissions(client):
    h = _auth(client)
    maria = _user_id(client, h, "maria")
    r = client.put(f"/api/users/{maria}", json={"role": "guest"}, headers=h)
    assert r.status_code == 200
    perms = {p["moduleKey"]: p["accessLevel"] for p in client.get(f"/api/users/{maria}/permissions", headers=h).json["data"]}
    assert set(perms.values()) == {"view"}
    assert "acompanhamentos" not in perms


def test_permissions_replace_and_reset(client):
    h = _auth(client)
    maria = _user_id(client, h, "maria")

    r = client.put(
        f"/api/users/{maria}/permissions",
        json={"moduleKeys": ["transactions", "clients", "transactions", "nao-existe"], "accessLevel": "edit"},
        headers=h,
    )
    assert r.status_code == 200
    assert {p["moduleKey"]: p["accessLevel"] for p in r.json["data"]} == {"transactions": "edit", "clients": "edit"}

    r = client.put(
        f"/api/users/{maria}/permissions",
        json={"permissions": [{"moduleKey": "dre", "accessLevel": "view"}]},
        headers=h,
    )
    assert [p["moduleKey"] for p in r.json["data"]] == ["dre"]

    r = client.put(f"/api/users/{maria}/permissions", json={"moduleKeys": ["dre"], "accessLevel": "owner"}, headers=h)
    assert r.status_code == 400
    r = client.put(f"/api/users/{maria}/permissions", json={"moduleKeys": "dre"}, headers=h)
    assert r.status_code == 400

    r = client.post(f"/api/users/{maria}/permissions/reset", headers=h)
    assert r.status_code == 200
    perms = {p["moduleKey"]: p["accessLevel"] for p in r.json["data"]}
    assert "admin" not in perms
    assert perms["transactions"] == "write"


def test_module_catalog(client):
    h = _auth(client)
    r = client.get("/api/admin/modules", headers=h)
    assert r.status_code == 200
    assert any(m["moduleKey"] == "projecao" and m["isSystem"] for m in r.json["data"])

    r = client.post("/api/admin/modules", json={"moduleKey": "frota", "moduleName": "Frota"}, headers=h)
    assert r.status_code == 201
    assert r.json["data"]["isSystem"] is False

    assert client.post("/api/admin/modules", json={"moduleKey": "frota", "moduleName": "X"}, headers=h).status_code == 400
    assert client.post("/api/admin/modules", json={"moduleKey": "Bad Key!", "moduleName": "X"}, headers=h).status_code == 400

    r = client.put("/api/admin/modules/frota", json={"moduleKey": "veiculos", "description": "Veículos"}, headers=h)
    assert r.status_code == 200
    assert r.json["data"]["moduleKey"] == "veiculos"

    assert client.put("/api/admin/modules/transactions", json={"moduleKey": "lancamentos"}, headers=h).status_code == 400
    assert client.delete("/api/admin/modules/transactions", headers=h).status_code == 400
    assert client.delete("/api/admin/modules/veiculos", headers=h).status_code == 200
    assert client.delete("/api/admin/modules/veiculos", headers=h).status_code == 404


def test_activity_log_paging_and_filters(client):
    h = _auth(client)
    for i in range(3):
        client.post("/api/users", json={"username": f"u{i}", "password": "secret1"}, headers=h)

    r = client.get("/api/admin/activity-log?page=1&pageSize=2&action=user.create", headers=h)
    assert r.status_code == 200
    # maria and admin are created in the fixture too
    assert r.json["total"] == 5
    assert r.json["pageSize"] == 2
    assert r.json["totalPages"] == 3
    assert len(r.json["data"]) == 2
    assert r.json["data"][0]["details"]["username"] == "u2"

    r = client.get("/api/admin/activity-log?search=auth.login", headers=h)
    assert r.json["total"] >= 1

    r = client.get("/api/admin/activity-log?startDate=2024-13-01", headers=h)
    assert r.status_code == 400


def test_statistics(client):
    h = _auth(client)
    r = client.get("/api/admin/statistics", headers=h)
    assert r.status_code == 200
    data = r.json["data"]
    assert data["users"]["total"] == 2
    assert data["users"]["byRole"] == {"admin": 1, "user": 1, "guest": 0}
    assert data["modules"]["system"] == data["modules"]["total"]
    assert data["activity"]["last24h"] >= 1
    assert data["topUsers"][0]["username"] == "admin"


def test_usage_timeline(client):
    h = _auth(client)
    r = client.get("/api/admin/statistics/usage-timeline?startDate=2024-01-01&endDate=2024-01-10", headers=h)
    assert r.status_code == 200
    assert len(r.json["data"]) == 10
    assert r.json["data"][0] == {"period": "2024-01-01", "count": 0}

    r = client.get("/api/admin/statistics/usage-timeline?startDate=2024-01-01&endDate=2024-03-31&groupBy=month", headers=h)
    assert [p["period"] for p in r.json["data"]] == ["2024-01-01", "2024-02-01", "2024-03-01"]

    r = client.get("/api/admin/statistics/usage-timeline?groupBy=year", headers=h)
    assert r.status_code == 400


def test_usage_timeline_span_is_capped(client):
    h = _auth(client)
    base = "/api/admin/statistics/usage-timeline"
    r = client.get(f"{base}?startDate=0001-01-01&endDate=2024-01-01&groupBy=day", headers=h)
    assert r.status_code == 400
    assert "366" in r.json["error"]

    r = client.get(f"{base}?startDate=2024-01-01&endDate=2024-12-31", headers=h)
    assert r.status_code == 200
    assert len(r.json["data"]) == 366

    r = client.get(f"{base}?startDate=2000-01-01&endDate=2024-12-31&groupBy=month", headers=h)
    assert r.status_code == 200
    assert len(r.json["data"]) == 300
