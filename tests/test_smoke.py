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
    monkeypatch.setenv("STORAGE_LOCAL_ROOT", str(tmp_path / "storage"))
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        ensure_default_modules(s)
        create_user(s, {"username": "admin", "password": "admin123", "role": "admin"}, None)

    return app.test_client()


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_ok(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_api_test_lists_endpoints(client):
    r = client.get("/api/test")
    assert r.status_code == 200
    assert r.json["success"] is True
    assert r.json["timestamp"]
    assert any("/api/transactions" in e for e in r.json["endpoints"])
    assert any("/api/fixed-expenses" in e for e in r.json["endpoints"])


def test_unknown_route_returns_json_404(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert r.json["success"] is False
    assert r.json["error"]


def test_login_and_verify(client):
    # Anonymous is rejected
    r = client.post("/api/auth/verify")
    assert r.status_code == 401

    r = client.post("/api/auth/login", json={"username": "admin", "password": "admin123"})
    assert r.status_code == 200
    token = r.json["token"]
    assert r.json["user"]["role"] == "admin"

    r = client.post("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json["user"]["username"] == "admin"
    keys = {m["moduleKey"] for m in r.json["user"]["modulesAccess"]}
    assert "admin" in keys and "projecao" in keys
