"""Tests for the twelve-month budget series, the master projection and snapshots."""
import pytest

from app.impgeo import create_app
from app.impgeo.accounts import create_user
from app.impgeo.db import session_scope
from app.impgeo.models import Base
from app.impgeo.modules.projection.service import normalize_months, spec_for
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


def _months(*head):
    return list(head) + [0.0] * (12 - len(head))


def test_normalize_months():
    assert normalize_months(None) == [0.0] * 12
    assert normalize_months([1, "2,5", None, ""]) == _months(1.0, 2.5)
    assert normalize_months(list(range(20))) == [float(i) for i in range(12)]
    with pytest.raises(ValueError):
        normalize_months("1,2,3")
    with pytest.raises(ValueError):
        normalize_months(["abc"])


def test_spec_lookup():
    assert spec_for("fixed-expenses").key == "fixed_expenses"
    assert spec_for("fixed_expenses").middle == "media"
    with pytest.raises(KeyError):
        spec_for("nope")


def test_series_starts_at_zero(client):
    h = _auth(client)
    r = client.get("/api/variable-expenses", headers=h)
    assert r.status_code == 200
    data = r.json["data"]
    assert data["previsto"] == [0.0] * 12
    assert data["medio"] == [0.0] * 12
    assert data["maximo"] == [0.0] * 12


def test_series_put_normalizes(client):
    h = _auth(client)
    r = client.put("/api/fixed-expenses", json={"previsto": [100, 200], "media": [1] * 15, "maximo": None}, headers=h)
    assert r.status_code == 200
    data = r.json["data"]
    assert data["previsto"] == _months(100.0, 200.0)
    assert data["media"] == [1.0] * 12
    assert data["maximo"] == [0.0] * 12
    assert "medio" not in data

    r = client.put("/api/fixed-expenses", json={"previsto": "100"}, headers=h)
    assert r.status_code == 400
    assert r.json["error"] == "Os valores mensais devem ser uma lista"


def test_series_put_rejects_non_finite_months(client):
    h = _auth(client)
    r = client.put("/api/fixed-expenses", json={"previsto": ["NaN", "Infinity", "-Infinity"]}, headers=h)
    assert r.status_code == 400
    r = client.put("/api/projection", json={"growth": {"minimo": "Infinity"}}, headers=h)
    assert r.status_code == 400

    r = client.get("/api/fixed-expenses", headers=h)
    assert r.status_code == 200
    assert "NaN" not in r.get_data(as_text=True)
    assert r.json["data"]["previsto"] == [0.0] * 12

    r = client.put("/api/fixed-expenses", json={"previsto": ["1,234.56", "1.234,56"]}, headers=h)
    assert r.json["data"]["previsto"] == _months(1234.56, 1234.56)


def test_series_access_levels(client):
    h = _auth(client, "maria", "maria123")
    assert client.put("/api/mkt", json={"previsto": [1]}, headers=h).status_code == 200
    assert client.delete("/api/mkt", headers=h).status_code == 403


def test_sync_copies_previsto_and_totals(client):
    h = _auth(client)
    client.put("/api/faturamento-geo", json={"previsto": [1000, 2000]}, headers=h)
    client.put("/api/faturamento-reurb", json={"previsto": [500]}, headers=h)
    client.put("/api/fixed-expenses", json={"previsto": [300, 300], "media": [999]}, headers=h)
    client.put("/api/mkt", json={"previsto": [200]}, headers=h)
    # budget does not feed the projection
    client.put("/api/budget", json={"previsto": [99999]}, headers=h)

    r = client.post("/api/projection/sync", headers=h)
    assert r.status_code == 200
    p = r.json["data"]
    assert p["faturamentoGeo"] == _months(1000.0, 2000.0)
    assert p["despesasFixas"] == _months(300.0, 300.0)
    totals = p["totals"]
    assert totals["faturamentoTotal"] == _months(1500.0, 2000.0)
    assert totals["despesasTotal"] == _months(500.0, 300.0)
    assert totals["resultado"] == _months(1000.0, 1700.0)
    assert totals["resultadoAnual"] == 2700.0


def test_projection_put_keeps_components(client):
    h = _auth(client)
    r = client.put(
        "/api/projection",
        json={
            "faturamentoNn": [10, 10],
            "mktComponents": {"trafego": [5], "socialMedia": [1, 2]},
            "growth": {"minimo": 5, "medio": "10", "maximo": 15.5},
        },
        headers=h,
    )
    assert r.status_code == 200
    p = r.json["data"]
    assert p["faturamentoNn"] == _months(10.0, 10.0)
    assert p["mktComponents"]["producaoConteudo"] == [0.0] * 12
    assert p["mktComponents"]["socialMedia"] == _months(1.0, 2.0)
    assert p["growth"] == {"minimo": 5.0, "medio": 10.0, "maximo": 15.5}

    # sync leaves components and growth alone
    p = client.post("/api/projection/sync", headers=h).json["data"]
    assert p["growth"]["maximo"] == 15.5
    assert p["mktComponents"]["trafego"] == _months(5.0)

    assert client.put("/api/projection", json={"growth": [1, 2]}, headers=h).status_code == 400


def test_clear_series_snapshots_and_resyncs(client):
    h = _auth(client)
    client.put("/api/investments", json={"previsto": [700], "medio": [800], "maximo": [900]}, headers=h)
    client.post("/api/projection/sync", headers=h)

    r = client.delete("/api/investments", headers=h)
    assert r.status_code == 200
    assert r.json["data"]["previsto"] == [0.0] * 12
    assert client.get("/api/projection", headers=h).json["data"]["investimentos"] == [0.0] * 12

    # the clear left a snapshot behind
    r = client.post("/api/backup/restore/investments", headers=h)
    assert r.status_code == 200
    assert r.json["data"]["maximo"] == _months(900.0)
    assert client.get("/api/projection", headers=h).json["data"]["investimentos"] == _months(700.0)


def test_protected_series_cannot_be_cleared(client):
    h = _auth(client)
    assert client.delete("/api/budget", headers=h).status_code == 405
    assert client.delete("/api/faturamento-total", headers=h).status_code == 405


def test_backup_and_restore(client):
    h = _auth(client)
    r = client.post("/api/backup/restore/budget", headers=h)
    assert r.status_code == 400

    client.put("/api/budget", json={"previsto": [1, 2, 3]}, headers=h)
    r = client.post("/api/backup/create/budget", headers=h)
    assert r.status_code == 201
    assert r.json["data"]["series"] == "budget"

    client.put("/api/budget", json={"previsto": [9]}, headers=h)
    r = client.post("/api/backup/restore/budget", headers=h)
    assert r.status_code == 200
    assert r.json["data"]["previsto"] == _months(1.0, 2.0, 3.0)
    assert r.json["restoredFrom"]

    assert client.post("/api/backup/create/unknown", headers=h).status_code == 400
    assert client.post("/api/backup/restore/unknown", headers=h).status_code == 400


def test_clear_all(client):
    h = _auth(client)
    client.put("/api/faturamento-plan", json={"previsto": [123]}, headers=h)
    client.put("/api/budget", json={"previsto": [456]}, headers=h)
    client.put("/api/projection", json={"growth": {"minimo": 1}}, headers=h)

    r = client.delete("/api/clear-all-projection-data", headers=h)
    assert r.status_code == 200
    assert client.get("/api/budget", headers=h).json["data"]["previsto"] == [0.0] * 12
    p = client.get("/api/projection", headers=h).json["data"]
    assert p["growth"] == {"minimo": 0.0, "medio": 0.0, "maximo": 0.0}
    assert p["totals"]["resultadoAnual"] == 0.0
