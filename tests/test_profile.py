"""Tests for self-service profile, password change and avatar upload."""
import io

import pytest

from app.impgeo import create_app
from app.impgeo.accounts import create_user
from app.impgeo.db import session_scope
from app.impgeo.models import Base
from app.impgeo.permissions import ensure_default_modules

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


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
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        ensure_default_modules(s)
        create_user(s, {"username": "maria", "password": "maria123", "role": "user"}, None)

    return app.test_client()


def _auth(client, username="maria", password="maria123"):
    r = client.post("/api/auth/login", json={"username": username, "password": password})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json['token']}"}


def test_profile_get(client):
    h = _auth(client)
    r = client.get("/api/user/profile", headers=h)
    assert r.status_code == 200
    assert r.json["data"]["username"] == "maria"
    assert r.json["data"]["modulesAccess"]


def test_profile_update_requires_current_password(client):
    h = _auth(client)
    r = client.put("/api/user/profile", json={"firstName": "Maria"}, headers=h)
    assert r.status_code == 401

    r = client.put("/api/user/profile", json={"firstName": "Maria", "password": "errada"}, headers=h)
    assert r.status_code == 401


def test_profile_update_returns_fresh_token(client):
    h = _auth(client)
    r = client.put(
        "/api/user/profile",
        json={
            "password": "maria123",
            "firstName": "Maria",
            "lastName": "Souza",
            "email": "Maria@Example.com",
            "phone": "(11) 98765-4321",
        },
        headers=h,
    )
    assert r.status_code == 200
    data = r.json["data"]
    assert data["firstName"] == "Maria"
    assert data["email"] == "maria@example.com"
    assert data["phone"] == "11987654321"

    r = client.get("/api/user/profile", headers={"Authorization": f"Bearer {r.json['token']}"})
    assert r.status_code == 200
    assert r.json["data"]["lastName"] == "Souza"


def test_profile_update_validates_fields(client):
    h = _auth(client)
    r = client.put("/api/user/profile", json={"password": "maria123", "email": "not-an-email"}, headers=h)
    assert r.status_code == 400
    r = client.put("/api/user/profile", json={"password": "maria123", "birthDate": "2999-01-01"}, headers=h)
    assert r.status_code == 400
    r = client.put("/api/user/profile", json={"password": "maria123", "gender": "qualquer"}, headers=h)
    assert r.status_code == 400


def test_password_change(client):
    h = _auth(client)
    r = client.put("/api/user/password", json={"currentPassword": "errada", "newPassword": "nova123"}, headers=h)
    assert r.status_code == 401
    r = client.put("/api/user/password", json={"currentPassword": "maria123", "newPassword": "abc"}, headers=h)
    assert r.status_code == 400
    r = client.put("/api/user/password", json={"currentPassword": "maria123", "newPassword": "nova123"}, headers=h)
    assert r.status_code == 200

    assert client.post("/api/auth/login", json={"username": "maria", "password": "maria123"}).status_code == 401
    _auth(client, password="nova123")


def test_photo_upload_and_fetch(client):
    h = _auth(client)
    r = client.post(
        "/api/user/upload-photo",
        data={"photo": (io.BytesIO(PNG_BYTES), "me.png")},
        headers=h,
        content_type="multipart/form-data",
    )
    assert r.status_code == 200
    key = r.json["photoUrl"]
    assert key.startswith("avatars/") and key.endswith(".png")

    r = client.get(f"/api/{key}")
    assert r.status_code == 200
    assert r.data == PNG_BYTES
    assert r.mimetype == "image/png"

    r = client.get("/api/user/profile", headers=h)
    assert r.json["data"]["photoUrl"] == key


def test_photo_upload_rejects_other_formats(client):
    h = _auth(client)
    r = client.post(
        "/api/user/upload-photo",
        data={"photo": (io.BytesIO(b"GIF89a"), "me.gif")},
        headers=h,
        content_type="multipart/form-data",
    )
    assert r.status_code == 400

    r = client.post("/api/user/upload-photo", data={}, headers=h, content_type="multipart/form-data")
    assert r.status_code == 400


@pytest.mark.parametrize("filename, status", [("me.jpg", 200), ("me.JPEG", 200), ("me.webp", 200), ("me.gif", 400), ("me.svg", 400), ("me.png.exe", 400)])
def test_photo_extension_allow_list(client, filename, status):
    h = _auth(client)
    r = client.post(
        "/api/user/upload-photo",
        data={"photo": (io.BytesIO(PNG_BYTES), filename)},
        headers=h,
        content_type="multipart/form-data",
    )
    assert r.status_code == status


def test_photo_upload_rejects_files_over_five_megabytes(client):
    h = _auth(client)
    r = client.post(
        "/api/user/upload-photo",
        data={"photo": (io.BytesIO(b"\0" * (5 * 1024 * 1024 + 1)), "big.png")},
        headers=h,
        content_type="multipart/form-data",
    )
    assert r.status_code == 400
    assert r.json["error"] == "Imagem muito grande. Tamanho máximo: 5MB."
    assert r.json.get("photoUrl") is None
    assert client.get("/api/user/profile", headers=h).json["data"]["photoUrl"] is None

def test_missing_avatar_is_404(client):
    r = client.get("/api/avatars/1/nope.png")
    assert r.status_code == 404
