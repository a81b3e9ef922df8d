"""Tests for bearer-token authentication and password recovery."""
from collections import defaultdict
from datetime import datetime, timedelta
from urllib.parse import parse_qs, urlparse

import pytest

from app.impgeo import create_app
from app.impgeo.accounts import create_user
from app.impgeo.db import session_scope
from app.impgeo.models import ActivityLog, Base, User
from app.impgeo.permissions import ensure_default_modules
from app.impgeo.security import issue_access_token


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("JWT_SECRET", "test-jwt-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("FRONTEND_URL", "https://app.example.com")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY",
              "SENDGRID_API_KEY", "SENDGRID_FROM_EMAIL"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        ensure_default_modules(s)
        create_user(s, {"username": "admin", "password": "admin123", "role": "admin"}, None)
        create_user(s, {"username": "maria", "password": "maria123", "role": "user", "email": "maria@example.com"}, None)
        create_user(s, {"username": "visitante", "password": "guest123", "role": "guest"}, None)

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, username, password):
    return client.post("/api/auth/login", json={"username": username, "password": password})


def test_login_requires_username_and_password(client):
    r = client.post("/api/auth/login", json={"username": "admin"})
    assert r.status_code == 400
    assert r.json["success"] is False


def test_login_bad_credentials_logged(app, client):
    r = _login(client, "admin", "wrong")
    assert r.status_code == 401
    assert r.json["error"] == "Credenciais inválidas"
    with session_scope(app) as s:
        assert s.query(ActivityLog).filter(ActivityLog.action == "auth.login_failed").count() == 1


def test_login_inactive_user(app, client):
    with session_scope(app) as s:
        s.query(User).filter(User.username == "maria").one().is_active = False
    r = _login(client, "maria", "maria123")
    assert r.status_code == 403


def test_login_rate_limited_after_five_failures(client):
    for _ in range(5):
        assert _login(client, "admin", "nope").status_code == 401
    r = _login(client, "admin", "admin123")
    assert r.status_code == 429


def test_login_attempts_forget_expired_addresses(app, client):
    stale = datetime.utcnow() - timedelta(minutes=6)
    app.extensions["login_attempts"] = defaultdict(
        list, {"10.0.0.1": [stale] * 5, "10.0.0.2": [stale, datetime.utcnow()]}
    )

    assert _login(client, "admin", "nope").status_code == 401
    attempts = app.extensions["login_attempts"]
    assert "10.0.0.1" not in attempts
    assert len(attempts["10.0.0.2"]) == 1
    assert len(attempts["127.0.0.1"]) == 1

    assert _login(client, "admin", "admin123").status_code == 200
    assert "127.0.0.1" not in attempts


def test_missing_token_is_401_and_invalid_token_is_403(client):
    r = client.get("/api/transactions")
    assert r.status_code == 401
    assert r.json["error"] == "Token de acesso requerido"

    r = client.get("/api/transactions", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 403
    assert r.json["error"] == "Token inválido"


def test_expired_token_is_rejected(app, client):
    with session_scope(app) as s:
        u = s.query(User).filter(User.username == "admin").one()
        token = issue_access_token(u, secret="test-jwt-secret", expires_hours=-1)
    r = client.get("/api/transactions", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 403


def test_token_signed_with_other_secret_is_rejected(app, client):
    with session_scope(app) as s:
        u = s.query(User).filter(User.username == "admin").one()
        token = issue_access_token(u, secret="someone-else")
    r = client.get("/api/transactions", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 403


def test_login_returns_role_default_modules(client):
    r = _login(client, "visitante", "guest123")
    assert r.status_code == 200
    modules = {m["moduleKey"]: m["accessLevel"] for m in r.json["user"]["modulesAccess"]}
    assert "admin" not in modules
    assert "acompanhamentos" not in modules
    assert modules["transactions"] == "view"
    assert r.json["user"]["permissionsSource"] == "persisted"


def test_password_recovery_flow(client, monkeypatch):
    sent = []
    monkeypatch.setattr(
        "app.impgeo.auth.send_password_reset_email",
        lambda config, **kwargs: sent.append(kwargs),
    )

    r = client.post("/api/auth/recuperar-senha", json={"email": "maria@example.com"})
    assert r.status_code == 200
    assert len(sent) == 1
    assert sent[0]["to_email"] == "maria@example.com"
    url = urlparse(sent[0]["reset_url"])
    assert url.netloc == "app.example.com"
    assert url.path == "/resetar-senha"
    token = parse_qs(url.query)["token"][0]

    r = client.get(f"/api/auth/validar-token/{token}")
    assert r.status_code == 200
    assert r.json["valid"] is True
    assert r.json["username"] == "maria"

    r = client.post("/api/auth/resetar-senha", json={"token": token, "novaSenha": "nova-senha"})
    assert r.status_code == 200
    assert _login(client, "maria", "nova-senha").status_code == 200

    # single use
    r = client.post("/api/auth/resetar-senha", json={"token": token, "novaSenha": "outra-senha"})
    assert r.status_code == 400
    r = client.get(f"/api/auth/validar-token/{token}")
    assert r.status_code == 404
    assert r.json["valid"] is False


def test_new_reset_request_invalidates_previous_token(client, monkeypatch):
    sent = []
    monkeypatch.setattr("app.impgeo.auth.send_password_reset_email", lambda config, **kw: sent.append(kw))
    client.post("/api/auth/recuperar-senha", json={"username": "maria"})
    client.post("/api/auth/recuperar-senha", json={"username": "maria"})
    first = parse_qs(urlparse(sent[0]["reset_url"]).query)["token"][0]
    second = parse_qs(urlparse(sent[1]["reset_url"]).query)["token"][0]
    assert client.get(f"/api/auth/validar-token/{first}").status_code == 404
    assert client.get(f"/api/auth/validar-token/{second}").status_code == 200


def test_password_recovery_does_not_reveal_unknown_accounts(client, monkeypatch):
    sent = []
    monkeypatch.setattr("app.impgeo.auth.send_password_reset_email", lambda config, **kw: sent.append(kw))
    known = client.post("/api/auth/recuperar-senha", json={"email": "maria@example.com"})
    unknown = client.post("/api/auth/recuperar-senha", json={"email": "ninguem@example.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.json["message"] == unknown.json["message"]
    assert len(sent) == 1


def test_password_recovery_multiple_accounts(app, client):
    with session_scope(app) as s:
        s.query(User).filter(User.username == "visitante").one().email = "maria@example.com"
    r = client.post("/api/auth/recuperar-senha", json={"email": "maria@example.com"})
    assert r.status_code == 400
    assert r.json["error"] == "MULTIPLE_USERS"


def test_password_recovery_without_mail_configuration(client):
    r = client.post("/api/auth/recuperar-senha", json={"email": "maria@example.com"})
    assert r.status_code == 503


def test_reset_with_unknown_token(client):
    r = client.post("/api/auth/resetar-senha", json={"token": "0" * 64, "novaSenha": "qualquer"})
    assert r.status_code == 400
    assert r.json["error"] == "Token inválido ou expirado"
