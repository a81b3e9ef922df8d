from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from urllib.parse import quote

from flask import Blueprint, current_app, g, request

from app.impgeo.accounts import (
    authenticate,
    create_reset_token,
    find_valid_reset_token,
    reset_password,
    serialize_user,
    users_for_recovery,
)
from app.impgeo.audit import record_event
from app.impgeo.db import db_session, run_with_retry
from app.impgeo.mailer import MailerError, MailerNotConfigured, send_password_reset_email
from app.impgeo.models import User
from app.impgeo.permissions import ensure_user_permissions
from app.impgeo.rbac import require_auth
from app.impgeo.security import InvalidToken, bearer_token, decode_access_token, issue_access_token
from app.impgeo.utils import clean_str, fail, iso, json_payload, ok

bp = Blueprint("auth", __name__)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds

RECOVERY_MESSAGE = "Se existir uma conta com esses dados, você receberá um email com instruções para redefinir a senha."


def _login_attempts() -> dict[str, list[datetime]]:
    return current_app.extensions.setdefault("login_attempts", defaultdict(list))


def _check_rate_limit(ip: str) -> bool:
    attempts = _login_attempts()
    cutoff = datetime.utcnow() - timedelta(seconds=_LOGIN_RATE_WINDOW)
    for key in list(attempts):
        recent = [t for t in attempts[key] if t > cutoff]
        if recent:
            attempts[key] = recent
        else:
            del attempts[key]
    return len(attempts.get(ip, ())) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts()[ip].append(datetime.utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the Authorization bearer token.
    Also assigns a simple per-request request_id (for activity/log correlation).
    g.auth_error is "missing" or "invalid" when no user could be loaded.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    g.auth_error = None

    token = bearer_token(request)
    if not token:
        g.auth_error = "missing"
        return

    try:
        claims = decode_access_token(token, secret=current_app.config["JWT_SECRET"])
    except InvalidToken as e:
        current_app.logger.info("Rejected bearer token (request_id=%s): %s", g.request_id, e)
        g.auth_error = "invalid"
        return

    s = db_session()
    user = run_with_retry(s, lambda: s.get(User, int(claims["sub"])))
    if not user or not user.is_active:
        g.auth_error = "missing"
        return
    g.current_user = user


def session_user_payload(s, user: User) -> dict:
    perms, source = ensure_user_permissions(s, user)
    data = serialize_user(user)
    data["modulesAccess"] = perms
    data["permissionsSource"] = source
    return data


@bp.post("/login")
def login():
    payload = json_payload()
    username = clean_str(payload.get("username")) or ""
    password = payload.get("password") or ""
    ip = request.remote_addr or "unknown"

    if not username or not password:
        return fail("Usuário e senha são obrigatórios", 400)

    if _check_rate_limit(ip):
        return fail("Muitas tentativas de login. Aguarde 5 minutos.", 429)

    _record_attempt(ip)

    try:
        s = db_session()
        user = run_with_retry(s, lambda: authenticate(s, username, password))
        if not user:
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=username,
                details={"username": username},
            )
            s.commit()
            return fail("Credenciais inválidas", 401)
        if not user.is_active:
            return fail("Usuário inativo", 403)

        _login_attempts().pop(ip, None)
        user.last_login = datetime.utcnow()
        record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
        data = session_user_payload(s, user)
        s.commit()
        token = issue_access_token(
            user,
            secret=current_app.config["JWT_SECRET"],
            expires_hours=int(current_app.config.get("JWT_EXPIRES_HOURS") or 24),
        )
        return ok(token=token, user=data)
    except Exception:
        current_app.logger.exception("Login crashed (username=%s request_id=%s)", username, getattr(g, "request_id", None))
        raise


@bp.post("/verify")
@require_auth
def verify():
    s = db_session()
    data = session_user_payload(s, g.current_user)
    s.commit()
    return ok(user=data)


@bp.post("/recuperar-senha")
def request_password_reset():
    payload = json_payload()
    email = clean_str(payload.get("email"))
    username = clean_str(payload.get("username"))
    if not email and not username:
        return fail("Informe o email ou o nome de usuário", 400)

    s = db_session()
    users = users_for_recovery(s, email=email, username=username)
    if len(users) > 1:
        return fail(
            "MULTIPLE_USERS",
            400,
            message="Existe mais de uma conta com este email. Informe também o nome de usuário.",
        )
    user = users[0] if users else None
    if user is None or not user.email:
        # Same answer whether or not the account exists.
        return ok(message=RECOVERY_MESSAGE)

    ttl = int(current_app.config.get("PASSWORD_RESET_TTL_MINUTES") or 60)
    t = create_reset_token(s, user, ttl)
    reset_url = f"{current_app.config['FRONTEND_URL'].rstrip('/')}/resetar-senha?token={quote(t.token)}"
    try:
        send_password_reset_email(
            current_app.config,
            to_email=user.email,
            username=user.username,
            reset_url=reset_url,
            expires_minutes=ttl,
        )
    except MailerNotConfigured as e:
        s.rollback()
        current_app.logger.error("Password reset requested but email is not configured: %s", e)
        return fail("Serviço de email não configurado", 503)
    except MailerError as e:
        s.rollback()
        current_app.logger.error("Password reset email failed (user_id=%s): %s", user.id, e)
        return fail("Não foi possível enviar o email de recuperação. Tente novamente.", 502)
    s.commit()
    return ok(message=RECOVERY_MESSAGE)


@bp.get("/validar-token/<token>")
def validate_reset_token(token: str):
    s = db_session()
    t = find_valid_reset_token(s, token)
    if t is None:
        return fail("Token inválido ou expirado", 404, valid=False)
    return ok(valid=True, username=t.user.username, expiresAt=iso(t.expires_at))


@bp.post("/resetar-senha")
def perform_password_reset():
    payload = json_payload()
    token = clean_str(payload.get("token"))
    new_password = payload.get("novaSenha") or payload.get("newPassword") or ""
    if not token or not new_password:
        return fail("Token e nova senha são obrigatórios", 400)

    s = db_session()
    try:
        reset_password(s, token, new_password)
        s.commit()
    except (LookupError, ValueError) as e:
        s.rollback()
        return fail(str(e.args[0] if e.args else e), 400)
    return ok(message="Senha redefinida com sucesso")
