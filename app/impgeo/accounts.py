"""
User accounts: admin CRUD, self-service profile, password reset tokens.
"""
from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from app.impgeo.audit import record_event
from app.impgeo.constants import ROLES
from app.impgeo.models import PasswordResetToken, User
from app.impgeo.permissions import seed_role_permissions
from app.impgeo.security import new_reset_token
from app.impgeo.utils import clean_str, is_valid_email, iso, only_digits, parse_date, pick

MIN_PASSWORD_LENGTH = 6
GENDERS = ("masculino", "feminino", "outro", "prefiro_nao_informar")


def serialize_user(u: User) -> dict:
    return {
        "id": u.id,
        "username": u.username,
        "role": u.role,
        "isActive": u.is_active,
        "firstName": u.first_name,
        "lastName": u.last_name,
        "email": u.email,
        "phone": u.phone,
        "cpf": u.cpf,
        "birthDate": iso(u.birth_date),
        "gender": u.gender,
        "position": u.position,
        "address": u.address,
        "photoUrl": u.photo_url,
        "lastLogin": iso(u.last_login),
        "createdAt": iso(u.created_at),
        "updatedAt": iso(u.updated_at),
    }


def _validate_password(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValueError(f"A senha deve ter pelo menos {MIN_PASSWORD_LENGTH} caracteres")


def _validate_role(role: str) -> str:
    role = (role or "").strip().lower()
    if role not in ROLES:
        raise ValueError(f"Perfil inválido. Use: {', '.join(ROLES)}")
    return role


def _apply_profile_fields(u: User, payload: dict) -> dict:
    """Copy optional profile fields present in payload. Returns the change diff."""
    changes = {}
    marker = object()

    def _set(attr: str, value) -> None:
        old = getattr(u, attr)
        if value != old:
            changes[attr] = {"old": str(old) if old is not None else None, "new": str(value) if value is not None else None}
            setattr(u, attr, value)

    for attr, keys in (
        ("first_name", ("firstName", "first_name")),
        ("last_name", ("lastName", "last_name")),
        ("position", ("position", "cargo")),
        ("photo_url", ("photoUrl", "photo_url")),
    ):
        raw = pick(payload, *keys, default=marker)
        if raw is not marker:
            _set(attr, clean_str(raw))

    raw = pick(payload, "email", default=marker)
    if raw is not marker:
        email = (clean_str(raw) or "").lower() or None
        if email and not is_valid_email(email):
            raise ValueError("Email inválido")
        _set("email", email)

    raw = pick(payload, "phone", "telefone", default=marker)
    if raw is not marker:
        digits = only_digits(raw)
        if digits and len(digits) not in (10, 11):
            raise ValueError("Telefone deve ter 10 ou 11 dígitos")
        _set("phone", digits or None)

    raw = pick(payload, "cpf", default=marker)
    if raw is not marker:
        digits = only_digits(raw)
        if digits and len(digits) != 11:
            raise ValueError("CPF deve ter 11 dígitos")
        _set("cpf", digits or None)

    raw = pick(payload, "birthDate", "birth_date", default=marker)
    if raw is not marker:
        try:
            birth = parse_date(raw)
        except ValueError as e:
            raise ValueError("Data de nascimento inválida") from e
        if birth and birth > datetime.utcnow().date():
            raise ValueError("Data de nascimento não pode ser no futuro")
        _set("birth_date", birth)

    raw = pick(payload, "gender", default=marker)
    if raw is not marker:
        gender = clean_str(raw)
        if gender and gender not in GENDERS:
            raise ValueError(f"Gênero inválido. Use: {', '.join(GENDERS)}")
        _set("gender", gender)

    raw = pick(payload, "address", default=marker)
    if raw is not marker:
        if raw is not None and not isinstance(raw, dict):
            raise ValueError("Endereço deve ser um objeto")
        _set("address", raw or None)

    return changes


# ---------- Admin CRUD ----------


def create_user(s: Session, payload: dict, actor: User | None) -> User:
    username = clean_str(payload.get("username"))
    password = payload.get("password") or ""
    if not username:
        raise ValueError("Username é obrigatório")
    _validate_password(password)
    role = _validate_role(payload.get("role") or "user")
    if s.query(User).filter(User.username == username).one_or_none():
        raise ValueError("Usuário já existe")

    now = datetime.utcnow()
    u = User(
        username=username,
        password_hash=generate_password_hash(password),
        role=role,
        is_active=bool(pick(payload, "isActive", "is_active", default=True)),
        created_at=now,
        updated_at=now,
    )
    _apply_profile_fields(u, payload)
    s.add(u)
    s.flush()
    seed_role_permissions(s, u)
    record_event(
        s,
        actor=actor,
        action="user.create",
        module_key="admin",
        entity_type="User",
        entity_id=str(u.id),
        details={"username": username, "role": role},
    )
    return u


def update_user(s: Session, u: User, payload: dict, actor: User) -> User:
    changes = {}

    username = clean_str(payload.get("username"))
    if username and username != u.username:
        clash = s.query(User).filter(User.username == username, User.id != u.id).one_or_none()
        if clash:
            raise ValueError("Username já está em uso")
        changes["username"] = {"old": u.username, "new": username}
        u.username = username

    password = payload.get("password")
    if password:
        _validate_password(password)
        u.password_hash = generate_password_hash(password)
        changes["password"] = {"old": "***", "new": "***"}

    role_changed = False
    if payload.get("role"):
        role = _validate_role(payload["role"])
        if role != u.role:
            if u.id == actor.id:
                raise ValueError("Você não pode alterar o seu próprio perfil de acesso")
            changes["role"] = {"old": u.role, "new": role}
            u.role = role
            role_changed = True

    active = pick(payload, "isActive", "is_active")
    if active is not None and bool(active) != u.is_active:
        if u.id == actor.id and not active:
            raise ValueError("Você não pode desativar seu próprio usuário")
        changes["is_active"] = {"old": u.is_active, "new": bool(active)}
        u.is_active = bool(active)

    changes.update(_apply_profile_fields(u, payload))

    if role_changed:
        seed_role_permissions(s, u)

    if changes:
        u.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=actor,
            action="user.update",
            module_key="admin",
            entity_type="User",
            entity_id=str(u.id),
            details={"changes": changes},
        )
    return u


def delete_user(s: Session, u: User, actor: User) -> None:
    if u.id == actor.id:
        raise ValueError("Você não pode excluir seu próprio usuário")
    record_event(
        s,
        actor=actor,
        action="user.delete",
        module_key="admin",
        entity_type="User",
        entity_id=str(u.id),
        details={"username": u.username},
    )
    s.delete(u)


# ---------- Self-service ----------


def authenticate(s: Session, username: str, password: str) -> User | None:
    u = s.query(User).filter(User.username == username).one_or_none()
    if not u or not check_password_hash(u.password_hash, password):
        return None
    return u


def update_profile(s: Session, u: User, payload: dict) -> User:
    if not check_password_hash(u.password_hash, payload.get("password") or ""):
        raise PermissionError("Senha atual incorreta")
    changes = _apply_profile_fields(u, payload)
    if changes:
        u.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=u,
            action="profile.update",
            entity_type="User",
            entity_id=str(u.id),
            details={"fields": sorted(changes)},
        )
    return u


def change_password(s: Session, u: User, current_password: str, new_password: str) -> None:
    if not current_password or not new_password:
        raise ValueError("Senha atual e nova senha são obrigatórias")
    if not check_password_hash(u.password_hash, current_password):
        raise PermissionError("Senha atual incorreta")
    _validate_password(new_password)
    u.password_hash = generate_password_hash(new_password)
    u.updated_at = datetime.utcnow()
    record_event(s, actor=u, action="profile.password_change", entity_type="User", entity_id=str(u.id))


# ---------- Password reset ----------


def users_for_recovery(s: Session, *, email: str | None, username: str | None) -> list[User]:
    q = s.query(User).filter(User.is_active.is_(True))
    if username:
        q = q.filter(User.username == username)
        if email:
            q = q.filter(User.email == email.lower())
    elif email:
        q = q.filter(User.email == email.lower())
    else:
        return []
    return q.order_by(User.id.asc()).all()


def create_reset_token(s: Session, u: User, ttl_minutes: int) -> PasswordResetToken:
    """Issue a fresh token; any unused token of this user stops working."""
    now = datetime.utcnow()
    ttl = min(max(int(ttl_minutes), 5), 1440)
    s.query(PasswordResetToken).filter(
        PasswordResetToken.user_id == u.id,
        PasswordResetToken.used.is_(False),
    ).update({"used": True, "used_at": now}, synchronize_session=False)
    t = PasswordResetToken(
        user_id=u.id,
        token=new_reset_token(),
        expires_at=now + timedelta(minutes=ttl),
        used=False,
        created_at=now,
    )
    s.add(t)
    s.flush()
    record_event(s, actor=u, action="auth.password_reset_requested", entity_type="User", entity_id=str(u.id))
    return t


def find_valid_reset_token(s: Session, token: str) -> PasswordResetToken | None:
    if not token:
        return None
    return (
        s.query(PasswordResetToken)
        .filter(
            PasswordResetToken.token == token,
            PasswordResetToken.used.is_(False),
            PasswordResetToken.expires_at > datetime.utcnow(),
        )
        .one_or_none()
    )


def reset_password(s: Session, token: str, new_password: str) -> User:
    _validate_password(new_password)
    t = find_valid_reset_token(s, token)
    if t is None or not t.user.is_active:
        raise LookupError("Token inválido ou expirado")
    now = datetime.utcnow()
    t.user.password_hash = generate_password_hash(new_password)
    t.user.updated_at = now
    t.used = True
    t.used_at = now
    record_event(s, actor=t.user, action="auth.password_reset", entity_type="User", entity_id=str(t.user_id))
    return t.user


def cleanup_reset_tokens(s: Session) -> int:
    return (
        s.query(PasswordResetToken)
        .filter(or_(PasswordResetToken.used.is_(True), PasswordResetToken.expires_at <= datetime.utcnow()))
        .delete(synchronize_session=False)
    )
