"""
Module catalog and per-user module permissions.

Every user holds at most one access level per catalog module. New users get
the defaults of their role; admins can rewrite the whole set at once.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable

from sqlalchemy.orm import Session

from app.impgeo.audit import record_event
from app.impgeo.constants import ACCESS_LEVELS, DEFAULT_MODULES, ROLE_DEFAULTS
from app.impgeo.models import ModuleCatalog, User, UserModulePermission
from app.impgeo.utils import clean_str, iso, pick

_MODULE_KEY_RE = re.compile(r"^[a-z0-9][a-z0-9_-]{1,99}$")


def level_rank(level: str | None) -> int:
    if level not in ACCESS_LEVELS:
        return -1
    return ACCESS_LEVELS.index(level)


def access_allows(granted: str | None, required: str) -> bool:
    return granted is not None and level_rank(granted) >= level_rank(required)


# ---------- Catalog ----------


def ensure_default_modules(s: Session) -> list[ModuleCatalog]:
    """
    Idempotent catalog seed. Existing rows keep admin edits (name, icon,
    description, route); only the system flag is enforced.
    """
    now = datetime.utcnow()
    out = []
    for order, (key, name, icon, description) in enumerate(DEFAULT_MODULES):
        m = s.get(ModuleCatalog, key)
        if m is None:
            m = ModuleCatalog(
                module_key=key,
                module_name=name,
                icon_name=icon,
                description=description,
                route_path=key,
                is_system=True,
                is_active=True,
                sort_order=order,
                created_at=now,
                updated_at=now,
            )
            s.add(m)
        else:
            m.module_name = m.module_name or name
            m.is_system = True
            m.icon_name = m.icon_name or icon
            m.description = m.description or description
            m.route_path = m.route_path or key
        out.append(m)
    s.flush()
    return out


def serialize_module(m: ModuleCatalog) -> dict:
    return {
        "moduleKey": m.module_key,
        "moduleName": m.module_name,
        "iconName": m.icon_name,
        "description": m.description,
        "routePath": m.route_path,
        "isSystem": m.is_system,
        "isActive": m.is_active,
        "sortOrder": m.sort_order,
        "createdAt": iso(m.created_at),
        "updatedAt": iso(m.updated_at),
    }


def list_modules(s: Session, *, active_only: bool = False) -> list[ModuleCatalog]:
    q = s.query(ModuleCatalog)
    if active_only:
        q = q.filter(ModuleCatalog.is_active.is_(True))
    return q.order_by(ModuleCatalog.sort_order.asc(), ModuleCatalog.module_name.asc()).all()


def create_module(s: Session, payload: dict, actor: User) -> ModuleCatalog:
    key = (clean_str(pick(payload, "moduleKey", "module_key")) or "").lower()
    name = clean_str(pick(payload, "moduleName", "module_name"))
    if not key or not _MODULE_KEY_RE.match(key):
        raise ValueError("Chave do módulo inválida (use letras minúsculas, números, '-' ou '_')")
    if not name:
        raise ValueError("Nome do módulo é obrigatório")
    if s.get(ModuleCatalog, key) is not None:
        raise ValueError("Já existe um módulo com esta chave")

    now = datetime.utcnow()
    last = s.query(ModuleCatalog).order_by(ModuleCatalog.sort_order.desc()).first()
    m = ModuleCatalog(
        module_key=key,
        module_name=name,
        icon_name=clean_str(pick(payload, "iconName", "icon_name")),
        description=clean_str(payload.get("description")),
        route_path=clean_str(pick(payload, "routePath", "route_path")) or key,
        is_system=False,
        is_active=bool(pick(payload, "isActive", "is_active", default=True)),
        sort_order=(last.sort_order + 1) if last else 0,
        created_at=now,
        updated_at=now,
    )
    s.add(m)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="module.create",
        module_key="admin",
        entity_type="Module",
        entity_id=key,
        details={"moduleName": name},
    )
    return m


def update_module(s: Session, m: ModuleCatalog, payload: dict, actor: User) -> ModuleCatalog:
    changes = {}

    new_key = clean_str(pick(payload, "moduleKey", "module_key"))
    if new_key is not None:
        new_key = new_key.lower()
    if new_key and new_key != m.module_key:
        if m.is_system:
            raise ValueError("Não é permitido alterar a chave de um módulo de sistema")
        if not _MODULE_KEY_RE.match(new_key):
            raise ValueError("Chave do módulo inválida (use letras minúsculas, números, '-' ou '_')")
        if s.get(ModuleCatalog, new_key) is not None:
            raise ValueError("Já existe um módulo com esta chave")
        old_key = m.module_key
        # SQLite does not cascade the rename; carry the grants explicitly.
        grants = [
            (p.user_id, p.access_level)
            for p in s.query(UserModulePermission).filter(UserModulePermission.module_key == old_key).all()
        ]
        s.query(UserModulePermission).filter(UserModulePermission.module_key == old_key).delete(
            synchronize_session=False
        )
        renamed = ModuleCatalog(
            module_key=new_key,
            module_name=m.module_name,
            icon_name=m.icon_name,
            description=m.description,
            route_path=m.route_path if m.route_path != old_key else new_key,
            is_system=False,
            is_active=m.is_active,
            sort_order=m.sort_order,
            created_at=m.created_at,
            updated_at=m.updated_at,
        )
        s.delete(m)
        s.flush()
        s.add(renamed)
        s.flush()
        for user_id, level in grants:
            s.add(UserModulePermission(user_id=user_id, module_key=new_key, access_level=level))
        changes["moduleKey"] = {"old": old_key, "new": new_key}
        m = renamed

    for field, keys in (
        ("module_name", ("moduleName", "module_name")),
        ("icon_name", ("iconName", "icon_name")),
        ("description", ("description",)),
        ("route_path", ("routePath", "route_path")),
    ):
        marker = object()
        raw = pick(payload, *keys, default=marker)
        if raw is marker:
            continue
        value = clean_str(raw)
        if field == "module_name" and not value:
            raise ValueError("Nome do módulo é obrigatório")
        if value != getattr(m, field):
            changes[field] = {"old": getattr(m, field), "new": value}
            setattr(m, field, value)

    active = pick(payload, "isActive", "is_active")
    if active is not None and bool(active) != m.is_active:
        changes["is_active"] = {"old": m.is_active, "new": bool(active)}
        m.is_active = bool(active)

    if changes:
        m.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=actor,
            action="module.update",
            module_key="admin",
            entity_type="Module",
            entity_id=m.module_key,
            details={"changes": changes},
        )
    s.flush()
    return m


def delete_module(s: Session, m: ModuleCatalog, actor: User) -> None:
    if m.is_system:
        raise ValueError("Não é permitido excluir módulo de sistema")
    key = m.module_key
    s.query(UserModulePermission).filter(UserModulePermission.module_key == key).delete(synchronize_session=False)
    s.delete(m)
    record_event(s, actor=actor, action="module.delete", module_key="admin", entity_type="Module", entity_id=key)


# ---------- Per-user permissions ----------


def role_default_entries(s: Session, role: str) -> list[tuple[str, str]]:
    excluded, level = ROLE_DEFAULTS.get(role, ROLE_DEFAULTS["guest"])
    return [(m.module_key, level) for m in list_modules(s) if m.module_key not in excluded]


def _normalize_entries(s: Session, entries: Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
    known = {m.module_key for m in list_modules(s)}
    seen: dict[str, str] = {}
    for key, level in entries:
        key = (key or "").strip()
        if not key or key not in known or key in seen:
            continue
        if level not in ACCESS_LEVELS:
            raise ValueError(f"Nível de acesso inválido: {level}")
        seen[key] = level
    return list(seen.items())


def replace_user_permissions(s: Session, user: User, entries: Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
    """Rewrite the user's rows. Unknown keys are dropped, duplicates collapse (first wins)."""
    normalized = _normalize_entries(s, entries)
    s.query(UserModulePermission).filter(UserModulePermission.user_id == user.id).delete(synchronize_session=False)
    s.flush()
    for key, level in normalized:
        s.add(UserModulePermission(user_id=user.id, module_key=key, access_level=level))
    s.flush()
    s.expire(user, ["module_permissions"])
    return normalized


def seed_role_permissions(s: Session, user: User) -> list[tuple[str, str]]:
    return replace_user_permissions(s, user, role_default_entries(s, user.role))


def set_user_permissions(s: Session, user: User, entries: Iterable[tuple[str, str]], actor: User) -> list[tuple[str, str]]:
    normalized = replace_user_permissions(s, user, entries)
    record_event(
        s,
        actor=actor,
        action="permissions.update",
        module_key="admin",
        entity_type="User",
        entity_id=str(user.id),
        details={"permissions": dict(normalized)},
    )
    return normalized


def entries_from_payload(payload: dict) -> list[tuple[str, str]]:
    """
    Accepts {"moduleKeys": [...], "accessLevel": "view"} or
    {"permissions": [{"moduleKey": ..., "accessLevel": ...}]}.
    """
    if isinstance(payload.get("permissions"), list):
        out = []
        for item in payload["permissions"]:
            if not isinstance(item, dict):
                raise ValueError("Permissões devem ser objetos com moduleKey e accessLevel")
            out.append((str(pick(item, "moduleKey", "module_key") or ""), str(pick(item, "accessLevel", "access_level") or "")))
        return out
    keys = pick(payload, "moduleKeys", "module_keys")
    if not isinstance(keys, list):
        raise ValueError("moduleKeys deve ser um array")
    level = str(pick(payload, "accessLevel", "access_level") or "view")
    return [(str(k), level) for k in keys]


def user_permissions(s: Session, user: User) -> list[dict]:
    """Active-module grants for the user, in catalog order."""
    rows = (
        s.query(UserModulePermission, ModuleCatalog)
        .join(ModuleCatalog, ModuleCatalog.module_key == UserModulePermission.module_key)
        .filter(UserModulePermission.user_id == user.id, ModuleCatalog.is_active.is_(True))
        .order_by(ModuleCatalog.sort_order.asc(), ModuleCatalog.module_name.asc())
        .all()
    )
    return [
        {
            "moduleKey": m.module_key,
            "moduleName": m.module_name,
            "iconName": m.icon_name,
            "routePath": m.route_path,
            "accessLevel": p.access_level,
        }
        for p, m in rows
    ]


def ensure_user_permissions(s: Session, user: User) -> tuple[list[dict], str]:
    """
    Returns (permissions, source). Users with no rows at all get their role
    defaults persisted on the spot (source "fallback").
    """
    has_rows = s.query(UserModulePermission.id).filter(UserModulePermission.user_id == user.id).first() is not None
    if has_rows:
        return user_permissions(s, user), "persisted"
    seed_role_permissions(s, user)
    return user_permissions(s, user), "fallback"


def access_level_for(s: Session, user: User, module_key: str) -> str | None:
    row = (
        s.query(UserModulePermission.access_level)
        .join(ModuleCatalog, ModuleCatalog.module_key == UserModulePermission.module_key)
        .filter(
            UserModulePermission.user_id == user.id,
            UserModulePermission.module_key == module_key,
            ModuleCatalog.is_active.is_(True),
        )
        .first()
    )
    return row[0] if row else None
