"""
Share links: password-optional, expiring, read-only views over a selection of
acompanhamentos. The token itself is the capability; the password (when set)
is stored only as a Werkzeug hash.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from werkzeug.security import check_password_hash, generate_password_hash

from app.impgeo.audit import record_event
from app.impgeo.modules.acompanhamentos.service import MODULE_KEY, list_acompanhamentos
from app.impgeo.security import is_share_token, new_share_token
from app.impgeo.utils import clean_str, iso, parse_datetime, pick

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.impgeo.models import User
    from app.impgeo.modules.acompanhamentos.models import Acompanhamento, ShareLink


class ShareLinkError(Exception):
    status_code = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra


class ShareLinkInvalid(ShareLinkError):
    status_code = 400


class ShareLinkNotFound(ShareLinkError):
    status_code = 404


class ShareLinkExpired(ShareLinkError):
    status_code = 410


class ShareLinkPasswordRequired(ShareLinkError):
    status_code = 401


def is_expired(link: "ShareLink", now: datetime | None = None) -> bool:
    return link.expires_at is not None and link.expires_at <= (now or datetime.utcnow())


def serialize_share_link(link: "ShareLink") -> dict:
    return {
        "token": link.token,
        "name": link.name,
        "hasPassword": bool(link.password_hash),
        "expiresAt": iso(link.expires_at),
        "isExpired": is_expired(link),
        "selectedIds": link.selected_ids,
        "selectedCount": len(link.selected_ids) if link.selected_ids else None,
        "createdAt": iso(link.created_at),
        "updatedAt": iso(link.updated_at),
    }


def _parse_expires_at(raw: Any) -> datetime | None:
    try:
        expires_at = parse_datetime(raw)
    except ValueError as e:
        raise ValueError("Data de expiração inválida") from e
    return expires_at


def _parse_selected_ids(raw: Any) -> list[int] | None:
    """None or an empty list mean "every record"."""
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise ValueError("selectedIds deve ser um array")
    out = []
    for x in raw:
        try:
            out.append(int(x))
        except (TypeError, ValueError) as e:
            raise ValueError(f"ID inválido em selectedIds: {x}") from e
    return sorted(set(out)) or None


def list_share_links(s: "Session") -> list["ShareLink"]:
    from app.impgeo.modules.acompanhamentos.models import ShareLink

    return s.query(ShareLink).order_by(ShareLink.created_at.desc()).all()


def get_share_link(s: "Session", token: str) -> "ShareLink | None":
    from app.impgeo.modules.acompanhamentos.models import ShareLink

    return s.get(ShareLink, token)


def create_share_link(s: "Session", payload: dict, user: "User") -> "ShareLink":
    from app.impgeo.modules.acompanhamentos.models import ShareLink

    expires_at = _parse_expires_at(pick(payload, "expiresAt", "expires_at"))
    if expires_at is not None and expires_at <= datetime.utcnow():
        raise ValueError("Data de expiração deve ser no futuro")
    password = payload.get("password") or ""
    now = datetime.utcnow()
    link = ShareLink(
        token=new_share_token(),
        name=clean_str(payload.get("name")),
        password_hash=generate_password_hash(password) if password else None,
        expires_at=expires_at,
        selected_ids=_parse_selected_ids(pick(payload, "selectedIds", "selected_ids")),
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
    )
    s.add(link)
    s.flush()
    record_event(
        s,
        actor=user,
        action="share_link.create",
        module_key=MODULE_KEY,
        entity_type="ShareLink",
        entity_id=link.token[:16],
        details={"name": link.name, "hasPassword": bool(link.password_hash), "expiresAt": iso(expires_at)},
    )
    return link


def update_share_link(s: "Session", link: "ShareLink", payload: dict, user: "User") -> "ShareLink":
    """
    Partial update. password "" removes protection, expiresAt "" or null
    removes the expiry, regenerateToken issues a new token and retires the old one.
    """
    from app.impgeo.modules.acompanhamentos.models import ShareLink

    changed = []
    if "name" in payload:
        link.name = clean_str(payload.get("name"))
        changed.append("name")
    if "password" in payload:
        password = payload.get("password") or ""
        link.password_hash = generate_password_hash(password) if password else None
        changed.append("password")
    if "expiresAt" in payload or "expires_at" in payload:
        link.expires_at = _parse_expires_at(pick(payload, "expiresAt", "expires_at"))
        changed.append("expiresAt")
    if "selectedIds" in payload or "selected_ids" in payload:
        link.selected_ids = _parse_selected_ids(pick(payload, "selectedIds", "selected_ids"))
        changed.append("selectedIds")

    now = datetime.utcnow()
    link.updated_at = now

    if pick(payload, "regenerateToken", "regenerate_token"):
        old_token = link.token
        fresh = ShareLink(
            token=new_share_token(),
            name=link.name,
            password_hash=link.password_hash,
            expires_at=link.expires_at,
            selected_ids=link.selected_ids,
            created_at=link.created_at,
            updated_at=now,
            created_by_user_id=link.created_by_user_id,
        )
        s.delete(link)
        s.flush()
        s.add(fresh)
        s.flush()
        link = fresh
        changed.append("token")
        record_event(
            s,
            actor=user,
            action="share_link.regenerate",
            module_key=MODULE_KEY,
            entity_type="ShareLink",
            entity_id=fresh.token[:16],
            details={"previous": old_token[:16]},
        )

    record_event(
        s,
        actor=user,
        action="share_link.update",
        module_key=MODULE_KEY,
        entity_type="ShareLink",
        entity_id=link.token[:16],
        details={"fields": changed},
    )
    return link


def delete_share_link(s: "Session", link: "ShareLink", user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="share_link.delete",
        module_key=MODULE_KEY,
        entity_type="ShareLink",
        entity_id=link.token[:16],
        details={"name": link.name},
    )
    s.delete(link)


def resolve_public_view(
    s: "Session",
    token: str,
    password: str | None,
    now: datetime | None = None,
) -> tuple["ShareLink", list["Acompanhamento"]]:
    """
    Check a public request against its link and return the visible records.
    Order of checks: token format, existence, expiry, password.
    """
    if not is_share_token(token):
        raise ShareLinkInvalid("Token de compartilhamento inválido")
    link = get_share_link(s, token)
    if link is None:
        raise ShareLinkNotFound("Link de compartilhamento não encontrado")
    if is_expired(link, now):
        raise ShareLinkExpired("Este link de compartilhamento expirou", expiredAt=iso(link.expires_at))
    if link.password_hash:
        if not password:
            raise ShareLinkPasswordRequired("Este link é protegido por senha", passwordRequired=True)
        if not check_password_hash(link.password_hash, password):
            raise ShareLinkPasswordRequired("Senha incorreta", passwordRequired=True)
    records = list_acompanhamentos(s, ids=link.selected_ids or None)
    return link, records
