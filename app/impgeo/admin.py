from __future__ import annotations

from flask import Blueprint, abort, g, request

from app.impgeo.accounts import create_user, delete_user, serialize_user, update_user
from app.impgeo.audit import list_events
from app.impgeo.db import db_session
from app.impgeo.models import ModuleCatalog, User
from app.impgeo.permissions import (
    create_module,
    delete_module,
    entries_from_payload,
    list_modules,
    role_default_entries,
    serialize_module,
    set_user_permissions,
    update_module,
    user_permissions,
)
from app.impgeo.rbac import require_admin
from app.impgeo.statistics import overview, usage_timeline
from app.impgeo.utils import fail, json_payload, ok, parse_date

bp = Blueprint("admin", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _get_user_or_404(s, user_id: int) -> User:
    u = s.get(User, user_id)
    if not u:
        abort(404, description="Usuário não encontrado")
    return u


def _date_arg(name: str):
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return None
    try:
        return parse_date(raw)
    except ValueError:
        abort(400, description=f"{name} deve estar no formato YYYY-MM-DD")


# ---------- Users ----------
@bp.get("/users")
@require_admin
def users_list():
    s = db_session()
    users = s.query(User).order_by(User.username.asc()).all()
    return ok([serialize_user(u) for u in users])


@bp.post("/users")
@require_admin
def users_create():
    s = db_session()
    try:
        u = create_user(s, json_payload(), _current_user())
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_user(u), 201, message="Usuário criado com sucesso")


@bp.put("/users/<int:user_id>")
@require_admin
def users_update(user_id: int):
    s = db_session()
    u = _get_user_or_404(s, user_id)
    try:
        update_user(s, u, json_payload(), _current_user())
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_user(u), message="Usuário atualizado com sucesso")


@bp.delete("/users/<int:user_id>")
@require_admin
def users_delete(user_id: int):
    s = db_session()
    u = _get_user_or_404(s, user_id)
    try:
        delete_user(s, u, _current_user())
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(message="Usuário excluído com sucesso")


# ---------- Per-user module permissions ----------
@bp.get("/users/<int:user_id>/permissions")
@require_admin
def user_permissions_get(user_id: int):
    s = db_session()
    u = _get_user_or_404(s, user_id)
    return ok(user_permissions(s, u))


@bp.put("/users/<int:user_id>/permissions")
@require_admin
def user_permissions_put(user_id: int):
    s = db_session()
    u = _get_user_or_404(s, user_id)
    try:
        entries = entries_from_payload(json_payload())
        set_user_permissions(s, u, entries, _current_user())
        s.commit()
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    return ok(user_permissions(s, u), message="Permissões atualizadas com sucesso")


@bp.post("/users/<int:user_id>/permissions/reset")
@require_admin
def user_permissions_reset(user_id: int):
    s = db_session()
    u = _get_user_or_404(s, user_id)
    set_user_permissions(s, u, role_default_entries(s, u.role), _current_user())
    s.commit()
    return ok(user_permissions(s, u), message="Permissões restauradas para o padrão do perfil")


# ---------- Module catalog ----------
@bp.get("/admin/modules")
@require_admin
def modules_list():
    s = db_session()
    return ok([serialize_module(m) for m in list_modules(s)])


@bp.post("/admin/modules")
@require_admin
def modules_create():
    s = db_session()
    try:
        m = create_module(s, json_payload(), _current_user())
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_module(m), 201)


@bp.put("/admin/modules/<module_key>")
@require_admin
def modules_update(module_key: str):
    s = db_session()
    m = s.get(ModuleCatalog, module_key)
    if not m:
        abort(404, description="Módulo não encontrado")
    try:
        m = update_module(s, m, json_payload(), _current_user())
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_module(m))


@bp.delete("/admin/modules/<module_key>")
@require_admin
def modules_delete(module_key: str):
    s = db_session()
    m = s.get(ModuleCatalog, module_key)
    if not m:
        abort(404, description="Módulo não encontrado")
    try:
        delete_module(s, m, _current_user())
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(message="Módulo excluído com sucesso")


# ---------- Activity & statistics ----------
@bp.get("/admin/activity-log")
@require_admin
def activity_log():
    s = db_session()
    user_id = request.args.get("userId", type=int)
    page = list_events(
        s,
        page=request.args.get("page", 1),
        page_size=request.args.get("pageSize", 20),
        user_id=user_id,
        module_key=(request.args.get("moduleKey") or "").strip() or None,
        action=(request.args.get("action") or "").strip() or None,
        start_date=_date_arg("startDate"),
        end_date=_date_arg("endDate"),
        search=(request.args.get("search") or "").strip() or None,
    )
    return ok(**page)


@bp.get("/admin/statistics")
@require_admin
def statistics():
    s = db_session()
    return ok(overview(s))


@bp.get("/admin/statistics/usage-timeline")
@require_admin
def statistics_timeline():
    s = db_session()
    try:
        data = usage_timeline(
            s,
            start_date=_date_arg("startDate"),
            end_date=_date_arg("endDate"),
            group_by=(request.args.get("groupBy") or "day").strip().lower(),
        )
    except ValueError as e:
        return fail(str(e), 400)
    return ok(data)
