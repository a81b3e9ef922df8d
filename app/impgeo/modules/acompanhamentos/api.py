from __future__ import annotations

from flask import Blueprint, abort, current_app, g, request

from app.impgeo.crud import bulk_delete, parse_ids
from app.impgeo.db import db_session
from app.impgeo.modules.acompanhamentos.models import Acompanhamento
from app.impgeo.modules.acompanhamentos.service import (
    MODULE_KEY,
    create_acompanhamento,
    delete_acompanhamento,
    list_acompanhamentos,
    serialize_acompanhamento,
    update_acompanhamento,
)
from app.impgeo.modules.acompanhamentos.sharing import (
    ShareLinkError,
    create_share_link,
    delete_share_link,
    get_share_link,
    list_share_links,
    resolve_public_view,
    serialize_share_link,
    update_share_link,
)
from app.impgeo.rbac import require_module
from app.impgeo.utils import fail, json_payload, ok

bp = Blueprint("acompanhamentos", __name__)


def _get_or_404(s, acompanhamento_id: int) -> Acompanhamento:
    a = s.get(Acompanhamento, acompanhamento_id)
    if not a:
        abort(404, description="Acompanhamento não encontrado")
    return a


# ---------- CRUD ----------
@bp.get("/acompanhamentos")
@require_module(MODULE_KEY)
def acompanhamentos_list():
    s = db_session()
    return ok([serialize_acompanhamento(a) for a in list_acompanhamentos(s)])


@bp.post("/acompanhamentos")
@require_module(MODULE_KEY)
def acompanhamentos_create():
    s = db_session()
    try:
        a = create_acompanhamento(s, json_payload(), g.current_user)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_acompanhamento(a), 201)


@bp.put("/acompanhamentos/<int:acompanhamento_id>")
@require_module(MODULE_KEY)
def acompanhamentos_update(acompanhamento_id: int):
    s = db_session()
    a = _get_or_404(s, acompanhamento_id)
    try:
        update_acompanhamento(s, a, json_payload(), g.current_user)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_acompanhamento(a))


@bp.delete("/acompanhamentos/<int:acompanhamento_id>")
@require_module(MODULE_KEY)
def acompanhamentos_delete(acompanhamento_id: int):
    s = db_session()
    a = _get_or_404(s, acompanhamento_id)
    delete_acompanhamento(s, a, g.current_user)
    s.commit()
    return ok(message="Acompanhamento deletado com sucesso")


@bp.delete("/acompanhamentos")
@require_module(MODULE_KEY)
def acompanhamentos_delete_many():
    s = db_session()
    try:
        ids = parse_ids(json_payload())
        deleted = bulk_delete(
            s, Acompanhamento, ids, g.current_user, action="acompanhamento.delete_many", module_key=MODULE_KEY
        )
        s.commit()
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    except Exception:
        s.rollback()
        raise
    return ok(message=f"{deleted} acompanhamentos deletados com sucesso", deletedCount=deleted)


# ---------- Share links (authenticated) ----------
@bp.get("/acompanhamentos/share-links")
@require_module(MODULE_KEY, "view")
def share_links_list():
    s = db_session()
    return ok([serialize_share_link(link) for link in list_share_links(s)])


@bp.post("/acompanhamentos/generate-share-link")
@require_module(MODULE_KEY, "write")
def share_links_create():
    s = db_session()
    try:
        link = create_share_link(s, json_payload(), g.current_user)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    data = serialize_share_link(link)
    data["url"] = f"{current_app.config['FRONTEND_URL'].rstrip('/')}/acompanhamentos/view/{link.token}"
    return ok(data, 201, token=link.token)


@bp.put("/acompanhamentos/share-links/<token>")
@require_module(MODULE_KEY, "write")
def share_links_update(token: str):
    s = db_session()
    link = get_share_link(s, token)
    if link is None:
        abort(404, description="Link de compartilhamento não encontrado")
    try:
        link = update_share_link(s, link, json_payload(), g.current_user)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_share_link(link))


@bp.delete("/acompanhamentos/share-links/<token>")
@require_module(MODULE_KEY, "edit")
def share_links_delete(token: str):
    s = db_session()
    link = get_share_link(s, token)
    if link is None:
        abort(404, description="Link de compartilhamento não encontrado")
    delete_share_link(s, link, g.current_user)
    s.commit()
    return ok(message="Link de compartilhamento excluído com sucesso")


# ---------- Public view (no auth) ----------
@bp.route("/acompanhamentos/public/<token>", methods=["GET", "POST"])
def public_view(token: str):
    body = json_payload() if request.method == "POST" else {}
    password = body.get("password") or request.headers.get("X-Share-Password") or request.args.get("password")
    s = db_session()
    try:
        link, records = resolve_public_view(s, token, password)
    except ShareLinkError as e:
        return fail(e.message, e.status_code, **e.extra)
    return ok(
        [serialize_acompanhamento(a) for a in records],
        shareLinkName=link.name,
        expiresAt=serialize_share_link(link)["expiresAt"],
    )
