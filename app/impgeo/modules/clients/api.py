from __future__ import annotations

from flask import Blueprint, abort, g

from app.impgeo.crud import bulk_delete, parse_ids
from app.impgeo.db import db_session
from app.impgeo.modules.clients.models import Client
from app.impgeo.modules.clients.service import (
    MODULE_KEY,
    create_client,
    delete_client,
    list_clients,
    serialize_client,
    update_client,
)
from app.impgeo.rbac import require_module
from app.impgeo.utils import fail, json_payload, ok

bp = Blueprint("clients", __name__)


def _get_or_404(s, client_id: int) -> Client:
    c = s.get(Client, client_id)
    if not c:
        abort(404, description="Cliente não encontrado")
    return c


@bp.get("/clients")
@require_module(MODULE_KEY)
def clients_list():
    s = db_session()
    return ok([serialize_client(c) for c in list_clients(s)])


@bp.post("/clients")
@require_module(MODULE_KEY)
def clients_create():
    s = db_session()
    try:
        c = create_client(s, json_payload(), g.current_user)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_client(c), 201)


@bp.put("/clients/<int:client_id>")
@require_module(MODULE_KEY)
def clients_update(client_id: int):
    s = db_session()
    c = _get_or_404(s, client_id)
    try:
        update_client(s, c, json_payload(), g.current_user)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_client(c))


@bp.delete("/clients/<int:client_id>")
@require_module(MODULE_KEY)
def clients_delete(client_id: int):
    s = db_session()
    c = _get_or_404(s, client_id)
    delete_client(s, c, g.current_user)
    s.commit()
    return ok(message="Cliente deletado com sucesso")


@bp.delete("/clients")
@require_module(MODULE_KEY)
def clients_delete_many():
    s = db_session()
    try:
        ids = parse_ids(json_payload())
        deleted = bulk_delete(s, Client, ids, g.current_user, action="client.delete_many", module_key=MODULE_KEY)
        s.commit()
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    except Exception:
        s.rollback()
        raise
    return ok(message=f"{deleted} clientes deletados com sucesso", deletedCount=deleted)
