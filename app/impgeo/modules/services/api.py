from __future__ import annotations

from flask import Blueprint, abort, g

from app.impgeo.db import db_session
from app.impgeo.modules.services.models import Service
from app.impgeo.modules.services.service import (
    MODULE_KEY,
    create_service,
    delete_service,
    list_services,
    serialize_service,
    update_service,
)
from app.impgeo.rbac import require_module
from app.impgeo.utils import fail, json_payload, ok

bp = Blueprint("services", __name__)


def _get_or_404(s, service_id: int) -> Service:
    sv = s.get(Service, service_id)
    if not sv:
        abort(404, description="Serviço não encontrado")
    return sv


@bp.get("/services")
@require_module(MODULE_KEY)
def services_list():
    s = db_session()
    return ok([serialize_service(sv) for sv in list_services(s)])


@bp.post("/services")
@require_module(MODULE_KEY)
def services_create():
    s = db_session()
    try:
        sv = create_service(s, json_payload(), g.current_user)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_service(sv), 201)


@bp.put("/services/<int:service_id>")
@require_module(MODULE_KEY)
def services_update(service_id: int):
    s = db_session()
    sv = _get_or_404(s, service_id)
    try:
        update_service(s, sv, json_payload(), g.current_user)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_service(sv))


@bp.delete("/services/<int:service_id>")
@require_module(MODULE_KEY)
def services_delete(service_id: int):
    s = db_session()
    sv = _get_or_404(s, service_id)
    delete_service(s, sv, g.current_user)
    s.commit()
    return ok(message="Serviço deletado com sucesso")
