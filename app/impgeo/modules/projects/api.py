from __future__ import annotations

from flask import Blueprint, abort, g

from app.impgeo.crud import bulk_delete, parse_ids
from app.impgeo.db import db_session
from app.impgeo.modules.projects.models import Project
from app.impgeo.modules.projects.service import (
    MODULE_KEY,
    create_project,
    delete_project,
    list_projects,
    serialize_project,
    update_project,
)
from app.impgeo.rbac import require_module
from app.impgeo.utils import fail, json_payload, ok

bp = Blueprint("projects", __name__)


def _get_or_404(s, project_id: int) -> Project:
    p = s.get(Project, project_id)
    if not p:
        abort(404, description="Projeto não encontrado")
    return p


@bp.get("/projects")
@require_module(MODULE_KEY)
def projects_list():
    s = db_session()
    return ok([serialize_project(p) for p in list_projects(s)])


@bp.post("/projects")
@require_module(MODULE_KEY)
def projects_create():
    s = db_session()
    try:
        p = create_project(s, json_payload(), g.current_user)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_project(p), 201)


@bp.put("/projects/<int:project_id>")
@require_module(MODULE_KEY)
def projects_update(project_id: int):
    s = db_session()
    p = _get_or_404(s, project_id)
    try:
        update_project(s, p, json_payload(), g.current_user)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_project(p))


@bp.delete("/projects/<int:project_id>")
@require_module(MODULE_KEY)
def projects_delete(project_id: int):
    s = db_session()
    p = _get_or_404(s, project_id)
    delete_project(s, p, g.current_user)
    s.commit()
    return ok(message="Projeto deletado com sucesso")


@bp.delete("/projects")
@require_module(MODULE_KEY)
def projects_delete_many():
    s = db_session()
    try:
        ids = parse_ids(json_payload())
        deleted = bulk_delete(s, Project, ids, g.current_user, action="project.delete_many", module_key=MODULE_KEY)
        s.commit()
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    except Exception:
        s.rollback()
        raise
    return ok(message=f"{deleted} projetos deletados com sucesso", deletedCount=deleted)
