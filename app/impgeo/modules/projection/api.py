from __future__ import annotations

from flask import Blueprint, g

from app.impgeo.db import db_session
from app.impgeo.modules.projection.service import (
    MODULE_KEY,
    SERIES,
    SeriesSpec,
    clear_all,
    clear_series,
    create_snapshot,
    get_projection_row,
    get_series_row,
    restore_snapshot,
    serialize_projection,
    serialize_series,
    spec_for,
    sync_projection,
    update_projection,
    update_series,
)
from app.impgeo.rbac import require_module
from app.impgeo.utils import fail, iso, json_payload, ok

bp = Blueprint("projection", __name__)


# ---------- Budget series ----------
def _series_get(spec: SeriesSpec):
    s = db_session()
    row = get_series_row(s, spec)
    s.commit()
    return ok(serialize_series(spec, row))


def _series_put(spec: SeriesSpec):
    s = db_session()
    try:
        row = update_series(s, spec, json_payload(), g.current_user)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_series(spec, row), message=f"Dados de {spec.label} salvos com sucesso")


def _series_delete(spec: SeriesSpec):
    s = db_session()
    try:
        row = clear_series(s, spec, g.current_user)
        s.commit()
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    except Exception:
        s.rollback()
        raise
    return ok(serialize_series(spec, row), message=f"Dados de {spec.label} limpos com sucesso")


def _register_series_routes(spec: SeriesSpec) -> None:
    endpoint = spec.key
    bp.add_url_rule(
        f"/{spec.slug}",
        f"{endpoint}_get",
        require_module(MODULE_KEY)(lambda: _series_get(spec)),
        methods=["GET"],
    )
    bp.add_url_rule(
        f"/{spec.slug}",
        f"{endpoint}_put",
        require_module(MODULE_KEY)(lambda: _series_put(spec)),
        methods=["PUT"],
    )
    if spec.clearable:
        bp.add_url_rule(
            f"/{spec.slug}",
            f"{endpoint}_delete",
            require_module(MODULE_KEY)(lambda: _series_delete(spec)),
            methods=["DELETE"],
        )


for _spec in SERIES.values():
    _register_series_routes(_spec)


# ---------- Master projection ----------
@bp.get("/projection")
@require_module(MODULE_KEY)
def projection_get():
    s = db_session()
    row = get_projection_row(s)
    s.commit()
    return ok(serialize_projection(row))


@bp.put("/projection")
@require_module(MODULE_KEY)
def projection_put():
    s = db_session()
    try:
        row = update_projection(s, json_payload(), g.current_user)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_projection(row), message="Projeção salva com sucesso")


@bp.post("/projection/sync")
@require_module(MODULE_KEY)
def projection_sync():
    s = db_session()
    row = sync_projection(s, g.current_user)
    s.commit()
    return ok(serialize_projection(row), message="Projeção sincronizada com sucesso")


@bp.delete("/clear-all-projection-data")
@require_module(MODULE_KEY)
def projection_clear_all():
    s = db_session()
    try:
        clear_all(s, g.current_user)
        s.commit()
    except Exception:
        s.rollback()
        raise
    return ok(message="Todos os dados de projeção foram limpos com sucesso")


# ---------- Snapshots ----------
@bp.post("/backup/create/<series>")
@require_module(MODULE_KEY, "write")
def backup_create(series: str):
    try:
        spec = spec_for(series)
    except KeyError:
        return fail(f"Série desconhecida: {series}", 400)
    s = db_session()
    snap = create_snapshot(s, spec, g.current_user)
    s.commit()
    return ok({"id": snap.id, "series": spec.key, "createdAt": iso(snap.created_at)}, 201, message="Backup criado com sucesso")


@bp.post("/backup/restore/<series>")
@require_module(MODULE_KEY, "write")
def backup_restore(series: str):
    try:
        spec = spec_for(series)
    except KeyError:
        return fail(f"Série desconhecida: {series}", 400)
    s = db_session()
    try:
        snap = restore_snapshot(s, spec, g.current_user)
    except LookupError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(
        serialize_series(spec, get_series_row(s, spec)),
        message="Backup restaurado com sucesso",
        restoredFrom=iso(snap.created_at),
    )
