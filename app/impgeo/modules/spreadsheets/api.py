from __future__ import annotations

from datetime import date
from io import BytesIO

from flask import Blueprint, abort, current_app, g, request, send_file

from app.impgeo.db import db_session
from app.impgeo.modules.spreadsheets.service import (
    XLSX_MIMETYPE,
    SheetType,
    build_template,
    current_rows,
    export_workbook,
    import_message,
    import_rows,
    read_rows,
    sheet_type,
)
from app.impgeo.rbac import current_user, require_auth, user_has_access
from app.impgeo.utils import fail, json_payload, ok

bp = Blueprint("spreadsheets", __name__)


def _require_level(t: SheetType, level: str) -> None:
    if not user_has_access(current_user(), t.module_key, level):
        g.missing_permission = f"{t.module_key}:{level}"
        abort(403, description="Acesso negado para este módulo.")


def _xlsx_response(data: bytes, filename: str):
    return send_file(BytesIO(data), mimetype=XLSX_MIMETYPE, as_attachment=True, download_name=filename)


@bp.get("/modelo/<type_key>")
@require_auth
def template_download(type_key: str):
    try:
        t = sheet_type(type_key)
    except ValueError as e:
        return fail(str(e), 400)
    return _xlsx_response(build_template(t), t.template_filename)


@bp.post("/import")
@require_auth
def import_file():
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return fail("Nenhum arquivo foi enviado!", 400)
    try:
        t = sheet_type(request.form.get("type"))
    except ValueError as e:
        return fail(str(e), 400)
    if not upload.filename.lower().endswith(".xlsx"):
        return fail("Apenas arquivos .xlsx são permitidos!", 400)
    _require_level(t, "write")

    max_bytes = current_app.config["IMPORT_MAX_BYTES"]
    data = upload.read(max_bytes + 1)
    if len(data) > max_bytes:
        return fail(f"Arquivo muito grande! Tamanho máximo permitido: {max_bytes // (1024 * 1024)}MB.", 400)

    current_app.logger.info("import: %s (%s, %d bytes)", upload.filename, t.key, len(data))
    s = db_session()
    try:
        rows = read_rows(data)
        saved = import_rows(s, t, rows, g.current_user)
        s.commit()
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    except Exception:
        s.rollback()
        raise
    return ok(saved, message=import_message(t, len(saved)), count=len(saved), type=t.key)


@bp.post("/export")
@require_auth
def export_file():
    payload = json_payload()
    try:
        t = sheet_type(payload.get("type"))
    except ValueError as e:
        return fail(str(e), 400)
    _require_level(t, "view")
    records = payload.get("data")
    if records is None:
        records = current_rows(db_session(), t)
    try:
        data = export_workbook(t, records)
    except ValueError as e:
        return fail(str(e), 400)
    return _xlsx_response(data, f"{t.key}_{date.today().isoformat()}.xlsx")
