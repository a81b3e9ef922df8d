from __future__ import annotations

from flask import Blueprint, abort, current_app, g, request, send_file

from app.impgeo.accounts import change_password, update_profile
from app.impgeo.audit import record_event
from app.impgeo.auth import session_user_payload
from app.impgeo.db import db_session
from app.impgeo.rbac import require_auth
from app.impgeo.security import issue_access_token
from app.impgeo.storage import StorageError, avatar_key, guess_content_type, storage_from_config
from app.impgeo.utils import fail, json_payload, ok

bp = Blueprint("profile", __name__)

PHOTO_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp")
PHOTO_MAX_BYTES = 5 * 1024 * 1024


@bp.get("/user/profile")
@require_auth
def profile_get():
    s = db_session()
    data = session_user_payload(s, g.current_user)
    s.commit()
    return ok(data)


@bp.put("/user/profile")
@require_auth
def profile_update():
    s = db_session()
    user = g.current_user
    try:
        update_profile(s, user, json_payload())
    except PermissionError as e:
        s.rollback()
        return fail(str(e), 401)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    data = session_user_payload(s, user)
    s.commit()
    token = issue_access_token(
        user,
        secret=current_app.config["JWT_SECRET"],
        expires_hours=int(current_app.config.get("JWT_EXPIRES_HOURS") or 24),
    )
    return ok(data, token=token, message="Perfil atualizado com sucesso")


@bp.put("/user/password")
@require_auth
def password_update():
    payload = json_payload()
    s = db_session()
    try:
        change_password(s, g.current_user, payload.get("currentPassword") or "", payload.get("newPassword") or "")
    except PermissionError as e:
        s.rollback()
        return fail(str(e), 401)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(message="Senha alterada com sucesso")


@bp.post("/user/upload-photo")
@require_auth
def photo_upload():
    f = request.files.get("photo")
    if not f or not f.filename:
        return fail("Nenhuma imagem enviada", 400)
    filename = f.filename.lower()
    if not filename.endswith(PHOTO_EXTENSIONS):
        return fail("Formato de imagem inválido. Use PNG, JPG ou WEBP.", 400)
    data = f.read(PHOTO_MAX_BYTES + 1)
    if len(data) > PHOTO_MAX_BYTES:
        return fail("Imagem muito grande. Tamanho máximo: 5MB.", 400)

    s = db_session()
    user = g.current_user
    storage = storage_from_config(current_app.config)
    key = avatar_key(user.id, filename)
    storage.put_bytes(key, data, content_type=f.mimetype or guess_content_type(key))

    old_key = user.photo_url
    user.photo_url = key
    record_event(s, actor=user, action="profile.photo_upload", entity_type="User", entity_id=str(user.id))
    s.commit()
    if old_key and old_key.startswith(f"avatars/{user.id}/"):
        try:
            storage.delete(old_key)
        except StorageError as e:
            current_app.logger.warning("Could not delete previous avatar %s: %s", old_key, e)
    return ok(photoUrl=key, message="Foto atualizada com sucesso")


@bp.get("/avatars/<path:key>")
def avatar_get(key: str):
    if not key.startswith("avatars/"):
        key = f"avatars/{key}"
    storage = storage_from_config(current_app.config)
    try:
        fobj = storage.open(key)
    except StorageError:
        abort(404)
    return send_file(fobj, mimetype=guess_content_type(key), max_age=3600)
