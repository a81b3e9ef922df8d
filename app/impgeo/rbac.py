from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, request

from app.impgeo.db import db_session
from app.impgeo.models import User
from app.impgeo.permissions import access_allows, access_level_for

METHOD_LEVELS = {
    "GET": "view",
    "HEAD": "view",
    "OPTIONS": "view",
    "POST": "write",
    "PUT": "write",
    "PATCH": "write",
    "DELETE": "edit",
}


def current_user() -> User | None:
    return getattr(g, "current_user", None)


def user_has_access(user: User | None, module_key: str, required: str) -> bool:
    if not user or not user.is_active:
        return False
    if user.role == "admin":
        return True
    return access_allows(access_level_for(db_session(), user, module_key), required)


def _unauthenticated():
    # load_current_user leaves the reason on g; forged/expired tokens are 403.
    if getattr(g, "auth_error", None) == "invalid":
        abort(403, description="Token inválido")
    abort(401, description="Token de acesso requerido")


def require_auth(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if not current_user():
            _unauthenticated()
        return fn(*args, **kwargs)

    return wrapped


def require_admin(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user = current_user()
        if not user:
            _unauthenticated()
        if user.role != "admin":
            g.missing_permission = "role:admin"
            abort(403, description="Acesso negado. Apenas administradores podem realizar esta ação.")
        return fn(*args, **kwargs)

    return wrapped


def require_module(module_key: str, level: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Gate a route on a module grant. Without an explicit level the HTTP method
    decides: reads need "view", writes need "write", deletes need "edit".
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = current_user()
            if not user:
                _unauthenticated()
            required = level or METHOD_LEVELS.get(request.method, "edit")
            if not user_has_access(user, module_key, required):
                g.missing_permission = f"{module_key}:{required}"
                abort(403, description="Acesso negado para este módulo.")
            return fn(*args, **kwargs)

        return wrapped

    return decorator
