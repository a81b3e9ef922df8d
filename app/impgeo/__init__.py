import logging
import os

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from app.impgeo.admin import bp as admin_bp
from app.impgeo.auth import bp as auth_bp, load_current_user
from app.impgeo.config import load_config
from app.impgeo.db import init_db, teardown_db_session
from app.impgeo.modules.acompanhamentos.api import bp as acompanhamentos_bp
from app.impgeo.modules.clients.api import bp as clients_bp
from app.impgeo.modules.products.api import bp as products_bp
from app.impgeo.modules.projection.api import bp as projection_bp
from app.impgeo.modules.projects.api import bp as projects_bp
from app.impgeo.modules.services.api import bp as services_bp
from app.impgeo.modules.spreadsheets.api import bp as spreadsheets_bp
from app.impgeo.modules.transactions.api import bp as transactions_bp
from app.impgeo.profile import bp as profile_bp
from app.impgeo.routes import bp as routes_bp

DEFAULT_ERRORS = {
    400: "Requisição inválida",
    401: "Token de acesso requerido",
    403: "Acesso negado",
    404: "Recurso não encontrado",
    405: "Método não permitido",
    413: "Arquivo muito grande",
    429: "Muitas requisições. Tente novamente mais tarde.",
    500: "Erro interno do servidor",
}


def create_app(config_overrides: dict | None = None) -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    if config_overrides:
        app.config.update(config_overrides)
    app.json.ensure_ascii = False

    origins = [o.strip() for o in str(app.config.get("CORS_ORIGINS") or "*").split(",") if o.strip()]
    CORS(app, resources={r"/api/*": {"origins": origins or "*"}})

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if not app.config.get("JWT_SECRET") or str(app.config["JWT_SECRET"]) in ("", "change-me"):
            raise RuntimeError("JWT_SECRET must be set to a strong value in production (not default).")

    init_db(app)

    if hasattr(os, "register_at_fork"):
        def _after_fork_child():
            engine = app.extensions.get("sqlalchemy_engine")
            if engine:
                engine.dispose()
                app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

        os.register_at_fork(after_in_child=_after_fork_child)

    # Storage health check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(profile_bp, url_prefix="/api")
    app.register_blueprint(admin_bp, url_prefix="/api")
    app.register_blueprint(transactions_bp, url_prefix="/api")
    app.register_blueprint(clients_bp, url_prefix="/api")
    app.register_blueprint(products_bp, url_prefix="/api")
    app.register_blueprint(projects_bp, url_prefix="/api")
    app.register_blueprint(services_bp, url_prefix="/api")
    app.register_blueprint(acompanhamentos_bp, url_prefix="/api")
    app.register_blueprint(projection_bp, url_prefix="/api")
    app.register_blueprint(spreadsheets_bp, url_prefix="/api")

    def _load_user_wrapper():
        if request.path.startswith(("/health", "/healthz")):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    def _json_error(e: HTTPException):
        code = e.code or 500
        message = e.description if e.description and e.description != type(e).description else DEFAULT_ERRORS.get(code)
        return jsonify({"success": False, "error": message or DEFAULT_ERRORS[500]}), code

    for code in (400, 401, 404, 405, 413, 429):
        app.register_error_handler(code, _json_error)

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return _json_error(e)

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"success": False, "error": DEFAULT_ERRORS[500]}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
