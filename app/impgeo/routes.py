from datetime import datetime

from flask import Blueprint, current_app

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast liveness check for the load balancer. No DB access.
    """
    return "ok", 200


@bp.get("/api/test")
def api_test():
    endpoints = sorted(
        f"{' '.join(sorted(rule.methods - {'HEAD', 'OPTIONS'}))} {rule.rule}"
        for rule in current_app.url_map.iter_rules()
        if rule.endpoint != "static"
    )
    return {
        "success": True,
        "message": "API IMPGEO funcionando",
        "timestamp": datetime.utcnow().isoformat(),
        "endpoints": endpoints,
    }
