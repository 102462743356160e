from flask import Blueprint

bp = Blueprint("routes", __name__)


@bp.get("/api/")
def index():
    return {"name": "crm-admin-api"}


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s/DO probes. No DB access, minimal overhead.
    """
    return "ok", 200
