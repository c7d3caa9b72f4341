"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready : simple 200 for load balancers
    GET /api/v1/health/live  : detailed system health (DB, cache, blob store)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from fieldcapture.integrations.blob_store import get_blob_store
from fieldcapture.models import db
from fieldcapture.services import cache_service

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe: always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    # ── Cache (Redis or memory) ──────────────────────────────────────
    # Cache is optional: don't fail overall health
    checks["cache"] = cache_service.health_check()

    # ── Blob store ───────────────────────────────────────────────────
    try:
        store = get_blob_store()
        checks["blob_store"] = {
            "status": "ok" if store.ping() else "error",
            "backend": type(store).__name__,
        }
    except Exception as exc:
        checks["blob_store"] = {"status": "error", "detail": str(exc)}
        logger.warning("Health check: blob store failed: %s", exc)

    checks["app"] = {
        "name": "Field Capture Orders",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
