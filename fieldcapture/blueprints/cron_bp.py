"""
Field Capture Orders
Cron trigger blueprint.

Endpoints (all require Bearer CRON_SECRET):
    GET|POST /api/v1/cron/cleanup-sessions   ?max_age_ms=
    GET      /api/v1/cron/jobs               registered jobs with run history
    GET      /api/v1/cron/jobs/<name>
    PATCH    /api/v1/cron/jobs/<name>        {enabled: bool}  pause / resume

The platform scheduler calls the cleanup endpoint; the work itself runs as
the 'session_cleanup' job so every run lands in ScheduledJob history. A
paused job answers 200 with skipped=true so the scheduler does not retry.
"""

import hmac
import logging

from flask import Blueprint, current_app, jsonify, request

from fieldcapture.services.scheduler_service import SchedulerService
from fieldcapture.utils.errors import E, api_error

logger = logging.getLogger(__name__)

cron_bp = Blueprint("cron", __name__, url_prefix="/api/v1/cron")


def _authorized():
    secret = current_app.config.get("CRON_SECRET") or ""
    if not secret:
        logger.error("CRON_SECRET is not configured; refusing cron request")
        return False
    header = request.headers.get("Authorization", "")
    expected = f"Bearer {secret}"
    return hmac.compare_digest(header.encode(), expected.encode())


@cron_bp.before_request
def _require_cron_secret():
    if not _authorized():
        return jsonify({"error": "Unauthorized"}), 401
    return None


@cron_bp.route("/cleanup-sessions", methods=["GET", "POST"])
def cleanup_sessions():
    max_age_ms = current_app.config["SESSION_RETENTION_MS"]
    raw = request.args.get("max_age_ms")
    if raw is not None:
        try:
            max_age_ms = int(raw)
        except ValueError:
            return api_error(E.VALIDATION_INVALID, "max_age_ms must be an integer")
        if max_age_ms < 0:
            return api_error(E.VALIDATION_INVALID, "max_age_ms must be >= 0")

    SchedulerService.ensure_jobs_registered()
    run = SchedulerService.run_job("session_cleanup", max_age_ms=max_age_ms)
    if run["status"] == "skipped":
        return jsonify({"success": True, "skipped": True, "message": run["error"]}), 200
    if run["status"] != "success":
        logger.error("Cleanup cron failed: %s", run.get("error"), extra={"job_name": "session_cleanup"})
        return jsonify({"error": "Cleanup failed", "message": run.get("error")}), 500

    return jsonify({"success": True, **run["result"]}), 200


@cron_bp.route("/jobs", methods=["GET"])
def list_jobs():
    jobs = SchedulerService.list_jobs()
    return jsonify({"items": jobs, "total": len(jobs)}), 200


@cron_bp.route("/jobs/<job_name>", methods=["GET"])
def get_job(job_name):
    SchedulerService.ensure_jobs_registered()
    job = SchedulerService.get_job_status(job_name)
    if job is None:
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    return jsonify(job), 200


@cron_bp.route("/jobs/<job_name>", methods=["PATCH"])
def set_job_enabled(job_name):
    data = request.get_json(silent=True) or {}
    enabled = data.get("enabled")
    if not isinstance(enabled, bool):
        return api_error(E.VALIDATION_INVALID, "enabled must be a boolean")

    SchedulerService.ensure_jobs_registered()
    job = SchedulerService.toggle_job(job_name, enabled)
    if job is None:
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    return jsonify(job), 200
