"""
Field Capture Orders
Session blueprint.

Endpoints:
    GET    /api/v1/sessions                  list (filter: ?status=, paginated)
    POST   /api/v1/sessions                  create (status 'draft')
    GET    /api/v1/sessions/<id>             detail with group/station counts
    DELETE /api/v1/sessions/<id>             delete with blob cleanup
    PATCH  /api/v1/sessions/<id>/status      forward-only status transition
"""

import logging

from flask import Blueprint, jsonify, request

from fieldcapture.blueprints import paginate_query
from fieldcapture.models.session import CaptureSession
from fieldcapture.models.workflow import SESSION_STATUSES
from fieldcapture.services import session_service
from fieldcapture.services.session_cleanup import delete_session_with_cleanup
from fieldcapture.utils.errors import E, api_error
from fieldcapture.utils.helpers import get_or_404, register_service_error_handlers

logger = logging.getLogger(__name__)

session_bp = Blueprint("sessions", __name__, url_prefix="/api/v1")
register_service_error_handlers(session_bp)


@session_bp.route("/sessions", methods=["GET"])
def list_sessions():
    status = request.args.get("status")
    if status and status not in SESSION_STATUSES:
        return api_error(E.VALIDATION_INVALID, f"Invalid status. Must be one of: {sorted(SESSION_STATUSES)}")
    sessions, total = paginate_query(session_service.list_sessions(status=status))
    return jsonify({"items": [s.to_dict() for s in sessions], "total": total})


@session_bp.route("/sessions", methods=["POST"])
def create_session():
    session = session_service.create_session()
    return jsonify(session.to_dict(include_counts=True)), 201


@session_bp.route("/sessions/<session_id>", methods=["GET"])
def get_session(session_id):
    session, err = get_or_404(CaptureSession, session_id, "Session")
    if err:
        return err
    return jsonify(session.to_dict(include_counts=True))


@session_bp.route("/sessions/<session_id>", methods=["DELETE"])
def delete_session(session_id):
    session, err = get_or_404(CaptureSession, session_id, "Session")
    if err:
        return err
    result = delete_session_with_cleanup(session.id)
    return jsonify({"deleted": True, "session_id": session_id, **result}), 200


@session_bp.route("/sessions/<session_id>/status", methods=["PATCH"])
def update_session_status(session_id):
    session, err = get_or_404(CaptureSession, session_id, "Session")
    if err:
        return err

    data = request.get_json(silent=True) or {}
    new_status = data.get("status")
    if not new_status:
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    if new_status not in SESSION_STATUSES:
        return api_error(E.VALIDATION_INVALID, f"Invalid status. Must be one of: {sorted(SESSION_STATUSES)}")

    ok, message = session_service.transition_session(session, new_status)
    if not ok:
        return api_error(E.CONFLICT_STATE, message, details={"status": session.status})
    return jsonify({**session.to_dict(), "message": message}), 200
