"""
Field Capture Orders
Session report blueprint: read-only derived views (cached).

Endpoints:
    GET /api/v1/sessions/<sid>/demand            aggregated demand per product
    GET /api/v1/sessions/<sid>/order             recommended order + skipped items
    GET /api/v1/sessions/<sid>/coverage          demand codes with / without counted stock
    GET /api/v1/sessions/<sid>/extraction-stats  extraction totals
"""

from flask import Blueprint, jsonify

from fieldcapture.models.session import CaptureSession
from fieldcapture.services import report_service
from fieldcapture.utils.helpers import get_or_404, register_service_error_handlers

report_bp = Blueprint("reports", __name__, url_prefix="/api/v1")
register_service_error_handlers(report_bp)


@report_bp.route("/sessions/<session_id>/demand", methods=["GET"])
def demand(session_id):
    session, err = get_or_404(CaptureSession, session_id, "Session")
    if err:
        return err
    return jsonify(report_service.get_demand(session.id))


@report_bp.route("/sessions/<session_id>/order", methods=["GET"])
def order(session_id):
    session, err = get_or_404(CaptureSession, session_id, "Session")
    if err:
        return err
    return jsonify(report_service.get_order(session.id))


@report_bp.route("/sessions/<session_id>/coverage", methods=["GET"])
def coverage(session_id):
    session, err = get_or_404(CaptureSession, session_id, "Session")
    if err:
        return err
    return jsonify(report_service.get_coverage(session.id))


@report_bp.route("/sessions/<session_id>/extraction-stats", methods=["GET"])
def extraction_stats(session_id):
    session, err = get_or_404(CaptureSession, session_id, "Session")
    if err:
        return err
    return jsonify(report_service.get_extraction_stats(session.id))
