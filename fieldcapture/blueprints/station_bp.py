"""
Field Capture Orders
Inventory station blueprint.

Endpoints:
    GET    /api/v1/sessions/<sid>/stations                  list
    POST   /api/v1/sessions/<sid>/stations/create-pending   empty pending station

    POST   /api/v1/stations/<id>/images/complete    {slot, blob_url, width, height}
    POST   /api/v1/stations/<id>/images/failed      {slot?, reason}
    POST   /api/v1/stations/<id>/upload-images      multipart sign / stock (+ *_width, *_height)
    DELETE /api/v1/stations/<id>
    POST   /api/v1/stations/<id>/extract            {model_id?}
"""

import logging

from flask import Blueprint, jsonify, request

from fieldcapture.models.session import CaptureSession
from fieldcapture.models.station import StationCapture
from fieldcapture.models.workflow import STATION_SLOTS
from fieldcapture.services import capture_pipeline, extraction_service
from fieldcapture.services.capture_pipeline import UploadFile
from fieldcapture.utils.errors import E, api_error
from fieldcapture.utils.helpers import get_or_404, register_service_error_handlers

logger = logging.getLogger(__name__)

station_bp = Blueprint("stations", __name__, url_prefix="/api/v1")
register_service_error_handlers(station_bp)


@station_bp.route("/sessions/<session_id>/stations", methods=["GET"])
def list_stations(session_id):
    session, err = get_or_404(CaptureSession, session_id, "Session")
    if err:
        return err
    stations = session.stations.all()
    return jsonify({"items": [s.to_dict() for s in stations], "total": len(stations)})


@station_bp.route("/sessions/<session_id>/stations/create-pending", methods=["POST"])
def create_pending_station(session_id):
    session, err = get_or_404(CaptureSession, session_id, "Session")
    if err:
        return err
    station = capture_pipeline.create_pending_station(session.id)
    return jsonify(station.to_dict()), 201


@station_bp.route("/stations/<station_id>/images/complete", methods=["POST"])
def complete_image(station_id):
    station, err = get_or_404(StationCapture, station_id, "Station")
    if err:
        return err
    data = request.get_json(silent=True) or {}
    missing = [f for f in ("slot", "blob_url") if not data.get(f)]
    if missing:
        return api_error(E.VALIDATION_REQUIRED, f"Missing required fields: {', '.join(missing)}")

    stid = station.id
    promoted = capture_pipeline.record_station_upload_completion(
        stid, data["slot"], data["blob_url"],
        width=data.get("width"), height=data.get("height"),
    )
    return jsonify({"promoted": promoted, "station": capture_pipeline.get_station(stid).to_dict()}), 200


@station_bp.route("/stations/<station_id>/images/failed", methods=["POST"])
def fail_image(station_id):
    station, err = get_or_404(StationCapture, station_id, "Station")
    if err:
        return err
    data = request.get_json(silent=True) or {}
    stid = station.id
    changed = capture_pipeline.record_station_upload_failure(
        stid, slot=data.get("slot"), reason=data.get("reason"),
    )
    return jsonify({"changed": changed, "station": capture_pipeline.get_station(stid).to_dict()}), 200


@station_bp.route("/stations/<station_id>/upload-images", methods=["POST"])
def upload_images(station_id):
    station, err = get_or_404(StationCapture, station_id, "Station")
    if err:
        return err

    uploads = {}
    for slot in STATION_SLOTS:
        storage = request.files.get(slot)
        if storage is None:
            continue
        try:
            width = int(request.form.get(f"{slot}_width", ""))
            height = int(request.form.get(f"{slot}_height", ""))
        except ValueError:
            return api_error(E.VALIDATION_INVALID, f"Invalid dimensions for {slot} image")
        uploads[slot] = UploadFile(
            filename=storage.filename,
            content_type=storage.mimetype,
            data=storage.read(),
            width=width,
            height=height,
        )

    if not uploads:
        return api_error(E.VALIDATION_REQUIRED, "At least one of sign or stock image is required")

    result = capture_pipeline.upload_station_images(
        station.id, sign_file=uploads.get("sign"), stock_file=uploads.get("stock"),
    )
    status_code = 200 if not result["failed"] else 207
    return jsonify(result), status_code


@station_bp.route("/stations/<station_id>", methods=["DELETE"])
def delete_station(station_id):
    station, err = get_or_404(StationCapture, station_id, "Station")
    if err:
        return err
    result = capture_pipeline.delete_station(station.id)
    return jsonify({
        "deleted": True,
        "deleted_blobs": result["deleted"],
        "failed_blobs": result["failed"],
    }), 200


@station_bp.route("/stations/<station_id>/extract", methods=["POST"])
def extract_station(station_id):
    station, err = get_or_404(StationCapture, station_id, "Station")
    if err:
        return err
    data = request.get_json(silent=True) or {}
    result = extraction_service.trigger_station_extraction(station.id, model_id=data.get("model_id"))
    return jsonify(result), 200
