"""
Field Capture Orders
Loading-list capture blueprint: groups, images, extraction.

Endpoints:
    GET    /api/v1/sessions/<sid>/groups                  list with images + extraction
    POST   /api/v1/sessions/<sid>/groups/create-pending   {expected_count}
    POST   /api/v1/sessions/<sid>/extract                 {group_ids?, model_id?}

    POST   /api/v1/groups/<gid>/images/complete           {order_index, blob_url, width, height, capture_type}
    POST   /api/v1/groups/<gid>/images/failed             {reason}
    POST   /api/v1/groups/<gid>/upload-images             multipart image_N / width_N / height_N
    PUT    /api/v1/groups/<gid>/images/order              {image_ids}
    DELETE /api/v1/groups/<gid>
    POST   /api/v1/groups/<gid>/extract                   {model_id?}
    GET    /api/v1/groups/<gid>/extraction

    DELETE /api/v1/images/<image_id>
"""

import logging

from flask import Blueprint, jsonify, request

from fieldcapture.models.capture import CaptureGroup, CaptureImage
from fieldcapture.models.session import CaptureSession
from fieldcapture.services import capture_pipeline, extraction_service
from fieldcapture.services.capture_pipeline import UploadFile
from fieldcapture.utils.errors import E, api_error
from fieldcapture.utils.helpers import get_or_404, parse_uuid, register_service_error_handlers

logger = logging.getLogger(__name__)

group_bp = Blueprint("groups", __name__, url_prefix="/api/v1")
register_service_error_handlers(group_bp)


def _parse_dimension(raw):
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


# ═════════════════════════════════════════════════════════════════════════════
# Session-scoped
# ═════════════════════════════════════════════════════════════════════════════


@group_bp.route("/sessions/<session_id>/groups", methods=["GET"])
def list_groups(session_id):
    session, err = get_or_404(CaptureSession, session_id, "Session")
    if err:
        return err
    groups = session.groups.all()
    return jsonify({
        "items": [g.to_dict(include_children=True) for g in groups],
        "total": len(groups),
    })


@group_bp.route("/sessions/<session_id>/groups/create-pending", methods=["POST"])
def create_pending_group(session_id):
    session, err = get_or_404(CaptureSession, session_id, "Session")
    if err:
        return err
    data = request.get_json(silent=True) or {}
    expected = data.get("expected_count", data.get("expected_image_count"))
    if expected is None:
        return api_error(E.VALIDATION_REQUIRED, "expected_count is required")

    group = capture_pipeline.create_pending_group(session.id, expected)
    return jsonify(group.to_dict()), 201


@group_bp.route("/sessions/<session_id>/extract", methods=["POST"])
def extract_session(session_id):
    session, err = get_or_404(CaptureSession, session_id, "Session")
    if err:
        return err
    data = request.get_json(silent=True) or {}
    group_ids = data.get("group_ids")
    if group_ids is not None:
        if not isinstance(group_ids, list) or any(parse_uuid(g) is None for g in group_ids):
            return api_error(E.VALIDATION_INVALID, "group_ids must be a list of group ids")
        group_ids = [parse_uuid(g) for g in group_ids]

    result = extraction_service.run_session_extraction(
        session.id, group_ids=group_ids, model_id=data.get("model_id"),
    )
    return jsonify(result), 200


# ═════════════════════════════════════════════════════════════════════════════
# Upload events
# ═════════════════════════════════════════════════════════════════════════════


@group_bp.route("/groups/<group_id>/images/complete", methods=["POST"])
def complete_image(group_id):
    group, err = get_or_404(CaptureGroup, group_id, "Group")
    if err:
        return err
    data = request.get_json(silent=True) or {}
    missing = [f for f in ("order_index", "blob_url") if data.get(f) is None]
    if missing:
        return api_error(E.VALIDATION_REQUIRED, f"Missing required fields: {', '.join(missing)}")

    gid = group.id
    promoted = capture_pipeline.record_group_upload_completion(
        gid,
        data["order_index"],
        data["blob_url"],
        width=data.get("width"),
        height=data.get("height"),
        capture_type=data.get("capture_type", "uploaded_file"),
    )
    return jsonify({
        "promoted": promoted,
        "group": capture_pipeline.get_group(gid).to_dict(include_children=True),
    }), 200


@group_bp.route("/groups/<group_id>/images/failed", methods=["POST"])
def fail_image(group_id):
    group, err = get_or_404(CaptureGroup, group_id, "Group")
    if err:
        return err
    data = request.get_json(silent=True) or {}
    gid = group.id
    changed = capture_pipeline.record_group_upload_failure(gid, reason=data.get("reason"))
    return jsonify({"changed": changed, "group": capture_pipeline.get_group(gid).to_dict()}), 200


@group_bp.route("/groups/<group_id>/upload-images", methods=["POST"])
def upload_images(group_id):
    group, err = get_or_404(CaptureGroup, group_id, "Group")
    if err:
        return err

    files = []
    index = 0
    while True:
        storage = request.files.get(f"image_{index}")
        if storage is None:
            break
        width = _parse_dimension(request.form.get(f"width_{index}"))
        height = _parse_dimension(request.form.get(f"height_{index}"))
        if width is None or height is None:
            return api_error(E.VALIDATION_INVALID, f"Invalid dimensions for image {index}")
        files.append(UploadFile(
            filename=storage.filename,
            content_type=storage.mimetype,
            data=storage.read(),
            width=width,
            height=height,
        ))
        index += 1

    if not files:
        return api_error(E.VALIDATION_REQUIRED, "At least one image file is required")

    result = capture_pipeline.upload_group_images(group.id, files)
    status_code = 200 if not result["failed"] else 207
    return jsonify(result), status_code


# ═════════════════════════════════════════════════════════════════════════════
# Image maintenance
# ═════════════════════════════════════════════════════════════════════════════


@group_bp.route("/groups/<group_id>/images/order", methods=["PUT"])
def reorder_images(group_id):
    group, err = get_or_404(CaptureGroup, group_id, "Group")
    if err:
        return err
    data = request.get_json(silent=True) or {}
    image_ids = data.get("image_ids")
    if image_ids is None:
        return api_error(E.VALIDATION_REQUIRED, "image_ids is required")

    images = capture_pipeline.reorder_group_images(group.id, image_ids)
    return jsonify({"items": images, "total": len(images)}), 200


@group_bp.route("/images/<image_id>", methods=["DELETE"])
def delete_image(image_id):
    image, err = get_or_404(CaptureImage, image_id, "Image")
    if err:
        return err
    group = capture_pipeline.delete_group_image(image.id)
    return jsonify({"deleted": True, "group": group.to_dict(include_children=True)}), 200


@group_bp.route("/groups/<group_id>", methods=["DELETE"])
def delete_group(group_id):
    group, err = get_or_404(CaptureGroup, group_id, "Group")
    if err:
        return err
    result = capture_pipeline.delete_group(group.id)
    return jsonify({
        "deleted": True,
        "deleted_blobs": result["deleted"],
        "failed_blobs": result["failed"],
    }), 200


# ═════════════════════════════════════════════════════════════════════════════
# Extraction
# ═════════════════════════════════════════════════════════════════════════════


@group_bp.route("/groups/<group_id>/extract", methods=["POST"])
def extract_group(group_id):
    group, err = get_or_404(CaptureGroup, group_id, "Group")
    if err:
        return err
    data = request.get_json(silent=True) or {}
    result = extraction_service.trigger_group_extraction(group.id, model_id=data.get("model_id"))
    return jsonify(result), 200


@group_bp.route("/groups/<group_id>/extraction", methods=["GET"])
def get_extraction(group_id):
    group, err = get_or_404(CaptureGroup, group_id, "Group")
    if err:
        return err
    if not group.extraction:
        return jsonify({"error": "Extraction not found"}), 404
    return jsonify(group.extraction.to_dict())
