"""
Field Capture Orders
Two-phase capture pipeline.

    CreatePending → UploadAssets → PromoteIfReady → TriggerExtraction → IngestResult

Phase 1 creates an empty 'pending' group/station immediately. Phase 2 is a
stream of independent, possibly concurrent and out-of-order upload events:
each completion attaches one asset and then runs a single conditional UPDATE
that flips 'pending' → 'ready' only when the attached assets are complete.
The UPDATE's rowcount tells the caller whether *it* promoted, so follow-up
work (invalidation, auto-extraction) fires exactly once.

Every stage is idempotent:
  - a duplicate completion hits the (group_id, order_index) unique key and
    becomes a no-op
  - promotion is compare-and-set on status = 'pending'
  - extraction overwrites its previous result
"""

import logging
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from fieldcapture.core.exceptions import ConflictError, NotFoundError, ValidationError
from fieldcapture.integrations.blob_store import (
    BlobStoreError,
    delete_blobs_best_effort,
    extension_for,
    get_blob_store,
    group_image_path,
    station_image_path,
)
from fieldcapture.models import db
from fieldcapture.models.capture import CaptureGroup, CaptureImage
from fieldcapture.models.station import StationCapture
from fieldcapture.models.workflow import CAPTURE_TYPES, STATION_SLOTS, validate_station_transition
from fieldcapture.services.invalidation import (
    commit_and_publish,
    group_events,
    publish,
    station_events,
)
from fieldcapture.services.session_service import get_session
from fieldcapture.services.task_queue import task_queue

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp"}

# One file in a server-side upload request. width/height come from the client.
UploadFile = namedtuple("UploadFile", "filename content_type data width height")


def _now():
    return datetime.now(timezone.utc)


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def _is_dimension(value):
    return _is_int(value) and value > 0


def _check_dimensions(width, height):
    """Pixel sizes are optional on completion events, but positive ints when given."""
    bad = {k: v for k, v in (("width", width), ("height", height))
           if v is not None and not _is_dimension(v)}
    if bad:
        raise ValidationError("width and height must be positive integers", details=bad)


def get_group(group_id):
    group = db.session.get(CaptureGroup, group_id)
    if not group:
        raise NotFoundError(resource="CaptureGroup", resource_id=group_id)
    return group


def get_station(station_id):
    station = db.session.get(StationCapture, station_id)
    if not station:
        raise NotFoundError(resource="StationCapture", resource_id=station_id)
    return station


# ═════════════════════════════════════════════════════════════════════════════
# Phase 1: create pending
# ═════════════════════════════════════════════════════════════════════════════


def create_pending_group(session_id, expected_count):
    """Create an empty 'pending' group expecting *expected_count* images."""
    if not _is_int(expected_count) or expected_count < 1:
        raise ValidationError(
            "expected_count must be an integer >= 1",
            details={"expected_count": expected_count},
        )
    session = get_session(session_id)
    sid = session.id

    existing = CaptureGroup.query.filter_by(session_id=sid).count()
    group = CaptureGroup(
        session_id=sid,
        employee_label=f"Employee {existing + 1}",
        status="pending",
        expected_image_count=expected_count,
    )
    db.session.add(group)
    db.session.flush()
    commit_and_publish(group_events(sid))
    logger.info("Pending group created expected=%d", expected_count,
                extra={"session_id": sid, "group_id": group.id})
    return group


def create_pending_station(session_id):
    """Create an empty 'pending' station with both slots unfilled."""
    session = get_session(session_id)
    sid = session.id
    station = StationCapture(session_id=sid, status="pending")
    db.session.add(station)
    db.session.flush()
    commit_and_publish(station_events(sid))
    logger.info("Pending station created", extra={"session_id": sid, "station_id": station.id})
    return station


# ═════════════════════════════════════════════════════════════════════════════
# Phase 2: upload completion / failure
# ═════════════════════════════════════════════════════════════════════════════


def _promote_group_if_ready(group_id):
    """Compare-and-set pending → ready when attached count == expected count."""
    uploaded = (
        select(func.count(CaptureImage.id))
        .where(CaptureImage.group_id == group_id)
        .scalar_subquery()
    )
    stmt = (
        update(CaptureGroup)
        .where(
            CaptureGroup.id == group_id,
            CaptureGroup.status == "pending",
            CaptureGroup.expected_image_count > 0,
            CaptureGroup.expected_image_count == uploaded,
        )
        .values(status="ready", updated_at=_now())
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    db.session.commit()
    return result.rowcount == 1


def _promote_station_if_ready(station_id):
    """Compare-and-set pending → ready when both slots are filled."""
    stmt = (
        update(StationCapture)
        .where(
            StationCapture.id == station_id,
            StationCapture.status == "pending",
            StationCapture.sign_blob_url.isnot(None),
            StationCapture.stock_blob_url.isnot(None),
        )
        .values(status="ready", updated_at=_now())
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    db.session.commit()
    return result.rowcount == 1


def _on_group_ready(group_id):
    if current_app.config.get("AUTO_EXTRACT_ON_READY"):
        task_queue.enqueue("extract_group", _auto_extract_group, group_id)


def _on_station_ready(station_id):
    if current_app.config.get("AUTO_EXTRACT_ON_READY"):
        task_queue.enqueue("extract_station", _auto_extract_station, station_id)


def _auto_extract_group(group_id):
    from fieldcapture.services.extraction_service import trigger_group_extraction
    trigger_group_extraction(group_id)


def _auto_extract_station(station_id):
    from fieldcapture.services.extraction_service import trigger_station_extraction
    trigger_station_extraction(station_id)


def record_group_upload_completion(
    group_id,
    order_index,
    blob_url,
    width=None,
    height=None,
    capture_type="uploaded_file",
    validation_passed=None,
    validation_reason=None,
):
    """
    Attach one uploaded image to a group, then promote if complete.

    Returns:
        True iff this call performed the pending → ready promotion.
    """
    group = get_group(group_id)
    gid, sid = group.id, group.session_id

    if not blob_url or not isinstance(blob_url, str):
        raise ValidationError("blob_url is required", details={"blob_url": "required"})
    _check_dimensions(width, height)
    if capture_type not in CAPTURE_TYPES:
        raise ValidationError(
            f"capture_type must be one of {sorted(CAPTURE_TYPES)}",
            details={"capture_type": capture_type},
        )
    if not _is_int(order_index) or not 0 <= order_index < group.expected_image_count:
        raise ValidationError(
            f"order_index must be in [0, {group.expected_image_count})",
            details={"order_index": order_index},
        )

    db.session.add(CaptureImage(
        group_id=gid,
        order_index=order_index,
        blob_url=blob_url,
        width=width,
        height=height,
        capture_type=capture_type,
        upload_validation_passed=validation_passed,
        upload_validation_reason=validation_reason,
    ))
    try:
        db.session.commit()
        attached = True
    except IntegrityError:
        db.session.rollback()
        attached = False
        logger.info("Duplicate completion for index %d ignored", order_index,
                    extra={"group_id": gid})

    promoted = _promote_group_if_ready(gid)
    if attached or promoted:
        publish(group_events(sid))
    if promoted:
        logger.info("Group promoted to ready", extra={"session_id": sid, "group_id": gid})
        _on_group_ready(gid)
    return promoted


def _clear_station_extraction(station):
    """Send an extracted station back to 'pending' and drop what was read from the old photos."""
    station.status = "pending"
    station.product_code = None
    station.min_qty = None
    station.max_qty = None
    station.on_hand_qty = None
    station.error_message = None
    station.model_id = None
    station.extracted_at = None


def record_station_upload_completion(
    station_id, slot, blob_url, width=None, height=None, recapture=False,
):
    """
    Fill one slot (sign | stock) of a station, then promote if both are filled.

    Repeating a completion with the slot's current URL is a no-op. A new
    photo for an already extracted station (a different URL, or
    recapture=True for server-side uploads that reuse the slot path) resets
    it to 'pending' in the same commit so stale quantities never outlive
    the photo they were read from.

    Returns:
        True iff this call performed the pending → ready promotion.
    """
    if slot not in STATION_SLOTS:
        raise ValidationError(f"slot must be one of {list(STATION_SLOTS)}", details={"slot": slot})
    if not blob_url or not isinstance(blob_url, str):
        raise ValidationError("blob_url is required", details={"blob_url": "required"})
    _check_dimensions(width, height)

    station = get_station(station_id)
    stid, sid = station.id, station.session_id

    if getattr(station, f"{slot}_blob_url") == blob_url and not recapture:
        logger.info("Duplicate %s completion ignored", slot, extra={"station_id": stid})
        return False

    if station.extracted_at is not None and validate_station_transition(station.status, "pending"):
        logger.info("Station re-captured (%s), clearing extraction", slot,
                    extra={"session_id": sid, "station_id": stid})
        _clear_station_extraction(station)

    setattr(station, f"{slot}_blob_url", blob_url)
    setattr(station, f"{slot}_width", width)
    setattr(station, f"{slot}_height", height)
    setattr(station, f"{slot}_uploaded_at", _now())
    db.session.commit()

    promoted = _promote_station_if_ready(stid)
    publish(station_events(sid))
    if promoted:
        logger.info("Station promoted to ready", extra={"session_id": sid, "station_id": stid})
        _on_station_ready(stid)
    return promoted


def record_group_upload_failure(group_id, reason=None):
    """Move a pending group to needs_attention. Attached images are kept.

    Returns:
        True iff the status changed.
    """
    group = get_group(group_id)
    gid, sid = group.id, group.session_id
    stmt = (
        update(CaptureGroup)
        .where(CaptureGroup.id == gid, CaptureGroup.status == "pending")
        .values(status="needs_attention", failure_reason=reason or "upload_failed", updated_at=_now())
        .execution_options(synchronize_session=False)
    )
    changed = db.session.execute(stmt).rowcount == 1
    db.session.commit()
    if changed:
        publish(group_events(sid))
        logger.warning("Group upload failed: %s", reason, extra={"session_id": sid, "group_id": gid})
    return changed


def record_station_upload_failure(station_id, slot=None, reason=None):
    """Move a pending station to needs_attention. A filled slot is kept.

    Returns:
        True iff the status changed.
    """
    if slot is not None and slot not in STATION_SLOTS:
        raise ValidationError(f"slot must be one of {list(STATION_SLOTS)}", details={"slot": slot})
    station = get_station(station_id)
    stid, sid = station.id, station.session_id
    message = reason or "upload_failed"
    if slot:
        message = f"{slot}: {message}"
    stmt = (
        update(StationCapture)
        .where(StationCapture.id == stid, StationCapture.status == "pending")
        .values(status="needs_attention", error_message=message, updated_at=_now())
        .execution_options(synchronize_session=False)
    )
    changed = db.session.execute(stmt).rowcount == 1
    db.session.commit()
    if changed:
        publish(station_events(sid))
        logger.warning("Station upload failed: %s", message, extra={"session_id": sid, "station_id": stid})
    return changed


# ═════════════════════════════════════════════════════════════════════════════
# Server-side upload
# ═════════════════════════════════════════════════════════════════════════════


def validate_upload_file(upload, max_bytes=None):
    """Reject files that can never be stored. Returns (passed, advisory_reason).

    Orientation is advisory only: landscape images are stored with
    upload_validation_passed = False and reason 'not_portrait'.
    """
    max_bytes = max_bytes or current_app.config.get("MAX_UPLOAD_BYTES", 10 * 1024 * 1024)
    name = upload.filename or "image"
    if upload.content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(
            f"Image {name} must be JPEG, PNG, or WebP",
            details={"content_type": upload.content_type, "reason": "unsupported_type"},
        )
    if len(upload.data) > max_bytes:
        raise ValidationError(
            f"Image {name} exceeds {max_bytes} bytes",
            details={"size": len(upload.data), "reason": "file_too_large"},
        )
    if not _is_dimension(upload.width) or not _is_dimension(upload.height):
        raise ValidationError(
            f"Invalid dimensions for image {name}",
            details={"width": upload.width, "height": upload.height},
        )
    if upload.width >= upload.height:
        return False, "not_portrait"
    return True, None


def _put_all(store, jobs):
    """Put (path, upload) pairs in parallel. Returns [(url | None, error | None)]."""

    def _put(job):
        path, upload = job
        try:
            return store.put(path, upload.data, upload.content_type), None
        except BlobStoreError as exc:
            logger.warning("Blob put failed path=%s: %s", path, exc)
            return None, str(exc)

    with ThreadPoolExecutor(max_workers=min(8, len(jobs))) as executor:
        return list(executor.map(_put, jobs))


def upload_group_images(group_id, files):
    """
    Validate, store and attach a whole batch of images for a pending group.

    The batch must match the group's expected_image_count; image i becomes
    order_index i. Any failed put marks the group needs_attention while the
    successful ones are still attached.

    Returns:
        {"group": dict, "uploaded": int, "failed": int, "promoted": bool}
    """
    group = get_group(group_id)
    gid, sid, expected = group.id, group.session_id, group.expected_image_count
    if group.status != "pending":
        raise ConflictError(resource="CaptureGroup", status=group.status, action="upload images")
    if not files:
        raise ValidationError("At least one image file is required")
    if len(files) != expected:
        raise ValidationError(
            f"Expected {expected} images, got {len(files)}",
            details={"expected_image_count": expected, "received": len(files)},
        )

    checks = [validate_upload_file(f) for f in files]
    jobs = [
        (group_image_path(sid, gid, idx, extension_for(f.filename, f.content_type)), f)
        for idx, f in enumerate(files)
    ]
    outcomes = _put_all(get_blob_store(), jobs)

    promoted = False
    failures = []
    for idx, ((url, error), (_path, upload), (passed, reason)) in enumerate(zip(outcomes, jobs, checks)):
        if url is None:
            failures.append(error)
            continue
        promoted = record_group_upload_completion(
            gid, idx, url,
            width=upload.width, height=upload.height,
            capture_type="uploaded_file",
            validation_passed=passed, validation_reason=reason,
        ) or promoted
    if failures:
        record_group_upload_failure(gid, reason=f"{len(failures)} of {len(files)} uploads failed")

    return {
        "group": get_group(gid).to_dict(include_children=True),
        "uploaded": len(files) - len(failures),
        "failed": len(failures),
        "promoted": promoted,
    }


def upload_station_images(station_id, sign_file=None, stock_file=None):
    """
    Validate, store and attach the sign and/or stock photo of a station.

    Returns:
        {"station": dict, "uploaded": [slot], "failed": [slot], "promoted": bool}
    """
    station = get_station(station_id)
    stid, sid = station.id, station.session_id
    slots = [(slot, f) for slot, f in (("sign", sign_file), ("stock", stock_file)) if f is not None]
    if not slots:
        raise ValidationError("At least one of sign or stock image is required")

    for _slot, f in slots:
        validate_upload_file(f)
    jobs = [
        (station_image_path(sid, stid, slot, extension_for(f.filename, f.content_type)), f)
        for slot, f in slots
    ]
    outcomes = _put_all(get_blob_store(), jobs)

    promoted = False
    uploaded, failed = [], []
    for (slot, upload), (url, error) in zip(slots, outcomes):
        if url is None:
            failed.append(slot)
            record_station_upload_failure(stid, slot=slot, reason=error)
            continue
        uploaded.append(slot)
        promoted = record_station_upload_completion(
            stid, slot, url, width=upload.width, height=upload.height, recapture=True,
        ) or promoted

    return {
        "station": get_station(stid).to_dict(),
        "uploaded": uploaded,
        "failed": failed,
        "promoted": promoted,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Image maintenance
# ═════════════════════════════════════════════════════════════════════════════


def _renumber(images):
    """Assign order_index 0..n-1 in list order without tripping the unique key."""
    for tmp, image in enumerate(images, start=1):
        image.order_index = -tmp
    db.session.flush()
    for idx, image in enumerate(images):
        image.order_index = idx
    db.session.flush()


def reorder_group_images(group_id, ordered_ids):
    """Renumber a group's images to follow *ordered_ids* (an exact permutation)."""
    group = get_group(group_id)
    sid = group.session_id
    images = group.images.all()
    by_id = {img.id: img for img in images}

    if not isinstance(ordered_ids, list) or len(ordered_ids) != len(images) \
            or len(set(ordered_ids)) != len(ordered_ids) or set(ordered_ids) != set(by_id):
        raise ValidationError(
            "image_ids must be an exact permutation of the group's images",
            details={"expected": sorted(by_id), "received": ordered_ids},
        )

    _renumber([by_id[i] for i in ordered_ids])
    commit_and_publish(group_events(sid))
    return [img.to_dict() for img in get_group(group_id).images]


def delete_group_image(image_id):
    """
    Delete one image, close the gap in order_index and shrink the group.

    Only allowed once the upload batch is settled: while a group is still
    'pending' its in-flight uploads target the original indices, so
    renumbering would strand them. The blob is deleted best-effort; a failed
    blob delete never blocks the row delete.
    """
    image = db.session.get(CaptureImage, image_id)
    if not image:
        raise NotFoundError(resource="CaptureImage", resource_id=image_id)
    group = image.group
    gid, sid, blob_url = group.id, group.session_id, image.blob_url
    if group.status == "pending":
        raise ConflictError(resource="CaptureGroup", status=group.status, action="delete images")

    db.session.delete(image)
    db.session.flush()
    _renumber(group.images.all())
    group.expected_image_count = max(0, (group.expected_image_count or 0) - 1)
    db.session.commit()

    delete_blobs_best_effort([blob_url])
    publish(group_events(sid))
    logger.info("Image deleted", extra={"session_id": sid, "group_id": gid})
    return get_group(gid)


def delete_group(group_id):
    """Delete a group with its images and extraction result; blobs best-effort."""
    group = get_group(group_id)
    sid = group.session_id
    urls = [img.blob_url for img in group.images]
    blob_result = delete_blobs_best_effort(urls)
    db.session.delete(group)
    commit_and_publish(group_events(sid))
    logger.info("Group deleted", extra={"session_id": sid, "group_id": group_id})
    return blob_result


def delete_station(station_id):
    """Delete a station; its sign/stock blobs are deleted best-effort."""
    station = get_station(station_id)
    sid = station.session_id
    blob_result = delete_blobs_best_effort(station.blob_urls)
    db.session.delete(station)
    commit_and_publish(station_events(sid))
    logger.info("Station deleted", extra={"session_id": sid, "station_id": station_id})
    return blob_result
