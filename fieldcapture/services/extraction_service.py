"""
Field Capture Orders
Extraction trigger + ingestion.

    trigger_*  → gateway call (never raises) → ingest_*  → one commit

Ingestion classifies the gateway outcome, writes the result and the entity
status in the same transaction, then publishes invalidation events.
Extraction failures are recorded, never raised past this module.

Group classification (first match wins):
    error    call failed | extractor status 'error' | no usable line items
             although some were expected
    warning  line items produced, but warnings or ignoredImages non-empty
    success  otherwise

Line items are expected unless every input image was classified as
not-a-loading-list or listed in ignoredImages.
"""

import logging
from datetime import datetime, timezone

from fieldcapture.core.exceptions import ConflictError
from fieldcapture.integrations.extraction_gateway import get_extraction_gateway
from fieldcapture.models import db
from fieldcapture.models.capture import CaptureGroup, ExtractionResult
from fieldcapture.models.workflow import (
    GROUP_EXTRACTABLE,
    STATION_EXTRACTABLE,
    STATION_STATUS_FROM_EXTRACTION,
    validate_group_transition,
    validate_session_transition,
    validate_station_transition,
)
from fieldcapture.services.capture_pipeline import get_group, get_station
from fieldcapture.services.invalidation import commit_and_publish, group_events, station_events
from fieldcapture.services.session_service import get_session, transition_session
from fieldcapture.services.workflow_compute import usable_line_items

logger = logging.getLogger(__name__)


def _list(value):
    return list(value) if isinstance(value, list) else []


def _image_index(entry):
    if isinstance(entry, dict):
        entry = entry.get("imageIndex")
    if isinstance(entry, int) and not isinstance(entry, bool):
        return entry
    return None


def _items_expected(data, image_count):
    """False only when every input image was rejected as a loading list."""
    if image_count <= 0:
        return True
    rejected = {_image_index(e) for e in _list(data.get("ignoredImages"))}
    for check in _list(data.get("imageChecks")):
        if isinstance(check, dict) and check.get("isLoadingList") is False:
            rejected.add(_image_index(check))
    return not all(idx in rejected for idx in range(image_count))


def classify_group_extraction(outcome, image_count):
    """Return (status, error_message) for a loading-list extraction outcome."""
    if not outcome.ok:
        return "error", outcome.error or "Extraction failed"
    data = outcome.data or {}
    if data.get("status") == "error":
        return "error", data.get("message") or data.get("error") or "Extractor reported an error"

    items = usable_line_items(_list(data.get("lineItems")))
    if not items and _items_expected(data, image_count):
        return "error", "No line items could be extracted"
    if items and (_list(data.get("warnings")) or _list(data.get("ignoredImages"))):
        return "warning", None
    return "success", None


def _as_count(value):
    """Non-negative integer or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float) and value.is_integer() and value >= 0:
        return int(value)
    return None


def _apply_image_checks(images, image_checks):
    by_index = {img.order_index: img for img in images}
    for check in image_checks:
        if not isinstance(check, dict):
            continue
        image = by_index.get(_image_index(check))
        if image is None:
            continue
        image.ai_classification_is_loading_list = check.get("isLoadingList")
        confidence = check.get("loadingListConfidence", check.get("confidence"))
        image.ai_classification_confidence = confidence if isinstance(confidence, (int, float)) \
            and not isinstance(confidence, bool) else None
        image.ai_classification_reason = check.get("notLoadingListReason") or check.get("reason") or None


# ═════════════════════════════════════════════════════════════════════════════
# Groups
# ═════════════════════════════════════════════════════════════════════════════


def ingest_group_extraction(group_id, outcome, model_id=None):
    """
    Persist an extraction outcome for a group and set its status.

    Re-extraction replaces the previous ExtractionResult in the same
    transaction.

    Returns:
        {"group_id", "employee_label", "status", "error", "summary",
         "warning_count", "line_item_count"}
    """
    group = get_group(group_id)
    gid, sid = group.id, group.session_id
    images = group.images.all()
    status, error_message = classify_group_extraction(outcome, len(images))

    if not validate_group_transition(group.status, status):
        raise ConflictError(resource="CaptureGroup", status=group.status, action="ingest extraction")

    data = (outcome.data or {}) if outcome.ok else {}
    cost = data.get("totalCost")
    if isinstance(cost, bool) or not isinstance(cost, (int, float)):
        cost = None

    if group.extraction is not None:
        group.extraction = None
        db.session.flush()

    group.extraction = ExtractionResult(
        status=status,
        image_checks=_list(data.get("imageChecks")),
        activities=_list(data.get("activities")),
        line_items=_list(data.get("lineItems")),
        ignored_images=_list(data.get("ignoredImages")),
        warnings=_list(data.get("warnings")),
        summary=data.get("summary") if isinstance(data.get("summary"), dict) else {},
        total_cost=cost,
        error_message=error_message,
        model_id=model_id,
        extracted_at=datetime.now(timezone.utc),
    )
    if outcome.ok:
        _apply_image_checks(images, _list(data.get("imageChecks")))
    group.status = status
    summary = {
        "group_id": gid,
        "employee_label": group.employee_label,
        "status": status,
        "error": error_message,
        "summary": group.extraction.summary,
        "warning_count": len(group.extraction.warnings),
        "line_item_count": len(usable_line_items(group.extraction.line_items)),
    }
    commit_and_publish(group_events(sid))

    log = logger.warning if status == "error" else logger.info
    log("Group extraction ingested status=%s", status, extra={"session_id": sid, "group_id": gid})
    return summary


def trigger_group_extraction(group_id, model_id=None):
    """Run extraction for one group over its images in order_index order."""
    group = get_group(group_id)
    if group.status not in GROUP_EXTRACTABLE:
        raise ConflictError(resource="CaptureGroup", status=group.status, action="extract")
    urls = [img.blob_url for img in group.images]

    gateway = get_extraction_gateway()
    model = model_id or gateway.default_model
    outcome = gateway.extract_loading_list(urls, model)
    return ingest_group_extraction(group_id, outcome, model_id=model)


def run_session_extraction(session_id, group_ids=None, model_id=None):
    """
    Extract every eligible group in a session, one after another.

    Advances the session to review_demand when at least one group came
    back success/warning and that is a legal forward move.
    """
    session = get_session(session_id)
    sid = session.id
    q = CaptureGroup.query.filter(
        CaptureGroup.session_id == sid,
        CaptureGroup.status.in_(GROUP_EXTRACTABLE),
    ).order_by(CaptureGroup.created_at)
    if group_ids:
        q = q.filter(CaptureGroup.id.in_(group_ids))
    target_ids = [g.id for g in q.all()]

    results = [trigger_group_extraction(gid, model_id=model_id) for gid in target_ids]
    successful = sum(1 for r in results if r["status"] in ("success", "warning"))

    session = get_session(sid)
    if successful and validate_session_transition(session.status, "review_demand"):
        transition_session(session, "review_demand")

    return {
        "session_id": sid,
        "results": results,
        "total_groups": len(results),
        "successful_groups": successful,
        "failed_groups": len(results) - successful,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Stations
# ═════════════════════════════════════════════════════════════════════════════


def classify_station_extraction(outcome):
    """
    Return (status, fields) for a station extraction outcome.

    fields holds product_code / min_qty / max_qty / on_hand_qty / error_message.
    Quantities are only ever set when status is 'valid'.
    """
    if not outcome.ok:
        return "needs_attention", {"error_message": outcome.error or "Extraction failed"}

    data = outcome.data or {}
    code = data.get("productCode")
    code = code.strip() if isinstance(code, str) and code.strip() else None
    quantities = {
        "min_qty": _as_count(data.get("minQty")),
        "max_qty": _as_count(data.get("maxQty")),
        "on_hand_qty": _as_count(data.get("onHandQty")),
    }
    status = STATION_STATUS_FROM_EXTRACTION.get(data.get("status"), "needs_attention")
    message = data.get("message") or None

    if status == "valid" and (code is None or any(v is None for v in quantities.values())):
        status, message = "needs_attention", "Incomplete station data"
    if status != "valid":
        return status, {
            "product_code": code,
            "error_message": message or f"Extractor status: {data.get('status')}",
        }
    return status, {"product_code": code, "error_message": None, **quantities}


def ingest_station_extraction(station_id, outcome, model_id=None):
    """Persist a station extraction outcome; result fields + status in one commit."""
    station = get_station(station_id)
    stid, sid = station.id, station.session_id
    status, fields = classify_station_extraction(outcome)

    if not validate_station_transition(station.status, status):
        raise ConflictError(resource="StationCapture", status=station.status, action="ingest extraction")

    station.min_qty = fields.get("min_qty")
    station.max_qty = fields.get("max_qty")
    station.on_hand_qty = fields.get("on_hand_qty")
    if "product_code" in fields:
        station.product_code = fields["product_code"]
    station.error_message = fields.get("error_message")
    station.status = status
    station.model_id = model_id
    station.extracted_at = datetime.now(timezone.utc)
    result = station.to_dict()
    commit_and_publish(station_events(sid))

    log = logger.warning if status != "valid" else logger.info
    log("Station extraction ingested status=%s", status, extra={"session_id": sid, "station_id": stid})
    return result


def trigger_station_extraction(station_id, model_id=None):
    """Run extraction for a station with both slots filled."""
    station = get_station(station_id)
    if station.status not in STATION_EXTRACTABLE or not station.is_captured:
        raise ConflictError(resource="StationCapture", status=station.status, action="extract")

    gateway = get_extraction_gateway()
    model = model_id or gateway.default_model
    outcome = gateway.extract_station(station.sign_blob_url, station.stock_blob_url, model)
    return ingest_station_extraction(station_id, outcome, model_id=model)
