"""
Field Capture Orders
Retention cleanup.

Deletes sessions older than the retention window together with every blob
their rows reference. Blob deletes run in parallel and are best-effort:
a failed blob is counted, never blocks the row delete. Sessions are
processed one at a time; a failure in one session is rolled back, recorded
and the loop moves on. Only a failure to list candidate sessions aborts
the whole run.
"""

import logging
from datetime import datetime, timedelta, timezone

from fieldcapture.config import DEFAULT_SESSION_RETENTION_MS
from fieldcapture.integrations.blob_store import delete_blobs_best_effort
from fieldcapture.models import db
from fieldcapture.models.capture import CaptureGroup, CaptureImage
from fieldcapture.models.session import CaptureSession
from fieldcapture.models.station import StationCapture
from fieldcapture.services.invalidation import publish, session_events

logger = logging.getLogger(__name__)


def collect_session_blob_urls(session_id):
    """Every blob URL referenced by a session's images and station slots."""
    image_urls = [
        url for (url,) in db.session.query(CaptureImage.blob_url)
        .join(CaptureGroup, CaptureImage.group_id == CaptureGroup.id)
        .filter(CaptureGroup.session_id == session_id)
        .all()
    ]
    station_urls = []
    for sign_url, stock_url in (
        db.session.query(StationCapture.sign_blob_url, StationCapture.stock_blob_url)
        .filter(StationCapture.session_id == session_id)
        .all()
    ):
        station_urls.extend(u for u in (sign_url, stock_url) if u)
    return image_urls + station_urls


def _delete_session(session_id):
    """Blobs best-effort, then the row (cascade removes children). Returns blob tallies."""
    blob_result = delete_blobs_best_effort(collect_session_blob_urls(session_id))

    session = db.session.get(CaptureSession, session_id)
    if session is not None:
        db.session.delete(session)
    db.session.commit()
    publish(session_events(session_id))
    return blob_result


def delete_session_with_cleanup(session_id):
    """Delete one session and its blobs.

    Returns:
        {"deleted_blobs": int, "failed_blobs": int}
    """
    result = _delete_session(session_id)
    logger.info("Session deleted blobs=%d failed_blobs=%d",
                result["deleted"], result["failed"], extra={"session_id": session_id})
    return {"deleted_blobs": result["deleted"], "failed_blobs": result["failed"]}


def cleanup_old_sessions(max_age_ms=DEFAULT_SESSION_RETENTION_MS, now=None):
    """
    Delete every session created strictly before now - max_age_ms.

    Returns:
        {"deleted_sessions", "deleted_blobs", "failed_blobs", "errors": [str]}
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(milliseconds=max_age_ms)

    # Listing failures propagate: the job as a whole has failed
    session_ids = [
        sid for (sid,) in db.session.query(CaptureSession.id)
        .filter(CaptureSession.created_at < cutoff)
        .order_by(CaptureSession.created_at)
        .all()
    ]
    logger.info("Cleanup: %d sessions older than %s", len(session_ids), cutoff.isoformat())

    summary = {"deleted_sessions": 0, "deleted_blobs": 0, "failed_blobs": 0, "errors": []}
    for session_id in session_ids:
        try:
            result = _delete_session(session_id)
        except Exception as exc:
            db.session.rollback()
            logger.exception("Cleanup failed for session", extra={"session_id": session_id})
            summary["errors"].append(f"Failed to delete session {session_id}: {exc}")
            continue
        summary["deleted_sessions"] += 1
        summary["deleted_blobs"] += result["deleted"]
        summary["failed_blobs"] += result["failed"]

    logger.info(
        "Cleanup done sessions=%d blobs=%d failed_blobs=%d errors=%d",
        summary["deleted_sessions"], summary["deleted_blobs"],
        summary["failed_blobs"], len(summary["errors"]),
    )
    return summary
