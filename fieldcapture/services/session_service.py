"""
Session service: create, list, fetch and advance capture sessions.

Session status is forward-only (see models/workflow.py). A transition is an
explicit external write; nothing in the pipeline moves a session except
run_session_extraction, which uses the same transition_session call.
"""

import logging

from fieldcapture.core.exceptions import NotFoundError
from fieldcapture.models import db
from fieldcapture.models.session import CaptureSession
from fieldcapture.models.workflow import SESSION_STATUSES, validate_session_transition
from fieldcapture.services.invalidation import Invalidated, commit_and_publish

logger = logging.getLogger(__name__)


def create_session():
    """Create a new session in 'draft'."""
    session = CaptureSession(status="draft")
    db.session.add(session)
    db.session.flush()
    commit_and_publish([Invalidated("sessions"), Invalidated("session", session.id)])
    logger.info("Session created", extra={"session_id": session.id})
    return session


def list_sessions(status=None):
    """Query of sessions newest-first, optionally filtered by status."""
    q = CaptureSession.query.order_by(CaptureSession.created_at.desc())
    if status:
        q = q.filter_by(status=status)
    return q


def get_session(session_id):
    session = db.session.get(CaptureSession, session_id)
    if not session:
        raise NotFoundError(resource="Session", resource_id=session_id)
    return session


def transition_session(session, new_status):
    """
    Attempt to move *session* to *new_status*.

    Returns:
        (True, message) on success, (False, message) on an illegal move.
        Nothing is written on failure.
    """
    old_status = session.status
    if new_status not in SESSION_STATUSES:
        return False, f"Unknown status '{new_status}'"
    if not validate_session_transition(old_status, new_status):
        return False, f"Invalid transition: {old_status} → {new_status}"

    session.status = new_status
    commit_and_publish([Invalidated("sessions"), Invalidated("session", session.id)])
    logger.info("Session %s → %s", old_status, new_status, extra={"session_id": session.id})
    return True, f"Status changed: {old_status} → {new_status}"
