"""Shared blueprint utilities.

get_or_404:                   tuple-return lookup (UUID-checked), NOT abort
parse_uuid:                   canonical UUID string or None
register_service_error_handlers: map core exceptions to JSON on a blueprint
"""
import logging
import uuid

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from fieldcapture.core.exceptions import ConflictError, NotFoundError, ValidationError
from fieldcapture.models import db
from fieldcapture.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def parse_uuid(value):
    """Return the canonical string form of *value* if it is a UUID, else None."""
    if not value or not isinstance(value, str):
        return None
    try:
        return str(uuid.UUID(value))
    except (ValueError, AttributeError):
        return None


def get_or_404(model, pk, label=None):
    """Fetch a model instance by UUID primary key or return an error tuple.

    - Success:    (obj, None)
    - Bad UUID:   (None, (response, 400))
    - Not found:  (None, (response, 404))

        obj, err = get_or_404(CaptureGroup, group_id)
        if err:
            return err
    """
    label = label or model.__name__
    key = parse_uuid(pk)
    if key is None:
        return None, api_error(E.VALIDATION_INVALID, f"Invalid {label} id")
    obj = db.session.get(model, key)
    if not obj:
        return None, (jsonify({"error": f"{label} not found"}), 404)
    return obj, None


# ── Error handlers ───────────────────────────────────────────────────────────

def register_service_error_handlers(bp):
    """Attach JSON handlers for the core exception types to a blueprint."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, f"{error.resource} not found")

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_STATE, str(error), details={"status": error.status})

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        db.session.rollback()
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")

    return bp
