"""
Service-layer exception hierarchy.

Services raise these; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from fieldcapture.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="CaptureGroup", resource_id=group_id)
    raise ValidationError("expected_count must be >= 1", details={"expected_count": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Session", "CaptureGroup").
        resource_id: The key that was looked up. Included in logs, not in HTTP response.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is structurally invalid (bad id, missing field, bad count).

    Maps to HTTP 400. Raised before any state is written.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation is not allowed in the entity's current state.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        status: The entity's current status.
        action: What was attempted (e.g. "extract", "transition to review_order").
    """

    def __init__(self, resource: str, status: str, action: str) -> None:
        self.resource = resource
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action}: {resource} is '{status}'")
