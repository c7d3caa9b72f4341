"""
Field Capture Orders
Workflow status vocabulary and transition rules.

Lifecycle states:
    Session:         draft → capturing_loading_lists → review_demand
                     → capturing_inventory → review_order → completed
                     (forward-only; later stages may be reached directly)
    CaptureGroup:    pending → ready → success | warning | error
                     pending → needs_attention (upload failed)
                     success | warning | error → re-extracted (overwrite)
    StationCapture:  pending → ready → valid | needs_attention
                     pending → needs_attention (upload failed)
                     valid | needs_attention → re-extracted (overwrite)
                     valid | needs_attention → pending (a slot re-captured
                     with a new photo; extraction fields are cleared)

"ready" is only ever written by the conditional promotion in
services/capture_pipeline.py; nothing else moves an entity into it.
"""

# ── Session ──────────────────────────────────────────────────────────────────

SESSION_STATUS_ORDER = [
    "draft",
    "capturing_loading_lists",
    "review_demand",
    "capturing_inventory",
    "review_order",
    "completed",
]

SESSION_STATUSES = set(SESSION_STATUS_ORDER)

SESSION_TRANSITIONS = {
    status: SESSION_STATUS_ORDER[idx + 1:]
    for idx, status in enumerate(SESSION_STATUS_ORDER)
}

# ── CaptureGroup ─────────────────────────────────────────────────────────────

GROUP_STATUSES = {"pending", "ready", "success", "warning", "error", "needs_attention"}

GROUP_EXTRACTED_STATUSES = {"success", "warning", "error"}

GROUP_EXTRACTABLE = {"ready"} | GROUP_EXTRACTED_STATUSES

GROUP_TRANSITIONS = {
    "pending":         ["ready", "needs_attention"],
    "ready":           ["success", "warning", "error"],
    "success":         ["success", "warning", "error"],
    "warning":         ["success", "warning", "error"],
    "error":           ["success", "warning", "error"],
    "needs_attention": [],
}

# ── StationCapture ───────────────────────────────────────────────────────────

STATION_STATUSES = {"pending", "ready", "valid", "needs_attention"}

STATION_SLOTS = ("sign", "stock")

STATION_TRANSITIONS = {
    "pending":         ["ready", "needs_attention"],
    "ready":           ["valid", "needs_attention"],
    "valid":           ["valid", "needs_attention", "pending"],
    "needs_attention": ["valid", "needs_attention", "pending"],
}

# Extraction additionally requires both slots to be filled.
STATION_EXTRACTABLE = {"ready", "valid", "needs_attention"}

# Extractor status → station status
STATION_STATUS_FROM_EXTRACTION = {
    "success": "valid",
    "warning": "needs_attention",
    "error":   "needs_attention",
}

# ── Images ───────────────────────────────────────────────────────────────────

CAPTURE_TYPES = {"camera_photo", "uploaded_file"}


def validate_session_transition(old_status, new_status):
    """Return True if Session status transition is valid."""
    return new_status in SESSION_TRANSITIONS.get(old_status, [])


def validate_group_transition(old_status, new_status):
    """Return True if CaptureGroup status transition is valid."""
    return new_status in GROUP_TRANSITIONS.get(old_status, [])


def validate_station_transition(old_status, new_status):
    """Return True if StationCapture status transition is valid."""
    return new_status in STATION_TRANSITIONS.get(old_status, [])
