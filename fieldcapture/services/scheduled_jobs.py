"""
Field Capture Orders
Scheduled Jobs.

Concrete job implementations that run on a schedule.

Jobs:
    - session_cleanup: Deletes sessions past the retention window, with their blobs
"""

from __future__ import annotations

import logging
from typing import Any

from fieldcapture.services.scheduler_service import register_job
from fieldcapture.services.session_cleanup import cleanup_old_sessions

logger = logging.getLogger(__name__)


@register_job("session_cleanup")
def cleanup_sessions(app, max_age_ms: int | None = None, now=None) -> dict[str, Any]:
    """Delete sessions older than SESSION_RETENTION_MS together with their blobs."""
    if max_age_ms is None:
        max_age_ms = app.config["SESSION_RETENTION_MS"]
    return cleanup_old_sessions(max_age_ms=max_age_ms, now=now)
