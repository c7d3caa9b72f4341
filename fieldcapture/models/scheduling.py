"""
Field Capture Orders
Scheduled job registry model.

Models:
    - ScheduledJob: one row per registered maintenance job (pause switch + run history)
"""

from datetime import datetime, timezone

from fieldcapture.models import db


class ScheduledJob(db.Model):
    """
    Persisted state of a maintenance job fired by the cron endpoint.

    ``is_enabled`` is the pause switch: a paused job is skipped when
    triggered and the skip is recorded without counting as a run.
    """

    __tablename__ = "scheduled_jobs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(100), unique=True, nullable=False,
                         comment="Registered job name, e.g. session_cleanup")
    description = db.Column(db.String(500), default="")
    schedule_config = db.Column(db.JSON, default=dict,
                                comment="Expected trigger time, informational only")
    is_enabled = db.Column(db.Boolean, default=True, nullable=False)

    last_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_run_status = db.Column(db.String(20), nullable=True,
                                comment="success, failed, skipped")
    last_run_duration_ms = db.Column(db.Integer, nullable=True)
    last_run_result = db.Column(db.JSON, nullable=True)
    run_count = db.Column(db.Integer, default=0)
    skip_count = db.Column(db.Integer, default=0)
    error_count = db.Column(db.Integer, default=0)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def record_run(self, *, status="success", duration_ms=0, result=None, error=None):
        """Record a job execution."""
        self.last_run_at = datetime.now(timezone.utc)
        self.last_run_status = status
        self.last_run_duration_ms = duration_ms
        self.last_run_result = result
        self.run_count = (self.run_count or 0) + 1
        if status == "failed":
            self.error_count = (self.error_count or 0) + 1
            self.last_error = str(error) if error else None

    def record_skip(self):
        """Record a trigger that arrived while the job was paused."""
        self.last_run_at = datetime.now(timezone.utc)
        self.last_run_status = "skipped"
        self.last_run_duration_ms = 0
        self.skip_count = (self.skip_count or 0) + 1

    def to_dict(self):
        return {
            "job_name": self.job_name,
            "description": self.description,
            "schedule": self.schedule_config,
            "is_enabled": self.is_enabled,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_run_status": self.last_run_status,
            "last_run_duration_ms": self.last_run_duration_ms,
            "last_run_result": self.last_run_result,
            "run_count": self.run_count or 0,
            "skip_count": self.skip_count or 0,
            "error_count": self.error_count or 0,
            "last_error": self.last_error,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        state = "enabled" if self.is_enabled else "paused"
        return f"<ScheduledJob {self.job_name} [{state}]>"
