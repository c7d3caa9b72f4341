"""
Field Capture Orders
Scheduler Service.

Lightweight job registry with persisted run history. There is no in-process
clock: jobs are fired by an external trigger (the cron endpoint, a platform
scheduler) through run_job, which records every run in ScheduledJob.

Architecture:
    - Job functions register themselves with @register_job(name)
    - SchedulerService.run_job executes a job inside the app context
    - ScheduledJob rows hold the pause switch and last-run results;
      run_job skips a paused job and records the skip
"""

from __future__ import annotations

import contextlib
import logging
import time
from typing import Callable

from flask import Flask, current_app, has_app_context

from fieldcapture.models import db
from fieldcapture.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("session_cleanup")
        def cleanup_sessions(app, **kwargs):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


class SchedulerService:
    """
    Manages job registration, persistence, and execution.
    Jobs are executed within Flask app context.
    """

    _app: Flask | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Initialize scheduler with Flask app context."""
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))

    @classmethod
    def _context(cls):
        # Reuse the caller's context (and its db session) when already inside this app
        if has_app_context() and current_app._get_current_object() is cls._app:
            return contextlib.nullcontext()
        return cls._app.app_context()

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """Create a ScheduledJob row for every registered job that lacks one."""
        if not cls._app:
            return []

        created = []
        with cls._context():
            for name, fn in _job_registry.items():
                existing = ScheduledJob.query.filter_by(job_name=name).first()
                if not existing:
                    job = ScheduledJob(
                        job_name=name,
                        description=(fn.__doc__ or f"Scheduled job: {name}").strip().splitlines()[0],
                        schedule_config=_get_default_schedule(name),
                        is_enabled=True,
                    )
                    db.session.add(job)
                    created.append(job)
            if created:
                db.session.commit()
                logger.info("Created %d scheduled job records", len(created))
        return created

    @classmethod
    def run_job(cls, job_name: str, **kwargs) -> dict:
        """
        Execute a single job by name. Keyword arguments are passed through
        to the job function.

        Returns:
            Dict with job_name, status, duration_ms, result and error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"job_name": job_name, "status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"job_name": job_name, "status": "error", "error": "Scheduler not initialized"}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        with cls._context():
            job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
            if job_record is not None and not job_record.is_enabled:
                job_record.record_skip()
                db.session.commit()
                logger.info("Job %s is paused; trigger skipped", job_name,
                            extra={"job_name": job_name})
                return {
                    "job_name": job_name,
                    "status": "skipped",
                    "duration_ms": 0,
                    "result": None,
                    "error": "Job is paused",
                }

            try:
                result = fn(cls._app, **kwargs)
            except Exception as exc:
                db.session.rollback()
                status = "failed"
                error = str(exc)
                logger.exception("Job %s failed: %s", job_name, exc, extra={"job_name": job_name})

            duration_ms = int((time.monotonic() - start) * 1000)

            try:
                job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
                if job_record:
                    job_record.record_run(
                        status=status,
                        duration_ms=duration_ms,
                        result=result if isinstance(result, dict) else {"output": str(result)},
                        error=error,
                    )
                    db.session.commit()
            except Exception:
                db.session.rollback()
                logger.exception("Failed to update job record for %s", job_name,
                                 extra={"job_name": job_name})

        logger.info("Job %s finished status=%s", job_name, status,
                    extra={"job_name": job_name, "duration_ms": duration_ms})
        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List every registered job with its persisted state."""
        cls.ensure_jobs_registered()
        records = {j.job_name: j for j in ScheduledJob.query.all()}
        return [records[name].to_dict() for name in sorted(_job_registry) if name in records]

    @classmethod
    def get_job_status(cls, job_name: str) -> dict | None:
        """Get status of a specific job."""
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if job_record:
            return job_record.to_dict()
        return None

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        """Enable or disable a scheduled job."""
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if not job_record:
            return None
        job_record.is_enabled = enabled
        db.session.commit()
        logger.info("Job %s %s", job_name, "enabled" if enabled else "paused",
                    extra={"job_name": job_name})
        return job_record.to_dict()


def _get_default_schedule(job_name: str) -> dict:
    """Return default schedule config for known job types."""
    defaults = {
        "session_cleanup": {"hour": "3", "minute": "0", "description": "Daily at 03:00"},
    }
    return defaults.get(job_name, {"hour": "0", "minute": "0",
                                   "description": "Daily at midnight"})
