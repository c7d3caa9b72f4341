"""
Logging setup for the capture service.

Production writes one JSON object per line so the pipeline context a record
carries (session, group, station, job, request) stays queryable. Development
and tests get a single readable line with the same context as key=value
pairs. The level comes from the LOG_LEVEL config key.
"""

import json
import logging
import sys
from datetime import datetime, timezone

# Pipeline context first, then request timing from middleware.timing
CONTEXT_FIELDS = ("session_id", "group_id", "station_id", "job_name", "event_scope")
REQUEST_FIELDS = ("request_id", "method", "path", "status", "duration_ms", "remote_addr")

_NOISY_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine")


def _extras(record: logging.LogRecord, fields) -> dict:
    return {key: getattr(record, key) for key in fields if getattr(record, key, None) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, timestamped with the record's creation time."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_extras(record, CONTEXT_FIELDS))
        entry.update(_extras(record, REQUEST_FIELDS))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message key=value ...`` for local runs."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{ts} {record.levelname:<8} {record.name}: {record.getMessage()}"
        context = _extras(record, CONTEXT_FIELDS)
        if context:
            line += " " + " ".join(f"{k}={v}" for k, v in context.items())
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """
    Install a single stderr handler on the root logger.

    JSON in production, readable otherwise. LOG_LEVEL defaults to INFO in
    production and DEBUG elsewhere.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = (app.config.get("LOG_LEVEL") or ("INFO" if is_prod else "DEBUG")).upper()
    level = getattr(logging, level_name, logging.INFO)

    # Cleared first so repeated app creation in tests does not stack handlers
    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "json" if is_prod else "readable")
