"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in fieldcapture/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from fieldcapture.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"
# Extraction fans out to an external model call per group
EXTRACT_LIMIT = "20/minute"

_WRITE_BLUEPRINTS = ("sessions", "groups", "stations")
_READ_BLUEPRINTS = ("reports",)
_EXEMPT_BLUEPRINTS = ("health", "cron")


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Capture / session routes: 60/minute
        - Report routes:            200/minute
        - Extraction endpoints:     20/minute
        - Health + cron:            exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in _WRITE_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    for bp_name in _READ_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    for endpoint in ("groups.extract_group", "stations.extract_station",
                     "groups.extract_session"):
        view = app.view_functions.get(endpoint)
        if view:
            limiter.limit(EXTRACT_LIMIT)(view)

    for bp_name in _EXEMPT_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured (write=%s, read=%s, extract=%s)",
        WRITE_LIMIT, READ_LIMIT, EXTRACT_LIMIT,
    )
