"""
Field Capture Orders
Blueprint registry.
"""

from flask import request


def paginate_query(query, default_limit=100, max_limit=500):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit : max items (default 100, capped at max_limit)
        offset: starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def all_blueprints():
    """Every API blueprint, in registration order."""
    from fieldcapture.blueprints.cron_bp import cron_bp
    from fieldcapture.blueprints.group_bp import group_bp
    from fieldcapture.blueprints.health_bp import health_bp
    from fieldcapture.blueprints.report_bp import report_bp
    from fieldcapture.blueprints.session_bp import session_bp
    from fieldcapture.blueprints.station_bp import station_bp

    return [session_bp, group_bp, station_bp, report_bp, cron_bp, health_bp]
