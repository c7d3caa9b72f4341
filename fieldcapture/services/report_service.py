"""
Session report views.

Loads a session's groups and stations, feeds them through the pure
functions in workflow_compute and serves the results cache-aside.
Cached views are dropped by cache_service.handle_invalidation.
"""

import logging

from fieldcapture.models.capture import CaptureGroup
from fieldcapture.models.station import StationCapture
from fieldcapture.services import cache_service
from fieldcapture.services.session_service import get_session
from fieldcapture.services.workflow_compute import (
    compute_coverage,
    compute_demand_from_groups,
    compute_extraction_stats,
    compute_order_items,
)

logger = logging.getLogger(__name__)


def load_group_inputs(session_id):
    groups = (
        CaptureGroup.query.filter_by(session_id=session_id)
        .order_by(CaptureGroup.created_at)
        .all()
    )
    return [
        {
            "id": g.id,
            "employee_label": g.employee_label,
            "status": g.status,
            "extraction_result": g.extraction.to_dict() if g.extraction else None,
        }
        for g in groups
    ]


def load_station_inputs(session_id):
    stations = (
        StationCapture.query.filter_by(session_id=session_id)
        .order_by(StationCapture.created_at)
        .all()
    )
    return [
        {
            "id": s.id,
            "product_code": s.product_code,
            "status": s.status,
            "min_qty": s.min_qty,
            "max_qty": s.max_qty,
            "on_hand_qty": s.on_hand_qty,
        }
        for s in stations
    ]


def _demand(session_id):
    return compute_demand_from_groups(load_group_inputs(session_id))


def get_demand(session_id):
    sid = get_session(session_id).id
    return cache_service.get_cached(
        cache_service.view_key("demand", sid),
        ttl=cache_service.VIEW_TTL,
        loader=lambda: {"session_id": sid, "items": _demand(sid)},
    )


def get_order(session_id):
    sid = get_session(session_id).id

    def _load():
        result = compute_order_items(_demand(sid), load_station_inputs(sid))
        return {"session_id": sid, **result}

    return cache_service.get_cached(
        cache_service.view_key("order", sid), ttl=cache_service.VIEW_TTL, loader=_load,
    )


def get_coverage(session_id):
    sid = get_session(session_id).id

    def _load():
        return {"session_id": sid, **compute_coverage(_demand(sid), load_station_inputs(sid))}

    return cache_service.get_cached(
        cache_service.view_key("coverage", sid), ttl=cache_service.VIEW_TTL, loader=_load,
    )


def get_extraction_stats(session_id):
    sid = get_session(session_id).id
    return cache_service.get_cached(
        cache_service.view_key("stats", sid),
        ttl=cache_service.VIEW_TTL,
        loader=lambda: {"session_id": sid, **compute_extraction_stats(load_group_inputs(sid))},
    )
