"""
Field Capture Orders
Pure read-time computations: demand, order recommendation, coverage, stats.

Nothing here touches the database. Inputs are plain dicts (see
report_service for how they are loaded); malformed or partial input is
skipped, never raised on.

Group input:
    {"id", "employee_label", "status", "extraction_result": dict | None}
    extraction_result: {"status", "line_items" | "lineItems", "activities",
                        "summary", "total_cost" | "totalCost"}

Station input:
    {"id", "product_code", "status", "min_qty", "max_qty", "on_hand_qty"}
"""

import math
from numbers import Real


def is_positive_quantity(value):
    """True for finite real numbers > 0. bool, NaN and non-numbers are rejected."""
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    if not math.isfinite(value):
        return False
    return value > 0


def _product_code(item):
    code = item.get("primaryCode") if isinstance(item, dict) else None
    if not isinstance(code, str):
        return None
    code = code.strip()
    return code or None


def _result_field(result, snake, camel, default=None):
    value = result.get(snake)
    if value is None:
        value = result.get(camel, default)
    return default if value is None else value


def _line_items(result):
    items = _result_field(result, "line_items", "lineItems", [])
    return items if isinstance(items, list) else []


def _dicts(values):
    """The dict entries of an input list; anything else is skipped."""
    if not isinstance(values, (list, tuple)):
        return []
    return [v for v in values if isinstance(v, dict)]


def _quantity(value):
    """Finite non-negative real, else None."""
    if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
        return None
    return value if value >= 0 else None


def usable_line_items(line_items):
    """Line items that would contribute to demand."""
    return [
        item for item in _dicts(line_items)
        if _product_code(item) and is_positive_quantity(item.get("quantity"))
    ]


# ═════════════════════════════════════════════════════════════════════════════
# Demand
# ═════════════════════════════════════════════════════════════════════════════


def compute_demand_from_groups(groups):
    """
    Aggregate line items across groups into per-product demand.

    Returns:
        [{"product_code", "description", "demand_qty", "sources": [
            {"group_id", "employee_label", "activity_code"}]}]
        sorted by product_code.
    """
    demand = {}
    for group in _dicts(groups):
        result = group.get("extraction_result")
        if not isinstance(result, dict) or not result:
            continue
        if group.get("status") == "error" or result.get("status") == "error":
            continue

        for item in usable_line_items(_line_items(result)):
            code = _product_code(item)
            quantity = item["quantity"]

            entry = demand.get(code)
            if entry is None:
                entry = demand[code] = {
                    "product_code": code,
                    "description": None,
                    "demand_qty": 0,
                    "sources": [],
                }
            entry["demand_qty"] += quantity
            description = item.get("description")
            if not entry["description"] and isinstance(description, str) and description.strip():
                entry["description"] = description
            entry["sources"].append({
                "group_id": group.get("id"),
                "employee_label": group.get("employee_label"),
                "activity_code": item.get("activityCode"),
            })

    return sorted(demand.values(), key=lambda d: d["product_code"])


# ═════════════════════════════════════════════════════════════════════════════
# Order recommendation
# ═════════════════════════════════════════════════════════════════════════════


def _station_code(station):
    code = station.get("product_code")
    if isinstance(code, str) and code.strip():
        return code.strip()
    return None


def _has_counts(station):
    return _quantity(station.get("on_hand_qty")) is not None \
        and _quantity(station.get("max_qty")) is not None


def _station_rank(station):
    if station.get("status") != "valid":
        return 2
    if not _has_counts(station):
        return 1
    return 0


def _pick_station(matches):
    """Prefer a valid station with complete data, then any valid one, then the first."""
    if not matches:
        return None
    # min() is stable: ties keep list order
    return min(matches, key=_station_rank)


def compute_order_items(demand_items, stations):
    """
    Match demand against station inventory.

    Returns:
        {"computed": [...], "skipped": [...]}, both sorted by product_code.
        recommended_order_qty = max(0, demand_qty - on_hand_qty);
        exceeds_max is advisory, the recommendation is never clamped.

    Non-numeric station counts count as missing_data. Demand items without
    a product code or a numeric demand_qty are dropped.
    """
    by_code = {}
    for station in _dicts(stations):
        code = _station_code(station)
        if code:
            by_code.setdefault(code, []).append(station)

    computed, skipped = [], []
    for item in _dicts(demand_items):
        code = item.get("product_code")
        demand_qty = _quantity(item.get("demand_qty"))
        if not isinstance(code, str) or not code or demand_qty is None:
            continue
        base = {
            "product_code": code,
            "description": item.get("description"),
            "demand_qty": demand_qty,
        }
        station = _pick_station(by_code.get(code, []))

        if station is None:
            skipped.append({**base, "reason": "no_station", "station_id": None})
            continue
        if station.get("status") != "valid":
            skipped.append({**base, "reason": "station_invalid", "station_id": station.get("id")})
            continue
        if not _has_counts(station):
            skipped.append({**base, "reason": "missing_data", "station_id": station.get("id")})
            continue

        on_hand = station["on_hand_qty"]
        max_qty = station["max_qty"]
        recommended = max(0, demand_qty - on_hand)
        computed.append({
            **base,
            "on_hand_qty": on_hand,
            "min_qty": _quantity(station.get("min_qty")),
            "max_qty": max_qty,
            "recommended_order_qty": recommended,
            "exceeds_max": (on_hand + recommended) > max_qty,
            "station_id": station.get("id"),
        })

    computed.sort(key=lambda o: o["product_code"])
    skipped.sort(key=lambda o: o["product_code"])
    return {"computed": computed, "skipped": skipped}


# ═════════════════════════════════════════════════════════════════════════════
# Coverage & stats
# ═════════════════════════════════════════════════════════════════════════════


def compute_coverage(demand_items, stations):
    """Which demanded products already have a counted, valid station."""
    counted = {
        _station_code(s)
        for s in _dicts(stations)
        if s.get("status") == "valid"
        and _quantity(s.get("on_hand_qty")) is not None
        and _station_code(s)
    }
    codes = [
        d["product_code"] for d in _dicts(demand_items)
        if isinstance(d.get("product_code"), str) and d["product_code"]
    ]
    covered = [c for c in codes if c in counted]
    missing = [c for c in codes if c not in counted]
    percentage = round(100 * len(covered) / len(codes)) if codes else 100
    return {
        "covered": covered,
        "missing": missing,
        "percentage": percentage,
        "is_complete": not missing,
    }


def _count(value):
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    return None


def compute_extraction_stats(groups):
    """Totals over extracted groups; sums cover non-error groups only."""
    stats = {
        "total_groups": 0,
        "extracted_groups": 0,
        "error_groups": 0,
        "total_activities": 0,
        "total_line_items": 0,
        "total_cost": 0,
    }
    for group in _dicts(groups):
        stats["total_groups"] += 1
        result = group.get("extraction_result")
        if not isinstance(result, dict) or not result:
            continue
        if result.get("status") == "error" or group.get("status") == "error":
            stats["error_groups"] += 1
            continue

        stats["extracted_groups"] += 1
        summary = result.get("summary")
        if not isinstance(summary, dict):
            summary = {}
        activities = _count(summary.get("totalActivities"))
        if activities is None:
            raw = result.get("activities")
            activities = len(raw) if isinstance(raw, list) else 0
        line_items = _count(summary.get("totalLineItems", summary.get("totalLineItemsCounted")))
        if line_items is None:
            line_items = len(_line_items(result))
        cost = _result_field(result, "total_cost", "totalCost")
        if not isinstance(cost, Real) or isinstance(cost, bool) or not math.isfinite(cost):
            cost = 0

        stats["total_activities"] += activities
        stats["total_line_items"] += line_items
        stats["total_cost"] += cost
    return stats
