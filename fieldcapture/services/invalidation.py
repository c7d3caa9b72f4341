"""
Field Capture Orders
In-process invalidation bus.

Every state-mutating operation publishes Invalidated(scope, key) events
after its database commit succeeds. Subscribers (the view cache, tests)
drop whatever they derived from that scope.

Scopes:
    sessions   key=None         the global session list
    session    key=session_id   one session's own row
    groups     key=session_id   a session's capture groups / extraction results
    stations   key=session_id   a session's station captures
"""

from __future__ import annotations

import logging
from typing import Callable, NamedTuple

from fieldcapture.models import db

logger = logging.getLogger(__name__)

SCOPES = {"sessions", "session", "groups", "stations"}


class Invalidated(NamedTuple):
    scope: str
    key: str | None = None


_subscribers: list[Callable[[Invalidated], None]] = []


def subscribe(fn: Callable[[Invalidated], None]) -> Callable[[Invalidated], None]:
    """Register *fn* to receive every published event. Usable as a decorator."""
    if fn not in _subscribers:
        _subscribers.append(fn)
    return fn


def unsubscribe(fn: Callable[[Invalidated], None]) -> None:
    if fn in _subscribers:
        _subscribers.remove(fn)


def publish(events) -> None:
    """Deliver events to every subscriber; one failing subscriber never blocks the rest."""
    for event in events:
        if event.scope not in SCOPES:
            logger.warning("Dropping invalidation with unknown scope=%s", event.scope)
            continue
        for fn in list(_subscribers):
            try:
                fn(event)
            except Exception:
                logger.exception("Invalidation subscriber %r failed",
                                 getattr(fn, "__name__", fn),
                                 extra={"event_scope": event.scope})


# ── Event builders ───────────────────────────────────────────────────────────

def session_events(session_id: str) -> list[Invalidated]:
    return [
        Invalidated("sessions"),
        Invalidated("session", session_id),
        Invalidated("groups", session_id),
        Invalidated("stations", session_id),
    ]


def group_events(session_id: str) -> list[Invalidated]:
    return [Invalidated("session", session_id), Invalidated("groups", session_id)]


def station_events(session_id: str) -> list[Invalidated]:
    return [Invalidated("session", session_id), Invalidated("stations", session_id)]


def commit_and_publish(events) -> None:
    """Commit the current unit of work, then publish. Nothing is published if commit raises."""
    db.session.commit()
    publish(events)
