"""
View Cache Service.

Provides a thin cache wrapper with:
  - Session report views (demand / order / coverage / extraction stats)
  - An invalidation-bus subscriber that drops views when their inputs change

Uses Redis in production (via REDIS_URL), falls back to
a simple in-memory dict for development/testing.
"""

import json
import logging
import time

from fieldcapture.services.invalidation import subscribe

logger = logging.getLogger(__name__)

# ── In-memory fallback ───────────────────────────────────────────────────

_memory_store: dict = {}  # key → (value_json, expire_ts)


class _MemoryBackend:
    """Simple dict cache for dev/testing."""

    def get(self, key):
        entry = _memory_store.get(key)
        if entry is None:
            return None
        val, expires = entry
        if expires and time.time() > expires:
            _memory_store.pop(key, None)
            return None
        return val

    def setex(self, key, ttl_seconds, value):
        _memory_store[key] = (value, time.time() + ttl_seconds)

    def delete(self, *keys):
        for k in keys:
            _memory_store.pop(k, None)

    def flushdb(self):
        _memory_store.clear()

    def ping(self):
        return True


# ── Singleton cache backend ──────────────────────────────────────────────

_backend = None


def init_cache(app):
    """Pick Redis or the memory backend from app.config['REDIS_URL']."""
    global _backend
    redis_url = app.config.get("REDIS_URL") or ""
    if redis_url and not redis_url.startswith("memory://"):
        try:
            import redis as _redis
            backend = _redis.from_url(redis_url, decode_responses=True)
            backend.ping()
            logger.info("Cache: using Redis at %s", redis_url.split("@")[-1])
        except Exception as exc:
            logger.warning("Redis unavailable (%s): falling back to memory cache", exc)
            backend = _MemoryBackend()
    else:
        backend = _MemoryBackend()
    _backend = backend
    subscribe(handle_invalidation)
    return backend


def _get_backend():
    global _backend
    if _backend is None:
        _backend = _MemoryBackend()
    return _backend


# ── Default TTLs ─────────────────────────────────────────────────────────

VIEW_TTL = 300         # 5 minutes
DEFAULT_TTL = 300


# ── Key builders ─────────────────────────────────────────────────────────

VIEW_NAMES = ("demand", "order", "coverage", "stats")


def view_key(view, session_id):
    return f"{view}:{session_id}"


# Which derived views read which invalidation scope
_SCOPE_VIEWS = {
    "session": VIEW_NAMES,
    "groups": VIEW_NAMES,
    "stations": ("order", "coverage"),
}


# ── Public API ───────────────────────────────────────────────────────────


def get_cached(key, ttl=DEFAULT_TTL, loader=None):
    """Generic cache-aside.  If *loader* is provided, it's called on miss
    and the result is cached."""
    be = _get_backend()
    raw = be.get(key)
    if raw is not None:
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            pass
    if loader is None:
        return None
    value = loader()
    if value is not None:
        be.setex(key, ttl, json.dumps(value))
    return value


def set_cached(key, value, ttl=DEFAULT_TTL):
    """Generic set."""
    _get_backend().setex(key, ttl, json.dumps(value))


def delete_cached(*keys):
    """Generic delete."""
    if keys:
        _get_backend().delete(*keys)


def invalidate_session_views(session_id):
    """Remove every cached view for one session."""
    delete_cached(*(view_key(v, session_id) for v in VIEW_NAMES))


def handle_invalidation(event):
    """Invalidation-bus subscriber: drop the views derived from *event*'s scope."""
    views = _SCOPE_VIEWS.get(event.scope)
    if not views or not event.key:
        return
    delete_cached(*(view_key(v, event.key) for v in views))
    logger.debug("Cache invalidated scope=%s key=%s", event.scope, event.key,
                 extra={"event_scope": event.scope, "session_id": event.key})


def clear_all():
    """Flush entire cache (use sparingly: mainly for testing)."""
    _get_backend().flushdb()


def health_check():
    """Return cache backend status."""
    try:
        be = _get_backend()
        be.ping()
        backend_type = "redis" if not isinstance(be, _MemoryBackend) else "memory"
        return {"status": "ok", "backend": backend_type}
    except Exception as exc:
        return {"status": "error", "detail": str(exc)}
