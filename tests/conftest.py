"""
Shared pytest fixtures for the Field Capture Orders test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - blob_store: the in-memory blob store bound to the app
    - fake_extractor: scripted extraction gateway swapped into the app
    - events: list collecting every published invalidation event
"""

import pytest

from fieldcapture import create_app
from fieldcapture.integrations.extraction_gateway import ExtractionOutcome
from fieldcapture.models import db as _db
from fieldcapture.services import cache_service
from fieldcapture.services.invalidation import subscribe, unsubscribe
from fieldcapture.services.task_queue import task_queue


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, reset in-memory collaborators, recreate tables after."""
    with app.app_context():
        cache_service.clear_all()
        app.extensions["blob_store"].clear()
        task_queue.clear()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def blob_store(app):
    return app.extensions["blob_store"]


# ── Extraction stub ──────────────────────────────────────────────────────


class FakeExtractor:
    """Stand-in for ExtractionGateway that replays queued outcomes.

    When the queue is empty every call returns `default`.
    """

    default_model = "test-model"

    def __init__(self):
        self.outcomes = []
        self.default = ExtractionOutcome.failure("no outcome queued")
        self.calls = []

    def queue(self, *outcomes):
        self.outcomes.extend(outcomes)
        return self

    def _next(self):
        if self.outcomes:
            return self.outcomes.pop(0)
        return self.default

    def extract_loading_list(self, image_urls, model_id=None):
        self.calls.append(("loading_list", list(image_urls), model_id))
        return self._next()

    def extract_station(self, sign_url, stock_url, model_id=None):
        self.calls.append(("station", [sign_url, stock_url], model_id))
        return self._next()


@pytest.fixture()
def fake_extractor(app):
    original = app.extensions["extraction_gateway"]
    fake = FakeExtractor()
    app.extensions["extraction_gateway"] = fake
    yield fake
    app.extensions["extraction_gateway"] = original


@pytest.fixture()
def events():
    """Collect every Invalidated event published during the test."""
    received = []
    listener = subscribe(received.append)
    yield received
    unsubscribe(listener)
