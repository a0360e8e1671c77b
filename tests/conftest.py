"""
Shared pytest fixtures for the OTI Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - services: the app's WorkflowServices bundle
    - make_block / make_template: catalog factories with sensible defaults
"""

import pytest

from app import create_app
from app.models import db as _db
from app.services.registry import EXTENSION_KEY


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


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
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def services(app):
    """The WorkflowServices bundle wired by create_app."""
    return app.extensions[EXTENSION_KEY]


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_block(services):
    """Create a catalog block; keyword overrides use the JSON field names."""

    def _make(**overrides):
        data = {
            "name": "Security Assessment",
            "category": "Security",
            "team": "security",
            "estimatedDays": 5,
            "checklistItems": ["Risk rating agreed"],
        }
        data.update(overrides)
        return services.catalog.create(data)

    return _make


@pytest.fixture()
def make_template(services):
    """Create a template from (block, customDuration) pairs."""

    def _make(*blocks, name="Standard Software Request", category="Procurement"):
        refs = []
        for item in blocks:
            block, custom = item if isinstance(item, tuple) else (item, None)
            refs.append({"blockId": block.id, "customDuration": custom})
        return services.templates.create({"name": name, "category": category, "blocks": refs})

    return _make


@pytest.fixture()
def abc_template(make_block, make_template):
    """Three blocks A(5d), B(3d, custom 2d), C(4d) → 11 estimated days."""
    a = make_block(name="A", estimatedDays=5, checklistItems=["a1", "a2"])
    b = make_block(name="B", estimatedDays=3, category="Procurement", checklistItems=[])
    c = make_block(name="C", estimatedDays=4, category="Deployment", checklistItems=["c1"])
    template = make_template(a, (b, 2), c)
    return template, (a, b, c)
