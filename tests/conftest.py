"""
Shared pytest fixtures for the ESG governance core test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse); seeds
      the nine predefined roles so every test starts from the same catalog
    - client: Flask test client (function-scoped)
    - sample_users: the six demo users (user-1 … user-6)
"""

import pytest

from esg_governance import create_app
from esg_governance.models import db as _db
from esg_governance.services.permission_service import invalidate_all_cache
from esg_governance.services.role_service import seed_predefined_roles
from esg_governance.services.user_service import seed_sample_users


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
        # Tables are recreated per test and role ids are reused; clear the
        # role matrix cache so no decision is served from a previous test.
        invalidate_all_cache()
        seed_predefined_roles()
        yield
        invalidate_all_cache()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def sample_users():
    """Seed the demo users and return their ids keyed by role label.

    user-1 Data Owner, user-2 Admin, user-3 / user-4 Contributors,
    user-5 Approver, user-6 Compliance Officer.
    """
    seed_sample_users()
    return {
        "data_owner": "user-1",
        "admin": "user-2",
        "contributor": "user-3",
        "contributor_2": "user-4",
        "approver": "user-5",
        "compliance": "user-6",
    }
