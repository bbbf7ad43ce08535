"""
Shared pytest fixtures for the Review API test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - platform: FakePlatform installed behind every gateway singleton
      with patch.object

Row factories, identities and token helpers live in tests/factories.py.
"""

from unittest.mock import patch

import pytest

from review_api import create_app
from review_api.integrations.challenge_gateway import challenge_gateway
from review_api.integrations.event_bus_gateway import event_bus_gateway
from review_api.integrations.gateway import m2m_token_provider
from review_api.integrations.member_gateway import member_gateway
from review_api.integrations.resource_gateway import resource_gateway
from review_api.integrations.storage_gateway import storage_gateway
from review_api.models import db as _db
from tests.factories import FakePlatform


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
        m2m_token_provider.invalidate()
        yield
        m2m_token_provider.invalidate()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── External services ────────────────────────────────────────────────────


@pytest.fixture()
def platform():
    """Install a FakePlatform behind every gateway singleton."""
    fake = FakePlatform()
    with patch.object(challenge_gateway, "get_challenge", side_effect=fake.get_challenge), \
         patch.object(resource_gateway, "get_member_resources_roles",
                      side_effect=fake.get_member_resources_roles), \
         patch.object(member_gateway, "get_user_emails", side_effect=fake.get_user_emails), \
         patch.object(event_bus_gateway, "send_email", side_effect=fake.send_email), \
         patch.object(storage_gateway, "put_object", side_effect=fake.put_object), \
         patch.object(storage_gateway, "get_object", side_effect=fake.get_object), \
         patch.object(storage_gateway, "delete_object", side_effect=fake.delete_object):
        yield fake
