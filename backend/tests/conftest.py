"""
Pytest fixtures for ENBIC backend tests.

Provides the test app (in-memory SQLite), a clean database per test, users
and actors for every role, bearer-token headers and a test client.
"""

import base64

import pytest

from enbic import create_app
from enbic.extensions import db
from enbic.models import State
from enbic.services import auth_service, session_service
from enbic.services.access import ROLE_ADMIN, ROLE_OFFICER, ROLE_OPERATOR, ROLE_SUPERVISOR


PASSWORD = "Password123!"

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")
PDF_PAYLOAD = {"mime": "application/pdf", "data": base64.b64encode(b"%PDF-1.4 test").decode("ascii")}


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp("uploads")),
        'POST_COMMIT_HOOKS_ASYNC': False,
        'REMINDER_SCHEDULER_ENABLED': False,
        'STATE_DELIVERY_THRESHOLD': 3,
        'LOW_STOCK_THRESHOLD': 100,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(username: str, role: str, full_name: str):
    user = auth_service.create_user(username, PASSWORD, role=role, full_name=full_name, bcrypt_rounds=4)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user("admin", ROLE_ADMIN, "Ada Admin")


@pytest.fixture(scope='function')
def operator_user(db_session):
    return _make_user("operator", ROLE_OPERATOR, "Oscar Operator")


@pytest.fixture(scope='function')
def officer_user(db_session):
    return _make_user("officer", ROLE_OFFICER, "Olu Officer")


@pytest.fixture(scope='function')
def other_officer_user(db_session):
    return _make_user("officer2", ROLE_OFFICER, "Ore Officer")


@pytest.fixture(scope='function')
def supervisor_user(db_session):
    return _make_user("supervisor", ROLE_SUPERVISOR, "Sade Supervisor")


@pytest.fixture(scope='function')
def admin(admin_user):
    return auth_service.actor_for(admin_user)


@pytest.fixture(scope='function')
def operator(operator_user):
    return auth_service.actor_for(operator_user)


@pytest.fixture(scope='function')
def officer(officer_user):
    return auth_service.actor_for(officer_user)


@pytest.fixture(scope='function')
def other_officer(other_officer_user):
    return auth_service.actor_for(other_officer_user)


@pytest.fixture(scope='function')
def supervisor(supervisor_user):
    return auth_service.actor_for(supervisor_user)


@pytest.fixture(scope='function')
def states(db_session):
    """Two delivery jurisdictions."""
    for name in ("Lagos", "Kano"):
        db_session.add(State(name=name))
    db_session.commit()
    return ["Lagos", "Kano"]


def _headers_for(user) -> dict:
    _, token = session_service.create_session(user)
    db.session.commit()
    return auth_headers(token)


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return _headers_for(admin_user)


@pytest.fixture(scope='function')
def operator_headers(operator_user):
    return _headers_for(operator_user)


@pytest.fixture(scope='function')
def officer_headers(officer_user):
    return _headers_for(officer_user)


@pytest.fixture(scope='function')
def supervisor_headers(supervisor_user):
    return _headers_for(supervisor_user)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
