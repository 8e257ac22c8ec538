"""
Shared fixtures: Flask app on a temporary SQLite file with seeded users/classes
"""

import pytest

from app import create_app
from app import globals as app_globals
from database import DatabaseManager
from tests.fakes import PASSWORD, FakeClock, seed


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def database(tmp_path):
    return DatabaseManager(str(tmp_path / 'service.db'))


@pytest.fixture
def app(tmp_path, clock):
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'DATABASE_PATH': str(tmp_path / 'app.db'),
        'LOG_DIR': str(tmp_path / 'logs'),
    })
    app_globals.session_registry.clock = clock
    app_globals.session_manager.clock = clock
    app_globals.attendance_tracker.clock = clock
    app.seed = seed(app_globals.db)
    return app


@pytest.fixture
def ids(app):
    return app.seed


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, username):
    response = client.post('/api/auth/login', json={'username': username, 'password': PASSWORD})
    assert response.status_code == 200, response.get_json()
    return response


@pytest.fixture
def login_as(client):
    def _login(username):
        client.post('/api/auth/logout')
        login(client, username)
        return client
    return _login
