"""
Shared fixtures for Todo Service tests.

Every test gets its own SQLite file under pytest's tmp_path, so tests never
share state and can run in any order.
"""

import socket

import pytest
from fastapi.testclient import TestClient

from todo_service.api import create_app
from todo_service.config import ServerConfig
from todo_service.database import TodoDatabase


def find_free_port() -> int:
    """Find an available port for test server instances."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        s.listen(1)
        port = s.getsockname()[1]
    return port


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "todo_test.db")


@pytest.fixture
def database(db_path):
    """Provide an isolated, empty TodoDatabase."""
    db = TodoDatabase(db_path)
    yield db
    db.close()


@pytest.fixture
def test_config(db_path):
    return ServerConfig(host="127.0.0.1", port=0, db_path=db_path)


@pytest.fixture
def api_client(database, test_config):
    """Provide FastAPI test client bound to the isolated database."""
    app = create_app(database, test_config)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def free_port():
    return find_free_port()
