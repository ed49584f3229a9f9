"""
Unit tests for the Todo HTTP API.

Exercises every route against a real temporary database, plus error
mapping and redaction with a mocked store.
"""

import asyncio
import sqlite3
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from todo_service.api import create_app, get_database
from todo_service.config import ServerConfig
from todo_service.exceptions import StoreUnavailable


class TestTodoScenario:
    """End-to-end flow through all four routes."""

    def test_add_list_mark_done_get(self, api_client):
        response = api_client.post("/todo", json={"Task": "buy milk"})
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        assert response.json() == {"ID": 1, "Task": "buy milk", "Done": False}

        response = api_client.get("/todos")
        assert response.status_code == 200
        assert response.json() == [{"ID": 1, "Task": "buy milk", "Done": False}]

        response = api_client.put("/todo/1")
        assert response.status_code == 200
        assert response.json() == "marking todo = 1, as done"

        response = api_client.get("/todo/1")
        assert response.status_code == 200
        assert response.json() == {"ID": 1, "Task": "buy milk", "Done": True}


class TestListTodos:

    def test_empty_list(self, api_client):
        response = api_client.get("/todos")

        assert response.status_code == 200
        assert response.json() == []

    def test_list_is_ordered_by_id(self, api_client, database):
        for task in ("one", "two", "three"):
            database.add(task)

        response = api_client.get("/todos")

        assert [t["ID"] for t in response.json()] == [1, 2, 3]
        assert [t["Task"] for t in response.json()] == ["one", "two", "three"]


class TestAddTodo:

    def test_add_echoes_unicode_and_quotes(self, api_client, database):
        task = 'call "Zoë" about the café ☕'

        response = api_client.post("/todo", json={"Task": task})

        assert response.status_code == 200
        body = response.json()
        assert body["Task"] == task
        assert database.get_by_id(body["ID"]).task == task

    def test_add_accepts_whitespace_task(self, api_client):
        response = api_client.post("/todo", json={"Task": "   "})

        assert response.status_code == 200
        assert response.json() == {"ID": 1, "Task": "   ", "Done": False}

    def test_add_ignores_unknown_fields(self, api_client):
        response = api_client.post("/todo", json={"Task": "walk dog", "ID": 77, "Done": True})

        assert response.status_code == 200
        assert response.json() == {"ID": 1, "Task": "walk dog", "Done": False}

    @pytest.mark.parametrize("payload", [{}, {"task": "lowercase key"}, {"Task": None}, {"Task": 5}, [], "text"])
    def test_malformed_payload_returns_400(self, api_client, database, payload):
        response = api_client.post("/todo", json=payload)

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request payload"}
        assert database.count() == 0

    def test_invalid_json_returns_400(self, api_client, database):
        response = api_client.post(
            "/todo", content=b'{"Task": "unterminated', headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request payload"}
        assert database.count() == 0

    def test_missing_body_returns_400(self, api_client):
        response = api_client.post("/todo")

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request payload"}

    def test_empty_task_returns_400(self, api_client, database):
        response = api_client.post("/todo", json={"Task": ""})

        assert response.status_code == 400
        assert response.json() == {"error": "Task description must be a non-empty string"}
        assert database.count() == 0


class TestGetTodo:

    def test_get_missing_returns_404(self, api_client):
        response = api_client.get("/todo/999")

        assert response.status_code == 404
        assert response.json() == {"error": "Todo not found"}

    @pytest.mark.parametrize("todo_id", ["abc", "1.5", "99999999999999999999"])
    def test_invalid_id_returns_400(self, api_client, todo_id):
        response = api_client.get(f"/todo/{todo_id}")

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid Task Id, must be integer"}

    def test_get_returns_only_requested_todo(self, api_client, database):
        database.add("first")
        database.add("second")

        response = api_client.get("/todo/2")

        assert response.json() == {"ID": 2, "Task": "second", "Done": False}


class TestMarkDone:

    def test_mark_done_twice(self, api_client, database):
        database.add("water plants")

        first = api_client.put("/todo/1")
        second = api_client.put("/todo/1")

        assert first.status_code == second.status_code == 200
        assert database.get_by_id(1).done is True

    def test_mark_done_missing_returns_404(self, api_client, database):
        database.add("only task")

        response = api_client.put("/todo/5")

        assert response.status_code == 404
        assert response.json() == {"error": "Todo not found"}
        assert database.get_by_id(1).done is False

    def test_mark_done_invalid_id_returns_400(self, api_client):
        response = api_client.put("/todo/abc")

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid Task Id, must be integer"}


class TestStoreErrors:
    """Store failures map to 500 and are redacted unless expose_errors is set."""

    def setup_method(self):
        self.mock_db = Mock()
        failure = StoreUnavailable(
            "Database operation failed", original_error=sqlite3.OperationalError("disk I/O error")
        )
        self.mock_db.list_all.side_effect = failure
        self.mock_db.add.side_effect = failure
        self.mock_db.get_by_id.side_effect = failure
        self.mock_db.mark_done.side_effect = failure

    @pytest.mark.parametrize("method,path,kwargs", [
        ("get", "/todos", {}),
        ("post", "/todo", {"json": {"Task": "x"}}),
        ("get", "/todo/1", {}),
        ("put", "/todo/1", {}),
    ])
    def test_store_error_is_redacted(self, method, path, kwargs):
        client = TestClient(create_app(self.mock_db, ServerConfig()))

        response = getattr(client, method)(path, **kwargs)

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}

    def test_store_error_exposed_in_development(self):
        client = TestClient(create_app(self.mock_db, ServerConfig(expose_errors=True)))

        response = client.get("/todos")

        assert response.status_code == 500
        assert "disk I/O error" in response.json()["error"]

    def test_store_error_is_logged(self, caplog):
        client = TestClient(create_app(self.mock_db, ServerConfig()))

        with caplog.at_level("ERROR", logger="todo_service.api"):
            client.get("/todos")

        assert "disk I/O error" in caplog.text

    def test_unexpected_exception_returns_500(self):
        self.mock_db.list_all.side_effect = RuntimeError("kaboom")
        client = TestClient(create_app(self.mock_db, ServerConfig()), raise_server_exceptions=False)

        response = client.get("/todos")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}

    def test_closed_database_returns_500(self, database, test_config):
        client = TestClient(create_app(database, test_config))
        database.close()

        response = client.get("/todos")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}

    def test_dependency_override(self, database, test_config):
        """The store can be swapped per app through FastAPI's override hook."""
        app = create_app(database, test_config)
        app.dependency_overrides[get_database] = lambda: self.mock_db
        self.mock_db.list_all.side_effect = None
        self.mock_db.list_all.return_value = []

        response = TestClient(app).get("/todos")

        assert response.status_code == 200
        self.mock_db.list_all.assert_called_once()


class TestHealthCheck:

    def test_healthy(self, api_client, database):
        database.add("something")

        response = api_client.get("/healthz")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database_connected"] is True
        assert data["todo_count"] == 1
        assert data["timestamp"]

    def test_degraded_when_database_closed(self, database, test_config):
        client = TestClient(create_app(database, test_config))
        database.close()

        response = client.get("/healthz")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["database_connected"] is False


class TestLifespan:

    def test_app_opens_and_closes_its_own_database(self, test_config):
        app = create_app(config=test_config)

        with TestClient(app) as client:
            database = app.state.database
            assert client.post("/todo", json={"Task": "owned"}).status_code == 200

        assert app.state.database is None
        assert database.is_closed

    def test_injected_database_is_left_open(self, database, test_config):
        with TestClient(create_app(database, test_config)):
            pass

        assert not database.is_closed


class TestRequestTimeout:

    def test_slow_request_returns_503(self, database):
        app = create_app(database, ServerConfig(read_timeout=0.05, write_timeout=0.05))

        @app.get("/slow")
        async def slow():
            await asyncio.sleep(1)
            return {}

        response = TestClient(app).get("/slow")

        assert response.status_code == 503
        assert response.json() == {"error": "Request timed out"}
