"""
Server lifecycle for the Todo Service.

TodoServer owns the uvicorn listener and, unless one is injected, the
TodoDatabase behind it. `start()` binds the listener on a background
thread and returns once it accepts connections; `stop()` releases both the
socket and the database. Tests use it to run a real HTTP server per test.
"""

import logging
import threading
import time
from typing import Optional

import uvicorn
from fastapi import FastAPI

from .api import create_app
from .config import ServerConfig
from .database import TodoDatabase

logger = logging.getLogger(__name__)


def build_uvicorn_config(app: FastAPI, config: ServerConfig) -> uvicorn.Config:
    """Translate ServerConfig into uvicorn settings."""
    return uvicorn.Config(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level,
        timeout_keep_alive=int(config.idle_timeout),
        # Logging is configured by the caller
        log_config=None,
    )


class TodoServer:
    """
    HTTP server wrapper with explicit start/stop.

    Usage:
        with TodoServer(ServerConfig(port=0, db_path=path)) as server:
            requests.get(f"{server.url}/todos")
    """

    def __init__(self, config: ServerConfig, database: Optional[TodoDatabase] = None):
        self.config = config
        self.database = database
        self.app: Optional[FastAPI] = None
        self._owns_database = False
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def port(self) -> int:
        """Port actually bound, which differs from config.port when that is 0."""
        if self._server is None or not self._server.servers:
            raise RuntimeError("Server is not running")
        return self._server.servers[0].sockets[0].getsockname()[1]

    @property
    def url(self) -> str:
        host = "127.0.0.1" if self.config.host in ("0.0.0.0", "") else self.config.host
        return f"http://{host}:{self.port}"

    def start(self, timeout: float = 10.0) -> "TodoServer":
        """
        Open the database (if needed) and start serving.

        Args:
            timeout: Seconds to wait for the listener to come up

        Returns:
            self, for chaining

        Raises:
            StoreUnavailable: If the database cannot be opened
            RuntimeError: If already started or the listener does not come up in time
        """
        if self._thread is not None:
            raise RuntimeError("Server already started")

        if self.database is None:
            self.database = TodoDatabase(self.config.db_path)
            self._owns_database = True

        self.app = create_app(self.database, self.config)
        self._server = uvicorn.Server(build_uvicorn_config(self.app, self.config))
        self._thread = threading.Thread(target=self._server.run, name="todo-server", daemon=True)
        self._thread.start()

        deadline = time.monotonic() + timeout
        while not self._server.started:
            if not self._thread.is_alive():
                self.stop()
                raise RuntimeError(f"Server failed to start on {self.config.host}:{self.config.port}")
            if time.monotonic() > deadline:
                self.stop()
                raise RuntimeError(f"Server did not start within {timeout}s")
            time.sleep(0.05)

        logger.info(f"Todo server listening on {self.url}")
        return self

    def stop(self, timeout: float = 10.0) -> None:
        """Stop the listener and close the database if this server opened it."""
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Server thread did not exit within timeout")
            else:
                logger.info("Todo server stopped")
        self._thread = None
        self._server = None

        if self._owns_database and self.database is not None:
            self.database.close()
            self.database = None
            self._owns_database = False
            logger.info("Database connection closed")

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
