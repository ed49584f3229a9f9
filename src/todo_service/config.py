"""
Server configuration for the Todo Service.

Values default from environment variables so the same settings work for
the CLI, container deployments and tests.
"""

import os
from dataclasses import dataclass

DEFAULT_DB_PATH = "./todo.db"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 5000
DEFAULT_READ_TIMEOUT = 15.0
DEFAULT_WRITE_TIMEOUT = 15.0
DEFAULT_IDLE_TIMEOUT = 60.0
LOG_LEVELS = ("critical", "error", "warning", "info", "debug")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ServerConfig:
    """
    Settings for the HTTP listener and the backing store.

    Attributes:
        host: Interface to bind
        port: TCP port to bind; 0 lets the OS choose
        db_path: SQLite database file
        read_timeout: Seconds allowed to receive and start handling a request
        write_timeout: Seconds allowed to produce the response
        idle_timeout: Keep-alive timeout for idle connections
        log_level: Logging level name
        expose_errors: Return raw backend error text to clients (development only)
    """
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    db_path: str = DEFAULT_DB_PATH
    read_timeout: float = DEFAULT_READ_TIMEOUT
    write_timeout: float = DEFAULT_WRITE_TIMEOUT
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT
    log_level: str = "info"
    expose_errors: bool = False

    def __post_init__(self):
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {LOG_LEVELS}")
        for name in ("read_timeout", "write_timeout", "idle_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    @property
    def request_timeout(self) -> float:
        """Upper bound on handling a single request."""
        return self.read_timeout + self.write_timeout

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Build a config from DATABASE_PATH, DEFAULT_PORT, HOST, LOG_LEVEL and EXPOSE_ERRORS."""
        return cls(
            host=os.getenv("HOST", DEFAULT_HOST),
            port=int(os.getenv("DEFAULT_PORT", str(DEFAULT_PORT))),
            db_path=os.getenv("DATABASE_PATH", DEFAULT_DB_PATH),
            log_level=os.getenv("LOG_LEVEL", "info").lower(),
            expose_errors=_env_flag("EXPOSE_ERRORS"),
        )
