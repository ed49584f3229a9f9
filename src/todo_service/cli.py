"""
Click CLI for the Todo Service

Parses flags (with environment-variable fallbacks), configures logging,
opens the database and serves the API with uvicorn until interrupted.
Startup failures exit non-zero before any traffic is accepted.
"""

import asyncio
import logging
import socket

import click
import uvicorn
from fastapi import FastAPI

from .api import create_app
from .config import (
    DEFAULT_DB_PATH, DEFAULT_HOST, DEFAULT_IDLE_TIMEOUT, DEFAULT_PORT,
    DEFAULT_READ_TIMEOUT, DEFAULT_WRITE_TIMEOUT, LOG_LEVELS, ServerConfig,
)
from .database import TodoDatabase
from .exceptions import StoreUnavailable
from .server import build_uvicorn_config

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def check_port_available(host: str, port: int) -> bool:
    """Return True if `host:port` can be bound right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def print_startup_banner(config: ServerConfig) -> None:
    """Print the listening address and available endpoints."""
    base_url = f"http://{config.host}:{config.port}"
    print("=" * 60)
    print("TODO SERVICE STARTED")
    print("=" * 60)
    print(f"Listening on:  {base_url}")
    print(f"Database:      {config.db_path}")
    print(f"Timeouts:      read={config.read_timeout}s write={config.write_timeout}s idle={config.idle_timeout}s")
    print("Endpoints:")
    print("  GET  /todos      - List all todos")
    print("  POST /todo       - Add a todo")
    print("  GET  /todo/{id}  - Fetch one todo")
    print("  PUT  /todo/{id}  - Mark a todo as done")
    print("  GET  /healthz    - Health check")
    print("=" * 60)


async def serve_api(app: FastAPI, config: ServerConfig) -> None:
    """Serve `app` until uvicorn receives a shutdown signal."""
    server = uvicorn.Server(build_uvicorn_config(app, config))
    await server.serve()


@click.command()
@click.option("--host", envvar="HOST", default=DEFAULT_HOST, show_default=True,
              help="Interface to bind")
@click.option("--port", envvar="DEFAULT_PORT", default=DEFAULT_PORT, type=int, show_default=True,
              help="Port to listen on")
@click.option("--db-path", envvar="DATABASE_PATH", default=DEFAULT_DB_PATH, show_default=True,
              help="SQLite database file")
@click.option("--read-timeout", default=DEFAULT_READ_TIMEOUT, type=float, show_default=True,
              help="Seconds allowed to read a request")
@click.option("--write-timeout", default=DEFAULT_WRITE_TIMEOUT, type=float, show_default=True,
              help="Seconds allowed to write a response")
@click.option("--idle-timeout", default=DEFAULT_IDLE_TIMEOUT, type=float, show_default=True,
              help="Keep-alive timeout for idle connections")
@click.option("--log-level", envvar="LOG_LEVEL", default="info", show_default=True,
              type=click.Choice(LOG_LEVELS, case_sensitive=False))
@click.option("--expose-errors/--no-expose-errors", envvar="EXPOSE_ERRORS", default=False,
              help="Return backend error text to clients (development only)")
def main(host, port, db_path, read_timeout, write_timeout, idle_timeout, log_level, expose_errors):
    """Run the Todo HTTP API."""
    log_level = log_level.lower()
    logging.basicConfig(level=getattr(logging, log_level.upper()), format=LOG_FORMAT)

    try:
        config = ServerConfig(
            host=host,
            port=port,
            db_path=db_path,
            read_timeout=read_timeout,
            write_timeout=write_timeout,
            idle_timeout=idle_timeout,
            log_level=log_level,
            expose_errors=expose_errors,
        )
    except ValueError as e:
        raise click.BadParameter(str(e))

    if port != 0 and not check_port_available(host, port):
        raise click.ClickException(f"Port conflict: {host}:{port} is already in use")

    try:
        database = TodoDatabase(db_path)
    except StoreUnavailable as e:
        logger.error(f"Failed to initialize database: {e}")
        raise click.ClickException(f"Failed to initialize database: {e}")

    try:
        print_startup_banner(config)
        asyncio.run(serve_api(create_app(database, config), config))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        database.close()
        logger.info("Database connection closed")


if __name__ == "__main__":
    main()
