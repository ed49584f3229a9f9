"""
FastAPI Backend for the Todo Service

Maps HTTP requests onto TodoDatabase operations and serializes results.
The store is injected per application instance through `app.state`, so each
test (or server) can run against its own database. All failures are
returned as `{"error": "<message>"}` with the status code chosen here; the
store never decides status codes.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, Path, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import __version__
from .config import ServerConfig
from .database import TodoDatabase
from .exceptions import InvalidInput, NotFound, StoreUnavailable, TodoStoreError
from .models import HealthResponse, NewTodo, Todo

logger = logging.getLogger(__name__)

# SQLite INTEGER range; larger path ids cannot be bound as statement parameters
SQLITE_MAX_INT = 2**63 - 1
SQLITE_MIN_INT = -(2**63)

INVALID_PAYLOAD = "Invalid request payload"
INVALID_ID = "Invalid Task Id, must be integer"
NOT_FOUND = "Todo not found"
INTERNAL_ERROR = "Internal server error"
TIMED_OUT = "Request timed out"


def error_response(status_code: int, message: str) -> JSONResponse:
    """Build the JSON error body shared by every failure path."""
    return JSONResponse(status_code=status_code, content={"error": message})


def get_database(request: Request) -> TodoDatabase:
    """
    FastAPI dependency to provide the application's database instance.

    Raises:
        StoreUnavailable: If the application has no open database
    """
    database = getattr(request.app.state, "database", None)
    if database is None:
        raise StoreUnavailable("Database not available")
    return database


def _redact(request: Request, exc: Exception) -> str:
    config: ServerConfig = request.app.state.config
    if config.expose_errors:
        return str(exc)
    return INTERNAL_ERROR


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if any(tuple(err.get("loc", ()))[:1] == ("path",) for err in errors):
            message = INVALID_ID
        else:
            message = INVALID_PAYLOAD
        logger.info(f"Rejected {request.method} {request.url.path}: {errors}")
        return error_response(400, message)

    @app.exception_handler(InvalidInput)
    async def invalid_input_handler(request: Request, exc: InvalidInput):
        return error_response(400, exc.message)

    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound):
        return error_response(404, NOT_FOUND)

    @app.exception_handler(TodoStoreError)
    async def store_error_handler(request: Request, exc: TodoStoreError):
        logger.error(f"Store error on {request.method} {request.url.path}: {exc}")
        return error_response(500, _redact(request, exc))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unhandled errors."""
        logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
        return error_response(500, _redact(request, exc))


def _register_routes(app: FastAPI) -> None:
    @app.get("/healthz", response_model=HealthResponse)
    def health_check(request: Request):
        """
        Health check endpoint for service monitoring.

        Always answers 200; a failing store probe reports `degraded`
        instead of raising, so load balancers can read the body.
        """
        database = getattr(request.app.state, "database", None)
        database_connected = False
        todo_count = None
        if database is not None:
            try:
                database_connected = database.ping()
                todo_count = database.count()
            except TodoStoreError as e:
                logger.error(f"Database health check failed: {e}")
                database_connected = False

        return HealthResponse(
            status="healthy" if database_connected else "degraded",
            database_connected=database_connected,
            todo_count=todo_count,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    @app.get("/todos", response_model=List[Todo])
    def list_todos(db: TodoDatabase = Depends(get_database)):
        """List every todo ordered by id."""
        return db.list_all()

    @app.post("/todo", response_model=Todo)
    def add_todo(new_todo: NewTodo, db: TodoDatabase = Depends(get_database)):
        """Create a todo from `{"Task": "..."}` and return it with its assigned id."""
        todo = db.add(new_todo.task)
        logger.info(f"Created todo {todo.id}")
        return todo

    @app.get("/todo/{todo_id}", response_model=Todo)
    def get_todo(
        todo_id: int = Path(..., ge=SQLITE_MIN_INT, le=SQLITE_MAX_INT),
        db: TodoDatabase = Depends(get_database),
    ):
        """Fetch one todo; 404 if it does not exist."""
        todo = db.get_by_id(todo_id)
        if todo is None:
            raise NotFound(todo_id)
        return todo

    @app.put("/todo/{todo_id}", response_model=str)
    def mark_todo_done(
        todo_id: int = Path(..., ge=SQLITE_MIN_INT, le=SQLITE_MAX_INT),
        db: TodoDatabase = Depends(get_database),
    ):
        """Mark a todo as done. Repeating the call is harmless."""
        db.mark_done(todo_id)
        logger.info(f"Marked todo {todo_id} as done")
        return f"marking todo = {todo_id}, as done"


def create_app(database: Optional[TodoDatabase] = None, config: Optional[ServerConfig] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        database: Open store to serve. When omitted, the application opens
            `config.db_path` on startup and closes it on shutdown.
        config: Server settings; defaults to ServerConfig.from_env()

    Returns:
        Configured FastAPI application
    """
    config = config or ServerConfig.from_env()
    owns_database = database is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_database:
            try:
                app.state.database = TodoDatabase(config.db_path)
            except StoreUnavailable as e:
                logger.error(f"Failed to initialize database: {e}")
                raise
        logger.info("Todo API starting up...")
        try:
            yield
        finally:
            if owns_database and app.state.database is not None:
                app.state.database.close()
                app.state.database = None
                logger.info("Database connection closed")

    app = FastAPI(
        title="Todo API",
        description="Minimal task-tracking REST API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.database = database

    @app.middleware("http")
    async def request_timeout(request: Request, call_next):
        start = time.time()
        try:
            response = await asyncio.wait_for(call_next(request), timeout=config.request_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"{request.method} {request.url.path} exceeded {config.request_timeout:.1f}s, abandoning"
            )
            return error_response(503, TIMED_OUT)
        duration_ms = int((time.time() - start) * 1000)
        logger.info(f"HTTP {request.method} {request.url.path} -> {response.status_code} dur_ms={duration_ms}")
        return response

    _register_exception_handlers(app)
    _register_routes(app)
    return app
