"""
Todo Database Layer

Provides SQLite-based persistence for todo items with WAL mode for
concurrent access. Owns the `todo` schema and every query against it;
knows nothing about HTTP.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Union

from pydantic import ValidationError

from .exceptions import InvalidInput, NotFound, StoreUnavailable
from .models import Todo

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


class TodoDatabase:
    """
    SQLite-backed task store.

    Features:
    - WAL mode for concurrent read/write access
    - Create-if-absent schema, never destructive
    - Parameterized statements only
    - Thread-safe operations over a single shared connection
    """

    def __init__(self, db_path: Union[str, Path], busy_timeout_ms: int = 5000):
        """
        Open or create the database and ensure the schema exists.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
            busy_timeout_ms: How long a statement waits on a locked database

        Raises:
            StoreUnavailable: If the file cannot be opened or the schema cannot be created
        """
        self.db_path = str(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        self._connection_lock = threading.RLock()
        self._connection: Optional[sqlite3.Connection] = None

        self._initialize_database()
        logger.info(f"Todo database initialized: {self.db_path} ({self.count()} todos)")

    @classmethod
    def initialize(cls, db_path: Union[str, Path]) -> "TodoDatabase":
        """Open the store at `db_path`; alias for the constructor."""
        return cls(db_path)

    def _initialize_database(self) -> None:
        """Open the connection, configure pragmas and create the schema."""
        try:
            if self.db_path != MEMORY_PATH:
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            # Autocommit mode; multi-statement operations open explicit transactions
            self._connection = sqlite3.connect(
                self.db_path,
                isolation_level=None,
                check_same_thread=False,
            )
            cursor = self._connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")

            self._create_schema()
        except (sqlite3.Error, OSError) as e:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
            raise StoreUnavailable(f"Failed to initialize database at {self.db_path}", original_error=e) from e

    def _create_schema(self) -> None:
        cursor = self._connection.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS todo (
                id INTEGER PRIMARY KEY,
                task TEXT NOT NULL,
                done INTEGER DEFAULT 0
            )
        """)

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        """Yield a cursor under the connection lock, wrapping backend errors."""
        with self._connection_lock:
            if self._connection is None:
                raise StoreUnavailable("Database connection is closed")
            try:
                yield self._connection.cursor()
            except sqlite3.Error as e:
                raise StoreUnavailable("Database operation failed", original_error=e) from e

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        """Context manager for explicit transaction control."""
        with self._cursor() as cursor:
            cursor.execute("BEGIN IMMEDIATE")
            try:
                yield cursor
                cursor.execute("COMMIT")
            except Exception:
                if self._connection.in_transaction:
                    cursor.execute("ROLLBACK")
                raise

    @staticmethod
    def _row_to_todo(row: tuple) -> Todo:
        return Todo(id=row[0], task=row[1], done=row[2])

    def list_all(self) -> List[Todo]:
        """
        Get every todo ordered by id.

        Rows that cannot be decoded are logged and skipped so one bad row
        does not hide the rest of the table.

        Returns:
            List of todos, empty if the table has no rows
        """
        with self._cursor() as cursor:
            cursor.execute("SELECT id, task, done FROM todo ORDER BY id ASC")
            rows = cursor.fetchall()

        todos = []
        for row in rows:
            try:
                todos.append(self._row_to_todo(row))
            except ValidationError as e:
                logger.warning(f"Could not read row from todo table - {row!r}: {e}")
        return todos

    def get_by_id(self, todo_id: int) -> Optional[Todo]:
        """
        Get a single todo by id.

        Args:
            todo_id: Todo id to retrieve

        Returns:
            The todo, or None if no row has that id
        """
        with self._cursor() as cursor:
            cursor.execute("SELECT id, task, done FROM todo WHERE id = ?", (todo_id,))
            row = cursor.fetchone()

        if row is None:
            return None
        try:
            return self._row_to_todo(row)
        except ValidationError as e:
            raise StoreUnavailable(f"Could not read todo {todo_id}", original_error=e) from e

    def add(self, description: str) -> Todo:
        """
        Persist a new todo and return it as stored.

        Args:
            description: Task description, stored exactly as given

        Returns:
            The inserted todo including its assigned id

        Raises:
            InvalidInput: If description is not a non-empty string
        """
        if not isinstance(description, str) or description == "":
            raise InvalidInput("Task description must be a non-empty string")

        with self._transaction() as cursor:
            cursor.execute("INSERT INTO todo (task, done) VALUES (?, 0)", (description,))
            todo_id = cursor.lastrowid
            cursor.execute("SELECT id, task, done FROM todo WHERE id = ?", (todo_id,))
            row = cursor.fetchone()

        todo = self._row_to_todo(row)
        logger.debug(f"Added todo {todo.id}")
        return todo

    def mark_done(self, todo_id: int) -> Todo:
        """
        Mark a todo as done. Marking an already-done todo is a no-op.

        Args:
            todo_id: Todo to update

        Returns:
            The updated todo

        Raises:
            NotFound: If no todo has that id
        """
        with self._transaction() as cursor:
            cursor.execute("SELECT id FROM todo WHERE id = ?", (todo_id,))
            if cursor.fetchone() is None:
                raise NotFound(todo_id)
            cursor.execute("UPDATE todo SET done = 1 WHERE id = ?", (todo_id,))
            cursor.execute("SELECT id, task, done FROM todo WHERE id = ?", (todo_id,))
            row = cursor.fetchone()

        return self._row_to_todo(row)

    def count(self) -> int:
        """Return the number of persisted todos."""
        with self._cursor() as cursor:
            cursor.execute("SELECT COUNT(*) FROM todo")
            return cursor.fetchone()[0]

    def ping(self) -> bool:
        """Check the connection answers a trivial query."""
        with self._cursor() as cursor:
            cursor.execute("SELECT 1")
            return cursor.fetchone()[0] == 1

    def close(self):
        """Close database connection."""
        with self._connection_lock:
            if self._connection:
                self._connection.close()
                self._connection = None

    @property
    def is_closed(self) -> bool:
        return self._connection is None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
