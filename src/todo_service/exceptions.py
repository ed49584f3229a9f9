"""
Exception Hierarchy for the Todo Service

The store raises these typed errors; the API layer is the only place that
turns them into HTTP status codes and client-facing messages.

    InvalidInput      -> 400
    NotFound          -> 404
    StoreUnavailable  -> 500
"""

from typing import Optional


class TodoStoreError(Exception):
    """Base exception for all todo store errors."""

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        """
        Initialize store error.

        Args:
            message: Human-readable error message
            original_error: Underlying backend exception, if any
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error is not None:
            return f"{self.message}: {self.original_error}"
        return self.message


class InvalidInput(TodoStoreError):
    """Raised when a caller supplies a value the store refuses to persist."""


class NotFound(TodoStoreError):
    """Raised when an operation targets a todo id that does not exist."""

    def __init__(self, todo_id: int):
        super().__init__(f"Todo {todo_id} not found")
        self.todo_id = todo_id


class StoreUnavailable(TodoStoreError):
    """Raised when the backing database cannot be opened or a statement fails."""
