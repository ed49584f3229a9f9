"""
Pydantic models for the Todo Service.

Defines the Todo entity returned by the store and the request/response
shapes used by the HTTP API. Wire names keep the capitalized field names
(`ID`, `Task`, `Done`) that existing clients expect.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class Todo(BaseModel):
    """A single to-do item as persisted in the `todo` table."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: int = Field(alias="ID", description="Store-assigned identity")
    task: str = Field(alias="Task", min_length=1, description="Task description")
    done: bool = Field(False, alias="Done", description="Completion flag")


class NewTodo(BaseModel):
    """Request body for creating a todo."""

    task: str = Field(alias="Task", description="Description of the new task")


class ErrorResponse(BaseModel):
    """Error body returned for every failed request."""

    error: str


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    database_connected: bool
    todo_count: Optional[int] = None
    timestamp: str
