"""Pydantic models for todo records and queued offline operations.

Both models serialize with the camelCase field names the backend and the
store message protocol use (``createdAt``, ``sequenceId``...).  Python code
uses the snake_case attribute names.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


class Todo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(..., ge=1)
    text: str = Field(..., min_length=1)
    completed: bool = False
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")

    @field_validator("text", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict using the wire (camelCase) field names."""
        return self.model_dump(by_alias=True, exclude_none=True)


class OperationKind(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class PendingOperation(BaseModel):
    """A mutation that could not reach the backend and awaits replay.

    ``sequence_id`` is assigned by the store on enqueue and is ``None``
    until then.  ``retry_count`` is carried for future retry policies; the
    current drain never increments it.
    """

    model_config = ConfigDict(populate_by_name=True)

    sequence_id: int | None = Field(default=None, alias="sequenceId")
    kind: OperationKind
    payload: Todo
    enqueued_at: str = Field(default_factory=utc_now_iso, alias="enqueuedAt")
    retry_count: int = Field(default=0, ge=0, alias="retryCount")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
