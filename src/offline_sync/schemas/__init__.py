"""Domain records exchanged between the engine, the store and the backend."""

from offline_sync.schemas.todo import (  # noqa: F401
    OperationKind,
    PendingOperation,
    Todo,
    utc_now_iso,
)
