"""Base store interface.

A store is the durable home of the local todo snapshot and the queue of
pending operations.  Concrete backends implement the private ``_write_*`` /
``_read_*`` hooks; the public operations here add lazy schema setup,
``updatedAt`` stamping and the read-never-fails contract.
"""

from __future__ import annotations

import abc
import logging
import threading
from typing import Any, Iterable

from offline_sync.errors import StorageError
from offline_sync.schemas.todo import PendingOperation, Todo, utc_now_iso

logger = logging.getLogger(__name__)


class BaseStore(abc.ABC):
    """Persist the todo snapshot and the pending-operation queue.

    Lifecycle:
        1. __init__(config)  — receive the resolved storage config.
        2. connect()         — open connections / files (optional).
        3. initialize()      — create tables; runs once, lazily, on first use.
        4. disconnect()      — release resources.
    """

    def __init__(self, config: dict[str, Any]) -> None:
        self._config = config
        self._initialized = False
        self._init_lock = threading.Lock()

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @property
    def initialized(self) -> bool:
        return self._initialized

    # -- lifecycle hooks -----------------------------------------------------

    def connect(self) -> None:
        """Open connections.  Default is a no-op."""

    def disconnect(self) -> None:
        """Release connections.  Default is a no-op."""

    def initialize(self) -> None:
        """Create the snapshot and queue tables exactly once.

        Safe to call from several threads: late callers block on the lock
        until the first caller finishes, then return immediately.
        """
        if self._initialized:
            return
        with self._init_lock:
            if self._initialized:
                return
            self._create_schema()
            self._initialized = True
            logger.info("%s: schema initialized", self.name)

    # -- public operations ---------------------------------------------------

    def replace_snapshot(self, todos: Iterable[Todo]) -> None:
        """Atomically replace the whole snapshot, stamping ``updatedAt``."""
        self.initialize()
        stamp = utc_now_iso()
        stamped = [todo.model_copy(update={"updated_at": stamp}) for todo in todos]
        self._write_snapshot(stamped)
        logger.info("%s: snapshot replaced (%d todos)", self.name, len(stamped))

    def read_snapshot(self) -> list[Todo]:
        """Return the current snapshot; ``[]`` when missing or unreadable."""
        try:
            self.initialize()
            return self._read_snapshot()
        except StorageError as exc:
            logger.warning("%s: could not read snapshot (%s) — returning empty", self.name, exc)
            return []

    def enqueue_pending(self, op: PendingOperation) -> int:
        """Append *op* to the queue and return its assigned sequence id."""
        self.initialize()
        sequence_id = self._append_pending(op)
        logger.info(
            "%s: enqueued %s for todo %d as #%d",
            self.name, op.kind.value, op.payload.id, sequence_id,
        )
        return sequence_id

    def read_pending_queue(self) -> list[PendingOperation]:
        """Return every queued operation in enqueue order."""
        self.initialize()
        return self._read_pending()

    def remove_pending(self, sequence_id: int) -> None:
        """Delete queue entry *sequence_id*; absent entries are ignored."""
        self.initialize()
        self._delete_pending(sequence_id)

    # -- backend hooks -------------------------------------------------------

    @abc.abstractmethod
    def _create_schema(self) -> None:
        ...

    @abc.abstractmethod
    def _write_snapshot(self, todos: list[Todo]) -> None:
        ...

    @abc.abstractmethod
    def _read_snapshot(self) -> list[Todo]:
        ...

    @abc.abstractmethod
    def _append_pending(self, op: PendingOperation) -> int:
        ...

    @abc.abstractmethod
    def _read_pending(self) -> list[PendingOperation]:
        ...

    @abc.abstractmethod
    def _delete_pending(self, sequence_id: int) -> None:
        ...

    # -- context-manager support ---------------------------------------------

    def __enter__(self) -> BaseStore:
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.disconnect()
