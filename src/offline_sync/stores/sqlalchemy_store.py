"""SQLAlchemy store — keeps the snapshot and queue in any SQL database."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Engine,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    insert,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from offline_sync.errors import StorageError
from offline_sync.registry import register_store
from offline_sync.schemas.todo import PendingOperation, Todo
from offline_sync.stores.base import BaseStore

logger = logging.getLogger(__name__)

_IN_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:"}


@register_store("sql_database")
class SQLAlchemyStore(BaseStore):
    """Store the snapshot and queue as two tables via SQLAlchemy Core.

    Config keys: ``connection_string`` (required), ``snapshot_table``
    (default ``todos``), ``queue_table`` (default ``pending_operations``).
    """

    def __init__(self, config: dict[str, Any]) -> None:
        super().__init__(config)
        self._engine: Engine | None = None
        self._metadata = MetaData()
        self._todos = Table(
            config.get("snapshot_table", "todos"),
            self._metadata,
            Column("id", Integer, primary_key=True, autoincrement=False),
            Column("position", Integer, nullable=False),
            Column("text", String, nullable=False),
            Column("completed", Boolean, nullable=False, default=False),
            Column("created_at", String, nullable=True),
            Column("updated_at", String, nullable=True),
        )
        # sqlite_autoincrement keeps sequence ids strictly increasing even
        # after the newest row is deleted.
        self._queue = Table(
            config.get("queue_table", "pending_operations"),
            self._metadata,
            Column("sequence_id", Integer, primary_key=True, autoincrement=True),
            Column("kind", String(16), nullable=False),
            Column("payload", JSON, nullable=False),
            Column("enqueued_at", String, nullable=False),
            Column("retry_count", Integer, nullable=False, default=0),
            sqlite_autoincrement=True,
        )

    def connect(self) -> None:
        connection_string = self._config["connection_string"]
        kwargs: dict[str, Any] = {}
        if connection_string in _IN_MEMORY_URLS:
            # One shared connection, usable from the worker's I/O threads
            kwargs = {
                "connect_args": {"check_same_thread": False},
                "poolclass": StaticPool,
            }
        self._engine = create_engine(connection_string, **kwargs)
        logger.info("Connected to database: %s", connection_string)

    def disconnect(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            logger.info("Disposed SQLAlchemy engine")

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    def _create_schema(self) -> None:
        try:
            self._metadata.create_all(self._require_engine())
        except SQLAlchemyError as exc:
            raise StorageError(f"Schema setup failed: {exc}") from exc
        logger.info(
            "Ensured tables %r and %r", self._todos.name, self._queue.name
        )

    def _write_snapshot(self, todos: list[Todo]) -> None:
        rows = [
            {
                "id": todo.id,
                "position": position,
                "text": todo.text,
                "completed": todo.completed,
                "created_at": todo.created_at,
                "updated_at": todo.updated_at,
            }
            for position, todo in enumerate(todos)
        ]
        try:
            with self._require_engine().begin() as conn:
                conn.execute(delete(self._todos))
                if rows:
                    conn.execute(insert(self._todos), rows)
        except SQLAlchemyError as exc:
            raise StorageError(f"Snapshot write aborted: {exc}") from exc

    def _read_snapshot(self) -> list[Todo]:
        stmt = select(self._todos).order_by(self._todos.c.position)
        try:
            with self._require_engine().connect() as conn:
                rows = conn.execute(stmt).mappings().all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Snapshot read failed: {exc}") from exc
        return [
            Todo(
                id=row["id"],
                text=row["text"],
                completed=row["completed"],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
            )
            for row in rows
        ]

    def _append_pending(self, op: PendingOperation) -> int:
        stmt = insert(self._queue).values(
            kind=op.kind.value,
            payload=op.payload.to_wire(),
            enqueued_at=op.enqueued_at,
            retry_count=op.retry_count,
        )
        try:
            with self._require_engine().begin() as conn:
                result = conn.execute(stmt)
                return int(result.inserted_primary_key[0])
        except SQLAlchemyError as exc:
            raise StorageError(f"Enqueue aborted: {exc}") from exc

    def _read_pending(self) -> list[PendingOperation]:
        stmt = select(self._queue).order_by(self._queue.c.sequence_id)
        try:
            with self._require_engine().connect() as conn:
                rows = conn.execute(stmt).mappings().all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Queue read failed: {exc}") from exc
        return [
            PendingOperation(
                sequence_id=row["sequence_id"],
                kind=row["kind"],
                payload=Todo.model_validate(row["payload"]),
                enqueued_at=row["enqueued_at"],
                retry_count=row["retry_count"],
            )
            for row in rows
        ]

    def _delete_pending(self, sequence_id: int) -> None:
        stmt = delete(self._queue).where(self._queue.c.sequence_id == sequence_id)
        try:
            with self._require_engine().begin() as conn:
                conn.execute(stmt)
        except SQLAlchemyError as exc:
            raise StorageError(f"Queue delete aborted: {exc}") from exc

    def _require_engine(self) -> Engine:
        if self._engine is None:
            self.connect()
        assert self._engine is not None
        return self._engine
