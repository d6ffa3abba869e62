"""Sync engine — the offline-first reconciliation flow.

Holds the in-memory todo list the UI renders, the connectivity flag and
the sync status.  Every mutation is applied to memory first, then tried
against the backend (raced against a timeout).  When the backend cannot be
reached the optimistic snapshot is saved through the storage façade and a
pending operation is queued.  :meth:`SyncEngine.sync_offline_data` later
pushes the local snapshot to the bulk sync endpoint and adopts the
server's answer.

The engine never touches a store directly; the façade is the only writer.
Mutations to the same todo are not coordinated: the last write the server
sees wins.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import ValidationError

from offline_sync.api.client import TodoApiClient
from offline_sync.errors import (
    RemoteError,
    RequestTimeoutError,
    StorageError,
    TodoValidationError,
)
from offline_sync.facade import StorageFacade
from offline_sync.models import SyncSettings
from offline_sync.schemas.todo import OperationKind, PendingOperation, Todo, utc_now_iso

logger = logging.getLogger(__name__)

T = TypeVar("T")

ONLINE = "online"
OFFLINE = "offline"

IDLE = "idle"
SYNCING = "syncing"
SUCCESS = "success"
ERROR = "error"

# Failures that degrade to offline mode instead of propagating
RECOVERABLE_ERRORS = (RemoteError, StorageError, RequestTimeoutError)


class SyncEngine:
    """Apply todo mutations optimistically and reconcile with the backend."""

    def __init__(
        self,
        client: TodoApiClient,
        facade: StorageFacade,
        settings: SyncSettings | None = None,
    ) -> None:
        self._client = client
        self._facade = facade
        self._settings = settings or SyncSettings()
        self.todos: list[Todo] = []
        self.connectivity = ONLINE
        self.sync_status = IDLE
        self.error: str | None = None
        self._reset_handle: asyncio.TimerHandle | None = None

    @property
    def is_online(self) -> bool:
        return self.connectivity == ONLINE

    def set_connectivity(self, online: bool) -> bool:
        """Update the connectivity flag; return ``True`` when it changed."""
        new_state = ONLINE if online else OFFLINE
        if new_state == self.connectivity:
            return False
        self.connectivity = new_state
        logger.info("Connectivity changed to %s", new_state)
        return True

    def status(self) -> dict[str, Any]:
        return {
            "connectivity": self.connectivity,
            "sync_status": self.sync_status,
            "todos": len(self.todos),
            "error": self.error,
        }

    def close(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_todos(self) -> list[Todo]:
        """Load from the server when online, else from the local snapshot."""
        self.error = None
        if self.is_online:
            try:
                todos = await self._remote(self._client.get_todos())
            except RECOVERABLE_ERRORS as exc:
                logger.warning("Server load failed (%s) — falling back to local data", exc)
                self.set_connectivity(False)
            else:
                self.todos = todos
                await self._persist_snapshot()
                return self.todos

        try:
            self.todos = await self._facade.get_todos_offline()
        except RECOVERABLE_ERRORS as exc:
            self.error = f"Load failed: {exc}"
            logger.error("Could not load local todos: %s", exc)
        return self.todos

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_todo(self, text: str) -> Todo | None:
        """Create a todo; return the stored record or ``None`` if it was rolled back."""
        now = utc_now_iso()
        todo = self._build_todo(
            {
                "id": self._temporary_id(),
                "text": text,
                "completed": False,
                "createdAt": now,
                "updatedAt": now,
            }
        )
        self.error = None
        self.todos = [*self.todos, todo]

        if self.is_online:
            try:
                saved = await self._remote(self._client.create_todo(todo.text))
            except RECOVERABLE_ERRORS as exc:
                logger.warning("Server create failed (%s) — saving offline", exc)
                self.set_connectivity(False)
            else:
                self.todos = [saved if t.id == todo.id else t for t in self.todos]
                await self._persist_snapshot()
                return saved

        if not await self._persist_offline(OperationKind.CREATE, todo):
            self.todos = [t for t in self.todos if t.id != todo.id]
            return None
        return todo

    async def update_todo(
        self,
        todo_id: int,
        *,
        text: str | None = None,
        completed: bool | None = None,
    ) -> Todo | None:
        """Change the text and/or completion of *todo_id*."""
        current = self._find(todo_id)
        if current is None:
            logger.warning("update_todo: no todo with id %d", todo_id)
            return None

        changes: dict[str, Any] = {"updatedAt": utc_now_iso()}
        if text is not None:
            changes["text"] = text
        if completed is not None:
            changes["completed"] = completed
        updated = self._build_todo({**current.to_wire(), **changes})
        self.error = None
        self.todos = [updated if t.id == todo_id else t for t in self.todos]

        if self.is_online:
            try:
                server_todo = await self._remote(
                    self._client.update_todo(
                        todo_id,
                        text=updated.text if text is not None else None,
                        completed=completed,
                    )
                )
            except RECOVERABLE_ERRORS as exc:
                logger.warning("Server update failed (%s) — saving offline", exc)
                self.set_connectivity(False)
            else:
                self.todos = [server_todo if t.id == todo_id else t for t in self.todos]
                await self._persist_snapshot()
                return server_todo

        await self._persist_offline(OperationKind.UPDATE, updated)
        return updated

    async def toggle_todo(self, todo_id: int) -> Todo | None:
        current = self._find(todo_id)
        if current is None:
            logger.warning("toggle_todo: no todo with id %d", todo_id)
            return None
        return await self.update_todo(todo_id, completed=not current.completed)

    async def delete_todo(self, todo_id: int) -> Todo | None:
        """Remove *todo_id*; return the removed record or ``None``."""
        current = self._find(todo_id)
        if current is None:
            logger.warning("delete_todo: no todo with id %d", todo_id)
            return None

        index = self.todos.index(current)
        self.error = None
        self.todos = [t for t in self.todos if t.id != todo_id]

        if self.is_online:
            try:
                await self._remote(self._client.delete_todo(todo_id))
            except RECOVERABLE_ERRORS as exc:
                logger.warning("Server delete failed (%s) — saving offline", exc)
                self.set_connectivity(False)
            else:
                await self._persist_snapshot()
                return current

        if not await self._persist_offline(OperationKind.DELETE, current):
            restored = list(self.todos)
            restored.insert(index, current)
            self.todos = restored
            return None
        return current

    # ------------------------------------------------------------------
    # Drain
    # ------------------------------------------------------------------

    async def sync_offline_data(self) -> bool:
        """Push the local snapshot to the server and clear the pending queue.

        Returns ``True`` on success (including an empty queue).  If the bulk
        call or the snapshot write fails, the queue and the local snapshot
        are left untouched.  Once the server has accepted the list, a queue
        entry that cannot be cleared is logged and left for the next drain.
        """
        if not self.is_online:
            logger.info("Offline — skipping sync")
            return False
        if self.sync_status == SYNCING:
            logger.info("Sync already in progress")
            return False

        self.error = None
        self._set_sync_status(SYNCING)
        try:
            return await self._drain()
        finally:
            if self.sync_status == SYNCING:
                # Unexpected error or cancellation; never stay stuck in syncing
                self.error = "Sync interrupted"
                logger.error("Sync interrupted before completing")
                self._set_sync_status(ERROR)

    async def _drain(self) -> bool:
        try:
            queue = await self._facade.get_sync_queue()
            if not queue:
                logger.info("Sync queue is empty — nothing to push")
                self._set_sync_status(SUCCESS)
                return True

            logger.info("Syncing %d queued operations", len(queue))
            local_todos = await self._facade.get_todos_offline()
            server_todos = await self._with_retry(
                lambda: self._remote(self._client.sync_todos(local_todos)),
                label="bulk sync",
            )
            await self._facade.save_todos_offline(server_todos)
            self.todos = list(server_todos)
        except RECOVERABLE_ERRORS as exc:
            self.error = f"Sync failed: {exc}"
            logger.error("Sync failed: %s", exc)
            self._set_sync_status(ERROR)
            return False

        # Only the entries read above; anything queued since stays put
        for op in queue:
            assert op.sequence_id is not None
            try:
                await self._facade.clear_sync_task(op.sequence_id)
            except RECOVERABLE_ERRORS as exc:
                logger.warning(
                    "Could not clear queued operation #%d: %s", op.sequence_id, exc
                )

        logger.info("Offline data synced (%d todos from server)", len(self.todos))
        self._set_sync_status(SUCCESS)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _remote(self, call: Awaitable[T]) -> T:
        """Race *call* against the request timeout."""
        timeout = self._settings.request_timeout_seconds
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError:
            raise RequestTimeoutError(f"Request timed out after {timeout:g}s") from None

    async def _persist_snapshot(self) -> None:
        """Save the current list after a server success.  Failures are logged."""
        try:
            await self._facade.save_todos_offline(self.todos)
        except RECOVERABLE_ERRORS as exc:
            logger.error("Could not save local snapshot: %s", exc)

    async def _persist_offline(self, kind: OperationKind, payload: Todo) -> bool:
        """Save the optimistic snapshot and queue *kind*; ``False`` on failure."""
        try:
            await self._facade.save_todos_offline(self.todos)
            sequence_id = await self._facade.add_sync_task(
                PendingOperation(kind=kind, payload=payload)
            )
        except RECOVERABLE_ERRORS as exc:
            self.error = f"Could not save offline: {exc}"
            logger.error("Offline save of %s failed: %s", kind.value, exc)
            return False
        logger.info("Queued %s for todo %d as #%d", kind.value, payload.id, sequence_id)
        return True

    async def _with_retry(self, func: Callable[[], Awaitable[T]], label: str) -> T:
        """Call *func* with exponential backoff on recoverable failure."""
        retry = self._settings.retry
        last_exc: Exception | None = None
        for attempt in range(1, retry.max_attempts + 1):
            try:
                return await func()
            except RECOVERABLE_ERRORS as exc:
                last_exc = exc
                if attempt < retry.max_attempts:
                    wait = retry.backoff_seconds * (2 ** (attempt - 1))
                    logger.warning(
                        "%s attempt %d/%d failed (%s), retrying in %.1fs…",
                        label, attempt, retry.max_attempts, exc, wait,
                    )
                    await asyncio.sleep(wait)
        logger.error("%s failed after %d attempts", label, retry.max_attempts)
        raise last_exc  # type: ignore[misc]

    def _set_sync_status(self, status: str) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None
        self.sync_status = status

        delay = {
            SUCCESS: self._settings.success_reset_seconds,
            ERROR: self._settings.error_reset_seconds,
        }.get(status)
        if delay is not None:
            loop = asyncio.get_running_loop()
            self._reset_handle = loop.call_later(delay, self._reset_sync_status)

    def _reset_sync_status(self) -> None:
        self._reset_handle = None
        self.sync_status = IDLE

    def _find(self, todo_id: int) -> Todo | None:
        for todo in self.todos:
            if todo.id == todo_id:
                return todo
        return None

    def _temporary_id(self) -> int:
        """Millisecond timestamp, bumped past any id already in memory."""
        candidate = int(time.time() * 1000)
        taken = {todo.id for todo in self.todos}
        while candidate in taken:
            candidate += 1
        return candidate

    @staticmethod
    def _build_todo(data: dict[str, Any]) -> Todo:
        try:
            return Todo.model_validate(data)
        except ValidationError as exc:
            if any(err["loc"] == ("text",) for err in exc.errors()):
                raise TodoValidationError("Todo text must not be empty") from exc
            raise TodoValidationError(str(exc)) from exc
