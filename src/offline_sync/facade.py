"""Storage façade — awaitable API over the background store worker.

Application code never talks to the store directly.  Each façade method
posts a typed message tagged with a fresh correlation id and awaits the
reply carrying the same id.  Pending waits live in a table of futures
keyed by correlation id; an entry is removed on the first matching reply
or on timeout, whichever comes first.  Replies that arrive after their
wait timed out are dropped.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, Iterable

from offline_sync import messages
from offline_sync.errors import RemoteStoreError, RequestTimeoutError, StorageError
from offline_sync.models import SyncConfig
from offline_sync.registry import get_store
from offline_sync.schemas.todo import PendingOperation, Todo
from offline_sync.worker import WAITING, Listener, StoreWorker

# Importing the subpackage triggers @register_store decorators
import offline_sync.stores  # noqa: F401

logger = logging.getLogger(__name__)


class StorageFacade:
    """Request/response access to a lazily started :class:`StoreWorker`."""

    def __init__(
        self,
        worker_factory: Callable[[], StoreWorker],
        *,
        reply_timeout: float = 5.0,
    ) -> None:
        self._worker_factory = worker_factory
        self._reply_timeout = reply_timeout
        self._worker: StoreWorker | None = None
        self._worker_lock = asyncio.Lock()
        self._pending: dict[str, asyncio.Future] = {}
        self._subscribers: list[Listener] = []

    @classmethod
    def from_config(cls, config: SyncConfig) -> StorageFacade:
        """Build a façade whose worker wraps the configured store backend."""
        store_cls = get_store(config.storage.backend)
        store_config = config.storage.resolve()
        logger.info(
            "Registry resolved %r → %s", config.storage.backend, store_cls.__name__
        )
        return cls(
            lambda: StoreWorker(store_cls(store_config)),
            reply_timeout=config.settings.reply_timeout_seconds,
        )

    @property
    def worker(self) -> StoreWorker | None:
        return self._worker

    @property
    def pending_count(self) -> int:
        """Number of requests still waiting for a reply."""
        return len(self._pending)

    # ------------------------------------------------------------------
    # Store operations
    # ------------------------------------------------------------------

    async def save_todos_offline(self, todos: Iterable[Todo]) -> None:
        await self._send(
            messages.SAVE_TODOS_OFFLINE, todos=[todo.to_wire() for todo in todos]
        )

    async def get_todos_offline(self) -> list[Todo]:
        reply = await self._send(messages.GET_TODOS_OFFLINE)
        return [Todo.model_validate(item) for item in reply.get("todos", [])]

    async def add_sync_task(self, op: PendingOperation) -> int:
        """Queue *op* and return the sequence id the store assigned."""
        reply = await self._send(messages.ADD_SYNC_TASK, action=op.to_wire())
        return int(reply["id"])

    async def get_sync_queue(self) -> list[PendingOperation]:
        reply = await self._send(messages.GET_SYNC_QUEUE)
        return [PendingOperation.model_validate(item) for item in reply.get("queue", [])]

    async def clear_sync_task(self, sequence_id: int) -> None:
        await self._send(messages.CLEAR_SYNC_TASK, id=sequence_id)

    async def check_network_status(self) -> bool:
        reply = await self._send(messages.CHECK_NETWORK_STATUS)
        return bool(reply.get("isOnline", False))

    # ------------------------------------------------------------------
    # Broadcasts
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        """Receive worker broadcasts (messages without a ``messageId``)."""
        self._subscribers.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._subscribers:
            self._subscribers.remove(listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Stop the worker and fail every outstanding wait."""
        for message_id, future in list(self._pending.items()):
            if not future.done():
                future.set_exception(StorageError("Storage worker stopped"))
            self._pending.pop(message_id, None)
        if self._worker is not None:
            self._worker.remove_listener(self._on_message)
            await self._worker.stop()
            self._worker = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _ensure_worker(self) -> StoreWorker:
        if self._worker is not None:
            return self._worker
        async with self._worker_lock:
            if self._worker is None:
                worker = self._worker_factory()
                worker.add_listener(self._on_message)
                await worker.start()
                if worker.state == WAITING:
                    logger.info("Store worker is waiting — asking it to take control")
                    worker.post_message({"type": messages.SKIP_WAITING})
                self._worker = worker
        return self._worker

    async def _send(self, message_type: str, **payload: Any) -> dict[str, Any]:
        worker = await self._ensure_worker()
        message_id = uuid.uuid4().hex
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[message_id] = future

        worker.post_message({"type": message_type, "messageId": message_id, **payload})
        try:
            reply = await asyncio.wait_for(future, self._reply_timeout)
        except asyncio.TimeoutError:
            raise RequestTimeoutError(
                f"Store worker did not answer {message_type} "
                f"within {self._reply_timeout:g}s"
            ) from None
        finally:
            self._pending.pop(message_id, None)

        if not reply.get("success", False):
            raise RemoteStoreError(reply.get("error") or "Unknown store error")
        return reply

    def _on_message(self, message: dict[str, Any]) -> None:
        message_id = message.get("messageId")
        if message_id is None:
            for listener in list(self._subscribers):
                listener(message)
            return

        future = self._pending.pop(message_id, None)
        if future is None or future.done():
            logger.debug("Dropping late reply %s (%s)", message_id, message.get("type"))
            return
        future.set_result(message)


_default_facade: StorageFacade | None = None


def get_default_facade(config: SyncConfig | None = None) -> StorageFacade:
    """Return the process-wide façade, creating it on first use."""
    global _default_facade
    if _default_facade is None:
        _default_facade = StorageFacade.from_config(config or SyncConfig())
    return _default_facade


async def reset_default_facade() -> None:
    """Close and forget the process-wide façade."""
    global _default_facade
    if _default_facade is not None:
        await _default_facade.close()
        _default_facade = None
