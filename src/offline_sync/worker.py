"""Background store worker — owns the store, answers messages.

The worker is the only code that touches the store.  Callers reach it by
posting JSON-serializable messages to its inbox; it answers by delivering
reply messages to every registered listener, tagged with the request's
``messageId``.  Messages are copied through JSON on the way in and on the
way out, so no object is ever shared between the worker and its callers.

Requests are handled concurrently, so replies may arrive in a different
order than the requests were sent.

A new worker starts in the ``waiting`` state unless created with
``skip_waiting=True``.  While waiting it buffers requests; a
``SKIP_WAITING`` message activates it and replays the buffer.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable

from offline_sync import messages
from offline_sync.registry import get_handler, register_handler
from offline_sync.schemas.todo import PendingOperation, Todo
from offline_sync.stores.base import BaseStore

logger = logging.getLogger(__name__)

Listener = Callable[[dict[str, Any]], None]

WAITING = "waiting"
ACTIVE = "active"
STOPPED = "stopped"


def _copy(message: dict[str, Any]) -> dict[str, Any]:
    return json.loads(json.dumps(message))


class StoreWorker:
    """Run a store behind an asynchronous message inbox."""

    def __init__(self, store: BaseStore, *, skip_waiting: bool = False) -> None:
        self.store = store
        self.is_online = True
        self._skip_waiting = skip_waiting
        self._state: str | None = None
        self._inbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._buffer: list[dict[str, Any]] = []
        self._listeners: list[Listener] = []
        self._task: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()
        self._ready: asyncio.Future | None = None

    @property
    def state(self) -> str | None:
        return self._state

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def post_message(self, message: dict[str, Any]) -> None:
        """Queue *message* for the worker.  Never blocks."""
        self._inbox.put_nowait(_copy(message))

    async def start(self) -> None:
        if self._task is not None:
            return
        self._state = ACTIVE if self._skip_waiting else WAITING
        self._task = asyncio.create_task(self._run(), name="store-worker")
        logger.info("Store worker started (%s) on %s", self._state, self.store.name)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, *self._in_flight, return_exceptions=True)
            self._task = None
        self._state = STOPPED
        await asyncio.to_thread(self.store.disconnect)
        logger.info("Store worker stopped")

    def set_network_status(self, online: bool) -> None:
        """Record link-layer connectivity and broadcast any change."""
        if online == self.is_online:
            return
        self.is_online = online
        event = messages.NETWORK_ONLINE if online else messages.NETWORK_OFFLINE
        logger.info("Network status changed: %s", event)
        self._deliver({"type": event})

    async def ensure_ready(self) -> None:
        """Initialize the store once; concurrent callers share the same run."""
        if self._ready is None:
            self._ready = asyncio.ensure_future(asyncio.to_thread(self.store.initialize))
        try:
            await asyncio.shield(self._ready)
        except Exception:
            # A failed setup is retried by the next caller
            self._ready = None
            raise

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            message = await self._inbox.get()
            if message.get("type") == messages.SKIP_WAITING:
                self._activate()
            elif self._state == WAITING:
                self._buffer.append(message)
            else:
                self._spawn(message)

    def _activate(self) -> None:
        if self._state == ACTIVE:
            return
        self._state = ACTIVE
        buffered, self._buffer = self._buffer, []
        logger.info("Store worker activated (%d buffered messages)", len(buffered))
        for message in buffered:
            self._spawn(message)

    def _spawn(self, message: dict[str, Any]) -> None:
        task = asyncio.create_task(self._dispatch(message))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _dispatch(self, message: dict[str, Any]) -> None:
        message_type = message.get("type", "")
        try:
            handler = get_handler(message_type)
        except KeyError as exc:
            logger.warning("Store worker received unknown message %r", message_type)
            self._deliver(messages.make_error_reply(message, str(exc.args[0])))
            return

        try:
            await self.ensure_ready()
            payload = await handler(self, message)
        except Exception as exc:
            logger.error("Store worker failed handling %s: %s", message_type, exc)
            self._deliver(messages.make_error_reply(message, str(exc)))
            return
        self._deliver(messages.make_reply(message, **payload))

    def _deliver(self, message: dict[str, Any]) -> None:
        for listener in list(self._listeners):
            listener(_copy(message))


# ---------------------------------------------------------------------------
# Request handlers
# ---------------------------------------------------------------------------

@register_handler(messages.SAVE_TODOS_OFFLINE)
async def handle_save_todos(worker: StoreWorker, message: dict[str, Any]) -> dict[str, Any]:
    todos = [Todo.model_validate(item) for item in message.get("todos", [])]
    await asyncio.to_thread(worker.store.replace_snapshot, todos)
    return {}


@register_handler(messages.GET_TODOS_OFFLINE)
async def handle_get_todos(worker: StoreWorker, message: dict[str, Any]) -> dict[str, Any]:
    todos = await asyncio.to_thread(worker.store.read_snapshot)
    return {"todos": [todo.to_wire() for todo in todos]}


@register_handler(messages.ADD_SYNC_TASK)
async def handle_add_sync_task(worker: StoreWorker, message: dict[str, Any]) -> dict[str, Any]:
    op = PendingOperation.model_validate(message["action"])
    sequence_id = await asyncio.to_thread(worker.store.enqueue_pending, op)
    return {"id": sequence_id}


@register_handler(messages.GET_SYNC_QUEUE)
async def handle_get_sync_queue(worker: StoreWorker, message: dict[str, Any]) -> dict[str, Any]:
    queue = await asyncio.to_thread(worker.store.read_pending_queue)
    return {"queue": [op.to_wire() for op in queue]}


@register_handler(messages.CLEAR_SYNC_TASK)
async def handle_clear_sync_task(worker: StoreWorker, message: dict[str, Any]) -> dict[str, Any]:
    await asyncio.to_thread(worker.store.remove_pending, int(message["id"]))
    return {}


@register_handler(messages.CHECK_NETWORK_STATUS)
async def handle_check_network_status(worker: StoreWorker, message: dict[str, Any]) -> dict[str, Any]:
    return {"isOnline": worker.is_online}
