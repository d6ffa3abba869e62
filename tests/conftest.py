"""Shared fixtures for the test suite."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import httpx
import pytest
import pytest_asyncio

from offline_sync.api.client import TodoApiClient
from offline_sync.engine import SyncEngine
from offline_sync.facade import StorageFacade
from offline_sync.models import ApiSettings, SyncSettings
from offline_sync.schemas.todo import Todo
from offline_sync.stores.sqlalchemy_store import SQLAlchemyStore
from offline_sync.worker import StoreWorker


class FakeBackend:
    """In-memory stand-in for the todo REST API, served via httpx.MockTransport.

    ``mode`` controls failures: ``"ok"``, ``"error"`` (HTTP 500 with a
    message) or ``"hang"`` (never answers within the test's timeouts).
    """

    def __init__(self, todos: list[dict[str, Any]] | None = None) -> None:
        self.todos: list[dict[str, Any]] = list(todos or [])
        self.mode = "ok"
        self.next_id = 100
        self.requests: list[tuple[str, str]] = []
        self.sync_payloads: list[list[dict[str, Any]]] = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path))
        if self.mode == "hang":
            await asyncio.sleep(60)
        if self.mode == "error":
            return httpx.Response(500, json={"success": False, "message": "server exploded"})

        body = json.loads(request.content) if request.content else {}
        if path == "/api/health":
            return httpx.Response(200, json={"success": True, "message": "ok"})
        if path == "/api/todos" and request.method == "GET":
            return self._ok(self.todos)
        if path == "/api/todos" and request.method == "POST":
            if not body.get("text", "").strip():
                return httpx.Response(400, json={"success": False, "message": "text required"})
            todo = {"id": self.next_id, "text": body["text"].strip(), "completed": False}
            self.next_id += 1
            self.todos.append(todo)
            return httpx.Response(201, json={"success": True, "data": todo, "message": "created"})
        if path == "/api/todos/sync":
            self.sync_payloads.append(body["todos"])
            self.todos = [dict(t, updatedAt="2024-01-01T00:00:00.000Z") for t in body["todos"]]
            return self._ok(self.todos)
        if path.startswith("/api/todos/"):
            todo_id = int(path.rsplit("/", 1)[1])
            match = next((t for t in self.todos if t["id"] == todo_id), None)
            if match is None:
                return httpx.Response(404, json={"success": False, "message": "not found"})
            if request.method == "PUT":
                match.update(body)
                return self._ok(match)
            if request.method == "DELETE":
                self.todos.remove(match)
                return self._ok(match)
        return httpx.Response(404, json={"success": False, "message": "no route"})

    @staticmethod
    def _ok(data: Any) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "data": data, "message": "ok"})


@pytest.fixture()
def sample_todos() -> list[Todo]:
    return [
        Todo(id=1, text="learn python", completed=False),
        Todo(id=2, text="write code", completed=True, created_at="2024-01-01T00:00:00.000Z"),
    ]


@pytest.fixture()
def fast_settings() -> SyncSettings:
    """Settings with short timeouts so failure paths finish quickly."""
    return SyncSettings(
        request_timeout_seconds=0.2,
        reply_timeout_seconds=2.0,
        success_reset_seconds=0.05,
        error_reset_seconds=0.05,
    )


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend([{"id": 1, "text": "learn python", "completed": False}])


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'offline.db'}"


@pytest_asyncio.fixture()
async def facade(db_url: str):
    facade = StorageFacade(
        lambda: StoreWorker(SQLAlchemyStore({"connection_string": db_url})),
        reply_timeout=2.0,
    )
    yield facade
    await facade.close()


@pytest_asyncio.fixture()
async def client(backend: FakeBackend):
    client = TodoApiClient(ApiSettings(base_url="http://test/api"), transport=backend.transport())
    yield client
    await client.disconnect()


@pytest_asyncio.fixture()
async def engine(client: TodoApiClient, facade: StorageFacade, fast_settings: SyncSettings):
    engine = SyncEngine(client, facade, fast_settings)
    yield engine
    engine.close()
