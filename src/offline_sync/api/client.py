"""REST client for the authoritative todo backend.

Every endpoint answers with the envelope ``{success, data, message, error?}``.
Non-2xx responses carry a human-readable ``message`` which becomes the
:class:`RemoteError` text; without one the error reads ``HTTP <status>``.

The client is stateless and never retries. Retry and fallback decisions
belong to the sync engine.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Iterable

import httpx
from pydantic import ValidationError

from offline_sync.errors import RemoteError
from offline_sync.models import ApiSettings
from offline_sync.schemas.todo import Todo

logger = logging.getLogger(__name__)


class TodoApiClient:
    """Async CRUD calls against ``/todos`` plus the bulk sync and health endpoints."""

    def __init__(
        self,
        settings: ApiSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or ApiSettings()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        headers: dict[str, str] = {
            "Content-Type": "application/json",
            **self._settings.headers,
        }

        # Token auth from env var
        token_env = self._settings.auth_token_env
        if token_env:
            token = os.environ.get(token_env, "")
            if token:
                headers["Authorization"] = f"Bearer {token}"
            else:
                logger.warning(
                    "auth_token_env=%r is set in config but the env var is empty/unset",
                    token_env,
                )

        # Trailing slash so relative paths append to the /api prefix
        base_url = self._settings.base_url.rstrip("/") + "/"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=self._settings.timeout,
            transport=self._transport,
        )
        logger.info("Connected to %s", base_url)

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected HTTP client")

    async def __aenter__(self) -> TodoApiClient:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.disconnect()

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def get_todos(self) -> list[Todo]:
        body = await self._request("GET", "todos")
        return _parse_todos(body)

    async def create_todo(self, text: str) -> Todo:
        body = await self._request("POST", "todos", json={"text": text})
        return _parse_todo(body)

    async def update_todo(
        self,
        todo_id: int,
        *,
        text: str | None = None,
        completed: bool | None = None,
    ) -> Todo:
        changes: dict[str, Any] = {}
        if text is not None:
            changes["text"] = text
        if completed is not None:
            changes["completed"] = completed
        body = await self._request("PUT", f"todos/{todo_id}", json=changes)
        return _parse_todo(body)

    async def toggle_todo(self, todo_id: int, completed: bool) -> Todo:
        return await self.update_todo(todo_id, completed=completed)

    async def delete_todo(self, todo_id: int) -> Todo:
        body = await self._request("DELETE", f"todos/{todo_id}")
        return _parse_todo(body)

    async def sync_todos(self, todos: Iterable[Todo]) -> list[Todo]:
        """Replace the server's list with *todos*; return the server's result."""
        payload = {"todos": [todo.to_wire() for todo in todos]}
        body = await self._request("POST", "todos/sync", json=payload)
        return _parse_todos(body)

    async def health_check(self, timeout: float | None = None) -> dict[str, Any]:
        return await self._request("GET", "health", timeout=timeout)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        if self._client is None:
            await self.connect()

        kwargs: dict[str, Any] = {}
        if json is not None:
            kwargs["json"] = json
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            resp = await self._client.request(method, path, **kwargs)  # type: ignore[union-attr]
        except httpx.HTTPError as exc:
            raise RemoteError(f"{method} /{path} failed: {exc}") from exc

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"data": body}

        if resp.is_error:
            message = body.get("message") or f"HTTP {resp.status_code}"
            raise RemoteError(message, status_code=resp.status_code)
        return body


def _parse_todo(body: dict[str, Any]) -> Todo:
    try:
        return Todo.model_validate(body.get("data"))
    except ValidationError as exc:
        raise RemoteError(f"Malformed todo in response: {exc}") from exc


def _parse_todos(body: dict[str, Any]) -> list[Todo]:
    data = body.get("data") or []
    if not isinstance(data, list):
        raise RemoteError(
            f"Malformed todo list in response: expected a list, got {type(data).__name__}"
        )
    try:
        return [Todo.model_validate(item) for item in data]
    except ValidationError as exc:
        raise RemoteError(f"Malformed todo list in response: {exc}") from exc
