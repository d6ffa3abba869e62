"""JSON file store — snapshot and queue in one local JSON document.

Uses atomic write-to-temp-then-rename so a crash mid-write never leaves a
half-written file behind.  Document layout::

    {"todos": [...], "queue": [...], "next_sequence_id": 4}
"""

from __future__ import annotations

import json
import logging
import tempfile
import threading
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from offline_sync.errors import StorageError
from offline_sync.registry import register_store
from offline_sync.schemas.todo import PendingOperation, Todo
from offline_sync.stores.base import BaseStore

logger = logging.getLogger(__name__)


@register_store("json_file")
class JSONFileStore(BaseStore):
    """Keep the snapshot and the queue in a single JSON file (``path``)."""

    def __init__(self, config: dict[str, Any]) -> None:
        super().__init__(config)
        self._path = Path(config.get("path", "offline_todos.json"))
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    def _create_schema(self) -> None:
        if self._path.exists():
            return
        self._dump({"todos": [], "queue": [], "next_sequence_id": 1})
        logger.info("Created store file %s", self._path)

    def _write_snapshot(self, todos: list[Todo]) -> None:
        ids = [todo.id for todo in todos]
        if len(ids) != len(set(ids)):
            raise StorageError("Snapshot write aborted: duplicate todo id")
        with self._lock:
            doc = self._load()
            doc["todos"] = [todo.to_wire() for todo in todos]
            self._dump(doc)

    def _read_snapshot(self) -> list[Todo]:
        with self._lock:
            doc = self._load()
        try:
            return [Todo.model_validate(item) for item in doc["todos"]]
        except ValidationError as exc:
            raise StorageError(f"Snapshot read failed: {exc}") from exc

    def _append_pending(self, op: PendingOperation) -> int:
        with self._lock:
            doc = self._load()
            sequence_id = int(doc["next_sequence_id"])
            record = op.model_copy(update={"sequence_id": sequence_id})
            doc["queue"].append(record.to_wire())
            doc["next_sequence_id"] = sequence_id + 1
            self._dump(doc)
        return sequence_id

    def _read_pending(self) -> list[PendingOperation]:
        with self._lock:
            doc = self._load()
        return [PendingOperation.model_validate(item) for item in doc["queue"]]

    def _delete_pending(self, sequence_id: int) -> None:
        with self._lock:
            doc = self._load()
            remaining = [
                item for item in doc["queue"] if item.get("sequenceId") != sequence_id
            ]
            if len(remaining) == len(doc["queue"]):
                return
            doc["queue"] = remaining
            self._dump(doc)

    # ------------------------------------------------------------------
    # File I/O
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, Any]:
        """Read the document; raise StorageError when missing or corrupt."""
        try:
            data = json.loads(self._path.read_text())
        except (json.JSONDecodeError, OSError) as exc:
            raise StorageError(f"Could not read store file {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"Store file {self._path} is not a JSON object")
        data.setdefault("todos", [])
        data.setdefault("queue", [])
        data.setdefault("next_sequence_id", 1)
        return data

    def _dump(self, doc: dict[str, Any]) -> None:
        """Persist *doc* atomically (temp-file then rename)."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, suffix=".tmp")
        try:
            with open(fd, "w") as fh:
                json.dump(doc, fh, indent=2, default=str)
            Path(tmp_path).replace(self._path)
        except BaseException as exc:
            Path(tmp_path).unlink(missing_ok=True)
            if isinstance(exc, OSError):
                raise StorageError(f"Could not write store file {self._path}: {exc}") from exc
            raise
