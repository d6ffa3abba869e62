"""Tests for the persistent local stores (SQLAlchemy and JSON file)."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest
from sqlalchemy import create_engine, inspect as sa_inspect

from offline_sync.errors import StorageError
from offline_sync.schemas.todo import OperationKind, PendingOperation, Todo
from offline_sync.stores.base import BaseStore
from offline_sync.stores.json_file import JSONFileStore
from offline_sync.stores.sqlalchemy_store import SQLAlchemyStore


def _without_stamp(todos: list[Todo]) -> list[dict]:
    return [t.model_dump(exclude={"updated_at"}) for t in todos]


def _op(todo_id: int, kind: str = "CREATE") -> PendingOperation:
    return PendingOperation(kind=kind, payload=Todo(id=todo_id, text=f"todo {todo_id}"))


@pytest.fixture(params=["sql_database", "json_file"])
def store(request, tmp_path: Path) -> BaseStore:
    if request.param == "sql_database":
        store = SQLAlchemyStore({"connection_string": f"sqlite:///{tmp_path / 'store.db'}"})
    else:
        store = JSONFileStore({"path": str(tmp_path / "store.json")})
    yield store
    store.disconnect()


class TestSnapshot:
    def test_empty_snapshot(self, store):
        assert store.read_snapshot() == []

    def test_round_trip_modulo_updated_at(self, store, sample_todos):
        store.replace_snapshot(sample_todos)
        assert _without_stamp(store.read_snapshot()) == _without_stamp(sample_todos)

    def test_replace_stamps_updated_at(self, store, sample_todos):
        store.replace_snapshot(sample_todos)
        assert all(t.updated_at for t in store.read_snapshot())

    def test_reads_are_idempotent(self, store, sample_todos):
        store.replace_snapshot(sample_todos)
        assert store.read_snapshot() == store.read_snapshot()

    def test_replace_is_not_a_merge(self, store, sample_todos):
        store.replace_snapshot(sample_todos)
        store.replace_snapshot([Todo(id=9, text="only me")])
        assert [t.id for t in store.read_snapshot()] == [9]

    def test_order_is_preserved(self, store):
        todos = [Todo(id=i, text=f"t{i}") for i in (5, 3, 8, 1)]
        store.replace_snapshot(todos)
        assert [t.id for t in store.read_snapshot()] == [5, 3, 8, 1]

    def test_duplicate_ids_abort_and_keep_previous(self, store, sample_todos):
        store.replace_snapshot(sample_todos)
        with pytest.raises(StorageError):
            store.replace_snapshot([Todo(id=4, text="a"), Todo(id=4, text="b")])
        assert [t.id for t in store.read_snapshot()] == [1, 2]


class TestPendingQueue:
    def test_queue_preserves_enqueue_order(self, store):
        store.enqueue_pending(_op(1))
        store.enqueue_pending(_op(2, "DELETE"))
        queue = store.read_pending_queue()
        assert [(op.payload.id, op.kind) for op in queue] == [
            (1, OperationKind.CREATE),
            (2, OperationKind.DELETE),
        ]

    def test_sequence_ids_strictly_increase(self, store):
        first = store.enqueue_pending(_op(1))
        second = store.enqueue_pending(_op(2))
        store.remove_pending(second)
        third = store.enqueue_pending(_op(3))
        assert first < second < third

    def test_read_returns_assigned_ids(self, store):
        seq = store.enqueue_pending(_op(1))
        assert store.read_pending_queue()[0].sequence_id == seq

    def test_remove_by_id(self, store):
        a = store.enqueue_pending(_op(1))
        store.enqueue_pending(_op(2))
        store.remove_pending(a)
        assert [op.payload.id for op in store.read_pending_queue()] == [2]

    def test_remove_is_idempotent(self, store):
        seq = store.enqueue_pending(_op(1))
        store.remove_pending(seq)
        store.remove_pending(seq)
        store.remove_pending(12345)
        assert store.read_pending_queue() == []


class TestInitialization:
    def test_lazy_until_first_operation(self, store):
        assert not store.initialized
        store.read_snapshot()
        assert store.initialized

    def test_schema_created_once_under_concurrency(self, tmp_path):
        calls = []

        class CountingStore(JSONFileStore):
            def _create_schema(self):
                calls.append(1)
                super()._create_schema()

        store = CountingStore({"path": str(tmp_path / "c.json")})
        threads = [threading.Thread(target=store.read_snapshot) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert calls == [1]


class TestSQLAlchemyStore:
    def test_tables_have_unique_keys(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'k.db'}"
        store = SQLAlchemyStore({"connection_string": url})
        store.initialize()
        engine = create_engine(url)
        inspector = sa_inspect(engine)
        assert inspector.get_pk_constraint("todos")["constrained_columns"] == ["id"]
        assert inspector.get_pk_constraint("pending_operations")["constrained_columns"] == [
            "sequence_id"
        ]
        engine.dispose()
        store.disconnect()

    def test_custom_table_names(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'n.db'}"
        store = SQLAlchemyStore(
            {"connection_string": url, "snapshot_table": "snap", "queue_table": "q"}
        )
        store.replace_snapshot([Todo(id=1, text="a")])
        engine = create_engine(url)
        assert {"snap", "q"} <= set(sa_inspect(engine).get_table_names())
        engine.dispose()
        store.disconnect()

    def test_in_memory_database(self):
        store = SQLAlchemyStore({"connection_string": "sqlite://"})
        store.replace_snapshot([Todo(id=1, text="a")])
        assert [t.id for t in store.read_snapshot()] == [1]
        store.disconnect()

    def test_disconnect_disposes_engine(self, tmp_path):
        store = SQLAlchemyStore({"connection_string": f"sqlite:///{tmp_path / 'd.db'}"})
        store.read_snapshot()
        assert store._engine is not None
        store.disconnect()
        assert store._engine is None


class TestJSONFileStore:
    def test_corrupt_file_reads_as_empty(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("NOT VALID JSON {{{")
        store = JSONFileStore({"path": str(path)})
        assert store.read_snapshot() == []

    def test_corrupt_file_fails_writes(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("[1, 2, 3]")
        store = JSONFileStore({"path": str(path)})
        with pytest.raises(StorageError):
            store.enqueue_pending(_op(1))

    def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "deep" / "nested" / "store.json"
        store = JSONFileStore({"path": str(path)})
        store.replace_snapshot([Todo(id=1, text="a")])
        assert path.exists()
        assert not list(path.parent.glob("*.tmp"))
