"""Tests for the decorator-based store and handler registry."""

from __future__ import annotations

import pytest

import offline_sync.stores  # noqa: F401
import offline_sync.worker  # noqa: F401
from offline_sync import messages
from offline_sync.registry import get_handler, get_store, list_registered, register_store


class TestRegistry:
    def test_sql_database_store_registered(self):
        assert get_store("sql_database").__name__ == "SQLAlchemyStore"

    def test_json_file_store_registered(self):
        assert get_store("json_file").__name__ == "JSONFileStore"

    @pytest.mark.parametrize("message_type", sorted(messages.REPLY_TYPES))
    def test_every_request_type_has_a_handler(self, message_type):
        assert callable(get_handler(message_type))

    def test_unknown_store_raises(self):
        with pytest.raises(KeyError, match="Unknown store"):
            get_store("does_not_exist")

    def test_unknown_handler_raises(self):
        with pytest.raises(KeyError, match="Unknown message type"):
            get_handler("DOES_NOT_EXIST")

    def test_duplicate_registration_rejected(self):
        with pytest.raises(ValueError, match="Duplicate store registration"):
            register_store("json_file")(type("Other", (), {}))

    def test_list_registered_groups(self):
        listed = list_registered()
        assert listed["stores"]["sql_database"] == "SQLAlchemyStore"
        assert listed["handlers"][messages.GET_SYNC_QUEUE] == "handle_get_sync_queue"
