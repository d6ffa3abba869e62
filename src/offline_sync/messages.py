"""Message types exchanged with the background store worker.

Every request is a JSON-serializable dict with a ``type`` and a
``messageId``; every reply echoes the ``messageId`` so the caller can
correlate it regardless of arrival order.
"""

from __future__ import annotations

from typing import Any

# Requests -> replies
SAVE_TODOS_OFFLINE = "SAVE_TODOS_OFFLINE"
TODOS_SAVED_OFFLINE = "TODOS_SAVED_OFFLINE"
GET_TODOS_OFFLINE = "GET_TODOS_OFFLINE"
TODOS_LOADED_OFFLINE = "TODOS_LOADED_OFFLINE"
ADD_SYNC_TASK = "ADD_SYNC_TASK"
SYNC_TASK_ADDED = "SYNC_TASK_ADDED"
GET_SYNC_QUEUE = "GET_SYNC_QUEUE"
SYNC_QUEUE_LOADED = "SYNC_QUEUE_LOADED"
CLEAR_SYNC_TASK = "CLEAR_SYNC_TASK"
SYNC_TASK_CLEARED = "SYNC_TASK_CLEARED"
CHECK_NETWORK_STATUS = "CHECK_NETWORK_STATUS"
NETWORK_STATUS = "NETWORK_STATUS"

# Control message, never answered
SKIP_WAITING = "SKIP_WAITING"

# Broadcasts from the worker to every listener
NETWORK_ONLINE = "NETWORK_ONLINE"
NETWORK_OFFLINE = "NETWORK_OFFLINE"

ERROR = "ERROR"

REPLY_TYPES: dict[str, str] = {
    SAVE_TODOS_OFFLINE: TODOS_SAVED_OFFLINE,
    GET_TODOS_OFFLINE: TODOS_LOADED_OFFLINE,
    ADD_SYNC_TASK: SYNC_TASK_ADDED,
    GET_SYNC_QUEUE: SYNC_QUEUE_LOADED,
    CLEAR_SYNC_TASK: SYNC_TASK_CLEARED,
    CHECK_NETWORK_STATUS: NETWORK_STATUS,
}


def make_reply(request: dict[str, Any], **payload: Any) -> dict[str, Any]:
    """Build a successful reply to *request*."""
    return {
        "type": REPLY_TYPES.get(request.get("type", ""), ERROR),
        "messageId": request.get("messageId"),
        "success": True,
        **payload,
    }


def make_error_reply(request: dict[str, Any], error: str) -> dict[str, Any]:
    """Build a failure reply to *request* carrying *error*."""
    return {
        "type": REPLY_TYPES.get(request.get("type", ""), ERROR),
        "messageId": request.get("messageId"),
        "success": False,
        "error": error,
    }
