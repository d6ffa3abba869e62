"""Decorator-based registry for store backends and worker message handlers.

Store backends register themselves at import time via
``@register_store("sql_database")``; the worker's request handlers via
``@register_handler("SAVE_TODOS_OFFLINE")``.  Callers resolve string keys
from config or from incoming messages; they never import a concrete class
or handler directly.
"""

from __future__ import annotations

from typing import Any, Callable

_store_registry: dict[str, type] = {}
_handler_registry: dict[str, Callable[..., Any]] = {}


# ---------------------------------------------------------------------------
# Decorator factories
# ---------------------------------------------------------------------------

def register_store(name: str):
    """Class decorator that registers a store backend under *name*."""

    def decorator(cls: type) -> type:
        if name in _store_registry:
            raise ValueError(
                f"Duplicate store registration: {name!r} is already "
                f"registered to {_store_registry[name].__name__}"
            )
        _store_registry[name] = cls
        return cls

    return decorator


def register_handler(message_type: str):
    """Function decorator that registers a worker handler for *message_type*."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        if message_type in _handler_registry:
            raise ValueError(
                f"Duplicate handler registration: {message_type!r} is already "
                f"registered to {_handler_registry[message_type].__name__}"
            )
        _handler_registry[message_type] = func
        return func

    return decorator


# ---------------------------------------------------------------------------
# Getters
# ---------------------------------------------------------------------------

def get_store(name: str) -> type:
    """Return the store class registered under *name*."""
    try:
        return _store_registry[name]
    except KeyError:
        available = ", ".join(sorted(_store_registry)) or "(none)"
        raise KeyError(
            f"Unknown store {name!r}. Available: {available}"
        ) from None


def get_handler(message_type: str) -> Callable[..., Any]:
    """Return the handler registered for *message_type*."""
    try:
        return _handler_registry[message_type]
    except KeyError:
        available = ", ".join(sorted(_handler_registry)) or "(none)"
        raise KeyError(
            f"Unknown message type {message_type!r}. Available: {available}"
        ) from None


def list_registered() -> dict[str, dict[str, str]]:
    """Return all registered entries grouped by category.

    Returns a dict like::

        {
            "stores":   {"sql_database": "SQLAlchemyStore", ...},
            "handlers": {"GET_SYNC_QUEUE": "handle_get_sync_queue", ...},
        }
    """
    return {
        "stores": {k: v.__name__ for k, v in sorted(_store_registry.items())},
        "handlers": {k: v.__name__ for k, v in sorted(_handler_registry.items())},
    }
