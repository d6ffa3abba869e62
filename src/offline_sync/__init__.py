"""Offline-first todo synchronization: local store, storage façade, sync engine."""

__version__ = "0.1.0"
