"""API subpackage — async HTTP client for the todo backend."""

from offline_sync.api.client import TodoApiClient  # noqa: F401
