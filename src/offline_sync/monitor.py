"""Health monitor — keeps the engine's connectivity flag honest.

Three signals feed it: link-layer online/offline notifications, the store
worker's ``NETWORK_ONLINE``/``NETWORK_OFFLINE`` broadcasts, and a periodic
probe of the backend's ``/health`` endpoint.  An "online" notification
only triggers a fresh probe, since a working link does not mean the
backend is reachable.  Going offline is trusted immediately.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from offline_sync import messages
from offline_sync.api.client import TodoApiClient
from offline_sync.engine import SyncEngine
from offline_sync.errors import RemoteError
from offline_sync.facade import StorageFacade
from offline_sync.models import MonitorSettings

logger = logging.getLogger(__name__)


class HealthMonitor:
    """Probe the backend periodically and on demand."""

    def __init__(
        self,
        engine: SyncEngine,
        client: TodoApiClient,
        facade: StorageFacade | None = None,
        settings: MonitorSettings | None = None,
    ) -> None:
        self._engine = engine
        self._client = client
        self._facade = facade
        self._settings = settings or MonitorSettings()
        self._task: asyncio.Task | None = None
        self._probes: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def check_health(self) -> bool:
        """Probe ``/health`` once and update connectivity.

        Coming back online with ``auto_sync`` enabled drains the queue.
        """
        timeout = self._settings.probe_timeout_seconds
        try:
            await asyncio.wait_for(self._client.health_check(timeout=timeout), timeout)
        except (RemoteError, asyncio.TimeoutError) as exc:
            logger.info("Health check failed (%s) — switching to offline mode", exc)
            self._engine.set_connectivity(False)
            return False

        reconnected = self._engine.set_connectivity(True)
        if reconnected and self._settings.auto_sync:
            logger.info("Backend reachable again — syncing offline data")
            await self._engine.sync_offline_data()
        return True

    async def handle_online(self) -> bool:
        return await self.check_health()

    def handle_offline(self) -> None:
        logger.info("Network went offline — switching to offline mode")
        self._engine.set_connectivity(False)

    async def start(self) -> None:
        """Subscribe to worker broadcasts, probe now, then every interval."""
        if self.running:
            return
        if self._facade is not None:
            self._facade.subscribe(self._on_broadcast)
        await self.check_health()
        self._task = asyncio.create_task(self._loop(), name="health-monitor")

    async def stop(self) -> None:
        if self._facade is not None:
            self._facade.unsubscribe(self._on_broadcast)
        tasks = [t for t in (self._task, *self._probes) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._task = None
        self._probes.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.interval_seconds)
            await self.check_health()

    def _on_broadcast(self, message: dict[str, Any]) -> None:
        event = message.get("type")
        if event == messages.NETWORK_OFFLINE:
            self.handle_offline()
        elif event == messages.NETWORK_ONLINE:
            probe = asyncio.get_running_loop().create_task(self.check_health())
            self._probes.add(probe)
            probe.add_done_callback(self._probes.discard)
