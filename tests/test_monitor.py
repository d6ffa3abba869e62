"""Tests for HealthMonitor — probes, link events and worker broadcasts."""

from __future__ import annotations

import asyncio

import pytest

from offline_sync.engine import OFFLINE, ONLINE
from offline_sync.models import MonitorSettings
from offline_sync.monitor import HealthMonitor
from offline_sync.schemas.todo import OperationKind, PendingOperation, Todo


def _settings(**overrides) -> MonitorSettings:
    values = {"interval_seconds": 0.05, "probe_timeout_seconds": 0.2, "auto_sync": True}
    values.update(overrides)
    return MonitorSettings(**values)


@pytest.mark.asyncio
class TestProbe:
    async def test_failed_probe_goes_offline(self, engine, client, backend):
        backend.mode = "error"
        monitor = HealthMonitor(engine, client, settings=_settings())
        assert await monitor.check_health() is False
        assert engine.connectivity == OFFLINE

    async def test_slow_probe_goes_offline(self, engine, client, backend):
        backend.mode = "hang"
        monitor = HealthMonitor(engine, client, settings=_settings())
        assert await monitor.check_health() is False
        assert engine.connectivity == OFFLINE

    async def test_recovery_triggers_drain(self, engine, client, facade, backend):
        await facade.save_todos_offline([Todo(id=3, text="offline work")])
        await facade.add_sync_task(
            PendingOperation(kind=OperationKind.CREATE, payload=Todo(id=3, text="offline work"))
        )
        engine.set_connectivity(False)

        monitor = HealthMonitor(engine, client, settings=_settings())
        assert await monitor.check_health() is True
        assert engine.connectivity == ONLINE
        assert await facade.get_sync_queue() == []
        assert [t["id"] for t in backend.todos] == [3]

    async def test_recovery_without_auto_sync(self, engine, client, facade, backend):
        await facade.add_sync_task(
            PendingOperation(kind=OperationKind.CREATE, payload=Todo(id=3, text="x"))
        )
        engine.set_connectivity(False)

        monitor = HealthMonitor(engine, client, settings=_settings(auto_sync=False))
        await monitor.check_health()
        assert engine.connectivity == ONLINE
        assert len(await facade.get_sync_queue()) == 1


@pytest.mark.asyncio
class TestLinkEvents:
    async def test_online_event_reprobes(self, engine, client, backend):
        backend.mode = "error"
        engine.set_connectivity(False)
        monitor = HealthMonitor(engine, client, settings=_settings())

        assert await monitor.handle_online() is False
        assert engine.connectivity == OFFLINE
        assert ("GET", "/api/health") in backend.requests

    async def test_offline_event_is_trusted(self, engine, client, backend):
        monitor = HealthMonitor(engine, client, settings=_settings())
        monitor.handle_offline()
        assert engine.connectivity == OFFLINE
        assert backend.requests == []

    async def test_worker_broadcasts(self, engine, client, facade, backend):
        monitor = HealthMonitor(engine, client, facade, settings=_settings(interval_seconds=60))
        await monitor.start()
        await facade.get_todos_offline()
        facade.worker.set_network_status(False)
        assert engine.connectivity == OFFLINE

        facade.worker.set_network_status(True)
        for _ in range(50):
            if engine.connectivity == ONLINE:
                break
            await asyncio.sleep(0.01)
        assert engine.connectivity == ONLINE
        await monitor.stop()

    async def test_broadcasts_ignored_after_stop(self, engine, client, facade):
        monitor = HealthMonitor(engine, client, facade, settings=_settings(interval_seconds=60))
        await facade.get_todos_offline()
        await monitor.start()
        await monitor.stop()
        facade.worker.set_network_status(False)
        assert engine.connectivity == ONLINE


@pytest.mark.asyncio
class TestPeriodic:
    async def test_periodic_probe_notices_outage(self, engine, client, backend):
        monitor = HealthMonitor(engine, client, settings=_settings())
        await monitor.start()
        assert monitor.running
        assert engine.connectivity == ONLINE

        backend.mode = "error"
        for _ in range(50):
            if engine.connectivity == OFFLINE:
                break
            await asyncio.sleep(0.02)
        assert engine.connectivity == OFFLINE

        await monitor.stop()
        assert not monitor.running
