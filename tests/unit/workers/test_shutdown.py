"""
Unit tests for the error drain and shutdown coordination.
"""
import asyncio
import logging
import os
import signal
import sys
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from litter_robot_collector.devices.state import normalize
from litter_robot_collector.exceptions import WriteError
from litter_robot_collector.storage.influx_writer import InfluxWriter
from litter_robot_collector.workers.error_drain import ErrorDrain
from litter_robot_collector.workers.shutdown import ShutdownCoordinator


class FakeWriteApi:
    """Batching write API that only persists on close."""

    def __init__(self):
        self.pending = []
        self.persisted = []

    def write(self, bucket, record):
        self.pending.extend(record)

    def close(self):
        self.persisted.extend(self.pending)
        self.pending = []


@pytest.fixture
def fake_write_api():
    return FakeWriteApi()


@pytest.fixture
def influx_writer(influxdb_settings, fake_write_api):
    client = MagicMock(name="influx_client")
    client.ping.return_value = True
    client.write_api.return_value = fake_write_api
    return InfluxWriter(influxdb_settings, client_factory=MagicMock(return_value=client))


class TestErrorDrain:
    """Test write error reporting."""

    @pytest.mark.asyncio
    async def test_drain_reports_and_stops(self, caplog):
        queue = asyncio.Queue(maxsize=10)
        drain = ErrorDrain(queue)
        await drain.start()

        with caplog.at_level(logging.ERROR):
            await queue.put(WriteError("timeout", destination="mybucket"))
            await queue.put(WriteError("unauthorized", destination="mybucket"))
            await drain.stop()

        assert drain.get_stats()["reported"] == 2
        assert drain.running is False
        messages = [r.getMessage() for r in caplog.records]
        assert any("timeout" in m for m in messages)
        assert any("unauthorized" in m for m in messages)

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self):
        drain = ErrorDrain(asyncio.Queue())
        await drain.stop()
        assert drain.running is False

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_task(self):
        drain = ErrorDrain(asyncio.Queue())
        await drain.start()
        task = drain._task
        await drain.start()

        assert drain._task is task
        await drain.stop()


class TestShutdownCoordinator:
    """Test signal handling and the final flush."""

    @pytest.mark.asyncio
    async def test_signal_flushes_enqueued_points(
        self, influx_writer, fake_write_api, robot_factory
    ):
        """Test points buffered when the signal arrives are persisted."""
        await influx_writer.connect()
        drain = ErrorDrain(influx_writer.errors)
        await drain.start()
        coordinator = ShutdownCoordinator(influx_writer, drain)

        influx_writer.write_all(
            [
                normalize(robot_factory(litter_robot_id="r1")),
                normalize(robot_factory(litter_robot_id="r2")),
            ],
            datetime(2026, 1, 1, tzinfo=timezone.utc),
        )
        assert len(fake_write_api.pending) == 2
        assert fake_write_api.persisted == []

        waiter = asyncio.create_task(coordinator.wait())
        coordinator.request_shutdown(signal.SIGTERM)
        assert await waiter == signal.SIGTERM

        await coordinator.final_flush()

        assert len(fake_write_api.persisted) == 2
        assert fake_write_api.pending == []
        assert drain.running is False

    @pytest.mark.asyncio
    async def test_final_flush_runs_once(self):
        writer = AsyncMock()
        drain = AsyncMock()
        coordinator = ShutdownCoordinator(writer, drain)

        await coordinator.final_flush()
        await coordinator.final_flush()

        writer.flush.assert_awaited_once()
        drain.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_drain_stopped_even_if_flush_fails(self):
        writer = AsyncMock()
        writer.flush.side_effect = OSError("disk")
        drain = AsyncMock()
        coordinator = ShutdownCoordinator(writer, drain)

        with pytest.raises(OSError):
            await coordinator.final_flush()

        drain.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_first_signal_wins(self):
        coordinator = ShutdownCoordinator(AsyncMock())

        coordinator.request_shutdown(signal.SIGINT)
        coordinator.request_shutdown(signal.SIGTERM)

        assert coordinator.shutdown_requested
        assert await coordinator.wait() == signal.SIGINT

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
    async def test_real_sigterm_triggers_shutdown(self):
        coordinator = ShutdownCoordinator(AsyncMock())
        coordinator.install()
        try:
            os.kill(os.getpid(), signal.SIGTERM)
            received = await asyncio.wait_for(coordinator.wait(), timeout=2)
        finally:
            coordinator.uninstall()

        assert received == signal.SIGTERM
