"""Tests for the polling monitor."""

from __future__ import annotations

import asyncio
import gc
import logging
from collections.abc import Callable
from unittest.mock import AsyncMock, patch

import pytest

from homewizard_local.devices import P1Meter
from homewizard_local.exceptions import ErrorKind, RequestError, UnknownBaseURLError
from homewizard_local.loader import DeviceLoader
from homewizard_local.models import EnergySocketData, P1MeterData
from homewizard_local.monitor import (
    DeviceDataFailure,
    DeviceDataUpdate,
    DeviceMonitor,
    default_monitor,
)

from .conftest import (
    P1_DATA,
    P1_INFO,
    SOCKET_DATA,
    SOCKET_INFO,
    WATERMETER_DATA,
    WATERMETER_INFO,
    FakeDevice,
)


async def _wait_for(condition: Callable[[], bool], timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(0.02)


class Recorder:
    def __init__(self, monitor: DeviceMonitor) -> None:
        self.updates: list[DeviceDataUpdate] = []
        self.failures: list[DeviceDataFailure] = []
        monitor.add_update_listener(self.updates.append)
        monitor.add_failure_listener(self.failures.append)


@pytest.mark.parametrize("interval", [0, 0.5, 0.999, -1])
def test_interval_below_one_second_is_rejected(interval) -> None:
    with pytest.raises(ValueError):
        DeviceMonitor(interval)


def test_default_monitor_is_shared() -> None:
    monitor = default_monitor()
    assert monitor is default_monitor()
    assert monitor.update_interval == 5.0


class TestDeviceMap:
    def test_add_remove(self) -> None:
        loader = DeviceLoader()
        p1 = loader.load_json(P1_INFO, "http://10.0.0.1")
        socket = loader.load_json(SOCKET_INFO, "http://10.0.0.2")
        monitor = DeviceMonitor(1)

        monitor.add([p1, socket])
        assert {device.serial for device in monitor.devices} == {p1.serial, socket.serial}

        monitor.remove(p1)
        assert monitor.devices == [socket]

        monitor.add(socket)
        assert monitor.devices == [socket]

        monitor.remove_serial(socket.serial)
        assert monitor.devices == []


class TestPolling:
    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, serve_device, closed_port) -> None:
        loader = DeviceLoader()
        p1 = loader.load_json(P1_INFO, await serve_device(FakeDevice(P1_INFO, P1_DATA)))
        socket = loader.load_json(
            SOCKET_INFO, await serve_device(FakeDevice(SOCKET_INFO, SOCKET_DATA))
        )
        offline = loader.load_json(WATERMETER_INFO, f"http://127.0.0.1:{closed_port}")
        monitor = DeviceMonitor(1)
        recorder = Recorder(monitor)
        monitor.add([p1, socket, offline])

        monitor.start()
        await _wait_for(lambda: len(recorder.updates) + len(recorder.failures) >= 3)
        await monitor.close()

        updates = {update.serial: update for update in recorder.updates}
        assert set(updates) == {p1.serial, socket.serial}
        assert isinstance(updates[p1.serial].data, P1MeterData)
        assert isinstance(updates[socket.serial].data, EnergySocketData)
        assert updates[p1.serial].timestamp.tzinfo is not None

        assert [failure.serial for failure in recorder.failures] == [offline.serial]
        assert isinstance(recorder.failures[0].error, RequestError)

    @pytest.mark.asyncio
    async def test_start_is_idempotent_and_runs_immediately(self, serve_device) -> None:
        fake = FakeDevice(WATERMETER_INFO, WATERMETER_DATA)
        device = DeviceLoader().load_json(WATERMETER_INFO, await serve_device(fake))
        monitor = DeviceMonitor(5)
        recorder = Recorder(monitor)
        monitor.add(device)

        monitor.start()
        monitor.start()
        assert monitor.is_running
        await _wait_for(lambda: len(recorder.updates) >= 1, timeout=1.0)
        await asyncio.sleep(0.2)
        await monitor.close()

        assert fake.count("GET", "/api/v1/data") == 1
        assert not monitor.is_running

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self) -> None:
        monitor = DeviceMonitor(1)
        monitor.stop()
        monitor.start()
        monitor.stop()
        monitor.stop()
        assert not monitor.is_running
        await monitor.close()

    @pytest.mark.asyncio
    async def test_device_added_while_running_waits_for_next_cycle(self, serve_device) -> None:
        loader = DeviceLoader()
        first = FakeDevice(P1_INFO, P1_DATA)
        second = FakeDevice(SOCKET_INFO, SOCKET_DATA)
        p1 = loader.load_json(P1_INFO, await serve_device(first))
        socket = loader.load_json(SOCKET_INFO, await serve_device(second))
        monitor = DeviceMonitor(1)
        recorder = Recorder(monitor)
        monitor.add(p1)

        monitor.start()
        await _wait_for(lambda: len(recorder.updates) >= 1)
        monitor.add(socket)
        await asyncio.sleep(0.3)
        assert second.count("GET", "/api/v1/data") == 0

        await _wait_for(lambda: second.count("GET", "/api/v1/data") == 1, timeout=2.0)
        await monitor.close()

    @pytest.mark.asyncio
    async def test_stop_lets_in_flight_fetch_report(self, serve_device) -> None:
        fake = FakeDevice(P1_INFO, P1_DATA, data_delay=0.3)
        device = DeviceLoader().load_json(P1_INFO, await serve_device(fake))
        monitor = DeviceMonitor(1)
        recorder = Recorder(monitor)
        monitor.add(device)

        monitor.start()
        await asyncio.sleep(0.1)
        monitor.stop()
        assert recorder.updates == []

        await monitor.close()
        assert len(recorder.updates) == 1

    @pytest.mark.asyncio
    async def test_devices_without_data_shape_are_skipped(self, serve_device) -> None:
        fake = FakeDevice(P1_INFO | {"product_type": "HWE-NEW"}, {"a": 1})
        device = DeviceLoader().load_json(fake.info, await serve_device(fake))
        monitor = DeviceMonitor(1)
        recorder = Recorder(monitor)
        monitor.add(device)

        monitor.start()
        await asyncio.sleep(0.2)
        await monitor.close()

        assert fake.count("GET", "/api/v1/data") == 0
        assert recorder.updates == []
        assert recorder.failures == []

    @pytest.mark.asyncio
    async def test_device_without_base_url_fails(self) -> None:
        monitor = DeviceMonitor(1)
        recorder = Recorder(monitor)
        monitor.add(P1Meter.model_validate(P1_INFO))

        monitor.start()
        await _wait_for(lambda: len(recorder.failures) == 1)
        await monitor.close()

        assert isinstance(recorder.failures[0].error, UnknownBaseURLError)

    @pytest.mark.asyncio
    async def test_stop_releases_owned_session(self, serve_device) -> None:
        fake = FakeDevice(P1_INFO, P1_DATA)
        device = DeviceLoader().load_json(P1_INFO, await serve_device(fake))
        monitor = DeviceMonitor(1)
        recorder = Recorder(monitor)
        monitor.add(device)

        monitor.start()
        await _wait_for(lambda: len(recorder.updates) == 1)
        session = monitor._websession
        assert session is not None
        monitor.stop()

        await _wait_for(lambda: session.closed, timeout=1.0)
        assert monitor._websession is None
        await monitor.close()

    @pytest.mark.asyncio
    async def test_unexpected_error_is_reported_as_failure(self, caplog) -> None:
        device = DeviceLoader().load_json(P1_INFO, "http://127.0.0.1:9")
        monitor = DeviceMonitor(1)
        recorder = Recorder(monitor)
        monitor.add(device)

        with (
            patch(
                "homewizard_local.monitor.RequestManager.perform_request",
                AsyncMock(side_effect=RuntimeError("boom")),
            ),
            caplog.at_level(logging.ERROR, logger="homewizard_local.monitor"),
        ):
            monitor.start()
            await _wait_for(lambda: len(recorder.failures) == 1)
            await monitor.close()

        error = recorder.failures[0].error
        assert isinstance(error, RequestError)
        assert error.kind is ErrorKind.OTHER
        assert isinstance(error.originated, RuntimeError)
        assert "Unexpected error fetching" in caplog.text


class TestListeners:
    @pytest.mark.asyncio
    async def test_unsubscribe_and_failing_listener(self, serve_device, caplog) -> None:
        device = DeviceLoader().load_json(
            P1_INFO, await serve_device(FakeDevice(P1_INFO, P1_DATA))
        )
        monitor = DeviceMonitor(1)
        calls: list[str] = []

        def failing(update: DeviceDataUpdate) -> None:
            raise RuntimeError("boom")

        monitor.add_update_listener(failing)
        remove = monitor.add_update_listener(lambda update: calls.append("removed"))
        monitor.add_update_listener(lambda update: calls.append(update.serial))
        remove()
        monitor.add(device)

        with caplog.at_level(logging.ERROR, logger="homewizard_local.monitor"):
            monitor.start()
            await _wait_for(lambda: len(calls) >= 1)
            await monitor.close()

        assert calls == [device.serial]
        assert "Error in monitor listener" in caplog.text


@pytest.mark.asyncio
async def test_ticker_does_not_keep_monitor_alive() -> None:
    monitor = DeviceMonitor(1)
    monitor.start()
    ticker = monitor._ticker
    await asyncio.sleep(0)

    del monitor
    gc.collect()
    await asyncio.wait_for(ticker, timeout=2.0)

    assert ticker.done()
