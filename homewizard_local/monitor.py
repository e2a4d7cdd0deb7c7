"""Poll the data of a set of devices on a fixed interval."""

from __future__ import annotations

import asyncio
import logging
import threading
import weakref
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import aiohttp
from pydantic import BaseModel

from .const import DEFAULT_MONITOR_INTERVAL, ENDPOINT_DATA, MIN_MONITOR_INTERVAL
from .devices import BaseDevice, Device
from .exceptions import ErrorKind, HomeWizardError, RequestError, UnknownBaseURLError
from .registry import data_class_for
from .request import RequestManager

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceDataUpdate:
    """New data was fetched for a device."""

    serial: str
    timestamp: datetime
    data: BaseModel


@dataclass(frozen=True)
class DeviceDataFailure:
    """Fetching the data of a device failed."""

    serial: str
    timestamp: datetime
    error: HomeWizardError


UpdateListener = Callable[[DeviceDataUpdate], Any]
FailureListener = Callable[[DeviceDataFailure], Any]


async def _tick(monitor_ref: weakref.ReferenceType[DeviceMonitor], interval: float) -> None:
    """Run a fetch cycle every interval, as long as the monitor exists."""
    while True:
        monitor = monitor_ref()
        if monitor is None:
            return
        monitor._run_cycle()
        del monitor
        await asyncio.sleep(interval)


class DeviceMonitor:
    """Fetches the data of every added device each ``update_interval`` seconds.

    Every device is fetched in its own task, so a slow or failing device
    never holds up the others. Results are reported to the update and
    failure listeners, on the event loop the monitor was started on.
    """

    def __init__(
        self,
        update_interval: float = DEFAULT_MONITOR_INTERVAL,
        websession: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the monitor.

        Args:
            update_interval: Seconds between fetch cycles, at least 1
            websession: Optional aiohttp ClientSession. If not provided, one will be created.
        """
        if update_interval < MIN_MONITOR_INTERVAL:
            raise ValueError(
                f"Update interval must be at least {MIN_MONITOR_INTERVAL}s, got {update_interval}"
            )
        self._update_interval = float(update_interval)
        self._websession = websession
        self._own_session = websession is None
        self._devices: dict[str, Device] = {}
        self._lock = threading.Lock()
        self._ticker: asyncio.Task | None = None
        self._fetches: set[asyncio.Task] = set()
        self._release: asyncio.Task | None = None
        self._update_listeners: list[UpdateListener] = []
        self._failure_listeners: list[FailureListener] = []

    @property
    def update_interval(self) -> float:
        """Seconds between fetch cycles."""
        return self._update_interval

    @property
    def devices(self) -> list[Device]:
        """Devices being monitored."""
        with self._lock:
            return list(self._devices.values())

    @property
    def is_running(self) -> bool:
        """Whether the monitor is running."""
        return self._ticker is not None and not self._ticker.done()

    def add(self, devices: Device | Iterable[Device]) -> None:
        """Add one or more devices, replacing devices with the same serial.

        A device added while running is first fetched in the next cycle.
        """
        with self._lock:
            for device in _as_list(devices):
                self._devices[device.serial] = device

    def remove(self, devices: Device | Iterable[Device]) -> None:
        """Remove one or more devices."""
        with self._lock:
            for device in _as_list(devices):
                self._devices.pop(device.serial, None)

    def remove_serial(self, serial: str) -> None:
        """Remove the device with the given serial."""
        with self._lock:
            self._devices.pop(serial, None)

    def add_update_listener(self, callback: UpdateListener) -> Callable[[], None]:
        """Register an update listener; returns a callable that removes it."""
        return _subscribe(self._update_listeners, callback)

    def add_failure_listener(self, callback: FailureListener) -> Callable[[], None]:
        """Register a failure listener; returns a callable that removes it."""
        return _subscribe(self._failure_listeners, callback)

    def start(self) -> None:
        """Start monitoring; the first cycle runs immediately."""
        if self.is_running:
            return
        _LOGGER.debug("Starting monitor, interval %ss", self._update_interval)
        self._ticker = asyncio.get_running_loop().create_task(
            _tick(weakref.ref(self), self._update_interval)
        )

    def stop(self) -> None:
        """Stop monitoring; fetches in flight still complete and report.

        An owned session is closed once those fetches are done. Call
        ``close()`` to wait for that.
        """
        if self._ticker is None:
            return
        _LOGGER.debug("Stopping monitor")
        loop = self._ticker.get_loop()
        self._ticker.cancel()
        self._ticker = None
        release_pending = self._release is not None and not self._release.done()
        if self._own_session and self._websession is not None and not release_pending:
            self._release = loop.create_task(self._release_session())

    async def close(self) -> None:
        """Stop, wait for fetches in flight and close the session if owned."""
        self.stop()
        if self._release is not None:
            release, self._release = self._release, None
            await release
        if self._fetches:
            await asyncio.gather(*self._fetches, return_exceptions=True)
        if self._own_session and self._websession:
            await self._websession.close()
            self._websession = None

    async def _release_session(self) -> None:
        if self._fetches:
            await asyncio.gather(*list(self._fetches), return_exceptions=True)
        # Restarted in the meantime, the new cycles keep using the session.
        if self._ticker is not None or self._websession is None:
            return
        session, self._websession = self._websession, None
        await session.close()

    def _run_cycle(self) -> None:
        for device in self.devices:
            data_class = data_class_for(device)
            if data_class is None:
                _LOGGER.debug("Skipping %s, its data can't be decoded", device.serial)
                continue
            task = asyncio.get_running_loop().create_task(self._fetch(device, data_class))
            self._fetches.add(task)
            task.add_done_callback(self._fetches.discard)

    async def _fetch(self, device: Device, data_class: type[BaseModel]) -> None:
        try:
            if device.base_url is None:
                raise UnknownBaseURLError(f"Base URL of {device.serial} is unknown")
            if self._websession is None:
                self._websession = aiohttp.ClientSession()
            path = ENDPOINT_DATA.format(api_version=device.api_version)
            async with RequestManager(device.base_url, websession=self._websession) as manager:
                data = await manager.perform_request(path, receive=data_class)
        except HomeWizardError as err:
            _LOGGER.debug("Fetching %s failed: %s", device.serial, err)
            self._emit(self._failure_listeners, DeviceDataFailure(device.serial, _now(), err))
            return
        except Exception as err:
            _LOGGER.exception("Unexpected error fetching %s", device.serial)
            failure = RequestError(ErrorKind.OTHER, originated=err)
            self._emit(self._failure_listeners, DeviceDataFailure(device.serial, _now(), failure))
            return
        self._emit(self._update_listeners, DeviceDataUpdate(device.serial, _now(), data))

    @staticmethod
    def _emit(listeners: list[Callable[[Any], Any]], event: Any) -> None:
        for listener in list(listeners):
            try:
                listener(event)
            except Exception:
                _LOGGER.exception("Error in monitor listener %s", listener)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_list(devices: Device | Iterable[Device]) -> list[Device]:
    if isinstance(devices, BaseDevice):
        return [devices]
    return list(devices)


def _subscribe(listeners: list, callback: Callable) -> Callable[[], None]:
    listeners.append(callback)

    def remove() -> None:
        if callback in listeners:
            listeners.remove(callback)

    return remove


_DEFAULT_MONITOR: DeviceMonitor | None = None


def default_monitor() -> DeviceMonitor:
    """Return the process-wide monitor (5 second interval), created on first use."""
    global _DEFAULT_MONITOR
    if _DEFAULT_MONITOR is None:
        _DEFAULT_MONITOR = DeviceMonitor(DEFAULT_MONITOR_INTERVAL)
    return _DEFAULT_MONITOR
