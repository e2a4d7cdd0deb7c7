"""Keep a live list of the HomeWizard devices announced on the network."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from typing import Protocol

from .const import DEFAULT_DISCOVERY_DEBOUNCE
from .discovery import DeviceDiscoveryDelegate, DeviceDiscoveryHandler, DiscoveredDevice
from .models import DeviceType, UnknownType

_LOGGER = logging.getLogger(__name__)


class _Handler(Protocol):
    async def start(self) -> None: ...

    async def stop(self) -> None: ...


class DiscoveredDataSource:
    """Collects discovered devices, keyed by serial.

    Listeners added with ``add_listener`` are called without arguments once
    the store stopped changing for ``debounce`` seconds, so a burst of
    announcements (typically right after starting) results in a single
    notification. Notifications are delivered on the event loop the source
    was started on.
    """

    def __init__(
        self,
        debounce: float = DEFAULT_DISCOVERY_DEBOUNCE,
        handler_factory: Callable[[DeviceDiscoveryDelegate], _Handler] = DeviceDiscoveryHandler,
    ) -> None:
        self._debounce = debounce
        self._handler_factory = handler_factory
        self._handler: _Handler | None = None
        self._store: list[DiscoveredDevice] = []
        self._lock = threading.Lock()
        self._listeners: list[Callable[[], None]] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._timer: asyncio.TimerHandle | None = None

    @property
    def is_running(self) -> bool:
        """Whether discovery is running."""
        return self._handler is not None

    async def start(self) -> None:
        """Start discovery; the store is cleared first."""
        if self._handler is not None:
            return
        self._loop = asyncio.get_running_loop()
        with self._lock:
            self._store = []
        handler = self._handler_factory(self)
        self._handler = handler
        await handler.start()

    async def stop(self) -> None:
        """Stop discovery; the store remains available.

        A pending change notification is dropped.
        """
        if self._handler is None:
            return
        handler, self._handler = self._handler, None
        await handler.stop()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @property
    def count(self) -> int:
        """Number of discovered devices."""
        with self._lock:
            return len(self._store)

    @property
    def devices(self) -> list[DiscoveredDevice]:
        """All discovered devices, including those with the local API disabled."""
        with self._lock:
            return list(self._store)

    def device(self, serial: str) -> DiscoveredDevice | None:
        """Return the device with the given serial, or None."""
        with self._lock:
            return next((device for device in self._store if device.serial == serial), None)

    def devices_of_type(self, device_type: DeviceType | UnknownType) -> list[DiscoveredDevice]:
        """Return the devices of the given type."""
        with self._lock:
            return [device for device in self._store if device.type == device_type]

    @property
    def enabled_devices(self) -> list[DiscoveredDevice]:
        """Devices that have their local API enabled."""
        with self._lock:
            return [device for device in self._store if device.api_enabled]

    def add_listener(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a change listener; returns a callable that removes it."""
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def device_discovered(self, device: DiscoveredDevice) -> None:
        self._update(device)

    def device_updated(self, device: DiscoveredDevice, old_device: DiscoveredDevice) -> None:
        self._update(device)

    def device_lost(self, device: DiscoveredDevice) -> None:
        with self._lock:
            self._store = [known for known in self._store if known.serial != device.serial]
        self._notify()

    def _update(self, device: DiscoveredDevice) -> None:
        with self._lock:
            self._store = [known for known in self._store if known.serial != device.serial]
            self._store.append(device)
        self._notify()

    def _notify(self) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._reschedule()
        else:
            loop.call_soon_threadsafe(self._reschedule)

    def _reschedule(self) -> None:
        if self._handler is None:
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._loop.call_later(self._debounce, self._fire)

    def _fire(self) -> None:
        self._timer = None
        _LOGGER.debug("Discovered devices changed, %d known", self.count)
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                _LOGGER.exception("Error in discovery listener %s", listener)


_DEFAULT_DATA_SOURCE: DiscoveredDataSource | None = None


def default_data_source() -> DiscoveredDataSource:
    """Return the process-wide data source, created on first use."""
    global _DEFAULT_DATA_SOURCE
    if _DEFAULT_DATA_SOURCE is None:
        _DEFAULT_DATA_SOURCE = DiscoveredDataSource()
    return _DEFAULT_DATA_SOURCE
