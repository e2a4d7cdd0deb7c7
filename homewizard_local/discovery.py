"""Discover HomeWizard devices on the local network with zeroconf.

There are two ways to use the ``DeviceDiscoveryHandler``:

- continuously monitor the network, reporting changes to a delegate
  (``start()`` / ``stop()``)
- do a quick lookup for a few seconds and get the list of devices found
  (``DeviceDiscoveryHandler.quick_lookup()``)

A ``DiscoveredDevice`` only carries the announced information. Use
``load()`` to get a device that can actually be talked to.
"""

from __future__ import annotations

import asyncio
import contextlib
import ipaddress
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol

import aiohttp
from zeroconf import ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from .const import (
    API_ENABLED_FLAG,
    DEFAULT_QUICK_LOOKUP_SECONDS,
    HTTPS_PORT,
    LOOKUP_TIMEOUT,
    RECORD_API_ENABLED,
    RECORD_NAME,
    RECORD_PATH,
    RECORD_SERIAL,
    RECORD_TYPE,
    SERVICE_TYPE,
)
from .exceptions import ErrorKind, IPLookupFailedError, LocalAPIDisabledError, RequestError
from .loader import DeviceLoader
from .models import DeviceType, UnknownType, parse_device_type
from .request import RequestManager, RequestMethod

if TYPE_CHECKING:
    from .devices import Device

_LOGGER = logging.getLogger(__name__)

RESOLVE_TIMEOUT_MS = 3000
HTTP_PORT = 80


@dataclass(frozen=True)
class DiscoveredRecord:
    """The TXT record announced by a device."""

    name: str
    type: DeviceType | UnknownType
    serial: str
    path: str
    api_enabled: bool


def parse_record(properties: Mapping[str, str | None]) -> DiscoveredRecord | None:
    """Parse a TXT property map, returning None when it is malformed."""
    values = {}
    for key in (RECORD_NAME, RECORD_TYPE, RECORD_SERIAL, RECORD_PATH, RECORD_API_ENABLED):
        value = properties.get(key)
        if not isinstance(value, str):
            return None
        values[key] = value
    api_enabled = API_ENABLED_FLAG.get(values[RECORD_API_ENABLED])
    if api_enabled is None:
        return None
    return DiscoveredRecord(
        name=values[RECORD_NAME],
        type=parse_device_type(values[RECORD_TYPE]),
        serial=values[RECORD_SERIAL],
        path=values[RECORD_PATH],
        api_enabled=api_enabled,
    )


def decode_properties(properties: Mapping[bytes, bytes | None]) -> dict[str, str | None]:
    """Decode the raw zeroconf TXT properties to text."""
    return {
        key.decode("utf-8", "replace"): (
            value.decode("utf-8", "replace") if value is not None else None
        )
        for key, value in properties.items()
    }


def base_url_for_peer(host: str, port: int) -> str:
    """Return the base URL for a connected peer address.

    Zone suffixes (``%eth0``) are dropped for IPv4 and IPv6 alike.
    """
    address = host.split("%", 1)[0]
    try:
        version = ipaddress.ip_address(address).version
    except ValueError:
        version = 4 if ":" not in host else 6
    ip = f"[{address}]" if version == 6 else address
    if port == HTTPS_PORT:
        return f"https://{ip}"
    if port == HTTP_PORT:
        return f"http://{ip}"
    return f"http://{ip}:{port}"


@dataclass(frozen=True)
class ServiceEndpoint:
    """Where an announced service can be reached."""

    name: str
    addresses: tuple[str, ...]
    port: int


class IdentifyResult(Enum):
    """Outcome of identifying a discovered device."""

    IDENTIFIED = "identified"
    UNSUPPORTED = "unsupported"
    FAILED = "failed"


@dataclass(frozen=True)
class DiscoveredDevice:
    """A HomeWizard device announced on the network.

    The ``name`` is a fixed product name, not the name the user gave the
    device in the app.
    """

    name: str
    type: DeviceType | UnknownType
    serial: str
    path: str
    api_enabled: bool
    endpoint: ServiceEndpoint

    @classmethod
    def from_record(cls, record: DiscoveredRecord, endpoint: ServiceEndpoint) -> DiscoveredDevice:
        """Combine a parsed TXT record with the endpoint it was announced on."""
        return cls(
            name=record.name,
            type=record.type,
            serial=record.serial,
            path=record.path,
            api_enabled=record.api_enabled,
            endpoint=endpoint,
        )

    def __str__(self) -> str:
        state = "API Enabled" if self.api_enabled else "API Disabled"
        return f"{self.name}\t{self.serial} ({state})"

    async def lookup(self) -> str | None:
        """Connect to the announced endpoint to find the base URL of the device."""
        _LOGGER.debug("Resolving %s", self.serial)
        for address in self.endpoint.addresses:
            try:
                _, writer = await asyncio.wait_for(
                    asyncio.open_connection(address, self.endpoint.port), LOOKUP_TIMEOUT
                )
            except (OSError, asyncio.TimeoutError) as err:
                _LOGGER.debug("Connecting to %s for %s failed: %s", address, self.serial, err)
                continue
            peer = writer.get_extra_info("peername")
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()
            if peer:
                result = base_url_for_peer(peer[0], peer[1])
                _LOGGER.debug("%s resolved to %s", self.serial, result)
                return result
        _LOGGER.error("Failed to resolve %s", self.serial)
        return None

    async def load(self, loader: DeviceLoader | None = None) -> Device:
        """Load the device, returning the variant matching its product type."""
        return await (loader or DeviceLoader()).load_discovered(self)

    async def identify(
        self, websession: aiohttp.ClientSession | None = None
    ) -> IdentifyResult:
        """Let the status light of the device blink for a few seconds."""
        if not self.api_enabled:
            raise LocalAPIDisabledError(f"Local API of {self.serial} is disabled")
        base_url = await self.lookup()
        if base_url is None:
            raise IPLookupFailedError(f"No address found for {self.serial}")

        _LOGGER.info("Identifying %s", self.serial)
        path = f"{self.path.rstrip('/')}/identify"
        try:
            async with RequestManager(base_url, websession=websession) as manager:
                await manager.perform_request(path, RequestMethod.PUT)
        except RequestError as err:
            if err.kind in (ErrorKind.NOT_FOUND, ErrorKind.METHOD_NOT_ALLOWED):
                _LOGGER.debug("%s does not support identify", self.serial)
                return IdentifyResult.UNSUPPORTED
            _LOGGER.warning("Identifying %s failed: %s", self.serial, err)
            return IdentifyResult.FAILED
        return IdentifyResult.IDENTIFIED


class DeviceDiscoveryDelegate(Protocol):
    """Receives the changes seen by a DeviceDiscoveryHandler."""

    def device_discovered(self, device: DiscoveredDevice) -> None:
        """A new device was discovered."""

    def device_lost(self, device: DiscoveredDevice) -> None:
        """A device is no longer announced."""

    def device_updated(self, device: DiscoveredDevice, old_device: DiscoveredDevice) -> None:
        """The announcement of a known device changed."""


class DeviceDiscoveryHandler:
    """Browses the network for ``_hwenergy._tcp`` services."""

    def __init__(
        self,
        delegate: DeviceDiscoveryDelegate | None = None,
        zeroconf: AsyncZeroconf | None = None,
    ) -> None:
        """Initialize the handler.

        Args:
            delegate: Receives discovered, lost and updated devices
            zeroconf: Optional shared AsyncZeroconf instance. If not provided, one will be created.
        """
        self._delegate = delegate
        self._zeroconf = zeroconf
        self._own_zeroconf = zeroconf is None
        self._browser: AsyncServiceBrowser | None = None
        self._known: dict[str, DiscoveredDevice] = {}
        self._pending: dict[str, asyncio.Task] = {}

    @property
    def is_running(self) -> bool:
        """Whether the handler is browsing the network."""
        return self._browser is not None

    @property
    def devices(self) -> list[DiscoveredDevice]:
        """Devices currently announced."""
        return list(self._known.values())

    async def start(self) -> None:
        """Start browsing, no-op when already running."""
        if self._browser is not None:
            return
        _LOGGER.info("Starting discovery handler")
        if self._zeroconf is None:
            self._zeroconf = AsyncZeroconf()
        self._browser = AsyncServiceBrowser(
            self._zeroconf.zeroconf,
            [SERVICE_TYPE],
            handlers=[self._on_service_state_change],
        )

    async def stop(self) -> None:
        """Stop browsing, no-op when not running."""
        if self._browser is None:
            return
        _LOGGER.info("Stopping discovery handler")
        browser, self._browser = self._browser, None
        await browser.async_cancel()
        pending = list(self._pending.values())
        self._pending.clear()
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if self._own_zeroconf and self._zeroconf is not None:
            await self._zeroconf.async_close()
            self._zeroconf = None

    def _on_service_state_change(
        self,
        zeroconf: Zeroconf,
        service_type: str,
        name: str,
        state_change: ServiceStateChange,
    ) -> None:
        # Only the latest event of a service counts.
        previous = self._pending.pop(name, None)
        if previous is not None:
            previous.cancel()
        if state_change is ServiceStateChange.Removed:
            self.service_removed(name)
            return
        task = asyncio.ensure_future(self._resolve(zeroconf, service_type, name))
        self._pending[name] = task
        task.add_done_callback(lambda done: self._resolve_done(name, done))

    def _resolve_done(self, name: str, task: asyncio.Task) -> None:
        if self._pending.get(name) is task:
            del self._pending[name]

    async def _resolve(self, zeroconf: Zeroconf, service_type: str, name: str) -> None:
        info = AsyncServiceInfo(service_type, name)
        if not await info.async_request(zeroconf, RESOLVE_TIMEOUT_MS):
            _LOGGER.debug("Could not resolve %s", name)
            return
        self.service_resolved(
            name,
            decode_properties(info.properties),
            info.parsed_addresses(),
            info.port or 0,
        )

    def service_resolved(
        self,
        name: str,
        properties: Mapping[str, str | None],
        addresses: list[str],
        port: int,
    ) -> None:
        """Handle a resolved announcement of a service."""
        record = parse_record(properties)
        if record is None:
            _LOGGER.debug("Ignoring malformed record of %s: %s", name, dict(properties))
            return
        device = DiscoveredDevice.from_record(
            record, ServiceEndpoint(name, tuple(addresses), port)
        )
        old_device = self._known.get(name)
        self._known[name] = device
        if old_device is None:
            _LOGGER.debug("[ADD] %s", device)
            if self._delegate is not None:
                self._delegate.device_discovered(device)
        elif old_device != device:
            _LOGGER.debug("[UPD] %s -> %s", old_device, device)
            if self._delegate is not None:
                self._delegate.device_updated(device, old_device)

    def service_removed(self, name: str) -> None:
        """Handle a service that is no longer announced."""
        device = self._known.pop(name, None)
        if device is None:
            return
        _LOGGER.debug("[REM] %s", device)
        if self._delegate is not None:
            self._delegate.device_lost(device)

    @classmethod
    async def quick_lookup(
        cls, seconds: float = DEFAULT_QUICK_LOOKUP_SECONDS
    ) -> list[DiscoveredDevice]:
        """Browse the network for a number of seconds and return what was found."""
        handler = cls()
        await handler.start()
        try:
            await asyncio.sleep(seconds)
        finally:
            await handler.stop()
        return handler.devices
