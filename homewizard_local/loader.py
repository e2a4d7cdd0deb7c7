"""Load devices from an address, a base URL or a discovered device."""

from __future__ import annotations

import ipaddress
import logging
from typing import TYPE_CHECKING, Any

import aiohttp
from pydantic import ValidationError
from yarl import URL

from .const import ENDPOINT_INFO
from .devices import Device
from .exceptions import (
    DeviceOfflineError,
    ErrorKind,
    InvalidAddressError,
    IPLookupFailedError,
    LocalAPIDisabledError,
    RequestError,
)
from .registry import resolve
from .request import RequestManager

if TYPE_CHECKING:
    from .discovery import DiscoveredDevice

_LOGGER = logging.getLogger(__name__)


def _is_ipv6(address: str) -> bool:
    try:
        return ipaddress.ip_address(address).version == 6
    except ValueError:
        return False


class DeviceLoader:
    """Turns addresses and discovered devices into loaded devices.

    Every load is a single ``GET /api``; the loader keeps no state besides
    the optional session, which loaded devices reuse for their requests.
    """

    def __init__(self, websession: aiohttp.ClientSession | None = None) -> None:
        """Initialize the loader.

        Args:
            websession: Optional aiohttp ClientSession shared with loaded devices.
        """
        self._websession = websession

    @staticmethod
    def base_url_for_address(address: str) -> str:
        """Return the base URL for an IPv4, IPv6 or host name address."""
        address = address.strip()
        if not address or any(char.isspace() for char in address):
            raise InvalidAddressError(f"Invalid address '{address}'")
        host = f"[{address}]" if "::" in address or _is_ipv6(address) else address
        base_url = f"http://{host}"
        try:
            url = URL(base_url)
        except ValueError as err:
            raise InvalidAddressError(f"Invalid address '{address}'") from err
        if not url.host or url.raw_path not in ("", "/") or url.query_string or url.fragment:
            raise InvalidAddressError(f"Invalid address '{address}'")
        return base_url

    async def load_address(self, address: str) -> Device:
        """Load the device at the given IP address or host name."""
        return await self.load_base_url(self.base_url_for_address(address))

    async def load_discovered(self, discovered: DiscoveredDevice) -> Device:
        """Load a device found by discovery."""
        if not discovered.api_enabled:
            raise LocalAPIDisabledError(f"Local API of {discovered.serial} is disabled")
        base_url = await discovered.lookup()
        if base_url is None:
            raise IPLookupFailedError(f"No address found for {discovered.serial}")
        return await self.load_base_url(base_url)

    async def load_base_url(self, base_url: str) -> Device:
        """Load the device behind the given base URL."""
        try:
            async with RequestManager(base_url, websession=self._websession) as manager:
                info = await manager.perform_request(ENDPOINT_INFO, receive=dict)
        except RequestError as err:
            if err.kind == ErrorKind.FORBIDDEN:
                raise LocalAPIDisabledError(f"Local API at {base_url} is disabled") from err
            if err.kind == ErrorKind.UNREACHABLE:
                raise DeviceOfflineError(f"Device at {base_url} is offline") from err
            raise
        return self.load_json(info, base_url)

    def load_json(self, data: dict[str, Any], base_url: str) -> Device:
        """Build the device matching the product type in a ``/api`` response."""
        product_type = data.get("product_type")
        if not isinstance(product_type, str):
            raise RequestError(ErrorKind.UNEXPECTED_RESPONSE, message="Invalid product type")
        entry = resolve(product_type)
        try:
            device = entry.device_class.model_validate(data)
        except ValidationError as err:
            raise RequestError(
                ErrorKind.DECODING, originated=err, message="Invalid device information"
            ) from err
        device.attach(base_url, self._websession)
        _LOGGER.debug("Loaded %s", device)
        return device
