"""Device variants of the HomeWizard local API.

A device is obtained with the DeviceLoader, either from a discovered device
or from a known IP address. The loader returns a specific variant based on
the product type (a P1 meter becomes a ``P1Meter``, an energy socket an
``EnergySocket``, ...). Only loaded devices know their base URL; a device
constructed by hand can't talk to the hardware.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Protocol, runtime_checkable

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from .const import ENDPOINT_DATA, ENDPOINT_IDENTIFY, ENDPOINT_STATE, ENDPOINT_TELEGRAM
from .exceptions import UnknownBaseURLError
from .models import (
    DeviceType,
    DeviceTypeField,
    EnergySocketData,
    EnergySocketState,
    KwhMeterData,
    P1MeterData,
    UnknownType,
    WatermeterData,
    clamp_brightness,
)
from .request import RequestManager, RequestMethod

_LOGGER = logging.getLogger(__name__)


class BaseDevice(BaseModel):
    """Basic information shared by every device, as returned by ``/api``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str = Field(alias="product_name")
    type: DeviceTypeField = Field(alias="product_type")
    serial: str
    firmware_version: str
    api_version: str

    _base_url: str | None = PrivateAttr(default=None)
    _websession: aiohttp.ClientSession | None = PrivateAttr(default=None)

    @property
    def base_url(self) -> str | None:
        """Base URL of the device, known once the device has been loaded."""
        return self._base_url

    def attach(self, base_url: str, websession: aiohttp.ClientSession | None = None) -> None:
        """Set the base URL (once) and the session to reach the device with."""
        if self._base_url is not None:
            raise ValueError(f"Base URL of {self.serial} is already set")
        self._base_url = base_url
        self._websession = websession

    def to_dict(self) -> dict[str, Any]:
        """Return the wire representation of the device information."""
        return self.model_dump(mode="json", by_alias=True)

    def _manager(self) -> RequestManager:
        if self._base_url is None:
            raise UnknownBaseURLError(f"Base URL of {self.serial} is unknown")
        return RequestManager(self._base_url, websession=self._websession)

    def _path(self, template: str) -> str:
        return template.format(api_version=self.api_version)

    def __str__(self) -> str:
        return (
            f"{type(self).__name__} {self.name} ({self.type.value}) serial={self.serial} "
            f"firmware={self.firmware_version} api={self.api_version} "
            f"base_url={self._base_url}"
        )


async def _identify(device: BaseDevice) -> None:
    """Let the status light of the device blink for a few seconds."""
    async with device._manager() as manager:
        await manager.perform_request(device._path(ENDPOINT_IDENTIFY), RequestMethod.PUT)


@runtime_checkable
class IdentifiableDevice(Protocol):
    """A device whose status light can blink to let the user identify it."""

    serial: str

    async def identify(self) -> None:
        """Let the status light of the device blink for a few seconds."""


class P1Meter(BaseDevice):
    """A HomeWizard P1 meter, reading the smart meter."""

    async def fetch_data(self) -> P1MeterData:
        """Fetch the most recent measurement."""
        async with self._manager() as manager:
            return await manager.perform_request(
                self._path(ENDPOINT_DATA), receive=P1MeterData
            )

    async def fetch_telegram(self) -> str | None:
        """Fetch the last telegram of the smart meter as plain text.

        The telegram is validated with its CRC by the device, but not parsed.
        """
        async with self._manager() as manager:
            data = await manager.perform_request(
                self._path(ENDPOINT_TELEGRAM), receive=bytes
            )
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            _LOGGER.debug("Telegram of %s is not valid UTF-8", self.serial)
            return None

    async def identify(self) -> None:
        """Let the status light of the meter blink for a few seconds."""
        await _identify(self)


class EnergySocket(BaseDevice):
    """A HomeWizard energy socket.

    Besides measurement data the socket has a controllable state: power,
    switch lock and LED brightness. The convenience accessors below always
    talk to the socket, nothing is cached.
    """

    async def fetch_data(self) -> EnergySocketData:
        """Fetch the most recent measurement."""
        async with self._manager() as manager:
            return await manager.perform_request(
                self._path(ENDPOINT_DATA), receive=EnergySocketData
            )

    async def fetch_state(self) -> EnergySocketState:
        """Fetch the current state of the socket."""
        async with self._manager() as manager:
            return await manager.perform_request(
                self._path(ENDPOINT_STATE), receive=EnergySocketState
            )

    async def update_state(self, state: EnergySocketState) -> None:
        """Send the complete state to the socket."""
        async with self._manager() as manager:
            await manager.perform_request(
                self._path(ENDPOINT_STATE), RequestMethod.PUT, body=state
            )

    async def _update_partial_state(self, **values: Any) -> None:
        async with self._manager() as manager:
            await manager.perform_request(
                self._path(ENDPOINT_STATE), RequestMethod.PUT, body=values
            )

    async def is_powered_on(self) -> bool:
        """Whether the relay is on."""
        return (await self.fetch_state()).is_powered_on

    async def set_powered_on(self, powered_on: bool) -> None:
        """Turn the socket on or off."""
        await self._update_partial_state(power_on=powered_on)

    async def is_switch_locked(self) -> bool:
        """Whether switch lock is active."""
        return (await self.fetch_state()).is_switch_locked

    async def set_switch_locked(self, locked: bool) -> None:
        """Turn switch lock on or off."""
        await self._update_partial_state(switch_lock=locked)

    async def brightness(self) -> int:
        """Brightness (0..255) of the LED ring when the socket is on."""
        return (await self.fetch_state()).brightness

    async def set_brightness(self, brightness: int) -> None:
        """Set the LED ring brightness, clamped to 0..255."""
        await self._update_partial_state(brightness=clamp_brightness(brightness))

    async def identify(self) -> None:
        """Let the status light of the socket blink for a few seconds."""
        await _identify(self)


class Watermeter(BaseDevice):
    """A HomeWizard watermeter."""

    async def fetch_data(self) -> WatermeterData:
        """Fetch the most recent measurement."""
        async with self._manager() as manager:
            return await manager.perform_request(
                self._path(ENDPOINT_DATA), receive=WatermeterData
            )

    async def identify(self) -> None:
        """Let the status light of the watermeter blink for a few seconds."""
        await _identify(self)


class Appearance(str, Enum):
    """Hardware generation of a kWh meter."""

    HOMEWIZARD = "homewizard"
    EASTRON = "eastron"


_SINGLE_PHASE = (DeviceType.KWH_METER_1_PHASE, DeviceType.KWH_METER_1_PHASE_EASTRON)
_THREE_PHASE = (DeviceType.KWH_METER_3_PHASE, DeviceType.KWH_METER_3_PHASE_EASTRON)
_EASTRON = (DeviceType.KWH_METER_1_PHASE_EASTRON, DeviceType.KWH_METER_3_PHASE_EASTRON)


class KwhMeter(BaseDevice):
    """A HomeWizard or Eastron kWh meter, 1 or 3 phase."""

    @property
    def number_of_phases(self) -> int:
        """Number of phases, 0 when the type isn't a kWh meter."""
        if self.type in _SINGLE_PHASE:
            return 1
        if self.type in _THREE_PHASE:
            return 3
        return 0

    @property
    def appearance(self) -> Appearance:
        """First generation Eastron meter or next generation HomeWizard meter."""
        return Appearance.EASTRON if self.type in _EASTRON else Appearance.HOMEWIZARD

    async def fetch_data(self) -> KwhMeterData:
        """Fetch the most recent measurement."""
        async with self._manager() as manager:
            return await manager.perform_request(
                self._path(ENDPOINT_DATA), receive=KwhMeterData
            )


class UnknownDevice(BaseDevice):
    """A device that is not supported by this version of the library.

    Its measurement data can't be parsed, but most devices have a data
    endpoint, so ``fetch_data`` returns whatever JSON object it gives.
    """

    async def fetch_data(self) -> dict[str, Any]:
        """Try to fetch the most recent measurement as a plain JSON object."""
        async with self._manager() as manager:
            return await manager.perform_request(self._path(ENDPOINT_DATA), receive=dict)


Device = P1Meter | EnergySocket | Watermeter | KwhMeter | UnknownDevice

__all__ = [
    "Appearance",
    "BaseDevice",
    "Device",
    "EnergySocket",
    "IdentifiableDevice",
    "KwhMeter",
    "P1Meter",
    "UnknownDevice",
    "UnknownType",
    "Watermeter",
]
