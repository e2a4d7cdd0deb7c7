"""Map product types to device and telemetry classes."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel

from .devices import BaseDevice, EnergySocket, KwhMeter, P1Meter, UnknownDevice, Watermeter
from .models import (
    DeviceType,
    EnergySocketData,
    KwhMeterData,
    P1MeterData,
    UnknownType,
    WatermeterData,
    parse_device_type,
)


@dataclass(frozen=True)
class RegistryEntry:
    """Device class and telemetry class of a product type.

    ``data_class`` is None for unknown types, their data can't be decoded.
    """

    device_class: type[BaseDevice]
    data_class: type[BaseModel] | None


_ENTRIES: dict[DeviceType, RegistryEntry] = {
    DeviceType.P1_METER: RegistryEntry(P1Meter, P1MeterData),
    DeviceType.ENERGY_SOCKET: RegistryEntry(EnergySocket, EnergySocketData),
    DeviceType.WATERMETER: RegistryEntry(Watermeter, WatermeterData),
    DeviceType.KWH_METER_1_PHASE: RegistryEntry(KwhMeter, KwhMeterData),
    DeviceType.KWH_METER_3_PHASE: RegistryEntry(KwhMeter, KwhMeterData),
    DeviceType.KWH_METER_1_PHASE_EASTRON: RegistryEntry(KwhMeter, KwhMeterData),
    DeviceType.KWH_METER_3_PHASE_EASTRON: RegistryEntry(KwhMeter, KwhMeterData),
}

_UNKNOWN = RegistryEntry(UnknownDevice, None)


def resolve(raw_type: str | DeviceType | UnknownType) -> RegistryEntry:
    """Return the registry entry for a product type token."""
    device_type = parse_device_type(raw_type)
    if isinstance(device_type, UnknownType):
        return _UNKNOWN
    return _ENTRIES.get(device_type, _UNKNOWN)


def data_class_for(device: BaseDevice) -> type[BaseModel] | None:
    """Return the telemetry class of a loaded device, None when it has none."""
    return resolve(device.type).data_class
