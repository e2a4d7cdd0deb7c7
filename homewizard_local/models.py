"""Data models for the HomeWizard local API library."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from enum import Enum
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    PlainValidator,
    field_validator,
)

from .const import BRIGHTNESS_MAX, BRIGHTNESS_MIN
from .timestamps import parse_api_timestamp

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnknownType:
    """A type token that is not known by this version of the library.

    The raw token is kept so it can be sent back unchanged.
    """

    value: str


class DeviceType(str, Enum):
    """Product type of a HomeWizard device."""

    P1_METER = "HWE-P1"
    ENERGY_SOCKET = "HWE-SKT"
    WATERMETER = "HWE-WTR"
    KWH_METER_1_PHASE = "HWE-KWH1"
    KWH_METER_3_PHASE = "HWE-KWH3"
    KWH_METER_1_PHASE_EASTRON = "SDM230-wifi"
    KWH_METER_3_PHASE_EASTRON = "SDM630-wifi"


class ExternalDeviceType(str, Enum):
    """Type of a meter connected to the smart meter behind a P1 meter."""

    GAS_METER = "gas_meter"
    HEAT_METER = "heat_meter"
    WATER_METER = "water_meter"
    WARM_WATER_METER = "warm_water_meter"
    INLET_HEAT_METER = "inlet_heat_meter"


def parse_device_type(raw: str | DeviceType | UnknownType) -> DeviceType | UnknownType:
    """Resolve a product type token, falling back to UnknownType."""
    if isinstance(raw, (DeviceType, UnknownType)):
        return raw
    if not isinstance(raw, str):
        raise ValueError(f"Product type must be a string, got {type(raw).__name__}")
    try:
        return DeviceType(raw)
    except ValueError:
        return UnknownType(raw)


def parse_external_type(
    raw: str | ExternalDeviceType | UnknownType,
) -> ExternalDeviceType | UnknownType:
    """Resolve an external meter type token, falling back to UnknownType."""
    if isinstance(raw, (ExternalDeviceType, UnknownType)):
        return raw
    if not isinstance(raw, str):
        raise ValueError(f"External type must be a string, got {type(raw).__name__}")
    try:
        return ExternalDeviceType(raw)
    except ValueError:
        return UnknownType(raw)


def _raw_value(value: Enum | UnknownType) -> str:
    return value.value


DeviceTypeField = Annotated[
    DeviceType | UnknownType,
    PlainValidator(parse_device_type),
    PlainSerializer(_raw_value, return_type=str),
]

ExternalTypeField = Annotated[
    ExternalDeviceType | UnknownType,
    PlainValidator(parse_external_type),
    PlainSerializer(_raw_value, return_type=str),
]


class Telemetry(BaseModel):
    """Base for measurement data; unknown keys are ignored."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    wifi_ssid: str
    wifi_strength: int

    def to_dict(self) -> dict[str, Any]:
        """Return the wire representation, leaving out missing values."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class P1ExternalData(BaseModel):
    """A meter (e.g. gas or water) connected to the smart meter.

    Time stamps are in the local time zone of the smart meter, use
    ``timestamp(tz)`` to interpret them in that zone.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    unique_id: str | None = None
    type: ExternalTypeField | None = None
    raw_timestamp: int | None = Field(default=None, alias="timestamp")
    value: float | None = None
    unit: str | None = None

    def timestamp(self, tz: tzinfo | None = None) -> datetime | None:
        """Most recent value update, interpreted in the given zone."""
        return parse_api_timestamp(self.raw_timestamp, tz)


class P1MeterData(Telemetry):
    """Measurement data of a P1 meter.

    The monthly power peak fields can be used to track the capacity tariff
    (maximum demand per month) charged in Belgium.
    """

    unique_id: str | None = None
    smr_version: int | None = None
    meter_model: str | None = None
    active_tariff: int | None = None

    total_power_import_kwh: float | None = None
    total_power_import_t1_kwh: float | None = None
    total_power_import_t2_kwh: float | None = None
    total_power_import_t3_kwh: float | None = None
    total_power_import_t4_kwh: float | None = None
    total_power_export_kwh: float | None = None
    total_power_export_t1_kwh: float | None = None
    total_power_export_t2_kwh: float | None = None
    total_power_export_t3_kwh: float | None = None
    total_power_export_t4_kwh: float | None = None

    active_power_w: float | None = None
    active_power_l1_w: float | None = None
    active_power_l2_w: float | None = None
    active_power_l3_w: float | None = None
    active_voltage_l1_v: float | None = None
    active_voltage_l2_v: float | None = None
    active_voltage_l3_v: float | None = None
    active_current_a: float | None = None
    active_current_l1_a: float | None = None
    active_current_l2_a: float | None = None
    active_current_l3_a: float | None = None
    active_frequency_hz: float | None = None

    voltage_sag_l1_count: int | None = None
    voltage_sag_l2_count: int | None = None
    voltage_sag_l3_count: int | None = None
    voltage_swell_l1_count: int | None = None
    voltage_swell_l2_count: int | None = None
    voltage_swell_l3_count: int | None = None
    any_power_fail_count: int | None = None
    long_power_fail_count: int | None = None

    active_power_average_w: float | None = None
    # Misspelled by the API
    monthly_power_peak_w: float | None = Field(default=None, alias="montly_power_peak_w")
    raw_monthly_power_peak_timestamp: int | None = Field(
        default=None, alias="montly_power_peak_timestamp"
    )

    external: list[P1ExternalData] = Field(default_factory=list)

    def monthly_power_peak_timestamp(self, tz: tzinfo | None = None) -> datetime | None:
        """Moment the monthly power peak was registered, in the given zone."""
        return parse_api_timestamp(self.raw_monthly_power_peak_timestamp, tz)


class EnergySocketData(Telemetry):
    """Measurement data of an energy socket.

    Reactive power, apparent power and power factor are only reported by the
    ``HWE-SKT-21`` hardware.
    """

    total_power_import_kwh: float | None = None
    total_power_export_kwh: float | None = None
    active_power_w: float | None = None
    active_voltage_v: float | None = None
    active_current_a: float | None = None
    active_reactive_power_var: float | None = None
    active_apparent_power_va: float | None = None
    active_power_factor: float | None = None
    active_frequency_hz: float | None = None


class WatermeterData(Telemetry):
    """Measurement data of a watermeter."""

    total_liter_m3: float | None = None
    active_liter_lpm: float | None = None


class KwhMeterData(Telemetry):
    """Measurement data of a kWh meter.

    Per-phase values are only reported by the 3 phase meters; the single
    voltage and power factor only by the 1 phase meters.
    """

    total_power_import_kwh: float | None = None
    total_power_export_kwh: float | None = None

    active_power_w: float | None = None
    active_power_l1_w: float | None = None
    active_power_l2_w: float | None = None
    active_power_l3_w: float | None = None

    active_voltage_v: float | None = None
    active_voltage_l1_v: float | None = None
    active_voltage_l2_v: float | None = None
    active_voltage_l3_v: float | None = None

    active_current_a: float | None = None
    active_current_l1_a: float | None = None
    active_current_l2_a: float | None = None
    active_current_l3_a: float | None = None

    active_apparent_current_a: float | None = None
    active_apparent_current_l1_a: float | None = None
    active_apparent_current_l2_a: float | None = None
    active_apparent_current_l3_a: float | None = None

    active_reactive_current_a: float | None = None
    active_reactive_current_l1_a: float | None = None
    active_reactive_current_l2_a: float | None = None
    active_reactive_current_l3_a: float | None = None

    active_apparent_power_va: float | None = None
    active_apparent_power_l1_va: float | None = None
    active_apparent_power_l2_va: float | None = None
    active_apparent_power_l3_va: float | None = None

    active_reactive_power_var: float | None = None
    active_reactive_power_l1_var: float | None = None
    active_reactive_power_l2_var: float | None = None
    active_reactive_power_l3_var: float | None = None

    active_power_factor: float | None = None
    active_power_factor_l1: float | None = None
    active_power_factor_l2: float | None = None
    active_power_factor_l3: float | None = None

    active_frequency_hz: float | None = None


def clamp_brightness(value: int) -> int:
    if value < BRIGHTNESS_MIN or value > BRIGHTNESS_MAX:
        _LOGGER.warning(
            "Brightness %s out of range %s..%s, clamping",
            value,
            BRIGHTNESS_MIN,
            BRIGHTNESS_MAX,
        )
    return max(BRIGHTNESS_MIN, min(BRIGHTNESS_MAX, value))


class EnergySocketState(BaseModel):
    """Controllable state of an energy socket.

    When switch lock is on, the socket can't be turned off and turns on
    automatically after a power outage.
    """

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    is_powered_on: bool = Field(alias="power_on")
    is_switch_locked: bool = Field(alias="switch_lock")
    brightness: int

    @field_validator("brightness")
    @classmethod
    def brightness_in_range(cls, value: int) -> int:
        """Clamp the LED ring brightness to 0..255."""
        return clamp_brightness(value)

    def to_dict(self) -> dict[str, Any]:
        """Return the wire representation."""
        return self.model_dump(mode="json", by_alias=True)
