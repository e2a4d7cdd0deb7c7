"""Python library for HomeWizard energy devices on the local network."""

from .data_source import DiscoveredDataSource, default_data_source
from .devices import (
    Appearance,
    BaseDevice,
    Device,
    EnergySocket,
    IdentifiableDevice,
    KwhMeter,
    P1Meter,
    UnknownDevice,
    Watermeter,
)
from .discovery import (
    DeviceDiscoveryHandler,
    DiscoveredDevice,
    IdentifyResult,
    ServiceEndpoint,
)
from .exceptions import (
    DeviceOfflineError,
    ErrorKind,
    HomeWizardError,
    InvalidAddressError,
    IPLookupFailedError,
    LocalAPIDisabledError,
    RequestError,
    UnknownBaseURLError,
)
from .loader import DeviceLoader
from .models import (
    DeviceType,
    EnergySocketData,
    EnergySocketState,
    ExternalDeviceType,
    KwhMeterData,
    P1ExternalData,
    P1MeterData,
    UnknownType,
    WatermeterData,
)
from .monitor import DeviceDataFailure, DeviceDataUpdate, DeviceMonitor, default_monitor
from .request import RequestManager, RequestMethod

__all__ = [
    "Appearance",
    "BaseDevice",
    "Device",
    "DeviceDataFailure",
    "DeviceDataUpdate",
    "DeviceDiscoveryHandler",
    "DeviceLoader",
    "DeviceMonitor",
    "DeviceOfflineError",
    "DeviceType",
    "DiscoveredDataSource",
    "DiscoveredDevice",
    "EnergySocket",
    "EnergySocketData",
    "EnergySocketState",
    "ErrorKind",
    "ExternalDeviceType",
    "HomeWizardError",
    "IPLookupFailedError",
    "IdentifiableDevice",
    "IdentifyResult",
    "InvalidAddressError",
    "KwhMeter",
    "KwhMeterData",
    "LocalAPIDisabledError",
    "P1ExternalData",
    "P1Meter",
    "P1MeterData",
    "RequestError",
    "RequestManager",
    "RequestMethod",
    "ServiceEndpoint",
    "UnknownBaseURLError",
    "UnknownDevice",
    "UnknownType",
    "Watermeter",
    "WatermeterData",
    "default_data_source",
    "default_monitor",
]
