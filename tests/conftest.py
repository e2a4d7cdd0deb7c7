"""Shared fixtures: payloads and a fake device served over HTTP."""

from __future__ import annotations

import asyncio
import json
import socket
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

P1_INFO: dict[str, Any] = {
    "product_name": "P1 Meter",
    "product_type": "HWE-P1",
    "serial": "3c39e0000000",
    "firmware_version": "5.18",
    "api_version": "v1",
}

P1_DATA: dict[str, Any] = {
    "wifi_ssid": "MyWiFi",
    "wifi_strength": 44,
    "smr_version": 42,
    "meter_model": "Landis + Gyr GBBFG1009147807",
    "unique_id": "4530303330303000000000000000000000",
    "active_tariff": 2,
    "total_power_import_kwh": 581722.707,
    "total_power_import_t1_kwh": 234950.379,
    "total_power_import_t2_kwh": 346772.328,
    "total_power_export_kwh": 8.883,
    "total_power_export_t1_kwh": 5.975,
    "total_power_export_t2_kwh": 2.908,
    "active_power_w": 15424.000,
    "active_power_l1_w": 4297.000,
    "active_power_l2_w": 4150.000,
    "active_power_l3_w": 6977.000,
    "active_current_a": 70.000,
    "active_current_l1_a": 19.000,
    "active_current_l2_a": 19.000,
    "active_current_l3_a": 32.000,
    "active_voltage_l1_v": 232.9,
    "active_voltage_l2_v": 231.9,
    "voltage_sag_l1_count": 1.000,
    "voltage_sag_l2_count": 1.000,
    "voltage_sag_l3_count": 2.000,
    "voltage_swell_l1_count": 1.000,
    "voltage_swell_l2_count": 2.000,
    "voltage_swell_l3_count": 3.000,
    "any_power_fail_count": 4.000,
    "long_power_fail_count": 5.000,
    "montly_power_peak_w": 1111.0,
    "montly_power_peak_timestamp": 230101080010,
    "external": [
        {
            "unique_id": "4730303137353931323336000000000000",
            "type": "gas_meter",
            "timestamp": 241008120102,
            "value": 68925.426,
            "unit": "m3",
        },
        {
            "unique_id": "4730303137353931323336000000000001",
            "type": "water_meter",
            "timestamp": 221216121314,
            "value": 333.333,
            "unit": "m3",
        },
    ],
}

SOCKET_INFO: dict[str, Any] = {
    "product_name": "Energy Socket",
    "product_type": "HWE-SKT",
    "serial": "5c2f00000000",
    "firmware_version": "4.07",
    "api_version": "v1",
}

SOCKET_DATA: dict[str, Any] = {
    "wifi_ssid": "MyWiFi",
    "wifi_strength": 78,
    "total_power_import_kwh": 34.790,
    "total_power_import_t1_kwh": 34.790,
    "total_power_export_kwh": 1.234,
    "total_power_export_t1_kwh": 0.000,
    "active_power_w": 2.359,
    "active_power_l1_w": 2.359,
    "active_voltage_v": 232.695,
    "active_current_a": 0.026,
    "active_reactive_power_var": 1.000,
    "active_apparent_power_va": 2.359,
    "active_power_factor": 1.000,
    "active_frequency_hz": 50.020,
}

SOCKET_STATE: dict[str, Any] = {"power_on": True, "switch_lock": True, "brightness": 255}

WATERMETER_INFO: dict[str, Any] = {
    "product_name": "Watermeter",
    "product_type": "HWE-WTR",
    "serial": "3c39e0000001",
    "firmware_version": "2.03",
    "api_version": "v1",
}

WATERMETER_DATA: dict[str, Any] = {
    "wifi_ssid": "MyWiFi",
    "wifi_strength": 84,
    "total_liter_m3": 17.014,
    "active_liter_lpm": 0,
}

KWH_INFO: dict[str, Any] = {
    "product_name": "KWh Meter 3-phase",
    "product_type": "HWE-KWH3",
    "serial": "3c39e0000002",
    "firmware_version": "4.06",
    "api_version": "v1",
}

KWH_DATA: dict[str, Any] = {
    "wifi_ssid": "MyWiFi",
    "wifi_strength": 48,
    "total_power_import_kwh": 4418.417,
    "total_power_export_kwh": 1.234,
    "active_power_w": 3463.347,
    "active_power_l1_w": 3463.347,
    "active_power_l2_w": 1,
    "active_power_l3_w": 1,
    "active_voltage_l1_v": 230.49,
    "active_voltage_l2_v": 232.883,
    "active_voltage_l3_v": 233.117,
    "active_reactive_power_var": -87.157,
    "active_power_factor_l1": 1,
    "active_frequency_hz": 49.964,
}

TELEGRAM = b"/ISK5\\2M550T-1012\r\n\r\n1-3:0.2.8(50)\r\n!5106\r\n"


class FakeDevice:
    """Serves the local API of a single device and records what it receives."""

    def __init__(
        self,
        info: dict[str, Any],
        data: dict[str, Any] | None = None,
        state: dict[str, Any] | None = None,
        *,
        info_status: int = 200,
        data_status: int = 200,
        identify_status: int = 200,
        data_delay: float = 0.0,
    ) -> None:
        self.info = info
        self.data = data
        self.state = dict(state) if state is not None else None
        self.info_status = info_status
        self.data_status = data_status
        self.identify_status = identify_status
        self.data_delay = data_delay
        self.requests: list[tuple[str, str]] = []
        self.state_updates: list[dict[str, Any]] = []
        self.identified = 0

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/api", self._info)
        app.router.add_get("/api/v1/data", self._data)
        app.router.add_get("/api/v1/state", self._get_state)
        app.router.add_put("/api/v1/state", self._put_state)
        app.router.add_get("/api/v1/telegram", self._telegram)
        app.router.add_put("/api/v1/identify", self._identify)
        return app

    def count(self, method: str, path: str) -> int:
        return self.requests.count((method, path))

    def _record(self, request: web.Request) -> None:
        self.requests.append((request.method, request.path))

    async def _info(self, request: web.Request) -> web.Response:
        self._record(request)
        if self.info_status != 200:
            return web.Response(status=self.info_status)
        return web.json_response(self.info)

    async def _data(self, request: web.Request) -> web.Response:
        self._record(request)
        if self.data_delay:
            await asyncio.sleep(self.data_delay)
        if self.data_status != 200 or self.data is None:
            return web.Response(status=self.data_status if self.data_status != 200 else 404)
        return web.json_response(self.data)

    async def _get_state(self, request: web.Request) -> web.Response:
        self._record(request)
        if self.state is None:
            return web.Response(status=404)
        return web.json_response(self.state)

    async def _put_state(self, request: web.Request) -> web.Response:
        self._record(request)
        if self.state is None:
            return web.Response(status=404)
        update = json.loads(await request.read())
        self.state_updates.append(update)
        self.state.update(update)
        return web.json_response(self.state)

    async def _telegram(self, request: web.Request) -> web.Response:
        self._record(request)
        return web.Response(body=TELEGRAM, content_type="text/plain")

    async def _identify(self, request: web.Request) -> web.Response:
        self._record(request)
        if self.identify_status != 200:
            return web.Response(status=self.identify_status)
        self.identified += 1
        return web.json_response({"identify": "ok"})


ServeApp = Callable[[web.Application], Awaitable[str]]
ServeDevice = Callable[[FakeDevice], Awaitable[str]]


@pytest_asyncio.fixture
async def serve_app() -> AsyncIterator[ServeApp]:
    """Start aiohttp applications on localhost, returning their base URL."""
    servers: list[TestServer] = []

    async def serve(app: web.Application) -> str:
        server = TestServer(app, host="127.0.0.1")
        await server.start_server()
        servers.append(server)
        return f"http://127.0.0.1:{server.port}"

    yield serve

    for server in servers:
        await server.close()


@pytest.fixture
def serve_device(serve_app: ServeApp) -> ServeDevice:
    """Start fake devices on localhost, returning their base URL."""

    async def serve(device: FakeDevice) -> str:
        return await serve_app(device.app())

    return serve


@pytest.fixture
def closed_port() -> int:
    """A localhost port nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
