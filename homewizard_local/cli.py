"""Command line tool for HomeWizard devices on the local network.

Usage examples:
    homewizard-local discover --seconds 5
    homewizard-local discover --watch
    homewizard-local info 192.168.1.20
    homewizard-local data 192.168.1.20
    homewizard-local monitor 192.168.1.20 192.168.1.21 --interval 10
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

import aiohttp
from pydantic import ValidationError

from .config import HomeWizardSettings
from .data_source import DiscoveredDataSource
from .devices import IdentifiableDevice, P1Meter
from .discovery import DeviceDiscoveryHandler, DiscoveredDevice
from .exceptions import HomeWizardError
from .loader import DeviceLoader
from .monitor import DeviceDataFailure, DeviceDataUpdate, DeviceMonitor

_LOGGER = logging.getLogger(__name__)


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, default=str))


def _format_device(device: DiscoveredDevice) -> str:
    return f"{device}\t{device.type.value}\t{', '.join(device.endpoint.addresses)}"


async def _discover(args: argparse.Namespace, settings: HomeWizardSettings) -> int:
    if args.watch:
        return await _watch(args, settings)
    seconds = args.seconds if args.seconds is not None else settings.lookup_seconds
    devices = await DeviceDiscoveryHandler.quick_lookup(seconds)
    for device in sorted(devices, key=lambda found: found.serial):
        print(_format_device(device))
    if not devices:
        print("No devices found", file=sys.stderr)
    return 0


async def _watch(args: argparse.Namespace, settings: HomeWizardSettings) -> int:
    source = DiscoveredDataSource(settings.discovery_debounce)

    def on_change() -> None:
        devices = sorted(source.devices, key=lambda found: found.serial)
        print(f"{len(devices)} device(s) on the network")
        for device in devices:
            print(_format_device(device))

    source.add_listener(on_change)
    await source.start()
    try:
        if args.seconds is not None:
            await asyncio.sleep(args.seconds)
        else:
            await asyncio.Event().wait()
    finally:
        await source.stop()
    return 0


async def _with_device(args: argparse.Namespace) -> int:
    async with aiohttp.ClientSession() as session:
        device = await DeviceLoader(session).load_address(args.address)
        if args.command == "info":
            _print_json(device.to_dict() | {"base_url": device.base_url})
        elif args.command == "data":
            data = await device.fetch_data()
            _print_json(data if isinstance(data, dict) else data.to_dict())
        elif args.command == "telegram":
            if not isinstance(device, P1Meter):
                print(f"{device.type.value} has no telegram", file=sys.stderr)
                return 1
            print(await device.fetch_telegram() or "")
        elif args.command == "identify":
            if not isinstance(device, IdentifiableDevice):
                print(f"{device.type.value} can't be identified", file=sys.stderr)
                return 1
            await device.identify()
            print(f"Identifying {device.serial}")
    return 0


async def _monitor(args: argparse.Namespace, settings: HomeWizardSettings) -> int:
    interval = args.interval if args.interval is not None else settings.poll_interval
    async with aiohttp.ClientSession() as session:
        loader = DeviceLoader(session)
        devices = [await loader.load_address(address) for address in args.addresses]
        monitor = DeviceMonitor(interval, websession=session)
        monitor.add(devices)

        def on_update(update: DeviceDataUpdate) -> None:
            _print_json(
                {
                    "serial": update.serial,
                    "timestamp": update.timestamp.isoformat(),
                    "data": update.data.to_dict(),
                }
            )

        def on_failure(failure: DeviceDataFailure) -> None:
            print(f"{failure.timestamp.isoformat()} {failure.serial}: {failure.error}", file=sys.stderr)

        monitor.add_update_listener(on_update)
        monitor.add_failure_listener(on_failure)
        monitor.start()
        try:
            if args.cycles:
                await asyncio.sleep(interval * (args.cycles - 1) + 0.5)
            else:
                await asyncio.Event().wait()
        finally:
            await monitor.close()
    return 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="homewizard-local",
        description="Talk to HomeWizard energy devices on the local network",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to execute")

    discover = subparsers.add_parser("discover", help="List devices announced on the network")
    discover.add_argument(
        "--seconds", type=float, help="Lookup duration in seconds, or how long to watch"
    )
    discover.add_argument(
        "--watch", action="store_true", help="Keep browsing and print the devices on every change"
    )

    for command, help_text in (
        ("info", "Show the basic information of a device"),
        ("data", "Fetch the most recent measurement"),
        ("telegram", "Fetch the last smart meter telegram (P1 meter only)"),
        ("identify", "Let the status light of a device blink"),
    ):
        sub = subparsers.add_parser(command, help=help_text)
        sub.add_argument("address", help="IP address or host name of the device")

    monitor = subparsers.add_parser("monitor", help="Poll devices and print their data")
    monitor.add_argument("addresses", nargs="+", help="IP addresses or host names")
    monitor.add_argument("--interval", type=float, help="Seconds between polls (>= 1)")
    monitor.add_argument("--cycles", type=int, default=0, help="Stop after this many polls")

    return parser.parse_args(argv)


async def _run(args: argparse.Namespace, settings: HomeWizardSettings) -> int:
    if args.command == "discover":
        return await _discover(args, settings)
    if args.command == "monitor":
        return await _monitor(args, settings)
    return await _with_device(args)


def main(argv: list[str] | None = None) -> int:
    """Entry point of ``homewizard-local``."""
    args = parse_args(argv)
    try:
        settings = HomeWizardSettings()
    except ValidationError as err:
        print(f"Invalid configuration: {err}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        return asyncio.run(_run(args, settings))
    except (HomeWizardError, ValueError) as err:
        _LOGGER.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {err}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
