#!/usr/bin/env python3
"""
BLE telemetry monitor for JK BMS devices.

This script connects to the battery management system over BLE, sends the
GET_DEVICE_INFO and GET_CELL_INFO commands, reassembles the 300-byte cell
info frames and pretty-prints the decoded record. ``--json`` prints the
record encoding that is shipped to a monitoring item instead of a table.

Usage: python3 cli-jkbms-ble-readdata.py --mac ... [--poll] [--json] [--interval N]
"""

import argparse
import asyncio
import logging
from typing import Sequence

from jkbms import (
    CELL_INFO_FIELDS,
    JkBmsBleClient,
    TelemetryRecord,
    next_latest,
)

DEFAULT_INTERVAL = 5.0

LOGGER = logging.getLogger(__name__)

UNITS = {spec.name: spec.unit for spec in CELL_INFO_FIELDS}
UNITS.update(max_cell_voltage="V", min_cell_voltage="V", power="W")

SUMMARY_FIELDS: Sequence[str] = (
    "total_voltage",
    "current",
    "power",
    "balancing_current",
    "max_cell_voltage",
    "min_cell_voltage",
    "average_cell_voltage",
    "delta_cell_voltage",
    "t1",
    "t2",
    "mos_temperature",
)


def pretty_print_record(record: TelemetryRecord) -> None:
    """Render pack values followed by a per-cell table."""
    header = f"{'Field':<24} {'Value':>12}"
    print(header)
    print("-" * len(header))
    for name in SUMMARY_FIELDS:
        value = getattr(record, name)
        print(f"{name:<24} {value:>10.3f} {UNITS.get(name, '')}")
    print(f"{'alarm':<24} {record.alarm.code:>10} ({record.alarm.label})")

    print(f"\n{'Cell':>4}  {'Voltage':>9}  {'Resistance':>10}")
    for index, cell in enumerate(record.cells, start=1):
        if cell.voltage == 0 and cell.internal_resistance == 0:
            continue
        print(f"{index:>4}  {cell.voltage:>7.3f} V  {cell.internal_resistance:>8.3f} Ω")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Monitor JK BMS telemetry over BLE")
    parser.add_argument(
        "--mac",
        dest="mac_address",
        type=str,
        required=True,
        help="Device MAC address",
    )
    parser.add_argument(
        "--poll",
        dest="poll",
        action="store_true",
        help="Print records indefinitely",
    )
    parser.add_argument(
        "--json",
        dest="as_json",
        action="store_true",
        help="Print each record as JSON",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=DEFAULT_INTERVAL,
        help=f"Seconds between printed records when polling (default: {DEFAULT_INTERVAL})",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args()


async def run_monitor(args: argparse.Namespace) -> None:
    """Entrypoint that wires CLI concerns into the shared BLE helper."""
    queue: asyncio.Queue = asyncio.Queue()

    def _handle_record(record: TelemetryRecord, _frame: bytes) -> None:
        queue.put_nowait(record)

    def _show(record: TelemetryRecord) -> None:
        if args.as_json:
            print(record.to_json())
        else:
            pretty_print_record(record)

    bms = JkBmsBleClient(args.mac_address)
    await bms.connect()
    try:
        await bms.subscribe_notifications(_handle_record)
        await bms.request_telemetry()

        if args.poll:
            print("Polling for telemetry. Press Ctrl+C to stop.")
            while True:
                _show(await next_latest(queue))
                await asyncio.sleep(args.interval)
        else:
            print("Fetching data from device...")
            _show(await queue.get())
    finally:
        LOGGER.debug(
            "Synchronizer: %d frames, %d acks, %d noise, %d restarts, %d overflows",
            bms.synchronizer.frames,
            bms.synchronizer.acks,
            bms.synchronizer.noise,
            bms.synchronizer.restarts,
            bms.synchronizer.overflows,
        )
        await bms.stop_notifications()
        await bms.disconnect()


def configure_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
    )


if __name__ == "__main__":
    cli_args = parse_args()
    configure_logging(cli_args.debug)
    try:
        asyncio.run(run_monitor(cli_args))
    except (KeyboardInterrupt, asyncio.CancelledError):
        print("\n[I] Caught Ctrl+C, stopping monitor…")
    except Exception as exc:
        print(f"[E] Monitor failed: {exc}")
