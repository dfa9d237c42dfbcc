"""BLE utilities for reading telemetry from JK BMS devices."""

import asyncio
import inspect
import logging
from contextlib import suppress
from typing import AsyncIterator, Awaitable, Callable, Optional, Tuple

from bleak import BleakClient
from bleak.exc import BleakError
from bleak_retry_connector import establish_connection

from .frames import FrameSynchronizer
from .protocol import (
    GET_CELL_INFO,
    GET_DEVICE_INFO,
    JkBmsError,
    TelemetryRecord,
    decode_cell_info,
)

# JK BMS exposes a single UART-style characteristic for commands and notifications
SERVICE_UUID = "0000ffe0-0000-1000-8000-00805f9b34fb"
WRITE_UUID = "0000ffe1-0000-1000-8000-00805f9b34fb"
NOTIFY_UUID = "0000ffe1-0000-1000-8000-00805f9b34fb"

# Pause between the device info and cell info requests
COMMAND_DELAY = 1.0

RecordCallback = Callable[[TelemetryRecord, bytes], Optional[Awaitable[None]]]

LOGGER = logging.getLogger(__name__)


class JkBmsBleClient:
    """BLE client that requests JK BMS telemetry and decodes notifications."""

    def __init__(
        self,
        mac_address: str,
        *,
        ble_device: object | None = None,
        command_delay: float = COMMAND_DELAY,
    ) -> None:
        self.mac_address = mac_address
        self._ble_device = ble_device
        self.command_delay = command_delay

        self._client: BleakClient | None = None
        self._connected = False
        self._notifications_started = False
        self._record_callback: Optional[RecordCallback] = None
        self._synchronizer = FrameSynchronizer()
        self.decode_errors = 0

    async def __aenter__(self) -> "JkBmsBleClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def synchronizer(self) -> FrameSynchronizer:
        return self._synchronizer

    async def connect(self) -> None:
        """Establish a BLE connection and check for the JK UART characteristic."""
        if self._connected:
            return
        LOGGER.info("Connecting to device %s", self.mac_address)
        try:
            self._client = await self._establish_client()
        except BleakError as e:
            if "adapter" in str(e).lower() and "not found" in str(e).lower():
                LOGGER.warning(
                    "Adapter for device %s not found: %s. Device may have moved to different adapter.",
                    self.mac_address,
                    e,
                )
            self._client = None
            raise
        self._connected = True
        self._synchronizer.reset()
        LOGGER.info("Connection successful")

        try:
            self._check_services()
        except RuntimeError:
            await self.disconnect()
            raise

    def _check_services(self) -> None:
        service_cache = self._require_client().services
        if service_cache is None:
            raise RuntimeError("Unable to enumerate BLE services on device")

        service = service_cache.get_service(SERVICE_UUID)
        if service is None:
            raise RuntimeError("FFE0 service not found on device")
        if not service.get_characteristic(NOTIFY_UUID):
            raise RuntimeError("FFE1 characteristic not found on device")

    async def disconnect(self) -> None:
        """Stop notifications (if active) and close the BLE connection."""
        await self.stop_notifications()
        # A partial frame cannot be completed on a new connection
        self._synchronizer.reset()
        client = self._client
        if not self._connected or client is None:
            return
        try:
            await client.disconnect()
            LOGGER.debug("Disconnected from device.")
        finally:
            self._connected = False
            self._client = None

    async def subscribe_notifications(self, record_callback: RecordCallback) -> None:
        """Subscribe for telemetry notifications."""
        if not self._connected:
            raise RuntimeError("Client must be connected before subscribing")
        if self._notifications_started:
            raise RuntimeError("Notifications already active")
        self._record_callback = record_callback
        await self._require_client().start_notify(NOTIFY_UUID, self._handle_notification)
        self._notifications_started = True

    async def stop_notifications(self) -> None:
        """Unsubscribe from telemetry notifications."""
        if not self._notifications_started:
            return
        try:
            await self._require_client().stop_notify(NOTIFY_UUID)
            LOGGER.debug("Notifications stopped.")
        finally:
            self._notifications_started = False
            self._record_callback = None

    async def request_telemetry(self) -> None:
        """Send GET_DEVICE_INFO, then GET_CELL_INFO after a short pause."""
        await self._write_command(GET_DEVICE_INFO)
        await asyncio.sleep(self.command_delay)
        await self._write_command(GET_CELL_INFO)

    async def request_cell_info(self) -> None:
        """Ask for cell info again, e.g. when the stream went quiet."""
        await self._write_command(GET_CELL_INFO)

    def set_ble_device(self, ble_device: object | None) -> None:
        """Update the HA-resolved BLEDevice used for the next connection attempt."""
        self._ble_device = ble_device

    def feed_fragment(self, fragment: bytes) -> Tuple[TelemetryRecord, bytes] | None:
        """Run one fragment through the synchronizer and decode a completed frame."""
        frame = self._synchronizer.feed(fragment)
        if frame is None:
            return None
        try:
            return decode_cell_info(frame), frame
        except JkBmsError as exc:
            self.decode_errors += 1
            LOGGER.warning("Frame could not be decoded: %s", exc)
            return None

    async def _write_command(self, command: bytes) -> None:
        if not self._connected:
            raise RuntimeError("Client must be connected before sending commands")
        LOGGER.debug("Sending command %s", command.hex())
        await self._require_client().write_gatt_char(WRITE_UUID, command)

    async def _establish_client(self) -> BleakClient:
        """Create and connect a fresh Bleak client for the current backend state."""
        target = self._ble_device or self.mac_address
        try:
            LOGGER.debug(
                "Using bleak_retry_connector for %s connection establishment",
                self.mac_address,
            )
            return await establish_connection(
                BleakClient,
                target,
                self.mac_address,
            )
        except AttributeError as exc:
            # Address-only targets are rejected by some backends
            LOGGER.debug(
                "bleak_retry_connector incompatible for %s with address-only connect "
                "(%s); falling back to BleakClient.connect()",
                self.mac_address,
                exc,
            )

        client = BleakClient(target)
        await client.connect()
        return client

    def _require_client(self) -> BleakClient:
        client = self._client
        if client is None:
            raise RuntimeError("BLE client is not initialized")
        return client

    def _handle_notification(self, _sender: object, data: bytearray) -> None:
        decoded = self.feed_fragment(bytes(data))
        if decoded is None:
            return

        callback = self._record_callback
        if callback is None:
            return
        record, frame = decoded
        try:
            maybe_coro = callback(record, frame)
            if inspect.isawaitable(maybe_coro):
                asyncio.ensure_future(maybe_coro)
        except Exception as callback_error:  # pragma: no cover - defensive logging
            LOGGER.exception("Record callback raised an exception: %s", callback_error)


async def next_latest(queue: asyncio.Queue, timeout: float | None = None):
    """Wait for the next queued item, then skip to the newest one queued.

    Items that piled up while the consumer was pacing itself are stale.
    Raises asyncio.TimeoutError if nothing arrives within ``timeout``.
    """
    item = await asyncio.wait_for(queue.get(), timeout=timeout)
    while not queue.empty():
        item = queue.get_nowait()
    return item


async def fetch_record_once(
    mac_address: str,
    *,
    command_delay: float = COMMAND_DELAY,
    timeout: float = 30.0,
) -> TelemetryRecord:
    """Connect, request telemetry and return the first decoded record."""
    loop = asyncio.get_running_loop()
    future: asyncio.Future[TelemetryRecord] = loop.create_future()

    async with JkBmsBleClient(mac_address, command_delay=command_delay) as client:
        await client.subscribe_notifications(
            lambda record, _frame: future.done() or future.set_result(record)
        )
        try:
            await client.request_telemetry()
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            await client.stop_notifications()


async def stream_records(
    mac_address: str,
    *,
    command_delay: float = COMMAND_DELAY,
) -> AsyncIterator[Tuple[TelemetryRecord, bytes]]:
    """Yield decoded records continuously until cancelled."""
    client = JkBmsBleClient(mac_address, command_delay=command_delay)
    await client.connect()

    queue: asyncio.Queue[Tuple[TelemetryRecord, bytes]] = asyncio.Queue()

    def _queue_record(record: TelemetryRecord, frame: bytes) -> None:
        queue.put_nowait((record, frame))

    await client.subscribe_notifications(_queue_record)
    await client.request_telemetry()

    try:
        while True:
            yield await queue.get()
    finally:
        await client.stop_notifications()
        with suppress(Exception):
            await client.disconnect()


__all__ = [
    "SERVICE_UUID",
    "WRITE_UUID",
    "NOTIFY_UUID",
    "COMMAND_DELAY",
    "JkBmsBleClient",
    "fetch_record_once",
    "next_latest",
    "stream_records",
]
