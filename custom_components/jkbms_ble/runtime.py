"""BLE runtime that bridges JK BMS telemetry into Home Assistant."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from datetime import datetime
from typing import Optional

from homeassistant.components import bluetooth
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.dispatcher import async_dispatcher_send
from homeassistant.util import dt as dt_util

from .jkbms import JkBmsBleClient, TelemetryRecord, next_latest

from .const import (
    CONF_DEVICE_NAME,
    CONF_MAC,
    CONF_PUBLISH_INTERVAL,
    DEFAULT_PUBLISH_INTERVAL,
    DOMAIN,
    KEEPALIVE_INTERVAL,
    MAX_KEEPALIVE_MISSES,
    MAX_RECONNECT_DELAY,
    MIN_RECONNECT_DELAY,
)

LOGGER = logging.getLogger(__name__)


class JkBmsRuntime:
    """Owns one BMS connection and publishes decoded records to entities."""

    def __init__(self, hass: HomeAssistant, entry: ConfigEntry) -> None:
        self._hass = hass
        self._entry = entry
        self._mac: str = entry.data[CONF_MAC]
        self._device_name: str = entry.data.get(CONF_DEVICE_NAME, self._mac)
        self._publish_interval = self._read_publish_interval()

        self._client = JkBmsBleClient(self._mac)
        self._queue: asyncio.Queue[TelemetryRecord] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._stopped = False

        self._record: Optional[TelemetryRecord] = None
        self._last_update: Optional[datetime] = None
        self._available = False

        self.update_signal = f"{DOMAIN}_{entry.entry_id}_update"
        self.availability_signal = f"{DOMAIN}_{entry.entry_id}_availability"

    @property
    def mac(self) -> str:
        return self._mac

    @property
    def device_name(self) -> str:
        return self._device_name

    @property
    def available(self) -> bool:
        return self._available

    @property
    def last_update(self) -> Optional[datetime]:
        return self._last_update

    @property
    def record(self) -> Optional[TelemetryRecord]:
        """Return the most recently published record."""
        return self._record

    @property
    def publish_interval(self) -> float:
        return self._publish_interval

    def apply_options(self) -> None:
        self._publish_interval = self._read_publish_interval()
        LOGGER.debug(
            "Publish interval for %s is now %ss", self._mac, self._publish_interval
        )

    async def async_start(self) -> None:
        """Begin the BLE background loop."""
        if self._task:
            return
        self._stopped = False
        self._task = self._hass.loop.create_task(self._run())

    async def async_stop(self) -> None:
        """Stop the BLE background loop."""
        self._stopped = True
        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        await self._cleanup_client()

    async def _run(self) -> None:
        reconnect_delay = MIN_RECONNECT_DELAY
        while not self._stopped:
            try:
                await self._connect()
                reconnect_delay = MIN_RECONNECT_DELAY
                await self._process_records()
            except asyncio.CancelledError:
                break
            except Exception as exc:  # pragma: no cover - defensive logging
                LOGGER.warning("BLE loop error for %s: %s", self._mac, exc)
            finally:
                await self._cleanup_client()
                if self._stopped:
                    break
                self._set_available(False)
                await asyncio.sleep(reconnect_delay)
                reconnect_delay = min(reconnect_delay * 2, MAX_RECONNECT_DELAY)

    async def _connect(self) -> None:
        LOGGER.info("Connecting to JK BMS %s", self._mac)
        self._client.set_ble_device(
            bluetooth.async_ble_device_from_address(self._hass, self._mac, connectable=True)
        )
        await self._client.connect()
        self._queue = asyncio.Queue()
        await self._client.subscribe_notifications(self._handle_record)
        await self._client.request_telemetry()
        LOGGER.info("Subscribed to notifications for %s", self._mac)

    async def _process_records(self) -> None:
        missed_records = 0
        while not self._stopped:
            try:
                record = await next_latest(self._queue, timeout=KEEPALIVE_INTERVAL)
            except asyncio.TimeoutError:
                missed_records += 1
                LOGGER.debug(
                    "No telemetry received from %s for %ss (miss %s/%s)",
                    self._mac,
                    KEEPALIVE_INTERVAL,
                    missed_records,
                    MAX_KEEPALIVE_MISSES,
                )
                with suppress(Exception):
                    await self._client.request_cell_info()
                if missed_records >= MAX_KEEPALIVE_MISSES:
                    raise TimeoutError(f"No data received from {self._mac}")
                continue

            missed_records = 0
            self._publish(record)
            await asyncio.sleep(self._publish_interval)

    def _publish(self, record: TelemetryRecord) -> None:
        self._record = record
        self._last_update = dt_util.utcnow()
        LOGGER.debug("Record from %s: %s", self._mac, record.to_json())
        self._set_available(True)
        async_dispatcher_send(self._hass, self.update_signal)

    def _handle_record(self, record: TelemetryRecord, _frame: bytes) -> None:
        self._queue.put_nowait(record)

    def _set_available(self, available: bool) -> None:
        if self._available == available:
            return
        self._available = available
        async_dispatcher_send(self._hass, self.availability_signal, available)

    def _read_publish_interval(self) -> float:
        return float(
            self._entry.options.get(CONF_PUBLISH_INTERVAL, DEFAULT_PUBLISH_INTERVAL)
        )

    async def _cleanup_client(self) -> None:
        with suppress(Exception):
            await self._client.stop_notifications()
        with suppress(Exception):
            await self._client.disconnect()
