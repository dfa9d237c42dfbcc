"""Binary sensor entities derived from JK BMS telemetry records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from homeassistant.components.binary_sensor import (
    BinarySensorDeviceClass,
    BinarySensorEntity,
    BinarySensorEntityDescription,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .jkbms import TelemetryRecord

from .const import DOMAIN
from .runtime import JkBmsRuntime


@dataclass
class JkBmsBinarySensorDescription(BinarySensorEntityDescription):
    """Metadata for a record-backed JK BMS binary sensor."""

    is_on_fn: Callable[[TelemetryRecord], bool] = lambda _record: False


BINARY_SENSORS: tuple[JkBmsBinarySensorDescription, ...] = (
    JkBmsBinarySensorDescription(
        key="alarm_active",
        name="Alarm Active",
        device_class=BinarySensorDeviceClass.PROBLEM,
        is_on_fn=lambda r: r.alarm.active,
    ),
    JkBmsBinarySensorDescription(
        key="balancing",
        name="Balancing",
        is_on_fn=lambda r: r.balancing_current != 0,
    ),
)


async def async_setup_entry(
    hass: HomeAssistant, entry: ConfigEntry, async_add_entities: AddEntitiesCallback
) -> None:
    """Set up JK BMS binary sensors."""
    runtime: JkBmsRuntime = hass.data[DOMAIN][entry.entry_id]
    entities = [
        JkBmsRecordBinarySensor(runtime, description)
        for description in BINARY_SENSORS
    ]
    async_add_entities(entities)


class JkBmsRecordBinarySensor(BinarySensorEntity):
    """Binary sensor computed from the latest telemetry record."""

    entity_description: JkBmsBinarySensorDescription

    def __init__(
        self, runtime: JkBmsRuntime, description: JkBmsBinarySensorDescription
    ) -> None:
        self._runtime = runtime
        self.entity_description = description
        self._attr_should_poll = False
        self._attr_unique_id = f"{runtime.mac}_{description.key}"
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, runtime.mac)},
            manufacturer="JiKong",
            model="JK BMS",
            name=runtime.device_name,
        )

    async def async_added_to_hass(self) -> None:
        """Attach dispatcher listeners for updates."""
        self.async_on_remove(
            async_dispatcher_connect(
                self.hass, self._runtime.update_signal, self._handle_coordinator_update
            )
        )
        self.async_on_remove(
            async_dispatcher_connect(
                self.hass,
                self._runtime.availability_signal,
                self._handle_availability,
            )
        )

    @callback
    def _handle_coordinator_update(self) -> None:
        self.async_write_ha_state()

    @callback
    def _handle_availability(self, _available: bool) -> None:
        self.async_write_ha_state()

    @property
    def available(self) -> bool:
        return self._runtime.available and self.is_on is not None

    @property
    def is_on(self) -> bool | None:
        record = self._runtime.record
        if record is None:
            return None
        return self.entity_description.is_on_fn(record)
