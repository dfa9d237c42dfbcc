"""Sensor entities for the JK BMS integration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
    SensorEntityDescription,
    SensorStateClass,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import (
    UnitOfElectricCurrent,
    UnitOfElectricPotential,
    UnitOfPower,
    UnitOfTemperature,
)
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.device_registry import DeviceInfo

from .jkbms import CELL_COUNT, TelemetryRecord

from .const import DOMAIN
from .runtime import JkBmsRuntime

OHM = "Ω"


@dataclass
class JkBmsSensorDescription(SensorEntityDescription):
    """Describes a sensor backed by a field of the latest telemetry record."""

    value_fn: Callable[[TelemetryRecord], Any] = lambda _record: None
    attributes_fn: Optional[Callable[[TelemetryRecord], dict[str, Any]]] = None
    decimals: Optional[int] = 3


def _voltage(key: str, name: str, value_fn, **kwargs) -> JkBmsSensorDescription:
    return JkBmsSensorDescription(
        key=key,
        name=name,
        native_unit_of_measurement=UnitOfElectricPotential.VOLT,
        device_class=SensorDeviceClass.VOLTAGE,
        state_class=SensorStateClass.MEASUREMENT,
        value_fn=value_fn,
        **kwargs,
    )


def _temperature(key: str, name: str, value_fn) -> JkBmsSensorDescription:
    return JkBmsSensorDescription(
        key=key,
        name=name,
        native_unit_of_measurement=UnitOfTemperature.CELSIUS,
        device_class=SensorDeviceClass.TEMPERATURE,
        state_class=SensorStateClass.MEASUREMENT,
        value_fn=value_fn,
        decimals=1,
    )


PACK_SENSORS: tuple[JkBmsSensorDescription, ...] = (
    _voltage("total_voltage", "Total Voltage", lambda r: r.total_voltage),
    JkBmsSensorDescription(
        key="current",
        name="Current",
        native_unit_of_measurement=UnitOfElectricCurrent.AMPERE,
        device_class=SensorDeviceClass.CURRENT,
        state_class=SensorStateClass.MEASUREMENT,
        value_fn=lambda r: r.current,
    ),
    JkBmsSensorDescription(
        key="power",
        name="Power",
        native_unit_of_measurement=UnitOfPower.WATT,
        device_class=SensorDeviceClass.POWER,
        state_class=SensorStateClass.MEASUREMENT,
        value_fn=lambda r: r.power,
        decimals=1,
    ),
    JkBmsSensorDescription(
        key="balancing_current",
        name="Balancing Current",
        native_unit_of_measurement=UnitOfElectricCurrent.AMPERE,
        device_class=SensorDeviceClass.CURRENT,
        state_class=SensorStateClass.MEASUREMENT,
        value_fn=lambda r: r.balancing_current,
    ),
    _voltage("max_cell_voltage", "Max Cell Voltage", lambda r: r.max_cell_voltage),
    _voltage("min_cell_voltage", "Min Cell Voltage", lambda r: r.min_cell_voltage),
    _voltage("average_cell_voltage", "Average Cell Voltage", lambda r: r.average_cell_voltage),
    _voltage("delta_cell_voltage", "Delta Cell Voltage", lambda r: r.delta_cell_voltage),
    _temperature("t1", "Temperature 1", lambda r: r.t1),
    _temperature("t2", "Temperature 2", lambda r: r.t2),
    _temperature("mos_temperature", "MOS Temperature", lambda r: r.mos_temperature),
    JkBmsSensorDescription(
        key="alarm",
        name="Alarm",
        value_fn=lambda r: r.alarm.label,
        attributes_fn=lambda r: {"code": r.alarm.code},
        decimals=None,
    ),
)


def _cell_sensors() -> tuple[JkBmsSensorDescription, ...]:
    descriptions = []
    for index in range(CELL_COUNT):
        descriptions.append(
            _voltage(
                f"cell_{index + 1}_voltage",
                f"Cell {index + 1} Voltage",
                lambda r, i=index: r.cells[i].voltage,
            )
        )
        descriptions.append(
            JkBmsSensorDescription(
                key=f"cell_{index + 1}_resistance",
                name=f"Cell {index + 1} Resistance",
                native_unit_of_measurement=OHM,
                state_class=SensorStateClass.MEASUREMENT,
                entity_registry_enabled_default=False,
                value_fn=lambda r, i=index: r.cells[i].internal_resistance,
            )
        )
    return tuple(descriptions)


SENSOR_DESCRIPTIONS: tuple[JkBmsSensorDescription, ...] = PACK_SENSORS + _cell_sensors()


async def async_setup_entry(
    hass: HomeAssistant, entry: ConfigEntry, async_add_entities: AddEntitiesCallback
) -> None:
    """Set up JK BMS sensor entities."""
    runtime: JkBmsRuntime = hass.data[DOMAIN][entry.entry_id]
    entities = [JkBmsRecordSensor(runtime, description) for description in SENSOR_DESCRIPTIONS]
    async_add_entities(entities)


class JkBmsRecordSensor(SensorEntity):
    """Representation of one telemetry record field exposed as a sensor."""

    entity_description: JkBmsSensorDescription

    def __init__(self, runtime: JkBmsRuntime, description: JkBmsSensorDescription) -> None:
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
        """Attach dispatcher listeners."""
        self.async_on_remove(
            async_dispatcher_connect(self.hass, self._runtime.update_signal, self._handle_coordinator_update)
        )
        self.async_on_remove(
            async_dispatcher_connect(self.hass, self._runtime.availability_signal, self._handle_availability)
        )

    @callback
    def _handle_coordinator_update(self) -> None:
        self.async_write_ha_state()

    @callback
    def _handle_availability(self, _available: bool) -> None:
        self.async_write_ha_state()

    @property
    def available(self) -> bool:
        return self._runtime.available and self.native_value is not None

    @property
    def native_value(self) -> float | str | None:
        record = self._runtime.record
        if record is None:
            return None
        value = self.entity_description.value_fn(record)
        if isinstance(value, float) and self.entity_description.decimals is not None:
            value = round(value, self.entity_description.decimals)
        return value

    @property
    def extra_state_attributes(self) -> dict[str, Any] | None:
        record = self._runtime.record
        if record is None or self.entity_description.attributes_fn is None:
            return None
        return self.entity_description.attributes_fn(record)
