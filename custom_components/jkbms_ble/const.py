"""Constants for the JK BMS Home Assistant integration."""

from __future__ import annotations

from homeassistant.const import Platform

DOMAIN = "jkbms_ble"
PLATFORMS: list[Platform] = [Platform.SENSOR, Platform.BINARY_SENSOR]

CONF_MAC = "mac"
CONF_DEVICE_NAME = "device_name"
CONF_PUBLISH_INTERVAL = "publish_interval"

DEVICE_PREFIX = "JK-"

DEFAULT_PUBLISH_INTERVAL = 5  # seconds between published records
MIN_RECONNECT_DELAY = 5
MAX_RECONNECT_DELAY = 120
KEEPALIVE_INTERVAL = 60  # seconds without a record before re-requesting cell info
MAX_KEEPALIVE_MISSES = 2  # reconnect after this many missed records
