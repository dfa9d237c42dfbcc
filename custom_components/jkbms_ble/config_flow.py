"""Config flow for the JK BMS custom integration."""

from __future__ import annotations

import logging
from typing import Optional

import voluptuous as vol
from homeassistant import config_entries
from homeassistant.components.bluetooth import BluetoothServiceInfoBleak
from homeassistant.core import callback
from homeassistant.helpers import config_validation as cv

from .const import (
    CONF_DEVICE_NAME,
    CONF_MAC,
    CONF_PUBLISH_INTERVAL,
    DEFAULT_PUBLISH_INTERVAL,
    DEVICE_PREFIX,
    DOMAIN,
)

LOGGER = logging.getLogger(__name__)


class JkBmsConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle the configuration flow."""

    VERSION = 1

    def __init__(self) -> None:
        self._discovery_mac: Optional[str] = None
        self._discovery_name: Optional[str] = None

    async def async_step_user(self, user_input: Optional[dict] = None):
        """Let the user enter the BMS MAC address by hand."""
        errors: dict[str, str] = {}
        if user_input is not None:
            mac = user_input[CONF_MAC].strip().upper()
            if len(mac.split(":")) != 6:
                errors[CONF_MAC] = "invalid_mac"
            else:
                await self.async_set_unique_id(mac)
                self._abort_if_unique_id_configured()
                name = user_input.get(CONF_DEVICE_NAME) or mac
                return self.async_create_entry(
                    title=name, data={CONF_MAC: mac, CONF_DEVICE_NAME: name}
                )

        return self.async_show_form(
            step_id="user",
            data_schema=vol.Schema(
                {
                    vol.Required(CONF_MAC): cv.string,
                    vol.Optional(CONF_DEVICE_NAME): cv.string,
                }
            ),
            errors=errors,
        )

    async def async_step_bluetooth(self, discovery_info: BluetoothServiceInfoBleak):
        """Handle bluetooth discovery from the HA bluetooth integration."""
        name = discovery_info.name or ""
        if not name.startswith(DEVICE_PREFIX):
            LOGGER.debug("Ignoring %s (%s): not a JK BMS", discovery_info.address, name)
            return self.async_abort(reason="not_supported")
        mac = discovery_info.address
        await self.async_set_unique_id(mac)
        self._abort_if_unique_id_configured()
        self._discovery_mac = mac
        self._discovery_name = name
        self.context["title_placeholders"] = {"name": self._discovery_name}
        return await self.async_step_discovery_confirm()

    async def async_step_discovery_confirm(self, user_input: Optional[dict] = None):
        """Confirm adding a device discovered over bluetooth."""
        if user_input is None:
            return self.async_show_form(
                step_id="discovery_confirm",
                description_placeholders={"name": self._discovery_name or self._discovery_mac or ""},
                data_schema=vol.Schema({}),
            )

        if not self._discovery_mac:
            return self.async_abort(reason="unknown")

        data = {CONF_MAC: self._discovery_mac}
        if self._discovery_name:
            data[CONF_DEVICE_NAME] = self._discovery_name
        return self.async_create_entry(title=self._discovery_name or self._discovery_mac, data=data)

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: config_entries.ConfigEntry):
        return JkBmsOptionsFlowHandler(config_entry)


class JkBmsOptionsFlowHandler(config_entries.OptionsFlow):
    """Options for how often decoded records are published."""

    def __init__(self, entry: config_entries.ConfigEntry) -> None:
        self._entry = entry

    async def async_step_init(self, user_input: Optional[dict] = None):
        if user_input is not None:
            return self.async_create_entry(title="", data=user_input)
        current = self._entry.options.get(CONF_PUBLISH_INTERVAL, DEFAULT_PUBLISH_INTERVAL)
        return self.async_show_form(
            step_id="init",
            data_schema=vol.Schema(
                {
                    vol.Required(CONF_PUBLISH_INTERVAL, default=current): vol.All(
                        vol.Coerce(int), vol.Range(min=0, max=3600)
                    ),
                }
            ),
        )
