"""Config flow for LED Zone BLE integration."""
from __future__ import annotations

import logging
import re
from typing import Any, Mapping

import voluptuous as vol

from homeassistant import config_entries
from homeassistant.const import CONF_MAC, CONF_NAME
from homeassistant.core import callback
from homeassistant.data_entry_flow import FlowResult
from homeassistant.helpers.device_registry import format_mac

from .const import (
    CONF_ADD_ZONE_SETTLE,
    CONF_EDIT_ZONE_SETTLE,
    CONF_LED_COUNT,
    CONF_MODE_SETTLE,
    CONF_OPERATION_TIMEOUT,
    CONF_RECONCILE_ATTEMPTS,
    CONF_ZONE_FETCH_PACING,
    CONF_ZONE_QUERY_DELAY,
    DEFAULT_ADD_ZONE_SETTLE,
    DEFAULT_EDIT_ZONE_SETTLE,
    DEFAULT_LED_COUNT,
    DEFAULT_MODE_SETTLE,
    DEFAULT_OPERATION_TIMEOUT,
    DEFAULT_RECONCILE_ATTEMPTS,
    DEFAULT_ZONE_FETCH_PACING,
    DEFAULT_ZONE_QUERY_DELAY,
    DOMAIN,
    MAX_LED_COUNT,
)

_LOGGER = logging.getLogger(__name__)

_MAC_PATTERN = re.compile(r"^([0-9A-Fa-f]{2}[:-]){5}[0-9A-Fa-f]{2}$")

# option key -> (default, validator)
_OPTION_FIELDS: dict[str, tuple[Any, Any]] = {
    CONF_LED_COUNT: (
        DEFAULT_LED_COUNT,
        vol.All(vol.Coerce(int), vol.Range(min=1, max=MAX_LED_COUNT)),
    ),
    CONF_OPERATION_TIMEOUT: (
        DEFAULT_OPERATION_TIMEOUT,
        vol.All(vol.Coerce(float), vol.Range(min=1, max=60)),
    ),
    CONF_ZONE_QUERY_DELAY: (
        DEFAULT_ZONE_QUERY_DELAY,
        vol.All(vol.Coerce(float), vol.Range(min=0, max=5)),
    ),
    CONF_ZONE_FETCH_PACING: (
        DEFAULT_ZONE_FETCH_PACING,
        vol.All(vol.Coerce(float), vol.Range(min=0, max=5)),
    ),
    CONF_ADD_ZONE_SETTLE: (
        DEFAULT_ADD_ZONE_SETTLE,
        vol.All(vol.Coerce(float), vol.Range(min=0, max=10)),
    ),
    CONF_EDIT_ZONE_SETTLE: (
        DEFAULT_EDIT_ZONE_SETTLE,
        vol.All(vol.Coerce(float), vol.Range(min=0, max=10)),
    ),
    CONF_MODE_SETTLE: (
        DEFAULT_MODE_SETTLE,
        vol.All(vol.Coerce(float), vol.Range(min=0, max=10)),
    ),
    CONF_RECONCILE_ATTEMPTS: (
        DEFAULT_RECONCILE_ATTEMPTS,
        vol.All(vol.Coerce(int), vol.Range(min=1, max=10)),
    ),
}


def default_options() -> dict[str, Any]:
    """Return the options a new entry starts with."""
    return {key: default for key, (default, _) in _OPTION_FIELDS.items()}


def options_schema(options: Mapping[str, Any]) -> vol.Schema:
    """Build the options form, pre-filled with the current values."""
    return vol.Schema(
        {
            vol.Optional(key, default=options.get(key, default)): validator
            for key, (default, validator) in _OPTION_FIELDS.items()
        }
    )


class LedZoneConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle config flow for LED Zone BLE."""

    VERSION = 1

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Handle manual setup by device address."""
        errors: dict[str, str] = {}

        if user_input is not None:
            address = user_input[CONF_MAC].strip()
            if not _MAC_PATTERN.match(address):
                errors[CONF_MAC] = "invalid_mac"
            else:
                address = address.replace("-", ":").upper()
                await self.async_set_unique_id(format_mac(address))
                self._abort_if_unique_id_configured()

                name = (user_input.get(CONF_NAME) or "").strip() or address
                _LOGGER.debug("Creating entry for %s (%s)", name, address)
                return self.async_create_entry(
                    title=name,
                    data={CONF_MAC: address, CONF_NAME: name},
                    options=default_options(),
                )

        return self.async_show_form(
            step_id="user",
            data_schema=vol.Schema(
                {
                    vol.Required(CONF_MAC): str,
                    vol.Optional(CONF_NAME): str,
                }
            ),
            errors=errors,
        )

    @staticmethod
    @callback
    def async_get_options_flow(
        config_entry: config_entries.ConfigEntry,
    ) -> OptionsFlowHandler:
        """Get the options flow handler."""
        return OptionsFlowHandler(config_entry)


class OptionsFlowHandler(config_entries.OptionsFlow):
    """Handle timing and strip length options."""

    def __init__(self, config_entry: config_entries.ConfigEntry) -> None:
        """Initialize options flow."""
        self._config_entry = config_entry

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Handle options."""
        if user_input is not None:
            return self.async_create_entry(title="", data=user_input)

        return self.async_show_form(
            step_id="init",
            data_schema=options_schema(self._config_entry.options),
        )
