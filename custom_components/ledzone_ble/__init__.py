"""LED Zone BLE integration for Home Assistant."""
from __future__ import annotations

import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_MAC, CONF_NAME, Platform
from homeassistant.core import HomeAssistant

from .client import LedZoneClient
from .const import (
    CONF_OPERATION_TIMEOUT,
    CONF_ZONE_QUERY_DELAY,
    DEFAULT_OPERATION_TIMEOUT,
    DEFAULT_ZONE_QUERY_DELAY,
    DOMAIN,
)
from .orchestrator import SyncSettings, ZoneSyncOrchestrator

_LOGGER = logging.getLogger(__name__)

PLATFORMS: list[Platform] = [Platform.LIGHT]


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up LED Zone BLE from a config entry."""
    from homeassistant.components import bluetooth

    address = entry.data[CONF_MAC]
    name = entry.data.get(CONF_NAME, address)
    options = entry.options

    _LOGGER.debug("Setting up LED Zone device: %s (%s)", name, address)

    client = LedZoneClient(
        address,
        name=name,
        ble_device_lookup=lambda addr: bluetooth.async_ble_device_from_address(
            hass, addr, connectable=True
        ),
        operation_timeout=float(options.get(CONF_OPERATION_TIMEOUT, DEFAULT_OPERATION_TIMEOUT)),
        zone_query_delay=float(options.get(CONF_ZONE_QUERY_DELAY, DEFAULT_ZONE_QUERY_DELAY)),
    )
    orchestrator = ZoneSyncOrchestrator(client, SyncSettings.from_options(options))
    orchestrator.set_supports_ble(bluetooth.async_scanner_count(hass, connectable=True) > 0)

    hass.data.setdefault(DOMAIN, {})
    hass.data[DOMAIN][entry.entry_id] = orchestrator

    # Connecting can take several seconds, don't hold up startup
    entry.async_create_background_task(
        hass, orchestrator.auto_connect(), f"{DOMAIN}_auto_connect_{address}"
    )

    entry.async_on_unload(entry.add_update_listener(async_options_updated))

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)

    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    if unload_ok := await hass.config_entries.async_unload_platforms(entry, PLATFORMS):
        orchestrator: ZoneSyncOrchestrator = hass.data[DOMAIN].pop(entry.entry_id)
        await orchestrator.stop()

    return unload_ok


async def async_options_updated(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Handle options update."""
    # Reload the entry to apply new timings
    await hass.config_entries.async_reload(entry.entry_id)
