"""Tests for the light entity."""
from unittest.mock import MagicMock, patch

import pytest
import voluptuous as vol

from homeassistant.components.light import ColorMode
from homeassistant.exceptions import HomeAssistantError

from custom_components.ledzone_ble.const import (
    DOMAIN,
    SERVICE_EDIT_ZONE,
    SERVICE_SET_ZONE_MODE,
    STATUS_CHAR_UUID,
    ModeType,
)
from custom_components.ledzone_ble.light import (
    SERVICE_SCHEMAS,
    LedZoneLight,
    async_setup_entry,
)

from conftest import DEVICE_ADDRESS


@pytest.fixture
def entry():
    return MagicMock(entry_id="entry-1")


@pytest.fixture
def light(orchestrator, entry):
    return LedZoneLight(orchestrator, entry)


async def _connect(orchestrator):
    assert await orchestrator.connect()
    await orchestrator.wait_for_background_tasks()


class TestLightEntity:
    """Test state mirrored from the orchestrator."""

    def test_identity(self, light):
        assert light.unique_id == DEVICE_ADDRESS
        assert light.supported_color_modes == {ColorMode.BRIGHTNESS}
        assert light.color_mode == ColorMode.BRIGHTNESS
        assert (DOMAIN, DEVICE_ADDRESS) in light.device_info["identifiers"]

    def test_unavailable_until_connected(self, light):
        assert not light.available

    @pytest.mark.asyncio
    async def test_state(self, light, orchestrator):
        await _connect(orchestrator)

        assert light.available
        assert light.is_on
        assert light.brightness == 128

    @pytest.mark.asyncio
    async def test_attributes(self, light, orchestrator):
        await _connect(orchestrator)
        orchestrator.select_zone("z1")

        attributes = light.extra_state_attributes

        assert attributes["zones"][0] == {
            "key": "z1",
            "name": "Desk",
            "start": 0,
            "end": 50,
            "active": True,
            "mode": "static",
        }
        assert attributes["zones"][1]["mode"] is None
        assert attributes["free_ranges"] == [[50, 153]]
        assert attributes["selected_zone"] == "z1"
        assert attributes["loading_zones"] is False
        assert attributes["activity_log"][0] == "Loaded details for 2 zones."
        assert attributes["error"] is None

    @pytest.mark.asyncio
    async def test_turn_on_with_brightness(self, light, orchestrator, firmware):
        await _connect(orchestrator)
        firmware.is_on = False
        await orchestrator.set_power(False)

        await light.async_turn_on(brightness=200)

        assert firmware.is_on
        assert firmware.brightness == 200
        assert orchestrator.state.brightness == 200

    @pytest.mark.asyncio
    async def test_turn_on_when_on_only_sets_brightness(self, light, orchestrator, firmware):
        await _connect(orchestrator)
        firmware.events.clear()

        await light.async_turn_on(brightness=10)

        assert firmware.writes_to(STATUS_CHAR_UUID) == []
        assert firmware.brightness == 10

    @pytest.mark.asyncio
    async def test_turn_off(self, light, orchestrator, firmware):
        await _connect(orchestrator)

        await light.async_turn_off()

        assert not firmware.is_on
        assert not light.is_on

    @pytest.mark.asyncio
    async def test_writes_state_on_update(self, light, orchestrator):
        await light.async_added_to_hass()

        with patch.object(light, "async_write_ha_state") as write_state:
            orchestrator.set_brightness_local(50)
            write_state.assert_called_once_with()

            await light.async_will_remove_from_hass()
            orchestrator.set_brightness_local(60)
            write_state.assert_called_once_with()


class TestZoneServices:
    """Test the zone workflows exposed as entity services."""

    @pytest.mark.asyncio
    async def test_add_zone(self, light, orchestrator, firmware):
        await _connect(orchestrator)

        await light.async_add_zone("Kitchen", 100, 150)

        assert "Kitchen" in [zone.name for zone in orchestrator.state.zones]
        assert "Kitchen" in [zone["name"] for zone in firmware.zones.values()]

    @pytest.mark.asyncio
    async def test_edit_and_toggle_zone(self, light, orchestrator, firmware):
        await _connect(orchestrator)

        await light.async_edit_zone("z2", "Bookshelf", 60, 110, active=False)
        await light.async_toggle_zone("z2")

        zone = orchestrator.state.find_zone("z2")
        assert (zone.name, zone.end, zone.is_active) == ("Bookshelf", 110, True)

    @pytest.mark.asyncio
    async def test_select_and_set_mode(self, light, orchestrator, firmware):
        await _connect(orchestrator)

        await light.async_select_zone("z2")
        await light.async_set_zone_mode("z2", "fade", 5, [(255, 0, 0), (0, 0, 255)])

        details = orchestrator.state.selected_zone_details
        assert details.current_mode.type == ModeType.FADE
        assert details.current_mode.colors == ((255, 0, 0), (0, 0, 255))

        await light.async_clear_zone_mode("z2")
        assert orchestrator.state.selected_zone_details.current_mode is None

    @pytest.mark.asyncio
    async def test_clear_selection(self, light, orchestrator):
        await _connect(orchestrator)
        orchestrator.select_zone("z1")

        await light.async_select_zone(None)

        assert orchestrator.state.selected_zone_key is None

    @pytest.mark.asyncio
    async def test_failure_raises_with_error_message(self, light, orchestrator, firmware):
        await _connect(orchestrator)

        with pytest.raises(HomeAssistantError, match="overlaps an active zone"):
            await light.async_edit_zone("z2", "Shelf", 40, 100, active=True)

    @pytest.mark.asyncio
    async def test_refresh_zones(self, light, orchestrator, firmware):
        await _connect(orchestrator)
        del firmware.zones["z2"]

        await light.async_refresh_zones()

        assert [zone.key for zone in orchestrator.state.zones] == ["z1"]

    @pytest.mark.asyncio
    async def test_not_connected(self, light):
        with pytest.raises(HomeAssistantError):
            await light.async_toggle_zone("z1")


@pytest.mark.unit
class TestServiceSchemas:
    """Test service call validation."""

    def test_set_mode_colors_become_tuples(self):
        schema = vol.Schema(SERVICE_SCHEMAS[SERVICE_SET_ZONE_MODE][0])

        data = schema({"zone_key": "z1", "mode_type": "pulse", "colors": [[255, "0", 12]]})

        assert data["colors"] == [(255, 0, 12)]
        assert data["speed"] == 1

    @pytest.mark.parametrize(
        "data",
        [
            {"zone_key": "z1", "mode_type": "strobe"},
            {"zone_key": "z1", "mode_type": "fade", "colors": [[256, 0, 0]]},
            {"zone_key": "z1", "mode_type": "fade", "colors": [[1, 2]]},
        ],
    )
    def test_set_mode_rejected(self, data):
        schema = vol.Schema(SERVICE_SCHEMAS[SERVICE_SET_ZONE_MODE][0])

        with pytest.raises(vol.Invalid):
            schema(data)

    def test_edit_zone_defaults_to_active(self):
        schema = vol.Schema(SERVICE_SCHEMAS[SERVICE_EDIT_ZONE][0])

        data = schema({"zone_key": "z1", "zone_name": "Desk", "start": 0, "end": 50})

        assert data["active"] is True


class TestPlatformSetup:
    @pytest.mark.asyncio
    async def test_adds_one_light_and_registers_services(self, orchestrator, entry):
        hass = MagicMock()
        hass.data = {DOMAIN: {entry.entry_id: orchestrator}}
        add_entities = MagicMock()
        platform = MagicMock()

        with patch(
            "custom_components.ledzone_ble.light.entity_platform.async_get_current_platform",
            return_value=platform,
        ):
            await async_setup_entry(hass, entry, add_entities)

        entities = add_entities.call_args[0][0]
        assert len(entities) == 1
        assert isinstance(entities[0], LedZoneLight)
        registered = {
            call.args[0]: call.args[2]
            for call in platform.async_register_entity_service.call_args_list
        }
        assert registered == {service: method for service, (_, method) in SERVICE_SCHEMAS.items()}
        for method in registered.values():
            assert callable(getattr(entities[0], method))
