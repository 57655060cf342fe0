"""Constants for the LED Zone BLE integration."""
from enum import Enum
from typing import Final

DOMAIN: Final = "ledzone_ble"

# Configuration keys
CONF_LED_COUNT: Final = "led_count"
CONF_OPERATION_TIMEOUT: Final = "operation_timeout"
CONF_ZONE_QUERY_DELAY: Final = "zone_query_delay"
CONF_ZONE_FETCH_PACING: Final = "zone_fetch_pacing"
CONF_ADD_ZONE_SETTLE: Final = "add_zone_settle"
CONF_EDIT_ZONE_SETTLE: Final = "edit_zone_settle"
CONF_MODE_SETTLE: Final = "mode_settle"
CONF_RECONCILE_ATTEMPTS: Final = "reconcile_attempts"

# Entity services
SERVICE_ADD_ZONE: Final = "add_zone"
SERVICE_EDIT_ZONE: Final = "edit_zone"
SERVICE_TOGGLE_ZONE: Final = "toggle_zone"
SERVICE_SELECT_ZONE: Final = "select_zone"
SERVICE_SET_ZONE_MODE: Final = "set_zone_mode"
SERVICE_CLEAR_ZONE_MODE: Final = "clear_zone_mode"
SERVICE_REFRESH_ZONES: Final = "refresh_zones"

ATTR_ZONE_KEY: Final = "zone_key"
ATTR_ZONE_NAME: Final = "zone_name"
ATTR_START: Final = "start"
ATTR_END: Final = "end"
ATTR_ACTIVE: Final = "active"
ATTR_MODE_TYPE: Final = "mode_type"
ATTR_SPEED: Final = "speed"
ATTR_COLORS: Final = "colors"

# Default values
DEFAULT_NAME: Final = "BLE device"
DEFAULT_LED_COUNT: Final = 153
DEFAULT_BRIGHTNESS: Final = 20
DEFAULT_OPERATION_TIMEOUT: Final = 10.0  # seconds per wireless call
DEFAULT_SCAN_TIMEOUT: Final = 10.0
DEFAULT_RECONCILE_ATTEMPTS: Final = 1

# Settle delays (seconds). The firmware applies JSON writes asynchronously
# and never acknowledges them, so reads are delayed after writes.
DEFAULT_ZONE_QUERY_DELAY: Final = 0.05
DEFAULT_ZONE_FETCH_PACING: Final = 0.05
DEFAULT_CONNECT_SETTLE: Final = 0.1
DEFAULT_ADD_ZONE_SETTLE: Final = 0.3
DEFAULT_EDIT_ZONE_SETTLE: Final = 0.2
DEFAULT_MODE_SETTLE: Final = 0.4
DEFAULT_ERROR_DISPLAY_DURATION: Final = 4.0

LOG_LIMIT: Final = 6
MAX_LED_COUNT: Final = 2048
MAX_MODE_COLORS: Final = 10

# BLE UUIDs
MAIN_SERVICE_UUID: Final = "a61d1283-f877-41b5-bb7b-cf28d0c6e883"
STATUS_CHAR_UUID: Final = "08fbea13-2bf0-44ac-bca1-2642347689bb"
BRIGHTNESS_CHAR_UUID: Final = "c227bf28-0fe4-4861-8741-83a0d6ad7e3d"

ZONE_SERVICE_UUID: Final = "e9ea5811-bc29-4cf1-9d02-456a5a23dff3"
ALL_ZONES_CHAR_UUID: Final = "b7b0b16d-2cd6-48f8-aa2d-4cd06723c807"
ADD_ZONE_CHAR_UUID: Final = "c3e1efa6-4cc5-4c96-b212-75b96138682d"
EDIT_ZONE_CHAR_UUID: Final = "c1cc8a66-50f8-4c1a-bac3-c5ca076a13e2"
ZONE_NAMES_CHAR_UUID: Final = "a1b2c3d4-e5f6-7890-abcd-ef1234567890"

MODE_SERVICE_UUID: Final = "f427308f-a5e0-4ff6-8717-df822d42ada8"
EDIT_MODE_CHAR_UUID: Final = "0508dcb3-840c-40db-8c2a-2fc5428627f2"
ZONE_DETAILS_CHAR_UUID: Final = "4c65329e-aa86-448c-b90e-f616ce07ff08"


class Endpoint(str, Enum):
    """Logical endpoints exposed by the strip controller."""

    STATUS = "status"
    BRIGHTNESS = "brightness"
    ALL_ZONES = "all_zones"
    ADD_ZONE = "add_zone"
    EDIT_ZONE = "edit_zone"
    ZONE_NAMES = "zone_names"
    EDIT_MODE = "edit_mode"
    ZONE_DETAILS = "zone_details"


# (service, characteristic) address of every endpoint
ENDPOINTS: Final = {
    Endpoint.STATUS: (MAIN_SERVICE_UUID, STATUS_CHAR_UUID),
    Endpoint.BRIGHTNESS: (MAIN_SERVICE_UUID, BRIGHTNESS_CHAR_UUID),
    Endpoint.ALL_ZONES: (ZONE_SERVICE_UUID, ALL_ZONES_CHAR_UUID),
    Endpoint.ADD_ZONE: (ZONE_SERVICE_UUID, ADD_ZONE_CHAR_UUID),
    Endpoint.EDIT_ZONE: (ZONE_SERVICE_UUID, EDIT_ZONE_CHAR_UUID),
    Endpoint.ZONE_NAMES: (ZONE_SERVICE_UUID, ZONE_NAMES_CHAR_UUID),
    Endpoint.EDIT_MODE: (MODE_SERVICE_UUID, EDIT_MODE_CHAR_UUID),
    Endpoint.ZONE_DETAILS: (MODE_SERVICE_UUID, ZONE_DETAILS_CHAR_UUID),
}


class ModeType(str, Enum):
    """Animation types understood by the firmware."""

    STATIC = "static"
    FADE = "fade"
    PULSE = "pulse"
    RAINBOW = "rainbow"
    FIRE = "fire"


# Rainbow derives its hues itself, every other type needs at least one color
MODES_WITHOUT_COLORS: Final = frozenset({ModeType.RAINBOW})

# Edit-mode request types
MODE_REQUEST_EDIT: Final = "editCurrentMode"
MODE_REQUEST_CLEAR: Final = "setCurrentToNull"

# User-facing workflow failure messages
MSG_CONNECTION_FAILED: Final = "Connection failed."
MSG_AUTO_CONNECT_FAILED: Final = "Auto-connection failed."
MSG_WRITE_FAILED: Final = "Write failed."
MSG_ADD_ZONE_FAILED: Final = "Failed to add zone."
MSG_EDIT_ZONE_FAILED: Final = "Failed to edit zone."
MSG_SET_MODE_FAILED: Final = "Failed to set zone mode."
MSG_CLEAR_MODE_FAILED: Final = "Failed to clear zone mode."
MSG_LOAD_ZONES_FAILED: Final = "Failed to load zones."
MSG_LOAD_DETAILS_FAILED: Final = "Failed to load zone details."
MSG_LOAD_NAMES_FAILED: Final = "Failed to fetch zone names."
MSG_ZONE_OVERLAP: Final = "Zone {name} ({start}-{end}) overlaps an active zone."
