"""Protocol layer for LED Zone BLE strip controllers.

This module handles:
- Request building (power, brightness, zone and mode JSON documents)
- Response decoding and schema validation

Every payload is UTF-8 text. Scalars travel as their string form, structured
values as compact JSON objects. The firmware is loose about types (active
flags arrive as booleans or as "true"/"false" strings), so every response goes
through a voluptuous schema that accepts the documented variants and rejects
everything else with ``ValidationFailure``.
"""
from __future__ import annotations

import json
import logging
import secrets
from typing import Any, Iterable, Sequence

import voluptuous as vol

from .const import (
    MAX_MODE_COLORS,
    MODE_REQUEST_CLEAR,
    MODE_REQUEST_EDIT,
    MODES_WITHOUT_COLORS,
    ModeType,
)
from .exceptions import InvalidRequest, ValidationFailure
from .models import Color, Mode, Zone, ZoneNameEntry, clamp_byte

_LOGGER = logging.getLogger(__name__)


# =============================================================================
# FIELD VALIDATORS
# =============================================================================

def _integer(value: Any) -> int:
    """Accept an integral JSON number (bools are not numbers here)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise vol.Invalid(f"expected an integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise vol.Invalid(f"expected an integer, got {value!r}")
    return int(value)


def _byte(value: Any) -> int:
    """Accept any JSON number and clamp it into a color component."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise vol.Invalid(f"expected a color component, got {value!r}")
    if value != value:  # NaN
        raise vol.Invalid("color component is NaN")
    return clamp_byte(round(value))


def _active_flag(value: Any) -> bool:
    """Accept a boolean or the strings "true"/"false" (any case)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        norm = value.strip().lower()
        if norm == "true":
            return True
        if norm == "false":
            return False
    raise vol.Invalid(f"expected a boolean flag, got {value!r}")


def _check_mode_colors(mode: dict[str, Any]) -> dict[str, Any]:
    if not mode["colors"] and mode["type"] not in MODES_WITHOUT_COLORS:
        raise vol.Invalid(f"mode type {mode['type'].value} needs at least one color")
    return mode


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

STATUS_SCHEMA = vol.Schema(
    vol.All(str, vol.Strip, vol.Lower, vol.In(("true", "false")), lambda v: v == "true")
)

BRIGHTNESS_SCHEMA = vol.Schema(vol.All(str, vol.Strip, vol.Coerce(int), clamp_byte))

COLOR_SCHEMA = vol.All(vol.ExactSequence([_byte, _byte, _byte]), vol.Coerce(tuple))

COLORS_SCHEMA = vol.All([COLOR_SCHEMA], vol.Length(max=MAX_MODE_COLORS))

MODE_SCHEMA = vol.All(
    vol.Schema(
        {
            vol.Required("key"): str,
            vol.Required("type"): vol.Coerce(ModeType),
            vol.Required("speed"): _integer,
            vol.Required("colors"): COLORS_SCHEMA,
            vol.Optional("colorLength"): _integer,
            # Firmware echoes the owning zone range inside the mode
            vol.Optional("start"): _integer,
            vol.Optional("end"): _integer,
        },
        extra=vol.REMOVE_EXTRA,
    ),
    _check_mode_colors,
)

ZONE_SCHEMA = vol.Schema(
    {
        vol.Required("name"): str,
        vol.Required("key"): str,
        vol.Required("start"): _integer,
        vol.Required("end"): _integer,
        vol.Required("isActive"): _active_flag,
        vol.Optional("currentMode"): vol.Any(None, MODE_SCHEMA),
    },
    extra=vol.REMOVE_EXTRA,
)

ZONE_NAME_SCHEMA = vol.Schema(
    {
        vol.Required("name"): str,
        vol.Required("key"): str,
        vol.Required("isActive"): _active_flag,
    },
    extra=vol.REMOVE_EXTRA,
)

ZONE_LIST_SCHEMA = vol.Schema(
    {
        vol.Required("data"): [ZONE_SCHEMA],
        vol.Required("length"): _integer,
    },
    extra=vol.REMOVE_EXTRA,
)

ZONE_NAME_LIST_SCHEMA = vol.Schema(
    {
        vol.Required("data"): [ZONE_NAME_SCHEMA],
        vol.Required("length"): _integer,
    },
    extra=vol.REMOVE_EXTRA,
)


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

ZONE_REQUEST_SCHEMA = vol.Schema(
    {
        vol.Required("name"): vol.All(str, vol.Length(min=1)),
        vol.Required("start"): vol.All(_integer, vol.Range(min=0)),
        vol.Required("end"): vol.All(_integer, vol.Range(min=1)),
    }
)

MODE_REQUEST_SCHEMA = vol.All(
    vol.Schema(
        {
            vol.Required("type"): vol.Coerce(ModeType),
            vol.Required("speed"): vol.All(_integer, vol.Range(min=0)),
            vol.Required("colors"): COLORS_SCHEMA,
        }
    ),
    _check_mode_colors,
)


def _validate_request(schema: vol.Schema, data: dict[str, Any]) -> dict[str, Any]:
    try:
        return schema(data)
    except vol.Invalid as ex:
        raise InvalidRequest(f"Invalid request: {ex}") from ex


def _require_key(key: str) -> str:
    if not isinstance(key, str) or not key.strip():
        raise InvalidRequest("Zone key must be a non-empty string")
    return key.strip()


# =============================================================================
# ENCODING
# =============================================================================

def new_correlation_key() -> str:
    """Return a short random key for requests the device re-keys itself."""
    return secrets.token_hex(4)


def encode_json(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def build_power_request(turn_on: bool) -> bytes:
    return b"true" if turn_on else b"false"


def build_brightness_request(brightness: int) -> bytes:
    """Encode brightness as decimal text, rejecting values outside 0-255."""
    try:
        value = _integer(brightness)
    except vol.Invalid as ex:
        raise InvalidRequest(f"Invalid brightness: {brightness!r}") from ex
    if not 0 <= value <= 255:
        raise InvalidRequest(f"Brightness {value} outside 0-255")
    return str(value).encode("utf-8")


def build_add_zone_request(name: str, start: int, end: int) -> bytes:
    """Build the zone creation document.

    The key is only a correlation id; the firmware assigns and persists the
    real one, which is learned from a later listing.
    """
    zone = _validate_request(ZONE_REQUEST_SCHEMA, {"name": name, "start": start, "end": end})
    if zone["start"] >= zone["end"]:
        raise InvalidRequest(f"Zone start {zone['start']} must be below end {zone['end']}")
    return encode_json(
        {
            "name": zone["name"],
            "key": new_correlation_key(),
            "start": zone["start"],
            "end": zone["end"],
        }
    )


def build_edit_zone_request(
    key: str, name: str, start: int, end: int, is_active: bool
) -> bytes:
    key = _require_key(key)
    zone = _validate_request(ZONE_REQUEST_SCHEMA, {"name": name, "start": start, "end": end})
    if zone["start"] >= zone["end"]:
        raise InvalidRequest(f"Zone start {zone['start']} must be below end {zone['end']}")
    return encode_json(
        {
            "name": zone["name"],
            "key": key,
            "start": zone["start"],
            "end": zone["end"],
            "isActive": "true" if is_active else "false",
        }
    )


def build_set_mode_request(
    zone_key: str, mode_type: ModeType | str, speed: int, colors: Iterable[Sequence[int]]
) -> bytes:
    """Build the editCurrentMode envelope.

    Colors are clamped into 0-255; ``colorLength`` always equals the number
    of colors sent.
    """
    zone_key = _require_key(zone_key)
    try:
        raw_colors = [list(color) for color in colors]
    except TypeError as ex:
        raise InvalidRequest(f"Invalid colors: {colors!r}") from ex
    mode = _validate_request(
        MODE_REQUEST_SCHEMA, {"type": mode_type, "speed": speed, "colors": raw_colors}
    )
    return encode_json(
        {
            "key": zone_key,
            "type": MODE_REQUEST_EDIT,
            "mode": {
                "key": new_correlation_key(),
                "type": mode["type"].value,
                "speed": mode["speed"],
                "colors": color_list(mode["colors"]),
                "colorLength": len(mode["colors"]),
                # Firmware expects a string here
                "isActive": "true",
            },
        }
    )


def build_clear_mode_request(zone_key: str) -> bytes:
    return encode_json({"key": _require_key(zone_key), "type": MODE_REQUEST_CLEAR})


def build_zone_details_query(key: str) -> bytes:
    return _require_key(key).encode("utf-8")


# =============================================================================
# DECODING
# =============================================================================

def decode_text(data: bytes | bytearray) -> str:
    """Decode a characteristic value as trimmed UTF-8 text."""
    try:
        return bytes(data).decode("utf-8").strip()
    except UnicodeDecodeError as ex:
        raise ValidationFailure("Response is not valid UTF-8") from ex


def _decode_json(data: bytes | bytearray, schema: Any, what: str) -> Any:
    text = decode_text(data)
    try:
        payload = json.loads(text)
    except ValueError as ex:
        raise ValidationFailure(f"{what} is not valid JSON: {ex}") from ex
    try:
        return schema(payload)
    except vol.Invalid as ex:
        raise ValidationFailure(f"{what} does not match the schema: {ex}") from ex


def _mode_from_dict(data: dict[str, Any]) -> Mode:
    return Mode(
        key=data["key"],
        type=data["type"],
        speed=data["speed"],
        colors=tuple(data["colors"]),
    )


def _zone_from_dict(data: dict[str, Any]) -> Zone:
    mode = data.get("currentMode")
    return Zone(
        name=data["name"],
        key=data["key"],
        start=data["start"],
        end=data["end"],
        is_active=data["isActive"],
        current_mode=_mode_from_dict(mode) if mode else None,
    )


def parse_power(data: bytes | bytearray) -> bool:
    text = decode_text(data)
    try:
        return STATUS_SCHEMA(text)
    except vol.Invalid as ex:
        raise ValidationFailure(f"Invalid status value: {text!r}") from ex


def parse_brightness(data: bytes | bytearray) -> int:
    text = decode_text(data)
    try:
        return BRIGHTNESS_SCHEMA(text)
    except vol.Invalid as ex:
        raise ValidationFailure(f"Invalid brightness value: {text!r}") from ex


def parse_zone(data: bytes | bytearray) -> Zone:
    return _zone_from_dict(_decode_json(data, ZONE_SCHEMA, "Zone details"))


def parse_zone_list(data: bytes | bytearray) -> list[Zone]:
    listing = _decode_json(data, ZONE_LIST_SCHEMA, "Zone listing")
    if listing["length"] != len(listing["data"]):
        _LOGGER.debug(
            "Zone listing reports length %d but carries %d entries",
            listing["length"], len(listing["data"]),
        )
    return [_zone_from_dict(zone) for zone in listing["data"]]


def parse_zone_names(data: bytes | bytearray) -> list[ZoneNameEntry]:
    listing = _decode_json(data, ZONE_NAME_LIST_SCHEMA, "Zone names listing")
    if listing["length"] != len(listing["data"]):
        _LOGGER.debug(
            "Zone names listing reports length %d but carries %d entries",
            listing["length"], len(listing["data"]),
        )
    return [
        ZoneNameEntry(name=entry["name"], key=entry["key"], is_active=entry["isActive"])
        for entry in listing["data"]
    ]


def color_list(colors: Iterable[Color]) -> list[list[int]]:
    """Render colors the way they appear on the wire."""
    return [list(color) for color in colors]
