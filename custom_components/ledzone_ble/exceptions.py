"""Failures raised by the LED Zone protocol client.

The orchestrator catches ``LedZoneError`` at every workflow boundary, so
anything the client can raise derives from it.
"""
from __future__ import annotations


class LedZoneError(Exception):
    """Base class for all LED Zone errors."""


class NotConnected(LedZoneError):
    """An operation was attempted without an established session."""


class TransportFailure(LedZoneError):
    """Session establishment or wireless I/O failed."""


class UnsupportedPlatform(TransportFailure):
    """No usable Bluetooth adapter is available on this host."""


class ValidationFailure(LedZoneError):
    """A device response does not match the expected schema."""


class InvalidRequest(LedZoneError, ValueError):
    """Caller input can never form a valid request."""
