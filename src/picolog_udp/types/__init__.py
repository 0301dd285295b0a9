"""
Data model, configuration and exceptions for picolog_udp.

- `Variant` names the two logger families (PicoLog CM3, USB PT-104).
- `DeviceDescriptor` is what discovery produces; it opens a session.
- `CalibrationData` holds the EEPROM calibration constants of a session.
- `Sample` is delivered to listeners for every decoded telemetry packet.
- `SessionConfig` holds user settings for discovery and the handshake.
"""

from .config import SessionConfig
from .data import (
    UNKNOWN,
    CalibrationData,
    DeviceDescriptor,
    Sample,
    SessionState,
    Variant,
    format_mac,
)


# Exceptions
class CommsError(Exception):
    """Base exception for communication errors."""

    pass


class DeviceLockedError(CommsError):
    """Raised when the device is locked to another host."""

    pass


class HandshakeError(CommsError):
    """Raised when the lock/calibration/configure sequence fails.

    The session has already been torn down when this is raised.
    """

    pass


class MacMismatchError(HandshakeError):
    """Raised when the EEPROM MAC differs from the one seen at discovery."""

    def __init__(self, message, discovered_mac=None, eeprom_mac=None):
        super().__init__(message)
        self.discovered_mac = discovered_mac
        self.eeprom_mac = eeprom_mac


class SessionClosedError(CommsError):
    """Raised when sending on a disposed session or closed transport."""

    pass


class SessionFailedError(CommsError):
    """A fatal receive-loop failure, delivered to failure listeners."""

    pass


__all__ = [
    "UNKNOWN",
    "CalibrationData",
    "CommsError",
    "DeviceDescriptor",
    "DeviceLockedError",
    "HandshakeError",
    "MacMismatchError",
    "Sample",
    "SessionClosedError",
    "SessionConfig",
    "SessionFailedError",
    "SessionState",
    "Variant",
    "format_mac",
]
