from .mock_transport import (
    DEFAULT_MAC,
    LOCK_REFUSED,
    LOCK_SUCCESS,
    MockLoggerTransport,
    build_channel_packet,
    build_eeprom,
    build_packet,
    build_reply,
)

__all__ = [
    "DEFAULT_MAC",
    "LOCK_REFUSED",
    "LOCK_SUCCESS",
    "MockLoggerTransport",
    "build_channel_packet",
    "build_eeprom",
    "build_packet",
    "build_reply",
]
