"""Finding loggers on the local network.

To discover loggers, send a UDP datagram containing "fff" from port 23 to
port 23 of 255.255.255.255. Every logger replies with

    <TAG> Mac:XXXXXX Lock:Y Port:ZZ Serial:SSSSSSSS

where TAG is "CM3" or "PT104", XXXXXX the six raw MAC bytes, Y 0x00 for
unlocked or 0x01 for locked, ZZ the big-endian port it listens on for
commands and SSSSSSSS the ASCII serial number. The field offsets move with
the serial length so each marker is searched for in turn.
"""

from __future__ import annotations

from typing import Callable, Optional, Type

from loguru import logger

from picolog_udp.device.cm3 import PLCM3
from picolog_udp.device.pt104 import PT104
from picolog_udp.device.session import LoggerSession
from picolog_udp.device.transport import UdpTransport, broadcast_and_collect
from picolog_udp.types import (
    UNKNOWN,
    DeviceDescriptor,
    DeviceLockedError,
    SessionConfig,
    Variant,
    format_mac,
)
from picolog_udp.util.defaults import BROADCAST_ADDR, DISCOVERY_PORT, DISCOVERY_WINDOW

PROBE = b"fff"
MAC_MARKER = b"Mac:"
LOCK_MARKER = b"Lock:"
PORT_MARKER = b"Port:"
SERIAL_MARKER = b"Serial:"

SESSION_CLASSES: dict[Variant, Type[LoggerSession]] = {
    Variant.CM3: PLCM3,
    Variant.PT104: PT104,
}


def session_class_for(variant: Variant) -> Type[LoggerSession]:
    return SESSION_CLASSES[variant]


def _field_after(data: bytes, marker: bytes, start: int, length: int) -> int:
    """Index of the `length` byte field following `marker`, scanning from `start`.

    Raises IndexError if the marker or its field runs past the end of `data`.
    """
    idx = data.find(marker, start)
    if idx < 0:
        raise IndexError(f"{marker!r} not found after offset {start}")
    idx += len(marker)
    if idx + length > len(data):
        raise IndexError(f"{marker!r} field truncated at offset {idx}")
    return idx


def parse_reply(
    data: bytes, address: str, variant: Variant
) -> Optional[DeviceDescriptor]:
    """Parse one broadcast reply into a descriptor.

    Returns None if the reply is not from a `variant` logger or is truncated.
    Locked devices are returned too, with `locked` set.
    """
    if not data.startswith(variant.value.encode("ascii")):
        return None
    try:
        i = _field_after(data, MAC_MARKER, len(variant.value), 6)
        mac_address = format_mac(data[i : i + 6])

        i = _field_after(data, LOCK_MARKER, i + 6, 1)
        locked = data[i] != 0

        i = _field_after(data, PORT_MARKER, i + 1, 2)
        port = int.from_bytes(data[i : i + 2], "big")

        i = _field_after(data, SERIAL_MARKER, i + 2, 0)
        serial = data[i:].decode("ascii", errors="replace").strip(" \t\r\n\x00")
    except IndexError as e:
        logger.debug("Ignoring reply from {}: {}", address, e)
        return None

    return DeviceDescriptor(
        address=address,
        mac_address=mac_address,
        port=port,
        serial=serial,
        locked=locked,
        variant=variant,
    )


def find_devices(
    variant: Variant,
    host_ip: str = "",
    wait_window: float = DISCOVERY_WINDOW,
    port: int = DISCOVERY_PORT,
    broadcast_addr: str = BROADCAST_ADDR,
) -> list[DeviceDescriptor]:
    """Broadcast the discovery probe and return a descriptor per valid reply.

    `host_ip` selects the adapter to broadcast from, "" uses all of them.
    Replies are returned in the order they were received.
    """
    descriptors = []
    for data, address in broadcast_and_collect(
        PROBE, wait_window, host_ip=host_ip, port=port, broadcast_addr=broadcast_addr
    ):
        descriptor = parse_reply(data, address, variant)
        if descriptor is not None:
            logger.info(
                "Found {} {} (MAC {}, locked={})",
                variant.value,
                descriptor,
                descriptor.mac_address,
                descriptor.locked,
            )
            descriptors.append(descriptor)
    return descriptors


def find_first_unlocked(
    variant: Variant,
    config: Optional[SessionConfig] = None,
    transport_factory: Callable[[], UdpTransport] = UdpTransport,
    **find_kwargs,
) -> Optional[LoggerSession]:
    """Open a session on the first discovered logger that can be locked.

    Devices reporting themselves locked at discovery are skipped unless
    `config.include_locked` is set; devices that refuse the lock are closed
    and skipped. Which device wins when several reply is not deterministic.

    Returns
    -------
    LoggerSession or None
        An open, converting session, or None if no device could be locked
    """
    config = SessionConfig() if config is None else config
    cls = session_class_for(variant)
    for descriptor in find_devices(
        variant, host_ip=config.host_ip, wait_window=config.discovery_window, **find_kwargs
    ):
        if descriptor.locked and not config.include_locked:
            logger.debug("Skipping {}, locked at discovery", descriptor)
            continue
        session = cls(descriptor, config=config, transport_factory=transport_factory)
        try:
            session.open()
        except DeviceLockedError:
            continue
        return session
    logger.info("No unlocked {} found", variant.value)
    return None


def connect_device(
    variant: Variant,
    address: str,
    port: int,
    config: Optional[SessionConfig] = None,
    transport_factory: Callable[[], UdpTransport] = UdpTransport,
) -> LoggerSession:
    """Open a session on a logger at a known address, skipping discovery.

    The MAC address and serial number are unknown, so the EEPROM MAC check is
    skipped.
    """
    descriptor = DeviceDescriptor(
        address=address,
        mac_address=UNKNOWN,
        port=port,
        serial=UNKNOWN,
        locked=False,
        variant=variant,
    )
    session = session_class_for(variant)(
        descriptor, config=config, transport_factory=transport_factory
    )
    session.open()
    return session
