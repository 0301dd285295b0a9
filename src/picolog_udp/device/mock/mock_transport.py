"""In-process stand-in for a logger on the other end of a `UdpTransport`.

`MockLoggerTransport` answers the lock and read-EEPROM requests the way a
real CM3 or PT-104 does, records every datagram sent to it, and lets the
caller push telemetry into the receive loop with `emit`. The `build_*`
helpers produce the wire formats of discovery replies, EEPROM dumps and
telemetry packets.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional, Sequence

from picolog_udp.types import SessionClosedError, Variant
from picolog_udp.types.data import (
    EEPROM_CALIBRATION_OFFSETS,
    EEPROM_MAC_OFFSET,
    EEPROM_TAG,
)

LOCK_SUCCESS = b"Lock Success"
LOCK_REFUSED = b"Device locked by another host"
DEFAULT_MAC = bytes([0x00, 0x0C, 0xB5, 0x01, 0x02, 0x03])


def build_reply(
    variant: Variant,
    mac: bytes = DEFAULT_MAC,
    locked: bool = False,
    port: int = 5000,
    serial: str = "AB123/456",
) -> bytes:
    """A discovery reply as sent by a logger."""
    return (
        variant.value.encode("ascii")
        + b" Mac:"
        + mac
        + b" Lock:"
        + bytes([1 if locked else 0])
        + b" Port:"
        + port.to_bytes(2, "big")
        + b" Serial:"
        + serial.encode("ascii")
        + b" "
    )


def build_eeprom(
    calibration: Sequence[int] = (1000, 2000, 3000, 4000),
    mac: bytes = DEFAULT_MAC,
    byte_order: str = "big",
) -> bytes:
    """A read-EEPROM response holding four calibration words and a MAC."""
    body = bytearray(EEPROM_MAC_OFFSET + len(mac) + 8)
    for offset, word in zip(EEPROM_CALIBRATION_OFFSETS, calibration):
        body[offset : offset + 4] = word.to_bytes(4, byte_order, signed=True)
    body[EEPROM_MAC_OFFSET : EEPROM_MAC_OFFSET + len(mac)] = mac
    return EEPROM_TAG + bytes(body)


def build_packet(tags: Sequence[int], samples: Sequence[int]) -> bytes:
    """Four (tag, 32 bit big-endian sample) records."""
    return b"".join(
        bytes([tag]) + (sample & 0xFFFFFFFF).to_bytes(4, "big")
        for tag, sample in zip(tags, samples)
    )


def build_channel_packet(channel: int, samples: Sequence[int]) -> bytes:
    """A packet for 1-based `channel` with the standard quadruple."""
    first = 4 * (channel - 1)
    return build_packet(range(first, first + 4), samples)


class MockLoggerTransport:
    """Transport double simulating a logger.

    Parameters
    ----------
    lock_response : bytes
        Reply to the lock command
    eeprom : bytes
        Reply to the read-EEPROM command
    """

    def __init__(
        self, lock_response: bytes = LOCK_SUCCESS, eeprom: Optional[bytes] = None
    ):
        self.lock_response = lock_response
        self.eeprom = build_eeprom() if eeprom is None else eeprom
        self.sent: list[bytes] = []
        self.peer: Optional[tuple[str, int]] = None
        self.close_count = 0
        self._open = False
        self._pending: list[bytes] = []
        self._on_packet: Optional[Callable[[bytes], None]] = None
        self._on_error: Optional[Callable[[BaseException], None]] = None
        self._lock = threading.Lock()

    def is_open(self) -> bool:
        return self._open

    def connect(self, address: str, port: int) -> None:
        self.peer = (address, port)
        self._open = True

    def send(self, data: bytes) -> None:
        if not self._open:
            raise SessionClosedError(f"Transport to {self.peer} is closed")
        with self._lock:
            self.sent.append(bytes(data))
        if data == b"lock":
            self._pending.append(self.lock_response)
        elif data == bytes([0x32]):
            self._pending.append(self.eeprom)

    def receive_one(self, timeout: Optional[float] = None) -> bytes:
        if not self._pending:
            raise TimeoutError(f"No response pending from {self.peer}")
        return self._pending.pop(0)

    def subscribe_continuous(self, on_packet, on_error=None) -> None:
        self._on_packet = on_packet
        self._on_error = on_error

    def close(self) -> None:
        self.close_count += 1
        self._open = False

    # -------------------------------------------------------------------------
    # Test controls
    # -------------------------------------------------------------------------

    @property
    def receiving(self) -> bool:
        return self._on_packet is not None

    def emit(self, packet: bytes) -> None:
        """Deliver a telemetry datagram as the receive loop would."""
        if self._open and self._on_packet is not None:
            self._on_packet(packet)

    def fail(self, exc: BaseException) -> None:
        """Simulate the receive loop dying with `exc`."""
        if self._on_error is not None:
            self._on_error(exc)

    def sent_opcodes(self) -> list[int]:
        with self._lock:
            return [data[0] for data in self.sent if data != b"lock"]
