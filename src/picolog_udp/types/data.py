"""Data model shared by discovery, sessions and decoders."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from mashumaro import DataClassDictMixin

EEPROM_TAG = b"EEPROM="
# offsets past the tag, see the programmer's guides
EEPROM_CALIBRATION_OFFSETS = (37, 41, 45, 49)
EEPROM_MAC_OFFSET = 53
MAC_LENGTH = 6

UNKNOWN = "Unknown"


class Variant(str, Enum):
    """Logger families speaking the ethernet protocol.

    The value is the product tag that starts every discovery reply.
    """

    CM3 = "CM3"
    PT104 = "PT104"

    @property
    def channel_count(self) -> int:
        return 2 if self is Variant.CM3 else 4

    @property
    def unit(self) -> str:
        return "mV" if self is Variant.CM3 else "Ohm"

    @classmethod
    def from_name(cls, name: str) -> Variant:
        """Look up a variant by member name or product tag, case-insensitively."""
        for variant in cls:
            if name.upper() in (variant.name, variant.value):
                return variant
        raise ValueError(f"Unknown logger variant: {name}")


class SessionState(str, Enum):
    DISCOVERED = "Discovered"
    LOCKING = "Locking"
    CALIBRATING_READ = "CalibratingRead"
    CONFIGURING = "Configuring"
    CONVERTING = "Converting"
    DISPOSING = "Disposing"
    CLOSED = "Closed"


def format_mac(raw: bytes) -> str:
    """Format raw MAC bytes as `AA-BB-CC-DD-EE-FF`."""
    return "-".join(f"{b:02X}" for b in raw)


@dataclass(frozen=True)
class DeviceDescriptor(DataClassDictMixin):
    """A logger found by a discovery broadcast.

    Attributes
    ----------
    address : str
        IPv4 address the reply came from
    mac_address : str
        Hardware address, formatted with `format_mac`
    port : int
        UDP port the device listens on for commands
    serial : str
        Serial number as printed on the device
    locked : bool
        Lock state reported in the reply
    variant : Variant
        Logger family that replied
    """

    address: str
    mac_address: str
    port: int
    serial: str
    locked: bool
    variant: Variant

    def __str__(self):
        return f"Serial: {self.serial}\tIP:{self.address}:{self.port}"


@dataclass(frozen=True)
class CalibrationData:
    """Factory calibration constants read once from the EEPROM dump."""

    constants: tuple[int, ...]
    mac_address: str = UNKNOWN

    def __len__(self):
        return len(self.constants)

    def __getitem__(self, idx: int) -> int:
        return self.constants[idx]

    @classmethod
    def from_eeprom(
        cls, dump: bytes, channel_count: int, byte_order: str = "big"
    ) -> CalibrationData:
        """Extract the calibration words and MAC address from an EEPROM dump.

        Parameters
        ----------
        dump : bytes
            Raw response to the read-EEPROM command
        channel_count : int
            Number of calibration words kept, in channel order
        byte_order : str
            "big" or "little"

        Raises
        ------
        ValueError
            If the dump lacks the tag or is too short to hold the MAC address
        """
        if not dump.startswith(EEPROM_TAG):
            raise ValueError(f"EEPROM dump does not start with {EEPROM_TAG!r}")
        start = len(EEPROM_TAG)
        mac_start = start + EEPROM_MAC_OFFSET
        if len(dump) < mac_start + MAC_LENGTH:
            raise ValueError(
                f"EEPROM dump too short: {len(dump)} bytes "
                + f"(need {mac_start + MAC_LENGTH})"
            )
        words = tuple(
            int.from_bytes(dump[start + off : start + off + 4], byte_order, signed=True)
            for off in EEPROM_CALIBRATION_OFFSETS
        )
        return cls(
            constants=words[:channel_count],
            mac_address=format_mac(dump[mac_start : mac_start + MAC_LENGTH]),
        )


@dataclass(frozen=True)
class Sample:
    """One decoded telemetry packet.

    `raw` is the averaged count (current logger) or the 4-wire ratio
    (resistance logger); `value` is in `unit`.
    """

    channel: int  # 1-based
    raw: float
    value: float
    unit: str
    timestamp: float = field(default=0.0, compare=False)
