"""Session configuration."""

from dataclasses import dataclass

from mashumaro import DataClassDictMixin

from picolog_udp.util.defaults import (
    AUTO_UNLOCK_DEADLINE,
    DISCOVERY_WINDOW,
    KEEPALIVE_PERIOD,
)

MAC_CHECK_MODES = ("strict", "warn")
BYTE_ORDERS = ("big", "little")


@dataclass
class SessionConfig(DataClassDictMixin):
    """Configuration for discovering and opening a logger session.

    Attributes
    ----------
    mains_frequency : int
        Mains rejection frequency in Hz, 50 or 60
    channel_config : int
        Start-conversion byte. Low nibble is the channel enable mask (bit 0 is
        channel 1), high nibble the gain range (PT-104: 0 == 10 kOhm,
        1 == 375 Ohm)
    keepalive_period : float
        Seconds between keepalives, must stay under the device's 15 s
        auto-unlock deadline
    discovery_window : float
        Seconds to collect broadcast replies for
    mac_check : str
        "strict" aborts the session when the EEPROM MAC differs from the
        discovery MAC, "warn" logs and continues
    calibration_byte_order : str
        Byte order of the EEPROM calibration words, "big" or "little"
    host_ip : str
        Local adapter address for the discovery socket, "" for all adapters
    handshake_timeout : float | None
        Seconds to wait for each handshake response, None blocks
    include_locked : bool
        Also try devices that reported themselves locked at discovery
    """

    mains_frequency: int = 50
    channel_config: int = 0x03
    keepalive_period: float = KEEPALIVE_PERIOD
    discovery_window: float = DISCOVERY_WINDOW
    mac_check: str = "strict"
    calibration_byte_order: str = "big"
    host_ip: str = ""
    handshake_timeout: float | None = None
    include_locked: bool = False

    def validate(self) -> None:
        """Validate configuration, raising ValueError on the first problem."""
        if not 0 < self.keepalive_period < AUTO_UNLOCK_DEADLINE:
            raise ValueError(
                "Keepalive period must be positive and below the "
                + f"{AUTO_UNLOCK_DEADLINE} s auto-unlock deadline "
                + f"(got {self.keepalive_period})"
            )
        if self.mains_frequency not in (50, 60):
            raise ValueError(
                f"Mains frequency must be 50 or 60 Hz (got {self.mains_frequency})"
            )
        if not 0 <= self.channel_config <= 0xFF:
            raise ValueError(
                f"Channel config must fit in one byte (got {self.channel_config})"
            )
        if not self.channel_config & 0x0F:
            raise ValueError("Channel config enables no channels")
        if self.mac_check not in MAC_CHECK_MODES:
            raise ValueError(
                f"mac_check must be one of {MAC_CHECK_MODES} (got {self.mac_check})"
            )
        if self.calibration_byte_order not in BYTE_ORDERS:
            raise ValueError(
                f"calibration_byte_order must be one of {BYTE_ORDERS} "
                + f"(got {self.calibration_byte_order})"
            )
        if self.discovery_window <= 0:
            raise ValueError("Discovery window must be positive")
        if self.handshake_timeout is not None and self.handshake_timeout <= 0:
            raise ValueError("Handshake timeout must be positive or None")

    @property
    def mains_byte(self) -> int:
        # 0x00 for 50Hz and 0x01 for 60Hz
        return 0x00 if self.mains_frequency == 50 else 0x01

    @property
    def active_channels(self) -> tuple[int, ...]:
        """1-based channel numbers enabled by the low nibble."""
        return tuple(ch + 1 for ch in range(4) if self.channel_config & (1 << ch))
