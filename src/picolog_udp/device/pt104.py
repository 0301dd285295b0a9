"""USB PT-104 platinum resistance data logger.

Once open, `readings` holds the latest resistance of each enabled channel in
ohms and `raw_readings` the uncalibrated 4-wire ratio. See the 'USB PT-104
Programmer's Guide' for the protocol and for measurement types other than
4-wire resistance.

The ethernet module is disabled by default to save power. Enable it once
over USB with the PicoLog ethernet settings tool, after which the unit can be
powered from USB or PoE.
"""

from dataclasses import replace
from typing import Optional

from loguru import logger

from picolog_udp.device.decoder import ResistanceDecoder
from picolog_udp.device.session import LoggerSession
from picolog_udp.types import SessionState, Variant

GAIN_RANGES = {0: "10 kOhm", 1: "375 Ohm"}


class PT104(LoggerSession):
    variant = Variant.PT104
    decoder_class = ResistanceDecoder

    def open(
        self,
        channel_config: Optional[int] = None,
        mains_frequency: Optional[int] = None,
    ) -> None:
        """Open the session, optionally overriding the channel configuration.

        Parameters
        ----------
        channel_config : int, optional
            Lower nibble enables channels (0x03 enables channels 1 and 2), the
            upper nibble selects the gain range (0x11 enables channel 1 on the
            375 Ohm range)
        mains_frequency : int, optional
            50 or 60 Hz rejection
        """
        if self.state is not SessionState.DISCOVERED:
            raise RuntimeError(f"Cannot open {self!r}, already {self.state.value}")
        overrides = {}
        if channel_config is not None:
            overrides["channel_config"] = channel_config
        if mains_frequency is not None:
            overrides["mains_frequency"] = mains_frequency
        if overrides:
            config = replace(self.config, **overrides)
            config.validate()
            self.config = config
        super().open()

    @property
    def gain_range(self) -> str:
        gain = self.config.channel_config >> 4
        return GAIN_RANGES.get(gain, f"unknown ({gain:#x})")

    def _configure_channels(self):
        super()._configure_channels()
        logger.debug(
            "{} channels {} enabled on {} range",
            self,
            list(self.active_channels),
            self.gain_range,
        )
