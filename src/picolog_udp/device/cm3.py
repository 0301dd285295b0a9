"""PicoLog CM3 current data logger.

Once open, `readings` holds the latest value of channels 1 and 2 in
millivolts and `raw_readings` the averaged ADC counts. See the 'PicoLog CM3
Current Data Logger Programmer's Guide' for the protocol.

The ethernet module is disabled by default to save power. Enable it once
over USB with the PicoLog ethernet settings tool, after which the unit can be
powered from USB or PoE.
"""

from loguru import logger

from picolog_udp.device.decoder import CurrentDecoder
from picolog_udp.device.session import LoggerSession
from picolog_udp.types import Variant


class PLCM3(LoggerSession):
    variant = Variant.CM3
    decoder_class = CurrentDecoder

    def _configure_channels(self):
        # the CM3 has no separate channel configuration, the enable mask goes
        # out with the start-converting command
        super()._configure_channels()
        logger.debug("{} channels {} enabled", self, list(self.active_channels))

    @property
    def millivolts(self) -> dict[int, float]:
        return self.readings
