# -*- coding: utf-8 -*-
"""# picolog_udp

Ethernet (UDP) client for the PicoLog CM3 current data logger and the USB
PT-104 platinum resistance data logger.

A host discovers a logger with a broadcast, locks it, reads its factory
calibration from EEPROM, starts conversion and then decodes the telemetry
stream into millivolts (CM3) or ohms (PT-104), sending a keepalive every 10 s
so the logger stays locked.

- [device](device/index.html): transport, discovery, sessions and decoders
- [types](types/index.html): descriptors, samples, configuration, exceptions
- [util](util/index.html): defaults, logging and stored configurations
- [cli](cli/index.html): the `picolog-udp` command
"""

from ._version import __version__
from .device import PLCM3, PT104, connect_device, find_devices, find_first_unlocked
from .types import SessionConfig, Variant
