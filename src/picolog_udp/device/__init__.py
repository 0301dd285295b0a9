# -*- coding: utf-8 -*-
"""
Logger device implementations for picolog_udp.

- `UdpTransport` / `broadcast_and_collect`: the UDP layer
- `find_devices`, `find_first_unlocked`, `connect_device`: discovery
- `LoggerSession`: the lock/calibrate/convert state machine
- `PLCM3`, `PT104`: the two logger families
- `CurrentDecoder`, `ResistanceDecoder`: telemetry decoding

Examples
--------
```python
from picolog_udp.device import find_first_unlocked
from picolog_udp.types import Variant

session = find_first_unlocked(Variant.CM3)
if session is None:
    print("No devices found")
else:
    with session:
        session.add_listener(lambda dev, sample: print(dev.serial, sample))
        input()
```
"""

from .cm3 import PLCM3
from .decoder import CurrentDecoder, ResistanceDecoder, TelemetryDecoder
from .device import Device
from .discovery import (
    connect_device,
    find_devices,
    find_first_unlocked,
    parse_reply,
    session_class_for,
)
from .pt104 import PT104
from .session import Commands, LoggerSession
from .transport import UdpTransport, broadcast_and_collect

__all__ = [
    "Commands",
    "CurrentDecoder",
    "Device",
    "LoggerSession",
    "PLCM3",
    "PT104",
    "ResistanceDecoder",
    "TelemetryDecoder",
    "UdpTransport",
    "broadcast_and_collect",
    "connect_device",
    "find_devices",
    "find_first_unlocked",
    "parse_reply",
    "session_class_for",
]
