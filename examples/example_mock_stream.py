from picolog_udp.device import connect_device
from picolog_udp.device.mock import MockLoggerTransport, build_channel_packet
from picolog_udp.types import Variant
import picolog_udp.util

# No hardware needed: the mock transport answers the handshake in-process
picolog_udp.util.start_log(log_to_stdout=True, log_level="DEBUG")

transport = MockLoggerTransport()
session = connect_device(
    Variant.CM3, "127.0.0.1", 5000, transport_factory=lambda: transport
)
session.add_listener(lambda dev, sample: print(sample))

# 0x800000 counts on every record -> 78.125 mV
transport.emit(build_channel_packet(1, [0x800000] * 4))
transport.emit(build_channel_packet(2, [0x400000] * 4))
print("millivolts:", session.millivolts)

session.close()
print("sent opcodes:", [hex(op) for op in transport.sent_opcodes()])

picolog_udp.util.shutdown_log()
