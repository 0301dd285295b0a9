import picolog_udp.util
from picolog_udp.device import find_devices
from picolog_udp.types import Variant

# Discovery binds UDP port 23: run with sufficient privileges
picolog_udp.util.start_log(log_to_stdout=True, log_level="INFO")

for variant in Variant:
    devices = find_devices(variant, wait_window=0.5)
    print(f"{variant.value}: {len(devices)} found")
    for descriptor in devices:
        lock = "locked" if descriptor.locked else "free"
        print(f"  {descriptor}\tMAC {descriptor.mac_address}\t{lock}")

picolog_udp.util.shutdown_log()
