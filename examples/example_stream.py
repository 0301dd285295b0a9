import time

import picolog_udp.util
from picolog_udp.device import find_first_unlocked
from picolog_udp.types import SessionConfig, Variant

DURATION = 30.0  # seconds

picolog_udp.util.start_log(log_to_stdout=True, log_level="INFO")

config = SessionConfig(
    mains_frequency=50,
    channel_config=0x03,  # channels 1 and 2
    # host_ip="192.168.1.10",  # broadcast from one adapter only
)

session = find_first_unlocked(Variant.PT104, config=config)
if session is None:
    raise SystemExit("No unlocked PT-104 on the network")


def on_sample(dev, sample):
    print(f"{dev.serial} ch{sample.channel}: {sample.value:.4f} {sample.unit}")


def on_failure(dev, exc):
    print(f"{dev.serial} stopped: {exc}")


with session:
    session.add_listener(on_sample)
    session.add_failure_listener(on_failure)
    time.sleep(DURATION)
    print("Last readings:", session.readings)

picolog_udp.util.shutdown_log()
