"""Telemetry packet decoding for the current and resistance loggers.

Both loggers stream 20 byte datagrams made of four 5 byte records:

    00XXXXXXXX01XXXXXXXX02XXXXXXXX03XXXXXXXX  data from channel 1
    04XXXXXXXX05XXXXXXXX06XXXXXXXX07XXXXXXXX  data from channel 2
    08XXXXXXXX09XXXXXXXX0aXXXXXXXX0bXXXXXXXX  data from channel 3
    0cXXXXXXXX0dXXXXXXXX0eXXXXXXXX0fXXXXXXXX  data from channel 4

Each record is a one byte slot tag followed by a big-endian sample. The four
tags of a packet (its quadruple) say which channel the samples belong to;
packets with any other quadruple are measurement types this decoder does not
handle and are dropped.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np
from loguru import logger

from picolog_udp.types import CalibrationData

PACKET_SIZE = 20
RECORD_DTYPE = np.dtype([("tag", "u1"), ("sample", ">i4")])

# millivolt scaling of the current logger ADC
ADC_REFERENCE_V = 2.5
ADC_FULL_SCALE = 2**28


def _quadruple(group: int) -> tuple[int, int, int, int]:
    return tuple(range(4 * group, 4 * group + 4))


def split_records(packet: bytes) -> Optional[np.ndarray]:
    """View a packet as four (tag, sample) records, None if the size is wrong."""
    if len(packet) != PACKET_SIZE:
        return None
    return np.frombuffer(packet, dtype=RECORD_DTYPE)


def counts_to_millivolts(raw: float) -> float:
    return raw * ADC_REFERENCE_V * 1000 / ADC_FULL_SCALE


def average_to_millivolts(samples) -> tuple[float, float]:
    """Average four samples and scale to millivolts.

    Returns
    -------
    tuple[float, float]
        (raw average, millivolts)
    """
    raw = float(np.mean(np.asarray(samples, dtype=np.float64)))
    return raw, counts_to_millivolts(raw)


def four_wire_ratio(m0: int, m1: int, m2: int, m3: int) -> float:
    """Lead-resistance-corrected ratio `1e-6 * (m3 - m2) / (m1 - m0)`.

    Returns NaN when `m1 == m0`.
    """
    denominator = float(m1) - float(m0)
    if denominator == 0:
        return math.nan
    return 1e-6 * ((float(m3) - float(m2)) / denominator)


class TelemetryDecoder:
    """Turns one telemetry packet into a `(channel, raw, value)` tuple.

    Subclasses define the recognised quadruples and the conversion. `decode`
    never raises on malformed input, it returns None.
    """

    unit: str = ""
    channel_count: int = 0

    def __init__(self, calibration: CalibrationData):
        self.calibration = calibration
        self._groups = {
            _quadruple(group): group + 1 for group in range(self.channel_count)
        }

    def channel_for(self, records: np.ndarray) -> Optional[int]:
        """1-based channel selected by the record tags, None if unrecognised."""
        return self._groups.get(tuple(int(t) for t in records["tag"]))

    def decode(self, packet: bytes) -> Optional[tuple[int, float, float]]:
        records = split_records(packet)
        if records is None:
            logger.trace("Dropping {} byte packet", len(packet))
            return None
        channel = self.channel_for(records)
        if channel is None:
            logger.trace("Dropping packet with tags {}", list(records["tag"]))
            return None
        return self._convert(channel, records["sample"].astype(np.int64))

    def _convert(self, channel: int, samples: np.ndarray):
        raise NotImplementedError


class CurrentDecoder(TelemetryDecoder):
    """PicoLog CM3: 24 bit samples averaged and scaled to millivolts."""

    unit = "mV"
    channel_count = 2

    def _convert(self, channel, samples):
        # only the low three bytes of each record sample are data
        raw, millivolts = average_to_millivolts(samples & 0xFFFFFF)
        return channel, raw, millivolts


class ResistanceDecoder(TelemetryDecoder):
    """USB PT-104: 4-wire ratio scaled by the channel's calibration constant.

    Packets giving a non-finite ratio (`measure1 == measure0`) are dropped.
    """

    unit = "Ohm"
    channel_count = 4

    def _convert(self, channel, samples):
        ratio = four_wire_ratio(*(int(s) for s in samples))
        if not math.isfinite(ratio):
            logger.debug("Dropping channel {} packet with zero reference", channel)
            return None
        return channel, ratio, self.calibration[channel - 1] * ratio
