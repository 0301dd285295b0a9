"""Tests for telemetry packet decoding."""

import math

import pytest

from picolog_udp.device.decoder import (
    CurrentDecoder,
    ResistanceDecoder,
    average_to_millivolts,
    four_wire_ratio,
    split_records,
)
from picolog_udp.device.mock import build_channel_packet, build_packet
from picolog_udp.types import CalibrationData

CALIBRATION = CalibrationData(constants=(1000, 2000, 3000, 4000))


class TestCurrentDecoder:
    def test_average_to_millivolts(self):
        raw, mv = average_to_millivolts([0x10000000] * 4)
        assert raw == 268435456
        assert mv == 2500.0

    @pytest.mark.parametrize("channel", [1, 2])
    def test_channel_groups(self, channel):
        decoder = CurrentDecoder(CALIBRATION)
        packet = build_channel_packet(channel, [0x800000] * 4)
        assert decoder.decode(packet) == (channel, 8388608.0, 78.125)

    def test_averages_unequal_samples(self):
        decoder = CurrentDecoder(CALIBRATION)
        packet = build_channel_packet(1, [100, 200, 300, 400])
        channel, raw, mv = decoder.decode(packet)
        assert channel == 1
        assert raw == 250.0
        assert mv == pytest.approx(250.0 * 2.5 * 1000 / 2**28)

    def test_top_byte_dropped(self):
        decoder = CurrentDecoder(CALIBRATION)
        packet = build_channel_packet(1, [0x7F800000] * 4)
        assert decoder.decode(packet)[1] == 0x800000

    def test_third_group_not_recognised(self):
        decoder = CurrentDecoder(CALIBRATION)
        assert decoder.decode(build_channel_packet(3, [1, 2, 3, 4])) is None


class TestResistanceDecoder:
    def test_four_wire_ratio(self):
        assert four_wire_ratio(0, 1_000_000, 0, 500_000) == pytest.approx(0.5e-6)

    def test_four_wire_ratio_zero_reference(self):
        assert math.isnan(four_wire_ratio(5, 5, 0, 1))

    @pytest.mark.parametrize("channel", [1, 2, 3, 4])
    def test_calibrated_value(self, channel):
        decoder = ResistanceDecoder(CALIBRATION)
        packet = build_channel_packet(channel, [0, 1_000_000, 0, 500_000])
        got_channel, ratio, ohms = decoder.decode(packet)
        assert got_channel == channel
        assert ratio == pytest.approx(0.5e-6)
        assert ohms == pytest.approx(CALIBRATION[channel - 1] * 0.5e-6)

    def test_channel_for_quadruples(self):
        decoder = ResistanceDecoder(CALIBRATION)
        for channel in (1, 2, 3, 4):
            records = split_records(build_channel_packet(channel, [0, 1, 2, 3]))
            assert decoder.channel_for(records) == channel
        records = split_records(build_packet([4, 5, 6, 8], [0, 1, 2, 3]))
        assert decoder.channel_for(records) is None

    def test_signed_samples(self):
        decoder = ResistanceDecoder(CALIBRATION)
        packet = build_channel_packet(1, [-1_000_000, 1_000_000, -100, 100])
        _, ratio, _ = decoder.decode(packet)
        assert ratio == pytest.approx(1e-6 * 200 / 2_000_000)

    def test_zero_reference_dropped(self):
        decoder = ResistanceDecoder(CALIBRATION)
        packet = build_channel_packet(2, [7, 7, 0, 500])
        assert decoder.decode(packet) is None


@pytest.mark.parametrize("decoder_class", [CurrentDecoder, ResistanceDecoder])
class TestDroppedPackets:
    def test_wrong_size(self, decoder_class):
        decoder = decoder_class(CALIBRATION)
        packet = build_channel_packet(1, [1, 2, 3, 4])
        assert decoder.decode(packet[:-1]) is None
        assert decoder.decode(packet + b"\x00") is None
        assert decoder.decode(b"") is None

    @pytest.mark.parametrize(
        "tags", [(0, 1, 2, 4), (1, 2, 3, 4), (3, 2, 1, 0), (0x10, 0x11, 0x12, 0x13)]
    )
    def test_unrecognised_quadruple(self, decoder_class, tags):
        decoder = decoder_class(CALIBRATION)
        assert decoder.decode(build_packet(tags, [1, 2, 3, 4])) is None


def test_split_records():
    records = split_records(build_packet([4, 5, 6, 7], [1, -1, 0x01020304, 0]))
    assert list(records["tag"]) == [4, 5, 6, 7]
    assert list(records["sample"]) == [1, -1, 0x01020304, 0]
