"""Tests for broadcast reply parsing and device discovery."""

from unittest.mock import patch

import pytest

from picolog_udp.device import PLCM3, PT104, connect_device, find_devices
from picolog_udp.device.discovery import PROBE, find_first_unlocked, parse_reply
from picolog_udp.device.mock import (
    LOCK_REFUSED,
    MockLoggerTransport,
    build_eeprom,
    build_reply,
)
from picolog_udp.types import UNKNOWN, SessionConfig, SessionState, Variant


class TestParseReply:
    @pytest.mark.parametrize("serial", ["A", "AB123/456", "CW" + "9" * 30])
    @pytest.mark.parametrize("variant", list(Variant))
    def test_fields(self, variant, serial):
        mac = bytes([0xDE, 0xAD, 0xBE, 0xEF, 0x00, 0x42])
        reply = build_reply(variant, mac=mac, locked=True, port=0xBEEF, serial=serial)
        descriptor = parse_reply(reply, "10.0.0.7", variant)
        assert descriptor.address == "10.0.0.7"
        assert descriptor.mac_address == "DE-AD-BE-EF-00-42"
        assert descriptor.locked is True
        assert descriptor.port == 0xBEEF
        assert descriptor.serial == serial
        assert descriptor.variant is variant

    def test_unlocked(self):
        descriptor = parse_reply(build_reply(Variant.PT104), "1.2.3.4", Variant.PT104)
        assert descriptor.locked is False
        assert descriptor.mac_address == "00-0C-B5-01-02-03"

    def test_marker_bytes_inside_mac(self):
        reply = build_reply(Variant.CM3, mac=b"Lock:\x01", port=23)
        descriptor = parse_reply(reply, "1.2.3.4", Variant.CM3)
        assert descriptor.mac_address == "4C-6F-63-6B-3A-01"
        assert descriptor.locked is False
        assert descriptor.port == 23

    @pytest.mark.parametrize(
        "reply",
        [
            b"",
            b"fff",
            b"PT10",
            build_reply(Variant.CM3),
            b"XPT104 Mac:123456",
        ],
    )
    def test_wrong_tag(self, reply):
        assert parse_reply(reply, "1.2.3.4", Variant.PT104) is None

    def test_cm3_reply_for_pt104_rejected_both_ways(self):
        assert parse_reply(build_reply(Variant.PT104), "1.2.3.4", Variant.CM3) is None

    @pytest.mark.parametrize("cut", [6, 12, 17, 21, 27, 30])
    def test_truncated(self, cut):
        reply = build_reply(Variant.PT104)
        assert parse_reply(reply[:cut], "1.2.3.4", Variant.PT104) is None

    def test_missing_serial_marker(self):
        reply = build_reply(Variant.PT104).replace(b"Serial:", b"Number:")
        assert parse_reply(reply, "1.2.3.4", Variant.PT104) is None


class TestFindDevices:
    @patch("picolog_udp.device.discovery.broadcast_and_collect")
    def test_no_replies(self, mock_collect):
        mock_collect.return_value = []
        assert find_devices(Variant.PT104) == []
        args, kwargs = mock_collect.call_args
        assert args[0] == PROBE == b"fff"
        assert args[1] == 0.5

    @patch("picolog_udp.device.discovery.broadcast_and_collect")
    def test_filters_replies(self, mock_collect):
        mock_collect.return_value = [
            (b"fff", "10.0.0.1"),  # our own probe
            (build_reply(Variant.PT104, serial="P1"), "10.0.0.2"),
            (build_reply(Variant.CM3, serial="C1"), "10.0.0.3"),
            (build_reply(Variant.PT104, serial="P2", locked=True), "10.0.0.4"),
        ]
        found = find_devices(Variant.PT104, host_ip="10.0.0.1")
        assert [(d.serial, d.address, d.locked) for d in found] == [
            ("P1", "10.0.0.2", False),
            ("P2", "10.0.0.4", True),
        ]
        assert mock_collect.call_args.kwargs["host_ip"] == "10.0.0.1"


class TestFindFirstUnlocked:
    @pytest.fixture
    def replies(self):
        return [
            (build_reply(Variant.PT104, serial="BUSY", port=5001), "10.0.0.2"),
            (build_reply(Variant.PT104, serial="FREE", port=5002), "10.0.0.3"),
        ]

    @patch("picolog_udp.device.discovery.broadcast_and_collect")
    def test_skips_contended_device(self, mock_collect, replies):
        mock_collect.return_value = replies
        transports = [
            MockLoggerTransport(lock_response=LOCK_REFUSED),
            MockLoggerTransport(),
        ]
        factory = iter(transports).__next__

        session = find_first_unlocked(Variant.PT104, transport_factory=factory)
        try:
            assert isinstance(session, PT104)
            assert session.serial == "FREE"
            assert session.state is SessionState.CONVERTING
            assert transports[0].sent == [b"lock"]
            assert transports[0].close_count == 1
            assert transports[1].peer == ("10.0.0.3", 5002)
        finally:
            session.close()

    @patch("picolog_udp.device.discovery.broadcast_and_collect")
    def test_all_contended(self, mock_collect, replies):
        mock_collect.return_value = replies
        factory = lambda: MockLoggerTransport(lock_response=LOCK_REFUSED)  # noqa
        assert find_first_unlocked(Variant.PT104, transport_factory=factory) is None

    @patch("picolog_udp.device.discovery.broadcast_and_collect")
    def test_none_found(self, mock_collect):
        mock_collect.return_value = []
        assert find_first_unlocked(Variant.CM3) is None

    @patch("picolog_udp.device.discovery.broadcast_and_collect")
    def test_locked_at_discovery(self, mock_collect):
        mock_collect.return_value = [
            (build_reply(Variant.CM3, locked=True), "10.0.0.2"),
        ]
        transports = []

        def factory():
            transports.append(MockLoggerTransport())
            return transports[-1]

        assert find_first_unlocked(Variant.CM3, transport_factory=factory) is None
        assert transports == []

        session = find_first_unlocked(
            Variant.CM3,
            SessionConfig(include_locked=True),
            transport_factory=factory,
        )
        assert isinstance(session, PLCM3)
        session.close()
        assert len(transports) == 1


def test_connect_device_skips_mac_check():
    transport = MockLoggerTransport(eeprom=build_eeprom(mac=b"\x01" * 6))
    session = connect_device(
        Variant.PT104, "192.168.1.9", 6000, transport_factory=lambda: transport
    )
    with session:
        assert session.serial == UNKNOWN
        assert session.mac_address == UNKNOWN
        assert session.calibration.mac_address == "01-01-01-01-01-01"
        assert transport.peer == ("192.168.1.9", 6000)
    assert session.disposed
