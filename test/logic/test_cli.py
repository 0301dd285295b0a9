import threading
from unittest.mock import patch

import click.testing
import pytest

from picolog_udp.cli import cli
from picolog_udp.device import PLCM3, PT104
from picolog_udp.device.mock import (
    MockLoggerTransport,
    build_channel_packet,
    build_reply,
)
from picolog_udp.types import DeviceDescriptor, HandshakeError, SessionConfig, Variant

LOG_OPTS = ["--no-log-to-stdout", "--no-log-to-file"]


@pytest.fixture
def cli_runner():
    return click.testing.CliRunner()


@pytest.fixture
def restore_test_log():
    yield
    from picolog_udp.util import TEST_LOGLEVEL, start_log

    start_log(log_to_file=False, log_to_stdout=True, log_level=TEST_LOGLEVEL)


pytestmark = pytest.mark.usefixtures("restore_test_log")


class StreamingTransport(MockLoggerTransport):
    """Emits a few packets shortly after conversion is started."""

    def __init__(self, packets, **kwargs):
        super().__init__(**kwargs)
        self.packets = packets

    def _emit_all(self):
        for packet in self.packets:
            self.emit(packet)

    def send(self, data):
        super().send(data)
        if data[0] == 0x31 and data[1] != 0:
            threading.Timer(0.1, self._emit_all).start()


def test_tree(cli_runner):
    result = cli_runner.invoke(cli, ["--tree"])
    assert result.exit_code == 0
    for name in ("config", "find", "stream", "list", "save", "show"):
        assert name in result.output


class TestFind:
    @patch("picolog_udp.device.discovery.broadcast_and_collect")
    def test_no_devices(self, mock_collect, cli_runner):
        mock_collect.return_value = []
        result = cli_runner.invoke(cli, LOG_OPTS + ["find", "--variant", "pt104"])
        assert result.exit_code == 0
        assert "No devices found" in result.output

    @patch("picolog_udp.device.discovery.broadcast_and_collect")
    def test_lists_devices(self, mock_collect, cli_runner):
        mock_collect.return_value = [
            (build_reply(Variant.CM3, serial="CM/1", port=4000), "10.0.0.5"),
            (build_reply(Variant.CM3, serial="CM/2", locked=True), "10.0.0.6"),
        ]
        result = cli_runner.invoke(
            cli, LOG_OPTS + ["find", "-v", "cm3", "--window", "0.1"]
        )
        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert lines[0].startswith("Serial: CM/1\tIP:10.0.0.5:4000")
        assert lines[0].endswith("unlocked")
        assert lines[1].endswith("\tlocked")
        assert mock_collect.call_args.args[1] == 0.1

    @pytest.mark.parametrize("window", ["0", "-1"])
    @patch("picolog_udp.device.discovery.broadcast_and_collect")
    def test_window_must_be_positive(self, mock_collect, cli_runner, window):
        result = cli_runner.invoke(
            cli, LOG_OPTS + ["find", "-v", "cm3", "--window", window]
        )
        assert result.exit_code == 2
        assert "Invalid value" in result.output
        mock_collect.assert_not_called()


@patch("picolog_udp.device.discovery.broadcast_and_collect")
def test_log_to_file_reports_path(mock_collect, cli_runner, tmp_path):
    mock_collect.return_value = []
    log_path = tmp_path / "cli.log"
    result = cli_runner.invoke(
        cli,
        [
            "--no-log-to-stdout",
            "--log-to-file",
            "--log-path",
            str(log_path),
            "find",
            "-v",
            "pt104",
        ],
    )
    assert result.exit_code == 0
    assert f"Logging to {log_path}" in result.output
    assert "Session log started" in log_path.read_text()


class TestStream:
    def test_address_without_port(self, cli_runner):
        result = cli_runner.invoke(
            cli, LOG_OPTS + ["stream", "-v", "pt104", "--address", "10.0.0.2"]
        )
        assert result.exit_code != 0
        assert "Must define both" in result.output

    @patch("picolog_udp.cli.base.find_first_unlocked")
    def test_no_devices(self, mock_find, cli_runner):
        mock_find.return_value = None
        result = cli_runner.invoke(cli, LOG_OPTS + ["stream", "-v", "pt104"])
        assert result.exit_code == 0
        assert "No devices found" in result.output

    @patch("picolog_udp.cli.base.find_first_unlocked")
    def test_handshake_error(self, mock_find, cli_runner):
        mock_find.side_effect = HandshakeError("boom")
        result = cli_runner.invoke(cli, LOG_OPTS + ["stream", "-v", "cm3"])
        assert result.exit_code != 0
        assert "Could not open CM3" in result.output

    @patch("picolog_udp.cli.base.connect_device")
    def test_streams_count_samples(self, mock_connect, cli_runner):
        transport = StreamingTransport(
            [build_channel_packet(1, [0x800000] * 4)] * 3,
        )

        def connect(variant, address, port, config):
            descriptor = DeviceDescriptor(
                address=address,
                mac_address="Unknown",
                port=port,
                serial="CM/9",
                locked=False,
                variant=variant,
            )
            session = PLCM3(descriptor, config, transport_factory=lambda: transport)
            session.open()
            return session

        mock_connect.side_effect = connect
        result = cli_runner.invoke(
            cli,
            LOG_OPTS
            + ["stream", "-v", "cm3", "-a", "10.0.0.9", "-p", "4000", "-n", "2"],
        )
        assert result.exit_code == 0, result.output
        assert "Found Device: Serial: CM/9\tIP:10.0.0.9:4000" in result.output
        assert result.output.count("CM/9:\tCh1") >= 2
        assert "78.125 mV" in result.output
        assert transport.sent[-1] == b"\x33"

    @patch("picolog_udp.cli.base.find_first_unlocked")
    def test_channel_override(self, mock_find, cli_runner):
        mock_find.return_value = None
        result = cli_runner.invoke(
            cli,
            LOG_OPTS + ["stream", "-v", "pt104", "--channels", "0x1f", "-m", "60"],
        )
        assert result.exit_code == 0
        config = mock_find.call_args.args[1]
        assert config.channel_config == 0x1F
        assert config.mains_frequency == 60

    def test_bad_channels(self, cli_runner):
        result = cli_runner.invoke(
            cli, LOG_OPTS + ["stream", "-v", "pt104", "--channels", "0xf0"]
        )
        assert result.exit_code != 0


class TestConfig:
    @pytest.fixture(autouse=True)
    def config_path(self, tmp_path):
        path = tmp_path / "devices.ini"
        with patch(
            "picolog_udp.util.sysconfig.default_config_path", return_value=path
        ):
            yield path

    def test_save_show_list(self, cli_runner, config_path):
        result = cli_runner.invoke(
            cli,
            LOG_OPTS + ["config", "save", "lab", "--mains", "60", "--channels", "0x13"],
        )
        assert result.exit_code == 0, result.output
        assert config_path.exists()

        result = cli_runner.invoke(cli, LOG_OPTS + ["config", "list"])
        assert result.output.split() == ["lab"]

        result = cli_runner.invoke(cli, LOG_OPTS + ["config", "show", "lab"])
        assert "mains_frequency = 60" in result.output
        assert "channel_config = 19" in result.output

    def test_show_missing(self, cli_runner):
        result = cli_runner.invoke(cli, LOG_OPTS + ["config", "show", "nope"])
        assert result.exit_code != 0
        assert "No configuration named 'nope'" in result.output

    @patch("picolog_udp.cli.base.find_first_unlocked")
    def test_stream_uses_stored_config(self, mock_find, cli_runner):
        cli_runner.invoke(
            cli, LOG_OPTS + ["config", "save", "warm", "--channels", "0x0f"]
        )
        mock_find.return_value = None
        result = cli_runner.invoke(
            cli, LOG_OPTS + ["stream", "-v", "pt104", "-c", "warm"]
        )
        assert result.exit_code == 0
        config = mock_find.call_args.args[1]
        assert isinstance(config, SessionConfig)
        assert config.channel_config == 0x0F
