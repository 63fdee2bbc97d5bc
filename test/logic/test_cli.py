from unittest.mock import patch

import click.testing
import pytest

from hallscope.cli import cli
from hallscope.util import DEFAULT_HOST_ADDR, DEFAULT_LOGLEVEL, DEFAULT_PORT


@pytest.fixture
def cli_runner():
    return click.testing.CliRunner()


class TestGUICLI:
    @patch("hallscope.cli.base.main_gui")
    def test_default_values(self, mock_main_gui, cli_runner):
        result = cli_runner.invoke(cli, ["gui"])
        assert result.exit_code == 0, result.output
        mock_main_gui.assert_called_once_with(
            host="",
            msg_port=None,
            mock=False,
            drop_rate=0.0,
            settings_path=None,
            log_to_file=True,
            log_to_stdout=True,
            log_path="",
            clear_prev_log=True,
            log_level=DEFAULT_LOGLEVEL,
        )

    @patch("hallscope.cli.base.main_gui")
    def test_all_arguments(self, mock_main_gui, cli_runner):
        result = cli_runner.invoke(
            cli,
            [
                "gui",
                "--host-address",
                "10.0.0.5",
                "--msg-port",
                "9000",
                "--mock",
                "--drop-rate",
                "0.5",
                "--settings",
                "/tmp/hallscope.ini",
                "--no-log-to-file",
                "--no-log-to-stdout",
                "--log-level",
                "DEBUG",
            ],
        )
        assert result.exit_code == 0, result.output
        kwargs = mock_main_gui.call_args.kwargs
        assert kwargs["host"] == "10.0.0.5"
        assert kwargs["msg_port"] == 9000
        assert kwargs["mock"] is True
        assert kwargs["drop_rate"] == 0.5
        assert kwargs["settings_path"] == "/tmp/hallscope.ini"
        assert kwargs["log_to_file"] is False
        assert kwargs["log_level"] == "DEBUG"

    @patch("hallscope.cli.base.main_gui")
    def test_drop_rate_needs_mock(self, mock_main_gui, cli_runner):
        result = cli_runner.invoke(cli, ["gui", "--drop-rate", "0.5"])
        assert result.exit_code != 0
        assert "--mock" in result.output
        mock_main_gui.assert_not_called()

    def test_drop_rate_range(self, cli_runner):
        result = cli_runner.invoke(cli, ["gui", "--mock", "--drop-rate", "1.0"])
        assert result.exit_code != 0


class TestMockHostCLI:
    @patch("hallscope.cli.base.start_host")
    def test_default_values(self, mock_start_host, cli_runner):
        result = cli_runner.invoke(cli, ["mock-host"])
        assert result.exit_code == 0, result.output
        mock_start_host.assert_called_once()
        kwargs = mock_start_host.call_args.kwargs
        assert kwargs["host"] == DEFAULT_HOST_ADDR
        assert kwargs["msg_port"] == DEFAULT_PORT
        assert kwargs["notif_port"] == DEFAULT_PORT + 1
        assert kwargs["drop_rate"] == 0.0

    @patch("hallscope.cli.base.start_host")
    def test_ports_and_drop_rate(self, mock_start_host, cli_runner):
        result = cli_runner.invoke(
            cli, ["mock-host", "-mp", "7000", "-np", "7001", "-dr", "0.25"]
        )
        assert result.exit_code == 0, result.output
        kwargs = mock_start_host.call_args.kwargs
        assert (kwargs["msg_port"], kwargs["notif_port"]) == (7000, 7001)
        assert kwargs["drop_rate"] == 0.25


class TestPortsCLI:
    @patch("hallscope.cli.base.get_hw_ports")
    def test_lists_ports(self, mock_ports, cli_runner):
        mock_ports.return_value = {"COM3": "USB-SERIAL CH340"}
        result = cli_runner.invoke(cli, ["ports"])
        assert result.exit_code == 0
        assert "Port: COM3" in result.output
        assert "USB-SERIAL CH340" in result.output

    @patch("hallscope.cli.base.get_hw_ports")
    def test_no_ports(self, mock_ports, cli_runner):
        mock_ports.return_value = {}
        result = cli_runner.invoke(cli, ["ports"])
        assert "No serial ports found" in result.output


def test_tree(cli_runner):
    result = cli_runner.invoke(cli, ["--tree"])
    assert result.exit_code == 0
    for name in ("gui", "mock-host", "ports"):
        assert name in result.output
