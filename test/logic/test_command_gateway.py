import pytest

from fakes import FakeHost, RecordingNotifier
from hallscope.session import CommandGateway, LogNotifier
from hallscope.types import SEVERITY, CommandError, CommsError, Notice, Notifier


class TestCommandGateway:
    @pytest.mark.asyncio
    async def test_success_with_message_payload(self, gateway, host, notifier):
        host.replies["set_motor_speed"] = "Speed set to 2 rpm"
        result = await gateway.invoke(
            "set_motor_speed", {"speed": 2.0}, success_title="Speed"
        )
        assert result == "Speed set to 2 rpm"
        assert host.calls == [("set_motor_speed", {"speed": 2.0})]
        assert notifier.notices == [
            Notice(SEVERITY.SUCCESS, "Speed", "Speed set to 2 rpm")
        ]

    @pytest.mark.asyncio
    async def test_success_defaults(self, gateway, host, notifier):
        host.replies["motor_stop"] = None
        assert await gateway.invoke("motor_stop") is None
        assert notifier.notices == [Notice(SEVERITY.SUCCESS, "Sent", "Done")]

    @pytest.mark.asyncio
    async def test_non_string_payload_gets_done_body(self, gateway, host, notifier):
        host.replies["get_motor_angle"] = 12.5
        assert await gateway.invoke("get_motor_angle") == 12.5
        assert notifier.notices[0].body == "Done"

    @pytest.mark.asyncio
    async def test_quiet_success(self, gateway, host, notifier):
        await gateway.invoke("get_port", quiet=True)
        assert notifier.notices == []

    @pytest.mark.asyncio
    async def test_failure_reported_and_raised(self, gateway, host, notifier):
        host.replies["init_device"] = CommsError("COM3: access denied")
        with pytest.raises(CommandError) as exc_info:
            await gateway.invoke("init_device", error_title="Connect failed")
        assert exc_info.value.command == "init_device"
        assert exc_info.value.reason == "COM3: access denied"
        assert isinstance(exc_info.value.__cause__, CommsError)
        assert notifier.notices == [
            Notice(SEVERITY.ERROR, "Connect failed", "COM3: access denied")
        ]

    @pytest.mark.asyncio
    async def test_command_error_passes_through(self, gateway, host, notifier):
        err = CommandError("stop_work", "not working")
        host.replies["stop_work"] = err
        with pytest.raises(CommandError) as exc_info:
            await gateway.invoke("stop_work")
        assert exc_info.value is err
        assert notifier.notices == [
            Notice(SEVERITY.ERROR, "Request failed", "not working")
        ]

    @pytest.mark.asyncio
    async def test_any_exception_becomes_command_error(self, gateway, host):
        host.replies["get_port"] = RuntimeError("Not connected to host")
        with pytest.raises(CommandError, match="Not connected"):
            await gateway.invoke("get_port")

    @pytest.mark.asyncio
    async def test_unreported_failure(self, gateway, host, notifier):
        host.replies["fetch_hall_data"] = CommsError("timeout")
        with pytest.raises(CommandError):
            await gateway.invoke("fetch_hall_data", quiet=True, report_errors=False)
        assert notifier.notices == []

    def test_report_and_forward(self, gateway, notifier):
        gateway.report_failure("Acquisition stalled", "no data")
        gateway.forward(Notice(SEVERITY.WARNING, "Motor", "timeout"))
        assert notifier.notices == [
            Notice(SEVERITY.ERROR, "Acquisition stalled", "no data"),
            Notice(SEVERITY.WARNING, "Motor", "timeout"),
        ]

    def test_default_notifier_logs(self):
        gateway = CommandGateway(FakeHost())
        assert isinstance(gateway.notifier, LogNotifier)
        assert isinstance(gateway.notifier, Notifier)
        assert isinstance(RecordingNotifier(), Notifier)
        gateway.report_failure("title", "body")
