import pytest
from unittest.mock import patch
from amiya import ctl
from amiya.models.events import PopupType
from amiya.models.protocol import (
    BrightnessCommand,
    ErrorResponse,
    PingCommand,
    PongResponse,
    PowerAction,
    PowerCommand,
    SetLevel,
    StatusCommand,
    StatusResponse,
    StepDown,
    StepUp,
    SuccessResponse,
    TogglePopup,
    ToggleMute,
    VolumeCommand,
)
from amiya.utils.exceptions import DaemonConnectionError


def command_for(*argv):
    return ctl.build_command(ctl.build_parser().parse_args(list(argv)))


def test_popup_aliases():
    assert command_for("popup", "toggle", "bt") == TogglePopup(popup=PopupType.BLUETOOTH)
    assert command_for("popup", "show", "network").popup is PopupType.WIFI
    assert command_for("popup", "hide", "Media").popup is PopupType.MEDIA_CONTROL
    with pytest.raises(ValueError, match="Invalid popup type"):
        command_for("popup", "show", "calendar")


def test_level_commands():
    assert command_for("volume", "up", "-a", "10") == VolumeCommand(action=StepUp(amount=10))
    assert command_for("volume", "up") == VolumeCommand(action=StepUp())
    assert command_for("volume", "toggle-mute") == VolumeCommand(action=ToggleMute())
    assert command_for("brightness", "set", "40") == BrightnessCommand(action=SetLevel(level=40))


def test_power_status_and_ping():
    assert command_for("power", "suspend") == PowerCommand(action=PowerAction.SUSPEND)
    assert command_for("ping") == PingCommand()
    assert command_for("status") == StatusCommand()


def test_output_and_exit_codes(capsys):
    assert ctl.print_response(SuccessResponse(message="Volume adjusted")) == 0
    assert ctl.print_response(SuccessResponse()) == 0
    assert ctl.print_response(PongResponse()) == 0
    assert ctl.print_response(StatusResponse(version="0.1.0", uptime=42)) == 0
    out = capsys.readouterr().out.splitlines()
    assert out == [
        "✓ Volume adjusted",
        "✓ Success",
        "✓ Pong! Server is alive.",
        "Amiya Desktop Environment",
        "Version: 0.1.0",
        "Uptime: 42 seconds",
    ]

    assert ctl.print_response(ErrorResponse(message="Audio control not available")) == 1
    assert capsys.readouterr().err == "✗ Error: Audio control not available\n"


def test_main_sends_command(capsys):
    with patch("amiya.ctl.send_command", return_value=SuccessResponse(message="Brightness adjusted")) as send:
        assert ctl.main(["--socket", "/tmp/x.sock", "brightness", "down", "-a", "3"]) == 0
    send.assert_called_once_with(BrightnessCommand(action=StepDown(amount=3)), socket_path="/tmp/x.sock")
    assert "Brightness adjusted" in capsys.readouterr().out


def test_main_reports_unreachable_daemon(capsys):
    with patch("amiya.ctl.send_command", side_effect=DaemonConnectionError("Is amiya running?")):
        assert ctl.main(["ping"]) == 1
    assert "✗ Error: Is amiya running?" in capsys.readouterr().err
