import json

import pytest
from amiya.models.events import PopupType
from amiya.models.protocol import (
    BrightnessCommand,
    ErrorResponse,
    PingCommand,
    PowerAction,
    PowerCommand,
    SetLevel,
    ShowPopup,
    StatusResponse,
    StepUp,
    SuccessResponse,
    ToggleMute,
    VolumeCommand,
    encode,
    parse_command,
    parse_response,
)
from amiya.utils.exceptions import ProtocolError


def test_parse_commands():
    assert parse_command('{"type":"ping"}') == PingCommand()
    assert parse_command('{"type":"show-popup","popup":"media-control"}') == ShowPopup(
        popup=PopupType.MEDIA_CONTROL
    )
    assert parse_command('{"type":"volume","action":{"action":"up"}}') == VolumeCommand(action=StepUp())
    assert parse_command('{"type":"volume","action":{"action":"toggle-mute"}}\n') == VolumeCommand(
        action=ToggleMute()
    )
    assert parse_command('{"type":"brightness","action":{"action":"set","level":40}}') == BrightnessCommand(
        action=SetLevel(level=40)
    )
    assert parse_command('{"type":"power","action":"lock"}') == PowerCommand(action=PowerAction.LOCK)


@pytest.mark.parametrize("line", [
    "not json",
    "{}",
    '{"type":"reboot-everything"}',
    '{"type":"show-popup","popup":"calendar"}',
    '{"type":"brightness","action":{"action":"mute"}}',
    '{"type":"volume","action":{"action":"set"}}',
    '{"type":"power","action":"explode"}',
])
def test_invalid_commands(line):
    with pytest.raises(ProtocolError, match="^Invalid command"):
        parse_command(line)


def test_non_finite_level_is_rejected():
    with pytest.raises(ProtocolError):
        parse_command('{"type":"volume","action":{"action":"set","level":NaN}}')


def test_encoding_is_one_tagged_line():
    line = encode(VolumeCommand(action=SetLevel(level=150)))
    assert line.endswith(b"\n")
    assert line.count(b"\n") == 1
    assert json.loads(line) == {"type": "volume", "action": {"action": "set", "level": 150.0}}


def test_parse_responses():
    assert parse_response('{"status":"success","message":"Volume adjusted"}') == SuccessResponse(
        message="Volume adjusted"
    )
    assert parse_response('{"status":"success"}').message is None
    assert parse_response('{"status":"error","message":"nope"}') == ErrorResponse(message="nope")
    assert parse_response('{"status":"status","version":"0.1.0","uptime":12}') == StatusResponse(
        version="0.1.0", uptime=12
    )
    with pytest.raises(ProtocolError, match="^Invalid response"):
        parse_response('{"status":"maybe"}')
