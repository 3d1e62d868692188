import asyncio
import stat

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock
from amiya.adapters.audio import AudioControl
from amiya.core.app_state import AppState
from amiya.core.event_manager import EventManager
from amiya.ipc.client import send_command
from amiya.ipc.server import CommandServer
from amiya.models.events import PopupClosed, PopupRequested, PopupType
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
    SuccessResponse,
    TogglePopup,
    VolumeCommand,
    parse_response,
)
from amiya.utils.exceptions import BackendExecutionError, DaemonConnectionError
from amiya.utils.helpers import APP_VERSION


def no_bus():
    raise ConnectionError("no session bus")


@pytest.fixture
def app_state():
    events = EventManager()
    return AppState(events, audio=AudioControl(events, bus_factory=no_bus, timeout=1.0))


@pytest_asyncio.fixture
async def server(app_state, tmp_path):
    server = CommandServer(app_state, tmp_path / "run" / "a.sock", read_timeout=0.5)
    await server.start()
    yield server
    await server.stop()


async def exchange(server, raw: bytes) -> bytes:
    reader, writer = await asyncio.open_unix_connection(str(server.socket_path))
    writer.write(raw)
    await writer.drain()
    reply = await asyncio.wait_for(reader.readline(), 2)
    writer.close()
    await writer.wait_closed()
    return reply


async def send(server, command):
    return await asyncio.to_thread(send_command, command, server.socket_path, 2.0)


@pytest.mark.asyncio
async def test_set_volume_end_to_end(server, app_state):
    reply = await exchange(server, b'{"type":"volume","action":{"action":"set","level":150}}\n')
    assert parse_response(reply) == SuccessResponse(message="Volume adjusted")
    assert app_state.audio.read().volume == 100


@pytest.mark.asyncio
async def test_client_round_trip(server, app_state):
    await app_state.audio.set_volume(75)
    response = await send(server, VolumeCommand(action=StepDown(amount=20)))
    assert response == SuccessResponse(message="Volume adjusted")
    assert app_state.audio.get_volume() == 55


@pytest.mark.asyncio
async def test_ping_and_status(server):
    assert await send(server, PingCommand()) == PongResponse()
    status = await send(server, StatusCommand())
    assert isinstance(status, StatusResponse)
    assert status.version == APP_VERSION
    assert status.uptime >= 0


@pytest.mark.asyncio
async def test_absent_backlight_is_an_error(server):
    response = await send(server, BrightnessCommand(action=SetLevel(level=10)))
    assert response == ErrorResponse(message="Backlight control not available")


@pytest.mark.asyncio
async def test_absent_power_is_an_error(server):
    response = await send(server, PowerCommand(action=PowerAction.REBOOT))
    assert response == ErrorResponse(message="Power control not available")


@pytest.mark.asyncio
async def test_failed_power_action_is_an_error(server, app_state):
    app_state.power = AsyncMock()
    app_state.power.execute.side_effect = BackendExecutionError("Access denied")
    response = await send(server, PowerCommand(action=PowerAction.REBOOT))
    assert isinstance(response, ErrorResponse)
    assert "Access denied" in response.message


@pytest.mark.asyncio
async def test_malformed_line_gets_error_response(server):
    reply = parse_response(await exchange(server, b"definitely not json\n"))
    assert isinstance(reply, ErrorResponse)
    assert reply.message.startswith("Invalid command")

    # The server keeps serving after a bad client
    assert await send(server, PingCommand()) == PongResponse()


@pytest.mark.asyncio
async def test_silent_client_is_dropped(server):
    reader, writer = await asyncio.open_unix_connection(str(server.socket_path))
    assert await asyncio.wait_for(reader.read(), 2) == b""
    writer.close()


@pytest.mark.asyncio
async def test_silent_client_does_not_block_others(app_state, tmp_path):
    server = CommandServer(app_state, tmp_path / "c.sock", read_timeout=5.0)
    await server.start()
    try:
        _, idle = await asyncio.open_unix_connection(str(server.socket_path))
        started = asyncio.get_running_loop().time()
        response = await asyncio.wait_for(send(server, PingCommand()), 2)
        assert response == PongResponse()
        assert asyncio.get_running_loop().time() - started < 1.0
        idle.close()
        await idle.wait_closed()
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_toggle_popup_alternates(server, app_state):
    subscription = app_state.event_manager.subscribe()

    first = await send(server, TogglePopup(popup=PopupType.BLUETOOTH))
    await send(server, TogglePopup(popup=PopupType.BLUETOOTH))

    assert first == SuccessResponse(message="Toggling bluetooth popup")
    assert subscription.try_recv() == PopupRequested(popup_type=PopupType.BLUETOOTH)
    assert subscription.try_recv() == PopupClosed(popup_type=PopupType.BLUETOOTH)


@pytest.mark.asyncio
async def test_show_and_hide_popup(server):
    reply = await exchange(server, b'{"type":"show-popup","popup":"wifi"}\n')
    assert parse_response(reply) == SuccessResponse(message="Showing wifi popup")
    reply = await exchange(server, b'{"type":"hide-popup","popup":"wifi"}\n')
    assert parse_response(reply) == SuccessResponse(message="Hiding wifi popup")


@pytest.mark.asyncio
async def test_socket_is_private_and_removed_on_stop(app_state, tmp_path):
    path = tmp_path / "b.sock"
    path.write_text("stale")
    server = CommandServer(app_state, path)
    await server.start()
    assert stat.S_ISSOCK(path.stat().st_mode)
    assert stat.S_IMODE(path.stat().st_mode) == 0o600

    await server.stop()
    assert not path.exists()


def test_client_without_daemon(tmp_path):
    with pytest.raises(DaemonConnectionError):
        send_command(PingCommand(), tmp_path / "missing.sock")
