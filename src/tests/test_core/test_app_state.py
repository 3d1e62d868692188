import pytest
from amiya.adapters.audio import AudioControl
from amiya.adapters.backlight import BacklightControl
from amiya.core.app_state import AppState
from amiya.core.event_manager import EventManager
from amiya.models.config import AmiyaConfig
from amiya.utils.exceptions import BackendUnavailableError


def test_from_config_builds_enabled_adapters_only():
    config = AmiyaConfig.model_validate({
        "events": {"capacity": 16},
        "backends": {"bluetooth": {"enabled": False}, "power": {"enabled": False}},
        "compositor": {"enabled": False},
    })
    state = AppState.from_config(config)

    assert state.event_manager.capacity == 16
    assert state.bluetooth is None
    assert state.power is None
    assert state.niri is None
    assert set(state.adapters()) == {"audio", "backlight", "battery", "network", "media"}
    assert not any(state.status().values())


def test_require_absent_adapter():
    state = AppState(EventManager())
    with pytest.raises(BackendUnavailableError, match="Audio control not available"):
        state.require("audio")


@pytest.mark.asyncio
async def test_background_connections_report_results(tmp_path):
    device = tmp_path / "intel_backlight"
    device.mkdir()
    (device / "brightness").write_text("40")
    (device / "max_brightness").write_text("100")
    attempts = []

    def no_pulseaudio():
        attempts.append(1)
        raise ConnectionError("no session bus")

    events = EventManager()
    audio = AudioControl(events, bus_factory=no_pulseaudio, timeout=1.0)
    backlight = BacklightControl(events, device_root=str(tmp_path))
    state = AppState(events, audio=audio, backlight=backlight)

    tasks = state.start_connections(retries=2, retry_delay=0)
    results = [await task for task in tasks]

    assert results == [False, True]
    assert len(attempts) == 3
    assert state.status() == {"audio": False, "backlight": True}
    assert backlight.get_brightness() == 40
    await state.shutdown()
    assert state.status() == {"audio": False, "backlight": False}


@pytest.mark.asyncio
async def test_unconnected_adapters_still_serve_cache(tmp_path):
    events = EventManager()
    state = AppState(events, backlight=BacklightControl(events, device_root=str(tmp_path)))
    tasks = state.start_connections(retries=0, retry_delay=0)
    for task in tasks:
        await task

    assert state.status() == {"backlight": False}
    assert await state.backlight.set_brightness(30) == 30
    await state.shutdown()
