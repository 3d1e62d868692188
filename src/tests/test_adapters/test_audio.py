import asyncio

import pytest
from amiya.adapters.audio import PULSE_VOLUME_NORM, AudioControl
from amiya.core.app_state import AppState
from amiya.core.event_manager import EventManager
from amiya.models.events import VolumeChanged
from amiya.utils.exceptions import InvalidParameterError


class FakeSink:
    def __init__(self, volume=0.5, muted=False):
        self.Volume = [int(volume * PULSE_VOLUME_NORM)] * 2
        self.Mute = muted


class FailingSink(FakeSink):
    """Sink whose volume setter raises the given error"""

    def __init__(self, error, volume=0.5):
        self.error = error
        super().__init__(volume=volume)

    @property
    def Volume(self):
        return self._volume

    @Volume.setter
    def Volume(self, value):
        if self.error is not None and hasattr(self, "_volume"):
            raise self.error
        self._volume = value


class FakeServer:
    FallbackSink = "/org/pulseaudio/core1/sink0"


class FakePulseBus:
    def __init__(self, sink=None):
        self.sink = sink or FakeSink()

    def get(self, name, path):
        if path == FakeServer.FallbackSink:
            return self.sink
        return FakeServer()


def drain(subscription):
    events = []
    while True:
        event = subscription.try_recv()
        if event is None:
            return events
        events.append(event)


@pytest.fixture
def events():
    return EventManager()


@pytest.fixture
def audio(events):
    def unreachable():
        raise ConnectionError("no session bus")

    return AudioControl(events, bus_factory=unreachable, timeout=1.0)


@pytest.mark.asyncio
async def test_step_changes_from_cached_level(audio):
    await audio.set_volume(75)
    assert await audio.increase_volume(10) == 85
    assert await audio.decrease_volume(20) == 65
    assert audio.read().volume == 65


@pytest.mark.asyncio
async def test_set_volume_clamps(audio):
    assert await audio.set_volume(150) == 100
    assert audio.get_volume() == 100
    assert await audio.set_volume(-10) == 0
    assert audio.get_volume() == 0


@pytest.mark.asyncio
async def test_steps_clamp_at_bounds(audio):
    await audio.set_volume(98)
    assert await audio.increase_volume() == 100
    await audio.set_volume(3)
    assert await audio.decrease_volume() == 0


@pytest.mark.asyncio
async def test_each_mutation_publishes_one_event(audio, events):
    subscription = events.subscribe()

    await audio.set_volume(40)
    await audio.increase_volume(5)
    await audio.toggle_mute()

    assert drain(subscription) == [
        VolumeChanged(level=40, muted=False),
        VolumeChanged(level=45, muted=False),
        VolumeChanged(level=45, muted=True),
    ]


@pytest.mark.asyncio
async def test_mute_keeps_volume(audio):
    await audio.set_volume(30)
    assert await audio.set_mute(True) is True
    assert audio.read().volume == 30
    assert await audio.toggle_mute() is False
    assert audio.get_mute() is False


@pytest.mark.asyncio
async def test_non_finite_levels_are_rejected(audio, events):
    subscription = events.subscribe()
    with pytest.raises(InvalidParameterError):
        await audio.set_volume(float("nan"))
    with pytest.raises(InvalidParameterError):
        await audio.increase_volume(float("inf"))
    assert audio.get_volume() == 50
    assert drain(subscription) == []


@pytest.mark.asyncio
async def test_unreachable_backend_serves_cache(audio):
    assert await audio.connect() is False
    assert not audio.is_available()
    assert await audio.set_volume(20) == 20


@pytest.mark.asyncio
async def test_connect_reads_sink_and_writes_through(events):
    bus = FakePulseBus(FakeSink(volume=0.25, muted=True))
    audio = AudioControl(events, bus_factory=lambda: bus, timeout=1.0)

    assert await audio.connect() is True
    assert audio.read().volume == pytest.approx(25.0)
    assert audio.read().muted is True

    await audio.set_volume(60)
    assert bus.sink.Volume == [round(0.6 * PULSE_VOLUME_NORM)] * 2
    await audio.set_mute(False)
    assert bus.sink.Mute is False


@pytest.mark.asyncio
async def test_repeated_connect_is_idempotent(events):
    opened = []

    def factory():
        opened.append(1)
        return FakePulseBus()

    audio = AudioControl(events, bus_factory=factory, timeout=1.0)
    assert await audio.connect() is True
    assert await audio.connect() is True
    assert len(opened) == 1

    await audio.disconnect()
    assert not audio.is_available()


@pytest.mark.asyncio
async def test_rejected_write_keeps_cache_and_publishes(events):
    sink = FailingSink(RuntimeError("org.freedesktop.DBus.Error.AccessDenied"))
    audio = AudioControl(events, bus_factory=lambda: FakePulseBus(sink), timeout=1.0)
    assert await audio.connect() is True
    subscription = events.subscribe()

    assert await audio.set_volume(80) == 80
    assert audio.read().volume == 80
    assert sink.Volume == [int(0.5 * PULSE_VOLUME_NORM)] * 2
    assert drain(subscription) == [VolumeChanged(level=80, muted=False)]
    assert audio.is_available()


@pytest.mark.asyncio
async def test_failed_initial_read_is_a_failed_connect(events):
    class UnreadableSink:
        Mute = False

        @property
        def Volume(self):
            raise OSError("connection reset")

    audio = AudioControl(events, bus_factory=lambda: FakePulseBus(UnreadableSink()), timeout=1.0)
    assert await audio.connect() is False
    assert not audio.is_available()


@pytest.mark.asyncio
async def test_write_reconnects_after_failed_startup(events):
    bus = FakePulseBus(FakeSink(volume=0.75))
    reachable = {"bus": False}

    def factory():
        if not reachable["bus"]:
            raise ConnectionError("no session bus")
        return bus

    audio = AudioControl(events, bus_factory=factory, timeout=1.0)
    await asyncio.gather(*AppState(events, audio=audio).start_connections(retries=0))
    assert not audio.is_available()

    reachable["bus"] = True
    assert await audio.set_volume(10) == 10
    assert audio.is_available()
    assert bus.sink.Volume == [round(0.1 * PULSE_VOLUME_NORM)] * 2
    # The cached value is written, not replaced by the sink's old level
    assert audio.read().volume == 10


@pytest.mark.asyncio
async def test_write_reconnects_after_lost_connection(events):
    sink = FailingSink(OSError("connection reset"))
    audio = AudioControl(events, bus_factory=lambda: FakePulseBus(sink), timeout=1.0)
    assert await audio.connect() is True

    await audio.set_volume(30)
    assert not audio.is_available()

    sink.error = None
    await audio.set_volume(40)
    assert audio.is_available()
    assert sink.Volume == [round(0.4 * PULSE_VOLUME_NORM)] * 2


@pytest.mark.asyncio
async def test_reconnect_attempts_are_rate_limited(events):
    attempts = []

    def factory():
        attempts.append(1)
        raise ConnectionError("no session bus")

    audio = AudioControl(events, bus_factory=factory, timeout=1.0)
    await audio.set_volume(10)
    await audio.set_volume(20)
    await audio.toggle_mute()
    assert len(attempts) == 1

    audio.reconnect_interval = 0
    await audio.set_volume(30)
    assert len(attempts) == 2
    assert audio.get_volume() == 30
