from dataclasses import dataclass
from typing import Any, Optional

from .base import DbusBackendControl, checked_level, checked_step
from ..core.event_manager import EventManager
from ..models.events import VolumeChanged
from ..models.state import AudioState
from ..utils.dbus import BusFactory, session_bus
from ..utils.exceptions import BackendConnectionError
from ..utils.helpers import clamp_percent
from ..utils.logging import get_logger

logger = get_logger(__name__)

PULSE_SERVICES = ("org.PulseAudio.Server", "org.PulseAudio1")
PULSE_SERVER_PATH = "/org/pulseaudio/server1"
PULSE_DEVICE = "org.PulseAudio.Core1.Device"
PULSE_VOLUME_NORM = 65536
DEFAULT_STEP = 5.0


@dataclass
class PulseHandle:
    bus: Any
    server: Any

    def fallback_sink(self) -> Any:
        sink_path = self.server.FallbackSink
        if not sink_path:
            raise BackendConnectionError("PulseAudio has no default sink")
        return self.bus.get(PULSE_DEVICE, sink_path)


def _to_percent(raw: int) -> float:
    return clamp_percent(raw / PULSE_VOLUME_NORM * 100.0)


def _to_raw(percent: float) -> int:
    return int(round(percent / 100.0 * PULSE_VOLUME_NORM))


class AudioControl(DbusBackendControl[AudioState]):
    """Output volume and mute of the default PulseAudio/PipeWire sink"""

    name = "audio"

    def __init__(self, event_manager: EventManager, bus_factory: Optional[BusFactory] = None,
                 timeout: float = 5.0):
        super().__init__(event_manager, bus_factory or session_bus, timeout=timeout)

    def default_state(self) -> AudioState:
        return AudioState()

    def _open(self) -> PulseHandle:
        bus = self.bus_factory()
        last_error: Optional[Exception] = None
        for service in PULSE_SERVICES:
            try:
                return PulseHandle(bus=bus, server=bus.get(service, PULSE_SERVER_PATH))
            except Exception as e:
                last_error = e
        raise BackendConnectionError(f"PulseAudio is not reachable: {last_error}")

    async def _refresh(self) -> None:
        await self.refresh()

    async def refresh(self) -> AudioState:
        """Re-read volume and mute from the default sink"""
        def fetch(handle: PulseHandle):
            sink = handle.fallback_sink()
            volumes = list(sink.Volume or [])
            return volumes, bool(sink.Mute)

        volumes, muted = await self._run(fetch, reconnect=False)
        volume = _to_percent(volumes[0]) if volumes else self.read().volume
        previous = self._replace_state(AudioState(volume=volume, muted=muted))
        if (previous.volume, previous.muted) != (volume, muted):
            self._publish(VolumeChanged(level=volume, muted=muted))
        return self.read()

    # Volume

    def get_volume(self) -> float:
        return self.read().volume

    async def set_volume(self, level: float) -> float:
        """Set the output volume in percent, clamped to 0-100"""
        level = checked_level(level, "volume level")
        state = self._update_state(volume=level)
        return await self._commit(state)

    async def increase_volume(self, step: float = DEFAULT_STEP) -> float:
        step = checked_step(step, "volume step")
        state = self._modify_state(lambda s: s.model_copy(update={"volume": clamp_percent(s.volume + step)}))
        return await self._commit(state)

    async def decrease_volume(self, step: float = DEFAULT_STEP) -> float:
        step = checked_step(step, "volume step")
        state = self._modify_state(lambda s: s.model_copy(update={"volume": clamp_percent(s.volume - step)}))
        return await self._commit(state)

    # Mute

    def get_mute(self) -> bool:
        return self.read().muted

    async def set_mute(self, muted: bool) -> bool:
        state = self._update_state(muted=bool(muted))
        logger.info(f"Audio mute: {state.muted}")
        await self._propagate("set mute", self._write_mute, state.muted)
        self._publish(VolumeChanged(level=state.volume, muted=state.muted))
        return state.muted

    async def toggle_mute(self) -> bool:
        state = self._modify_state(lambda s: s.model_copy(update={"muted": not s.muted}))
        logger.info(f"Audio mute: {state.muted}")
        await self._propagate("toggle mute", self._write_mute, state.muted)
        self._publish(VolumeChanged(level=state.volume, muted=state.muted))
        return state.muted

    async def _commit(self, state: AudioState) -> float:
        logger.info(f"Volume set to {state.volume}%")
        await self._propagate("set volume", self._write_volume, state.volume)
        self._publish(VolumeChanged(level=state.volume, muted=state.muted))
        return state.volume

    @staticmethod
    def _write_volume(handle: PulseHandle, percent: float) -> None:
        sink = handle.fallback_sink()
        channels = max(1, len(sink.Volume or []))
        sink.Volume = [_to_raw(percent)] * channels

    @staticmethod
    def _write_mute(handle: PulseHandle, muted: bool) -> None:
        handle.fallback_sink().Mute = muted

