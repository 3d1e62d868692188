import asyncio
import math
from typing import Any, Dict, List, Optional, Tuple

from .base import DbusBackendControl
from ..core.event_manager import EventManager
from ..models.events import (
    MediaPlaybackChanged,
    MediaPlayerChanged,
    MediaTrackChanged,
    MediaVolumeChanged,
)
from ..models.state import MediaPlayer, MediaState, PlaybackStatus, TrackMetadata
from ..utils.dbus import BusFactory, session_bus
from ..utils.exceptions import BackendError, BackendExecutionError, InvalidParameterError
from ..utils.helpers import clamp
from ..utils.logging import get_logger

logger = get_logger(__name__)

MPRIS_PREFIX = "org.mpris.MediaPlayer2."
MPRIS_PATH = "/org/mpris/MediaPlayer2"
DBUS_SERVICE = "org.freedesktop.DBus"
DBUS_PATH = "/org/freedesktop/DBus"


def parse_metadata(metadata: Optional[Dict[str, Any]]) -> TrackMetadata:
    """Map an MPRIS Metadata dict onto TrackMetadata"""
    metadata = metadata or {}
    artist = metadata.get("xesam:artist")
    if isinstance(artist, (list, tuple)):
        artist = artist[0] if artist else None
    return TrackMetadata(
        title=metadata.get("xesam:title") or "Unknown",
        artist=artist or "Unknown",
        album=metadata.get("xesam:album") or None,
        art_url=metadata.get("mpris:artUrl") or None,
        track_id=str(metadata["mpris:trackid"]) if metadata.get("mpris:trackid") else None,
    )


class MediaControl(DbusBackendControl[MediaState]):
    """Playback control of MPRIS media players on the session bus"""

    name = "media"

    def __init__(self, event_manager: EventManager, bus_factory: Optional[BusFactory] = None,
                 timeout: float = 5.0, poll_interval: float = 2.0):
        super().__init__(event_manager, bus_factory or session_bus, timeout=timeout)
        self.poll_interval = poll_interval
        self.is_running = False

    def default_state(self) -> MediaState:
        return MediaState()

    def _open(self) -> Any:
        bus = self.bus_factory()
        # Fail here rather than on the first refresh when the bus is unusable
        bus.get(DBUS_SERVICE, DBUS_PATH).ListNames()
        return bus

    @staticmethod
    def _discover(bus: Any) -> List[MediaPlayer]:
        players = []
        for name in sorted(bus.get(DBUS_SERVICE, DBUS_PATH).ListNames()):
            if not name.startswith(MPRIS_PREFIX):
                continue
            try:
                identity = bus.get(name, MPRIS_PATH).Identity
            except Exception as e:
                logger.debug(f"Skipping media player {name}: {e}")
                continue
            players.append(MediaPlayer(name=name[len(MPRIS_PREFIX):], bus_name=name, identity=identity))
        return players

    @staticmethod
    def _player_state(bus: Any, bus_name: str) -> Tuple[PlaybackStatus, TrackMetadata, float]:
        player = bus.get(bus_name, MPRIS_PATH)
        status = PlaybackStatus.parse(player.PlaybackStatus)
        track = parse_metadata(player.Metadata)
        try:
            volume = float(player.Volume)
        except Exception:
            volume = 1.0
        if math.isnan(volume):
            volume = 1.0
        return status, track, volume

    async def _refresh(self) -> None:
        await self.refresh()

    async def refresh(self) -> MediaState:
        """Rediscover players and reload the active player's state"""
        preferred = self.read().active_player

        def fetch(bus: Any):
            players = self._discover(bus)
            names = [p.bus_name for p in players]
            active = preferred if preferred in names else (names[0] if names else None)
            if active is None:
                return players, None, None
            return players, active, self._player_state(bus, active)

        players, active, player_state = await self._run(fetch)
        if player_state is None:
            new_state = MediaState(players=tuple(players), volume=self.read().volume)
        else:
            status, track, volume = player_state
            new_state = MediaState(
                players=tuple(players),
                active_player=active,
                playback_status=status,
                track=track,
                volume=clamp(volume, 0.0, 1.0),
            )
        previous = self._replace_state(new_state)
        self._publish_changes(previous, new_state)
        return new_state

    def _publish_changes(self, previous: MediaState, current: MediaState) -> None:
        if previous.active_player != current.active_player:
            logger.info(f"Active media player: {current.active_player}")
            self._publish(MediaPlayerChanged(player=current.active_player))
        if previous.playback_status != current.playback_status:
            self._publish(MediaPlaybackChanged(playing=current.playback_status == PlaybackStatus.PLAYING))
        if current.track is not None and previous.track != current.track:
            self._publish(MediaTrackChanged(
                title=current.track.title,
                artist=current.track.artist,
                album=current.track.album,
            ))
        if previous.volume != current.volume:
            self._publish(MediaVolumeChanged(volume=current.volume))

    # Queries

    def get_players(self) -> Tuple[MediaPlayer, ...]:
        return self.read().players

    def get_active_player(self) -> Optional[str]:
        return self.read().active_player

    def get_playback_status(self) -> PlaybackStatus:
        return self.read().playback_status

    def get_metadata(self) -> Optional[TrackMetadata]:
        return self.read().track

    def get_volume(self) -> float:
        return self.read().volume

    async def set_active_player(self, bus_name: str) -> None:
        if bus_name not in [p.bus_name for p in self.read().players]:
            raise InvalidParameterError(f"Player not found: {bus_name}")
        self._update_state(active_player=bus_name)
        logger.info(f"Active player set to: {bus_name}")
        self._publish(MediaPlayerChanged(player=bus_name))
        await self._refresh_quietly()

    # Transport

    async def play(self) -> None:
        await self._call_player("Play")

    async def pause(self) -> None:
        await self._call_player("Pause")

    async def play_pause(self) -> None:
        await self._call_player("PlayPause")

    async def stop(self) -> None:
        await self._call_player("Stop")

    async def next(self) -> None:
        await self._call_player("Next")

    async def previous(self) -> None:
        await self._call_player("Previous")

    async def _call_player(self, method: str) -> None:
        bus_name = self.read().active_player
        if bus_name is None:
            raise BackendExecutionError("No active player")
        await self._run(lambda bus: getattr(bus.get(bus_name, MPRIS_PATH), method)())
        logger.info(f"Called {method} on {bus_name}")
        await self._refresh_quietly()

    # Volume

    async def set_volume(self, volume: float) -> float:
        """Set the active player's volume, clamped to 0.0-1.0"""
        try:
            volume = clamp(volume, 0.0, 1.0)
        except (TypeError, ValueError) as e:
            raise InvalidParameterError(f"Invalid media volume {volume!r}") from e
        state = self._update_state(volume=volume)
        logger.info(f"Media volume set to {volume:.2f}")
        if state.active_player is not None:
            await self._propagate("set media volume", self._write_volume, state.active_player, volume)
        self._publish(MediaVolumeChanged(volume=volume))
        return volume

    @staticmethod
    def _write_volume(bus: Any, bus_name: str, volume: float) -> None:
        bus.get(bus_name, MPRIS_PATH).Volume = volume

    async def _refresh_quietly(self) -> None:
        try:
            await self.refresh()
        except BackendError as e:
            logger.debug(f"Media refresh failed: {e}")

    async def start_monitoring(self) -> None:
        """Poll players every ``poll_interval`` seconds until stopped"""
        self.is_running = True
        while self.is_running:
            try:
                await self.refresh()
            except BackendError as e:
                logger.debug(f"Media refresh failed: {e}")
            await asyncio.sleep(self.poll_interval)

    async def stop_monitoring(self) -> None:
        self.is_running = False
