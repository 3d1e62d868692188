"""Cached state snapshots held by the backend adapters.

Snapshots are frozen; adapters replace the whole snapshot on every change so a
reader always sees one consistent version.
"""

from enum import Enum
from typing import Optional, Tuple
from pydantic import BaseModel, ConfigDict

from .events import BluetoothDeviceInfo, WifiNetworkInfo
from .niri import NiriWorkspace


class Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)


class AudioState(Snapshot):
    volume: float = 50.0
    muted: bool = False


class BacklightState(Snapshot):
    brightness: float = 50.0
    device: Optional[str] = None
    max_brightness: int = 0


class BatteryState(str, Enum):
    CHARGING = "Charging"
    DISCHARGING = "Discharging"
    FULLY_CHARGED = "Fully Charged"
    EMPTY = "Empty"
    UNKNOWN = "Unknown"

    @classmethod
    def from_upower(cls, value: int) -> "BatteryState":
        return {
            1: cls.CHARGING,
            2: cls.DISCHARGING,
            3: cls.EMPTY,
            4: cls.FULLY_CHARGED,
        }.get(int(value), cls.UNKNOWN)

    def __str__(self) -> str:
        return self.value


class BatteryInfo(Snapshot):
    percentage: float = 0.0
    state: BatteryState = BatteryState.UNKNOWN
    time_to_empty: Optional[int] = None  # seconds
    time_to_full: Optional[int] = None  # seconds
    is_present: bool = False

    @property
    def is_charging(self) -> bool:
        return self.state == BatteryState.CHARGING


class BluetoothState(Snapshot):
    powered: bool = False
    discovering: bool = False
    adapter: Optional[str] = None
    devices: Tuple[BluetoothDeviceInfo, ...] = ()


class NetworkState(Snapshot):
    wifi_enabled: bool = False
    device: Optional[str] = None
    connected_ssid: Optional[str] = None
    networks: Tuple[WifiNetworkInfo, ...] = ()


class PlaybackStatus(str, Enum):
    PLAYING = "Playing"
    PAUSED = "Paused"
    STOPPED = "Stopped"

    @classmethod
    def parse(cls, value: Optional[str]) -> "PlaybackStatus":
        if value == "Playing":
            return cls.PLAYING
        if value == "Paused":
            return cls.PAUSED
        return cls.STOPPED


class MediaPlayer(Snapshot):
    name: str
    bus_name: str
    identity: str


class TrackMetadata(Snapshot):
    title: str = "Unknown"
    artist: str = "Unknown"
    album: Optional[str] = None
    art_url: Optional[str] = None
    track_id: Optional[str] = None


class MediaState(Snapshot):
    players: Tuple[MediaPlayer, ...] = ()
    active_player: Optional[str] = None
    playback_status: PlaybackStatus = PlaybackStatus.STOPPED
    track: Optional[TrackMetadata] = None
    volume: float = 1.0


class PowerCapabilities(Snapshot):
    can_shutdown: bool = False
    can_reboot: bool = False
    can_suspend: bool = False
    can_hibernate: bool = False


class CompositorState(Snapshot):
    workspaces: Tuple[NiriWorkspace, ...] = ()
    version: Optional[str] = None
