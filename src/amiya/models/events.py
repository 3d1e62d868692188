"""Events broadcast on the application event bus.

Every event is an immutable pydantic model tagged by its ``type`` field.
Consumers subscribe to the bus, check the type (or ``isinstance``) and ignore
events they do not care about.
"""

from enum import Enum
from typing import Annotated, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class PopupType(str, Enum):
    BLUETOOTH = "bluetooth"
    WIFI = "wifi"
    MEDIA_CONTROL = "media-control"
    POWER = "power"


class EventModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class WorkspaceInfo(EventModel):
    id: int
    name: Optional[str] = None
    is_active: bool = False
    is_focused: bool = False


class WifiNetworkInfo(EventModel):
    ssid: str
    signal_strength: int = Field(0, ge=0, le=100)
    secured: bool = False
    connected: bool = False


class BluetoothDeviceInfo(EventModel):
    address: str
    name: str
    connected: bool = False
    paired: bool = False


# Workspace events
class WorkspaceChanged(EventModel):
    type: Literal["WorkspaceChanged"] = "WorkspaceChanged"
    id: int

class WorkspaceCreated(EventModel):
    type: Literal["WorkspaceCreated"] = "WorkspaceCreated"
    id: int
    name: Optional[str] = None

class WorkspaceRemoved(EventModel):
    type: Literal["WorkspaceRemoved"] = "WorkspaceRemoved"
    id: int

class WorkspacesUpdated(EventModel):
    type: Literal["WorkspacesUpdated"] = "WorkspacesUpdated"
    workspaces: Tuple[WorkspaceInfo, ...] = ()


# System events
class VolumeChanged(EventModel):
    type: Literal["VolumeChanged"] = "VolumeChanged"
    level: float
    muted: bool

class BrightnessChanged(EventModel):
    type: Literal["BrightnessChanged"] = "BrightnessChanged"
    level: float

class CpuUsageChanged(EventModel):
    type: Literal["CpuUsageChanged"] = "CpuUsageChanged"
    usage: float

class MemoryUsageChanged(EventModel):
    type: Literal["MemoryUsageChanged"] = "MemoryUsageChanged"
    used: int
    total: int
    percent: float

class TemperatureChanged(EventModel):
    type: Literal["TemperatureChanged"] = "TemperatureChanged"
    celsius: int

class BatteryChanged(EventModel):
    type: Literal["BatteryChanged"] = "BatteryChanged"
    percentage: float
    state: str
    is_charging: bool


# Network events
class WifiStateChanged(EventModel):
    type: Literal["WifiStateChanged"] = "WifiStateChanged"
    enabled: bool

class WifiNetworkConnected(EventModel):
    type: Literal["WifiNetworkConnected"] = "WifiNetworkConnected"
    ssid: str

class WifiNetworkDisconnected(EventModel):
    type: Literal["WifiNetworkDisconnected"] = "WifiNetworkDisconnected"

class WifiNetworksUpdated(EventModel):
    type: Literal["WifiNetworksUpdated"] = "WifiNetworksUpdated"
    networks: Tuple[WifiNetworkInfo, ...] = ()


# Bluetooth events
class BluetoothStateChanged(EventModel):
    type: Literal["BluetoothStateChanged"] = "BluetoothStateChanged"
    enabled: bool

class BluetoothDeviceConnected(EventModel):
    type: Literal["BluetoothDeviceConnected"] = "BluetoothDeviceConnected"
    address: str
    name: str

class BluetoothDeviceDisconnected(EventModel):
    type: Literal["BluetoothDeviceDisconnected"] = "BluetoothDeviceDisconnected"
    address: str

class BluetoothDevicesUpdated(EventModel):
    type: Literal["BluetoothDevicesUpdated"] = "BluetoothDevicesUpdated"
    devices: Tuple[BluetoothDeviceInfo, ...] = ()


# Media events
class MediaPlayerChanged(EventModel):
    type: Literal["MediaPlayerChanged"] = "MediaPlayerChanged"
    player: Optional[str] = None

class MediaTrackChanged(EventModel):
    type: Literal["MediaTrackChanged"] = "MediaTrackChanged"
    title: str
    artist: str
    album: Optional[str] = None

class MediaPlaybackChanged(EventModel):
    type: Literal["MediaPlaybackChanged"] = "MediaPlaybackChanged"
    playing: bool

class MediaVolumeChanged(EventModel):
    type: Literal["MediaVolumeChanged"] = "MediaVolumeChanged"
    volume: float


# UI events
class PopupRequested(EventModel):
    type: Literal["PopupRequested"] = "PopupRequested"
    popup_type: PopupType

class PopupClosed(EventModel):
    type: Literal["PopupClosed"] = "PopupClosed"
    popup_type: PopupType


Event = Annotated[
    Union[
        WorkspaceChanged,
        WorkspaceCreated,
        WorkspaceRemoved,
        WorkspacesUpdated,
        VolumeChanged,
        BrightnessChanged,
        CpuUsageChanged,
        MemoryUsageChanged,
        TemperatureChanged,
        BatteryChanged,
        WifiStateChanged,
        WifiNetworkConnected,
        WifiNetworkDisconnected,
        WifiNetworksUpdated,
        BluetoothStateChanged,
        BluetoothDeviceConnected,
        BluetoothDeviceDisconnected,
        BluetoothDevicesUpdated,
        MediaPlayerChanged,
        MediaTrackChanged,
        MediaPlaybackChanged,
        MediaVolumeChanged,
        PopupRequested,
        PopupClosed,
    ],
    Field(discriminator="type"),
]
