from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .base import DbusBackendControl
from ..core.event_manager import EventManager
from ..models.events import (
    WifiNetworkConnected,
    WifiNetworkDisconnected,
    WifiNetworkInfo,
    WifiNetworksUpdated,
    WifiStateChanged,
)
from ..models.state import NetworkState
from ..utils.dbus import BusFactory, system_bus, variant
from ..utils.exceptions import BackendConnectionError, InvalidParameterError
from ..utils.logging import get_logger

logger = get_logger(__name__)

NM_SERVICE = "org.freedesktop.NetworkManager"
NM_PATH = "/org/freedesktop/NetworkManager"
NM_DEVICE_TYPE_WIFI = 2
AP_FLAGS_PRIVACY = 0x1


@dataclass
class NetworkManagerHandle:
    bus: Any
    manager: Any
    device_path: str

    def device(self) -> Any:
        return self.bus.get(NM_SERVICE, self.device_path)

    def access_point(self, path: str) -> Any:
        return self.bus.get(NM_SERVICE, path)


@dataclass
class AccessPoint:
    path: str
    ssid: str
    strength: int
    secured: bool


def decode_ssid(raw: Iterable[int]) -> str:
    return bytes(raw).decode("utf-8", errors="replace")


def merge_access_points(points: Iterable[AccessPoint], active_ssid: Optional[str]) -> List[WifiNetworkInfo]:
    """Deduplicate by SSID keeping the strongest signal, strongest first"""
    best: Dict[str, AccessPoint] = {}
    for point in points:
        if not point.ssid:
            continue
        current = best.get(point.ssid)
        if current is None or point.strength > current.strength:
            best[point.ssid] = point
    ordered = sorted(best.values(), key=lambda p: (-p.strength, p.ssid))
    return [
        WifiNetworkInfo(
            ssid=p.ssid,
            signal_strength=max(0, min(100, p.strength)),
            secured=p.secured,
            connected=p.ssid == active_ssid,
        )
        for p in ordered
    ]


class NetworkControl(DbusBackendControl[NetworkState]):
    """Wi-Fi state, scanning and connections through NetworkManager"""

    name = "network"

    def __init__(self, event_manager: EventManager, bus_factory: Optional[BusFactory] = None,
                 timeout: float = 10.0):
        super().__init__(event_manager, bus_factory or system_bus, timeout=timeout)

    def default_state(self) -> NetworkState:
        return NetworkState()

    def _open(self) -> NetworkManagerHandle:
        bus = self.bus_factory()
        manager = bus.get(NM_SERVICE, NM_PATH)
        for device_path in manager.GetDevices():
            device = bus.get(NM_SERVICE, device_path)
            if device.DeviceType == NM_DEVICE_TYPE_WIFI:
                logger.info(f"Found WiFi device: {device_path}")
                self._update_state(device=device_path)
                return NetworkManagerHandle(bus=bus, manager=manager, device_path=device_path)
        raise BackendConnectionError("No WiFi device found")

    async def _refresh(self) -> None:
        await self.refresh()

    @staticmethod
    def _active_ssid(handle: NetworkManagerHandle) -> Optional[str]:
        active = handle.device().ActiveAccessPoint
        if not active or active == "/":
            return None
        ssid = decode_ssid(handle.access_point(active).Ssid)
        return ssid or None

    @staticmethod
    def _access_points(handle: NetworkManagerHandle) -> List[AccessPoint]:
        points = []
        for path in handle.device().GetAccessPoints():
            ap = handle.access_point(path)
            points.append(AccessPoint(
                path=path,
                ssid=decode_ssid(ap.Ssid),
                strength=int(ap.Strength),
                secured=bool(ap.WpaFlags or ap.RsnFlags or (ap.Flags & AP_FLAGS_PRIVACY)),
            ))
        return points

    async def refresh(self) -> NetworkState:
        """Reload radio state, the active network and the access point list"""
        def fetch(handle: NetworkManagerHandle) -> Tuple[bool, Optional[str], List[WifiNetworkInfo]]:
            active = self._active_ssid(handle)
            return bool(handle.manager.WirelessEnabled), active, merge_access_points(self._access_points(handle), active)

        enabled, active, networks = await self._run(fetch)
        previous = self._replace_state(self.read().model_copy(update={
            "wifi_enabled": enabled,
            "connected_ssid": active,
            "networks": tuple(networks),
        }))
        if previous.wifi_enabled != enabled:
            self._publish(WifiStateChanged(enabled=enabled))
        if previous.networks != tuple(networks):
            self._publish(WifiNetworksUpdated(networks=tuple(networks)))
        return self.read()

    # Radio

    def is_wifi_enabled(self) -> bool:
        return self.read().wifi_enabled

    async def set_wifi_enabled(self, enabled: bool) -> bool:
        state = self._update_state(wifi_enabled=bool(enabled))
        logger.info(f"WiFi enabled: {state.wifi_enabled}")
        await self._propagate("set WiFi state", self._write_enabled, state.wifi_enabled)
        self._publish(WifiStateChanged(enabled=state.wifi_enabled))
        return state.wifi_enabled

    async def toggle_wifi(self) -> bool:
        state = self._modify_state(lambda s: s.model_copy(update={"wifi_enabled": not s.wifi_enabled}))
        logger.info(f"WiFi enabled: {state.wifi_enabled}")
        await self._propagate("toggle WiFi", self._write_enabled, state.wifi_enabled)
        self._publish(WifiStateChanged(enabled=state.wifi_enabled))
        return state.wifi_enabled

    @staticmethod
    def _write_enabled(handle: NetworkManagerHandle, enabled: bool) -> None:
        handle.manager.WirelessEnabled = enabled

    # Scanning

    async def scan(self) -> None:
        """Ask NetworkManager to rescan; results arrive through get_networks()"""
        await self._run(lambda handle: handle.device().RequestScan({}))
        logger.info("Requested WiFi scan")

    async def get_networks(self) -> Tuple[WifiNetworkInfo, ...]:
        """Fetch the current access point list and publish it"""
        def fetch(handle: NetworkManagerHandle) -> Tuple[Optional[str], List[WifiNetworkInfo]]:
            active = self._active_ssid(handle)
            return active, merge_access_points(self._access_points(handle), active)

        active, networks = await self._run(fetch)
        state = self._update_state(connected_ssid=active, networks=tuple(networks))
        logger.debug(f"Found {len(networks)} WiFi networks")
        self._publish(WifiNetworksUpdated(networks=state.networks))
        return state.networks

    def cached_networks(self) -> Tuple[WifiNetworkInfo, ...]:
        return self.read().networks

    # Connections

    async def connect_to_network(self, ssid: str, password: Optional[str] = None) -> None:
        if not ssid:
            raise InvalidParameterError("SSID must not be empty")

        def activate(handle: NetworkManagerHandle) -> None:
            match = next((p for p in self._access_points(handle) if p.ssid == ssid), None)
            if match is None:
                raise InvalidParameterError(f"Network not found: {ssid}")
            settings: Dict[str, Dict[str, Any]] = {
                "connection": {"id": variant("s", ssid), "type": variant("s", "802-11-wireless")},
                "802-11-wireless": {"ssid": variant("ay", ssid.encode("utf-8"))},
            }
            if password:
                settings["802-11-wireless-security"] = {
                    "key-mgmt": variant("s", "wpa-psk"),
                    "psk": variant("s", password),
                }
            handle.manager.AddAndActivateConnection(settings, handle.device_path, match.path)

        await self._run(activate)
        logger.info(f"Connecting to WiFi network: {ssid}")
        self._update_state(connected_ssid=ssid)
        self._publish(WifiNetworkConnected(ssid=ssid))

    async def disconnect_from_network(self) -> None:
        await self._run(lambda handle: handle.device().Disconnect())
        logger.info("Disconnected from WiFi network")
        self._update_state(connected_ssid=None)
        self._publish(WifiNetworkDisconnected())

