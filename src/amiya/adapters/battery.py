import asyncio
from dataclasses import dataclass
from typing import Any, Optional

from .base import DbusBackendControl
from ..core.event_manager import EventManager
from ..models.events import BatteryChanged
from ..models.state import BatteryInfo, BatteryState
from ..utils.dbus import BusFactory, system_bus
from ..utils.exceptions import BackendConnectionError, BackendError
from ..utils.logging import get_logger

logger = get_logger(__name__)

UPOWER_SERVICE = "org.freedesktop.UPower"
UPOWER_PATH = "/org/freedesktop/UPower"
UPOWER_TYPE_BATTERY = 2


@dataclass
class UPowerHandle:
    bus: Any
    device_path: str

    def device(self) -> Any:
        return self.bus.get(UPOWER_SERVICE, self.device_path)


def format_time(seconds: Optional[int]) -> str:
    """Render a duration in seconds as "2h 30m", "45m" or "Unknown" """
    if not seconds or seconds <= 0:
        return "Unknown"
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


class BatteryControl(DbusBackendControl[BatteryInfo]):
    """Read-only battery status from UPower"""

    name = "battery"

    def __init__(self, event_manager: EventManager, bus_factory: Optional[BusFactory] = None,
                 timeout: float = 5.0, poll_interval: float = 30.0):
        super().__init__(event_manager, bus_factory or system_bus, timeout=timeout)
        self.poll_interval = poll_interval
        self.is_running = False

    def default_state(self) -> BatteryInfo:
        return BatteryInfo()

    def _open(self) -> UPowerHandle:
        bus = self.bus_factory()
        upower = bus.get(UPOWER_SERVICE, UPOWER_PATH)
        for device_path in upower.EnumerateDevices():
            device = bus.get(UPOWER_SERVICE, device_path)
            if device.Type == UPOWER_TYPE_BATTERY:
                logger.info(f"Found battery device: {device_path}")
                return UPowerHandle(bus=bus, device_path=device_path)
        raise BackendConnectionError("No battery device found")

    async def _refresh(self) -> None:
        await self.refresh()

    async def refresh(self) -> BatteryInfo:
        """Read the battery device and publish BatteryChanged when the reading moved"""
        def fetch(handle: UPowerHandle) -> BatteryInfo:
            device = handle.device()
            time_to_empty = int(device.TimeToEmpty or 0)
            time_to_full = int(device.TimeToFull or 0)
            return BatteryInfo(
                percentage=float(device.Percentage or 0.0),
                state=BatteryState.from_upower(device.State or 0),
                time_to_empty=time_to_empty if time_to_empty > 0 else None,
                time_to_full=time_to_full if time_to_full > 0 else None,
                is_present=bool(device.IsPresent),
            )

        info = await self._run(fetch)
        previous = self._replace_state(info)
        logger.debug(f"Battery: {info.percentage}% - {info.state} (present: {info.is_present})")
        if (previous.percentage, previous.state) != (info.percentage, info.state):
            self._publish(BatteryChanged(
                percentage=info.percentage,
                state=str(info.state),
                is_charging=info.is_charging,
            ))
        return info

    def get_info(self) -> BatteryInfo:
        return self.read()

    def get_percentage(self) -> float:
        return self.read().percentage

    def get_state(self) -> BatteryState:
        return self.read().state

    def is_charging(self) -> bool:
        return self.read().is_charging

    def is_present(self) -> bool:
        return self.read().is_present

    async def start_monitoring(self) -> None:
        """Poll UPower every ``poll_interval`` seconds until stopped"""
        self.is_running = True
        while self.is_running:
            try:
                await self.refresh()
            except BackendError as e:
                logger.debug(f"Battery refresh failed: {e}")
            await asyncio.sleep(self.poll_interval)

    async def stop_monitoring(self) -> None:
        self.is_running = False
