import asyncio
from typing import Dict, List, Optional

from .event_manager import EventManager
from ..adapters.audio import AudioControl
from ..adapters.backlight import BacklightControl
from ..adapters.base import BackendControl
from ..adapters.battery import BatteryControl
from ..adapters.bluetooth import BluetoothControl
from ..adapters.media import MediaControl
from ..adapters.network import NetworkControl
from ..adapters.niri import NiriClient
from ..adapters.power import PowerControl
from ..models.config import AmiyaConfig
from ..utils.exceptions import BackendConnectionError, BackendUnavailableError
from ..utils.logging import get_logger
from ..utils.retry import async_retry_with_backoff

logger = get_logger(__name__)


class AppState:
    """
    Holds the event bus and one optional adapter per subsystem.

    ``None`` means the subsystem is disabled. Present adapters may still be
    unconnected; they then serve their cached state.
    """

    def __init__(
        self,
        event_manager: EventManager,
        audio: Optional[AudioControl] = None,
        backlight: Optional[BacklightControl] = None,
        battery: Optional[BatteryControl] = None,
        bluetooth: Optional[BluetoothControl] = None,
        network: Optional[NetworkControl] = None,
        media: Optional[MediaControl] = None,
        power: Optional[PowerControl] = None,
        niri: Optional[NiriClient] = None,
    ):
        self.event_manager = event_manager
        self.audio = audio
        self.backlight = backlight
        self.battery = battery
        self.bluetooth = bluetooth
        self.network = network
        self.media = media
        self.power = power
        self.niri = niri
        self._connect_tasks: List[asyncio.Task] = []

    @classmethod
    def from_config(cls, config: AmiyaConfig) -> "AppState":
        """Build the bus and every enabled adapter. Never connects, never fails."""
        events = EventManager(capacity=config.events.capacity)
        backends = config.backends

        def enabled(section, factory):
            return factory() if section.enabled else None

        return cls(
            events,
            audio=enabled(backends.audio, lambda: AudioControl(events, timeout=backends.audio.timeout)),
            backlight=enabled(backends.backlight, lambda: BacklightControl(
                events,
                device_root=backends.backlight.device_root,
                preferred=backends.backlight.preferred,
                timeout=backends.backlight.timeout,
            )),
            battery=enabled(backends.battery, lambda: BatteryControl(
                events, timeout=backends.battery.timeout, poll_interval=backends.battery.poll_interval
            )),
            bluetooth=enabled(backends.bluetooth, lambda: BluetoothControl(events, timeout=backends.bluetooth.timeout)),
            network=enabled(backends.network, lambda: NetworkControl(events, timeout=backends.network.timeout)),
            media=enabled(backends.media, lambda: MediaControl(
                events, timeout=backends.media.timeout, poll_interval=backends.media.poll_interval
            )),
            power=enabled(backends.power, lambda: PowerControl(events, timeout=backends.power.timeout)),
            niri=enabled(config.compositor, lambda: NiriClient(
                events, socket_path=config.compositor.socket_path, timeout=config.compositor.timeout
            )),
        )

    def adapters(self) -> Dict[str, BackendControl]:
        candidates = {
            "audio": self.audio,
            "backlight": self.backlight,
            "battery": self.battery,
            "bluetooth": self.bluetooth,
            "network": self.network,
            "media": self.media,
            "power": self.power,
            "compositor": self.niri,
        }
        return {name: adapter for name, adapter in candidates.items() if adapter is not None}

    def require(self, name: str) -> BackendControl:
        """
        Return a present adapter.

        Raises:
            BackendUnavailableError: The adapter is not part of this application
        """
        adapter = self.adapters().get(name)
        if adapter is None:
            raise BackendUnavailableError(f"{name.capitalize()} control not available")
        return adapter

    def start_connections(self, retries: int = 3, retry_delay: float = 1.0) -> List[asyncio.Task]:
        """Connect every adapter in the background; returns without waiting"""
        for name, adapter in self.adapters().items():
            task = asyncio.create_task(
                self._connect(name, adapter, retries, retry_delay),
                name=f"connect-{name}",
            )
            self._connect_tasks.append(task)
        return list(self._connect_tasks)

    @staticmethod
    async def _connect(name: str, adapter: BackendControl, retries: int, retry_delay: float) -> bool:
        connect = async_retry_with_backoff(
            max_retries=retries,
            base_delay=retry_delay,
            exceptions=(BackendConnectionError,),
        )(adapter.ensure_connected)
        try:
            await connect()
            return True
        except BackendConnectionError as e:
            logger.warning(f"{name} unavailable, serving cached state: {e}")
            return False

    def status(self) -> Dict[str, bool]:
        return {name: adapter.is_available() for name, adapter in self.adapters().items()}

    async def shutdown(self) -> None:
        for task in self._connect_tasks:
            task.cancel()
        if self._connect_tasks:
            await asyncio.gather(*self._connect_tasks, return_exceptions=True)
        self._connect_tasks = []
        for adapter in self.adapters().values():
            await adapter.disconnect()
