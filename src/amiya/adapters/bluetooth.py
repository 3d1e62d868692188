import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .base import DbusBackendControl
from ..core.event_manager import EventManager
from ..models.events import (
    BluetoothDeviceConnected,
    BluetoothDeviceDisconnected,
    BluetoothDeviceInfo,
    BluetoothDevicesUpdated,
    BluetoothStateChanged,
)
from ..models.state import BluetoothState
from ..utils.dbus import BusFactory, system_bus
from ..utils.exceptions import BackendConnectionError, BackendError, InvalidParameterError
from ..utils.logging import get_logger

logger = get_logger(__name__)

BLUEZ_SERVICE = "org.bluez"
ADAPTER_INTERFACE = "org.bluez.Adapter1"
DEVICE_INTERFACE = "org.bluez.Device1"

_ADDRESS = re.compile(r"^[0-9A-Fa-f]{2}(:[0-9A-Fa-f]{2}){5}$")


@dataclass
class BluezHandle:
    bus: Any
    manager: Any
    adapter_path: str

    def adapter(self) -> Any:
        return self.bus.get(BLUEZ_SERVICE, self.adapter_path)

    def device_path(self, address: str) -> str:
        return f"{self.adapter_path}/dev_{address.upper().replace(':', '_')}"

    def device(self, address: str) -> Any:
        return self.bus.get(BLUEZ_SERVICE, self.device_path(address))


def parse_managed_objects(objects: Dict[str, Dict[str, Dict[str, Any]]],
                          adapter_path: str) -> Tuple[bool, bool, List[BluetoothDeviceInfo]]:
    """Extract adapter power/discovery flags and the device list from GetManagedObjects"""
    adapter = objects.get(adapter_path, {}).get(ADAPTER_INTERFACE, {})
    devices = []
    for path, interfaces in sorted(objects.items()):
        props = interfaces.get(DEVICE_INTERFACE)
        if props is None or not path.startswith(adapter_path + "/"):
            continue
        address = props.get("Address", "")
        devices.append(BluetoothDeviceInfo(
            address=address,
            name=props.get("Alias") or props.get("Name") or address,
            connected=bool(props.get("Connected", False)),
            paired=bool(props.get("Paired", False)),
        ))
    return bool(adapter.get("Powered", False)), bool(adapter.get("Discovering", False)), devices


def _check_address(address: str) -> str:
    if not isinstance(address, str) or not _ADDRESS.match(address):
        raise InvalidParameterError(f"Invalid Bluetooth address {address!r}")
    return address.upper()


class BluetoothControl(DbusBackendControl[BluetoothState]):
    """Bluetooth adapter and device control through BlueZ"""

    name = "bluetooth"

    def __init__(self, event_manager: EventManager, bus_factory: Optional[BusFactory] = None,
                 timeout: float = 10.0):
        super().__init__(event_manager, bus_factory or system_bus, timeout=timeout)

    def default_state(self) -> BluetoothState:
        return BluetoothState()

    def _open(self) -> BluezHandle:
        bus = self.bus_factory()
        manager = bus.get(BLUEZ_SERVICE, "/")
        for path, interfaces in sorted(manager.GetManagedObjects().items()):
            if ADAPTER_INTERFACE in interfaces:
                logger.info(f"Found Bluetooth adapter: {path}")
                self._update_state(adapter=path)
                return BluezHandle(bus=bus, manager=manager, adapter_path=path)
        raise BackendConnectionError("No Bluetooth adapter found")

    async def _refresh(self) -> None:
        await self.refresh()

    async def refresh(self) -> BluetoothState:
        """Reload adapter flags and the device list from BlueZ"""
        def fetch(handle: BluezHandle):
            return parse_managed_objects(handle.manager.GetManagedObjects(), handle.adapter_path)

        powered, discovering, devices = await self._run(fetch)
        previous = self._replace_state(self.read().model_copy(update={
            "powered": powered,
            "discovering": discovering,
            "devices": tuple(devices),
        }))
        if previous.powered != powered:
            self._publish(BluetoothStateChanged(enabled=powered))
        if previous.devices != tuple(devices):
            self._publish(BluetoothDevicesUpdated(devices=tuple(devices)))
        return self.read()

    # Adapter

    def is_powered(self) -> bool:
        return self.read().powered

    async def set_powered(self, enabled: bool) -> bool:
        state = self._update_state(powered=bool(enabled))
        logger.info(f"Bluetooth powered: {state.powered}")
        await self._propagate("set Bluetooth power", self._write_powered, state.powered)
        self._publish(BluetoothStateChanged(enabled=state.powered))
        return state.powered

    async def toggle_powered(self) -> bool:
        state = self._modify_state(lambda s: s.model_copy(update={"powered": not s.powered}))
        logger.info(f"Bluetooth powered: {state.powered}")
        await self._propagate("toggle Bluetooth power", self._write_powered, state.powered)
        self._publish(BluetoothStateChanged(enabled=state.powered))
        return state.powered

    @staticmethod
    def _write_powered(handle: BluezHandle, enabled: bool) -> None:
        handle.adapter().Powered = enabled

    async def start_scan(self) -> None:
        await self._run(lambda handle: handle.adapter().StartDiscovery())
        self._update_state(discovering=True)
        logger.info("Started Bluetooth device discovery")

    async def stop_scan(self) -> None:
        await self._run(lambda handle: handle.adapter().StopDiscovery())
        self._update_state(discovering=False)
        logger.info("Stopped Bluetooth device discovery")

    # Devices

    def get_devices(self) -> Tuple[BluetoothDeviceInfo, ...]:
        return self.read().devices

    def find_device(self, address: str) -> Optional[BluetoothDeviceInfo]:
        address = address.upper()
        for device in self.read().devices:
            if device.address.upper() == address:
                return device
        return None

    async def connect_device(self, address: str) -> None:
        address = _check_address(address)
        await self._run(lambda handle: handle.device(address).Connect())
        logger.info(f"Connected to Bluetooth device: {address}")
        await self._refresh_quietly()
        device = self.find_device(address)
        self._publish(BluetoothDeviceConnected(
            address=address,
            name=device.name if device else address,
        ))

    async def disconnect_device(self, address: str) -> None:
        address = _check_address(address)
        await self._run(lambda handle: handle.device(address).Disconnect())
        logger.info(f"Disconnected from Bluetooth device: {address}")
        await self._refresh_quietly()
        self._publish(BluetoothDeviceDisconnected(address=address))

    async def pair_device(self, address: str) -> None:
        address = _check_address(address)
        await self._run(lambda handle: handle.device(address).Pair())
        logger.info(f"Paired with Bluetooth device: {address}")
        await self._refresh_quietly()

    async def remove_device(self, address: str) -> None:
        address = _check_address(address)
        await self._run(lambda handle: handle.adapter().RemoveDevice(handle.device_path(address)))
        logger.info(f"Removed Bluetooth device: {address}")
        await self._refresh_quietly()

    async def _refresh_quietly(self) -> None:
        try:
            await self.refresh()
        except BackendError as e:
            logger.debug(f"Bluetooth refresh failed: {e}")
