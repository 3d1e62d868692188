import os
from typing import Any, Optional

from .base import DbusBackendControl
from ..core.event_manager import EventManager
from ..models.protocol import PowerAction
from ..models.state import PowerCapabilities
from ..utils.dbus import BusFactory, system_bus
from ..utils.logging import get_logger

logger = get_logger(__name__)

LOGIND_SERVICE = "org.freedesktop.login1"
LOGIND_PATH = "/org/freedesktop/login1"

_MANAGER_METHODS = {
    PowerAction.SHUTDOWN: "PowerOff",
    PowerAction.REBOOT: "Reboot",
    PowerAction.SUSPEND: "Suspend",
    PowerAction.HIBERNATE: "Hibernate",
}

_CAPABILITY_METHODS = {
    PowerAction.SHUTDOWN: "CanPowerOff",
    PowerAction.REBOOT: "CanReboot",
    PowerAction.SUSPEND: "CanSuspend",
    PowerAction.HIBERNATE: "CanHibernate",
}


def capability_allowed(answer: str) -> bool:
    # logind answers "yes", "no", "challenge" or "na"; challenge means polkit will ask
    return answer in ("yes", "challenge")


class PowerControl(DbusBackendControl[PowerCapabilities]):
    """Session and system power actions through systemd-logind"""

    name = "power"

    def __init__(self, event_manager: EventManager, bus_factory: Optional[BusFactory] = None,
                 timeout: float = 10.0):
        super().__init__(event_manager, bus_factory or system_bus, timeout=timeout)

    def default_state(self) -> PowerCapabilities:
        return PowerCapabilities()

    def _open(self) -> Any:
        bus = self.bus_factory()
        # Touch the manager so an absent logind fails the connection
        bus.get(LOGIND_SERVICE, LOGIND_PATH).CanPowerOff()
        return bus

    async def _refresh(self) -> None:
        def fetch(bus: Any) -> PowerCapabilities:
            manager = bus.get(LOGIND_SERVICE, LOGIND_PATH)
            return PowerCapabilities(
                can_shutdown=capability_allowed(manager.CanPowerOff()),
                can_reboot=capability_allowed(manager.CanReboot()),
                can_suspend=capability_allowed(manager.CanSuspend()),
                can_hibernate=capability_allowed(manager.CanHibernate()),
            )

        self._replace_state(await self._run(fetch, reconnect=False))

    async def execute(self, action: PowerAction) -> None:
        """
        Run a power action.

        Raises:
            BackendConnectionError: logind is not reachable
            BackendExecutionError: logind refused or failed the action
        """
        action = PowerAction(action)
        logger.info(f"Executing power action: {action.value}")
        if action == PowerAction.LOCK:
            await self._run(self._lock_session)
        else:
            method = _MANAGER_METHODS[action]
            await self._run(lambda bus: getattr(bus.get(LOGIND_SERVICE, LOGIND_PATH), method)(True))

    async def can_execute(self, action: PowerAction) -> bool:
        action = PowerAction(action)
        if action == PowerAction.LOCK:
            return True
        method = _CAPABILITY_METHODS[action]
        answer = await self._run(lambda bus: getattr(bus.get(LOGIND_SERVICE, LOGIND_PATH), method)())
        return capability_allowed(answer)

    async def shutdown(self) -> None:
        await self.execute(PowerAction.SHUTDOWN)

    async def reboot(self) -> None:
        await self.execute(PowerAction.REBOOT)

    async def suspend(self) -> None:
        await self.execute(PowerAction.SUSPEND)

    async def hibernate(self) -> None:
        await self.execute(PowerAction.HIBERNATE)

    async def lock(self) -> None:
        await self.execute(PowerAction.LOCK)

    @staticmethod
    def _lock_session(bus: Any) -> None:
        manager = bus.get(LOGIND_SERVICE, LOGIND_PATH)
        session_path = manager.GetSessionByPID(os.getpid())
        bus.get(LOGIND_SERVICE, session_path).Lock()
