import pytest
from unittest.mock import MagicMock
from amiya.adapters.power import PowerControl, capability_allowed
from amiya.core.event_manager import EventManager
from amiya.models.protocol import PowerAction
from amiya.utils.exceptions import BackendConnectionError, BackendExecutionError

SESSION = "/org/freedesktop/login1/session/_32"


class FakeLogindBus:
    def __init__(self):
        self.manager = MagicMock()
        self.manager.CanPowerOff.return_value = "yes"
        self.manager.CanReboot.return_value = "challenge"
        self.manager.CanSuspend.return_value = "yes"
        self.manager.CanHibernate.return_value = "na"
        self.manager.GetSessionByPID.return_value = SESSION
        self.session = MagicMock()

    def get(self, name, path):
        return self.session if path == SESSION else self.manager


@pytest.fixture
def bus():
    return FakeLogindBus()


@pytest.fixture
def power(bus):
    return PowerControl(EventManager(), bus_factory=lambda: bus, timeout=1.0)


def test_capability_answers():
    assert capability_allowed("yes")
    assert capability_allowed("challenge")
    assert not capability_allowed("no")
    assert not capability_allowed("na")


@pytest.mark.asyncio
async def test_connect_reads_capabilities(power):
    assert await power.connect() is True
    capabilities = power.read()
    assert capabilities.can_shutdown is True
    assert capabilities.can_reboot is True
    assert capabilities.can_hibernate is False


@pytest.mark.asyncio
@pytest.mark.parametrize("action,method", [
    (PowerAction.SHUTDOWN, "PowerOff"),
    (PowerAction.REBOOT, "Reboot"),
    (PowerAction.SUSPEND, "Suspend"),
    (PowerAction.HIBERNATE, "Hibernate"),
])
async def test_execute_calls_logind(power, bus, action, method):
    await power.execute(action)
    getattr(bus.manager, method).assert_called_once_with(True)


@pytest.mark.asyncio
async def test_lock_locks_own_session(power, bus):
    await power.lock()
    bus.session.Lock.assert_called_once()


@pytest.mark.asyncio
async def test_can_execute(power):
    assert await power.can_execute(PowerAction.SUSPEND) is True
    assert await power.can_execute(PowerAction.HIBERNATE) is False
    assert await power.can_execute(PowerAction.LOCK) is True


@pytest.mark.asyncio
async def test_refused_action_raises(power, bus):
    bus.manager.Reboot.side_effect = RuntimeError("org.freedesktop.DBus.Error.AccessDenied")
    with pytest.raises(BackendExecutionError):
        await power.reboot()


@pytest.mark.asyncio
async def test_no_logind():
    def no_bus():
        raise ConnectionError("no system bus")

    power = PowerControl(EventManager(), bus_factory=no_bus, timeout=1.0)
    with pytest.raises(BackendConnectionError):
        await power.shutdown()
