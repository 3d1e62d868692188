"""D-Bus bus acquisition shared by the system adapters.

pydbus is synchronous, so adapters call these factories (and every proxy
method) through ``BackendControl._run`` which moves the call onto a worker
thread and bounds it with a timeout.
"""

from typing import Any, Callable

from .exceptions import BackendConnectionError
from .logging import get_logger

logger = get_logger(__name__)

BusFactory = Callable[[], Any]


def _pydbus():
    # pydbus needs PyGObject at import time; a host without it simply has no D-Bus backends
    try:
        import pydbus
    except ImportError as e:
        raise BackendConnectionError(f"pydbus is not usable on this host: {e}") from e
    return pydbus


def system_bus() -> Any:
    """Open the D-Bus system bus (UPower, BlueZ, NetworkManager, logind)"""
    return _pydbus().SystemBus()


def session_bus() -> Any:
    """Open the D-Bus session bus (PulseAudio, MPRIS players)"""
    return _pydbus().SessionBus()


def variant(signature: str, value: Any) -> Any:
    """Wrap a value in a GLib.Variant for a{sv} style arguments"""
    _pydbus()
    from gi.repository import GLib
    return GLib.Variant(signature, value)
