# Abstract base class for all backend control adapters
# Separate files for each subsystem (audio.py, bluetooth.py, etc.)
# Each adapter implements the interface defined in base.py

import asyncio
import math
import threading
import time
import traceback
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

from ..core.event_manager import EventManager
from ..models.events import Event
from ..models.state import Snapshot
from ..utils.dbus import BusFactory
from ..utils.exceptions import (
    BackendConnectionError,
    BackendError,
    BackendExecutionError,
    InvalidParameterError,
)
from ..utils.helpers import clamp_percent
from ..utils.logging import get_logger

logger = get_logger(__name__)

S = TypeVar("S", bound=Snapshot)
T = TypeVar("T")


class ConnectionState(Enum):
    UNCONNECTED = "unconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class BackendControl(ABC, Generic[S]):
    """
    Base class for every subsystem adapter.

    An adapter owns an optional connection to an external service and a cached
    snapshot of the last known state. The snapshot is always readable and
    starts from ``default_state()``, so an adapter is usable before (and
    without) its connection. Mutations update the snapshot first, propagate
    to the service on a best-effort basis and publish one event.
    """

    name = "backend"
    # Minimum pause between reconnect attempts made by optimistic writes
    reconnect_interval = 5.0

    def __init__(self, event_manager: EventManager, timeout: float = 5.0):
        self.event_manager = event_manager
        self.timeout = timeout
        self._state: S = self.default_state()
        self._state_lock = threading.Lock()
        self._connection: Any = None
        self._connection_lock = asyncio.Lock()
        self.connection_state = ConnectionState.UNCONNECTED
        self._last_reconnect: Optional[float] = None

    @abstractmethod
    def default_state(self) -> S:
        """Neutral snapshot used until the first successful refresh"""
        pass

    def _open(self) -> Any:
        """Open the external connection. Runs on a worker thread."""
        raise NotImplementedError

    async def _open_connection(self) -> Any:
        return await self._offload(self._open)

    async def _refresh(self) -> None:
        """Reload the snapshot from the service. Override if needed."""
        pass

    # Connection management

    async def connect(self, refresh: bool = True) -> bool:
        """
        Establish the connection if it is not already up.

        Safe to call repeatedly. Failures are logged and leave the adapter
        unconnected with its cache intact. With ``refresh`` the snapshot is
        reloaded from the service once connected; a transport failure during
        that reload counts as a failed connect.

        Returns:
            bool: True when connected
        """
        async with self._connection_lock:
            if self._connection is not None:
                return True
            self.connection_state = ConnectionState.CONNECTING
            try:
                connection = await self._open_connection()
            except Exception as e:
                self.connection_state = ConnectionState.UNCONNECTED
                logger.warning(f"Could not connect {self.name}: {e}")
                return False
            self._connection = connection
            self.connection_state = ConnectionState.CONNECTED

        logger.info(f"Connected {self.name}")
        if refresh:
            try:
                await self._refresh()
            except BackendError as e:
                logger.warning(f"Failed to read initial {self.name} state: {e}")
        return self.is_available()

    async def ensure_connected(self) -> None:
        """Connect or raise BackendConnectionError, for use with retry helpers"""
        if not await self.connect():
            raise BackendConnectionError(f"{self.name} is not reachable")

    async def disconnect(self) -> None:
        async with self._connection_lock:
            connection, self._connection = self._connection, None
            self.connection_state = ConnectionState.UNCONNECTED
        if connection is not None:
            try:
                await self._close(connection)
            except Exception as e:
                logger.debug(f"Error closing {self.name} connection: {e}")
            logger.info(f"Disconnected {self.name}")

    async def _close(self, connection: Any) -> None:
        """Release a connection handle. Override if needed."""
        pass

    def is_available(self) -> bool:
        return self._connection is not None

    def _drop_connection(self, reason: Exception) -> None:
        if self._connection is None:
            return
        self._connection = None
        self.connection_state = ConnectionState.UNCONNECTED
        logger.warning(f"Lost {self.name} connection: {reason}")

    # Cache

    def read(self) -> S:
        """Current snapshot; never touches the external service"""
        with self._state_lock:
            return self._state

    def _update_state(self, **changes: Any) -> S:
        with self._state_lock:
            self._state = self._state.model_copy(update=changes)
            return self._state

    def _modify_state(self, change: Callable[[S], S]) -> S:
        """Apply a read-modify-write to the snapshot as one step"""
        with self._state_lock:
            self._state = change(self._state)
            return self._state

    def _replace_state(self, state: S) -> S:
        with self._state_lock:
            previous, self._state = self._state, state
            return previous

    def _publish(self, event: Event) -> None:
        self.event_manager.publish(event)

    # External calls

    async def _offload(self, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking call on a worker thread, bounded by the adapter timeout"""
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), self.timeout)
        except asyncio.TimeoutError as e:
            raise BackendConnectionError(
                f"{self.name} did not answer within {self.timeout}s"
            ) from e

    def _is_connection_error(self, error: Exception) -> bool:
        return isinstance(error, (OSError, EOFError))

    async def _run(self, func: Callable[..., T], *args: Any, reconnect: bool = True) -> T:
        """
        Call ``func(connection, *args)`` on a worker thread.

        Tries to connect first when there is no connection and ``reconnect`` is
        set. Timeouts and transport failures drop the connection.

        Raises:
            BackendConnectionError: No connection, timeout or transport failure
            BackendExecutionError: The service rejected the call
        """
        connection = self._connection
        if connection is None and reconnect and await self.connect():
            connection = self._connection
        if connection is None:
            raise BackendConnectionError(f"{self.name} is not connected")

        try:
            return await self._offload(func, connection, *args)
        except BackendConnectionError as e:
            self._drop_connection(e)
            raise
        except BackendError:
            raise
        except Exception as e:
            if self._is_connection_error(e):
                self._drop_connection(e)
                raise BackendConnectionError(f"{self.name} connection failed: {e}") from e
            logger.debug(f"{self.name} call failed: {traceback.format_exc()}")
            raise BackendExecutionError(f"{self.name} call failed: {e}") from e

    async def _propagate(self, description: str, func: Callable[..., Any], *args: Any) -> bool:
        """
        Best-effort write of already cached state to the service.

        While unconnected a reconnect is tried at most once per
        ``reconnect_interval``, without reloading the snapshot so the cached
        value is what gets written. Failures are logged, never raised.
        """
        if self._connection is None and not await self._try_reconnect():
            logger.debug(f"{self.name} not connected, {description} kept in cache only")
            return False
        try:
            await self._run(func, *args, reconnect=False)
            return True
        except BackendError as e:
            logger.warning(f"Failed to {description}: {e}")
            return False

    async def _try_reconnect(self) -> bool:
        now = time.monotonic()
        if self._last_reconnect is not None and now - self._last_reconnect < self.reconnect_interval:
            return False
        self._last_reconnect = now
        return await self.connect(refresh=False)


class DbusBackendControl(BackendControl[S]):
    """Adapter talking to a service over D-Bus through pydbus proxies"""

    _CONNECTION_ERRORS = (
        "org.freedesktop.DBus.Error.ServiceUnknown",
        "org.freedesktop.DBus.Error.NoReply",
        "org.freedesktop.DBus.Error.Disconnected",
        "org.freedesktop.DBus.Error.NameHasNoOwner",
    )

    def __init__(self, event_manager: EventManager, bus_factory: BusFactory, timeout: float = 5.0):
        super().__init__(event_manager, timeout=timeout)
        self.bus_factory = bus_factory

    def _is_connection_error(self, error: Exception) -> bool:
        if super()._is_connection_error(error):
            return True
        message = str(error)
        return any(name in message for name in self._CONNECTION_ERRORS)


def checked_level(value: Any, what: str = "level") -> float:
    """Clamp a percentage to 0-100, rejecting NaN and non-numbers"""
    try:
        return clamp_percent(value)
    except (TypeError, ValueError) as e:
        raise InvalidParameterError(f"Invalid {what} {value!r}") from e


def checked_step(value: Any, what: str = "step") -> float:
    try:
        step = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidParameterError(f"Invalid {what} {value!r}") from e
    if not math.isfinite(step):
        raise InvalidParameterError(f"Invalid {what} {value!r}")
    return step
