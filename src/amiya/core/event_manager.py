# Central event bus
import asyncio
import threading
import weakref
from collections import deque
from typing import Deque, List, Optional, Tuple

from ..models.events import Event
from ..utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CAPACITY = 256


class Subscription:
    """
    Receiving end of the event bus.

    Holds up to ``capacity`` undelivered events. When the buffer is full the
    oldest event is dropped and counted in ``lagged``. Concurrent ``recv``
    calls share the buffer, each event going to one of them.
    """

    def __init__(self, manager: "EventManager", capacity: int):
        self._manager = manager
        self._buffer: Deque[Event] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._waiters: List[Tuple[asyncio.AbstractEventLoop, asyncio.Event]] = []
        self.capacity = capacity
        self.lagged = 0
        self.closed = False

    def _deliver(self, event: Event) -> None:
        with self._lock:
            if self.closed:
                return
            if len(self._buffer) == self.capacity:
                self.lagged += 1
            self._buffer.append(event)
            waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            self._wake(waiter)

    @staticmethod
    def _wake(waiter: Tuple[asyncio.AbstractEventLoop, asyncio.Event]) -> None:
        loop, ready = waiter
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            ready.set()
        elif not loop.is_closed():
            loop.call_soon_threadsafe(ready.set)

    def try_recv(self) -> Optional[Event]:
        """Pop the oldest buffered event without waiting, or None"""
        with self._lock:
            if self._buffer:
                return self._buffer.popleft()
            return None

    async def recv(self) -> Optional[Event]:
        """Wait for the next event. Returns None once the subscription is closed and drained"""
        loop = asyncio.get_running_loop()
        while True:
            with self._lock:
                if self._buffer:
                    return self._buffer.popleft()
                if self.closed:
                    return None
                ready = asyncio.Event()
                waiter = (loop, ready)
                self._waiters.append(waiter)
            try:
                await ready.wait()
            finally:
                with self._lock:
                    if waiter in self._waiters:
                        self._waiters.remove(waiter)

    def pending(self) -> int:
        with self._lock:
            return len(self._buffer)

    def close(self) -> None:
        with self._lock:
            if self.closed:
                return
            self.closed = True
            waiters, self._waiters = self._waiters, []
        self._manager._discard(self)
        for waiter in waiters:
            self._wake(waiter)

    def __aiter__(self):
        return self

    async def __anext__(self) -> Event:
        event = await self.recv()
        if event is None:
            raise StopAsyncIteration
        return event


# Event Manager is the central nervous system
class EventManager:
    """
    Fixed-capacity broadcast channel.

    ``publish`` never blocks and never fails; every live subscription gets its
    own copy of each event published after it subscribed.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity <= 0:
            raise ValueError("Event bus capacity must be positive")
        self.capacity = capacity
        self._subscribers: "weakref.WeakSet[Subscription]" = weakref.WeakSet()
        self._lock = threading.Lock()

    def publish(self, event: Event) -> int:
        """Broadcast an event; returns how many subscribers received it"""
        with self._lock:
            targets = list(self._subscribers)
        for subscription in targets:
            subscription._deliver(event)
        if targets:
            logger.debug(f"Published {event.type} to {len(targets)} subscriber(s)")
        return len(targets)

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, self.capacity)
        with self._lock:
            self._subscribers.add(subscription)
        return subscription

    def subscriber_count(self) -> int:
        with self._lock:
            return sum(1 for s in self._subscribers if not s.closed)

    def _discard(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscribers.discard(subscription)
