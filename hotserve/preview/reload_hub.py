import asyncio
import json
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional, Set, Union

from ..core.errors import HubClosed, HubLagged
from .template_index import TemplateRecord

logger = logging.getLogger(__name__)

RELOAD_SIGNAL = "reload"

@dataclass(frozen=True)
class FullReload:
    pass

@dataclass(frozen=True)
class HotPatch:
    record: TemplateRecord

ReloadMessage = Union[FullReload, HotPatch]

def encode_message(message: ReloadMessage) -> str:
    """Encode a hub message as the text frame sent to clients"""
    if isinstance(message, HotPatch):
        return json.dumps({
            "type": "hot_patch",
            "template": message.record.to_payload()
        })
    return RELOAD_SIGNAL

class Subscription:
    """One subscriber's view of the hub with its own bounded backlog"""

    def __init__(self, hub: "ReloadHub"):
        self._hub = hub
        self._backlog: Deque[ReloadMessage] = deque()
        self._missed = 0
        self._closed = False
        self._ready = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return len(self._backlog)

    async def recv(self) -> ReloadMessage:
        """Wait for the next message in publish order"""
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        while True:
            with self._hub._lock:
                if self._missed:
                    missed, self._missed = self._missed, 0
                    raise HubLagged(missed)
                if self._backlog:
                    return self._backlog.popleft()
                if self._closed:
                    raise HubClosed("subscription closed")
                self._ready.clear()
            await self._ready.wait()

    def close(self):
        """Unregister from the hub and wake any pending recv"""
        self._hub._discard(self)
        with self._hub._lock:
            self._closed = True
        self._wake()

    def _push(self, message: ReloadMessage):
        # caller holds the hub lock
        if len(self._backlog) >= self._hub.capacity:
            self._backlog.popleft()
            self._missed += 1
        self._backlog.append(message)

    def _wake(self):
        loop = self._loop
        if loop is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._ready.set()
            return
        try:
            loop.call_soon_threadsafe(self._ready.set)
        except RuntimeError:
            # subscriber's loop is gone
            logger.debug("Dropping wakeup for subscription on a closed loop")

class ReloadHub:
    """Fan-out of reload messages to every connected session"""

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._lock = threading.Lock()
        self._subscribers: Set[Subscription] = set()
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> Subscription:
        """Create a new subscription receiving messages published from now on"""
        subscription = Subscription(self)
        with self._lock:
            if self._closed:
                subscription._closed = True
            else:
                self._subscribers.add(subscription)
        return subscription

    def publish(self, message: ReloadMessage) -> int:
        """Queue a message for every subscriber without blocking"""
        with self._lock:
            subscribers = list(self._subscribers)
            for subscription in subscribers:
                subscription._push(message)
        for subscription in subscribers:
            subscription._wake()
        return len(subscribers)

    def close(self):
        """Close every subscription"""
        with self._lock:
            self._closed = True
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            subscription.close()

    def _discard(self, subscription: Subscription):
        with self._lock:
            self._subscribers.discard(subscription)
