"""Typed per-origin publish/subscribe channels (core domain).

The coordinator publishes raw lines and classified events here; command
listeners subscribe to the streams of one origin. Delivery is synchronous on
the publisher's thread.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Generic, List, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class UnknownOriginError(KeyError):
    """Raised when subscribing to an origin that was never registered."""


class Subscription(Generic[T]):
    """Handle returned by ``Channel.subscribe``."""

    def __init__(self, channel: "Channel[T]", origin_id: str, handler: Callable[[T], None]) -> None:
        self._channel = channel
        self.origin_id = origin_id
        self.handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        """Detach the handler. Calling it again is a no-op."""

        if not self._active:
            return
        self._active = False
        self._channel._remove(self)


class Channel(Generic[T]):
    """One stream kind, fanned out per origin."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._subscribers: Dict[str, List[Subscription[T]]] = {}
        self._lock = threading.Lock()

    def register(self, origin_id: str) -> None:
        with self._lock:
            self._subscribers.setdefault(origin_id, [])

    def is_registered(self, origin_id: str) -> bool:
        with self._lock:
            return origin_id in self._subscribers

    def subscribe(self, origin_id: str, handler: Callable[[T], None]) -> Subscription[T]:
        with self._lock:
            if origin_id not in self._subscribers:
                raise UnknownOriginError(f"{self.name}: origin {origin_id!r} is not registered")
            subscription = Subscription(self, origin_id, handler)
            self._subscribers[origin_id].append(subscription)
        return subscription

    def subscriber_count(self, origin_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(origin_id, []))

    def publish(self, origin_id: str, item: T) -> int:
        """Deliver ``item`` to the origin's subscribers and return how many ran.

        Handlers see a snapshot of the subscriber list, so a handler may
        unsubscribe itself (or others) while the item is being delivered.
        """

        with self._lock:
            snapshot = list(self._subscribers.get(origin_id, []))

        delivered = 0
        for subscription in snapshot:
            if not subscription.active:
                continue
            try:
                subscription.handler(item)
                delivered += 1
            except Exception:
                LOGGER.exception("Subscriber on %s/%s failed", self.name, origin_id)
        return delivered

    def _remove(self, subscription: Subscription[T]) -> None:
        with self._lock:
            subscribers = self._subscribers.get(subscription.origin_id)
            if subscribers and subscription in subscribers:
                subscribers.remove(subscription)
