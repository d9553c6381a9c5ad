"""In-process publish/subscribe bus connecting the monitor with observers."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[[Any], object]


class Topic(str, Enum):
    """Named channels understood by the monitor and its observers."""

    DATA_REQUESTED = "DATA_REQUESTED"
    DATA_AVAILABLE = "DATA_AVAILABLE"
    SETTINGS_CHANGED = "SETTINGS_CHANGED"
    POWER_CONNECTED = "POWER_CONNECTED"
    POWER_DISCONNECTED = "POWER_DISCONNECTED"
    DISPLAY_PAUSE = "DISPLAY_PAUSE"
    DISPLAY_RESUME = "DISPLAY_RESUME"


@dataclass(frozen=True, slots=True)
class Subscription:
    """Handle returned by :meth:`SignalBus.subscribe`."""

    topic: Topic
    handler: Handler = field(compare=False, repr=False)
    token: int = 0


class SignalBus:
    """Fan payloads out to every handler currently registered for a topic.

    Delivery is synchronous on the publisher's thread with no queueing or
    replay: a topic without subscribers drops the payload and a late
    subscriber never sees earlier payloads.  A subscription removed while a
    publish is in progress receives nothing further from that publish.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._subscriptions: dict[Topic, dict[int, Subscription]] = {topic: {} for topic in Topic}
        self._tokens = itertools.count(1)

    def subscribe(self, topic: Topic | str, handler: Handler) -> Subscription:
        if not callable(handler):
            raise TypeError("handler must be callable")
        resolved = Topic(topic)
        with self._lock:
            subscription = Subscription(resolved, handler, next(self._tokens))
            self._subscriptions[resolved][subscription.token] = subscription
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove *subscription*; unknown or repeated removals are ignored."""

        with self._lock:
            self._subscriptions[subscription.topic].pop(subscription.token, None)

    def subscriber_count(self, topic: Topic | str) -> int:
        with self._lock:
            return len(self._subscriptions[Topic(topic)])

    def publish(self, topic: Topic | str, payload: Any = None) -> int:
        """Deliver *payload* to the subscribers of *topic*.

        Returns the number of handlers invoked.  A handler that raises is
        logged and does not prevent delivery to the others.
        """

        resolved = Topic(topic)
        with self._lock:
            pending = list(self._subscriptions[resolved].values())
        delivered = 0
        for subscription in pending:
            with self._lock:
                if subscription.token not in self._subscriptions[resolved]:
                    continue
            try:
                subscription.handler(payload)
            except Exception:
                logger.exception("Subscriber for %s raised", resolved.value)
            delivered += 1
        if not pending:
            logger.debug("Dropped %s with no subscribers", resolved.value)
        return delivered


__all__ = ["Handler", "SignalBus", "Subscription", "Topic"]
