"""Translate host power events into bus signals."""

from __future__ import annotations

import logging
from threading import Lock

from .battery import BasePowerSource
from .scheduler import PeriodicScheduler
from .signals import SignalBus, Topic

DEFAULT_POLL_INTERVAL_S = 2.0


class PowerStateWatcher:
    """Publish ``POWER_CONNECTED``/``POWER_DISCONNECTED`` on plug-state edges.

    The first poll only records the current state.  A reading without a
    charging value is ignored rather than treated as an unplug.
    """

    def __init__(
        self,
        source: BasePowerSource,
        bus: SignalBus,
        *,
        interval: float = DEFAULT_POLL_INTERVAL_S,
    ) -> None:
        self._source = source
        self._bus = bus
        self._lock = Lock()
        self._plugged: bool | None = None
        self._scheduler = PeriodicScheduler(self.poll, interval, name="PowerStateWatcher")
        self._logger = logging.getLogger(f"{__name__}.{type(self).__name__}")

    @property
    def plugged(self) -> bool | None:
        with self._lock:
            return self._plugged

    def start(self) -> None:
        self.poll()
        self._scheduler.start()

    def stop(self) -> None:
        self._scheduler.stop()

    def poll(self) -> Topic | None:
        """Check the source once and publish a signal if the plug state flipped."""

        try:
            reading = self._source.read()
        except Exception as exc:
            self._logger.debug("Power state poll failed: %s", exc)
            return None
        if reading.charging is None and reading.plug_type is None:
            return None
        plugged = reading.plug_type is not None or bool(reading.charging)
        with self._lock:
            previous = self._plugged
            self._plugged = plugged
        if previous is None or previous == plugged:
            return None
        topic = Topic.POWER_CONNECTED if plugged else Topic.POWER_DISCONNECTED
        self._logger.info("Power %s", "connected" if plugged else "disconnected")
        self._bus.publish(topic, {"plug_type": reading.plug_type.value if reading.plug_type else None})
        return topic


__all__ = ["DEFAULT_POLL_INTERVAL_S", "PowerStateWatcher"]
