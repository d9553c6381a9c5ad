"""Start/stop-able repeating timer backed by a worker thread."""

from __future__ import annotations

import logging
from enum import Enum
from threading import Event, Lock, Thread, current_thread
from typing import Callable


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class PeriodicScheduler:
    """Invoke *callback* every *interval* seconds until stopped.

    ``start`` and ``stop`` are idempotent.  Once ``stop`` returns the callback
    is never invoked again for that run, including a tick whose wait had
    already elapsed.  Calling ``stop`` from inside the callback is allowed; the
    worker exits as soon as the callback returns.
    """

    def __init__(
        self,
        callback: Callable[[], object],
        interval: float,
        *,
        name: str = "PeriodicScheduler",
    ) -> None:
        interval = float(interval)
        if not interval > 0:
            raise ValueError("interval must be positive")
        self._callback = callback
        self._interval = interval
        self._name = name
        self._lock = Lock()
        self._run_lock = Lock()
        self._stop_event: Event | None = None
        self._thread: Thread | None = None
        self._logger = logging.getLogger(f"{__name__}.{type(self).__name__}")

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def state(self) -> SchedulerState:
        with self._lock:
            running = self._stop_event is not None and not self._stop_event.is_set()
        return SchedulerState.RUNNING if running else SchedulerState.STOPPED

    @property
    def running(self) -> bool:
        return self.state is SchedulerState.RUNNING

    def start(self) -> None:
        """Begin ticking; does nothing when already running."""

        with self._lock:
            if self._stop_event is not None and not self._stop_event.is_set():
                return
            stop_event = Event()
            thread = Thread(
                target=self._run,
                args=(stop_event,),
                name=self._name,
                daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread
        thread.start()
        self._logger.debug("%s started (interval %.3fs)", self._name, self._interval)

    def stop(self) -> None:
        """Stop ticking and wait for an in-flight callback to finish."""

        with self._lock:
            stop_event = self._stop_event
            thread = self._thread
            if stop_event is None or stop_event.is_set():
                return
            stop_event.set()
            self._thread = None
        if thread is not None and thread is not current_thread() and thread.is_alive():
            thread.join()
        self._logger.debug("%s stopped", self._name)

    def _run(self, stop_event: Event) -> None:
        while not stop_event.wait(self._interval):
            # A run restarted from inside its own callback must not overlap it.
            with self._run_lock:
                if stop_event.is_set():
                    break
                try:
                    self._callback()
                except Exception:
                    self._logger.exception("%s callback raised", self._name)


__all__ = ["PeriodicScheduler", "SchedulerState"]
