"""Orchestrates sampling, rendering and signalling of battery status."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from threading import Lock
from typing import Any, Callable

from .battery import BatterySampler, BatterySnapshot
from .config import DEFAULT_CALIBRATION, CalibrationSettings
from .render import BaseRenderer
from .scheduler import PeriodicScheduler
from .signals import SignalBus, Subscription, Topic
from .units import (
    DEGREES_CELSIUS,
    INDETERMINATE,
    DisplayValue,
    charge_state_text,
    fmt,
    select_display,
    status_body,
    status_title,
    time_to_full_text,
)

DEFAULT_INTERVAL_S = 5.0
CHARGING_SINCE_FORMAT = "%Y-%m-%d %H:%M:%S"

SchedulerFactory = Callable[..., PeriodicScheduler]


class MonitorStateError(RuntimeError):
    """Raised when a lifecycle transition is not permitted."""


class MonitorState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"


@dataclass(frozen=True, slots=True)
class ChargeSession:
    """The plugged-in period currently in progress."""

    started_at: datetime

    def describe(self) -> str:
        return self.started_at.strftime(CHARGING_SINCE_FORMAT)


def _local_now() -> datetime:
    return datetime.now().astimezone()


def build_report(
    snapshot: BatterySnapshot,
    display: DisplayValue,
    charge_session: ChargeSession | None,
) -> dict[str, Any]:
    """Return the ``DATA_AVAILABLE`` payload derived from *snapshot*."""

    plug_type = snapshot.plug_type.value if snapshot.plug_type is not None else None
    return {
        "charging": charge_state_text(snapshot.charging, plug_type),
        "charge_level": f"{fmt(snapshot.level_percent)}%",
        "charging_since": charge_session.describe() if charge_session is not None else INDETERMINATE,
        "current": f"{fmt(snapshot.amps)}A",
        "energy": f"{fmt(snapshot.energy_watt_hours)}Wh ({fmt(snapshot.energy_amp_hours)}Ah)",
        "power": f"{fmt(snapshot.watts)}W",
        "temperature": f"{fmt(snapshot.celsius)}{DEGREES_CELSIUS}",
        "time_to_full_charge": time_to_full_text(snapshot.seconds_until_charged),
        "voltage": f"{fmt(snapshot.volts)}V",
        "indicator": display.to_dict(),
        "snapshot": snapshot.to_dict(),
    }


class StatusMonitor:
    """Keep the status display in step with the battery.

    The monitor owns the calibration, the latest snapshot and the charge
    session.  Scheduler ticks and bus events are serialised through one lock;
    publishing and scheduler start/stop happen outside it so a tick waiting
    for the lock never blocks ``stop()``.
    """

    def __init__(
        self,
        sampler: BatterySampler,
        bus: SignalBus,
        renderer: BaseRenderer,
        settings_loader: Callable[[], CalibrationSettings],
        *,
        interval: float = DEFAULT_INTERVAL_S,
        clock: Callable[[], datetime] = _local_now,
        scheduler_factory: SchedulerFactory = PeriodicScheduler,
    ) -> None:
        self._sampler = sampler
        self._bus = bus
        self._renderer = renderer
        self._settings_loader = settings_loader
        self._clock = clock
        self._scheduler = scheduler_factory(self._on_tick, interval, name="StatusMonitorTick")
        self._lock = Lock()
        self._control_lock = Lock()
        self._state = MonitorState.UNINITIALIZED
        self._settings: CalibrationSettings = DEFAULT_CALIBRATION
        self._snapshot: BatterySnapshot | None = None
        self._display: DisplayValue | None = None
        self._charge_session: ChargeSession | None = None
        self._subscriptions: list[Subscription] = []
        self._last_render_error: str | None = None
        self._logger = logging.getLogger(f"{__name__}.{type(self).__name__}")

    # ------------------------------ properties -----------------------------
    @property
    def state(self) -> MonitorState:
        with self._lock:
            return self._state

    @property
    def snapshot(self) -> BatterySnapshot | None:
        with self._lock:
            return self._snapshot

    @property
    def calibration(self) -> CalibrationSettings:
        with self._lock:
            return self._settings

    @property
    def charge_session(self) -> ChargeSession | None:
        with self._lock:
            return self._charge_session

    @property
    def scheduler(self) -> PeriodicScheduler:
        return self._scheduler

    # ------------------------------ lifecycle ------------------------------
    def init(self) -> None:
        """Load settings, take the first sample and start ticking."""

        with self._control_lock:
            with self._lock:
                if self._state is not MonitorState.UNINITIALIZED:
                    raise MonitorStateError(f"Cannot initialise a monitor in state {self._state.value}")
                self._settings = self._load_settings(self._settings)
                report = self._refresh_locked()
                handlers: dict[Topic, Callable[[Any], None]] = {
                    Topic.DATA_REQUESTED: self._on_data_requested,
                    Topic.SETTINGS_CHANGED: self._on_settings_changed,
                    Topic.POWER_CONNECTED: self._on_power_connected,
                    Topic.POWER_DISCONNECTED: self._on_power_disconnected,
                    Topic.DISPLAY_PAUSE: self._on_display_pause,
                    Topic.DISPLAY_RESUME: self._on_display_resume,
                }
                self._subscriptions = [
                    self._bus.subscribe(topic, handler) for topic, handler in handlers.items()
                ]
                self._state = MonitorState.ACTIVE
            self._scheduler.start()
        self._logger.info("Status monitor active")
        self._publish(report)

    def teardown(self) -> None:
        """Stop ticking and detach from the bus; the monitor cannot restart."""

        with self._control_lock:
            with self._lock:
                if self._state is MonitorState.TERMINATED:
                    return
                self._state = MonitorState.TERMINATED
                subscriptions = self._subscriptions
                self._subscriptions = []
            for subscription in subscriptions:
                self._bus.unsubscribe(subscription)
            self._scheduler.stop()
        self._logger.info("Status monitor terminated")

    def sample(self) -> BatterySnapshot | None:
        """Force a re-sample and publish outside the regular cadence."""

        with self._lock:
            if self._state not in (MonitorState.ACTIVE, MonitorState.SUSPENDED):
                return None
            report = self._refresh_locked()
            snapshot = self._snapshot
        self._publish(report)
        return snapshot

    # ------------------------------ handlers -------------------------------
    def _on_tick(self) -> None:
        with self._lock:
            if self._state is not MonitorState.ACTIVE:
                return
            report = self._refresh_locked()
        self._publish(report)

    def _on_display_pause(self, payload: Any = None) -> None:
        with self._control_lock:
            with self._lock:
                if self._state is not MonitorState.ACTIVE:
                    return
                self._state = MonitorState.SUSPENDED
            self._scheduler.stop()
        self._logger.debug("Display paused; sampling suspended")

    def _on_display_resume(self, payload: Any = None) -> None:
        with self._control_lock:
            with self._lock:
                if self._state is not MonitorState.SUSPENDED:
                    return
                self._state = MonitorState.ACTIVE
            self._scheduler.start()
        self._logger.debug("Display resumed; sampling active")

    def _on_power_connected(self, payload: Any = None) -> None:
        with self._lock:
            if self._state not in (MonitorState.ACTIVE, MonitorState.SUSPENDED):
                return
            self._charge_session = ChargeSession(self._clock())
            report = self._refresh_locked()
        self._publish(report)

    def _on_power_disconnected(self, payload: Any = None) -> None:
        with self._lock:
            if self._state not in (MonitorState.ACTIVE, MonitorState.SUSPENDED):
                return
            self._charge_session = None
            report = self._refresh_locked()
        self._publish(report)

    def _on_settings_changed(self, payload: Any = None) -> None:
        with self._lock:
            if self._state not in (MonitorState.ACTIVE, MonitorState.SUSPENDED):
                return
            self._settings = self._load_settings(self._settings)
            report = self._refresh_locked()
        self._publish(report)

    def _on_data_requested(self, payload: Any = None) -> None:
        with self._lock:
            if self._state not in (MonitorState.ACTIVE, MonitorState.SUSPENDED):
                return
            report = self._report_locked()
        self._publish(report)

    # ----------------------------- implementation --------------------------
    def _load_settings(self, fallback: CalibrationSettings) -> CalibrationSettings:
        try:
            settings = self._settings_loader()
        except Exception:
            self._logger.exception("Failed to load calibration settings; keeping previous values")
            return fallback
        if not isinstance(settings, CalibrationSettings):
            self._logger.error("Settings loader returned %s; keeping previous values", type(settings).__name__)
            return fallback
        return settings

    def _refresh_locked(self) -> dict[str, Any] | None:
        snapshot = self._sampler.sample(self._settings)
        display = select_display(snapshot, self._settings.indicator_unit)
        self._snapshot = snapshot
        self._display = display
        if not self._render_locked(snapshot, display):
            return None
        return self._report_locked()

    def _render_locked(self, snapshot: BatterySnapshot, display: DisplayValue) -> bool:
        title = status_title(display)
        body = status_body(snapshot.seconds_until_charged)
        try:
            icon = self._renderer.render_icon(display.value, display.unit)
            self._renderer.update_status(title, body, icon)
        except Exception as exc:
            detail = f"Failed to render status: {exc}"
            if detail != self._last_render_error:
                self._logger.warning(detail, exc_info=True)
                self._last_render_error = detail
            return False
        if self._last_render_error is not None:
            self._logger.info("Status rendering recovered")
            self._last_render_error = None
        return True

    def _report_locked(self) -> dict[str, Any] | None:
        if self._snapshot is None or self._display is None:
            return None
        return build_report(self._snapshot, self._display, self._charge_session)

    def _publish(self, report: dict[str, Any] | None) -> None:
        if report is None:
            return
        self._bus.publish(Topic.DATA_AVAILABLE, report)


__all__ = [
    "CHARGING_SINCE_FORMAT",
    "ChargeSession",
    "DEFAULT_INTERVAL_S",
    "MonitorState",
    "MonitorStateError",
    "StatusMonitor",
    "build_report",
]
