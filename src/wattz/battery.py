"""Battery sampling and metric derivation."""

from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from .config import CalibrationSettings


logger = logging.getLogger(__name__)

DEFAULT_CAPACITY_WH = 15.0


class PowerSourceError(RuntimeError):
    """Raised when a power data source cannot be initialised or queried."""


class PlugType(str, Enum):
    AC = "ac"
    USB = "usb"
    WIRELESS = "wireless"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class PowerReading:
    """Raw values reported by a power data source.

    Every field is optional; sources leave a field as ``None`` when the
    platform does not expose it.  ``raw_amps`` is in the source's native
    magnitude and is calibrated by :class:`BatterySampler`.
    """

    charging: bool | None = None
    plug_type: PlugType | None = None
    level_percent: float | None = None
    raw_amps: float | None = None
    volts: float | None = None
    celsius: float | None = None
    capacity_wh: float | None = None


class BasePowerSource(ABC):
    """Abstract interface for power data sources."""

    @abstractmethod
    def read(self) -> PowerReading:  # pragma: no cover - interface only
        raise NotImplementedError

    def close(self) -> None:  # pragma: no cover - optional override
        return None


@dataclass(frozen=True, slots=True)
class BatterySnapshot:
    """One immutable reading of every derived battery metric."""

    charging: bool
    plug_type: PlugType | None
    level_percent: float | None
    amps: float | None
    volts: float | None
    celsius: float | None
    watts: float | None
    energy_watt_hours: float | None
    energy_amp_hours: float | None
    seconds_until_charged: float | None
    capacity_watt_hours: float | None
    timestamp: float
    error: str | None = None

    @property
    def fully_charged(self) -> bool:
        return self.seconds_until_charged == 0

    def to_dict(self) -> dict[str, object | None]:
        """Serialise the snapshot into a JSON-friendly dictionary."""

        return {
            "charging": self.charging,
            "plug_type": self.plug_type.value if self.plug_type is not None else None,
            "level_percent": self.level_percent,
            "amps": self.amps,
            "volts": self.volts,
            "celsius": self.celsius,
            "watts": self.watts,
            "energy_watt_hours": self.energy_watt_hours,
            "energy_amp_hours": self.energy_amp_hours,
            "seconds_until_charged": self.seconds_until_charged,
            "capacity_watt_hours": self.capacity_watt_hours,
            "timestamp": self.timestamp,
            "error": self.error,
        }


def _finite(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def calibrate_current(raw_amps: float | None, current_scalar: float, invert_current: bool) -> float | None:
    """Apply the magnitude scalar and sign convention to *raw_amps*."""

    raw = _finite(raw_amps)
    if raw is None:
        return None
    sign = -1.0 if invert_current else 1.0
    return raw * float(current_scalar) * sign


def amp_hours_from_energy(energy_wh: float | None, volts: float | None) -> float | None:
    """Return ``energy_wh / volts``; zero when there is no positive voltage."""

    if energy_wh is None or volts is None:
        return None
    if volts <= 0:
        return 0.0
    return energy_wh / volts


def seconds_until_charged(
    *,
    charging: bool,
    level_percent: float | None,
    energy_wh: float | None,
    capacity_wh: float | None,
    watts: float | None,
) -> float | None:
    """Extrapolate time to full charge from the instantaneous charge rate.

    ``None`` means indeterminate and ``0`` means fully charged.
    """

    if not charging or level_percent is None:
        return None
    if level_percent >= 100.0:
        return 0.0
    if watts is None or watts <= 0:
        return None
    if energy_wh is None or capacity_wh is None or capacity_wh <= 0:
        return None
    remaining = (capacity_wh - energy_wh) / watts * 3600.0
    return max(0.0, remaining)


class BatterySampler:
    """Produce :class:`BatterySnapshot` values from a power data source.

    The sampler never mutates the calibration it is given.  Source failures do
    not propagate: individual missing fields degrade to ``None`` and a source
    that raises yields a snapshot with its ``error`` populated.
    """

    def __init__(
        self,
        source: BasePowerSource,
        *,
        capacity_wh: float = DEFAULT_CAPACITY_WH,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._source = source
        self.capacity_wh = capacity_wh
        self._clock = clock
        self._last_error: str | None = None
        self._last_logged_error: str | None = None
        self._logger = logging.getLogger(f"{__name__}.{type(self).__name__}")

    @property
    def source(self) -> BasePowerSource:
        return self._source

    @property
    def capacity_wh(self) -> float:
        return self._capacity_wh

    @capacity_wh.setter
    def capacity_wh(self, value: float) -> None:
        capacity = _finite(value)
        if capacity is None or capacity <= 0:
            raise ValueError("Battery capacity must be a positive number of watt-hours")
        self._capacity_wh = capacity

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def _record_error(self, message: str, *, exc_info: bool = False) -> None:
        detail = str(message).strip() or "Power source error"
        self._last_error = detail
        if detail != self._last_logged_error:
            self._logger.warning(detail, exc_info=exc_info)
            self._last_logged_error = detail

    def _clear_error_state(self) -> None:
        if self._last_error is not None:
            self._logger.info("Power source recovered")
        self._last_error = None
        self._last_logged_error = None

    def _read_source(self) -> PowerReading | None:
        try:
            reading = self._source.read()
        except Exception as exc:
            self._record_error(f"Failed to read power source: {exc}", exc_info=True)
            return None
        if not isinstance(reading, PowerReading):
            self._record_error(f"Power source returned {type(reading).__name__}, expected PowerReading")
            return None
        self._clear_error_state()
        return reading

    def sample(self, calibration: "CalibrationSettings") -> BatterySnapshot:
        """Read the source once and derive every metric."""

        now = self._clock()
        reading = self._read_source()
        if reading is None:
            return BatterySnapshot(
                charging=False,
                plug_type=None,
                level_percent=None,
                amps=None,
                volts=None,
                celsius=None,
                watts=None,
                energy_watt_hours=None,
                energy_amp_hours=None,
                seconds_until_charged=None,
                capacity_watt_hours=self.capacity_wh,
                timestamp=now,
                error=self._last_error,
            )

        charging = bool(reading.charging)
        level = _finite(reading.level_percent)
        if level is not None:
            level = max(0.0, min(100.0, level))
        volts = _finite(reading.volts)
        if volts is not None and volts < 0:
            volts = None
        celsius = _finite(reading.celsius)
        amps = calibrate_current(reading.raw_amps, calibration.current_scalar, calibration.invert_current)
        watts = amps * volts if amps is not None and volts is not None else None

        capacity = _finite(reading.capacity_wh)
        if capacity is None or capacity <= 0:
            capacity = self.capacity_wh
        energy_wh = level / 100.0 * capacity if level is not None else None

        return BatterySnapshot(
            charging=charging,
            plug_type=reading.plug_type if charging else None,
            level_percent=level,
            amps=amps,
            volts=volts,
            celsius=celsius,
            watts=watts,
            energy_watt_hours=energy_wh,
            energy_amp_hours=amp_hours_from_energy(energy_wh, volts),
            seconds_until_charged=seconds_until_charged(
                charging=charging,
                level_percent=level,
                energy_wh=energy_wh,
                capacity_wh=capacity,
                watts=watts,
            ),
            capacity_watt_hours=capacity,
            timestamp=now,
        )


__all__ = [
    "BasePowerSource",
    "BatterySampler",
    "BatterySnapshot",
    "DEFAULT_CAPACITY_WH",
    "PlugType",
    "PowerReading",
    "PowerSourceError",
    "amp_hours_from_energy",
    "calibrate_current",
    "seconds_until_charged",
]
