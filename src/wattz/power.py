"""Concrete power data sources for wattz."""
from __future__ import annotations

import logging
import math
import os
import time
from pathlib import Path
from threading import Lock
from typing import Callable

from .battery import BasePowerSource, PlugType, PowerReading, PowerSourceError

logger = logging.getLogger(__name__)

DEFAULT_POWER_SUPPLY_PATH = Path("/sys/class/power_supply")

_SUPPLY_PLUG_TYPES = {
    "mains": PlugType.AC,
    "usb": PlugType.USB,
    "wireless": PlugType.WIRELESS,
}


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError):
        return None


def _read_number(path: Path) -> float | None:
    text = _read_text(path)
    if text is None:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


class SysfsPowerSource(BasePowerSource):
    """Read the Linux ``/sys/class/power_supply`` tree.

    Values in sysfs use micro-units (µA, µV, µWh) and tenths of a degree for
    temperature.  Current is returned in amps with whatever sign the driver
    reports; the calibration settings decide how it is displayed.
    """

    def __init__(self, root: Path | str = DEFAULT_POWER_SUPPLY_PATH, *, battery: str | None = None) -> None:
        self._root = Path(root)
        self._battery_name = battery
        if not self._root.is_dir():
            raise PowerSourceError(f"Power supply directory {self._root} does not exist")
        if self._find_battery() is None:
            raise PowerSourceError(f"No battery found under {self._root}")

    @staticmethod
    def _supply_type(path: Path) -> str:
        return (_read_text(path / "type") or "").lower()

    def _supplies(self) -> list[Path]:
        try:
            return sorted(entry for entry in self._root.iterdir() if entry.is_dir())
        except OSError as exc:
            raise PowerSourceError(f"Unable to list {self._root}: {exc}") from exc

    def _find_battery(self) -> Path | None:
        if self._battery_name is not None:
            candidate = self._root / self._battery_name
            return candidate if candidate.is_dir() else None
        for supply in self._supplies():
            if self._supply_type(supply) == "battery":
                return supply
        return None

    def _plug_type(self) -> PlugType | None:
        for supply in self._supplies():
            kind = self._supply_type(supply)
            if kind == "battery":
                continue
            if _read_text(supply / "online") == "1":
                return _SUPPLY_PLUG_TYPES.get(kind, PlugType.UNKNOWN)
        return None

    @staticmethod
    def _capacity_wh(battery: Path) -> float | None:
        energy_full = _read_number(battery / "energy_full")
        if energy_full is not None and energy_full > 0:
            return energy_full / 1_000_000.0
        charge_full = _read_number(battery / "charge_full")
        design_voltage = _read_number(battery / "voltage_min_design")
        if charge_full and design_voltage and charge_full > 0 and design_voltage > 0:
            return (charge_full / 1_000_000.0) * (design_voltage / 1_000_000.0)
        return None

    def read(self) -> PowerReading:
        battery = self._find_battery()
        if battery is None:
            raise PowerSourceError(f"Battery disappeared from {self._root}")

        plug_type = self._plug_type()
        status = (_read_text(battery / "status") or "").lower()
        if status == "charging":
            charging: bool | None = True
        elif status == "full":
            charging = plug_type is not None
        elif status in {"discharging", "not charging"}:
            charging = False
        else:
            charging = None
        if charging and plug_type is None:
            plug_type = PlugType.UNKNOWN

        current = _read_number(battery / "current_now")
        voltage = _read_number(battery / "voltage_now")
        temperature = _read_number(battery / "temp")
        return PowerReading(
            charging=charging,
            plug_type=plug_type,
            level_percent=_read_number(battery / "capacity"),
            raw_amps=current / 1_000_000.0 if current is not None else None,
            volts=voltage / 1_000_000.0 if voltage is not None else None,
            celsius=temperature / 10.0 if temperature is not None else None,
            capacity_wh=self._capacity_wh(battery),
        )


def build_voltage_percentage_mapper(min_voltage: float, max_voltage: float) -> Callable[[float], float]:
    span = max_voltage - min_voltage
    if span <= 0:
        raise PowerSourceError("Maximum voltage must be greater than minimum voltage")

    def _mapper(voltage: float) -> float:
        percentage = (voltage - min_voltage) / span * 100.0
        return max(0.0, min(100.0, percentage))

    return _mapper


class INA219PowerSource(BasePowerSource):
    """Power source backed by an INA219 shunt monitor.

    Current is reported in the driver's native milliamps, so pair this source
    with a ``0.001`` current scalar.  Sensor reads are serialised across threads.
    """

    def __init__(
        self,
        *,
        address: int = 0x40,
        voltage_to_percentage: Callable[[float], float] | None = None,
        sensor_factory: Callable[[], object] | None = None,
    ) -> None:
        self._lock = Lock()
        self._voltage_to_percentage = voltage_to_percentage
        if sensor_factory is not None:
            try:
                self._sensor = sensor_factory()
            except Exception as exc:
                raise PowerSourceError("Unable to communicate with INA219 sensor") from exc
            return

        try:  # pragma: no cover - hardware dependent
            import board  # type: ignore
            import busio  # type: ignore
            from adafruit_ina219 import INA219  # type: ignore
        except ModuleNotFoundError as exc:  # pragma: no cover - hardware dependent
            raise PowerSourceError("INA219 dependencies are not installed") from exc
        except Exception as exc:  # pragma: no cover - import varies by environment
            raise PowerSourceError(f"INA219 board support unavailable: {exc}") from exc

        try:  # pragma: no cover - hardware dependent
            i2c = busio.I2C(board.SCL, board.SDA)
            self._sensor = INA219(i2c, addr=address)
        except Exception as exc:  # pragma: no cover - hardware dependent
            raise PowerSourceError("Unable to communicate with INA219 sensor") from exc

    def read(self) -> PowerReading:
        with self._lock:
            try:
                voltage = float(self._sensor.bus_voltage)
            except Exception as exc:
                raise PowerSourceError("Failed to read bus voltage from INA219") from exc
            try:
                current = float(self._sensor.current)
            except Exception:
                current = None
        level = None
        if self._voltage_to_percentage is not None:
            level = self._voltage_to_percentage(voltage)
        charging = current > 0 if current is not None else None
        return PowerReading(
            charging=charging,
            plug_type=PlugType.UNKNOWN if charging else None,
            level_percent=level,
            raw_amps=current,
            volts=voltage,
        )


class NullPowerSource(BasePowerSource):
    """Source used when monitoring is disabled; every field is unknown."""

    def read(self) -> PowerReading:
        return PowerReading()


class SyntheticPowerSource(BasePowerSource):
    """Synthetic source cycling through charge and discharge."""

    def __init__(
        self,
        *,
        period_s: float = 600.0,
        capacity_wh: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if period_s <= 0:
            raise PowerSourceError("period_s must be positive")
        self._period = float(period_s)
        self._capacity = float(capacity_wh)
        self._clock = clock
        self._start = clock()

    def read(self) -> PowerReading:
        phase = (self._clock() - self._start) / self._period * 2.0 * math.pi
        level = 50.0 + 50.0 * math.sin(phase)
        charging = math.cos(phase) > 0
        volts = 3.5 + 0.7 * level / 100.0
        amps = 1.5 if charging else -0.6
        return PowerReading(
            charging=charging,
            plug_type=PlugType.USB if charging else None,
            level_percent=level,
            raw_amps=amps,
            volts=volts,
            celsius=28.0 + 4.0 * abs(math.sin(phase)),
            capacity_wh=self._capacity,
        )


def _get_voltage_limits() -> tuple[float, float]:
    def _parse(name: str, fallback: float) -> float:
        value = os.getenv(name)
        if value is None:
            return fallback
        try:
            return float(value)
        except ValueError as exc:
            raise PowerSourceError(f"Invalid voltage value {value!r}") from exc

    return _parse("WATTZ_INA219_MIN_VOLTAGE", 3.3), _parse("WATTZ_INA219_MAX_VOLTAGE", 4.2)


def create_power_source() -> BasePowerSource | None:
    """Create the power source selected via ``WATTZ_POWER_SOURCE``."""

    choice = os.getenv("WATTZ_POWER_SOURCE", "auto").strip().lower()
    if choice in {"none", "off", "disable", "disabled"}:
        return None
    if choice == "synthetic":
        return SyntheticPowerSource()

    root = Path(os.getenv("WATTZ_POWER_SUPPLY_PATH", str(DEFAULT_POWER_SUPPLY_PATH)))
    if choice == "sysfs":
        return SysfsPowerSource(root)
    if choice == "ina219":
        return INA219PowerSource(voltage_to_percentage=build_voltage_percentage_mapper(*_get_voltage_limits()))
    if choice in {"auto", "default"}:
        try:
            return SysfsPowerSource(root)
        except PowerSourceError as exc:
            logger.info("sysfs power source unavailable: %s", exc)
        try:
            return INA219PowerSource(
                voltage_to_percentage=build_voltage_percentage_mapper(*_get_voltage_limits())
            )
        except PowerSourceError as exc:
            logger.info("INA219 power source unavailable: %s", exc)
        logger.warning("No hardware power source found; using synthetic readings")
        return SyntheticPowerSource()

    raise PowerSourceError(f"Unknown power source selection: {choice}")


__all__ = [
    "DEFAULT_POWER_SUPPLY_PATH",
    "INA219PowerSource",
    "NullPowerSource",
    "SysfsPowerSource",
    "SyntheticPowerSource",
    "build_voltage_percentage_mapper",
    "create_power_source",
]
