"""Configuration management for wattz."""
from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Mapping

from .battery import DEFAULT_CAPACITY_WH
from .units import DEFAULT_INDICATOR_UNIT, IndicatorUnit

CURRENT_SCALARS: tuple[float, ...] = (1.0, 1000.0, 0.001)

DEFAULT_BACKGROUND_COLOUR = "#FFFFFF"
DEFAULT_TEXT_COLOUR = "#000000"

_COLOUR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")
_CALIBRATION_KEYS = ("current_scalar", "invert_current", "indicator_unit")


@dataclass(frozen=True, slots=True)
class CalibrationSettings:
    """Scale and sign adjustments applied to raw current readings."""

    current_scalar: float = 1.0
    invert_current: bool = False
    indicator_unit: IndicatorUnit = DEFAULT_INDICATOR_UNIT

    def __post_init__(self) -> None:
        try:
            scalar = float(self.current_scalar)
        except (TypeError, ValueError) as exc:
            raise ValueError("Current scalar must be numeric") from exc
        matched = next((option for option in CURRENT_SCALARS if math.isclose(scalar, option)), None)
        if matched is None:
            options = ", ".join(f"{option:g}" for option in CURRENT_SCALARS)
            raise ValueError(f"Current scalar must be one of {options}")
        object.__setattr__(self, "current_scalar", matched)
        object.__setattr__(self, "invert_current", bool(self.invert_current))
        object.__setattr__(self, "indicator_unit", IndicatorUnit.parse(self.indicator_unit))

    def to_dict(self) -> dict[str, object]:
        return {
            "current_scalar": float(self.current_scalar),
            "invert_current": bool(self.invert_current),
            "indicator_unit": self.indicator_unit.value,
        }


DEFAULT_CALIBRATION = CalibrationSettings()


@dataclass(frozen=True, slots=True)
class NotificationColours:
    """Colours used when previewing the status icon."""

    background: str = DEFAULT_BACKGROUND_COLOUR
    text: str = DEFAULT_TEXT_COLOUR

    def __post_init__(self) -> None:
        for name in ("background", "text"):
            value = getattr(self, name)
            if not isinstance(value, str) or not _COLOUR_PATTERN.match(value.strip()):
                raise ValueError(f"Notification {name} colour must look like #RRGGBB")
            object.__setattr__(self, name, value.strip().upper())

    def as_rgb(self) -> tuple[tuple[int, int, int], tuple[int, int, int]]:
        return _hex_to_rgb(self.background), _hex_to_rgb(self.text)

    def to_dict(self) -> dict[str, str]:
        return {"background_colour": self.background, "text_colour": self.text}


DEFAULT_NOTIFICATION_COLOURS = NotificationColours()


def _hex_to_rgb(value: str) -> tuple[int, int, int]:
    text = value.lstrip("#")
    return (int(text[0:2], 16), int(text[2:4], 16), int(text[4:6], 16))


def _parse_bool(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if math.isnan(float(value)):
            raise ValueError("Boolean settings must not be NaN")
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if not text:
            return default
        if text in {"1", "true", "yes", "on"}:
            return True
        if text in {"0", "false", "no", "off"}:
            return False
    raise ValueError("Boolean settings must be true or false")


def parse_calibration(data: Mapping[str, Any], *, base: CalibrationSettings = DEFAULT_CALIBRATION) -> CalibrationSettings:
    """Build calibration settings from *data*, keeping *base* for absent keys."""

    if not isinstance(data, Mapping):
        raise ValueError("Calibration settings must be an object")
    scalar = data.get("current_scalar", base.current_scalar)
    if scalar is None:
        scalar = base.current_scalar
    invert = _parse_bool(data.get("invert_current"), default=base.invert_current)
    unit = data.get("indicator_unit", base.indicator_unit)
    if unit is None:
        unit = base.indicator_unit
    return CalibrationSettings(current_scalar=scalar, invert_current=invert, indicator_unit=unit)


def _parse_calibration(value: Any, *, default: CalibrationSettings) -> CalibrationSettings:
    if not isinstance(value, Mapping):
        return default
    # Each key falls back on its own so one bad value does not reset the rest.
    fields: dict[str, Any] = {}
    for key in _CALIBRATION_KEYS:
        try:
            parse_calibration({key: value.get(key)}, base=default)
        except ValueError:
            continue
        fields[key] = value.get(key)
    return parse_calibration(fields, base=default)


def _parse_capacity(value: Any, *, default: float) -> float:
    if not isinstance(value, Mapping):
        return default
    raw = value.get("capacity_wh")
    try:
        return validate_capacity(raw)
    except ValueError:
        return default


def validate_capacity(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("Battery capacity must be numeric")
    try:
        capacity = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError("Battery capacity must be numeric") from exc
    if not math.isfinite(capacity) or capacity <= 0:
        raise ValueError("Battery capacity must be a positive number of watt-hours")
    return capacity


def _parse_colours(value: Any, *, default: NotificationColours) -> NotificationColours:
    if not isinstance(value, Mapping):
        return default
    try:
        return NotificationColours(
            background=value.get("background_colour", default.background),
            text=value.get("text_colour", default.text),
        )
    except ValueError:
        return default


class ConfigManager:
    """Stores preference state on disk with thread-safety.

    Values are cached in memory; :meth:`load_calibration` re-reads the file so
    a writer in another process is picked up when ``SETTINGS_CHANGED`` fires.
    """

    def __init__(self, config_path: Path | str) -> None:
        self._path = Path(config_path)
        self._lock = Lock()
        self._ensure_parent()
        with self._lock:
            self._calibration, self._capacity_wh, self._colours = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _ensure_parent(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def _load(self) -> tuple[CalibrationSettings, float, NotificationColours]:
        if not self._path.exists():
            return DEFAULT_CALIBRATION, DEFAULT_CAPACITY_WH, DEFAULT_NOTIFICATION_COLOURS
        try:
            payload = json.loads(self._path.read_text())
            if not isinstance(payload, dict):
                raise ValueError("Configuration file must contain a JSON object")
        except (OSError, ValueError) as exc:
            raise RuntimeError(f"Failed to load configuration: {exc}") from exc
        calibration = _parse_calibration(payload.get("calibration"), default=DEFAULT_CALIBRATION)
        capacity = _parse_capacity(payload.get("battery"), default=DEFAULT_CAPACITY_WH)
        colours = _parse_colours(payload.get("notification"), default=DEFAULT_NOTIFICATION_COLOURS)
        return calibration, capacity, colours

    def _save(self) -> None:
        payload: Dict[str, Any] = {
            "calibration": self._calibration.to_dict(),
            "battery": {"capacity_wh": self._capacity_wh},
            "notification": self._colours.to_dict(),
        }
        self._path.write_text(json.dumps(payload, indent=2))

    def load_calibration(self) -> CalibrationSettings:
        """Re-read the backing file and return the calibration settings."""

        with self._lock:
            self._calibration, self._capacity_wh, self._colours = self._load()
            return self._calibration

    def get_calibration(self) -> CalibrationSettings:
        with self._lock:
            return self._calibration

    def set_calibration(self, data: Mapping[str, Any]) -> CalibrationSettings:
        with self._lock:
            calibration = parse_calibration(data, base=self._calibration)
            self._calibration = calibration
            self._save()
        return calibration

    def get_capacity_wh(self) -> float:
        with self._lock:
            return self._capacity_wh

    def set_capacity_wh(self, value: Any) -> float:
        capacity = validate_capacity(value)
        with self._lock:
            self._capacity_wh = capacity
            self._save()
        return capacity

    def get_notification_colours(self) -> NotificationColours:
        with self._lock:
            return self._colours

    def set_notification_colours(self, data: Mapping[str, Any]) -> NotificationColours:
        with self._lock:
            colours = self._merge_colours(data)
            self._colours = colours
            self._save()
        return colours

    def update_settings(self, data: Mapping[str, Any]) -> tuple[CalibrationSettings, NotificationColours]:
        """Apply calibration and colour keys together; nothing is stored if any value is invalid."""

        with self._lock:
            calibration_keys = {key: data[key] for key in _CALIBRATION_KEYS if key in data}
            calibration = parse_calibration(calibration_keys, base=self._calibration)
            colours = self._merge_colours(data)
            self._calibration = calibration
            self._colours = colours
            self._save()
        return calibration, colours

    def _merge_colours(self, data: Mapping[str, Any]) -> NotificationColours:
        return NotificationColours(
            background=data.get("background_colour") or self._colours.background,
            text=data.get("text_colour") or self._colours.text,
        )


__all__ = [
    "CURRENT_SCALARS",
    "CalibrationSettings",
    "ConfigManager",
    "DEFAULT_BACKGROUND_COLOUR",
    "DEFAULT_CALIBRATION",
    "DEFAULT_NOTIFICATION_COLOURS",
    "DEFAULT_TEXT_COLOUR",
    "NotificationColours",
    "parse_calibration",
    "validate_capacity",
]
