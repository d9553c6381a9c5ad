"""Formatting helpers that turn battery snapshots into display strings."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .battery import BatterySnapshot


INDETERMINATE = "?"
FULLY_CHARGED = "fully charged"
DEGREES_CELSIUS = "\N{DEGREE SIGN}C"

_DECIMALS = 2


class IndicatorUnit(str, Enum):
    """Metric selected to headline the status display."""

    POWER = "W"
    CURRENT = "A"
    VOLTAGE = "V"
    TEMPERATURE = "C"
    CHARGE_AMPHOURS = "Ah"
    ENERGY_WATTHOURS = "Wh"
    PERCENT = "%"

    @classmethod
    def parse(cls, value: object) -> "IndicatorUnit":
        """Return the unit matching *value* by symbol or member name."""

        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            text = value.strip()
            for member in cls:
                if text == member.value or text.upper() == member.name:
                    return member
        raise ValueError(f"Unknown indicator unit: {value!r}")


DEFAULT_INDICATOR_UNIT = IndicatorUnit.POWER


@dataclass(frozen=True, slots=True)
class DisplayValue:
    """Headline metric ready for rendering."""

    label: str
    value: str
    unit: str
    detail: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "label": self.label,
            "value": self.value,
            "unit": self.unit,
            "detail": self.detail,
        }


def fmt(value: float | None) -> str:
    """Format *value* with at most two decimals and no grouping."""

    if value is None:
        return INDETERMINATE
    try:
        number = float(value)
    except (TypeError, ValueError):
        return INDETERMINATE
    if not math.isfinite(number):
        return INDETERMINATE
    text = f"{round(number, _DECIMALS):.{_DECIMALS}f}".rstrip("0").rstrip(".")
    if text in ("-0", ""):
        return "0"
    return text


def fmt_seconds(seconds: float) -> str:
    """Return a compact ``Hh Mm`` or ``Mm Ss`` duration, rounded up to whole seconds."""

    total = max(0, math.ceil(round(float(seconds), 6)))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m {secs}s"


_LABELS: dict[IndicatorUnit, str] = {
    IndicatorUnit.POWER: "Power",
    IndicatorUnit.CURRENT: "Current",
    IndicatorUnit.VOLTAGE: "Voltage",
    IndicatorUnit.TEMPERATURE: "Temperature",
    IndicatorUnit.CHARGE_AMPHOURS: "Energy",
    IndicatorUnit.ENERGY_WATTHOURS: "Energy",
    IndicatorUnit.PERCENT: "Charge Level",
}


def select_display(snapshot: "BatterySnapshot", unit: IndicatorUnit | str) -> DisplayValue:
    """Pick the headline label, value and unit suffix for *unit*."""

    selected = IndicatorUnit.parse(unit)
    values: dict[IndicatorUnit, float | None] = {
        IndicatorUnit.POWER: snapshot.watts,
        IndicatorUnit.CURRENT: snapshot.amps,
        IndicatorUnit.VOLTAGE: snapshot.volts,
        IndicatorUnit.TEMPERATURE: snapshot.celsius,
        IndicatorUnit.CHARGE_AMPHOURS: snapshot.energy_amp_hours,
        IndicatorUnit.ENERGY_WATTHOURS: snapshot.energy_watt_hours,
        IndicatorUnit.PERCENT: snapshot.level_percent,
    }
    label = _LABELS[selected]
    value = fmt(values[selected])
    if selected is IndicatorUnit.PERCENT:
        return DisplayValue(label, value, "", f"({fmt(snapshot.watts)}W)")
    if selected is IndicatorUnit.TEMPERATURE:
        return DisplayValue(label, value, DEGREES_CELSIUS)
    return DisplayValue(label, value, selected.value)


def status_title(display: DisplayValue) -> str:
    title = f"Battery {display.label}: {display.value}{display.unit}"
    if display.detail:
        title = f"{title} {display.detail}"
    return title


def status_body(seconds_until_charged: float | None) -> str:
    """Return the secondary status line describing time to full charge."""

    if seconds_until_charged is None:
        return ""
    if seconds_until_charged == 0:
        return FULLY_CHARGED
    return f"{fmt_seconds(seconds_until_charged)} until full charge"


def time_to_full_text(seconds_until_charged: float | None) -> str:
    if seconds_until_charged is None:
        return INDETERMINATE
    if seconds_until_charged == 0:
        return FULLY_CHARGED
    return fmt_seconds(seconds_until_charged)


def charge_state_text(charging: bool, plug_type: str | None) -> str:
    if not charging:
        return "no"
    if plug_type:
        return f"yes ({plug_type.lower()})"
    return "yes"


__all__ = [
    "DEFAULT_INDICATOR_UNIT",
    "DEGREES_CELSIUS",
    "DisplayValue",
    "FULLY_CHARGED",
    "INDETERMINATE",
    "IndicatorUnit",
    "charge_state_text",
    "fmt",
    "fmt_seconds",
    "select_display",
    "status_body",
    "status_title",
    "time_to_full_text",
]
