import json
from pathlib import Path

import pytest

from wattz.battery import DEFAULT_CAPACITY_WH
from wattz.config import (
    DEFAULT_CALIBRATION,
    DEFAULT_NOTIFICATION_COLOURS,
    CalibrationSettings,
    ConfigManager,
    NotificationColours,
    parse_calibration,
)
from wattz.units import IndicatorUnit


def test_defaults_when_file_missing(tmp_path: Path):
    manager = ConfigManager(tmp_path / "config.json")
    assert manager.get_calibration() == DEFAULT_CALIBRATION
    assert manager.get_calibration().indicator_unit is IndicatorUnit.POWER
    assert manager.get_capacity_wh() == DEFAULT_CAPACITY_WH
    assert manager.get_notification_colours() == DEFAULT_NOTIFICATION_COLOURS


def test_set_calibration_persists(tmp_path: Path):
    config_file = tmp_path / "config.json"
    manager = ConfigManager(config_file)
    updated = manager.set_calibration({"current_scalar": 0.001, "invert_current": True, "indicator_unit": "%"})
    assert updated.current_scalar == 0.001
    assert updated.invert_current is True
    assert updated.indicator_unit is IndicatorUnit.PERCENT
    # Reload to ensure persistence
    reloaded = ConfigManager(config_file)
    assert reloaded.get_calibration() == updated
    stored = json.loads(config_file.read_text())
    assert stored["calibration"] == {"current_scalar": 0.001, "invert_current": True, "indicator_unit": "%"}


def test_partial_calibration_update_keeps_other_fields(tmp_path: Path):
    manager = ConfigManager(tmp_path / "config.json")
    manager.set_calibration({"current_scalar": 1000})
    updated = manager.set_calibration({"indicator_unit": "Wh"})
    assert updated.current_scalar == 1000.0
    assert updated.indicator_unit is IndicatorUnit.ENERGY_WATTHOURS


@pytest.mark.parametrize(
    "payload",
    [
        {"current_scalar": 10},
        {"current_scalar": "abc"},
        {"invert_current": "maybe"},
        {"indicator_unit": "kW"},
    ],
)
def test_invalid_calibration_rejected(tmp_path: Path, payload):
    manager = ConfigManager(tmp_path / "config.json")
    with pytest.raises(ValueError):
        manager.set_calibration(payload)
    assert manager.get_calibration() == DEFAULT_CALIBRATION


def test_calibration_scalar_snaps_to_allowed_values():
    assert CalibrationSettings(current_scalar=0.0010000000001).current_scalar == 0.001
    assert parse_calibration({"invert_current": "yes"}).invert_current is True


def test_capacity_roundtrip_and_validation(tmp_path: Path):
    config_file = tmp_path / "config.json"
    manager = ConfigManager(config_file)
    assert manager.set_capacity_wh("42.5") == 42.5
    assert ConfigManager(config_file).get_capacity_wh() == 42.5
    for bad in (0, -3, "x", True, float("inf")):
        with pytest.raises(ValueError):
            manager.set_capacity_wh(bad)


def test_notification_colours_normalised(tmp_path: Path):
    manager = ConfigManager(tmp_path / "config.json")
    colours = manager.set_notification_colours({"background_colour": "#1a2b3c"})
    assert colours.background == "#1A2B3C"
    assert colours.text == "#000000"
    assert colours.as_rgb() == ((0x1A, 0x2B, 0x3C), (0, 0, 0))
    with pytest.raises(ValueError):
        manager.set_notification_colours({"text_colour": "red"})


def test_notification_colours_validation():
    with pytest.raises(ValueError):
        NotificationColours(background="#12345")


def test_invalid_sections_fall_back_individually(tmp_path: Path):
    config_file = tmp_path / "config.json"
    config_file.write_text(
        json.dumps(
            {
                "calibration": {"current_scalar": 7, "invert_current": True, "indicator_unit": "A"},
                "battery": {"capacity_wh": -1},
                "notification": {"background_colour": "nope"},
            }
        )
    )
    manager = ConfigManager(config_file)
    calibration = manager.get_calibration()
    assert calibration.current_scalar == 1.0
    assert calibration.invert_current is True
    assert calibration.indicator_unit is IndicatorUnit.CURRENT
    assert manager.get_capacity_wh() == DEFAULT_CAPACITY_WH
    assert manager.get_notification_colours() == DEFAULT_NOTIFICATION_COLOURS


def test_load_calibration_rereads_file(tmp_path: Path):
    config_file = tmp_path / "config.json"
    manager = ConfigManager(config_file)
    other = ConfigManager(config_file)
    other.set_calibration({"indicator_unit": "V"})
    assert manager.get_calibration().indicator_unit is IndicatorUnit.POWER
    assert manager.load_calibration().indicator_unit is IndicatorUnit.VOLTAGE


def test_corrupt_file_raises_runtime_error(tmp_path: Path):
    config_file = tmp_path / "config.json"
    config_file.write_text("{not json")
    with pytest.raises(RuntimeError, match="Failed to load configuration"):
        ConfigManager(config_file)


def test_update_settings_stores_nothing_when_any_value_is_invalid(tmp_path: Path):
    config_file = tmp_path / "config.json"
    manager = ConfigManager(config_file)
    with pytest.raises(ValueError):
        manager.update_settings({"indicator_unit": "A", "background_colour": "red"})
    assert manager.get_calibration() == DEFAULT_CALIBRATION
    assert not config_file.exists()
    assert ConfigManager(config_file).get_calibration() == DEFAULT_CALIBRATION


def test_update_settings_applies_calibration_and_colours_together(tmp_path: Path):
    config_file = tmp_path / "config.json"
    manager = ConfigManager(config_file)
    calibration, colours = manager.update_settings({"invert_current": True, "text_colour": "#00ff00"})
    assert calibration.invert_current is True
    assert colours.text == "#00FF00"
    reloaded = ConfigManager(config_file)
    assert reloaded.get_calibration().invert_current is True
    assert reloaded.get_notification_colours().text == "#00FF00"
