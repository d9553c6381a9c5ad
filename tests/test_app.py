"""Integration tests for the battery status API."""

from __future__ import annotations

from pathlib import Path

import pytest

pytest.importorskip("httpx")

from fastapi.testclient import TestClient

from wattz import app as app_module
from wattz.battery import BasePowerSource, PlugType, PowerReading
from wattz.config import ConfigManager
from wattz.monitor import MonitorState


class _StubSource(BasePowerSource):
    def __init__(self) -> None:
        self.reading = PowerReading(
            charging=True,
            plug_type=PlugType.AC,
            level_percent=80.0,
            raw_amps=1.5,
            volts=4.0,
            celsius=31.0,
        )
        self.closed = False

    def read(self) -> PowerReading:
        return self.reading

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def source() -> _StubSource:
    return _StubSource()


@pytest.fixture
def client(tmp_path: Path, source: _StubSource) -> TestClient:
    app = app_module.create_app(tmp_path / "config.json", power_source=source, interval=60.0)
    with TestClient(app) as test_client:
        yield test_client
    assert source.closed is True


def test_battery_endpoint_returns_report(client: TestClient) -> None:
    response = client.get("/api/battery")
    assert response.status_code == 200
    payload = response.json()
    assert payload["charging"] == "yes (ac)"
    assert payload["charge_level"] == "80%"
    assert payload["current"] == "1.5A"
    assert payload["power"] == "6W"
    assert payload["voltage"] == "4V"
    assert payload["temperature"] == "31\N{DEGREE SIGN}C"
    assert payload["energy"] == "12Wh (3Ah)"
    assert payload["time_to_full_charge"] == "30m 0s"
    assert payload["indicator"] == {"label": "Power", "value": "6", "unit": "W", "detail": ""}


def test_battery_endpoint_unavailable_before_startup(tmp_path: Path, source: _StubSource) -> None:
    app = app_module.create_app(tmp_path / "config.json", power_source=source, interval=60.0)
    test_client = TestClient(app)
    response = test_client.get("/api/battery")
    assert response.status_code == 503


def test_settings_defaults(client: TestClient) -> None:
    response = client.get("/api/settings")
    assert response.status_code == 200
    payload = response.json()
    assert payload["current_scalar"] == 1.0
    assert payload["invert_current"] is False
    assert payload["indicator_unit"] == "W"
    assert payload["background_colour"] == "#FFFFFF"
    assert payload["text_colour"] == "#000000"
    assert payload["capacity_wh"] == pytest.approx(15.0)
    assert payload["current_scalars"] == [1.0, 1000.0, 0.001]
    assert "%" in payload["indicator_units"]


def test_settings_update_persists_and_refreshes(client: TestClient, tmp_path: Path) -> None:
    response = client.post(
        "/api/settings",
        json={"current_scalar": 1000, "indicator_unit": "A", "text_colour": "#ff0000"},
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["current_scalar"] == 1000.0
    assert payload["indicator_unit"] == "A"
    assert payload["text_colour"] == "#FF0000"

    stored = ConfigManager(tmp_path / "config.json")
    assert stored.get_calibration().current_scalar == 1000.0

    battery = client.get("/api/battery").json()
    assert battery["current"] == "1500A"
    assert battery["indicator"]["unit"] == "A"

    status = client.get("/api/status").json()
    assert status["status"]["title"] == "Battery Current: 1500A"


@pytest.mark.parametrize(
    "payload",
    [
        {"current_scalar": 10},
        {"indicator_unit": "kW"},
        {"background_colour": "white"},
    ],
)
def test_settings_rejects_invalid_values(client: TestClient, payload: dict) -> None:
    response = client.post("/api/settings", json=payload)
    assert response.status_code == 400


def test_rejected_settings_leave_stored_and_live_values_in_step(client: TestClient, tmp_path: Path) -> None:
    response = client.post("/api/settings", json={"indicator_unit": "A", "background_colour": "red"})
    assert response.status_code == 400

    stored = ConfigManager(tmp_path / "config.json")
    assert stored.get_calibration().indicator_unit.value == "W"
    assert client.get("/api/settings").json()["indicator_unit"] == "W"
    assert client.get("/api/battery").json()["indicator"]["unit"] == "W"
    assert client.app.state.status_monitor.calibration == stored.get_calibration()


def test_capacity_endpoint_updates_sampler(client: TestClient) -> None:
    response = client.post("/api/battery/capacity", json={"capacity_wh": 30})
    assert response.status_code == 200
    assert response.json()["capacity_wh"] == pytest.approx(30.0)

    battery = client.get("/api/battery").json()
    assert battery["energy"] == "24Wh (6Ah)"


def test_capacity_endpoint_rejects_non_positive(client: TestClient) -> None:
    response = client.post("/api/battery/capacity", json={"capacity_wh": 0})
    assert response.status_code == 422


def test_screen_events_pause_and_resume(client: TestClient) -> None:
    response = client.post("/api/events/screen-off")
    assert response.status_code == 200
    assert response.json()["state"] == MonitorState.SUSPENDED.value
    assert client.get("/api/status").json()["scheduler"] == "stopped"

    response = client.post("/api/events/screen-on")
    assert response.json()["state"] == MonitorState.ACTIVE.value
    assert client.get("/api/status").json()["scheduler"] == "running"


def test_power_events_track_charge_session(client: TestClient) -> None:
    assert client.get("/api/battery").json()["charging_since"] == "?"

    response = client.post("/api/events/power-connected")
    assert response.status_code == 200
    assert response.json()["topic"] == "POWER_CONNECTED"
    assert client.get("/api/battery").json()["charging_since"] != "?"

    client.post("/api/events/power-disconnected")
    assert client.get("/api/battery").json()["charging_since"] == "?"


def test_unknown_event_is_404(client: TestClient) -> None:
    response = client.post("/api/events/reboot")
    assert response.status_code == 404


def test_status_reports_latest_entry(client: TestClient) -> None:
    response = client.get("/api/status")
    assert response.status_code == 200
    payload = response.json()
    assert payload["state"] == "active"
    assert payload["status"]["title"] == "Battery Power: 6W"
    assert payload["status"]["body"] == "30m 0s until full charge"


def test_status_icon_returns_jpeg(client: TestClient) -> None:
    pytest.importorskip("simplejpeg")
    response = client.get("/api/status/icon")
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/jpeg"
    assert response.content[:2] == b"\xff\xd8"


def test_status_icon_unavailable_without_entry(tmp_path: Path, source: _StubSource) -> None:
    app = app_module.create_app(tmp_path / "config.json", power_source=source, interval=60.0)
    response = TestClient(app).get("/api/status/icon")
    assert response.status_code == 503


def test_create_app_falls_back_when_source_selection_invalid(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("WATTZ_POWER_SOURCE", "bogus")
    app = app_module.create_app(tmp_path / "config.json", interval=60.0)
    with TestClient(app) as test_client:
        payload = test_client.get("/api/battery").json()
    assert payload["charging"] == "no"
    assert payload["power"] == "?W"


def test_sample_interval_env_is_validated(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, source: _StubSource) -> None:
    monkeypatch.setenv("WATTZ_SAMPLE_INTERVAL", "fast")
    app = app_module.create_app(tmp_path / "config.json", power_source=source)
    assert app.state.status_monitor.scheduler.interval == 5.0

    monkeypatch.setenv("WATTZ_SAMPLE_INTERVAL", "2.5")
    app = app_module.create_app(tmp_path / "other.json", power_source=source)
    assert app.state.status_monitor.scheduler.interval == 2.5
