"""FastAPI settings surface wired to the status monitor."""
from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, Response
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from .battery import BasePowerSource, BatterySampler, PowerSourceError
from .config import CURRENT_SCALARS, ConfigManager
from .monitor import DEFAULT_INTERVAL_S, StatusMonitor
from .power import NullPowerSource, create_power_source
from .render import BaseRenderer, StatusBoard, encode_icon_jpeg
from .signals import SignalBus, Topic
from .units import IndicatorUnit
from .version import APP_VERSION

EVENT_TOPICS: dict[str, Topic] = {
    "power-connected": Topic.POWER_CONNECTED,
    "power-disconnected": Topic.POWER_DISCONNECTED,
    "screen-off": Topic.DISPLAY_PAUSE,
    "screen-on": Topic.DISPLAY_RESUME,
}


class SettingsPayload(BaseModel):
    current_scalar: float | None = None
    invert_current: bool | None = None
    indicator_unit: str | None = None
    background_colour: str | None = None
    text_colour: str | None = None


class CapacityPayload(BaseModel):
    capacity_wh: float = Field(gt=0)


def _resolve_interval(interval: float | None, logger: logging.Logger) -> float:
    if interval is not None:
        return float(interval)
    interval_env = os.getenv("WATTZ_SAMPLE_INTERVAL")
    if not interval_env:
        return DEFAULT_INTERVAL_S
    try:
        value = float(interval_env)
    except ValueError:
        logger.warning("Invalid WATTZ_SAMPLE_INTERVAL value %r; ignoring", interval_env)
        return DEFAULT_INTERVAL_S
    if value <= 0:
        logger.warning("WATTZ_SAMPLE_INTERVAL must be positive; ignoring %r", interval_env)
        return DEFAULT_INTERVAL_S
    return value


def create_app(
    config_path: Path | str = Path("data/config.json"),
    *,
    power_source: BasePowerSource | None = None,
    renderer: BaseRenderer | None = None,
    interval: float | None = None,
) -> FastAPI:
    app = FastAPI(title="wattz", version=APP_VERSION)

    logger = logging.getLogger(__name__)

    config_manager = ConfigManager(Path(config_path))

    if power_source is None:
        try:
            power_source = create_power_source()
        except PowerSourceError as exc:
            logger.warning("Power source unavailable: %s", exc)
            power_source = None
    if power_source is None:
        power_source = NullPowerSource()

    status_renderer = renderer if renderer is not None else StatusBoard()
    bus = SignalBus()
    sampler = BatterySampler(power_source, capacity_wh=config_manager.get_capacity_wh())
    monitor = StatusMonitor(
        sampler,
        bus,
        status_renderer,
        config_manager.load_calibration,
        interval=_resolve_interval(interval, logger),
    )

    latest_report: dict[str, Any] = {}
    report_lock = threading.Lock()

    def _store_report(report: dict[str, Any]) -> None:
        with report_lock:
            latest_report.clear()
            latest_report.update(report)

    bus.subscribe(Topic.DATA_AVAILABLE, _store_report)

    app.state.config_manager = config_manager
    app.state.signal_bus = bus
    app.state.status_monitor = monitor
    app.state.renderer = status_renderer

    def _settings_payload() -> dict[str, object]:
        payload: dict[str, object] = dict(config_manager.get_calibration().to_dict())
        payload.update(config_manager.get_notification_colours().to_dict())
        payload["capacity_wh"] = config_manager.get_capacity_wh()
        payload["current_scalars"] = list(CURRENT_SCALARS)
        payload["indicator_units"] = [unit.value for unit in IndicatorUnit]
        return payload

    @app.on_event("startup")
    async def startup() -> None:  # pragma: no cover - framework hook
        await run_in_threadpool(monitor.init)

    @app.on_event("shutdown")
    async def shutdown() -> None:  # pragma: no cover - framework hook
        await run_in_threadpool(monitor.teardown)
        try:
            power_source.close()
        except Exception:  # pragma: no cover - defensive guard
            logger.exception("Failed to close power source")

    @app.get("/api/battery")
    async def get_battery_report() -> dict[str, Any]:
        await run_in_threadpool(bus.publish, Topic.DATA_REQUESTED)
        with report_lock:
            report = dict(latest_report)
        if not report:
            raise HTTPException(status_code=503, detail="Battery data not yet available")
        return report

    @app.get("/api/settings")
    async def get_settings() -> dict[str, object]:
        return _settings_payload()

    @app.post("/api/settings")
    async def update_settings(payload: SettingsPayload) -> dict[str, object]:
        data = payload.model_dump(exclude_none=True)
        try:
            config_manager.update_settings(data)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        await run_in_threadpool(bus.publish, Topic.SETTINGS_CHANGED)
        return _settings_payload()

    @app.post("/api/battery/capacity")
    async def update_capacity(payload: CapacityPayload) -> dict[str, object]:
        try:
            capacity = config_manager.set_capacity_wh(payload.capacity_wh)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        sampler.capacity_wh = capacity
        await run_in_threadpool(bus.publish, Topic.SETTINGS_CHANGED)
        return _settings_payload()

    @app.post("/api/events/{name}")
    async def post_event(name: str) -> dict[str, object]:
        topic = EVENT_TOPICS.get(name.strip().lower())
        if topic is None:
            raise HTTPException(status_code=404, detail=f"Unknown event {name!r}")
        delivered = await run_in_threadpool(bus.publish, topic)
        return {"event": name, "topic": topic.value, "delivered": delivered, "state": monitor.state.value}

    @app.get("/api/status")
    async def get_status() -> dict[str, object]:
        entry = status_renderer.entry if isinstance(status_renderer, StatusBoard) else None
        return {
            "state": monitor.state.value,
            "scheduler": monitor.scheduler.state.value,
            "status": entry.to_dict() if entry is not None else None,
        }

    @app.get("/api/status/icon")
    async def get_status_icon() -> Response:
        entry = status_renderer.entry if isinstance(status_renderer, StatusBoard) else None
        if entry is None:
            raise HTTPException(status_code=503, detail="No status icon rendered yet")
        background, foreground = config_manager.get_notification_colours().as_rgb()
        try:
            jpeg = await run_in_threadpool(
                encode_icon_jpeg, entry.icon, background=background, foreground=foreground
            )
        except RuntimeError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return Response(content=jpeg, media_type="image/jpeg")

    return app


__all__ = ["EVENT_TOPICS", "create_app"]
