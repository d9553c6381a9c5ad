"""Command-line runner for the wattz battery status monitor."""
from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
from pathlib import Path
from threading import Event
from typing import Any, Sequence, TextIO

from .battery import BasePowerSource, BatterySampler, PowerSourceError
from .config import ConfigManager
from .lifecycle import PowerStateWatcher
from .monitor import DEFAULT_INTERVAL_S, StatusMonitor, build_report
from .power import NullPowerSource, create_power_source
from .render import StatusBoard
from .signals import SignalBus, Topic
from .units import DisplayValue, select_display, status_body, status_title
from .version import APP_VERSION

DEFAULT_CONFIG_PATH = Path("data/config.json")

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the wattz CLI."""

    parser = argparse.ArgumentParser(
        prog="python -m wattz.cli",
        description="Battery status monitor",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(os.getenv("WATTZ_CONFIG", str(DEFAULT_CONFIG_PATH))),
        help="Path to the JSON settings file.",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=DEFAULT_INTERVAL_S,
        help="Seconds between samples while running.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Sample once, print the report and exit.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit reports as JSON for scripting.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    return parser


def _open_source() -> BasePowerSource:
    try:
        source = create_power_source()
    except PowerSourceError as exc:
        logger.warning("Power source unavailable: %s", exc)
        source = None
    return source if source is not None else NullPowerSource()


def _print_report(report: dict[str, Any], *, as_json: bool, stream: TextIO) -> None:
    if as_json:
        json.dump(report, stream)
        stream.write("\n")
        stream.flush()
        return
    indicator = DisplayValue(**report["indicator"])
    stream.write(f"{status_title(indicator)}\n")
    stream.flush()


def _describe_report(report: dict[str, Any], stream: TextIO) -> None:
    labels = (
        ("Charging", "charging"),
        ("Charge level", "charge_level"),
        ("Charging since", "charging_since"),
        ("Current", "current"),
        ("Energy", "energy"),
        ("Power", "power"),
        ("Temperature", "temperature"),
        ("Time to full charge", "time_to_full_charge"),
        ("Voltage", "voltage"),
    )
    for label, key in labels:
        stream.write(f"{label}: {report[key]}\n")


def run_once(
    config_path: Path,
    source: BasePowerSource,
    *,
    as_json: bool = False,
    stream: TextIO | None = None,
) -> dict[str, Any]:
    """Take a single sample and print the resulting report."""

    out = stream if stream is not None else sys.stdout
    config_manager = ConfigManager(config_path)
    calibration = config_manager.load_calibration()
    sampler = BatterySampler(source, capacity_wh=config_manager.get_capacity_wh())
    snapshot = sampler.sample(calibration)
    display = select_display(snapshot, calibration.indicator_unit)
    report = build_report(snapshot, display, None)
    if as_json:
        _print_report(report, as_json=True, stream=out)
        return report
    out.write(f"wattz {APP_VERSION}\n")
    out.write(f"{status_title(display)}\n")
    body = status_body(snapshot.seconds_until_charged)
    if body:
        out.write(f"{body}\n")
    _describe_report(report, out)
    if snapshot.error:
        out.write(f"Error: {snapshot.error}\n")
    out.flush()
    return report


def run_monitor(
    config_path: Path,
    source: BasePowerSource,
    *,
    interval: float = DEFAULT_INTERVAL_S,
    as_json: bool = False,
    stream: TextIO | None = None,
    stop_event: Event | None = None,
) -> None:
    """Run the monitor and plug watcher until *stop_event* is set."""

    out = stream if stream is not None else sys.stdout
    stop = stop_event if stop_event is not None else Event()
    config_manager = ConfigManager(config_path)
    bus = SignalBus()
    sampler = BatterySampler(source, capacity_wh=config_manager.get_capacity_wh())
    monitor = StatusMonitor(
        sampler,
        bus,
        StatusBoard(),
        config_manager.load_calibration,
        interval=interval,
    )
    watcher = PowerStateWatcher(source, bus)
    bus.subscribe(Topic.DATA_AVAILABLE, lambda report: _print_report(report, as_json=as_json, stream=out))

    monitor.init()
    watcher.start()
    try:
        while not stop.wait(0.5):
            pass
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    finally:
        watcher.stop()
        monitor.teardown()


def run(argv: Sequence[str] | None = None) -> int:
    """Execute the wattz CLI with *argv* arguments."""

    parser = build_parser()
    args = parser.parse_args(argv)
    if args.interval <= 0:
        parser.error("--interval must be positive")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    source = _open_source()
    try:
        if args.once:
            run_once(args.config, source, as_json=args.json)
            return 0

        stop_event = Event()

        def _handle_signal(signum: int, frame: object) -> None:
            stop_event.set()

        signal.signal(signal.SIGTERM, _handle_signal)
        run_monitor(
            args.config,
            source,
            interval=args.interval,
            as_json=args.json,
            stop_event=stop_event,
        )
    except RuntimeError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        source.close()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point used by `python -m wattz.cli`."""

    return run(argv)


__all__ = ["build_parser", "run", "run_once", "run_monitor", "main"]


if __name__ == "__main__":  # pragma: no cover - module behaviour
    sys.exit(main())
