from __future__ import annotations

import pytest

from wattz.battery import BasePowerSource, PlugType, PowerReading
from wattz.lifecycle import PowerStateWatcher
from wattz.signals import SignalBus, Topic


class _ScriptedSource(BasePowerSource):
    def __init__(self, *readings: PowerReading) -> None:
        self._readings = list(readings)

    def read(self) -> PowerReading:
        item = self._readings.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def bus() -> SignalBus:
    return SignalBus()


def _record(bus: SignalBus) -> list[tuple[Topic, object]]:
    events: list[tuple[Topic, object]] = []
    for topic in (Topic.POWER_CONNECTED, Topic.POWER_DISCONNECTED):
        bus.subscribe(topic, lambda payload, topic=topic: events.append((topic, payload)))
    return events


def test_first_poll_only_records_state(bus: SignalBus) -> None:
    events = _record(bus)
    watcher = PowerStateWatcher(_ScriptedSource(PowerReading(charging=True, plug_type=PlugType.AC)), bus)

    assert watcher.poll() is None
    assert watcher.plugged is True
    assert events == []


def test_edges_publish_connect_and_disconnect(bus: SignalBus) -> None:
    events = _record(bus)
    source = _ScriptedSource(
        PowerReading(charging=False),
        PowerReading(charging=True, plug_type=PlugType.USB),
        PowerReading(charging=True, plug_type=PlugType.USB),
        PowerReading(charging=False),
    )
    watcher = PowerStateWatcher(source, bus)

    results = [watcher.poll() for _ in range(4)]

    assert results == [None, Topic.POWER_CONNECTED, None, Topic.POWER_DISCONNECTED]
    assert events == [
        (Topic.POWER_CONNECTED, {"plug_type": "usb"}),
        (Topic.POWER_DISCONNECTED, {"plug_type": None}),
    ]


def test_unknown_readings_and_errors_are_ignored(bus: SignalBus) -> None:
    events = _record(bus)
    source = _ScriptedSource(
        PowerReading(charging=False),
        PowerReading(),
        RuntimeError("read failed"),
        PowerReading(charging=False),
    )
    watcher = PowerStateWatcher(source, bus)

    assert [watcher.poll() for _ in range(4)] == [None, None, None, None]
    assert watcher.plugged is False
    assert events == []
