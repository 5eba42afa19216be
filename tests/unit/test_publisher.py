from __future__ import annotations

import asyncio
import contextlib
import sys
import threading
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))
sys.path.insert(0, str(ROOT / "packages" / "core"))

from hostpulse_core import publisher as publisher_mod
from hostpulse_core.events import TELEMETRY_TOPIC, EventBus
from hostpulse_core.publisher import TelemetryPublisher, TelemetryRuntime, spawn_telemetry_stream
from hostpulse_telemetry.models import SensorReading, UsageReading


class FakeSource:
    instances = 0

    def __init__(self, sensors: list[SensorReading] | None = None) -> None:
        FakeSource.instances += 1
        self.sensors = sensors if sensors is not None else [SensorReading("coretemp Core 0", 42.5)]
        self.refreshes = 0
        self.enumerations = 0

    def refresh_usage(self) -> UsageReading:
        self.refreshes += 1
        return UsageReading(per_core=(20.0, 40.0), memory_used=4 * 1024**3, memory_total=16 * 1024**3)

    def list_sensors(self) -> list[SensorReading]:
        self.enumerations += 1
        return list(self.sensors)


def _fast_sleep(monkeypatch, interval: float = 0.01) -> None:
    monkeypatch.setattr(publisher_mod, "SAMPLE_INTERVAL_S", interval)
    monkeypatch.setattr(publisher_mod, "FIRST_SAMPLE_DELAY_S", interval)


async def _first_payload(bus: EventBus, source_factory, timeout: float = 1.5) -> dict:
    queue, unsubscribe = bus.subscribe_queue(TELEMETRY_TOPIC)
    task = spawn_telemetry_stream(bus, source_factory=source_factory)
    try:
        return await asyncio.wait_for(queue.get(), timeout=timeout)
    finally:
        unsubscribe()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


def test_sample_builds_snapshot_from_owned_source() -> None:
    FakeSource.instances = 0
    pub = TelemetryPublisher(EventBus(), source_factory=FakeSource)
    first = pub.sample()
    second = pub.sample()

    assert FakeSource.instances == 1
    assert first.cpu_usage == 30.0
    assert first.memory_used <= first.memory_total
    assert [p.label for p in second.temperatures] == ["coretemp Core 0"]


def test_snapshot_arrives_within_one_and_a_half_intervals() -> None:
    payload = asyncio.run(_first_payload(EventBus(), FakeSource))
    assert set(payload) == {"cpu_usage", "memory_used", "memory_total", "temperatures"}
    assert isinstance(payload["cpu_usage"], float)
    assert payload["memory_used"] >= 0 and payload["memory_total"] >= 0
    assert payload["temperatures"] == [{"label": "coretemp Core 0", "temperature": 42.5}]


def test_no_sensors_publishes_empty_list() -> None:
    payload = asyncio.run(_first_payload(EventBus(), lambda: FakeSource(sensors=[])))
    assert payload["temperatures"] == []


def test_loop_keeps_publishing_without_subscribers(monkeypatch) -> None:
    _fast_sleep(monkeypatch)
    FakeSource.instances = 0
    bus = EventBus()
    pub = TelemetryPublisher(bus, source_factory=FakeSource)

    async def _scenario() -> int:
        task = asyncio.create_task(pub.run())
        await asyncio.sleep(0.1)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        return pub.cycles

    assert asyncio.run(_scenario()) >= 3
    assert FakeSource.instances == 1


def test_failing_subscriber_does_not_stop_the_loop(monkeypatch) -> None:
    _fast_sleep(monkeypatch)
    bus = EventBus()

    def _boom(_payload):
        raise RuntimeError("window closed")

    bus.subscribe(TELEMETRY_TOPIC, _boom)

    async def _scenario() -> list:
        received: list = []
        bus.subscribe(TELEMETRY_TOPIC, received.append)
        task = spawn_telemetry_stream(bus, source_factory=FakeSource)
        await asyncio.sleep(0.1)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        return received

    assert len(asyncio.run(_scenario())) >= 3


def test_failed_sample_is_skipped(monkeypatch) -> None:
    _fast_sleep(monkeypatch)

    class FlakySource(FakeSource):
        def refresh_usage(self) -> UsageReading:
            self.refreshes += 1
            if self.refreshes == 1:
                raise OSError("counter read failed")
            return super().refresh_usage()

    payload = asyncio.run(_first_payload(EventBus(), FlakySource))
    assert payload["cpu_usage"] == 30.0


def test_suspension_yields_to_other_tasks(monkeypatch) -> None:
    _fast_sleep(monkeypatch, interval=0.05)
    bus = EventBus()

    async def _scenario() -> int:
        ticks = 0
        task = spawn_telemetry_stream(bus, source_factory=FakeSource)
        for _ in range(20):
            await asyncio.sleep(0.005)
            ticks += 1
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        return ticks

    assert asyncio.run(_scenario()) == 20


def test_runtime_publishes_from_background_thread(monkeypatch) -> None:
    _fast_sleep(monkeypatch)
    bus = EventBus()
    arrived = threading.Event()
    threads: list[str] = []

    def _on_payload(_payload) -> None:
        threads.append(threading.current_thread().name)
        arrived.set()

    bus.subscribe(TELEMETRY_TOPIC, _on_payload)
    runtime = TelemetryRuntime(bus, source_factory=FakeSource)
    runtime.start()
    runtime.start()
    try:
        assert arrived.wait(timeout=1.5)
        assert runtime.running
    finally:
        runtime.stop()

    assert not runtime.running
    assert threads[0] == "telemetry-runtime"


def test_first_refresh_waits_after_source_creation(monkeypatch) -> None:
    monkeypatch.setattr(publisher_mod, "FIRST_SAMPLE_DELAY_S", 0.1)

    class TimedSource(FakeSource):
        def __init__(self) -> None:
            super().__init__()
            self.created_at = time.monotonic()
            self.first_refresh_at: float | None = None

        def refresh_usage(self) -> UsageReading:
            if self.first_refresh_at is None:
                self.first_refresh_at = time.monotonic()
            return super().refresh_usage()

    sources: list[TimedSource] = []

    def _factory() -> TimedSource:
        sources.append(TimedSource())
        return sources[-1]

    payload = asyncio.run(_first_payload(EventBus(), _factory))

    assert payload["cpu_usage"] == 30.0
    assert len(sources) == 1
    assert sources[0].first_refresh_at is not None
    assert sources[0].first_refresh_at - sources[0].created_at >= 0.09


def test_source_factory_failure_is_retried_by_the_loop(monkeypatch) -> None:
    _fast_sleep(monkeypatch)
    attempts: list[int] = []

    def _factory() -> FakeSource:
        attempts.append(1)
        if len(attempts) == 1:
            raise OSError("counters unavailable")
        return FakeSource()

    payload = asyncio.run(_first_payload(EventBus(), _factory))
    assert payload["memory_total"] == 16 * 1024**3
    assert len(attempts) == 2
