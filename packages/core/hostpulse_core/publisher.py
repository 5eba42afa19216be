"""Telemetry sampling loop and the background runtime that hosts it."""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable

from hostpulse_telemetry import MetricsSource, TelemetrySnapshot, build_snapshot

from .events import TELEMETRY_TOPIC, EventBus
from .logging_setup import get_logger

SAMPLE_INTERVAL_S = 1.0
# Minimum span covered by the first CPU figure of a freshly created source.
FIRST_SAMPLE_DELAY_S = 0.25


class TelemetryPublisher:
    """Refresh, build, publish, sleep; forever.

    The publisher owns a single metrics source for the lifetime of the loop. Nothing
    else reads or mutates it.
    """

    def __init__(self, bus: EventBus, source_factory: Callable[[], MetricsSource] = MetricsSource) -> None:
        self.bus = bus
        self._source_factory = source_factory
        self._source: MetricsSource | None = None
        self._logger = get_logger()
        self.cycles = 0

    def sample(self) -> TelemetrySnapshot:
        if self._source is None:
            self._source = self._source_factory()
        usage = self._source.refresh_usage()
        sensors = self._source.list_sensors()
        return build_snapshot(usage, sensors)

    async def run(self) -> None:
        if self._source is None:
            try:
                self._source = self._source_factory()
            except Exception:
                self._logger.exception("metrics source unavailable", extra={"event": "telemetry_source_failed"})
            else:
                await asyncio.sleep(FIRST_SAMPLE_DELAY_S)
        self._logger.info("telemetry loop started", extra={"event": "telemetry_started"})
        while True:
            try:
                snapshot = self.sample()
            except Exception:
                self._logger.exception("telemetry sample failed", extra={"event": "telemetry_sample_failed"})
            else:
                self.bus.emit(TELEMETRY_TOPIC, snapshot.to_dict())
            self.cycles += 1
            await asyncio.sleep(SAMPLE_INTERVAL_S)


def spawn_telemetry_stream(
    bus: EventBus,
    source_factory: Callable[[], MetricsSource] = MetricsSource,
) -> asyncio.Task:
    """Start the sampling loop as a task on the running event loop."""
    publisher = TelemetryPublisher(bus, source_factory=source_factory)
    return asyncio.get_running_loop().create_task(publisher.run(), name="telemetry-stream")


class TelemetryRuntime:
    """Runs the sampling loop on its own asyncio loop beside a GUI event loop."""

    def __init__(self, bus: EventBus, source_factory: Callable[[], MetricsSource] = MetricsSource) -> None:
        self.bus = bus
        self._source_factory = source_factory
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task | None = None
        self._thread: threading.Thread | None = None
        self._started = threading.Event()
        self._logger = get_logger()

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.running:
            return
        self._started.clear()
        self._thread = threading.Thread(target=self._run, name="telemetry-runtime", daemon=True)
        self._thread.start()
        self._started.wait(timeout=5)

    def stop(self, timeout: float = 2.0) -> None:
        loop, task = self._loop, self._task
        if loop is None or task is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(task.cancel)
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        self._thread = None

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        try:
            loop.run_until_complete(self._main())
        finally:
            loop.close()
            self._loop = None
            self._task = None

    async def _main(self) -> None:
        self._task = spawn_telemetry_stream(self.bus, source_factory=self._source_factory)
        self._started.set()
        try:
            await self._task
        except asyncio.CancelledError:
            self._logger.info("telemetry loop stopped", extra={"event": "telemetry_stopped"})
