"""Core app services: sampling loop, event channel, commands, settings, and diagnostics."""

from .commands import CommandResult, PassthroughSurface, get_specs, set_click_through
from .config import AppConfig, load_config, save_config
from .diagnostics import DiagnosticsExporter, build_doctor_payload
from .events import TELEMETRY_TOPIC, EventBus
from .publisher import SAMPLE_INTERVAL_S, TelemetryPublisher, TelemetryRuntime, spawn_telemetry_stream

__all__ = [
    "AppConfig",
    "CommandResult",
    "DiagnosticsExporter",
    "EventBus",
    "PassthroughSurface",
    "SAMPLE_INTERVAL_S",
    "TELEMETRY_TOPIC",
    "TelemetryPublisher",
    "TelemetryRuntime",
    "build_doctor_payload",
    "get_specs",
    "load_config",
    "save_config",
    "set_click_through",
    "spawn_telemetry_stream",
]
