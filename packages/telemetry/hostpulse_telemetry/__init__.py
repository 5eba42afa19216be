"""Host telemetry models, builders, and the psutil metrics source."""

from .builder import UNKNOWN_CPU, UNKNOWN_HOST, UNKNOWN_OS, build_inventory, build_snapshot, mean_cpu_usage
from .models import HostInventory, InventoryReading, SensorReading, TelemetrySnapshot, TemperatureProbe, UsageReading
from .source import MetricsSource

__all__ = [
    "HostInventory",
    "InventoryReading",
    "MetricsSource",
    "SensorReading",
    "TelemetrySnapshot",
    "TemperatureProbe",
    "UNKNOWN_CPU",
    "UNKNOWN_HOST",
    "UNKNOWN_OS",
    "UsageReading",
    "build_inventory",
    "build_snapshot",
    "mean_cpu_usage",
]
