"""Pure transforms from raw metrics-source readings to published models."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from .models import HostInventory, InventoryReading, SensorReading, TelemetrySnapshot, TemperatureProbe, UsageReading

UNKNOWN_HOST = "unknown"
UNKNOWN_OS = "Unknown OS"
UNKNOWN_CPU = "Unknown"


def mean_cpu_usage(per_core: Sequence[float]) -> float:
    # No cores reported reads as idle rather than failing the cycle.
    if not per_core:
        return 0.0
    return float(sum(per_core)) / len(per_core)


def build_snapshot(usage: UsageReading, sensors: Iterable[SensorReading]) -> TelemetrySnapshot:
    """Build one immutable snapshot.

    Sensor readings are copied verbatim and in source order: no filtering, unit
    conversion or clamping, so unreadable hardware (NaN) passes through untouched.
    """
    return TelemetrySnapshot(
        cpu_usage=mean_cpu_usage(usage.per_core),
        memory_used=int(usage.memory_used),
        memory_total=int(usage.memory_total),
        temperatures=tuple(TemperatureProbe(label=s.label, temperature=s.temperature) for s in sensors),
    )


def build_inventory(reading: InventoryReading) -> HostInventory:
    return HostInventory(
        host=reading.host or UNKNOWN_HOST,
        os_version=reading.os_version or UNKNOWN_OS,
        cpu_brand=reading.cpu_brand or UNKNOWN_CPU,
        physical_cores=reading.physical_cores,
        total_memory=int(reading.total_memory),
    )
