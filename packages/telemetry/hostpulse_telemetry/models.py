"""Typed telemetry models."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class TemperatureProbe:
    label: str
    temperature: float

    def to_dict(self) -> dict[str, Any]:
        # Unreadable sensors report NaN, which JSON cannot carry; publish null.
        value = self.temperature if math.isfinite(self.temperature) else None
        return {"label": self.label, "temperature": value}


@dataclass(frozen=True)
class TelemetrySnapshot:
    cpu_usage: float
    memory_used: int
    memory_total: int
    temperatures: tuple[TemperatureProbe, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["temperatures"] = [p.to_dict() for p in self.temperatures]
        return payload


@dataclass(frozen=True)
class HostInventory:
    host: str
    os_version: str
    cpu_brand: str
    physical_cores: int | None
    total_memory: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# Raw readings as handed over by the metrics source. String fields are None when
# the platform could not resolve them.


@dataclass(frozen=True)
class UsageReading:
    per_core: tuple[float, ...]
    memory_used: int
    memory_total: int


@dataclass(frozen=True)
class SensorReading:
    label: str
    temperature: float


@dataclass(frozen=True)
class InventoryReading:
    host: str | None
    os_version: str | None
    cpu_brand: str | None
    physical_cores: int | None
    total_memory: int
