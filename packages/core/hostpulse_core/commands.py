"""Request/response operations exposed to the presentation layer."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from hostpulse_telemetry import HostInventory, MetricsSource, build_inventory


class PassthroughSurface(Protocol):
    def set_ignore_cursor_events(self, ignore: bool) -> None: ...


@dataclass(frozen=True)
class CommandResult:
    success: bool
    error: str | None = None


def _inventory_source() -> MetricsSource:
    return MetricsSource(prime_cpu=False)


def get_specs(source_factory: Callable[[], MetricsSource] = _inventory_source) -> HostInventory:
    """Query host inventory from a fresh metrics source.

    Never cached: every call pays for a full query. Unresolved fields fall back to
    their documented defaults, so this does not fail.
    """
    return build_inventory(source_factory().query_inventory())


def set_click_through(surface: PassthroughSurface, passthrough: bool) -> CommandResult:
    try:
        surface.set_ignore_cursor_events(bool(passthrough))
    except Exception as exc:
        return CommandResult(success=False, error=str(exc) or type(exc).__name__)
    return CommandResult(success=True)
