"""psutil-backed metrics source with graceful per-field fallbacks."""

from __future__ import annotations

import platform
import socket
import subprocess
from pathlib import Path

import psutil

from .models import InventoryReading, SensorReading, UsageReading


def _sensor_label(chip: str, label: str | None) -> str:
    label = (label or "").strip()
    return f"{chip} {label}" if label else chip


def _hostname() -> str | None:
    try:
        name = socket.gethostname()
    except OSError:
        return None
    return name or None


def _long_os_version() -> str | None:
    system = platform.system()
    try:
        if system == "Linux":
            release = platform.freedesktop_os_release()
            pretty = release.get("PRETTY_NAME") or release.get("NAME")
            return f"Linux {pretty}" if pretty else f"Linux {platform.release()}"
        if system == "Darwin":
            version = platform.mac_ver()[0]
            return f"macOS {version}" if version else None
        if system == "Windows":
            return f"Windows {platform.release()} ({platform.version()})"
    except OSError:
        pass
    return f"{system} {platform.release()}".strip() or None


def _windows_cpu_brand() -> str | None:
    import winreg  # type: ignore

    path = r"HARDWARE\DESCRIPTION\System\CentralProcessor\0"
    with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, path) as key:
        value, _ = winreg.QueryValueEx(key, "ProcessorNameString")
    return str(value).strip() or None


def _macos_cpu_brand() -> str | None:
    out = subprocess.run(
        ["sysctl", "-n", "machdep.cpu.brand_string"],
        capture_output=True,
        text=True,
        timeout=2,
        check=False,
    )
    return out.stdout.strip() or None


def _linux_cpu_brand() -> str | None:
    cpuinfo = Path("/proc/cpuinfo")
    if not cpuinfo.exists():
        return None
    for line in cpuinfo.read_text(encoding="utf-8", errors="replace").splitlines():
        # ARM kernels report "Model" or "Hardware" instead of "model name".
        key, _, value = line.partition(":")
        if key.strip() in ("model name", "Model", "Hardware") and value.strip():
            return value.strip()
    return None


def _cpu_brand() -> str | None:
    system = platform.system()
    try:
        if system == "Windows":
            brand = _windows_cpu_brand()
        elif system == "Darwin":
            brand = _macos_cpu_brand()
        else:
            brand = _linux_cpu_brand()
    except Exception:
        brand = None
    return brand or platform.processor() or None


def _physical_cores() -> int | None:
    try:
        return psutil.cpu_count(logical=False)
    except Exception:
        return None


def _busy_and_total(times) -> tuple[float, float]:
    # guest time is already counted in user/nice on Linux.
    total = sum(times) - getattr(times, "guest", 0.0) - getattr(times, "guest_nice", 0.0)
    idle = times.idle + getattr(times, "iowait", 0.0)
    return total - idle, total


def _core_percent(before, after) -> float:
    busy_before, total_before = _busy_and_total(before)
    busy_after, total_after = _busy_and_total(after)
    elapsed = total_after - total_before
    if elapsed <= 0 or busy_after <= busy_before:
        return 0.0
    return max(0.0, min(100.0, (busy_after - busy_before) / elapsed * 100.0))


class MetricsSource:
    """One long-lived handle over the OS metrics primitives.

    Every concurrent actor gets its own instance. CPU utilization is measured
    against per-core times held on the instance, so sources never disturb each
    other's baseline. Inventory-only callers pass ``prime_cpu=False``.
    """

    def __init__(self, prime_cpu: bool = True) -> None:
        self._cpu_times = psutil.cpu_times(percpu=True) if prime_cpu else None

    def refresh_usage(self) -> UsageReading:
        current = psutil.cpu_times(percpu=True)
        previous = self._cpu_times
        self._cpu_times = current
        if previous is None or len(previous) != len(current):
            # No baseline yet, or cores were hot-plugged.
            per_core = tuple(0.0 for _ in current)
        else:
            per_core = tuple(_core_percent(b, a) for b, a in zip(previous, current))

        vm = psutil.virtual_memory()
        return UsageReading(
            per_core=per_core,
            memory_used=max(int(vm.total) - int(vm.available), 0),
            memory_total=int(vm.total),
        )

    def list_sensors(self) -> list[SensorReading]:
        # sensors_temperatures is missing entirely on Windows.
        try:
            temps = psutil.sensors_temperatures()
        except Exception:
            return []
        if not temps:
            return []

        readings: list[SensorReading] = []
        for chip, entries in temps.items():
            for entry in entries:
                current = entry.current if entry.current is not None else float("nan")
                readings.append(SensorReading(label=_sensor_label(chip, entry.label), temperature=float(current)))
        return readings

    def query_inventory(self) -> InventoryReading:
        return InventoryReading(
            host=_hostname(),
            os_version=_long_os_version(),
            cpu_brand=_cpu_brand(),
            physical_cores=_physical_cores(),
            total_memory=int(psutil.virtual_memory().total),
        )
