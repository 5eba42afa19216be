"""Persistent app settings schema and load/save helpers."""

from __future__ import annotations

import json
import os
import platform
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


CONFIG_VERSION = 2


@dataclass
class WindowConfig:
    click_through: bool = False
    always_on_top: bool = True
    opacity: float = 0.92


@dataclass
class UiConfig:
    theme: str = "auto"
    show_temperatures: bool = True


@dataclass
class DiagnosticsConfig:
    keep_log_files: int = 7
    max_bundle_mb: int = 20


@dataclass
class AppConfig:
    config_version: int = CONFIG_VERSION
    window: WindowConfig = field(default_factory=WindowConfig)
    ui: UiConfig = field(default_factory=UiConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)


def config_root() -> Path:
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        return base / "HostPulse"
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / "HostPulse"
    return Path.home() / ".config" / "hostpulse"


def config_path() -> Path:
    return config_root() / "config.json"


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _merge(dataclass_type, raw: Any):
    defaults = dataclass_type()  # type: ignore[misc]
    if not isinstance(raw, dict):
        return defaults
    for k, v in raw.items():
        if hasattr(defaults, k):
            setattr(defaults, k, v)
    return defaults


def _normalize_window(cfg: AppConfig) -> None:
    cfg.window.click_through = bool(cfg.window.click_through)
    cfg.window.always_on_top = bool(cfg.window.always_on_top)
    try:
        opacity = float(cfg.window.opacity)
    except (TypeError, ValueError):
        opacity = WindowConfig.opacity
    cfg.window.opacity = max(0.2, min(1.0, opacity))


def _normalize_ui(cfg: AppConfig) -> None:
    if cfg.ui.theme not in ("auto", "dark", "light"):
        cfg.ui.theme = "auto"
    cfg.ui.show_temperatures = bool(cfg.ui.show_temperatures)


def _normalize_diagnostics(cfg: AppConfig) -> None:
    defaults = DiagnosticsConfig()
    cfg.diagnostics.keep_log_files = max(2, _as_int(cfg.diagnostics.keep_log_files, defaults.keep_log_files))
    cfg.diagnostics.max_bundle_mb = max(1, _as_int(cfg.diagnostics.max_bundle_mb, defaults.max_bundle_mb))


def _migrate(raw: dict[str, Any]) -> dict[str, Any]:
    version = _as_int(raw.get("config_version", 1), 1)
    data = dict(raw)

    if version < 2:
        # v1 kept the overlay flags at the top level.
        window = data.get("window")
        window = dict(window) if isinstance(window, dict) else {}
        for key in ("click_through", "always_on_top", "opacity"):
            if key in data:
                window.setdefault(key, data.pop(key))
        data["window"] = window
        data.setdefault("diagnostics", {})
        data["config_version"] = 2

    return data


def load_config(path: Path | None = None) -> AppConfig:
    path = path or config_path()
    if not path.exists():
        return AppConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return AppConfig()
    if not isinstance(raw, dict):
        return AppConfig()

    data = _migrate(raw)
    cfg = AppConfig(
        config_version=_as_int(data.get("config_version", CONFIG_VERSION), CONFIG_VERSION),
        window=_merge(WindowConfig, data.get("window", {})),
        ui=_merge(UiConfig, data.get("ui", {})),
        diagnostics=_merge(DiagnosticsConfig, data.get("diagnostics", {})),
    )

    _normalize_window(cfg)
    _normalize_ui(cfg)
    _normalize_diagnostics(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    cfg.config_version = CONFIG_VERSION
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True), encoding="utf-8")
    return path
