"""Diagnostics export helpers for local support bundles."""

from __future__ import annotations

import json
import platform
import re
import tempfile
import zipfile
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .commands import get_specs
from .config import AppConfig, config_path
from .events import TELEMETRY_TOPIC
from .logging_setup import log_dir
from .publisher import SAMPLE_INTERVAL_S


_SECRET_RE = re.compile(r"(token|secret|password|apikey|api_key|auth)", re.IGNORECASE)


def _jsonable(value: Any) -> Any:
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, Path):
        return str(value)
    return value


def redact(value: Any) -> Any:
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if _SECRET_RE.search(k):
                out[k] = "***REDACTED***"
            else:
                out[k] = redact(v)
        return out
    if isinstance(value, list):
        return [redact(v) for v in value]
    return value


def build_doctor_payload(cfg: AppConfig) -> dict[str, Any]:
    return {
        "ts_utc": datetime.now(timezone.utc).isoformat(),
        "platform": platform.platform(),
        "python": platform.python_version(),
        "config": redact(asdict(cfg)),
        "inventory": get_specs().to_dict(),
        "telemetry": {
            "topic": TELEMETRY_TOPIC,
            "interval_s": SAMPLE_INTERVAL_S,
        },
    }


class DiagnosticsExporter:
    def __init__(self, app_name: str = "HostPulse") -> None:
        self.app_name = app_name

    def bundle(
        self,
        cfg: AppConfig,
        doctor_payload: dict[str, Any],
        recent_telemetry: list[dict[str, Any]] | None = None,
        output_dir: Path | None = None,
    ) -> Path:
        output_base = output_dir or Path(tempfile.gettempdir())
        output_base.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        zip_path = output_base / f"hostpulse-diagnostics-{stamp}.zip"

        logs = sorted(log_dir().glob("*.log*"), key=lambda p: p.stat().st_mtime, reverse=True)
        budget = cfg.diagnostics.max_bundle_mb * 1024 * 1024

        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            manifest = {
                "app": self.app_name,
                "created_utc": datetime.now(timezone.utc).isoformat(),
                "host": platform.platform(),
                "python": platform.python_version(),
                "config_path": str(config_path()),
                "log_dir": str(log_dir()),
            }
            zf.writestr("manifest.json", json.dumps(manifest, indent=2, sort_keys=True))
            zf.writestr("doctor.json", json.dumps(redact(doctor_payload), indent=2, sort_keys=True, default=_jsonable))
            zf.writestr("config.redacted.json", json.dumps(redact(asdict(cfg)), indent=2, sort_keys=True))
            zf.writestr(
                "telemetry_events.json",
                json.dumps(recent_telemetry or [], indent=2, sort_keys=True, default=_jsonable, allow_nan=False),
            )

            # Newest logs first until the size budget is spent; fault.log is matched by the glob.
            used = 0
            for item in logs:
                size = item.stat().st_size
                if used + size > budget:
                    continue
                zf.write(item, arcname=f"logs/{item.name}")
                used += size

        return zip_path
