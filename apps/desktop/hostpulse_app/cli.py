"""CLI entrypoints for the HostPulse desktop HUD, inventory, live metrics, and diagnostics."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
from pathlib import Path

from hostpulse_core import (
    DiagnosticsExporter,
    EventBus,
    TELEMETRY_TOPIC,
    build_doctor_payload,
    get_specs,
    load_config,
    spawn_telemetry_stream,
)
from hostpulse_core.logging_setup import configure_logging


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a whole number, got {text!r}") from None
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return value


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str, allow_nan=False), flush=True)


def cmd_run(_args: argparse.Namespace) -> int:
    from .app import run_gui

    return run_gui()


def cmd_specs(_args: argparse.Namespace) -> int:
    _print_json(get_specs().to_dict())
    return 0


async def _watch(count: int | None) -> int:
    bus = EventBus()
    queue, unsubscribe = bus.subscribe_queue(TELEMETRY_TOPIC)
    task = spawn_telemetry_stream(bus)
    seen = 0
    try:
        while count is None or seen < count:
            _print_json(await queue.get())
            seen += 1
    finally:
        unsubscribe()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
    return 0


def cmd_watch(args: argparse.Namespace) -> int:
    try:
        return asyncio.run(_watch(args.count))
    except KeyboardInterrupt:
        return 0


def cmd_doctor(args: argparse.Namespace) -> int:
    cfg = load_config()
    payload = build_doctor_payload(cfg)

    if args.export:
        exporter = DiagnosticsExporter()
        out_dir = Path(args.out_dir).expanduser().resolve() if args.out_dir else None
        bundle = exporter.bundle(cfg=cfg, doctor_payload=payload, recent_telemetry=[], output_dir=out_dir)
        payload["diagnostics_bundle"] = str(bundle)

    _print_json(payload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hostpulse", description="HostPulse desktop telemetry HUD and tools")
    sub = parser.add_subparsers(dest="command", required=True)

    run_cmd = sub.add_parser("run", help="Run desktop HUD")
    run_cmd.set_defaults(func=cmd_run)

    specs_cmd = sub.add_parser("specs", help="Print host inventory")
    specs_cmd.set_defaults(func=cmd_specs)

    watch_cmd = sub.add_parser("watch", help="Print live telemetry snapshots as JSON")
    watch_cmd.add_argument("--count", type=_positive_int, default=None, help="Stop after this many snapshots")
    watch_cmd.set_defaults(func=cmd_watch)

    doctor_cmd = sub.add_parser("doctor", help="Print diagnostics and host inventory")
    doctor_cmd.add_argument("--export", action="store_true", help="Export offline diagnostics bundle")
    doctor_cmd.add_argument("--out-dir", default=None, help="Optional output directory for diagnostics bundle")
    doctor_cmd.set_defaults(func=cmd_doctor)

    return parser


def main(argv: list[str] | None = None) -> int:
    configure_logging(keep_files=load_config().diagnostics.keep_log_files, console=False)
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
