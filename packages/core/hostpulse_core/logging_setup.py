"""Structured local logging and crash hook setup.

Everything goes to one JSON-lines file under the config root, rotated at midnight.
The telemetry loop runs on its own thread, so each line records the thread name.
Hard crashes (segfaults inside Qt or a sensor driver) bypass logging entirely and
are dumped by faulthandler into ``fault.log`` next to the regular log.
"""

from __future__ import annotations

import faulthandler
import json
import logging
import logging.handlers
import sys
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any

from .config import config_root


_LOGGER_NAME = "hostpulse"
LOG_FILE_NAME = "hostpulse.log"
FAULT_FILE_NAME = "fault.log"
_EXTRA_FIELDS = ("event", "topic", "crash_id", "exit_code")
_MIN_KEEP_FILES = 2

_fault_stream: IO[str] | None = None


def log_dir() -> Path:
    path = config_root() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts_utc": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        payload.update({name: getattr(record, name) for name in _EXTRA_FIELDS if hasattr(record, name)})
        return json.dumps(payload, ensure_ascii=True, default=str)


def _rotating_handler(logger: logging.Logger) -> logging.handlers.TimedRotatingFileHandler | None:
    for handler in logger.handlers:
        if isinstance(handler, logging.handlers.TimedRotatingFileHandler):
            return handler
    return None


def _has_console(logger: logging.Logger) -> bool:
    # FileHandler subclasses StreamHandler, so match the exact type.
    return any(type(handler) is logging.StreamHandler for handler in logger.handlers)


def configure_logging(keep_files: int = 7, console: bool = True) -> logging.Logger:
    """Attach the JSON file handler once; later calls only adjust it.

    The CLI configures logging before the GUI has loaded its config, so a second
    call must still apply the configured retention and may add the console handler.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    keep = max(_MIN_KEEP_FILES, int(keep_files))

    handler = _rotating_handler(logger)
    if handler is None:
        logger.setLevel(logging.INFO)
        handler = logging.handlers.TimedRotatingFileHandler(
            filename=str(log_dir() / LOG_FILE_NAME),
            when="midnight",
            backupCount=keep,
            encoding="utf-8",
        )
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
        logger.info("logging configured", extra={"event": "logging_configured"})
    elif handler.backupCount != keep:
        handler.backupCount = keep
        logger.info(f"log retention set to {keep} files", extra={"event": "logging_retention_changed"})

    if console and not _has_console(logger):
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter("%(levelname)s [%(threadName)s] %(message)s"))
        logger.addHandler(stream_handler)

    return logger


def get_logger() -> logging.Logger:
    return logging.getLogger(_LOGGER_NAME)


def _open_fault_log(max_bytes: int | None) -> IO[str]:
    path = log_dir() / FAULT_FILE_NAME
    # Start over rather than grow past what a diagnostics bundle can carry.
    mode = "w" if max_bytes is not None and path.exists() and path.stat().st_size > max_bytes else "a"
    return path.open(mode, encoding="utf-8")


def install_crash_hooks(fault_log_limit: int | None = None) -> None:
    """Route uncaught exceptions into the log and enable faulthandler.

    Safe to call more than once: the fault log stays open for the process lifetime
    and is only opened the first time.
    """
    global _fault_stream
    logger = get_logger()

    def _report(event: str, message: str, exc_info: Any) -> None:
        crash_id = str(uuid.uuid4())
        logger.critical(f"{message} crash_id={crash_id}", exc_info=exc_info, extra={"event": event, "crash_id": crash_id})

    def _log_uncaught(exc_type, exc_value, exc_tb) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        _report("uncaught_exception", "uncaught exception", (exc_type, exc_value, exc_tb))

    def _thread_hook(args: threading.ExceptHookArgs) -> None:
        name = getattr(args.thread, "name", "?")
        _report("thread_exception", f"thread exception thread={name}", (args.exc_type, args.exc_value, args.exc_traceback))

    sys.excepthook = _log_uncaught
    threading.excepthook = _thread_hook

    if _fault_stream is None:
        _fault_stream = _open_fault_log(fault_log_limit)
        faulthandler.enable(file=_fault_stream, all_threads=True)
        logger.info("fault handler enabled", extra={"event": "fault_handler_enabled"})
