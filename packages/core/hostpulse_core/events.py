"""Fire-and-forget topic broadcast used to hand snapshots to the presentation layer."""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from typing import Any

from .logging_setup import get_logger

TELEMETRY_TOPIC = "telemetry://metrics"

Handler = Callable[[Any], None]


class EventBus:
    """Broadcast payloads to zero or more subscribers per topic.

    Delivery is best effort and at most once: a subscriber that raises is logged
    and skipped, and the producer never waits on any consumer.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Handler]] = {}
        self._logger = get_logger()

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        with self._lock:
            self._subscribers.setdefault(topic, []).append(handler)

        def _unsubscribe() -> None:
            self.unsubscribe(topic, handler)

        return _unsubscribe

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._subscribers.get(topic)
            if handlers and handler in handlers:
                handlers.remove(handler)

    def subscribe_queue(self, topic: str, maxsize: int = 16) -> tuple[asyncio.Queue, Callable[[], None]]:
        """Subscribe an asyncio queue; samples that arrive while it is full are dropped."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

        def _put(payload: Any) -> None:
            try:
                queue.put_nowait(payload)
            except asyncio.QueueFull:
                self._logger.debug("queue full, dropping event", extra={"event": "event_dropped", "topic": topic})

        return queue, self.subscribe(topic, _put)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, ()))

    def emit(self, topic: str, payload: Any) -> int:
        with self._lock:
            handlers = list(self._subscribers.get(topic, ()))

        delivered = 0
        for handler in handlers:
            try:
                handler(payload)
                delivered += 1
            except Exception:
                self._logger.debug(
                    f"subscriber failed on {topic}",
                    exc_info=True,
                    extra={"event": "emit_failed", "topic": topic},
                )
        return delivered
