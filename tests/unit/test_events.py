import asyncio
import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))
sys.path.insert(0, str(ROOT / "packages" / "core"))

from hostpulse_core.events import TELEMETRY_TOPIC, EventBus


class EventBusTests(unittest.TestCase):
    def test_topic_name(self):
        self.assertEqual(TELEMETRY_TOPIC, "telemetry://metrics")

    def test_emit_without_subscribers_is_not_an_error(self):
        bus = EventBus()
        self.assertEqual(bus.emit(TELEMETRY_TOPIC, {"cpu_usage": 1.0}), 0)

    def test_broadcast_to_every_subscriber(self):
        bus = EventBus()
        seen_a, seen_b = [], []
        bus.subscribe(TELEMETRY_TOPIC, seen_a.append)
        bus.subscribe(TELEMETRY_TOPIC, seen_b.append)
        bus.subscribe("other://topic", seen_b.append)

        self.assertEqual(bus.emit(TELEMETRY_TOPIC, 1), 2)
        self.assertEqual(seen_a, [1])
        self.assertEqual(seen_b, [1])

    def test_failing_subscriber_does_not_stop_delivery(self):
        bus = EventBus()
        seen = []

        def _boom(_payload):
            raise RuntimeError("renderer gone")

        bus.subscribe(TELEMETRY_TOPIC, _boom)
        bus.subscribe(TELEMETRY_TOPIC, seen.append)
        self.assertEqual(bus.emit(TELEMETRY_TOPIC, "x"), 1)
        self.assertEqual(seen, ["x"])

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe(TELEMETRY_TOPIC, seen.append)
        self.assertEqual(bus.subscriber_count(TELEMETRY_TOPIC), 1)
        unsubscribe()
        unsubscribe()
        self.assertEqual(bus.subscriber_count(TELEMETRY_TOPIC), 0)
        bus.emit(TELEMETRY_TOPIC, "x")
        self.assertEqual(seen, [])

    def test_full_queue_drops_samples(self):
        async def _scenario():
            bus = EventBus()
            queue, unsubscribe = bus.subscribe_queue(TELEMETRY_TOPIC, maxsize=1)
            bus.emit(TELEMETRY_TOPIC, "first")
            bus.emit(TELEMETRY_TOPIC, "second")
            unsubscribe()
            return queue.qsize(), queue.get_nowait()

        size, item = asyncio.run(_scenario())
        self.assertEqual(size, 1)
        self.assertEqual(item, "first")


if __name__ == "__main__":
    unittest.main()
