import threading
import unittest

from rotaexpress.geo import Coordinate
from rotaexpress.location import LiveLocationTracker


class TestLiveLocationTracker(unittest.TestCase):
    def test_latest_value_wins(self):
        tracker = LiveLocationTracker()
        self.assertIsNone(tracker.latest)
        self.assertTrue(tracker.update(Coordinate(1, 1)))
        self.assertTrue(tracker.update(Coordinate(2, 2)))
        self.assertFalse(tracker.update(Coordinate(200, 0)))
        self.assertEqual(tracker.latest, Coordinate(2, 2))

    def test_follow_stream(self):
        tracker = LiveLocationTracker()
        tracker.follow(iter([Coordinate(1, 1), Coordinate(91, 0), Coordinate(3, 3)]))
        tracker.wait_for_fix(timeout=2)
        tracker._thread.join(2)
        self.assertEqual(tracker.latest, Coordinate(3, 3))
        tracker.stop()

    def test_stop_unsubscribes_from_endless_stream(self):
        closed = threading.Event()

        def endless():
            try:
                while True:
                    yield Coordinate(0, 0)
            finally:
                closed.set()

        tracker = LiveLocationTracker()
        tracker.follow(endless())
        self.assertEqual(tracker.wait_for_fix(timeout=2), Coordinate(0, 0))
        tracker.stop(timeout=2)
        self.assertTrue(closed.wait(2))

    def test_permission_denied(self):
        def denied():
            raise PermissionError("user said no")
            yield  # pragma: no cover

        tracker = LiveLocationTracker()
        tracker.follow(denied())
        self.assertIsNone(tracker.wait_for_fix(timeout=2))
        self.assertIsNotNone(tracker.error)


if __name__ == "__main__":
    unittest.main()
