import threading
import unittest

from rotaexpress.disambiguation import AutoCommit, FallbackManualEntry, PromptUser, Target
from rotaexpress.errors import CaptureUnavailable, ResolutionFailure, ResolutionInProgress
from rotaexpress.geo import Coordinate
from rotaexpress.geocode import AddressCandidate, AddressResolver
from rotaexpress.location import LiveLocationTracker
from rotaexpress.stops import OriginLocation, StopStore
from rotaexpress.storage import MemoryStorage
from rotaexpress.workflow import CaptureWorkflow

ONE = "Rua A, 10, LAT: -23.55, LNG: -46.63"
TWO = "1. Rua B, 5 - Centro, LAT: -23.54, LNG: -46.64\n2. Rua B, 5 - Lapa, LAT: -23.52, LNG: -46.70"


class ScriptedBackend:
    """Answers queries from a dict; ``None`` means the service is down."""

    def __init__(self, answers):
        self.answers = answers
        self.contexts = []

    def search(self, query, context=None):
        self.contexts.append(context)
        answer = self.answers.get(query, "")
        if answer is None:
            raise ResolutionFailure("service down", query=query)
        return answer


class FakeReader:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error

    def extract(self, image_bytes):
        if self.error is not None:
            raise self.error
        return self.text


class TestCaptureWorkflow(unittest.TestCase):
    def make(self, answers, reader=None):
        self.backend = ScriptedBackend(answers)
        self.tracker = LiveLocationTracker()
        self.store = StopStore(MemoryStorage())
        return CaptureWorkflow(self.store, AddressResolver(self.backend), reader=reader, tracker=self.tracker)

    def test_single_candidate_is_added(self):
        workflow = self.make({"rua a": ONE})
        ticket = workflow.begin(Target.STOP)
        decision = workflow.resolve_text(ticket, "rua a")
        self.assertIsInstance(decision, AutoCommit)
        self.assertEqual([s.address for s in self.store.stops], ["Rua A, 10"])
        self.assertFalse(workflow.is_active(ticket))

    def test_live_location_biases_search(self):
        workflow = self.make({"rua a": ONE})
        self.tracker.update(Coordinate(-23.5, -46.6))
        workflow.resolve_text(workflow.begin(Target.STOP), "rua a")
        self.assertEqual(self.backend.contexts, [Coordinate(-23.5, -46.6)])

    def test_prompt_then_choose_sets_origin(self):
        workflow = self.make({"rua b": TWO})
        ticket = workflow.begin(Target.ORIGIN)
        decision = workflow.resolve_text(ticket, "rua b")
        self.assertIsInstance(decision, PromptUser)
        self.assertEqual(len(decision.candidates), 2)
        self.assertIsNone(self.store.origin)
        self.assertIs(workflow.pending_choice(ticket), decision)
        committed = workflow.choose(ticket, 1)
        self.assertEqual(committed, OriginLocation("Rua B, 5 - Lapa", Coordinate(-23.52, -46.70)))
        self.assertEqual(self.store.origin, committed)
        self.assertEqual(self.store.stops, ())

    def test_edit_target_overwrites_stop(self):
        workflow = self.make({"rua a": ONE, "rua b": TWO})
        workflow.resolve_text(workflow.begin(Target.STOP), "rua a")
        stop = self.store.stops[0]
        ticket = workflow.begin(Target.EDIT, stop.id)
        workflow.resolve_text(ticket, "rua b")
        edited = workflow.choose(ticket, 0)
        self.assertEqual((edited.id, edited.order, edited.address), (stop.id, 1, "Rua B, 5 - Centro"))
        self.assertEqual(len(self.store.stops), 1)

    def test_edit_of_deleted_stop_is_discarded(self):
        workflow = self.make({"rua a": ONE})
        workflow.resolve_text(workflow.begin(Target.STOP), "rua a")
        stop = self.store.stops[0]
        ticket = workflow.begin(Target.EDIT, stop.id)
        self.store.remove_stop(stop.id)
        before = self.store.snapshot
        self.assertIsNone(workflow.resolve_text(ticket, "rua a"))
        self.assertIs(self.store.snapshot, before)
        self.assertFalse(workflow.is_active(ticket))

    def test_choice_for_cleared_stop_is_discarded(self):
        workflow = self.make({"rua a": ONE, "rua b": TWO})
        workflow.resolve_text(workflow.begin(Target.STOP), "rua a")
        ticket = workflow.begin(Target.EDIT, self.store.stops[0].id)
        self.assertIsInstance(workflow.resolve_text(ticket, "rua b"), PromptUser)
        self.store.clear_all()
        self.assertIsNone(workflow.choose(ticket, 0))
        self.assertEqual(self.store.stops, ())

    def test_no_match_falls_back(self):
        workflow = self.make({})
        ticket = workflow.begin(Target.STOP)
        decision = workflow.resolve_text(ticket, "rua inexistente")
        self.assertEqual(decision, FallbackManualEntry("rua inexistente", Target.STOP))
        self.assertEqual(self.store.stops, ())
        self.assertFalse(workflow.is_active(ticket))

    def test_failure_leaves_state_untouched(self):
        workflow = self.make({"rua a": ONE, "down": None})
        workflow.resolve_text(workflow.begin(Target.STOP), "rua a")
        before = self.store.snapshot
        ticket = workflow.begin(Target.ORIGIN)
        with self.assertRaises(ResolutionFailure) as ctx:
            workflow.resolve_text(ticket, "down")
        self.assertEqual(ctx.exception.query, "down")
        self.assertIs(self.store.snapshot, before)
        self.assertFalse(workflow.is_active(ticket))

    def test_one_resolution_per_target(self):
        workflow = self.make({})
        ticket = workflow.begin(Target.STOP)
        with self.assertRaises(ResolutionInProgress):
            workflow.begin(Target.STOP)
        workflow.begin(Target.ORIGIN)
        workflow.dismiss(ticket)
        workflow.begin(Target.STOP)
        with self.assertRaises(ValueError):
            workflow.begin(Target.EDIT)

    def test_result_after_dismiss_is_discarded(self):
        started = threading.Event()
        release = threading.Event()

        class SlowBackend:
            def search(self, query, context=None):
                started.set()
                release.wait(5)
                return ONE

        store = StopStore(MemoryStorage())
        workflow = CaptureWorkflow(store, AddressResolver(SlowBackend()))
        ticket = workflow.begin(Target.STOP)
        results = []
        worker = threading.Thread(target=lambda: results.append(workflow.resolve_text(ticket, "rua a")))
        worker.start()
        self.assertTrue(started.wait(5))
        workflow.dismiss(ticket)
        release.set()
        worker.join(5)
        self.assertEqual(results, [None])
        self.assertEqual(store.stops, ())

    def test_choose_after_dismiss_is_ignored(self):
        workflow = self.make({"rua b": TWO})
        ticket = workflow.begin(Target.STOP)
        workflow.resolve_text(ticket, "rua b")
        workflow.dismiss(ticket)
        self.assertIsNone(workflow.choose(ticket, 0))
        self.assertEqual(self.store.stops, ())

    def test_image_flow(self):
        workflow = self.make({"Rua A 10": ONE}, reader=FakeReader("Rua A 10"))
        decision = workflow.resolve_image(workflow.begin(Target.STOP), b"jpeg")
        self.assertIsInstance(decision, AutoCommit)
        self.assertEqual(len(self.store.stops), 1)

    def test_unreadable_label(self):
        workflow = self.make({}, reader=FakeReader(None))
        ticket = workflow.begin(Target.STOP)
        self.assertEqual(workflow.resolve_image(ticket, b"jpeg"), FallbackManualEntry("", Target.STOP))
        self.assertFalse(workflow.is_active(ticket))

    def test_camera_unavailable(self):
        workflow = self.make({}, reader=FakeReader("x"))
        ticket = workflow.begin(Target.STOP)
        with self.assertRaises(CaptureUnavailable):
            workflow.resolve_image(ticket, None)
        self.assertFalse(workflow.is_active(ticket))

    def test_scanning_disabled_without_reader(self):
        workflow = self.make({})
        with self.assertRaises(CaptureUnavailable):
            workflow.resolve_image(workflow.begin(Target.STOP), b"jpeg")

    def test_reader_failure(self):
        workflow = self.make({}, reader=FakeReader(error=ResolutionFailure("ocr down")))
        ticket = workflow.begin(Target.STOP)
        with self.assertRaises(ResolutionFailure):
            workflow.resolve_image(ticket, b"jpeg")
        self.assertEqual(self.store.stops, ())

    def test_manual_commit(self):
        workflow = self.make({})
        ticket = workflow.begin(Target.STOP)
        stop = workflow.commit(ticket, AddressCandidate("Rua D", Coordinate(1, 1)))
        self.assertEqual(stop.order, 1)
        self.assertIsNone(workflow.commit(ticket, AddressCandidate("Rua E", Coordinate(1, 1))))


if __name__ == "__main__":
    unittest.main()
