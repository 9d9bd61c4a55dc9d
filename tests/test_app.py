import unittest
from unittest import mock

from rotaexpress import app
from rotaexpress.disambiguation import FallbackManualEntry, PromptUser, Target
from rotaexpress.geocode import AddressResolver
from rotaexpress.stops import StopStore
from rotaexpress.storage import MemoryStorage
from rotaexpress.workflow import CaptureWorkflow

TWO = "1. Rua B, 5 - Centro, LAT: -23.54, LNG: -46.64\n2. Rua B, 5 - Lapa, LAT: -23.52, LNG: -46.70"


class StaticBackend:
    def __init__(self, answer):
        self.answer = answer

    def search(self, query, context=None):
        return self.answer


class TestEntryState(unittest.TestCase):
    def setUp(self):
        patcher = mock.patch.object(app, "st")
        self.st = patcher.start()
        self.addCleanup(patcher.stop)
        self.st.session_state = {}
        self.workflow = CaptureWorkflow(StopStore(MemoryStorage()), AddressResolver(StaticBackend(TWO)))

    def test_opening_entry_drops_pending_choice(self):
        app.open_entry(self.workflow, Target.STOP)
        ticket = self.st.session_state["ticket"]
        decision = self.workflow.resolve_text(ticket, "rua b")
        app.handle_decision(self.workflow, ticket, decision)
        self.assertIsInstance(self.st.session_state["prompt"], PromptUser)

        app.open_entry(self.workflow, Target.ORIGIN)
        self.assertNotIn("prompt", self.st.session_state)
        self.assertFalse(self.workflow.is_active(ticket))
        self.assertEqual(self.st.session_state["ticket"].target, Target.ORIGIN)
        self.assertTrue(self.st.session_state["show_manual"])

    def test_no_match_reopens_entry_with_query(self):
        workflow = CaptureWorkflow(StopStore(MemoryStorage()), AddressResolver(StaticBackend("NOT_FOUND")))
        app.open_entry(workflow, Target.STOP)
        ticket = self.st.session_state["ticket"]
        decision = workflow.resolve_text(ticket, "rua inexistente")
        self.assertEqual(decision, FallbackManualEntry("rua inexistente", Target.STOP))
        app.handle_decision(workflow, ticket, decision)
        self.assertEqual(self.st.session_state["manual_input"], "rua inexistente")
        self.assertTrue(workflow.is_active(self.st.session_state["ticket"]))
        self.st.warning.assert_called_once()


if __name__ == "__main__":
    unittest.main()
