import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from event_bus import make_event
from outbox import Outbox


class TestOutbox(unittest.TestCase):
    def _meta(self, session_id: str = "s1") -> dict:
        return {"session_id": session_id, "entity_type": "location", "draft_id": None}

    def test_enqueue_pending_order(self) -> None:
        outbox = Outbox()
        outbox.enqueue(make_event("a", {"x": 1}, self._meta()))
        outbox.enqueue(make_event("b", {"x": 2}, self._meta()))
        self.assertEqual([p["name"] for p in outbox.pending()], ["a", "b"])

    def test_pending_filters_by_session(self) -> None:
        outbox = Outbox()
        outbox.enqueue(make_event("a", {}, self._meta("s1")))
        outbox.enqueue(make_event("b", {}, self._meta("s2")))
        self.assertEqual([p["name"] for p in outbox.pending("s2")], ["b"])

    def test_ack(self) -> None:
        outbox = Outbox()
        event = make_event("a", {"x": 1}, self._meta())
        outbox.enqueue(event)
        event_id = event["meta"]["event_id"]
        self.assertTrue(outbox.ack(event_id))
        self.assertEqual(outbox.pending(), [])
        self.assertFalse(outbox.ack(event_id))

    def test_pending_returns_copies(self) -> None:
        outbox = Outbox()
        outbox.enqueue(make_event("a", {"x": 1}, self._meta()))
        outbox.pending()[0]["payload"]["x"] = 99
        self.assertEqual(outbox.pending()[0]["payload"]["x"], 1)


if __name__ == "__main__":
    unittest.main()
