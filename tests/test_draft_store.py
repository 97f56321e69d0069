import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from app.stores import MemoryDraftStackStore
from creation_session import CreationSession


class TestDraftStackStore(unittest.TestCase):
    def setUp(self) -> None:
        self.store = MemoryDraftStackStore()

    def test_save_and_get_stack(self) -> None:
        session = CreationSession("s1")
        session.start_creation("grow")
        saved = self.store.save_stack("s1", session.snapshot())
        self.assertEqual(saved["session_id"], "s1")
        self.assertIsNotNone(saved.get("created_at"))
        stack = self.store.get_stack("s1")
        self.assertEqual(len(stack["drafts"]), 1)
        self.assertEqual(stack["drafts"][0]["entityType"], "grow")

    def test_update_keeps_created_at(self) -> None:
        first = self.store.save_stack("s2", {"session_id": "s2", "drafts": []})
        second = self.store.save_stack("s2", {"session_id": "s2", "drafts": [{"id": "d1", "entityType": "strain"}]})
        self.assertEqual(first["created_at"], second["created_at"])
        self.assertEqual(len(self.store.get_stack("s2")["drafts"]), 1)

    def test_delete_stack(self) -> None:
        self.store.save_stack("s3", {"session_id": "s3", "drafts": []})
        self.assertTrue(self.store.delete_stack("s3"))
        self.assertFalse(self.store.delete_stack("s3"))
        self.assertIsNone(self.store.get_stack("s3"))

    def test_round_trip_restores_session(self) -> None:
        session = CreationSession("s4")
        session.start_creation("grow")
        child_id = session.start_creation("strain", field_to_fill="strainId", initial_data={"name": "B+"})
        self.store.save_stack("s4", session.snapshot())
        restored = CreationSession.restore(self.store.get_stack("s4"), "s4")
        self.assertEqual(restored.stack_depth, 2)
        self.assertEqual(restored.current_draft.id, child_id)
        self.assertEqual(restored.current_draft.form_data["name"], "B+")


if __name__ == "__main__":
    unittest.main()
